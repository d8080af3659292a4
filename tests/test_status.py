import pytest

from a64modem.qcfg import EntryState, Qcfg
from a64modem.status import CallStat, CurrentCall, Status


@pytest.fixture
def qcfg():
    return Qcfg()


@pytest.fixture
def status(qcfg):
    return Status(qcfg)


def test_initial_state(status):
    assert status.rdy
    assert not status.at_ok
    assert not status.echo_disabled
    assert status.pending_command is None
    assert status.cpin is None


def test_cpin_value_and_version(status):
    before = status.version
    status.apply_line("+CPIN: SIM PIN")
    assert status.cpin == "SIM PIN"
    assert status.version > before


def test_wrong_pin_discards_cpin(status):
    status.apply_line("+CPIN: SIM PIN")
    status.command_submitted("AT+CPIN=4321")
    status.apply_line("+CME ERROR: 16")
    assert status.cpin is None
    assert status.cme_error == "16"
    assert status.pending_command is None


def test_sim_pin_count(status):
    status.apply_line('+QPINC: "SC",2,10')
    status.apply_line('+QPINC: "P2",3,10')
    assert status.sim_pin_count == "2,10"


def test_check_ready(status):
    status.command_submitted("AT")
    assert status.pending_command == "AT"
    status.apply_line("OK")
    assert status.at_ok
    assert status.ok
    assert status.pending_command is None


def test_disable_echo(status):
    status.command_submitted("ATE0")
    status.apply_line("OK")
    assert status.echo_disabled
    assert not status.at_ok


def test_call_list_with_alerting_call(status):
    status.command_submitted("AT+CLCC")
    status.apply_line('+CLCC: 1,1,0,1,0,"",128')
    assert status.current_call is None
    status.apply_line('+CLCC: 2,0,3,0,0,"+49123123123",129')
    assert status.current_call == CurrentCall("+49123123123", CallStat.ALERTING)
    assert status.clcc_up_to_date


def test_empty_call_list(status):
    status.command_submitted("AT+CLCC")
    assert not status.clcc_up_to_date
    status.apply_line('+CLCC: 1,1,0,1,0,"",128')
    status.apply_line("OK")
    assert status.clcc_up_to_date
    assert status.current_call is None


def test_dial_invalidates_call_list(status):
    status.command_submitted("AT+CLCC")
    status.apply_line('+CLCC: 2,1,0,0,0,"+49123123123",145')
    status.command_submitted("ATD+49123123123;")
    status.apply_line("OK")
    assert not status.clcc_up_to_date
    assert status.current_call is None


def test_ring_and_no_carrier(status):
    status.apply_line('+CLCC: 2,1,4,0,0,"+49123123123",145')
    status.apply_line("RING")
    assert status.ring_count == 1
    assert not status.clcc_up_to_date
    assert status.current_call is None
    status.apply_line("NO CARRIER")
    assert status.no_carrier_count == 1


def test_reboot_resets_state(status, qcfg):
    entry = qcfg.add_entry("usbnet", "1")
    entry.state = EntryState.MODIFIED
    status.at_ok = True
    status.echo_disabled = True
    status.apply_line("+CPIN: READY")
    status.command_submitted("AT+CFUN=1,1")
    status.apply_line("OK")
    assert not status.at_ok
    assert not status.echo_disabled
    assert not status.rdy
    assert status.cpin is None
    assert entry.state is EntryState.UNKNOWN
    status.apply_line("RDY")
    assert status.rdy


def test_qcfg_query_response(status, qcfg):
    entry = qcfg.add_entry("usbnet", "1")
    status.command_submitted('AT+QCFG="usbnet"')
    status.apply_line('+QCFG: "usbnet",0')
    assert entry.state is EntryState.MISMATCH
    status.apply_line('+QCFG: "usbnet",1')
    assert entry.state is EntryState.CONFIRMED
    status.apply_line("OK")
    assert entry.state is EntryState.CONFIRMED


def test_qcfg_assignment_marks_modified(status, qcfg):
    entry = qcfg.add_entry("usbnet", "1")
    entry.state = EntryState.MISMATCH
    status.command_submitted('AT+QCFG="usbnet",1')
    status.apply_line("OK")
    assert entry.state is EntryState.MODIFIED


def test_qcfg_response_for_unregistered_name(status, qcfg):
    entry = qcfg.add_entry("usbnet", "1")
    status.apply_line('+QCFG: "urc/ri/smsincoming",pulse,120,1')
    assert entry.state is EntryState.UNKNOWN


def test_busy_count(status):
    status.apply_line("+CME ERROR: 10")
    status.apply_line("+CME ERROR: 14")
    status.apply_line("ERROR")
    assert status.busy_count == 3
    assert status.error


def test_powered_down(status):
    before = status.version
    status.apply_line("POWERED DOWN")
    assert status.powered_down is True
    assert status.version > before
    status.apply_line("RDY")
    assert status.powered_down is False
    assert status.rdy is True


def test_command_canceled(status):
    status.command_submitted("ATH")
    status.apply_line("+CME ERROR: 16")
    status.command_submitted("ATH")
    status.command_canceled()
    assert status.pending_command is None
    assert status.cme_error is None
    assert not status.ok


def test_parse_incoming_call():
    call = CurrentCall.parse('+CLCC: 2,1,4,0,0,"+49123123123",145')
    assert call == CurrentCall("+49123123123", CallStat.INCOMING)
    assert call.incoming
    assert not call.active


def test_parse_active_call():
    call = CurrentCall.parse('+CLCC: 2,1,0,0,0,"+49123123123",145')
    assert call.active
    assert call.stat is CallStat.ACTIVE


def test_parse_rejects_other_lines():
    assert CurrentCall.parse("OK") is None
    assert CurrentCall.parse('+CLCC: 1,1,0,1,0,"",128') is None