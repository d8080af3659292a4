import xml.etree.ElementTree as ET

import pytest

from a64modem.driver import Driver
from a64modem.qcfg import EntryState


class FakeModem:
    """Modem side of the AT protocol test, answering the driver's commands."""

    def __init__(self):
        self.output = bytearray()
        self.commands = []
        self.check_ready_count = 0
        self.pin_valid = False
        self.ringing = False
        self.call_established = False
        self.initiated_invalid_call = False
        self.initiated_valid_call = False
        self.audible_ring = False
        self.usbnet_ecm = False

    def read_from_modem(self, size):
        data = bytes(self.output[:size])
        del self.output[:size]
        return data

    def send_command_to_modem(self, command):
        self.commands.append(command)
        self._handle(command)

    def _sends(self, text):
        self.output += text.encode()

    def timeout(self):
        if self.initiated_invalid_call:
            self._sends("NO CARRIER\r\n")
            self.initiated_invalid_call = False
        if self.initiated_valid_call:
            self.initiated_valid_call = False
            self.call_established = True
        if self.ringing:
            self._sends("RING\r\n")

    def _handle(self, line):
        if line == "remote: ring":
            self.ringing = True
        if line == "remote: hangup":
            self.ringing = False
            self._sends("NO CARRIER\r\n")
            self.call_established = False
        if line == "AT":
            self.check_ready_count += 1
            if self.check_ready_count > 3:
                self._sends("OK\r\n")
        if line == "ATE0":
            self._sends("OK\r\n")
        if line == 'AT+QCFG="urc/ri/smsincoming"':
            self._sends('+QCFG: "urc/ri/smsincoming",pulse,120,1\r\n')
            self._sends("OK\r\n")
        if line == 'AT+QCFG="usbnet"':
            if self.usbnet_ecm:
                self._sends('+QCFG: "usbnet",1\r\n')
            else:
                self._sends('+QCFG: "usbnet",0\r\n')
            self._sends("OK\r\n")
        if line == 'AT+QCFG="usbnet",1':
            self.usbnet_ecm = True
            self._sends("OK\r\n")
        if line == "AT+CFUN=1,1":
            self._sends("OK\r\n")
            self._sends("RDY\r\n")
        if line == "AT+CPIN=4321":
            self._sends("+CME ERROR: 16\r\n")
        if line == "AT+CPIN?":
            if self.pin_valid:
                self._sends("+CPIN: READY\r\n")
            else:
                self._sends("+CPIN: SIM PIN\r\n")
            self._sends("OK\r\n")
        if line == "AT+QPINC?":
            self._sends('+QPINC: "SC",2,10\r\n')
            self._sends('+QPINC: "P2",3,10\r\n')
            self._sends("OK\r\n")
        if line == "AT+CPIN=1234":
            self._sends("OK\r\n")
            self._sends("+CPIN: READY\r\n")
            self._sends("+QUSIM: 1\r\n")
            self._sends("+QIND: SMS DONE\r\n")
            self._sends("+QIND: PB DONE\r\n")
        if line == "AT+CLCC":
            if self.initiated_valid_call:
                self._sends('+CLCC: 1,1,0,1,0,"",128\r\n')
                self._sends('+CLCC: 2,0,3,0,0,"+49123123123",129\r\n')
                self._sends("OK\r\n")
            elif self.initiated_invalid_call:
                self._sends('+CLCC: 1,1,0,1,0,"",128\r\n')
                self._sends('+CLCC: 2,0,3,0,0,"03519999",129\r\n')
                self._sends("OK\r\n")
            elif not self.ringing and not self.call_established:
                self._sends('+CLCC: 1,1,0,1,0,"",128\r\n')
                self._sends("OK\r\n")
            elif self.ringing:
                self._sends('+CLCC: 1,1,0,1,0,"",128\r\n')
                self._sends('+CLCC: 2,1,4,0,0,"+49123123123",145\r\n')
                self._sends("OK\r\n")
            elif self.call_established:
                self._sends('+CLCC: 1,1,0,1,0,"",128\r\n')
                self._sends('+CLCC: 2,1,0,0,0,"+49123123123",145\r\n')
                self._sends("OK\r\n")
        if line == "ATD03519999;":
            self._sends("OK\r\n")
            self.initiated_invalid_call = True
        if line == "ATD+49123123123;":
            self._sends("OK\r\n")
            self.initiated_valid_call = True
        if line == "ATA":
            if self.ringing:
                self._sends("OK\r\n")
                self.call_established = True
                self.ringing = False
            else:
                self._sends("NO CARRIER\r\n")
        if line == "ATH":
            self._sends("OK\r\n")
            self.call_established = False
        if line == "AT+QPOWD":
            self._sends("POWERED DOWN\r\n")
        if line == 'AT+QLDTMF=5,"4,3,6,#,D,3",1':
            self.audible_ring = True
            self._sends("OK\r\n")


def settle(driver, modem, config, limit=300):
    for _ in range(limit):
        before = len(modem.commands)
        driver.apply(config, modem, modem)
        if modem.output:
            continue
        if driver.response_outstanding():
            if len(modem.commands) == before:
                driver.cancel_command()  # timeout
            continue
        if len(modem.commands) == before:
            return
    raise AssertionError("driver did not settle")


def report(driver):
    element = ET.Element("state")
    driver.generate_report(element)
    return element


def cfg(text):
    return ET.fromstring(text)


@pytest.fixture
def ready():
    driver = Driver(256)
    modem = FakeModem()
    settle(driver, modem, cfg('<config pin="1234"/>'))
    return driver, modem


def test_initial_state():
    driver = Driver(256)
    assert not driver.response_outstanding()
    assert driver.command_timeout_ms() == 600
    assert driver.busy_count() == 0
    assert not driver.outbound()
    assert report(driver).attrib == {}


def test_pin_accepted(ready):
    driver, modem = ready
    state = report(driver)
    assert state.get("sim") == "yes"
    assert state.get("pin") == "ok"
    assert modem.commands.count("AT") >= 4
    assert "ATE0" in modem.commands
    assert "AT+CPIN=1234" in modem.commands
    assert state.find("call") is None


def test_wrong_pin_reports_remaining_attempts():
    driver = Driver(256)
    modem = FakeModem()
    settle(driver, modem, cfg('<config pin="4321"/>'))
    state = report(driver)
    assert state.get("sim") == "yes"
    assert state.get("pin") == "required"
    assert state.get("pin_remaining_attempts") == "2,10"
    assert modem.commands.count("AT+CPIN=4321") == 1


def test_usbnet_configured_with_reboot():
    driver = Driver(256)
    entry = driver.qcfg.add_entry("usbnet", "1")
    modem = FakeModem()
    settle(driver, modem, cfg('<config pin="1234"/>'))
    assert modem.usbnet_ecm
    assert 'AT+QCFG="usbnet",1' in modem.commands
    assert "AT+CFUN=1,1" in modem.commands
    assert entry.state is EntryState.CONFIRMED
    assert report(driver).get("pin") == "ok"


def test_incoming_call_accept_and_reject(ready):
    driver, modem = ready
    driver.send_command_to_modem(modem, "remote: ring")
    assert driver.response_outstanding()
    modem.timeout()
    settle(driver, modem, cfg('<config pin="1234"/>'))
    state = report(driver)
    assert state.get("ring_count") == "1"
    assert state.find("call").get("number") == "+49123123123"
    assert state.find("call").get("state") == "incoming"

    settle(driver, modem, cfg('<config pin="1234"><call number="+49123123123" '
                              'state="accepted"/></config>'))
    assert "ATA" in modem.commands
    assert report(driver).find("call").get("state") == "active"

    settle(driver, modem, cfg('<config pin="1234"><call number="+49123123123" '
                              'state="rejected"/></config>'))
    assert "ATH" in modem.commands
    assert not modem.call_established
    assert report(driver).find("call") is None


def test_outbound_call_to_valid_number(ready):
    driver, modem = ready
    config = cfg('<config pin="1234"><call number="+49123123123"/></config>')
    settle(driver, modem, config)
    assert "ATD+49123123123;" in modem.commands
    assert driver.outbound()
    call = report(driver).find("call")
    assert call.get("number") == "+49123123123"
    assert call.get("state") == "alerting"

    modem.timeout()
    driver.invalidate_call_list()
    assert not driver.status.clcc_up_to_date
    settle(driver, modem, config)
    assert report(driver).find("call").get("state") == "active"


def test_outbound_call_rejected(ready):
    driver, modem = ready
    config = cfg('<config pin="1234"><call number="03519999"/></config>')
    settle(driver, modem, config)
    assert report(driver).find("call").get("state") == "alerting"

    modem.timeout()
    settle(driver, modem, config)
    state = report(driver)
    assert state.get("no_carrier_count") == "1"
    assert state.find("call").get("state") == "rejected"
    assert modem.commands.count("ATD03519999;") == 1

    settle(driver, modem, cfg('<config pin="1234"/>'))
    assert not driver.outbound()
    assert modem.commands[-2:].count("ATH") + modem.commands.count("ATH") >= 1
    assert report(driver).find("call") is None


def test_ring_command_played(ready):
    driver, modem = ready
    config = cfg('<config pin="1234">'
                 '<ring>AT+QLDTMF=5,"4,3,6,#,D,3",1</ring></config>')
    settle(driver, modem, config)
    assert not modem.audible_ring
    driver.send_command_to_modem(modem, "remote: ring")
    modem.timeout()
    settle(driver, modem, config)
    assert modem.audible_ring
    assert modem.commands.count('AT+QLDTMF=5,"4,3,6,#,D,3",1') == 1


def test_power_down(ready):
    driver, modem = ready
    config = cfg('<config pin="1234" power="off"/>')
    driver.apply(config, modem, modem)
    assert modem.commands[-1] == "AT+QPOWD"
    assert driver.powering_down()
    assert not driver.powered_down()
    driver.apply(config, modem, modem)
    assert driver.powered_down()
    assert not driver.powering_down()


def test_cancel_command_resets_at_ok(ready):
    driver, modem = ready
    driver.send_command_to_modem(modem, "remote: hangup")
    assert driver.response_outstanding()
    driver.cancel_command()
    assert not driver.response_outstanding()
    assert not driver.status.at_ok