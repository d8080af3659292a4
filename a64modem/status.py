"""Modem state as learned from the lines it sends."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from a64modem.line import Line, comma_separated_element
from a64modem.qcfg import EntryState, Qcfg

_log = logging.getLogger(__name__)

AT_CHECK_READY = "AT"
AT_DISABLE_ECHO = "ATE0"
AT_REQUEST_CALL_LIST = "AT+CLCC"
AT_ACCEPT_CALL = "ATA"
AT_HANG_UP = "ATH"
AT_POWER_DOWN = "AT+QPOWD"
AT_REBOOT = "AT+CFUN=1,1"
AT_QCFG_PREFIX = "AT+QCFG="

_CPIN_PREFIX = "+CPIN: "
_CME_ERROR_PREFIX = "+CME ERROR: "
_SIM_PIN_COUNT_PREFIX = '+QPINC: "SC",'
_QCFG_RESPONSE_PREFIX = "+QCFG: "
_CLCC_PREFIX = "+CLCC: "


class CallStat(enum.Enum):
    UNSUPPORTED = "unsupported"
    ACTIVE = "active"
    DIALING = "dialing"
    INCOMING = "incoming"
    ALERTING = "alerting"


_STAT_FIELDS = {
    "0": CallStat.ACTIVE,
    "2": CallStat.DIALING,
    "3": CallStat.ALERTING,
    "4": CallStat.INCOMING,
}


@dataclass(frozen=True)
class CurrentCall:
    """A voice call as listed in the response to the call-list request."""

    number: str
    stat: CallStat

    @staticmethod
    def parse(line: Line | str) -> CurrentCall | None:
        """Return the voice call described by a '+CLCC:' line, if any."""
        if not isinstance(line, Line):
            line = Line(line)
        value = line.value_after(_CLCC_PREFIX)
        if value is None:
            return None
        voice = comma_separated_element(3, value) == "0"
        stat = _STAT_FIELDS.get(comma_separated_element(2, value), CallStat.UNSUPPORTED)
        if not voice or stat is CallStat.UNSUPPORTED:
            return None
        return CurrentCall(comma_separated_element(5, value), stat)

    @property
    def active(self) -> bool:
        return self.stat is CallStat.ACTIVE

    @property
    def outbound(self) -> bool:
        return self.stat is CallStat.DIALING

    @property
    def alerting(self) -> bool:
        return self.stat is CallStat.ALERTING

    @property
    def incoming(self) -> bool:
        return self.stat is CallStat.INCOMING


class Status:
    """Tracks the modem's state and the outcome of the pending command."""

    def __init__(self, qcfg: Qcfg) -> None:
        self._qcfg = qcfg
        self.verbose = False
        self._version = 0
        self._pending_command: str | None = None

        self.at_ok = False
        self.echo_disabled = False
        self.powered_down = False
        self.ok = False
        self.rdy = True  # modem may be RDY from a previous boot
        self.error = False
        self.clcc_up_to_date = False

        self.ring_count = 0
        self.incorrect_password_count = 0
        self.no_carrier_count = 0
        self.busy_count = 0

        self.cpin: str | None = None
        self.cme_error: str | None = None
        self.sim_pin_count: str | None = None
        self.current_call: CurrentCall | None = None

    @property
    def version(self) -> int:
        """Counter incremented on every observed state change."""
        return self._version

    @property
    def pending_command(self) -> str | None:
        """Command awaiting its response, if any."""
        return self._pending_command

    def _changed(self) -> None:
        self._version += 1

    def _clcc_out_of_date(self) -> None:
        self.clcc_up_to_date = False
        self.current_call = None

    def _reset_command(self) -> None:
        self._pending_command = None
        self.ok = False
        self.error = False
        self.cme_error = None
        self._changed()

    def _attr_value(self, line: Line, prefix: str, current: str | None) -> str | None:
        value = line.value_after(prefix)
        if value is None:
            return current
        self._changed()
        return value

    def _flag(self, line: Line, text: str, current: bool) -> bool:
        if line == text:
            self._changed()
            return True
        return current

    def _count(self, line: Line, text: str, current: int) -> int:
        if line == text:
            self._changed()
            return current + 1
        return current

    def _apply_qcfg_response(self, line: Line) -> None:
        response = line.value_after(_QCFG_RESPONSE_PREFIX)
        if response is not None:
            name = comma_separated_element(0, response)
            # skip the quoted name and the comma following it
            if len(response) >= len(name) + 2:
                value = response[len(name) + 3:]
                entry = self._qcfg.entry(name)
                if entry is not None:
                    entry.state = (EntryState.CONFIRMED if entry.value == value
                                   else EntryState.MISMATCH)
                    self._changed()

        command = self._pending_command
        if line == "OK" and command is not None and command.startswith(AT_QCFG_PREFIX):
            attr = command[len(AT_QCFG_PREFIX):]
            # an assignment features at least one comma
            if not comma_separated_element(1, attr):
                return
            entry = self._qcfg.entry(comma_separated_element(0, attr))
            if entry is not None:
                entry.state = EntryState.MODIFIED
                self._changed()

    def apply_line(self, line: Line | str) -> None:
        """Update the state from one line sent by the modem."""
        if not isinstance(line, Line):
            line = Line(line)

        if self.verbose:
            _log.info("modem: '%s'", line)

        # whenever the modem sends anything, it cannot be powered down
        self.powered_down = False

        self.cpin = self._attr_value(line, _CPIN_PREFIX, self.cpin)
        self.cme_error = self._attr_value(line, _CME_ERROR_PREFIX, self.cme_error)
        self.sim_pin_count = self._attr_value(line, _SIM_PIN_COUNT_PREFIX, self.sim_pin_count)

        self._apply_qcfg_response(line)

        call = CurrentCall.parse(line)
        if call is not None:
            self.current_call = call
            self._changed()

        self.powered_down = self._flag(line, "POWERED DOWN", self.powered_down)
        self.ok = self._flag(line, "OK", self.ok)
        self.error = self._flag(line, "ERROR", self.error)
        self.rdy = self._flag(line, "RDY", self.rdy)

        self.ring_count = self._count(line, "RING", self.ring_count)
        self.no_carrier_count = self._count(line, "NO CARRIER", self.no_carrier_count)
        for busy in ("+CME ERROR: 10", "+CME ERROR: 14", "ERROR"):
            self.busy_count = self._count(line, busy, self.busy_count)

        # discard outdated pin info
        if line == "+CME ERROR: 16":
            self.cpin = None

        # discard last known call list
        if line == "NO CARRIER" or line == "RING":
            self._clcc_out_of_date()

        command = self._pending_command
        if command == AT_CHECK_READY:
            self.at_ok = self._flag(line, "OK", self.at_ok)
        if command == AT_DISABLE_ECHO:
            self.echo_disabled = self._flag(line, "OK", self.echo_disabled)

        # the call-list request does not always end with 'OK'
        if self.current_call is not None:
            self.clcc_up_to_date = True

        if line == "OK" and command is not None:
            if command == AT_REBOOT:
                self.at_ok = False
                self.echo_disabled = False
                self.rdy = False
                self.cpin = None
                self.cme_error = None
                self.sim_pin_count = None
                self._clcc_out_of_date()
                self._qcfg.invalidate_after_reboot()

            if command == AT_REQUEST_CALL_LIST:
                self.clcc_up_to_date = True

            if command.startswith("ATD") or command in (AT_HANG_UP, AT_ACCEPT_CALL):
                self._clcc_out_of_date()

        if line == "OK" or line == "ERROR" or line.starts_with("+CME ERROR:"):
            self._pending_command = None

    def command_submitted(self, command: str) -> None:
        """Record that ``command`` was sent to the modem."""
        self._reset_command()
        self._pending_command = command
        if command == AT_REQUEST_CALL_LIST:
            self._clcc_out_of_date()

    def command_canceled(self) -> None:
        """Forget the pending command and its partial outcome."""
        self._reset_command()