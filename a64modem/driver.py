"""AT-protocol driver combining response parsing, status and control."""

from __future__ import annotations

import logging
from xml.etree.ElementTree import Element, SubElement

from a64modem.control import CommandChannel, Control
from a64modem.qcfg import Qcfg
from a64modem.read_buffer import FillResult, ReadBuffer, ResponseChannel
from a64modem.status import CallStat, CurrentCall, Status

_log = logging.getLogger(__name__)

_STATE_NAMES = {
    CallStat.ACTIVE: "active",
    CallStat.DIALING: "outbound",
    CallStat.INCOMING: "incoming",
    CallStat.ALERTING: "alerting",
}


class _CommandFilter:
    """Records every command sent to the modem in the status."""

    def __init__(self, channel: CommandChannel, status: Status, verbose: bool) -> None:
        self._channel = channel
        self._status = status
        self._verbose = verbose

    def send_command_to_modem(self, command: str) -> None:
        if self._verbose:
            _log.info("submit AT command: %s", command)
        self._channel.send_command_to_modem(command)
        self._status.command_submitted(command)


class Driver:
    """Drives a modem over the AT protocol according to a config node."""

    def __init__(self, max_line_len: int = 256) -> None:
        self.qcfg = Qcfg()
        self.status = Status(self.qcfg)
        self._verbose = False
        self._read_buffer = ReadBuffer(max_line_len)
        self._control = Control(self.status)
        self._current_call: CurrentCall | None = None

    @property
    def verbose(self) -> bool:
        return self._verbose

    @verbose.setter
    def verbose(self, value: bool) -> None:
        self._verbose = bool(value)
        self.status.verbose = self._verbose

    def apply(self, config: Element, command_channel: CommandChannel,
              response_channel: ResponseChannel) -> None:
        """Process all modem output, then issue the next command if due."""
        orig_no_carrier_count = self.status.no_carrier_count

        while self._read_buffer.fill(response_channel) is FillResult.DATA:
            for line in self._read_buffer.consume_lines():
                self.status.apply_line(line)

        command_filter = _CommandFilter(command_channel, self.status, self._verbose)
        self._control.apply_config(config, self.qcfg, command_filter, self._verbose)

        # invalidate current-call information on disconnect
        if orig_no_carrier_count != self.status.no_carrier_count:
            self._current_call = None

        # import current-call information from the updated call list
        if self.status.clcc_up_to_date:
            self._current_call = self.status.current_call

    def _gen_current_call(self, element: Element) -> None:
        call = self._current_call
        if call is None or call.stat is CallStat.UNSUPPORTED:
            return
        node = SubElement(element, "call")
        node.set("number", call.number)
        node.set("state", _STATE_NAMES.get(call.stat, "unsupported"))

    def generate_report(self, element: Element) -> None:
        """Describe the modem state as attributes and sub nodes of ``element``."""
        status = self.status
        if status.ring_count > 0:
            element.set("ring_count", str(status.ring_count))

        if status.no_carrier_count > 0:
            element.set("no_carrier_count", str(status.no_carrier_count))

        if status.cpin is not None:
            element.set("sim", "yes")
            if status.cpin == "READY":
                element.set("pin", "ok")
            elif status.cpin == "SIM PIN":
                element.set("pin", "required")
                if status.sim_pin_count is not None:
                    element.set("pin_remaining_attempts", status.sim_pin_count)

        # an initiated call may not be represented in the call list
        if self._control.outbound():
            self._control.gen_outbound_call(element)
        else:
            self._gen_current_call(element)

    def send_command_to_modem(self, channel: CommandChannel, command: str) -> None:
        """Send ``command`` while registering it as the pending command."""
        _CommandFilter(channel, self.status, self._verbose).send_command_to_modem(command)

    def outbound(self) -> bool:
        """True while an outbound call is in progress and must be polled."""
        return self._control.outbound()

    def invalidate_call_list(self) -> None:
        """Force the call list to be requested again."""
        self.status.clcc_up_to_date = False

    def cancel_command(self) -> None:
        """Give up on the current command, the response to a timeout."""
        command = self.status.pending_command
        if command is not None:
            if self._verbose:
                _log.info("cancel AT command: %s", command)
            self._control.cancel_command()
            self.status.command_canceled()

        # the modem may still be busy, re-establish a consistent state via 'AT'
        self.status.at_ok = False

    def command_timeout_ms(self) -> int:
        return self._control.command_timeout_ms()

    def response_outstanding(self) -> bool:
        """True if a response to an AT command is expected."""
        return self.status.pending_command is not None

    def powering_down(self) -> bool:
        return self._control.power_down_scheduled() and not self.status.powered_down

    def powered_down(self) -> bool:
        return self.status.powered_down

    def busy_count(self) -> int:
        return self.status.busy_count