"""Decides which AT command to issue next, based on config and modem status."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Protocol
from xml.etree.ElementTree import Element, SubElement

from a64modem.qcfg import Qcfg
from a64modem.status import (
    AT_ACCEPT_CALL,
    AT_CHECK_READY,
    AT_DISABLE_ECHO,
    AT_HANG_UP,
    AT_POWER_DOWN,
    AT_QCFG_PREFIX,
    AT_REBOOT,
    AT_REQUEST_CALL_LIST,
    CallStat,
    CurrentCall,
    Status,
)

_log = logging.getLogger(__name__)

_HANG_UP_TIMEOUT_MS = 90 * 1000  # according to the Quectel documentation
_DEFAULT_TIMEOUT_MS = 600


class CommandChannel(Protocol):
    """Destination of AT commands."""

    def send_command_to_modem(self, command: str) -> None:
        """Transmit ``command`` to the modem."""
        ...


class _OpState(enum.Enum):
    PENDING = 0
    SUBMITTED = 1
    TIMED_OUT = 2


@dataclass
class _Operation:
    command: str
    state: _OpState = _OpState.PENDING


# Operation slots in the order in which pending operations get submitted
_SLOTS = (
    "check_ready",
    "disable_echo",
    "power_down",
    "ring",
    "set_pin",
    "request_pin_state",
    "request_pin_count",
    "reboot",
    "query_qcfg",
    "assign_qcfg",
    "hang_up",
    "request_call_list",
    "initiate_call",
    "accept_call",
)


@dataclass
class _OutboundInfo:
    call: CurrentCall
    no_carrier_count: int

    def state_attr(self) -> str | None:
        if self.call.active:
            return "active"
        if self.call.alerting:
            return "alerting"
        if self.call.outbound:
            return "outbound"
        return None


class Control:
    """Keeps at most one AT command in flight, derived from the wanted config."""

    def __init__(self, status: Status) -> None:
        self._status = status
        self._ops: dict[str, _Operation | None] = dict.fromkeys(_SLOTS)
        self._current_pin = ""
        self._current_ring_count = 0
        self._outbound_info: _OutboundInfo | None = None

    # operation slots

    def _construct(self, slot: str, command: str) -> None:
        self._ops[slot] = _Operation(command)

    def _destruct(self, slot: str) -> None:
        self._ops[slot] = None

    def _constructed(self, slot: str) -> bool:
        return self._ops[slot] is not None

    def _submitted(self, slot: str) -> bool:
        op = self._ops[slot]
        return op is not None and op.state is _OpState.SUBMITTED

    def _conditional(self, slot: str, condition: bool, command: str) -> None:
        if condition == self._constructed(slot):
            return
        if condition:
            self._construct(slot, command)
        else:
            self._destruct(slot)

    def _cancel_all_operations(self) -> None:
        for slot in _SLOTS:
            self._ops[slot] = None

    def _log_pending_operations(self) -> None:
        pending = [op for op in self._ops.values() if op is not None]
        if not pending:
            _log.info("no pending AT commands")
            return
        _log.info("pending AT commands:")
        for op in pending:
            _log.info("  command: %s state=%s", op.command, op.state.value)

    def _any_operation_in_flight(self) -> bool:
        return any(self._submitted(slot) for slot in _SLOTS)

    def _submit_one_pending_operation(self, channel: CommandChannel) -> None:
        for op in self._ops.values():
            if op is not None and op.state is _OpState.PENDING:
                channel.send_command_to_modem(op.command)
                op.state = _OpState.SUBMITTED
                return

    def _complete_operation(self) -> None:
        if not self._status.ok:
            return
        for slot in _SLOTS:
            if self._submitted(slot):
                self._destruct(slot)
                return

    # call bookkeeping

    def _outbound(self, number: str) -> bool:
        return self._outbound_info is not None and self._outbound_info.call.number == number

    def _rejected(self, number: str) -> bool:
        info = self._outbound_info
        return (info is not None
                and info.call.number == number
                and info.no_carrier_count != self._status.no_carrier_count)

    def _ready_for_telephony(self) -> bool:
        return self._status.cpin == "READY"

    # applying the configuration

    def _apply_pin(self, pin: str) -> None:
        status = self._status

        def failed(slot: str) -> bool:
            return self._submitted(slot) and status.cme_error is not None

        if failed("request_pin_state"):
            self._destruct("request_pin_state")

        if failed("set_pin"):
            self._destruct("set_pin")
            if not self._constructed("request_pin_count"):
                self._construct("request_pin_count", "AT+QPINC?")
            return

        # pin status not yet known
        if status.cpin is None:
            if not self._constructed("request_pin_state"):
                self._construct("request_pin_state", "AT+CPIN?")
            return

        # modem does not ask for a SIM PIN
        if status.cpin != "SIM PIN":
            return

        if not pin or pin == self._current_pin:
            return

        self._current_pin = pin
        self._construct("set_pin", f"AT+CPIN={pin}")

    def _keep_call_list_up_to_date(self) -> None:
        if not self._ready_for_telephony():
            return
        if self._status.clcc_up_to_date:
            self._destruct("request_call_list")
            return
        if not self._constructed("request_call_list"):
            self._construct("request_call_list", AT_REQUEST_CALL_LIST)

    @staticmethod
    def _call_has_state(call: Element, expected: str) -> bool:
        return call.get("state", "") == expected

    def _apply_hang_up(self, config: Element) -> None:
        # hang up in progress
        if self._constructed("hang_up"):
            return

        def call_node_rejected() -> bool:
            call = config.find("call")
            return call is not None and self._call_has_state(call, "rejected")

        # an initiated call got cancelled
        if self._outbound_info is not None:
            vanished = config.find("call") is None
            if vanished or call_node_rejected():
                self._outbound_info = None
                self._construct("hang_up", AT_HANG_UP)

        # reject incoming or active call
        current = self._status.current_call
        if current is not None and call_node_rejected():
            if current.incoming or current.active:
                self._construct("hang_up", AT_HANG_UP)

    def _apply_call(self, call: Element) -> None:
        status = self._status
        if not self._ready_for_telephony():
            return

        # initiate or accept calls only with up-to-date current-call info
        if not status.clcc_up_to_date:
            return

        number = call.get("number", "")
        accepted = "state" not in call.attrib or self._call_has_state(call, "accepted")

        current = status.current_call
        if current is not None:
            # keep note once an outbound call is featured in the call list
            if self._outbound_info is not None:
                self._outbound_info.call = current

            if current.incoming and accepted and not self._constructed("accept_call"):
                self._construct("accept_call", AT_ACCEPT_CALL)

        # number in config changed, issue new call
        if self._outbound_info is not None and self._outbound_info.call.number != number:
            self._outbound_info = None

        idle = current is None
        if idle and accepted and not self._rejected(number) and not self._outbound(number):
            if not self._constructed("initiate_call"):
                self._construct("initiate_call", f"ATD{number};")
                self._outbound_info = _OutboundInfo(
                    call=CurrentCall(number, CallStat.DIALING),
                    no_carrier_count=status.no_carrier_count,
                )

    def _apply_power(self, power: str) -> None:
        status = self._status
        # retry a power-down command that failed during modem startup
        if self._submitted("power_down") and status.error:
            self._destruct("power_down")

        if power == "off" and not status.powered_down and not self._constructed("power_down"):
            self._construct("power_down", AT_POWER_DOWN)

    def _apply_ring(self, ring: Element) -> None:
        if self._current_ring_count != self._status.ring_count:
            self._current_ring_count = self._status.ring_count
            self._construct("ring", ring.text or "")

    def _apply_qcfg(self, qcfg: Qcfg) -> None:
        status = self._status

        def failed(slot: str) -> bool:
            return self._submitted(slot) and status.error

        if failed("query_qcfg"):
            self._destruct("query_qcfg")

        # query current modem configuration
        if not self._constructed("query_qcfg"):
            entry = qcfg.any_unknown_entry()
            if entry is not None:
                self._construct("query_qcfg", f'{AT_QCFG_PREFIX}"{entry.name}"')

        # assign mismatching configuration values
        if not self._constructed("assign_qcfg"):
            entry = qcfg.any_mismatching_entry()
            if entry is not None:
                self._construct("assign_qcfg",
                                f'{AT_QCFG_PREFIX}"{entry.name}",{entry.value}')

        # reboot modem to make changed settings effective
        if not self._constructed("reboot") and qcfg.reboot_needed():
            self._cancel_all_operations()
            self._construct("reboot", AT_REBOOT)
            self._current_pin = ""

    def _apply_config(self, config: Element, qcfg: Qcfg) -> None:
        status = self._status

        # don't issue AT commands during modem reboot
        if self._constructed("reboot") or not status.rdy:
            return

        # disable echo to avoid mixing up URC content with commands
        self._conditional("disable_echo",
                          not status.echo_disabled and status.at_ok, AT_DISABLE_ECHO)

        if not status.echo_disabled:
            return

        self._apply_qcfg(qcfg)
        self._apply_pin(config.get("pin", ""))
        self._apply_power(config.get("power", ""))
        self._apply_hang_up(config)
        self._keep_call_list_up_to_date()

        call = config.find("call")
        if call is not None:
            self._apply_call(call)

        ring = config.find("ring")
        if ring is not None:
            self._apply_ring(ring)

    # public interface

    def apply_config(self, config: Element, qcfg: Qcfg,
                     channel: CommandChannel, verbose: bool = False) -> None:
        """Update the operations from ``config`` and submit the next command."""
        self._complete_operation()

        # issue 'AT' until the modem responds with 'OK'
        self._conditional("check_ready", not self._status.at_ok, AT_CHECK_READY)

        self._apply_config(config, qcfg)

        if not self._any_operation_in_flight():
            self._submit_one_pending_operation(channel)

        if verbose:
            self._log_pending_operations()

    def cancel_command(self) -> None:
        """Drop every submitted operation."""
        for slot in _SLOTS:
            if self._submitted(slot):
                self._destruct(slot)

    def command_timeout_ms(self) -> int:
        """Timeout for the command currently in flight."""
        if self._submitted("hang_up"):
            return _HANG_UP_TIMEOUT_MS
        return _DEFAULT_TIMEOUT_MS

    def outbound(self) -> bool:
        """True while an initiated call is being tracked."""
        return self._outbound_info is not None

    def power_down_scheduled(self) -> bool:
        return self._constructed("power_down")

    def gen_outbound_call(self, parent: Element) -> Element | None:
        """Add a 'call' node describing the initiated call to ``parent``."""
        info = self._outbound_info
        if info is None:
            return None
        node = SubElement(parent, "call")
        node.set("number", info.call.number)
        if self._rejected(info.call.number):
            node.set("state", "rejected")
            return node
        state = info.state_attr()
        if state is not None:
            node.set("state", state)
        return node