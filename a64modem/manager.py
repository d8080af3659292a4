"""Modem manager combining the power sequence with the AT-protocol driver."""

from __future__ import annotations

import enum
import logging
from typing import Callable, Optional, Protocol
from xml.etree.ElementTree import Element, tostring

from a64modem.driver import Driver
from a64modem.power import Power

_log = logging.getLogger(__name__)

MAX_LINE_LEN = 256

_POLL_INTERVAL_US = 500 * 1000
_AT_SHUTDOWN_TIMEOUT_S = 25
_GRACE_DELAY_MS = 1000

_TRUE = frozenset({"yes", "true", "on", "1"})
_FALSE = frozenset({"no", "false", "off", "0"})


class _Clock(Protocol):
    def elapsed_ms(self) -> int:
        ...

    def trigger_once(self, us: int) -> None:
        """Arrange for ``handle_timer`` to be called after ``us`` microseconds."""
        ...


class _Modem(Protocol):
    def send_command_to_modem(self, command: str) -> None:
        ...

    def read_from_modem(self, size: int) -> bytes:
        ...


def _bool_attr(node: Element, name: str, default: bool) -> bool:
    value = node.get(name)
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return default


class ModemState(enum.Enum):
    UNKNOWN = "unknown"
    POWERING_ON = "powering_on"        # power driver in progress
    AT_PROTOCOL = "at_protocol"
    AT_BUSY = "at_busy"
    AT_SHUTDOWN = "at_shutdown"        # AT driver in progress
    AT_GRACE_DELAY = "at_grace_delay"  # wait 1 sec after AT shutdown
    POWERING_OFF = "powering_off"      # power driver in progress
    POWER_OFF = "power_off"
    POWER_ON = "power_on"              # entered only without AT driver


_POWER_ATTR = {
    ModemState.POWERING_ON: "starting up",
    ModemState.POWER_ON: "on",
    ModemState.AT_PROTOCOL: "on",
    ModemState.AT_BUSY: "on",
    ModemState.AT_SHUTDOWN: "shutting down",
    ModemState.AT_GRACE_DELAY: "shutting down",
    ModemState.POWERING_OFF: "shutting down",
    ModemState.POWER_OFF: "off",
}


class ModemManager:
    """Applies a modem config node and reports the resulting state."""

    def __init__(self, power: Power, clock: _Clock,
                 modem_factory: Callable[[], _Modem],
                 reporter: Optional[Callable[[Element], None]] = None) -> None:
        self._power = power
        self._clock = clock
        self._modem_factory = modem_factory
        self._reporter = reporter

        self._config = Element("config")
        self._verbose = False
        self._state = ModemState.UNKNOWN

        self._startup_triggered_ms = 0
        self._shutdown_triggered_ms = 0
        self._at_powered_down_ms = 0
        self._last_at_progress_ms = 0

        self._driver: Driver | None = None
        self._modem: _Modem | None = None
        self._timer_scheduled = False

    @property
    def state(self) -> ModemState:
        return self._state

    @property
    def driver(self) -> Driver | None:
        """The AT-protocol driver while the modem is driven via AT commands."""
        return self._driver

    # helpers

    def _now(self) -> int:
        return self._clock.elapsed_ms()

    def _seconds_since(self, back_then_ms: int) -> int:
        return (self._now() - back_then_ms) // 1000

    def _starting_up(self) -> bool:
        return self._state is ModemState.POWERING_ON

    def _shutting_down(self) -> bool:
        return self._state in (ModemState.AT_SHUTDOWN, ModemState.AT_GRACE_DELAY,
                               ModemState.POWERING_OFF)

    def _drive_at_protocol(self) -> bool:
        return self._state in (ModemState.AT_PROTOCOL, ModemState.AT_SHUTDOWN)

    def _at_response_outstanding(self) -> bool:
        return self._driver is not None and self._driver.response_outstanding()

    def _outbound_call(self) -> bool:
        return self._driver is not None and self._driver.outbound()

    def _at_version(self) -> int:
        return self._driver.status.version if self._driver is not None else 0

    def _busy_count(self) -> int:
        return self._driver.busy_count() if self._driver is not None else 0

    def _apply_driver(self, config: Element) -> None:
        assert self._driver is not None and self._modem is not None
        self._driver.apply(config, self._modem, self._modem)

    def _construct_driver(self) -> None:
        self._modem = self._modem_factory()
        driver = Driver(MAX_LINE_LEN)
        driver.qcfg.add_entry("usbnet", "1")
        driver.verbose = self._verbose
        self._driver = driver

    def _destruct_driver(self) -> None:
        self._driver = None
        self._modem = None

    def _trigger_timer(self) -> None:
        if not self._timer_scheduled:
            self._clock.trigger_once(_POLL_INTERVAL_US)
        self._timer_scheduled = True

    def _update_state_report(self) -> None:
        if self._reporter is not None:
            self._reporter(self.generate_report())

    # state machine

    def _apply_power_state(self, config: Element) -> None:
        use_at_protocol = _bool_attr(config, "at_protocol", True)
        state = self._state

        if state in (ModemState.POWER_OFF, ModemState.UNKNOWN):
            if _bool_attr(config, "power", False):
                self._startup_triggered_ms = self._now()
                self._state = ModemState.POWERING_ON

        elif state is ModemState.POWER_ON:
            if not _bool_attr(config, "power", True):
                self._shutdown_triggered_ms = self._now()
                self._state = ModemState.POWERING_OFF

        elif state in (ModemState.POWERING_ON, ModemState.AT_PROTOCOL, ModemState.AT_BUSY):
            if state is ModemState.POWERING_ON:
                self._power.power_enabled(True)  # drive power-up sequence
                if self._power.on():
                    if use_at_protocol:
                        self._construct_driver()
                        self._state = ModemState.AT_PROTOCOL
                        self._apply_driver(config)
                    else:
                        self._state = ModemState.POWER_ON

            # power-off may be requested during startup as well
            if not _bool_attr(config, "power", True):
                self._shutdown_triggered_ms = self._now()
                if self._driver is not None:
                    if self._driver.powering_down() or self._driver.powered_down():
                        self._state = ModemState.AT_SHUTDOWN
                else:
                    self._state = ModemState.POWERING_OFF

        elif state is ModemState.AT_SHUTDOWN:
            if self._driver is not None and self._driver.powered_down():
                self._destruct_driver()
                self._at_powered_down_ms = self._now()
                self._state = ModemState.AT_GRACE_DELAY

            # give up after getting no response to the AT shutdown request
            if self._seconds_since(self._shutdown_triggered_ms) > _AT_SHUTDOWN_TIMEOUT_S:
                _log.warning("polite AT shutdown timed out")
                self._state = ModemState.POWERING_OFF

        elif state is ModemState.AT_GRACE_DELAY:
            if self._now() - self._at_powered_down_ms >= _GRACE_DELAY_MS:
                self._state = ModemState.POWERING_OFF

        elif state is ModemState.POWERING_OFF:
            self._power.power_enabled(False)  # drive power-down sequence
            if self._power.off():
                self._state = ModemState.POWER_OFF

    # public interface

    def handle_config(self, config: Element) -> None:
        """Apply ``config`` until the power and AT-protocol states settle."""
        self._config = config
        self._verbose = _bool_attr(config, "verbose", False)

        if self._driver is not None:
            self._driver.verbose = self._verbose

        if self._verbose:
            _log.info("config: %s", tostring(config, encoding="unicode"))

        overall_progress = False
        orig_at_version = self._at_version()
        orig_busy_count = self._busy_count()

        def busy() -> bool:
            return (self._driver is not None
                    and not self._driver.powering_down()
                    and orig_busy_count != self._busy_count())

        # the power and AT-protocol state machines depend on each other
        while True:
            loop_power_state = self._power.state
            loop_at_version = self._at_version()

            self._apply_power_state(config)

            if self._driver is not None and self._drive_at_protocol():
                self._apply_driver(config)

            progress = (loop_power_state is not self._power.state
                        or loop_at_version != self._at_version())
            if not progress:
                break

            overall_progress = True
            if busy():
                break

        if busy():
            self._state = ModemState.AT_BUSY

        if orig_at_version != self._at_version():
            self._last_at_progress_ms = self._now()

        need_polling = (self._starting_up()
                        or self._shutting_down()
                        or self._outbound_call()
                        or self._state is ModemState.AT_BUSY
                        or self._at_response_outstanding())
        if need_polling:
            self._trigger_timer()

        if overall_progress or self._starting_up() or self._shutting_down():
            self._update_state_report()

    def handle_timer(self) -> None:
        """Poll the modem, cancel timed-out commands and re-apply the config."""
        self._timer_scheduled = False

        if self._state is ModemState.AT_BUSY:
            self._state = ModemState.AT_PROTOCOL

        # update call list while placing an outbound call
        if self._outbound_call():
            assert self._driver is not None
            self._driver.invalidate_call_list()

        # cancel timed-out command
        if self._at_response_outstanding():
            assert self._driver is not None
            duration_ms = self._now() - self._last_at_progress_ms
            if duration_ms > self._driver.command_timeout_ms():
                self._driver.cancel_command()

        self.handle_config(self._config)

    def generate_report(self) -> Element:
        """Return the 'state' report node describing the modem."""
        report = Element("state")

        if self._state is not ModemState.UNKNOWN:
            report.set("power", _POWER_ATTR.get(self._state, "unknown"))

        if self._starting_up():
            report.set("startup_seconds",
                       str(self._seconds_since(self._startup_triggered_ms)))

        if self._shutting_down():
            report.set("shutdown_seconds",
                       str(self._seconds_since(self._shutdown_triggered_ms)))

        if self._driver is not None:
            self._driver.generate_report(report)

        return report