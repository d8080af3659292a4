"""Low-level modem power control via GPIO pins."""

from __future__ import annotations

import enum
import logging
from typing import Protocol

_log = logging.getLogger(__name__)

_PWRKEY_PULSE_MS = 600  # power-key pulse must last at least 500 ms
_SETTLE_MS = 30


class Delayer(Protocol):
    """Something that can block for a number of milliseconds."""

    def msleep(self, ms: int) -> None:
        ...


class _ModemPins(Protocol):
    def status(self) -> bool:
        """Level of the modem's status pin, high while the modem is off."""
        ...

    def set(self, name: str, level: bool) -> None:
        """Drive the control pin called ``name``."""
        ...


class Requested(enum.Enum):
    DONT_CARE = "dont_care"
    OFF = "off"
    ON = "on"


class PowerState(enum.Enum):
    UNKNOWN = "unknown"
    OFF = "off"
    STARTING_UP = "starting_up"
    ON = "on"
    SHUTTING_DOWN = "shutting_down"


class Power:
    """Drives the power-up and power-down sequences of the modem.

    ``pins`` offers ``status()`` for the status pin and ``set(name, level)``
    for the control pins "battery", "dtr", "enable", "host-ready", "pwrkey"
    and "reset".
    """

    def __init__(self, pins: _ModemPins, delayer: Delayer) -> None:
        self._pins = pins
        self._delayer = delayer
        self.requested = Requested.DONT_CARE
        self.state = PowerState.UNKNOWN

        # Enabling the battery pin switches the status from on to off.
        pins.set("battery", True)
        delayer.msleep(_SETTLE_MS)
        pins.set("reset", False)
        pins.set("host-ready", False)
        pins.set("dtr", False)  # no suspend
        delayer.msleep(_SETTLE_MS)

    def _modem_off(self) -> bool:
        return bool(self._pins.status())

    def _press_pwrkey(self) -> None:
        self._pins.set("pwrkey", True)
        self._delayer.msleep(_PWRKEY_PULSE_MS)
        self._pins.set("pwrkey", False)

    def _drive_power_up(self) -> None:
        if self.state is PowerState.OFF:
            self._pins.set("enable", False)  # enable RF
            _log.info("Powering up modem ...")
            self._press_pwrkey()
            self.state = PowerState.STARTING_UP
        elif self.state is PowerState.STARTING_UP:
            if not self._modem_off():
                self.state = PowerState.ON

    def _drive_power_down(self) -> None:
        if self.state in (PowerState.STARTING_UP, PowerState.ON):
            self._pins.set("enable", True)
            _log.info("Powering down modem via power-key signal ...")
            self._press_pwrkey()
            self.state = PowerState.SHUTTING_DOWN
        elif self.state is PowerState.SHUTTING_DOWN:
            if self._modem_off():
                self.state = PowerState.OFF

    def power_enabled(self, enabled: bool) -> None:
        """Advance the power sequence towards on or off as far as possible."""
        self.requested = Requested.ON if enabled else Requested.OFF

        if self.state is PowerState.UNKNOWN:
            self.state = PowerState.OFF if self._modem_off() else PowerState.ON

        while True:
            orig_state = self.state
            if self.requested is Requested.ON:
                self._drive_power_up()
            elif self.requested is Requested.OFF:
                self._drive_power_down()
            if orig_state is self.state:
                break

    def needs_update_each_second(self) -> bool:
        return self.state in (PowerState.STARTING_UP, PowerState.SHUTTING_DOWN)

    def starting_up(self) -> bool:
        return self.state is PowerState.STARTING_UP

    def shutting_down(self) -> bool:
        return self.state is PowerState.SHUTTING_DOWN

    def off(self) -> bool:
        return self.state is PowerState.OFF

    def on(self) -> bool:
        return self.state is PowerState.ON