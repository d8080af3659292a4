"""Command and response channel on top of a byte-oriented terminal."""

from __future__ import annotations

import logging
from typing import Protocol

_log = logging.getLogger(__name__)

_EOL = "\r\n"


class _Terminal(Protocol):
    def write(self, data: bytes) -> int:
        """Write ``data`` and return the number of bytes written."""
        ...

    def read(self, size: int) -> bytes:
        """Return at most ``size`` bytes, b"" if nothing is available."""
        ...


class TerminalModem:
    """Sends AT commands to, and reads responses from, a terminal connection."""

    def __init__(self, terminal: _Terminal, max_command_len: int = 256) -> None:
        if max_command_len <= 0:
            raise ValueError("max_command_len must be positive")
        self._terminal = terminal
        self._max_command_len = max_command_len

    def send_command_to_modem(self, command: str) -> None:
        """Write ``command`` followed by carriage return and newline."""
        data = (command + _EOL).encode("latin-1")

        if len(data) > self._max_command_len:
            _log.warning("modem command got unexpectedly truncated")
            data = data[: self._max_command_len]

        if self._terminal.write(data) != len(data):
            _log.warning("modem command too large for terminal write")

    def read_from_modem(self, size: int) -> bytes:
        """Return at most ``size`` bytes received from the modem."""
        return self._terminal.read(size)