"""Buffer that collects data from the modem and splits it into lines."""

from __future__ import annotations

import enum
import logging
from typing import Iterator, Protocol

from a64modem.line import Line

_log = logging.getLogger(__name__)

_END_OF_LINE = frozenset(b"\r\n")


class ResponseChannel(Protocol):
    """Source of bytes sent by the modem."""

    def read_from_modem(self, size: int) -> bytes:
        """Return at most ``size`` bytes, or b"" if nothing is available."""
        ...


class FillResult(enum.Enum):
    DATA = "data"
    DONE = "done"


class ReadBuffer:
    """Accumulates modem output and yields complete lines."""

    def __init__(self, max_line_len: int) -> None:
        if max_line_len <= 0:
            raise ValueError("max_line_len must be positive")
        self._max_line_len = max_line_len
        self._capacity = 2 * max_line_len
        self._buffer = bytearray()

    @property
    def payload_bytes(self) -> int:
        """Number of bytes currently buffered."""
        return len(self._buffer)

    def fill(self, channel: ResponseChannel) -> FillResult:
        """Append available data from ``channel`` up to the buffer capacity."""
        remaining = self._capacity - len(self._buffer)
        data = channel.read_from_modem(remaining)
        if not data:
            return FillResult.DONE
        self._buffer.extend(data[:remaining])
        return FillResult.DATA

    def consume_lines(self) -> Iterator[Line]:
        """Yield every complete line and remove it from the buffer.

        An incomplete line longer than the maximum line length is discarded.
        """
        buf = self._buffer
        while buf:
            end = next((i for i, b in enumerate(buf) if b in _END_OF_LINE), None)
            if end is None:
                if len(buf) > self._max_line_len:
                    _log.error("incoming modem data exceeds maximum line length")
                    buf.clear()
                return

            line = Line(bytes(buf[:end]))

            consumed = end
            while consumed < len(buf) and buf[consumed] in _END_OF_LINE:
                consumed += 1
            del buf[:consumed]

            yield line