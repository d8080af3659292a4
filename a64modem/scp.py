"""Exchange of requests and responses with the system-control processor.

The ARM side writes a request into a buffer shared with the SCP and
announces it with a sequence number on mailbox channel 0. The SCP places
its response in a second shared buffer and reflects the sequence number
on mailbox channel 1, which lets the driver hand the response to the
session that issued the request.
"""

from __future__ import annotations

import enum
import logging
from collections import deque
from typing import Callable, Optional, Protocol

_log = logging.getLogger(__name__)

SHARED_BUFFER_SIZE = 1024
_COUNT_SIZE = 4

DS_SIZE = 4096
MAX_REQUEST_LEN = DS_SIZE
MAX_RESPONSE_LEN = DS_SIZE

# a fully saturated response buffer is considered as overflown
_MOB_SATURATION = 1000

_SEQ_MASK = 0xFFFFFFFF


class ScpError(Exception):
    """A request or response could not be transferred."""


def swizzled_index(index: int) -> int:
    """Invert the lowest two bits of a byte index.

    The SCP is big endian and its bus logic swaps the lowest two address
    bits, so byte buffers shared with it must be stored swizzled.
    """
    return index + 3 - 2 * (index & 3)


class Mailbox:
    """Message box with one channel to and one channel from the SCP."""

    def __init__(self) -> None:
        self.sent: list[int] = []             # channel 0, ARM -> SCP
        self._incoming: deque[int] = deque()  # channel 1, SCP -> ARM
        self.receive_irq_enabled = True
        self.irq_status = False

    def value_to_scp(self, value: int) -> None:
        """Post ``value`` on the channel towards the SCP."""
        self.sent.append(value & _SEQ_MASK)

    def value_from_scp(self) -> int:
        """Take the oldest value posted by the SCP."""
        if not self._incoming:
            raise ScpError("no value from SCP available")
        return self._incoming.popleft()

    def scp_has_value(self) -> bool:
        return bool(self._incoming)

    def post_from_scp(self, value: int) -> None:
        """Enqueue ``value`` as sent by the SCP and raise the receive status."""
        self._incoming.append(value & _SEQ_MASK)
        self.irq_status = True

    def clear_status(self) -> None:
        self.irq_status = False


class SharedBuffer:
    """Buffer in SRAM shared with the SCP: a 32-bit count followed by chars."""

    CAPACITY = SHARED_BUFFER_SIZE - _COUNT_SIZE

    def __init__(self) -> None:
        self.count = 0
        self.chars = bytearray(self.CAPACITY)

    def store(self, data: bytes) -> None:
        """Write ``data`` in the byte order expected by the SCP."""
        if len(data) > self.CAPACITY:
            raise ScpError("data exceeds shared-buffer capacity")
        for i, byte in enumerate(data):
            self.chars[swizzled_index(i)] = byte
        self.count = len(data) & 0x3FF

    def load(self, limit: int) -> bytes:
        """Read the buffer content, which must not exceed ``limit`` bytes."""
        length = self.count
        if length >= _MOB_SATURATION or length > limit:
            raise ScpError("shared-buffer content exceeds capacity")
        return bytes(self.chars[swizzled_index(i)] for i in range(length))

    def to_bytes(self) -> bytes:
        """Memory image of the buffer as seen in SRAM."""
        return self.count.to_bytes(_COUNT_SIZE, "little") + bytes(self.chars)


class _Scheduler(Protocol):
    def schedule(self) -> None:
        ...


class _ResponseError(enum.Enum):
    UNKNOWN = "unknown"
    TOO_LARGE = "too_large"


class ScpSession:
    """Client session issuing one request at a time."""

    def __init__(self, label: str, scheduler: _Scheduler) -> None:
        self.label = label
        self._scheduler = scheduler
        self._request: bytes = b""
        self._response: bytes | _ResponseError = _ResponseError.UNKNOWN
        self._exec_id: Optional[int] = None
        self.response_count = 0
        self.on_response: Optional[Callable[[], None]] = None

    def request(self, data: bytes) -> None:
        """Issue ``data`` as the next SCP program to execute."""
        if len(data) > MAX_REQUEST_LEN:
            raise ScpError("SCP request too large")
        self._request = bytes(data)
        self._response = _ResponseError.UNKNOWN
        self._scheduler.schedule()

    def response(self) -> bytes | None:
        """Return the response, or None while it is not known yet."""
        if isinstance(self._response, bytes):
            return self._response
        if self._response is _ResponseError.TOO_LARGE:
            raise ScpError("SCP response too large")
        return None

    def matches(self, seq_number: int) -> bool:
        """True if the request with ``seq_number`` belongs to this session."""
        return self._exec_id is not None and self._exec_id == seq_number

    def _take_pending_request(self, submit: Callable[[bytes], Optional[int]]) -> None:
        if not self._request:
            return
        self._exec_id = submit(self._request)
        # don't try to handle the same request twice
        self._request = b""

    def _deliver_response(self, result: bytes | _ResponseError) -> None:
        self._response = result
        self.response_count += 1
        if self.on_response is not None:
            self.on_response()
        self._exec_id = None


class _State(enum.Enum):
    IDLE = "idle"
    BUSY = "busy"


class ScpDriver:
    """Serialises the requests of all sessions towards the SCP."""

    def __init__(self, mailbox: Mailbox, inbox: SharedBuffer,
                 outbox: SharedBuffer) -> None:
        self._mailbox = mailbox
        self._mib = inbox    # requests towards the SCP
        self._mob = outbox   # responses from the SCP
        self._sessions: list[ScpSession] = []
        self._last_submit = 0
        self._last_response = 0
        self._state = _State.IDLE
        self.handle_irq()

    @property
    def busy(self) -> bool:
        return self._state is _State.BUSY

    def _each_session(self):
        return reversed(list(self._sessions))

    def create_session(self, label: str) -> ScpSession:
        session = ScpSession(label, self)
        self._sessions.append(session)
        return session

    def close_session(self, session: ScpSession) -> None:
        try:
            self._sessions.remove(session)
        except ValueError:
            raise ScpError(f"unknown session '{session.label}'") from None

    def _submit_to_scp(self, data: bytes) -> Optional[int]:
        if self._state is not _State.IDLE:
            _log.error("attempted to submit request to busy SCP")
            return None
        if len(data) > SharedBuffer.CAPACITY:
            _log.error("SCP request exceeds maximum capacity")
            return None

        self._mib.store(data)
        self._last_submit = (self._last_submit + 1) & _SEQ_MASK
        self._mailbox.value_to_scp(self._last_submit)
        self._state = _State.BUSY
        return self._last_submit

    def _retrieve_from_scp(self) -> bytes | _ResponseError:
        try:
            return self._mob.load(MAX_RESPONSE_LEN)
        except ScpError:
            return _ResponseError.TOO_LARGE

    def schedule(self) -> None:
        """Submit a pending request if the SCP is idle."""
        for session in self._each_session():
            if self._state is not _State.IDLE:
                return
            session._take_pending_request(self._submit_to_scp)

    def handle_irq(self) -> None:
        """Deliver a response posted by the SCP and submit the next request."""
        self._mailbox.clear_status()

        if self._mailbox.scp_has_value():
            self._last_response = self._mailbox.value_from_scp()
            for session in self._each_session():
                if session.matches(self._last_response):
                    session._deliver_response(self._retrieve_from_scp())
            self._state = _State.IDLE

        self.schedule()