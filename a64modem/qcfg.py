"""Registry of persistent modem settings (QCFG) the driver relies on.

Each entry is queried after start-up, assigned if it differs from the
wanted value, and the modem is rebooted once any entry got modified.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class EntryState(enum.Enum):
    UNKNOWN = "unknown"      # current modem configuration still uncertain
    CONFIRMED = "confirmed"  # already consistent with the wanted value
    MISMATCH = "mismatch"    # differs from the wanted value, assignment pending
    MODIFIED = "modified"    # got changed to the wanted value, reboot needed


@dataclass(eq=False)
class QcfgEntry:
    name: str
    value: str
    state: EntryState = field(default=EntryState.UNKNOWN)


class Qcfg:
    """Set of QCFG entries; iteration visits the most recently added first."""

    def __init__(self) -> None:
        self._entries: list[QcfgEntry] = []

    def __iter__(self):
        return iter(reversed(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def add_entry(self, name: str, value: str) -> QcfgEntry:
        """Register a setting with its wanted value and return the entry."""
        entry = QcfgEntry(name, value)
        self._entries.append(entry)
        return entry

    def _any_in_state(self, state: EntryState) -> QcfgEntry | None:
        return next((e for e in self if e.state is state), None)

    def any_unknown_entry(self) -> QcfgEntry | None:
        """Return an entry whose modem state is not yet known."""
        return self._any_in_state(EntryState.UNKNOWN)

    def any_mismatching_entry(self) -> QcfgEntry | None:
        """Return an entry whose modem state differs from the wanted value."""
        return self._any_in_state(EntryState.MISMATCH)

    def entry(self, name: str) -> QcfgEntry | None:
        """Return the entry called ``name``, if any."""
        return next((e for e in self if e.name == name), None)

    def reboot_needed(self) -> bool:
        """True if a setting changed and no query or assignment is in progress."""
        states = {e.state for e in self._entries}
        if EntryState.UNKNOWN in states or EntryState.MISMATCH in states:
            return False
        return EntryState.MODIFIED in states

    def invalidate_after_reboot(self) -> None:
        """Force every setting to be queried again."""
        for e in self._entries:
            e.state = EntryState.UNKNOWN