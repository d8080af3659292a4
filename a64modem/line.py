"""Lines received from the modem and helpers for taking them apart."""

from __future__ import annotations


class Line:
    """One line of text received from the modem, without end-of-line characters."""

    __slots__ = ("text",)

    def __init__(self, text: str | bytes | bytearray) -> None:
        if isinstance(text, (bytes, bytearray)):
            text = bytes(text).decode("latin-1")
        self.text = text

    def starts_with(self, prefix: str) -> bool:
        """Return True if the line begins with ``prefix``."""
        return self.text.startswith(prefix)

    def value_after(self, prefix: str) -> str | None:
        """Return the text following ``prefix``, or None if the line lacks it."""
        if not self.starts_with(prefix):
            return None
        return self.text[len(prefix):]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Line):
            return self.text == other.text
        if isinstance(other, str):
            return self.text == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.text)

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"Line({self.text!r})"


def comma_separated_element(index: int, text: str) -> str:
    """Return the element at ``index`` of a comma-separated list.

    Commas inside double quotes do not separate elements, and the quote
    characters themselves are dropped. An index out of range yields "".
    """
    elements: list[str] = []
    current: list[str] = []
    quoted = False
    for ch in text:
        if ch == '"':
            quoted = not quoted
            continue
        if ch == "," and not quoted:
            elements.append("".join(current))
            current = []
            continue
        current.append(ch)
    elements.append("".join(current))

    if 0 <= index < len(elements):
        return elements[index]
    return ""