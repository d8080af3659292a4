"""Pin declarations as found in the pin-driver configuration."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from xml.etree.ElementTree import Element, tostring

_log = logging.getLogger(__name__)

_TRUE = frozenset({"yes", "true", "on", "1"})
_FALSE = frozenset({"no", "false", "off", "0"})

_NAME_MAX_LEN = 31


class InvalidPinDeclaration(ValueError):
    """A pin declaration in the configuration is malformed."""


def _describe(node: Element) -> str:
    return tostring(node, encoding="unicode").strip()


def _bool_attr(node: Element, name: str, default: bool) -> bool:
    value = node.get(name)
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return default


def _unsigned_attr(node: Element, name: str, default: int) -> int:
    value = node.get(name)
    if value is None:
        return default
    try:
        number = int(value, 16) if value.lower().startswith("0x") else int(value, 10)
    except ValueError:
        return default
    return number if number >= 0 else default


class Level(enum.Enum):
    LOW = "low"
    HIGH = "high"
    HIGH_IMPEDANCE = "high_impedance"


class Direction(enum.Enum):
    IN = "in"
    OUT = "out"


class Function(enum.IntEnum):
    INPUT = 0
    OUTPUT = 1
    FN2 = 2
    FN3 = 3
    FN4 = 4
    FN5 = 5
    IRQ = 6
    DISABLE = 7

    @classmethod
    def from_xml(cls, node: Element) -> Function:
        """Derive the pin function from an <in>, <out> or <select> node."""
        if node.tag == "in":
            return cls.IRQ if "irq" in node.attrib else cls.INPUT

        if node.tag == "out":
            return cls.OUTPUT

        if node.tag != "select":
            raise InvalidPinDeclaration(f"unexpected pin node <{node.tag}>")

        n = _unsigned_attr(node, "function", int(cls.DISABLE))

        if n > cls.DISABLE:
            _log.warning("function number out of range: %s", _describe(node))
            raise InvalidPinDeclaration("function number out of range")

        if n in (cls.INPUT, cls.IRQ):
            _log.warning("function number %d reserved for <in> pins", n)
            raise InvalidPinDeclaration(f"function number {n} reserved for <in> pins")

        if n == cls.OUTPUT:
            _log.warning("function number %d reserved for <out> pins", n)
            raise InvalidPinDeclaration(f"function number {n} reserved for <out> pins")

        return cls(n)

    def direction(self) -> Direction:
        return Direction.OUT if self is Function.OUTPUT else Direction.IN

    def __str__(self) -> str:
        if self in (Function.INPUT, Function.OUTPUT, Function.IRQ, Function.DISABLE):
            return self.name
        return str(int(self))


class Pull(enum.IntEnum):
    DISABLE = 0
    UP = 1
    DOWN = 2

    @classmethod
    def from_xml(cls, node: Element) -> Pull:
        value = node.get("pull")
        if value is None:
            return cls.DISABLE
        if value == "up":
            return cls.UP
        if value == "down":
            return cls.DOWN
        _log.warning("invalid pull attribute value: %s", _describe(node))
        raise InvalidPinDeclaration(f"invalid pull value {value!r}")


_IRQ_TRIGGERS = {
    "rising": 0,
    "falling": 1,
    "high": 2,
    "low": 3,
    "edges": 4,
}


class IrqTrigger(enum.IntEnum):
    RISING = 0
    FALLING = 1
    HIGH = 2
    LOW = 3
    EDGES = 4

    @classmethod
    def from_xml(cls, node: Element) -> IrqTrigger:
        value = node.get("irq")
        if value is None:
            return cls.RISING
        if value in _IRQ_TRIGGERS:
            return cls(_IRQ_TRIGGERS[value])
        _log.warning("invalid irq attribute value: %s", _describe(node))
        raise InvalidPinDeclaration(f"invalid irq value {value!r}")


@dataclass(frozen=True)
class Attr:
    """Configured attributes of a pin."""

    pull: Pull
    function: Function
    irq_trigger: IrqTrigger
    out_on_demand: bool  # activate output on access by a pin-control client
    default_state: Level

    @property
    def output(self) -> bool:
        return self.function is Function.OUTPUT

    @property
    def irq(self) -> bool:
        return self.function is Function.IRQ

    @classmethod
    def from_xml(cls, node: Element) -> Attr:
        has_default = "default" in node.attrib
        if not has_default:
            default_state = Level.HIGH_IMPEDANCE
        elif _bool_attr(node, "default", False):
            default_state = Level.HIGH
        else:
            default_state = Level.LOW

        return cls(
            pull=Pull.from_xml(node),
            function=Function.from_xml(node),
            irq_trigger=IrqTrigger.from_xml(node),
            out_on_demand=not has_default,
            default_state=default_state,
        )

    @classmethod
    def disabled(cls) -> Attr:
        return cls(
            pull=Pull.DISABLE,
            function=Function.DISABLE,
            irq_trigger=IrqTrigger.RISING,
            out_on_demand=False,
            default_state=Level.HIGH_IMPEDANCE,
        )


class Bank(enum.IntEnum):
    B = 1
    C = 2
    D = 3
    E = 4
    F = 5
    G = 6
    H = 7
    L = 8

    @classmethod
    def from_xml(cls, node: Element) -> Bank:
        name = node.get("bank", "")[:1]
        if name in cls.__members__:
            return cls[name]
        _log.warning("unknown PIO bank name '%s'", name)
        raise InvalidPinDeclaration(f"unknown PIO bank name {name!r}")


def pin_name(node: Element) -> str:
    """Return the name attribute of a pin node."""
    return node.get("name", "")[:_NAME_MAX_LEN]


def pin_index(node: Element) -> int:
    """Return the index of a pin within its bank."""
    if "index" not in node.attrib:
        _log.warning("pin declaration lacks 'index' attribute: %s", _describe(node))
        raise InvalidPinDeclaration("pin declaration lacks 'index' attribute")
    return _unsigned_attr(node, "index", 0)


@dataclass(frozen=True)
class PinId:
    """Unique physical identifier of a pin."""

    bank: Bank
    index: int

    @classmethod
    def from_xml(cls, node: Element) -> PinId:
        return cls(Bank.from_xml(node), pin_index(node))

    def __str__(self) -> str:
        return f"P{chr(ord('A') + int(self.bank))}{self.index}"