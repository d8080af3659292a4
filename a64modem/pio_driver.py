"""Pin driver: applies pin declarations from the config to the PIO."""

from __future__ import annotations

import logging
from typing import Iterator
from xml.etree.ElementTree import Element

from a64modem.pin_types import (
    Attr,
    Direction,
    Function,
    InvalidPinDeclaration,
    Level,
    PinId,
    pin_name,
)
from a64modem.pio import Pio

_log = logging.getLogger(__name__)

_PIN_NODE_TYPES = frozenset({"in", "out", "select"})


class ServiceDenied(LookupError):
    """No pin is assigned to the requesting session."""


class PinDeclaration:
    """Pin information obtained from the configuration."""

    def __init__(self, node: Element) -> None:
        self.name = pin_name(node)
        self.id: PinId | None = None
        self.attr = Attr.disabled()
        self.ref_count = 0

    @staticmethod
    def type_matches(node: Element) -> bool:
        return node.tag in _PIN_NODE_TYPES and "name" in node.attrib

    def matches_node(self, node: Element) -> bool:
        """True if ``node`` describes this declaration."""
        if not self.type_matches(node) or pin_name(node) != self.name:
            return False
        try:
            direction = Function.from_xml(node).direction()
        except InvalidPinDeclaration:
            return False
        return self.attr.function.direction() is direction

    def update_from_xml(self, node: Element, pio: Pio) -> None:
        """Apply ``node`` to the declaration and the device."""
        try:
            new_id = PinId.from_xml(node)
            self.attr = Attr.from_xml(node)

            # reset the original pin if its physical location changed
            if self.id is not None and self.id != new_id:
                pio.configure(self.id, Attr.disabled())

            self.id = new_id

            # <out> pins without 'default' are configured on demand only
            output = self.attr.function is Function.OUTPUT
            if not (output and self.attr.out_on_demand):
                pio.configure(new_id, self.attr)

            if self.ref_count == 0 and output and not self.attr.out_on_demand:
                pio.set_state(new_id, self.attr.default_state)

        except InvalidPinDeclaration:
            if self.id is not None:
                pio.configure(self.id, Attr.disabled())
            self.id = None
            self.attr = Attr.disabled()

    def matches(self, pin_id: PinId, direction: Direction) -> bool:
        return (self.id is not None and self.id == pin_id
                and direction is self.attr.function.direction())


def _session_policy(label: str, config: Element) -> Element:
    best: Element | None = None
    best_score = -1
    for policy in config.findall("policy"):
        if "label" in policy.attrib:
            if policy.get("label") == label:
                return policy
            continue
        prefix = policy.get("label_prefix")
        suffix = policy.get("label_suffix")
        if prefix is None and suffix is None:
            continue
        if prefix is not None and not label.startswith(prefix):
            continue
        if suffix is not None and not label.endswith(suffix):
            continue
        score = len(prefix or "") + len(suffix or "")
        if score > best_score:
            best, best_score = policy, score

    if best is not None:
        return best

    default = config.find("default-policy")
    if default is not None:
        return default

    raise ServiceDenied(f"no policy defined for session '{label}'")


class PioDriver:
    """Keeps the PIO consistent with the config and the pin sessions."""

    def __init__(self, pio: Pio) -> None:
        self._pio = pio
        self._pins: list[PinDeclaration] = []
        self._config = Element("config")

    @property
    def pins(self) -> list[PinDeclaration]:
        return list(self._pins)

    def _with_pin_declaration(self, pin_id: PinId,
                              direction: Direction) -> Iterator[PinDeclaration]:
        return (pin for pin in self._pins if pin.matches(pin_id, direction))

    def apply_config(self, config: Element) -> None:
        """Update the pin declarations from ``config``."""
        self._config = config

        remaining = list(self._pins)
        updated: list[PinDeclaration] = []

        for node in config:
            if not PinDeclaration.type_matches(node):
                continue
            pin = next((p for p in remaining if p.matches_node(node)), None)
            if pin is not None:
                remaining.remove(pin)
            else:
                pin = PinDeclaration(node)
            updated.append(pin)
            pin.update_from_xml(node, self._pio)

        for stale in remaining:
            if stale.id is not None:
                self._pio.configure(stale.id, Attr.disabled())

        self._pins = updated

    def pin_state(self, pin_id: PinId) -> bool:
        return self._pio.state(pin_id)

    def set_pin_state(self, pin_id: PinId, level: Level) -> None:
        self._pio.set_state(pin_id, level)

    def assigned_pin(self, label: str, direction: Direction) -> PinId:
        """Return the pin assigned to the session called ``label``."""
        policy = _session_policy(label, self._config)
        name = policy.get("pin", "")[:31]

        pin_id: PinId | None = None
        for pin in self._pins:
            if (pin.name == name and pin.id is not None
                    and pin.attr.function.direction() is direction):
                pin_id = pin.id

        if pin_id is None:
            node_type = "<in>" if direction is Direction.IN else "<out>"
            _log.warning("missing %s pin assignment for session '%s'", node_type, label)
            raise ServiceDenied(f"missing {node_type} pin assignment for session '{label}'")

        return pin_id

    def acquire_pin(self, pin_id: PinId, direction: Direction) -> None:
        for pin in self._with_pin_declaration(pin_id, direction):
            pin.ref_count += 1

            if pin.attr.output:
                if pin.attr.out_on_demand:
                    self._pio.configure(pin_id, pin.attr)
                else:
                    self._pio.set_state(pin_id, pin.attr.default_state)

            if pin.attr.irq:
                self._pio.configure(pin_id, pin.attr)

    def release_pin(self, pin_id: PinId, direction: Direction) -> None:
        for pin in self._with_pin_declaration(pin_id, direction):
            if pin.ref_count == 0:
                continue
            pin.ref_count -= 1
            if pin.ref_count > 0:
                continue

            if pin.attr.output:
                if pin.attr.out_on_demand:
                    self._pio.configure(pin_id, Attr.disabled())
                else:
                    self._pio.set_state(pin_id, pin.attr.default_state)

            if pin.attr.irq:
                self._pio.configure(pin_id, Attr.disabled())

    def irq_enabled(self, pin_id: PinId, enabled: bool) -> None:
        self._pio.irq_enabled(pin_id, enabled)

    def irq_pending(self, pin_id: PinId) -> bool:
        return self._pio.irq_pending(pin_id)

    def ack_irq(self, pin_id: PinId) -> None:
        self._pio.clear_irq_status(pin_id)