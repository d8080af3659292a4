"""Register interface of the A64 PIO controller."""

from __future__ import annotations

from a64modem.pin_types import Attr, Bank, Function, Level, PinId

_IO_BANK_SIZE = 0x24

# I/O bank register arrays: (offset, bits per item)
_CFG = (0x00, 4)
_DATA = (0x10, 1)
_PULL = (0x1C, 2)

# IRQ register arrays
_IRQ_CFG = (0x00, 4)
_IRQ_CONTROL = (0x10, 1)
_IRQ_STATUS = (0x14, 1)

_DEFAULT_REGS_SIZE = 0x400


class RegisterBlock:
    """Memory-mapped register range made of 32-bit little-endian words."""

    def __init__(self, size: int = _DEFAULT_REGS_SIZE) -> None:
        if size <= 0 or size % 4:
            raise ValueError("size must be a positive multiple of 4")
        self._data = bytearray(size)

    @property
    def size(self) -> int:
        return len(self._data)

    def _locate(self, offset: int, bits: int, index: int) -> tuple[int, int, int]:
        if bits <= 0 or 32 % bits:
            raise ValueError("item width must divide 32")
        if index < 0:
            raise IndexError("negative register-array index")
        per_word = 32 // bits
        reg = offset + (index // per_word) * 4
        if reg < 0 or reg + 4 > len(self._data):
            raise IndexError("register outside of the register block")
        shift = (index % per_word) * bits
        return reg, shift, (1 << bits) - 1

    def _word(self, reg: int) -> int:
        return int.from_bytes(self._data[reg:reg + 4], "little")

    def read_array(self, offset: int, bits: int, index: int) -> int:
        """Read item ``index`` of a register array of ``bits``-wide items."""
        reg, shift, mask = self._locate(offset, bits, index)
        return (self._word(reg) >> shift) & mask

    def write_array(self, offset: int, bits: int, index: int, value: int) -> None:
        """Write item ``index``; excess bits of ``value`` are cut off."""
        reg, shift, mask = self._locate(offset, bits, index)
        word = self._word(reg) & ~(mask << shift)
        word |= (int(value) & mask) << shift
        self._data[reg:reg + 4] = word.to_bytes(4, "little")


class _Window:
    """Part of a register block starting at ``base``."""

    def __init__(self, regs: RegisterBlock, base: int) -> None:
        self._regs = regs
        self._base = base

    def read(self, array: tuple[int, int], index: int) -> int:
        offset, bits = array
        return self._regs.read_array(self._base + offset, bits, index)

    def write(self, array: tuple[int, int], index: int, value: int) -> None:
        offset, bits = array
        self._regs.write_array(self._base + offset, bits, index, value)


class Pio:
    """Pin configuration, levels and interrupts of all PIO banks."""

    def __init__(self, pio_regs: RegisterBlock | None = None,
                 r_pio_regs: RegisterBlock | None = None) -> None:
        self.pio_regs = pio_regs if pio_regs is not None else RegisterBlock()
        self.r_pio_regs = r_pio_regs if r_pio_regs is not None else RegisterBlock()

        self._io_banks = {
            bank: (_Window(self.r_pio_regs, 0) if bank is Bank.L
                   else _Window(self.pio_regs, int(bank) * _IO_BANK_SIZE))
            for bank in Bank
        }
        self._irq_regs = {
            Bank.B: _Window(self.pio_regs, 0x200),
            Bank.G: _Window(self.pio_regs, 0x220),
            Bank.H: _Window(self.pio_regs, 0x240),
            Bank.L: _Window(self.r_pio_regs, 0x200),
        }

    def configure(self, pin_id: PinId, attr: Attr) -> None:
        """Apply function, pull and IRQ trigger of ``attr`` to the pin."""
        bank = self._io_banks[pin_id.bank]
        bank.write(_CFG, pin_id.index, int(attr.function))
        bank.write(_PULL, pin_id.index, int(attr.pull))

        irq = self._irq_regs.get(pin_id.bank)
        if irq is not None:
            irq.write(_IRQ_CFG, pin_id.index, int(attr.irq_trigger))

    def state(self, pin_id: PinId) -> bool:
        """Current level of the pin."""
        return bool(self._io_banks[pin_id.bank].read(_DATA, pin_id.index))

    def set_state(self, pin_id: PinId, level: Level) -> None:
        """Drive the pin to ``level``, or make it an input for high impedance."""
        bank = self._io_banks[pin_id.bank]
        if level is Level.HIGH_IMPEDANCE:
            bank.write(_CFG, pin_id.index, int(Function.INPUT))
        else:
            bank.write(_CFG, pin_id.index, int(Function.OUTPUT))
            bank.write(_DATA, pin_id.index, int(level is Level.HIGH))

    def clear_irq_status(self, pin_id: PinId) -> None:
        irq = self._irq_regs.get(pin_id.bank)
        if irq is not None:
            irq.write(_IRQ_STATUS, pin_id.index, 1)

    def irq_enabled(self, pin_id: PinId, enabled: bool) -> None:
        """Enable or disable IRQ delivery for the pin."""
        irq = self._irq_regs.get(pin_id.bank)
        if irq is not None:
            irq.write(_IRQ_CONTROL, pin_id.index, int(bool(enabled)))

    def irq_pending(self, pin_id: PinId) -> bool:
        irq = self._irq_regs.get(pin_id.bank)
        if irq is None:
            return False
        return bool(irq.read(_IRQ_STATUS, pin_id.index))