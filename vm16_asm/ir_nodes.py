"""
Instruction IR for the vm16 assembler.

The parser produces a flat list of these nodes (one per mnemonic, one per
label declaration) and the code generator walks that list twice. Nodes
are immutable and remember the source line they came from.

Each node reports its encoded width through `size`; label declarations
are 0 bytes wide. The code generator lays out offsets from `size` rather
than assuming every instruction is 2 bytes.
"""

from __future__ import annotations
from dataclasses import dataclass, field

from vm16_emulator.cpu.decoder import INSTRUCTION_SIZE
from vm16_emulator.cpu.regs import Register

__all__ = [
    'Instruction', 'Nop', 'PushImmediate', 'PushRegister', 'PushLabel',
    'PopRegister', 'AddStack', 'AddRegister', 'Signal', 'Label',
]

@dataclass(frozen=True)
class Instruction:
    """Base class for all IR nodes."""
    line: int = field(default=0, compare=False)

    @property
    def size(self) -> int:
        return INSTRUCTION_SIZE

    def to_source(self) -> str:
        """Canonical assembly text for this node."""
        raise NotImplementedError


@dataclass(frozen=True)
class Nop(Instruction):
    def to_source(self) -> str:
        return "NOP"


@dataclass(frozen=True)
class PushImmediate(Instruction):
    value: int = 0

    def to_source(self) -> str:
        return f"PUSH #{self.value}"


@dataclass(frozen=True)
class PushRegister(Instruction):
    reg: Register = Register.A

    def to_source(self) -> str:
        return f"PUSHR {self.reg.name}"


@dataclass(frozen=True)
class PushLabel(Instruction):
    """PUSH of a label's byte offset; resolved by the code generator."""
    name: str = ""

    def to_source(self) -> str:
        return f"PUSH {self.name}"


@dataclass(frozen=True)
class PopRegister(Instruction):
    reg: Register = Register.A

    def to_source(self) -> str:
        return f"POP {self.reg.name}"


@dataclass(frozen=True)
class AddStack(Instruction):
    def to_source(self) -> str:
        return "ADDS"


@dataclass(frozen=True)
class AddRegister(Instruction):
    dst: Register = Register.A
    src: Register = Register.A

    def to_source(self) -> str:
        return f"ADDR {self.dst.name} {self.src.name}"


@dataclass(frozen=True)
class Signal(Instruction):
    code: int = 0

    def to_source(self) -> str:
        return f"SIG ${self.code:02X}"


@dataclass(frozen=True)
class Label(Instruction):
    """Label declaration. Emits no bytes."""
    name: str = ""

    @property
    def size(self) -> int:
        return 0

    def to_source(self) -> str:
        return f"{self.name}:"
