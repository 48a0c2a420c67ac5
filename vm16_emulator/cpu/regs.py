"""
vm16 Emulator — Register File

Register model (13 x 16-bit):
  idx  name   role
   0   A      general
   1   B      general
   2   C      general
   3   M      system  — memory operand register
   4   SP     system  — stack pointer, next free stack slot
   5   PC     system  — program counter
   6   BP     system  — base pointer for stack frames
   7   FLAGS  system  — status flags
   8   R0     general
   9   R1     general
  10   R2     general
  11   R3     general
  12   R4     general

Roles are informational. The decoder only checks that an index is below
REGISTER_COUNT; any "A is the accumulator" style behaviour is a calling
convention of the program, not something the machine enforces.
"""

import enum
from typing import Dict, Tuple

from ..errors import InvalidRegisterError


class RegisterRole(enum.Enum):
    GENERAL = "general"
    SYSTEM = "system"


class Register(enum.IntEnum):
    A = 0x00
    B = 0x01
    C = 0x02
    M = 0x03
    SP = 0x04
    PC = 0x05
    BP = 0x06
    FLAGS = 0x07
    R0 = 0x08
    R1 = 0x09
    R2 = 0x0A
    R3 = 0x0B
    R4 = 0x0C

    @property
    def role(self) -> RegisterRole:
        return REGISTER_ROLES[self]

    @classmethod
    def from_index(cls, index: int) -> "Register":
        """Map a register index to a Register, raising InvalidRegisterError."""
        try:
            return cls(index)
        except ValueError:
            raise InvalidRegisterError(index) from None

    @classmethod
    def from_name(cls, name: str) -> "Register":
        """Case-insensitive lookup by register name."""
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Invalid register name: {name!r}") from None


REGISTER_ROLES: Dict[Register, RegisterRole] = {
    Register.A: RegisterRole.GENERAL,
    Register.B: RegisterRole.GENERAL,
    Register.C: RegisterRole.GENERAL,
    Register.M: RegisterRole.SYSTEM,
    Register.SP: RegisterRole.SYSTEM,
    Register.PC: RegisterRole.SYSTEM,
    Register.BP: RegisterRole.SYSTEM,
    Register.FLAGS: RegisterRole.SYSTEM,
    Register.R0: RegisterRole.GENERAL,
    Register.R1: RegisterRole.GENERAL,
    Register.R2: RegisterRole.GENERAL,
    Register.R3: RegisterRole.GENERAL,
    Register.R4: RegisterRole.GENERAL,
}

REGISTER_COUNT = len(Register)
REGISTER_NAMES = frozenset(r.name for r in Register)

DEFAULT_STACK_BASE = 0x1000


class RegisterFile:
    """Fixed array of 16-bit registers addressed by index."""

    __slots__ = ('_values', 'stack_base')

    def __init__(self, stack_base: int = DEFAULT_STACK_BASE):
        self.stack_base = stack_base
        self._values = [0] * REGISTER_COUNT
        self.reset()

    def __getitem__(self, reg: int) -> int:
        return self._values[self._index(reg)]

    def __setitem__(self, reg: int, value: int):
        self._values[self._index(reg)] = value & 0xFFFF

    def __len__(self) -> int:
        return REGISTER_COUNT

    @staticmethod
    def _index(reg: int) -> int:
        if not 0 <= int(reg) < REGISTER_COUNT:
            raise InvalidRegisterError(int(reg))
        return int(reg)

    # --- System register shortcuts ---

    @property
    def SP(self) -> int:
        return self._values[Register.SP]

    @SP.setter
    def SP(self, value: int):
        self._values[Register.SP] = value & 0xFFFF

    @property
    def PC(self) -> int:
        return self._values[Register.PC]

    @PC.setter
    def PC(self, value: int):
        self._values[Register.PC] = value & 0xFFFF

    def snapshot(self) -> Tuple[int, ...]:
        """Immutable copy of all register values, in index order."""
        return tuple(self._values)

    def display(self) -> str:
        """Format register state for debugging."""
        return ' '.join(f"{r.name}={self._values[r]:04X}" for r in Register)

    def reset(self):
        """Reset to power-on state: SP at stack base, everything else 0."""
        for i in range(REGISTER_COUNT):
            self._values[i] = 0
        self._values[Register.SP] = self.stack_base & 0xFFFF
        self._values[Register.PC] = 0
