"""
vm16 Emulator — 16-bit stack-and-register virtual machine.

Components:
    mem/memory.py   Linear bounds-checked memory, little-endian 16-bit access
    cpu/regs.py     13-entry register file with explicit register roles
    cpu/decoder.py  Canonical opcode table and instruction decoder
    emu.py          Machine: fetch-decode-execute, stack, signals, run loop
    errors.py       Runtime error taxonomy
"""

from .emu import Machine, MachineState, StopReason, MACHINE_PROFILES
from .cpu.regs import Register, RegisterRole, RegisterFile, REGISTER_COUNT
from .cpu.decoder import Opcode, OPCODES, HALT_SIGNAL, INSTRUCTION_SIZE
from .mem.memory import Memory
from .errors import (
    MachineError, MemoryBoundsError, StackError, StackUnderflowError,
    StackOverflowError, DecodeError, IllegalOpcode, InvalidRegisterError,
    MachineHaltedError,
)
