"""
vm16 Emulator — Opcode Table / Instruction Decoder

Instruction format (fixed, 2 bytes):
  byte 0  opcode
  byte 1  argument — immediate value, register index, or two register
          indices packed as (r1 << 4) | r2

Canonical opcode table:
  0x00  NOP     —          no operation
  0x01  PUSH    IMM8       push zero-extended immediate
  0x02  POP     REG        pop into register
  0x03  PUSHR   REG        push register
  0x04  ADDR    REG2       r1 = r1 + r2
  0x09  SIG     IMM8       raise signal (0x09 = halt)
  0x0F  ADDS    —          pop two, push sum

This table is the single source of truth for the VM decoder, the code
generator and the disassembler.

Decoding produces one of a closed set of frozen dataclasses. Machine
dispatches on the dataclass type, and DECODED_TYPES lists every variant
so the dispatch table can be checked for completeness.
"""

import enum
from dataclasses import dataclass
from typing import Dict, NamedTuple, Tuple, Union

from ..errors import IllegalOpcode
from .regs import Register


INSTRUCTION_SIZE = 2


# ──────────────────────────────────────────────
# Operand kinds
# ──────────────────────────────────────────────

NONE = 'NONE'   # argument byte ignored (emitted as 0)
IMM8 = 'IMM8'   # 8-bit immediate
REG = 'REG'     # single register index
REG2 = 'REG2'   # two register indices, nibble-packed


class Opcode(enum.IntEnum):
    NOP = 0x00
    PUSH = 0x01
    POP = 0x02
    PUSHR = 0x03
    ADDR = 0x04
    SIG = 0x09
    ADDS = 0x0F


class OpcodeInfo(NamedTuple):
    mnemonic: str
    operand: str


OPCODES: Dict[Opcode, OpcodeInfo] = {
    Opcode.NOP:   OpcodeInfo('NOP',   NONE),
    Opcode.PUSH:  OpcodeInfo('PUSH',  IMM8),
    Opcode.POP:   OpcodeInfo('POP',   REG),
    Opcode.PUSHR: OpcodeInfo('PUSHR', REG),
    Opcode.ADDR:  OpcodeInfo('ADDR',  REG2),
    Opcode.SIG:   OpcodeInfo('SIG',   IMM8),
    Opcode.ADDS:  OpcodeInfo('ADDS',  NONE),
}

MNEMONICS: Dict[str, Opcode] = {info.mnemonic: op for op, info in OPCODES.items()}

HALT_SIGNAL = 0x09


# ──────────────────────────────────────────────
# Nibble packing for two-register instructions
# ──────────────────────────────────────────────

def pack_registers(r1: int, r2: int) -> int:
    """Pack two register indices into one argument byte (r1 high, r2 low)."""
    if not (0 <= r1 <= 0x0F and 0 <= r2 <= 0x0F):
        raise ValueError(f"Register indices must fit in a nibble: {r1}, {r2}")
    return (r1 << 4) | r2


def unpack_registers(arg: int) -> Tuple[int, int]:
    """Split an argument byte into (r1, r2)."""
    return (arg >> 4) & 0x0F, arg & 0x0F


# ──────────────────────────────────────────────
# Decoded instruction variants
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class NopOp:
    pass


@dataclass(frozen=True)
class PushOp:
    value: int


@dataclass(frozen=True)
class PopRegisterOp:
    reg: Register


@dataclass(frozen=True)
class PushRegisterOp:
    reg: Register


@dataclass(frozen=True)
class AddStackOp:
    pass


@dataclass(frozen=True)
class AddRegisterOp:
    dst: Register
    src: Register


@dataclass(frozen=True)
class SignalOp:
    code: int


DecodedOp = Union[NopOp, PushOp, PopRegisterOp, PushRegisterOp,
                  AddStackOp, AddRegisterOp, SignalOp]

DECODED_TYPES = (NopOp, PushOp, PopRegisterOp, PushRegisterOp,
                 AddStackOp, AddRegisterOp, SignalOp)


def decode_instruction(opcode: int, arg: int) -> DecodedOp:
    """Decode an (opcode, argument) byte pair.

    Raises IllegalOpcode for bytes not in the table and
    InvalidRegisterError for register indices >= REGISTER_COUNT.
    """
    try:
        op = Opcode(opcode)
    except ValueError:
        raise IllegalOpcode(opcode) from None

    if op is Opcode.NOP:
        return NopOp()
    if op is Opcode.PUSH:
        return PushOp(arg)
    if op is Opcode.POP:
        return PopRegisterOp(Register.from_index(arg))
    if op is Opcode.PUSHR:
        return PushRegisterOp(Register.from_index(arg))
    if op is Opcode.ADDR:
        r1, r2 = unpack_registers(arg)
        return AddRegisterOp(Register.from_index(r1), Register.from_index(r2))
    if op is Opcode.SIG:
        return SignalOp(arg)
    if op is Opcode.ADDS:
        return AddStackOp()
    raise IllegalOpcode(opcode)


def fetch_and_decode(memory, pc: int) -> Tuple[int, int, DecodedOp]:
    """Fetch the two instruction bytes at pc and decode them.

    Returns: (opcode, argument, decoded_op)
    """
    opcode = memory.read(pc)
    arg = memory.read(pc + 1)
    return opcode, arg, decode_instruction(opcode, arg)


def encode_instruction(opcode: Opcode, arg: int = 0) -> bytes:
    """Encode one instruction as its two bytes."""
    return bytes([int(opcode), arg & 0xFF])


__all__ = [
    'INSTRUCTION_SIZE', 'NONE', 'IMM8', 'REG', 'REG2',
    'Opcode', 'OpcodeInfo', 'OPCODES', 'MNEMONICS', 'HALT_SIGNAL',
    'pack_registers', 'unpack_registers',
    'NopOp', 'PushOp', 'PopRegisterOp', 'PushRegisterOp',
    'AddStackOp', 'AddRegisterOp', 'SignalOp', 'DecodedOp', 'DECODED_TYPES',
    'decode_instruction', 'fetch_and_decode', 'encode_instruction',
]
