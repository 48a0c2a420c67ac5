"""
Disassembler: binary image back to IR nodes.

Uses the same decoder as the Machine, so a byte pair disassembles if and
only if the VM would execute it. Labels do not survive assembly; a
`PUSH label` comes back as a plain PushImmediate of the label's offset.
"""

from typing import List

from vm16_emulator.cpu.decoder import (
    INSTRUCTION_SIZE,
    NopOp, PushOp, PopRegisterOp, PushRegisterOp, AddStackOp, AddRegisterOp, SignalOp,
    decode_instruction,
)
from vm16_emulator.errors import DecodeError

from .errors import DisassemblerError
from .ir_nodes import (
    Instruction, Nop, PushImmediate, PushRegister, PopRegister,
    AddStack, AddRegister, Signal,
)


def _to_node(op) -> Instruction:
    if isinstance(op, NopOp):
        return Nop()
    if isinstance(op, PushOp):
        return PushImmediate(value=op.value)
    if isinstance(op, PopRegisterOp):
        return PopRegister(reg=op.reg)
    if isinstance(op, PushRegisterOp):
        return PushRegister(reg=op.reg)
    if isinstance(op, AddStackOp):
        return AddStack()
    if isinstance(op, AddRegisterOp):
        return AddRegister(dst=op.dst, src=op.src)
    if isinstance(op, SignalOp):
        return Signal(code=op.code)
    raise TypeError(f"No IR node for {type(op).__name__}")


def disassemble(data: bytes) -> List[Instruction]:
    """Decode a binary image into a list of IR nodes."""
    data = bytes(data)
    if len(data) % INSTRUCTION_SIZE:
        raise DisassemblerError(
            f"Image length {len(data)} is not a multiple of {INSTRUCTION_SIZE}",
            len(data) - 1)

    nodes: List[Instruction] = []
    for offset in range(0, len(data), INSTRUCTION_SIZE):
        opcode, arg = data[offset], data[offset + 1]
        try:
            op = decode_instruction(opcode, arg)
        except DecodeError as e:
            raise DisassemblerError(e.message, offset) from e
        nodes.append(_to_node(op))
    return nodes


def format_instruction(node: Instruction) -> str:
    """Canonical assembly text for one IR node."""
    return node.to_source()


def disassemble_listing(data: bytes, base_addr: int = 0) -> List[str]:
    """Disassemble into '$ADDR  BYTES  SOURCE' lines."""
    lines = []
    for i, node in enumerate(disassemble(data)):
        offset = i * INSTRUCTION_SIZE
        raw = bytes(data[offset:offset + INSTRUCTION_SIZE])
        lines.append(f"${base_addr + offset:04X}  {raw.hex().upper():6s}  "
                     f"{format_instruction(node)}")
    return lines
