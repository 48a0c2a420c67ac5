"""
Two-pass code generator for the vm16 assembler.

Input:  IR list from the Parser
Output: Flat binary image, 2 bytes per instruction (opcode, argument)

How the two passes work:
  Pass 1: Walk the IR, advancing the byte offset by each node's size.
          Label declarations record the current offset. A second
          declaration of the same name is an error.
  Pass 2: Emit bytes from the shared opcode table. Label references
          (PUSH name) are looked up in the now-complete label table, so
          forward references resolve to the same offset as backward ones.

The label table is built in pass 1 and only read in pass 2.
"""

from __future__ import annotations
import logging
from typing import Callable, Dict, List, Tuple

from vm16_emulator.cpu.decoder import Opcode, encode_instruction, pack_registers

from .errors import AssemblerError, LabelError
from .ir_nodes import (
    Instruction, Nop, PushImmediate, PushRegister, PushLabel, PopRegister,
    AddStack, AddRegister, Signal, Label,
)

logger = logging.getLogger(__name__)

MAX_LABEL_OFFSET = 0xFF   # PUSH argument is one byte


class CodeGenerator:
    """Lays out IR nodes, resolves labels and emits the binary image.

    Usage:
        gen = CodeGenerator()
        binary = gen.generate(instructions)
        print(gen.get_listing())
    """

    def __init__(self):
        self.labels: Dict[str, int] = {}      # label name -> byte offset
        self.binary: bytes = b""
        self._label_lines: Dict[str, int] = {}
        self._emitted: List[Tuple[int, bytes, Instruction]] = []
        self._encoders: Dict[type, Callable[[Instruction], bytes]] = {
            Nop:           lambda n: encode_instruction(Opcode.NOP),
            PushImmediate: lambda n: encode_instruction(Opcode.PUSH, n.value),
            PushRegister:  lambda n: encode_instruction(Opcode.PUSHR, n.reg),
            PushLabel:     self._encode_push_label,
            PopRegister:   lambda n: encode_instruction(Opcode.POP, n.reg),
            AddStack:      lambda n: encode_instruction(Opcode.ADDS),
            AddRegister:   lambda n: encode_instruction(
                Opcode.ADDR, pack_registers(n.dst, n.src)),
            Signal:        lambda n: encode_instruction(Opcode.SIG, n.code),
        }

    def generate(self, instructions: List[Instruction]) -> bytes:
        """Run both passes and return the binary image."""
        self.labels = {}
        self._label_lines = {}
        self._emitted = []

        size = self._pass1(instructions)
        logger.debug(f"Pass 1: {len(self.labels)} labels, {size} bytes")

        self.binary = self._pass2(instructions)
        logger.debug(f"Pass 2: emitted {len(self.binary)} bytes")
        return self.binary

    # ── Pass 1 ────────────────────────────────

    def _pass1(self, instructions: List[Instruction]) -> int:
        offset = 0
        for node in instructions:
            if isinstance(node, Label):
                if node.name in self.labels:
                    raise LabelError(
                        f"Duplicate label {node.name!r} "
                        f"(first defined on line {self._label_lines[node.name]})",
                        node.line)
                self.labels[node.name] = offset
                self._label_lines[node.name] = node.line
            offset += node.size
        return offset

    # ── Pass 2 ────────────────────────────────

    def _pass2(self, instructions: List[Instruction]) -> bytes:
        out = bytearray()
        for node in instructions:
            if isinstance(node, Label):
                continue
            encoder = self._encoders.get(type(node))
            if encoder is None:
                raise AssemblerError(f"Cannot encode {type(node).__name__}", node.line)
            data = encoder(node)
            if len(data) != node.size:
                raise AssemblerError(
                    f"{type(node).__name__}: expected {node.size} bytes, got {len(data)}",
                    node.line)
            self._emitted.append((len(out), data, node))
            out += data
        return bytes(out)

    def _encode_push_label(self, node: PushLabel) -> bytes:
        if node.name not in self.labels:
            raise LabelError(f"Undefined label: {node.name!r}", node.line)
        offset = self.labels[node.name]
        if offset > MAX_LABEL_OFFSET:
            raise LabelError(
                f"Label {node.name!r} at offset ${offset:04X} does not fit in 8 bits",
                node.line)
        return encode_instruction(Opcode.PUSH, offset)

    # ── Listing ───────────────────────────────

    def get_listing(self) -> str:
        """Return a human-readable listing showing offset, bytes, and source."""
        by_offset: Dict[int, List[str]] = {}
        for name, offset in self.labels.items():
            by_offset.setdefault(offset, []).append(name)

        lines = [f"{'ADDR':>6}  {'BYTES':<8}  SOURCE", "-" * 40]
        for offset, data, node in self._emitted:
            for name in by_offset.pop(offset, []):
                lines.append(f"        {'':8}  {name}:")
            hex_str = ' '.join(f'{b:02X}' for b in data)
            lines.append(f"${offset:04X}  {hex_str:<8}  {node.to_source()}")
        # Labels at the very end of the program
        for offset in sorted(by_offset):
            for name in by_offset[offset]:
                lines.append(f"        {'':8}  {name}:")
        return '\n'.join(lines)
