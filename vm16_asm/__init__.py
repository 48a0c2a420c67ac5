"""
vm16 Assembler
==============
Assembles vm16 assembly text into the 2-byte-per-instruction binary image
executed by vm16_emulator.Machine.

Architecture:
    ┌──────────┐    ┌──────────┐    ┌──────────┐    ┌────────────┐
    │ Source   │───>│  Lexer   │───>│  Parser  │───>│  CodeGen   │───> bytes
    │ (.asm)   │    │ (tokens) │    │   (IR)   │    │ (2 passes) │
    └──────────┘    └──────────┘    └──────────┘    └────────────┘

    - lexer.py:        line-oriented tokenizer (comments, #dec / $hex, labels)
    - parser.py:       one statement per line → list of IR nodes
    - ir_nodes.py:     frozen dataclasses, each knows its encoded size
    - codegen.py:      pass 1 lays out labels, pass 2 emits bytes
    - disassembler.py: bytes → IR nodes via the VM's own decoder
    - hexfile.py:      hex-text / raw-binary program files

The opcode and register tables live in vm16_emulator and are shared by
the VM, the code generator and the disassembler.
"""

import logging

__version__ = "0.1.0"

from .lexer import Lexer, Token, TokenType
from .ir_nodes import *
from .parser import Parser
from .codegen import CodeGenerator
from .disassembler import disassemble, disassemble_listing, format_instruction
from .hexfile import parse_hex_text, to_hex_text, read_program, write_program
from .errors import (
    AssemblerError, LexerError, ParseError, LabelError, DisassemblerError, HexFormatError,
)

logger = logging.getLogger(__name__)


def parse_source(source: str):
    """Lexer -> Parser. Returns the IR list."""
    tokens = Lexer(source).tokenize()
    return Parser(tokens, source).parse()


def assemble_source(source: str, *, output: str = "binary"):
    """Assemble vm16 source text.

    Full pipeline: Lexer -> Parser -> IR -> CodeGenerator.

    Args:
        source: Assembly source string.
        output: Output format: 'binary' (default), 'hex', 'listing' or 'ir'.

    Returns:
        Raw bytes (bytes), hex text (str), listing text (str) or the IR
        list, depending on output.
    """
    program = parse_source(source)
    if output == 'ir':
        return program

    gen = CodeGenerator()
    binary = gen.generate(program)
    logger.info(f"Assembled {len(program)} nodes into {len(binary)} bytes, "
                f"{len(gen.labels)} labels")

    if output == 'binary':
        return binary
    elif output == 'hex':
        return to_hex_text(binary)
    elif output == 'listing':
        return gen.get_listing()
    raise ValueError(f"Unknown output format: {output!r}")
