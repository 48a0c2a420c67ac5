"""
Parser for the vm16 assembler.

Consumes the token stream from the Lexer and produces the ordered list of
IR nodes defined in ir_nodes. The grammar is one statement per line,
optionally preceded by label declarations:

    line      := LABEL_DECL* [statement] EOL
    statement := NOP | ADDS
               | PUSH  (IMMEDIATE | HEX | REGISTER | IDENT)
               | PUSHR REGISTER
               | POP   REGISTER
               | ADDR  REGISTER REGISTER
               | SIG   (IMMEDIATE | HEX)

Label references (PUSH IDENT) are kept symbolic here; the code generator
resolves them, so forward references are fine. Parsing stops at the
first error.
"""

from __future__ import annotations
from typing import Callable, Dict, List, Optional

from vm16_emulator.cpu.regs import Register

from .errors import ParseError
from .ir_nodes import (
    Instruction, Nop, PushImmediate, PushRegister, PushLabel, PopRegister,
    AddStack, AddRegister, Signal, Label,
)
from .lexer import Token, TokenType


IMMEDIATE_KINDS = (TokenType.IMMEDIATE, TokenType.HEX)

_KIND_NAMES = {
    TokenType.KEYWORD: "mnemonic",
    TokenType.REGISTER: "register",
    TokenType.IMMEDIATE: "decimal immediate",
    TokenType.HEX: "hex immediate",
    TokenType.LABEL_DECL: "label declaration",
    TokenType.IDENT: "identifier",
    TokenType.EOL: "end of line",
    TokenType.EOF: "end of input",
}


def _describe(tok: Token) -> str:
    if tok.type in (TokenType.EOL, TokenType.EOF):
        return _KIND_NAMES[tok.type]
    return f"{_KIND_NAMES[tok.type]} {tok.value!r}"


class Parser:
    """Turns a token list into a list of IR instructions."""

    def __init__(self, tokens: List[Token], source: str = ""):
        self.tokens = list(tokens)
        if not self.tokens or self.tokens[-1].type is not TokenType.EOF:
            last_line = self.tokens[-1].line if self.tokens else 0
            self.tokens.append(Token(TokenType.EOF, "", last_line + 1, 1))
        self.source_lines = source.splitlines()
        self.pos = 0
        self._statements: Dict[str, Callable[[Token], Instruction]] = {
            'NOP':   self._parse_nop,
            'PUSH':  self._parse_push,
            'PUSHR': self._parse_pushr,
            'POP':   self._parse_pop,
            'ADDS':  self._parse_adds,
            'ADDR':  self._parse_addr,
            'SIG':   self._parse_sig,
        }

    # ── Helpers ─────────────────────────────

    def _cur(self) -> Token:
        return self.tokens[self.pos]

    def _at(self, *types: TokenType) -> bool:
        return self._cur().type in types

    def _advance(self) -> Token:
        tok = self.tokens[self.pos]
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return tok

    def _match(self, *types: TokenType) -> Optional[Token]:
        if self._cur().type in types:
            return self._advance()
        return None

    def _error(self, message: str, tok: Token) -> ParseError:
        text = ""
        if 0 < tok.line <= len(self.source_lines):
            text = self.source_lines[tok.line - 1]
        return ParseError(message, tok.line, text)

    def _operand(self, mnemonic: Token, kinds, expected: str) -> Token:
        """Consume one operand of an allowed kind."""
        tok = self._cur()
        if tok.type in (TokenType.EOL, TokenType.EOF):
            raise self._error(f"{mnemonic.value}: missing operand, expected {expected}", mnemonic)
        if tok.type not in kinds:
            raise self._error(
                f"{mnemonic.value}: invalid operand, expected {expected}, found {_describe(tok)}",
                tok)
        return self._advance()

    def _imm8(self, mnemonic: Token, tok: Token) -> int:
        if not 0 <= tok.value <= 0xFF:
            raise self._error(
                f"{mnemonic.value}: immediate {tok.value} out of 8-bit range (0..255)", tok)
        return tok.value

    # ── Top-level parsing ─────────────────────

    def parse(self) -> List[Instruction]:
        """Parse the full token stream into a list of IR nodes."""
        program: List[Instruction] = []
        while not self._at(TokenType.EOF):
            if self._match(TokenType.EOL):
                continue
            program.extend(self._parse_line())
        return program

    def _parse_line(self) -> List[Instruction]:
        nodes: List[Instruction] = []
        while self._at(TokenType.LABEL_DECL):
            tok = self._advance()
            nodes.append(Label(name=tok.value, line=tok.line))

        if self._match(TokenType.EOL) or self._at(TokenType.EOF):
            return nodes

        tok = self._cur()
        if tok.type is not TokenType.KEYWORD:
            if tok.type is TokenType.IDENT:
                raise self._error(f"Unknown mnemonic: {tok.value!r}", tok)
            raise self._error(f"Expected mnemonic, found {_describe(tok)}", tok)
        self._advance()

        nodes.append(self._statements[tok.value](tok))

        if not self._at(TokenType.EOL, TokenType.EOF):
            raise self._error(
                f"{tok.value}: too many operands, unexpected {_describe(self._cur())}",
                self._cur())
        self._match(TokenType.EOL)
        return nodes

    # ── Statements ────────────────────────────

    def _parse_nop(self, tok: Token) -> Instruction:
        return Nop(line=tok.line)

    def _parse_adds(self, tok: Token) -> Instruction:
        return AddStack(line=tok.line)

    def _parse_push(self, tok: Token) -> Instruction:
        arg = self._operand(tok, IMMEDIATE_KINDS + (TokenType.REGISTER, TokenType.IDENT),
                            "immediate, register or label")
        if arg.type is TokenType.REGISTER:
            return PushRegister(reg=Register[arg.value], line=tok.line)
        if arg.type is TokenType.IDENT:
            return PushLabel(name=arg.value, line=tok.line)
        return PushImmediate(value=self._imm8(tok, arg), line=tok.line)

    def _parse_pushr(self, tok: Token) -> Instruction:
        arg = self._operand(tok, (TokenType.REGISTER,), "register")
        return PushRegister(reg=Register[arg.value], line=tok.line)

    def _parse_pop(self, tok: Token) -> Instruction:
        arg = self._operand(tok, (TokenType.REGISTER,), "register")
        return PopRegister(reg=Register[arg.value], line=tok.line)

    def _parse_addr(self, tok: Token) -> Instruction:
        dst = self._operand(tok, (TokenType.REGISTER,), "two registers")
        src = self._operand(tok, (TokenType.REGISTER,), "two registers")
        return AddRegister(dst=Register[dst.value], src=Register[src.value], line=tok.line)

    def _parse_sig(self, tok: Token) -> Instruction:
        arg = self._operand(tok, IMMEDIATE_KINDS, "signal code")
        return Signal(code=self._imm8(tok, arg), line=tok.line)
