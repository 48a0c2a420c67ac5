"""
Lexer / Tokenizer for the vm16 assembler.

Converts line-oriented assembly source into a stream of tokens for the
parser. Each source line is tokenized independently: a comment starting
with ';' runs to end of line and is dropped before tokenization, and
operands are separated by whitespace and/or commas.

Token kinds:
    KEYWORD     PUSH, POP, ADDS ...        (case-insensitive, upper-cased)
    REGISTER    A, B, SP, R0 ...           (case-insensitive, upper-cased)
    IMMEDIATE   #10  or  %10               (decimal)
    HEX         $2A                        (hexadecimal)
    LABEL_DECL  loop:                      (identifier + trailing colon)
    IDENT       loop                       (label reference / unknown word)
    EOL         end of a non-empty line
    EOF         end of input
"""

from __future__ import annotations
import enum
import re
from dataclasses import dataclass
from typing import Iterator, List

from vm16_emulator.cpu.decoder import MNEMONICS
from vm16_emulator.cpu.regs import REGISTER_NAMES

from .errors import LexerError


COMMENT_CHAR = ';'
DECIMAL_MARKERS = ('#', '%')
HEX_MARKER = '$'

_WORD_RE = re.compile(r'[^\s,]+')
_IDENT_RE = re.compile(r'[A-Za-z_][A-Za-z0-9_.]*\Z')
_DEC_RE = re.compile(r'[0-9]+\Z')
_HEX_RE = re.compile(r'[0-9A-Fa-f]+\Z')


# ──────────────────────────────────────────────
# Token types
# ──────────────────────────────────────────────

class TokenType(enum.Enum):
    KEYWORD = "KEYWORD"
    REGISTER = "REGISTER"
    IMMEDIATE = "IMMEDIATE"
    HEX = "HEX"
    LABEL_DECL = "LABEL_DECL"
    IDENT = "IDENT"
    EOL = "EOL"
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str | int
    line: int
    col: int

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, L{self.line}:{self.col})"


KEYWORDS = frozenset(MNEMONICS)


def strip_comment(line: str) -> str:
    """Drop everything from the comment marker onward."""
    pos = line.find(COMMENT_CHAR)
    return line if pos < 0 else line[:pos]


class Lexer:
    """Tokenizes vm16 assembly source, one line at a time."""

    def __init__(self, source: str):
        self.source = source
        self.tokens: List[Token] = []

    @staticmethod
    def tokenize_line(text: str, line_num: int) -> Iterator[Token]:
        """Yield the tokens of a single source line.

        Blank and comment-only lines yield nothing.
        """
        code = strip_comment(text)
        for m in _WORD_RE.finditer(code):
            yield _classify(m.group(0), line_num, m.start() + 1)

    def iter_tokens(self) -> Iterator[Token]:
        """Lazily tokenize the whole source, with an EOL after each
        non-empty line and a final EOF."""
        line_num = 0
        for line_num, line in enumerate(self.source.splitlines(), 1):
            last = None
            for tok in self.tokenize_line(line, line_num):
                last = tok
                yield tok
            if last is not None:
                yield Token(TokenType.EOL, "", line_num, len(line) + 1)
        yield Token(TokenType.EOF, "", line_num + 1, 1)

    def tokenize(self) -> List[Token]:
        """Tokenize the entire source and return a list of tokens."""
        self.tokens = list(self.iter_tokens())
        return self.tokens


def _classify(word: str, line_num: int, col: int) -> Token:
    head = word[0]

    if word.endswith(':') and len(word) > 1:
        name = word[:-1]
        if not _IDENT_RE.match(name):
            raise LexerError("Invalid label name", line_num, col, word)
        if name.upper() in KEYWORDS or name.upper() in REGISTER_NAMES:
            raise LexerError("Label name collides with a register/mnemonic", line_num, col, word)
        return Token(TokenType.LABEL_DECL, name, line_num, col)

    if head in DECIMAL_MARKERS:
        digits = word[1:]
        if not _DEC_RE.match(digits):
            raise LexerError("Malformed decimal literal", line_num, col, word)
        return Token(TokenType.IMMEDIATE, int(digits, 10), line_num, col)

    if head == HEX_MARKER:
        digits = word[1:]
        if not _HEX_RE.match(digits):
            raise LexerError("Malformed hexadecimal literal", line_num, col, word)
        return Token(TokenType.HEX, int(digits, 16), line_num, col)

    if _IDENT_RE.match(word):
        upper = word.upper()
        if upper in KEYWORDS:
            return Token(TokenType.KEYWORD, upper, line_num, col)
        if upper in REGISTER_NAMES:
            return Token(TokenType.REGISTER, upper, line_num, col)
        return Token(TokenType.IDENT, word, line_num, col)

    if head.isdigit():
        raise LexerError("Numeric literal needs a '#' (decimal) or '$' (hex) prefix",
                         line_num, col, word)

    raise LexerError("Unexpected token", line_num, col, word)
