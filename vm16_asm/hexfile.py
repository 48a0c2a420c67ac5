"""
Program file formats.

Hex text:
    Whitespace-separated two-digit hex bytes, any number per line.
    Blank lines and lines starting with ';' are skipped.

        ; PUSH #10, PUSH #24, ADDS, POP B
        01 0A 01 18
        0F 00 02 01

Raw binary:
    The image bytes as-is.

read_program() picks the format from the file extension.
"""

import os
from typing import Union

from .errors import HexFormatError

HEX_EXTENSIONS = ('.hex', '.txt')

PathLike = Union[str, "os.PathLike[str]"]


def parse_hex_text(text: str) -> bytes:
    """Convert hex text into raw bytes."""
    data = bytearray()
    for line_num, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith(';'):
            continue
        for word in line.split():
            if len(word) != 2:
                raise HexFormatError(f"Expected a two-digit hex byte, got {word!r}",
                                     line_num, line)
            try:
                data.append(int(word, 16))
            except ValueError:
                raise HexFormatError(f"Invalid hex byte {word!r}", line_num, line) from None
    return bytes(data)


def to_hex_text(data: bytes, per_line: int = 16) -> str:
    """Render bytes as hex text, per_line bytes to a line."""
    if per_line <= 0:
        raise ValueError(f"per_line must be positive, got {per_line}")
    data = bytes(data)
    lines = []
    for i in range(0, len(data), per_line):
        lines.append(' '.join(f'{b:02X}' for b in data[i:i + per_line]))
    return '\n'.join(lines) + ('\n' if lines else '')


def is_hex_path(path: PathLike) -> bool:
    return os.path.splitext(str(path))[1].lower() in HEX_EXTENSIONS


def read_program(path: PathLike) -> bytes:
    """Read a program image, as hex text for .hex/.txt and raw bytes otherwise."""
    if is_hex_path(path):
        with open(path, "r", encoding="utf-8") as f:
            return parse_hex_text(f.read())
    with open(path, "rb") as f:
        return f.read()


def write_program(path: PathLike, data: bytes):
    """Write a program image in the format implied by the extension."""
    if is_hex_path(path):
        with open(path, "w", encoding="utf-8") as f:
            f.write(to_hex_text(data))
    else:
        with open(path, "wb") as f:
            f.write(bytes(data))
