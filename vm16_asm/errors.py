"""
Compile-time error taxonomy for the vm16 assembler.

  lexical  LexerError          malformed number / unexpected character
  syntax   ParseError          unknown mnemonic, operand count or kind
  label    LabelError          duplicate declaration, undefined reference
  decode   DisassemblerError   bytes that do not form valid instructions
  format   HexFormatError      malformed hex-text program file

The pipeline stops at the first error; nothing is collected or recovered.
"""


class AssemblerError(Exception):
    """Base class for assembler errors. Carries the source line."""
    kind = "assembler"

    def __init__(self, message: str, line_num: int = 0, line_text: str = ""):
        self.message = message
        self.line_num = line_num
        self.line_text = line_text
        super().__init__(f"Line {line_num}: {message}" if line_num else message)


class LexerError(AssemblerError):
    kind = "lexical"

    def __init__(self, message: str, line_num: int, col: int, text: str = ""):
        self.col = col
        self.text = text
        super().__init__(f"{message} at column {col}: {text!r}", line_num)


class ParseError(AssemblerError):
    kind = "syntax"


class LabelError(AssemblerError):
    kind = "label"


class DisassemblerError(AssemblerError):
    kind = "decode"

    def __init__(self, message: str, offset: int):
        self.offset = offset
        super().__init__(f"{message} at offset ${offset:04X}")


class HexFormatError(AssemblerError):
    kind = "format"
