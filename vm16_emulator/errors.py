"""
vm16 Emulator — Runtime Error Taxonomy

Every failure inside Machine.step() is one of these. They all carry the
PC of the instruction that was executing (when known) so a driver can
report exactly where the program died.

  bounds  — MemoryBoundsError      (address outside memory)
  stack   — StackUnderflowError    (pop below the stack base)
            StackOverflowError     (push past the end of memory)
  decode  — IllegalOpcode          (opcode byte not in the table)
            InvalidRegisterError   (register index >= register count)
  state   — MachineHaltedError     (step() on a machine that stopped)
"""

from typing import Optional


class MachineError(Exception):
    """Base class for all fatal runtime errors."""
    kind = "runtime"

    def __init__(self, message: str, pc: Optional[int] = None):
        self.pc = pc
        self.message = message
        super().__init__(f"{message} (PC=${pc:04X})" if pc is not None else message)

    def with_pc(self, pc: int) -> "MachineError":
        """Attach the faulting PC if the raiser did not know it."""
        if self.pc is None:
            self.pc = pc
            self.args = (f"{self.message} (PC=${pc:04X})",)
        return self


class MemoryBoundsError(MachineError):
    kind = "bounds"

    def __init__(self, address: int, size: int, pc: Optional[int] = None):
        self.address = address
        self.size = size
        super().__init__(f"Memory access out of bounds: ${address:04X} (size ${size:04X})", pc)


class StackError(MachineError):
    kind = "stack"


class StackUnderflowError(StackError):
    def __init__(self, sp: int, stack_base: int, pc: Optional[int] = None):
        self.sp = sp
        self.stack_base = stack_base
        super().__init__(f"Stack underflow: SP=${sp:04X} at stack base ${stack_base:04X}", pc)


class StackOverflowError(StackError):
    def __init__(self, sp: int, size: int, pc: Optional[int] = None):
        self.sp = sp
        self.size = size
        super().__init__(f"Stack overflow: SP=${sp:04X} with memory size ${size:04X}", pc)


class DecodeError(MachineError):
    kind = "decode"


class IllegalOpcode(DecodeError):
    """Raised when an undefined opcode is encountered."""

    def __init__(self, opcode: int, pc: Optional[int] = None):
        self.opcode = opcode
        super().__init__(f"Unknown opcode ${opcode:02X}", pc)


class InvalidRegisterError(DecodeError):
    def __init__(self, index: int, pc: Optional[int] = None):
        self.index = index
        super().__init__(f"Unknown register index ${index:X}", pc)


class MachineHaltedError(MachineError):
    kind = "state"

    def __init__(self, state: str, pc: Optional[int] = None):
        self.state = state
        super().__init__(f"Machine is {state}; step() is not allowed", pc)
