"""
vm16 Emulator — Main Machine Class

Integrates:
  - Register file (cpu/regs.py)
  - Linear memory (mem/memory.py)
  - Opcode decoder (cpu/decoder.py)

Execution model, one instruction per step():
  1. Fetch opcode byte at PC and argument byte at PC+1
  2. Advance PC by 2 (before execution)
  3. Decode into a DecodedOp variant (unknown opcode → IllegalOpcode)
  4. Execute the handler for that variant
  5. Driver checks termination (halted, faulted, PC past the loaded image)

Termination reasons returned by run():
  - HALT:     halt signal raised (SIG $09 by default)
  - END:      PC ran past the end of the loaded program
  - BREAK:    breakpoint address reached
  - TIMEOUT:  max_steps exhausted
  - ERROR:    a MachineError was raised (kept in last_error)

Any MachineError leaves the machine FAULTED. A machine that is HALTED or
FAULTED refuses further step() calls with MachineHaltedError; state is
still fully readable for inspection.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from .cpu.decoder import (
    INSTRUCTION_SIZE, HALT_SIGNAL, DECODED_TYPES, OPCODES, Opcode,
    NopOp, PushOp, PopRegisterOp, PushRegisterOp, AddStackOp, AddRegisterOp, SignalOp,
    fetch_and_decode,
)
from .cpu.regs import Register, RegisterFile, DEFAULT_STACK_BASE
from .mem.memory import Memory, DEFAULT_MEMORY_SIZE
from .errors import (
    MachineError, MachineHaltedError, StackOverflowError, StackUnderflowError,
)

logger = logging.getLogger(__name__)

MAX_MEMORY_SIZE = 0x10000   # 16-bit address space


# ──────────────────────────────────────────────
# Machine profiles
# ──────────────────────────────────────────────

MACHINE_PROFILES = {
    "default": {
        "memory_size": DEFAULT_MEMORY_SIZE,
        "stack_base": DEFAULT_STACK_BASE,
        "halt_signal": HALT_SIGNAL,
        "description": "8 KB memory, stack at $1000",
    },
    "small": {
        "memory_size": 1024,
        "stack_base": 0x0200,
        "halt_signal": HALT_SIGNAL,
        "description": "1 KB memory, stack at $0200",
    },
}


class MachineState(Enum):
    RUNNING = 'running'
    HALTED = 'halted'
    FAULTED = 'faulted'


class StopReason(Enum):
    HALT = 'HALT'
    END = 'END'
    BREAK = 'BREAK'
    TIMEOUT = 'TIMEOUT'
    ERROR = 'ERROR'


SignalHandler = Callable[["Machine"], None]


class Machine:
    """16-bit stack-and-register virtual machine.

    Usage:
        vm = Machine()
        vm.load_program(assemble_source(text))
        reason = vm.run()
        print(vm.get_register(Register.B))
    """

    def __init__(self, profile: str = "default", *,
                 memory_size: Optional[int] = None,
                 stack_base: Optional[int] = None,
                 halt_signal: Optional[int] = None):
        if profile not in MACHINE_PROFILES:
            raise ValueError(f"Unknown machine profile: {profile!r} "
                             f"(choose from {', '.join(MACHINE_PROFILES)})")
        config = MACHINE_PROFILES[profile]
        self.memory_size = memory_size if memory_size is not None else config["memory_size"]
        self.stack_base = stack_base if stack_base is not None else config["stack_base"]
        self.halt_signal = halt_signal if halt_signal is not None else config["halt_signal"]

        if not 0 < self.memory_size <= MAX_MEMORY_SIZE:
            raise ValueError(f"Memory size ${self.memory_size:X} outside 1..${MAX_MEMORY_SIZE:X} "
                             f"(SP and PC are 16-bit)")
        if not 0 <= self.stack_base < self.memory_size:
            raise ValueError(f"Stack base ${self.stack_base:04X} outside memory "
                             f"of size ${self.memory_size:04X}")

        # Core components
        self.regs = RegisterFile(stack_base=self.stack_base)
        self.mem = Memory(self.memory_size)

        self.state = MachineState.RUNNING
        self.program_end = 0
        self.steps = 0
        self.last_error: Optional[MachineError] = None

        # Signal codes raised so far, in order
        self.signals: List[int] = []
        self.signal_handlers: Dict[int, SignalHandler] = {}
        self.define_handler(self.halt_signal, Machine.halt)

        self._breakpoints: Set[int] = set()
        self._resume_from_break: Optional[int] = None

        self._trace = False
        self.trace: List[str] = []

        self._dispatch = self._build_dispatch()

    # ══════════════════════════════════════════════
    # Loading
    # ══════════════════════════════════════════════

    def load_program(self, data: bytes, addr: int = 0) -> Tuple[int, int]:
        """Load a program image and mark where it ends.

        Returns (bytes_loaded, instructions_loaded).
        """
        loaded, instructions = self.mem.load_program(data, addr)
        self.program_end = max(self.program_end, addr + loaded)
        logger.info(f"Loaded {loaded} bytes ({instructions} instructions) at ${addr:04X}")
        return loaded, instructions

    def load_binary(self, path_or_data, addr: int = 0) -> Tuple[int, int]:
        """Load a raw binary file or bytes into memory."""
        if isinstance(path_or_data, (str, Path)):
            data = Path(path_or_data).read_bytes()
        else:
            data = bytes(path_or_data)
        return self.load_program(data, addr)

    # ══════════════════════════════════════════════
    # Signals
    # ══════════════════════════════════════════════

    def define_handler(self, code: int, handler: SignalHandler):
        """Register handler(machine) to run when SIG code executes."""
        self.signal_handlers[code & 0xFF] = handler

    def halt(self):
        """Stop the machine normally."""
        self.state = MachineState.HALTED
        logger.debug(f"Machine halted at PC=${self.regs.PC:04X}")

    # ══════════════════════════════════════════════
    # Stack
    # ══════════════════════════════════════════════

    def push(self, value: int):
        """Store a 16-bit value at SP, then SP += 2."""
        sp = self.regs.SP
        if sp + 2 > self.mem.size:
            raise StackOverflowError(sp, self.mem.size)
        self.mem.write2(sp, value & 0xFFFF)
        self.regs.SP = sp + 2

    def pop(self) -> int:
        """SP -= 2, then read the 16-bit value at SP."""
        sp = self.regs.SP
        if sp - 2 < self.stack_base:
            raise StackUnderflowError(sp, self.stack_base)
        value = self.mem.read2(sp - 2)
        self.regs.SP = sp - 2
        return value

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self):
        """Execute one instruction.

        Raises MachineHaltedError if the machine is not running, and
        re-raises any MachineError from the instruction after moving the
        machine to FAULTED.
        """
        if self.state is not MachineState.RUNNING:
            raise MachineHaltedError(self.state.value, self.regs.PC)

        pc = self.regs.PC
        try:
            opcode, arg, op = fetch_and_decode(self.mem, pc)
            self.regs.PC = pc + INSTRUCTION_SIZE

            if self._trace:
                self.trace.append(f"${pc:04X}: {OPCODES[Opcode(opcode)].mnemonic:6s} "
                                  f"${arg:02X}  SP=${self.regs.SP:04X}")
            logger.debug("PC=$%04X opcode=$%02X arg=$%02X => %s", pc, opcode, arg, op)

            self._dispatch[type(op)](op)
        except MachineError as e:
            self.state = MachineState.FAULTED
            self.last_error = e.with_pc(pc)
            logger.debug(f"Fault: {e}")
            raise

        self.steps += 1

    def run(self, max_steps: Optional[int] = None) -> StopReason:
        """Step until a termination condition.

        Args:
            max_steps: Maximum instructions to execute in this call

        Returns:
            StopReason indicating why execution stopped
        """
        executed = 0
        while True:
            if self.state is MachineState.HALTED:
                return StopReason.HALT
            if self.state is MachineState.FAULTED:
                return StopReason.ERROR

            pc = self.regs.PC
            if pc >= self.program_end:
                return StopReason.END
            if max_steps is not None and executed >= max_steps:
                return StopReason.TIMEOUT
            if pc in self._breakpoints and self._resume_from_break != pc:
                self._resume_from_break = pc
                return StopReason.BREAK
            self._resume_from_break = None

            try:
                self.step()
            except MachineError:
                return StopReason.ERROR
            executed += 1

    @property
    def finished(self) -> bool:
        """True when a driver should stop calling step()."""
        return (self.state is not MachineState.RUNNING
                or self.regs.PC >= self.program_end)

    @property
    def halted(self) -> bool:
        """True only after a normal halt. Faults are reported through
        state (FAULTED) and finished."""
        return self.state is MachineState.HALTED

    # ══════════════════════════════════════════════
    # Instruction handlers
    # ══════════════════════════════════════════════

    def _build_dispatch(self) -> dict:
        """Build decoded-op type → handler dispatch table."""
        dispatch = {
            NopOp:          self._op_nop,
            PushOp:         self._op_push,
            PopRegisterOp:  self._op_pop_register,
            PushRegisterOp: self._op_push_register,
            AddStackOp:     self._op_add_stack,
            AddRegisterOp:  self._op_add_register,
            SignalOp:       self._op_signal,
        }
        missing = set(DECODED_TYPES) - set(dispatch)
        if missing:
            raise RuntimeError(f"No handler for {sorted(t.__name__ for t in missing)}")
        return dispatch

    def _op_nop(self, op: NopOp):
        pass

    def _op_push(self, op: PushOp):
        self.push(op.value)

    def _op_pop_register(self, op: PopRegisterOp):
        self.regs[op.reg] = self.pop()

    def _op_push_register(self, op: PushRegisterOp):
        self.push(self.regs[op.reg])

    def _op_add_stack(self, op: AddStackOp):
        top = self.pop()
        nxt = self.pop()
        result = (top + nxt) & 0xFFFF
        logger.debug(f"AddStack: {nxt} + {top} = {result}")
        self.push(result)

    def _op_add_register(self, op: AddRegisterOp):
        self.regs[op.dst] = (self.regs[op.dst] + self.regs[op.src]) & 0xFFFF

    def _op_signal(self, op: SignalOp):
        self.signals.append(op.code)
        handler = self.signal_handlers.get(op.code)
        if handler is None:
            logger.warning(f"Signal ${op.code:02X} raised with no handler (recorded)")
            return
        handler(self)

    # ══════════════════════════════════════════════
    # Inspection (read-only)
    # ══════════════════════════════════════════════

    def get_register(self, reg) -> int:
        return self.regs[reg]

    def set_register(self, reg, value: int):
        self.regs[reg] = value

    @property
    def registers(self) -> Tuple[int, ...]:
        return self.regs.snapshot()

    @property
    def pc(self) -> int:
        return self.regs.PC

    @property
    def sp(self) -> int:
        return self.regs.SP

    def stack_window(self, count: int = 8) -> List[Tuple[int, int]]:
        """Most recent stack entries as (address, value), top of stack first."""
        entries = []
        addr = self.regs.SP - 2
        while addr >= self.stack_base and len(entries) < count:
            if addr + 1 >= self.mem.size:
                break
            entries.append((addr, self.mem.read2(addr)))
            addr -= 2
        return entries

    def add_breakpoint(self, addr: int):
        self._breakpoints.add(addr)

    def remove_breakpoint(self, addr: int):
        self._breakpoints.discard(addr)

    @property
    def breakpoints(self) -> Set[int]:
        return set(self._breakpoints)

    def enable_trace(self, enabled: bool = True):
        self._trace = enabled

    def display(self) -> str:
        """One-line register dump plus machine state."""
        return f"[{self.state.value}] {self.regs.display()}"

    def format_state(self) -> str:
        """Multi-line final state report."""
        lines = [
            "-" * 47,
            "Final State",
            "-" * 47,
            f"  State: {self.state.value}  Steps: {self.steps}",
            "  Registers:",
        ]
        for reg in Register:
            value = self.regs[reg]
            lines.append(f"    {reg.name:<6} 0x{value:04X} ({value}) [{reg.role.value}]")
        lines.append(f"  Stack Pointer (SP):   0x{self.regs.SP:04X}")
        lines.append(f"  Program Counter (PC): 0x{self.regs.PC:04X}")
        window = self.stack_window()
        if window:
            lines.append("  Stack (top first):")
            for addr, value in window:
                lines.append(f"    ${addr:04X}: 0x{value:04X} ({value})")
        if self.signals:
            lines.append("  Signals: " + ' '.join(f"${s:02X}" for s in self.signals))
        if self.last_error is not None:
            lines.append(f"  Error: {self.last_error}")
        lines.append("-" * 47)
        return '\n'.join(lines)

    def print_state(self):
        print(self.format_state())

    def reset(self):
        """Reset registers and run state; memory contents are kept."""
        self.regs.reset()
        self.state = MachineState.RUNNING
        self.steps = 0
        self.last_error = None
        self.signals = []
        self.trace = []
        self._resume_from_break = None
