"""
vm16 Emulator — Core Tests

Every program here is hand-assembled from the opcode table:
  00 NOP   01 PUSH imm   02 POP r   03 PUSHR r   04 ADDR r1r2
  09 SIG code   0F ADDS
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from vm16_emulator import (
    Machine, MachineState, StopReason, MACHINE_PROFILES, Register,
    MachineError, MemoryBoundsError, StackUnderflowError, StackOverflowError,
    IllegalOpcode, InvalidRegisterError, MachineHaltedError,
)


def _machine(program: bytes, **kwargs) -> Machine:
    vm = Machine(**kwargs)
    vm.load_program(program)
    return vm


# ═══════════════════════════════════════════════
# Test Group 1: Individual Instructions
# ═══════════════════════════════════════════════

class TestStackInstructions:

    def test_push_stores_little_endian_at_sp(self):
        vm = _machine(bytes([0x01, 0x2A]))
        vm.step()
        assert vm.sp == 0x1002
        assert vm.mem.read2(0x1000) == 0x002A
        assert vm.mem.read(0x1000) == 0x2A
        assert vm.mem.read(0x1001) == 0x00

    def test_push_pop_round_trip(self):
        """PUSH v / POP r leaves r == v and SP unchanged."""
        for value in (0, 1, 0x7F, 0xFF):
            vm = _machine(bytes([0x01, value, 0x02, Register.C]))
            vm.step()
            vm.step()
            assert vm.get_register(Register.C) == value
            assert vm.sp == 0x1000

    def test_pushr_pushes_register(self):
        vm = _machine(bytes([0x03, Register.R2, 0x02, Register.A]))
        vm.set_register(Register.R2, 0xBEEF)
        vm.step()
        assert vm.mem.read2(0x1000) == 0xBEEF
        vm.step()
        assert vm.get_register(Register.A) == 0xBEEF

    def test_n_pushes_n_pops_restore_sp(self):
        n = 5
        program = bytes([0x01, 0x01] * n + [0x02, 0x00] * n)
        vm = _machine(program)
        assert vm.run() is StopReason.END
        assert vm.sp == 0x1000

    def test_extra_pop_underflows(self):
        n = 3
        program = bytes([0x01, 0x01] * n + [0x02, 0x00] * (n + 1))
        vm = _machine(program)
        assert vm.run() is StopReason.ERROR
        assert isinstance(vm.last_error, StackUnderflowError)
        assert vm.sp == 0x1000

    def test_pop_on_empty_stack(self):
        vm = _machine(bytes([0x02, 0x00]))
        with pytest.raises(StackUnderflowError):
            vm.step()
        assert vm.state is MachineState.FAULTED
        assert vm.sp == 0x1000
        assert vm.last_error.pc == 0x0000

    def test_push_overflow(self):
        # program at 0..5, stack base 6, room for two entries
        program = bytes([0x01, 0x01, 0x01, 0x02, 0x01, 0x03])
        vm = _machine(program, memory_size=10, stack_base=6)
        vm.step()
        vm.step()
        with pytest.raises(StackOverflowError):
            vm.step()
        assert vm.state is MachineState.FAULTED
        assert vm.sp == 10


class TestAddInstructions:

    def test_add_stack_example(self):
        """PUSH #10, PUSH #24, ADDS, POP B → B = 34."""
        vm = _machine(bytes([0x01, 0x0A, 0x01, 0x18, 0x0F, 0x00, 0x02, 0x01]))
        assert vm.run() is StopReason.END
        assert vm.get_register(Register.B) == 34
        assert vm.sp == 0x1000
        assert vm.pc == 8
        assert vm.steps == 4

    def test_add_stack_order_independent(self):
        a = _machine(bytes([0x01, 0x05, 0x01, 0xF0, 0x0F, 0x00, 0x02, 0x00]))
        b = _machine(bytes([0x01, 0xF0, 0x01, 0x05, 0x0F, 0x00, 0x02, 0x00]))
        a.run()
        b.run()
        assert a.get_register(Register.A) == b.get_register(Register.A) == 0xF5

    def test_add_stack_wraps(self):
        vm = _machine(bytes([0x03, 0x00, 0x03, 0x01, 0x0F, 0x00, 0x02, 0x02]))
        vm.set_register(Register.A, 0xFFFF)
        vm.set_register(Register.B, 0x0003)
        vm.run()
        assert vm.get_register(Register.C) == 0x0002

    def test_add_stack_with_one_entry_underflows(self):
        vm = _machine(bytes([0x01, 0x01, 0x0F, 0x00]))
        vm.step()
        with pytest.raises(StackUnderflowError):
            vm.step()

    def test_add_register(self):
        vm = _machine(bytes([0x04, 0x01]))     # ADDR A B
        vm.set_register(Register.A, 200)
        vm.set_register(Register.B, 100)
        vm.step()
        assert vm.get_register(Register.A) == 300
        assert vm.get_register(Register.B) == 100

    def test_add_register_wraps(self):
        vm = _machine(bytes([0x04, 0x01]))
        vm.set_register(Register.A, 0xFFFF)
        vm.set_register(Register.B, 2)
        vm.step()
        assert vm.get_register(Register.A) == 1
        assert vm.get_register(Register.B) == 2

    def test_add_register_extended(self):
        vm = _machine(bytes([0x04, 0x8C]))     # ADDR R0 R4
        vm.set_register(Register.R0, 1)
        vm.set_register(Register.R4, 41)
        vm.step()
        assert vm.get_register(Register.R0) == 42

    def test_add_register_to_itself(self):
        vm = _machine(bytes([0x04, 0x22]))     # ADDR C C
        vm.set_register(Register.C, 21)
        vm.step()
        assert vm.get_register(Register.C) == 42


class TestNop:

    def test_nop_only_advances_pc(self):
        vm = _machine(bytes([0x00, 0x00]))
        before = vm.registers
        vm.step()
        after = vm.registers
        assert vm.pc == 2
        assert [v for i, v in enumerate(after) if i != Register.PC] == \
               [v for i, v in enumerate(before) if i != Register.PC]


# ═══════════════════════════════════════════════
# Test Group 2: Signals and Halting
# ═══════════════════════════════════════════════

class TestSignals:

    def test_halt_signal(self):
        vm = _machine(bytes([0x09, 0x09, 0x00, 0x00]))
        assert vm.run() is StopReason.HALT
        assert vm.halted
        assert vm.finished
        assert vm.pc == 2
        assert vm.signals == [0x09]

    def test_step_after_halt_raises(self):
        vm = _machine(bytes([0x09, 0x09, 0x00, 0x00]))
        vm.step()
        snapshot = vm.registers
        with pytest.raises(MachineHaltedError):
            vm.step()
        assert vm.registers == snapshot
        assert vm.state is MachineState.HALTED

    def test_step_after_fault_raises(self):
        vm = _machine(bytes([0x05, 0x00]))
        with pytest.raises(IllegalOpcode):
            vm.step()
        with pytest.raises(MachineHaltedError):
            vm.step()

    def test_fault_is_not_a_halt(self):
        vm = _machine(bytes([0x05, 0x00]))
        assert vm.run() is StopReason.ERROR
        assert vm.state is MachineState.FAULTED
        assert not vm.halted
        assert vm.finished

    def test_unhandled_signal_is_recorded(self):
        vm = _machine(bytes([0x09, 0x05, 0x00, 0x00]))
        vm.step()
        assert vm.state is MachineState.RUNNING
        assert vm.signals == [0x05]
        vm.step()
        assert vm.pc == 4

    def test_custom_handler(self):
        seen = []
        vm = _machine(bytes([0x09, 0x42]))
        vm.define_handler(0x42, lambda m: seen.append(m.pc))
        vm.step()
        assert seen == [2]

    def test_handler_can_halt(self):
        vm = _machine(bytes([0x09, 0x01, 0x00, 0x00]))
        vm.define_handler(0x01, Machine.halt)
        assert vm.run() is StopReason.HALT

    def test_custom_halt_code(self):
        vm = _machine(bytes([0x09, 0x09, 0x09, 0xFF]), halt_signal=0xFF)
        assert vm.run() is StopReason.HALT
        assert vm.signals == [0x09, 0xFF]


# ═══════════════════════════════════════════════
# Test Group 3: Faults
# ═══════════════════════════════════════════════

class TestFaults:

    def test_illegal_opcode(self):
        vm = _machine(bytes([0x05, 0x00]))
        with pytest.raises(IllegalOpcode) as exc:
            vm.step()
        assert exc.value.opcode == 0x05
        assert exc.value.kind == "decode"
        assert vm.state is MachineState.FAULTED

    def test_invalid_register_index(self):
        vm = _machine(bytes([0x01, 0x01, 0x02, 0x0D]))
        vm.step()
        with pytest.raises(InvalidRegisterError) as exc:
            vm.step()
        assert exc.value.index == 0x0D
        assert vm.sp == 0x1002

    def test_invalid_register_in_addr(self):
        vm = _machine(bytes([0x04, 0x0F]))
        with pytest.raises(InvalidRegisterError):
            vm.step()

    def test_fetch_past_memory(self):
        vm = _machine(bytes([0x00, 0x00]), memory_size=4, stack_base=2)
        vm.program_end = 8
        vm.set_register(Register.PC, 4)
        with pytest.raises(MemoryBoundsError) as exc:
            vm.step()
        assert exc.value.address == 4
        assert vm.state is MachineState.FAULTED

    def test_errors_are_machine_errors(self):
        vm = _machine(bytes([0x02, 0x00]))
        assert vm.run() is StopReason.ERROR
        assert isinstance(vm.last_error, MachineError)
        assert "PC=$0000" in str(vm.last_error)


# ═══════════════════════════════════════════════
# Test Group 4: Run loop, breakpoints, inspection
# ═══════════════════════════════════════════════

class TestRunLoop:

    def test_end_of_program(self):
        vm = _machine(bytes([0x00, 0x00, 0x00, 0x00]))
        assert vm.run() is StopReason.END
        assert vm.finished
        assert not vm.halted

    def test_timeout(self):
        vm = _machine(bytes([0x00, 0x00] * 10))
        assert vm.run(max_steps=3) is StopReason.TIMEOUT
        assert vm.steps == 3
        assert vm.run() is StopReason.END
        assert vm.steps == 10

    def test_breakpoint_stops_and_resumes(self):
        vm = _machine(bytes([0x00, 0x00, 0x00, 0x00, 0x00, 0x00]))
        vm.add_breakpoint(0x0002)
        assert vm.run() is StopReason.BREAK
        assert vm.pc == 0x0002
        assert vm.run() is StopReason.END
        assert vm.steps == 3

    def test_remove_breakpoint(self):
        vm = _machine(bytes([0x00, 0x00, 0x00, 0x00]))
        vm.add_breakpoint(2)
        vm.remove_breakpoint(2)
        assert vm.breakpoints == set()
        assert vm.run() is StopReason.END

    def test_empty_program_is_finished(self):
        vm = Machine()
        assert vm.finished
        assert vm.run() is StopReason.END

    def test_load_program_counts(self):
        vm = Machine()
        assert vm.load_program(bytes(6)) == (6, 3)
        assert vm.program_end == 6

    def test_load_binary_from_file(self, tmp_path):
        path = tmp_path / "prog.bin"
        path.write_bytes(bytes([0x09, 0x09]))
        vm = Machine()
        vm.load_binary(path)
        assert vm.run() is StopReason.HALT


class TestInspection:

    def test_initial_state(self):
        vm = Machine()
        assert vm.state is MachineState.RUNNING
        assert vm.pc == 0
        assert vm.sp == 0x1000
        assert all(v == 0 for i, v in enumerate(vm.registers) if i != Register.SP)

    def test_stack_window_top_first(self):
        vm = _machine(bytes([0x01, 0x01, 0x01, 0x02, 0x01, 0x03]))
        vm.run()
        assert vm.stack_window() == [(0x1004, 3), (0x1002, 2), (0x1000, 1)]
        assert vm.stack_window(2) == [(0x1004, 3), (0x1002, 2)]

    def test_trace_records_steps(self):
        vm = _machine(bytes([0x01, 0x0A, 0x09, 0x09]))
        vm.enable_trace()
        vm.run()
        assert len(vm.trace) == 2
        assert "PUSH" in vm.trace[0]
        assert "SIG" in vm.trace[1]

    def test_format_state(self):
        vm = _machine(bytes([0x01, 0x0A, 0x01, 0x18, 0x0F, 0x00, 0x02, 0x01]))
        vm.run()
        text = vm.format_state()
        assert "B      0x0022 (34) [general]" in text
        assert "Stack Pointer (SP):   0x1000" in text
        assert "Program Counter (PC): 0x0008" in text

    def test_print_state(self, capsys):
        vm = _machine(bytes([0x09, 0x09]))
        vm.run()
        vm.print_state()
        out = capsys.readouterr().out
        assert "Final State" in out
        assert "Signals: $09" in out

    def test_display(self):
        vm = Machine()
        assert vm.display().startswith("[running] A=0000")

    def test_reset(self):
        vm = _machine(bytes([0x01, 0x01, 0x09, 0x09]))
        vm.run()
        vm.reset()
        assert vm.state is MachineState.RUNNING
        assert vm.pc == 0
        assert vm.sp == 0x1000
        assert vm.signals == []
        assert vm.run() is StopReason.HALT


class TestProfiles:

    def test_default_profile(self):
        vm = Machine()
        assert vm.memory_size == MACHINE_PROFILES["default"]["memory_size"] == 8192
        assert vm.stack_base == 0x1000

    def test_small_profile(self):
        vm = Machine("small")
        assert vm.memory_size == 1024
        assert vm.sp == 0x0200

    def test_overrides(self):
        vm = Machine(memory_size=0x100, stack_base=0x80)
        assert len(vm.mem) == 0x100
        assert vm.sp == 0x80

    def test_unknown_profile(self):
        with pytest.raises(ValueError):
            Machine("huge")

    def test_stack_base_outside_memory(self):
        with pytest.raises(ValueError):
            Machine(memory_size=0x100, stack_base=0x200)

    def test_memory_limited_to_16_bit_addresses(self):
        vm = Machine(memory_size=0x10000, stack_base=0x1000)
        assert len(vm.mem) == 0x10000
        with pytest.raises(ValueError, match="16-bit"):
            Machine(memory_size=0x10001)
        with pytest.raises(ValueError):
            Machine(memory_size=0)
