#!/usr/bin/env python3
"""
vm16kit — vm16 Assembler / VM Toolkit
=====================================

One CLI for everything:
    vm16kit asm      — Assemble vm16 source to binary, hex text or listing
    vm16kit hex2bin  — Convert a hex-text program to raw binary
    vm16kit run      — Load and execute a program, print the final state
    vm16kit disasm   — Disassemble a program image
    vm16kit tokens   — Dump the lexer's token stream (debug)

Usage:
    python vm16kit.py <command> [options]
    python vm16kit.py <command> --help

Examples:
    python vm16kit.py asm prog/add.asm -o add.bin
    python vm16kit.py asm prog/add.asm --listing
    python vm16kit.py hex2bin prog/add.hex -o add.bin
    python vm16kit.py run prog/add.asm --trace
    python vm16kit.py run add.bin --max-steps 100 --break 0x0004
    python vm16kit.py disasm add.bin
"""

import argparse
import logging
import os
import sys
from pathlib import Path

__version__ = "0.1.0"

# Ensure our packages are importable when run from a checkout
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from vm16_asm import (
    Lexer, assemble_source, disassemble_listing, parse_hex_text, read_program, write_program,
)
from vm16_asm.errors import AssemblerError
from vm16_emulator import Machine, MACHINE_PROFILES, StopReason
from vm16_emulator.errors import MachineError

logger = logging.getLogger("vm16kit")


def parse_int_arg(value: str) -> int:
    """Parse an integer argument that may be hex (0x...), $ prefix, or decimal."""
    value = value.strip()
    if value.startswith("0x") or value.startswith("0X"):
        return int(value, 16)
    if value.startswith("$"):
        return int(value[1:], 16)
    return int(value)


def setup_logging(verbose: int = 0, quiet: bool = False, log_file: str = None):
    """Configure logging from -v count / -q."""
    if quiet:
        level = logging.ERROR
    elif verbose == 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:  # -vv or more
        level = logging.DEBUG

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    handlers = [console]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        handlers.append(file_handler)

    logging.basicConfig(level=min(h.level for h in handlers), handlers=handlers, force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vm16kit",
        description="vm16 toolkit: assemble, run, disassemble",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Machine profiles: " + ", ".join(MACHINE_PROFILES),
    )
    parser.add_argument("--version", action="version", version=f"vm16kit {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More logging (-v info, -vv debug)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Errors only")
    parser.add_argument("--log-file", default=None, help="Also write a debug log here")
    sub = parser.add_subparsers(dest="command", metavar="command")

    # ── asm ──────────────────────────────────────────────────────────────
    p_asm = sub.add_parser("asm", help="Assemble vm16 source")
    p_asm.add_argument("input", help="Input .asm file")
    p_asm.add_argument("-o", "--output", help="Output file (.bin, .hex/.txt, or .lst)")
    p_asm.add_argument("--listing", action="store_true", help="Print listing to stdout")

    # ── hex2bin ──────────────────────────────────────────────────────────
    p_h2b = sub.add_parser("hex2bin", help="Convert hex text to raw binary")
    p_h2b.add_argument("input", help="Input hex text file")
    p_h2b.add_argument("-o", "--output", required=True, help="Output .bin file")

    # ── run ──────────────────────────────────────────────────────────────
    p_run = sub.add_parser("run", help="Execute a program")
    p_run.add_argument("input", help="Program (.asm, .hex/.txt, or raw binary)")
    p_run.add_argument("--trace", action="store_true",
                       help="Print machine state after every instruction")
    p_run.add_argument("--max-steps", type=int, default=None,
                       help="Stop after N instructions")
    p_run.add_argument("--break", dest="breakpoints", action="append", default=[],
                       metavar="ADDR", help="Stop at ADDR (repeatable)")
    p_run.add_argument("--profile", default="default", choices=list(MACHINE_PROFILES),
                       help="Machine profile (default: default)")
    p_run.add_argument("--memory-size", default=None, help="Override memory size")
    p_run.add_argument("--stack-base", default=None, help="Override stack base address")

    # ── disasm ───────────────────────────────────────────────────────────
    p_dis = sub.add_parser("disasm", help="Disassemble a program image")
    p_dis.add_argument("input", help="Input .bin or .hex/.txt file")

    # ── tokens ───────────────────────────────────────────────────────────
    p_tok = sub.add_parser("tokens", help="Dump token stream (debug)")
    p_tok.add_argument("input", help="Input .asm file")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args.verbose, args.quiet, args.log_file)

    try:
        return COMMANDS[args.command](args)
    except (AssemblerError, MachineError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# ═════════════════════════════════════════════════════════════════════════════
# COMMAND IMPLEMENTATIONS
# ═════════════════════════════════════════════════════════════════════════════

def _read_source(path):
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _load_image(path) -> bytes:
    """Assemble .asm input, otherwise read a hex-text or raw image."""
    if os.path.splitext(path)[1].lower() in (".asm", ".s"):
        return assemble_source(_read_source(path))
    return read_program(path)


# ── asm ──────────────────────────────────────────────────────────────────
def cmd_asm(args):
    source = _read_source(args.input)

    if args.listing or not args.output:
        print(assemble_source(source, output="listing"))
        if not args.output:
            return 0

    out = args.output
    if os.path.splitext(out)[1].lower() == ".lst":
        with open(out, "w", encoding="utf-8") as f:
            f.write(assemble_source(source, output="listing") + "\n")
        print(f"Listing -> {out}")
        return 0

    binary = assemble_source(source)
    write_program(out, binary)
    print(f"Assembled {len(binary)} bytes ({len(binary) // 2} instructions) -> {out}")
    return 0


# ── hex2bin ──────────────────────────────────────────────────────────────
def cmd_hex2bin(args):
    data = parse_hex_text(_read_source(args.input))
    with open(args.output, "wb") as f:
        f.write(data)
    print(f"Converted {len(data)} bytes -> {args.output}")
    return 0


# ── run ──────────────────────────────────────────────────────────────────
def cmd_run(args):
    image = _load_image(args.input)

    vm = Machine(
        args.profile,
        memory_size=parse_int_arg(args.memory_size) if args.memory_size else None,
        stack_base=parse_int_arg(args.stack_base) if args.stack_base else None,
    )
    logger.info(f"Machine: profile={args.profile} memory=${vm.memory_size:04X} "
                f"stack=${vm.stack_base:04X}")
    loaded, count = vm.load_program(image)
    print(f"Loaded {loaded} bytes ({count} instructions)")

    for bp in args.breakpoints:
        vm.add_breakpoint(parse_int_arg(bp))

    if args.trace:
        reason = _run_traced(vm, args.max_steps)
    else:
        reason = vm.run(max_steps=args.max_steps)

    print(f"Stopped: {reason.value}")
    vm.print_state()

    if reason is StopReason.ERROR:
        print(f"Error: {vm.last_error}", file=sys.stderr)
        return 1
    return 0


def _run_traced(vm, max_steps):
    """Single-step the machine, printing its state after each instruction."""
    while True:
        if max_steps is not None and vm.steps >= max_steps:
            return StopReason.TIMEOUT
        before = vm.steps
        pc = vm.pc
        reason = vm.run(max_steps=1)
        if vm.steps != before:
            print(f"{vm.steps:5d}  ${pc:04X}  {vm.display()}")
        if reason is not StopReason.TIMEOUT:
            return reason


# ── disasm ───────────────────────────────────────────────────────────────
def cmd_disasm(args):
    data = read_program(args.input)
    for line in disassemble_listing(data):
        print(line)
    return 0


# ── tokens ───────────────────────────────────────────────────────────────
def cmd_tokens(args):
    for tok in Lexer(_read_source(args.input)).iter_tokens():
        print(tok)
    return 0


COMMANDS = {
    "asm": cmd_asm,
    "hex2bin": cmd_hex2bin,
    "run": cmd_run,
    "disasm": cmd_disasm,
    "tokens": cmd_tokens,
}


if __name__ == "__main__":
    sys.exit(main())
