"""
vm16 Emulator — Linear Byte-Addressable Memory

Memory layout (default profile, 8 KB):
  $0000–$0FFF  Program image (loaded at offset 0)
  $1000–$1FFF  Stack (grows toward higher addresses)

Every access is bounds-checked: 8-bit accesses need addr < size, 16-bit
accesses additionally need addr + 1 < size. A violation raises
MemoryBoundsError; there is no wraparound and no implicit growth.

16-bit values are little-endian: low byte at addr, high byte at addr + 1.
"""

from typing import Tuple

from ..errors import MemoryBoundsError


DEFAULT_MEMORY_SIZE = 8 * 1024


class Memory:
    """Fixed-size flat memory backed by a bytearray."""

    def __init__(self, size: int = DEFAULT_MEMORY_SIZE):
        if size <= 0:
            raise ValueError(f"Memory size must be positive, got {size}")
        self._mem = bytearray(size)
        self.size = size

    def __len__(self) -> int:
        return self.size

    def _check(self, addr: int, width: int = 1):
        if addr < 0 or addr + width > self.size:
            raise MemoryBoundsError(addr, self.size)

    # --- Core read/write ---

    def read(self, addr: int) -> int:
        """Read one byte."""
        self._check(addr)
        return self._mem[addr]

    def write(self, addr: int, value: int):
        """Write one byte (value is masked to 8 bits)."""
        self._check(addr)
        self._mem[addr] = value & 0xFF

    def read2(self, addr: int) -> int:
        """Read 16-bit value (little-endian)."""
        self._check(addr, 2)
        return self._mem[addr] | (self._mem[addr + 1] << 8)

    def write2(self, addr: int, value: int):
        """Write 16-bit value (little-endian)."""
        self._check(addr, 2)
        self._mem[addr] = value & 0xFF
        self._mem[addr + 1] = (value >> 8) & 0xFF

    # --- Bulk operations ---

    def load_program(self, data: bytes, addr: int = 0) -> Tuple[int, int]:
        """Load a program image at addr.

        Returns (bytes_loaded, instructions_loaded). The whole image is
        checked before anything is written, so a failed load leaves memory
        untouched.
        """
        data = bytes(data)
        if data:
            self._check(addr, len(data))
        self._mem[addr:addr + len(data)] = data
        return len(data), len(data) // 2

    def copy(self, src: int, dst: int, count: int):
        """Copy count bytes from src to dst."""
        if count <= 0:
            return
        self._check(src, count)
        self._check(dst, count)
        self._mem[dst:dst + count] = self._mem[src:src + count]

    def dump(self, start: int, length: int) -> bytes:
        """Return a read-only copy of a memory range."""
        if length <= 0:
            return b""
        self._check(start, length)
        return bytes(self._mem[start:start + length])

    def hexdump(self, start: int, length: int = 64) -> str:
        """Produce a hex dump of memory for debugging."""
        length = max(0, min(length, self.size - start))
        lines = []
        for offset in range(0, length, 16):
            addr = start + offset
            row = self._mem[addr:addr + min(16, length - offset)]
            hex_bytes = ' '.join(f'{b:02X}' for b in row)
            ascii_bytes = ''.join(chr(b) if 0x20 <= b < 0x7F else '.' for b in row)
            lines.append(f'{addr:04X}  {hex_bytes:<47}  {ascii_bytes}')
        return '\n'.join(lines)
