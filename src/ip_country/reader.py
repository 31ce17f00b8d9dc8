"""
Bounds-checked reads over an immutable database buffer.
"""

import struct

from .errors import OutOfBounds


class BinaryReader:
    """
    Safe cursor-free reader over a byte buffer.

    All offsets are absolute. Integers are big-endian, as in the MMDB format.
    """

    def __init__(self, buffer: bytes):
        self.buffer = bytes(buffer)
        self.size = len(self.buffer)

    def __len__(self) -> int:
        return self.size

    def _check(self, offset: int, length: int) -> None:
        if offset < 0 or length < 0 or offset + length > self.size:
            raise OutOfBounds(
                f"Read of {length} bytes at offset {offset} "
                f"exceeds buffer of {self.size} bytes"
            )

    def read_u8(self, offset: int) -> int:
        self._check(offset, 1)
        return self.buffer[offset]

    def read_u16(self, offset: int) -> int:
        self._check(offset, 2)
        return struct.unpack_from(">H", self.buffer, offset)[0]

    def read_u24(self, offset: int) -> int:
        self._check(offset, 3)
        b = self.buffer
        return (b[offset] << 16) | (b[offset + 1] << 8) | b[offset + 2]

    def read_u32(self, offset: int) -> int:
        self._check(offset, 4)
        return struct.unpack_from(">I", self.buffer, offset)[0]

    def read_uint(self, offset: int, length: int) -> int:
        """Read an unsigned big-endian integer of 0 to 16 bytes."""
        if length > 16:
            raise OutOfBounds(f"Integer width {length} at offset {offset} exceeds 16 bytes")
        self._check(offset, length)
        return int.from_bytes(self.buffer[offset:offset + length], "big")

    def slice(self, offset: int, length: int) -> bytes:
        self._check(offset, length)
        return self.buffer[offset:offset + length]

    def rfind(self, pattern: bytes) -> int:
        """Offset of the last occurrence of pattern, or -1."""
        return self.buffer.rfind(pattern)
