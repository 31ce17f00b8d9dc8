"""
Decoder for the MMDB data section encoding.

Each value starts with a control byte:
- bits 7-5: type (0 = extended, the next byte + 7 holds the real type)
- bits 4-0: size, with 29/30/31 escaping to 1, 2 or 3 extra size bytes

Pointers use the size bits differently: bits 4-3 select a 1-4 byte
encoding and bits 2-0 carry the high bits of the pointer value.

Values decode to plain Python objects (str, int, float, bool, bytes,
dict, list). Pointers are followed transparently.
"""

import struct
from typing import Any, Tuple

from .errors import DecodeError
from .reader import BinaryReader


TYPE_EXTENDED = 0
TYPE_POINTER = 1
TYPE_UTF8 = 2
TYPE_DOUBLE = 3
TYPE_BYTES = 4
TYPE_UINT16 = 5
TYPE_UINT32 = 6
TYPE_MAP = 7
TYPE_INT32 = 8
TYPE_UINT64 = 9
TYPE_UINT128 = 10
TYPE_ARRAY = 11
TYPE_DATA_CACHE_CONTAINER = 12
TYPE_END_MARKER = 13
TYPE_BOOLEAN = 14
TYPE_FLOAT = 15

# Maximum payload width in bytes for the unsigned types
UINT_WIDTHS = {
    TYPE_UINT16: 2,
    TYPE_UINT32: 4,
    TYPE_UINT64: 8,
    TYPE_UINT128: 16,
}

# Added to the pointer value for each size class (1, 2, 3, 4 bytes)
POINTER_BIAS = (0, 2048, 526336, 0)

MAX_POINTER_DEPTH = 16
MAX_NESTING_DEPTH = 32


class Decoder:
    """
    Decodes typed values from the database buffer.

    Args:
        reader: Reader over the whole database
        pointer_base: Absolute offset that pointer values are relative to
            (the data section start, or the metadata map start)
    """

    def __init__(self, reader: BinaryReader, pointer_base: int = 0):
        self.reader = reader
        self.pointer_base = pointer_base

    def decode(self, offset: int) -> Tuple[Any, int]:
        """
        Decode one value.

        Args:
            offset: Absolute offset of the control byte

        Returns:
            Tuple of (value, offset just past the value). When the value is
            a pointer, the returned offset is just past the pointer itself.
        """
        return self._decode(offset, 0)

    def decode_value(self, offset: int) -> Any:
        """Decode one value and discard the end offset."""
        return self._decode(offset, 0)[0]

    def pointer_target(self, offset: int) -> Tuple[int, int]:
        """
        Decode the pointer whose control byte is at offset.

        Returns:
            Tuple of (absolute target offset, offset just past the pointer)
        """
        control = self.reader.read_u8(offset)
        if control >> 5 != TYPE_POINTER:
            raise DecodeError(f"Expected pointer at offset {offset}, found type {control >> 5}")

        size_class = (control >> 3) & 0x03
        width = size_class + 1
        raw = self.reader.read_uint(offset + 1, width)

        if size_class == 3:
            value = raw
        else:
            value = (((control & 0x07) << (8 * width)) | raw) + POINTER_BIAS[size_class]

        return self.pointer_base + value, offset + 1 + width

    def resolve(self, offset: int) -> int:
        """Follow a chain of pointers starting at offset to the first non-pointer value."""
        start = offset
        depth = 0
        while self.reader.read_u8(offset) >> 5 == TYPE_POINTER:
            if depth >= MAX_POINTER_DEPTH:
                raise DecodeError(
                    f"Pointer chain starting at offset {start} is longer than "
                    f"{MAX_POINTER_DEPTH} (cycle or malformed data)"
                )
            offset, _ = self.pointer_target(offset)
            depth += 1
        return offset

    def _read_control(self, offset: int) -> Tuple[int, int, int]:
        """Decode a non-pointer control byte into (type, size, payload offset)."""
        start = offset
        control = self.reader.read_u8(offset)
        offset += 1

        type_ = control >> 5
        if type_ == TYPE_EXTENDED:
            type_ = 7 + self.reader.read_u8(offset)
            offset += 1
            if type_ <= TYPE_MAP:
                raise DecodeError(
                    f"Invalid extended type {type_} at offset {start}: expected 8 or above"
                )

        size = control & 0x1F
        if size == 29:
            size = 29 + self.reader.read_u8(offset)
            offset += 1
        elif size == 30:
            size = 285 + self.reader.read_u16(offset)
            offset += 2
        elif size == 31:
            size = 65821 + self.reader.read_u24(offset)
            offset += 3

        return type_, size, offset

    def _decode(self, offset: int, nesting: int) -> Tuple[Any, int]:
        if nesting > MAX_NESTING_DEPTH:
            raise DecodeError(
                f"Value at offset {offset} is nested deeper than {MAX_NESTING_DEPTH} levels"
            )

        if self.reader.read_u8(offset) >> 5 == TYPE_POINTER:
            _, next_offset = self.pointer_target(offset)
            value, _ = self._decode(self.resolve(offset), nesting)
            return value, next_offset

        start = offset
        type_, size, offset = self._read_control(offset)

        if type_ == TYPE_MAP:
            result = {}
            for _ in range(size):
                key, offset = self._decode(offset, nesting + 1)
                if not isinstance(key, str):
                    raise DecodeError(
                        f"Map at offset {start} has a {type(key).__name__} key, expected str"
                    )
                result[key], offset = self._decode(offset, nesting + 1)
            return result, offset

        if type_ == TYPE_ARRAY:
            items = []
            for _ in range(size):
                item, offset = self._decode(offset, nesting + 1)
                items.append(item)
            return items, offset

        if type_ == TYPE_BOOLEAN:
            if size > 1:
                raise DecodeError(f"Boolean at offset {start} has value {size}, expected 0 or 1")
            return bool(size), offset

        if type_ in (TYPE_DATA_CACHE_CONTAINER, TYPE_END_MARKER) or type_ > TYPE_FLOAT:
            raise DecodeError(f"Invalid type tag {type_} at offset {start}")

        payload = self.reader.slice(offset, size)
        offset += size

        if type_ == TYPE_UTF8:
            try:
                return payload.decode("utf-8"), offset
            except UnicodeDecodeError as e:
                raise DecodeError(f"Invalid UTF-8 string at offset {start}: {e}") from e

        if type_ == TYPE_BYTES:
            return payload, offset

        if type_ in UINT_WIDTHS:
            if size > UINT_WIDTHS[type_]:
                raise DecodeError(
                    f"Unsigned integer at offset {start} is {size} bytes, "
                    f"expected at most {UINT_WIDTHS[type_]}"
                )
            return int.from_bytes(payload, "big"), offset

        if type_ == TYPE_INT32:
            if size > 4:
                raise DecodeError(f"Int32 at offset {start} is {size} bytes, expected at most 4")
            return int.from_bytes(payload, "big", signed=(size == 4)), offset

        if type_ == TYPE_DOUBLE:
            if size != 8:
                raise DecodeError(f"Double at offset {start} is {size} bytes, expected 8")
            return struct.unpack(">d", payload)[0], offset

        # TYPE_FLOAT
        if size != 4:
            raise DecodeError(f"Float at offset {start} is {size} bytes, expected 4")
        return struct.unpack(">f", payload)[0], offset
