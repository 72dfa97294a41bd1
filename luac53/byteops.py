"""Sequential readers and writers for host-native bytecode fields.

Lua dumps scalars in the byte order and widths of the machine that produced
them.  The header carries canary values so a mismatch is detected rather
than silently converted, therefore every format here uses ``struct``'s
native byte order with standard sizes.
"""

from __future__ import annotations

import io
import struct
from typing import BinaryIO, List, Optional, Sequence

from .cipher import BlockCipher
from .exceptions import EncodeError, TruncatedError

__all__ = [
    "ByteReader",
    "ByteWriter",
    "INSTRUCTION_SIZE",
    "STRING_ESCAPE",
]

_U32 = struct.Struct("=I")
_INTEGER = struct.Struct("=q")
_NUMBER = struct.Struct("=d")
_SIZE = struct.Struct("=Q")

INSTRUCTION_SIZE = _U32.size
# Length prefixes below this value fit in one byte; the value itself escapes
# to a full size field.
STRING_ESCAPE = 0xFF


class ByteReader:
    """Cursor over an in-memory bytecode buffer.

    All reads funnel through :meth:`read_block`.  When a cipher is attached it
    is applied there, once per logical read, so the keystream lines up with
    the way the dumper split its writes.
    """

    def __init__(self, data: bytes, *, cipher: Optional[BlockCipher] = None) -> None:
        self._data = memoryview(data)
        self._offset = 0
        self.cipher = cipher

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def attach_cipher(self, cipher: Optional[BlockCipher]) -> None:
        self.cipher = cipher if cipher is not None and cipher.active else None

    def read_block(self, size: int, *, granularity: str = "block") -> bytes:
        if size < 0 or size > self.remaining:
            raise TruncatedError(granularity, self._offset, size, self.remaining)
        start = self._offset
        chunk = self._data[start : start + size].tobytes()
        self._offset += size
        if self.cipher is not None:
            chunk = self.cipher.apply(chunk)
        return chunk

    def _read_fixed(self, fmt: struct.Struct):
        return fmt.unpack(self.read_block(fmt.size, granularity="field"))[0]

    def read_byte(self) -> int:
        return self.read_block(1, granularity="byte")[0]

    def read_u32(self) -> int:
        return self._read_fixed(_U32)

    def read_integer(self) -> int:
        return self._read_fixed(_INTEGER)

    def read_number(self) -> float:
        return self._read_fixed(_NUMBER)

    def read_size(self) -> int:
        return self._read_fixed(_SIZE)

    def read_u32_array(self, count: int) -> List[int]:
        raw = self.read_block(count * INSTRUCTION_SIZE)
        return list(struct.unpack(f"={count}I", raw))

    def read_string(self) -> bytes:
        """Read a length-prefixed string.

        The stored size is the string length plus one, so a stored zero is the
        empty string.  ``0xFF`` escapes to a full 8-byte size field.
        """

        size = self.read_byte()
        if size == STRING_ESCAPE:
            size = self.read_size()
        if size == 0:
            return b""
        return self.read_block(size - 1)


class ByteWriter:
    """Mirror of :class:`ByteReader` writing to a binary stream."""

    def __init__(self, stream: Optional[BinaryIO] = None) -> None:
        self.stream: BinaryIO = stream if stream is not None else io.BytesIO()
        self._written = 0

    def tell(self) -> int:
        return self._written

    def getvalue(self) -> bytes:
        getter = getattr(self.stream, "getvalue", None)
        if getter is None:
            raise TypeError("underlying stream does not buffer its contents")
        return getter()

    def write_block(self, data: bytes) -> None:
        self.stream.write(data)
        self._written += len(data)

    def _write_fixed(self, fmt: struct.Struct, value, what: str) -> None:
        try:
            packed = fmt.pack(value)
        except struct.error as exc:
            raise EncodeError(f"cannot encode {what} {value!r}: {exc}") from exc
        self.write_block(packed)

    def write_byte(self, value: int, *, what: str = "byte") -> None:
        if not 0 <= int(value) <= 0xFF:
            raise EncodeError(f"cannot encode {what} {value!r}: does not fit in a byte")
        self.write_block(bytes((int(value),)))

    def write_u32(self, value: int, *, what: str = "u32") -> None:
        self._write_fixed(_U32, value, what)

    def write_integer(self, value: int) -> None:
        self._write_fixed(_INTEGER, value, "integer")

    def write_number(self, value: float) -> None:
        self._write_fixed(_NUMBER, value, "number")

    def write_size(self, value: int) -> None:
        self._write_fixed(_SIZE, value, "size")

    def write_u32_array(self, values: Sequence[int], *, what: str = "u32 array") -> None:
        try:
            packed = struct.pack(f"={len(values)}I", *values)
        except struct.error as exc:
            raise EncodeError(f"cannot encode {what}: {exc}") from exc
        self.write_block(packed)

    def write_string(self, value: bytes) -> None:
        """Write ``value`` with a length prefix derived from its current size.

        Empty and absent strings share the single zero byte.
        """

        if not value:
            self.write_byte(0)
            return
        size = len(value) + 1
        if size < STRING_ESCAPE:
            self.write_byte(size)
        else:
            self.write_byte(STRING_ESCAPE)
            self.write_size(size)
        self.write_block(value)
