"""Reader and writer for the Lua 5.3 container preamble."""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass

from .byteops import INSTRUCTION_SIZE, ByteReader, ByteWriter
from .cipher import BlockCipher
from .exceptions import (
    DataCanaryMismatchError,
    EndiannessMismatchError,
    FloatLayoutMismatchError,
    FormatMismatchError,
    MagicMismatchError,
    PrimitiveWidthMismatchError,
    VersionMismatchError,
)

LOG = logging.getLogger(__name__)

__all__ = [
    "FORMAT_OBFUSCATED",
    "FORMAT_PLAIN",
    "HeaderInfo",
    "LUAC_DATA",
    "LUAC_INT",
    "LUAC_NUM",
    "LUAC_VERSION",
    "LUA_SIGNATURE",
    "NATIVE_WIDTHS",
    "read_header",
    "write_header",
    "write_layout",
    "write_preamble",
]

LUA_SIGNATURE = b"\x1bLua"
LUAC_VERSION = 0x53
LUAC_VERSION_MAJOR = 0x5
LUAC_VERSION_MINOR = 0x3
FORMAT_PLAIN = 0
FORMAT_OBFUSCATED = 1
LUAC_DATA = b"\x19\x93\r\n\x1a\n"
LUAC_INT = 0x5678
LUAC_NUM = 370.5

INT_SIZE = struct.calcsize("i")
SIZE_T_SIZE = struct.calcsize("N")
# Obfuscated containers always declare an 8-byte string size field.
OBFUSCATED_SIZE_T_SIZE = 8
LUA_INTEGER_SIZE = 8
LUA_NUMBER_SIZE = 8

NATIVE_WIDTHS = (
    ("int", INT_SIZE),
    ("size_t", SIZE_T_SIZE),
    ("Instruction", INSTRUCTION_SIZE),
    ("lua_Integer", LUA_INTEGER_SIZE),
    ("lua_Number", LUA_NUMBER_SIZE),
)


@dataclass(frozen=True)
class HeaderInfo:
    """Facts learned from the header that later sections depend on."""

    format: int
    key: int = 0

    @property
    def obfuscated(self) -> bool:
        return self.format == FORMAT_OBFUSCATED

    def make_cipher(self) -> BlockCipher:
        return BlockCipher(self.key)

    def __repr__(self) -> str:
        return f"HeaderInfo(format={self.format}, keyed={self.key != 0})"


def _hexdump(data: bytes) -> str:
    return " ".join(f"{byte:02x}" for byte in data)


def _check_literal(reader: ByteReader, expected: bytes, error_cls, message: str) -> None:
    actual = reader.read_block(len(expected))
    if actual != expected:
        raise error_cls(
            f"{message}: expected '{_hexdump(expected)}', got '{_hexdump(actual)}'"
        )


def _check_width(reader: ByteReader, primitive: str, expected: int) -> None:
    actual = reader.read_byte()
    if actual != expected:
        raise PrimitiveWidthMismatchError(primitive, expected, actual)


def read_header(reader: ByteReader) -> HeaderInfo:
    """Validate the container preamble and return the declared format.

    Checks run in file order and the first mismatch raises.  For obfuscated
    containers with a non-zero key the block cipher is attached to
    ``reader`` as soon as the key has been read, so every later field
    (including the rest of this header) is decoded through it.
    """

    if reader.read_byte() != LUA_SIGNATURE[0]:
        raise MagicMismatchError("not a Lua 5.3 bytecode file (signature byte mismatch)")
    _check_literal(
        reader,
        LUA_SIGNATURE[1:],
        MagicMismatchError,
        "not a Lua 5.3 bytecode file (magic mismatch)",
    )

    version = reader.read_byte()
    major, minor = (version >> 4) & 0x0F, version & 0x0F
    if major != LUAC_VERSION_MAJOR or minor != LUAC_VERSION_MINOR:
        raise VersionMismatchError(f"version mismatch: expected 5.3, got {major}.{minor}")

    fmt = reader.read_byte()
    key = 0
    if fmt == FORMAT_OBFUSCATED:
        key = reader.read_size()
        if key == 0:
            LOG.warning("obfuscated container declares a zero key; reading it as plain")
    elif fmt != FORMAT_PLAIN:
        raise FormatMismatchError(f"format mismatch: unsupported format byte {fmt}")
    info = HeaderInfo(format=fmt, key=key)
    # The data literal, widths and canaries below are read through the
    # cipher.  C++ readers that only switch the transform on after the
    # header read these fields in plain form, so their containers fail here
    # with DataCanaryMismatchError.
    if info.obfuscated:
        reader.attach_cipher(info.make_cipher())

    _check_literal(reader, LUAC_DATA, DataCanaryMismatchError, "corrupted data section")

    for primitive, width in NATIVE_WIDTHS:
        if primitive == "size_t" and info.obfuscated:
            width = OBFUSCATED_SIZE_T_SIZE
        _check_width(reader, primitive, width)

    canary = reader.read_integer()
    if canary != LUAC_INT:
        raise EndiannessMismatchError(f"endianness mismatch: integer canary is {canary:#x}")
    number = reader.read_number()
    if number != LUAC_NUM:
        raise FloatLayoutMismatchError(f"float format mismatch: number canary is {number!r}")

    LOG.debug("header ok: %r", info)
    return info


def write_preamble(writer: ByteWriter) -> None:
    """Write the signature and version byte."""

    writer.write_byte(LUA_SIGNATURE[0])
    writer.write_block(LUA_SIGNATURE[1:])
    writer.write_byte(LUAC_VERSION)


def write_layout(writer: ByteWriter, *, size_width: int = SIZE_T_SIZE) -> None:
    """Write the data literal, the primitive widths and both canaries."""

    writer.write_block(LUAC_DATA)
    for primitive, width in NATIVE_WIDTHS:
        writer.write_byte(size_width if primitive == "size_t" else width)
    writer.write_integer(LUAC_INT)
    writer.write_number(LUAC_NUM)


def write_header(writer: ByteWriter) -> None:
    """Write a plain-format header describing the host layout."""

    write_preamble(writer)
    writer.write_byte(FORMAT_PLAIN)
    write_layout(writer)
