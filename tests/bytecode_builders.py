"""Shared builders for hand-made prototype trees and synthetic containers."""

from __future__ import annotations

import dataclasses
import struct

from luac53.byteops import ByteWriter
from luac53.cipher import BlockCipher
from luac53.encoder import PrototypeEncoder
from luac53.header import FORMAT_OBFUSCATED, write_layout, write_preamble
from luac53.model import Constant, LocalVariable, Prototype, UpvalueDesc

# magic(1) + tail(3) + version(1) + format(1) + data(6) + widths(5) + int(8) + float(8)
PLAIN_HEADER_SIZE = 33
KEY_OFFSET = 6
SAMPLE_KEY = 0x0123456789ABCDEF


def leaf(line: int, *, source: bytes = b"@sample.lua", code=(0x00800026,)) -> Prototype:
    return Prototype(
        source=source,
        line_defined=line,
        last_line_defined=line + 2,
        num_params=1,
        is_vararg=0,
        max_stack_size=2,
        code=tuple(code),
        constants=(Constant.integer(line),),
        upvalues=(UpvalueDesc(in_stack=1, index=0),),
        line_info=tuple(line for _ in code),
        local_vars=(LocalVariable(name=b"a", start_pc=0, end_pc=len(code)),),
        upvalue_names=(b"x",),
    )


def sample_tree() -> Prototype:
    """Main chunk with every constant kind and three nested functions."""

    return Prototype(
        source=b"@sample.lua",
        line_defined=0,
        last_line_defined=0,
        num_params=0,
        is_vararg=1,
        max_stack_size=6,
        code=(0x00000001, 0x00004041, 0x0000C0A4, 0x01000026, 0x00800026),
        constants=(
            Constant.nil(),
            Constant.boolean(True),
            Constant.boolean(False),
            Constant.number(1.5),
            Constant.number(float("nan")),
            Constant.integer(-(2**63)),
            Constant.integer(42),
            Constant.string(b"hello"),
            Constant.string(b"y" * 300, long=True),
        ),
        upvalues=(UpvalueDesc(in_stack=1, index=0),),
        protos=(
            leaf(1),
            Prototype(
                source=b"@other.lua",
                line_defined=5,
                last_line_defined=9,
                code=(0x00800026,),
                protos=(leaf(6, source=b"@other.lua"),),
            ),
            leaf(11, code=(0x00000001, 0x00000002, 0x00000003, 0x00000004, 0x00800026)),
        ),
        line_info=(1, 1, 2, 3, 3),
        local_vars=(
            LocalVariable(name=b"greeting", start_pc=1, end_pc=5),
            LocalVariable(name=b"add", start_pc=2, end_pc=5),
        ),
        upvalue_names=(b"_ENV",),
    )


def nested_chain(depth: int) -> Prototype:
    proto = Prototype(source=b"=chain")
    for _ in range(depth - 1):
        proto = Prototype(source=b"=chain", protos=(proto,))
    return proto


def call_with_frames_used(frames: int, func, *args, **kwargs):
    """Call ``func`` with ``frames`` extra Python frames already on the stack."""

    if frames <= 0:
        return func(*args, **kwargs)
    return call_with_frames_used(frames - 1, func, *args, **kwargs)


class ObfuscatingWriter(ByteWriter):
    """Writer that applies the block transform to every write.

    The transform is its own inverse, so applying it on the way out yields
    exactly what an obfuscated dumper would produce, provided writes are
    split the same way the decoder splits its reads.
    """

    def __init__(self) -> None:
        super().__init__()
        self.cipher = None

    def write_block(self, data: bytes) -> None:
        if self.cipher is not None:
            data = self.cipher.apply(data)
        super().write_block(data)


def _shift_code(proto: Prototype) -> Prototype:
    return dataclasses.replace(
        proto,
        code=tuple((word + (index & 3)) & 0xFFFFFFFF for index, word in enumerate(proto.code)),
        protos=tuple(_shift_code(child) for child in proto.protos),
    )


def obfuscate(proto: Prototype, key: int = SAMPLE_KEY) -> bytes:
    """Return an obfuscated container that decodes back to ``proto``."""

    writer = ObfuscatingWriter()
    write_preamble(writer)
    writer.write_byte(FORMAT_OBFUSCATED)
    writer.write_size(key)
    writer.cipher = BlockCipher(key) if key else None
    write_layout(writer, size_width=8)
    writer.write_byte(len(proto.upvalues))
    PrototypeEncoder(writer).write_function(_shift_code(proto) if key else proto, b"")
    return writer.getvalue()


def replace_key(data: bytes, key: int) -> bytes:
    return data[:KEY_OFFSET] + struct.pack("=Q", key) + data[KEY_OFFSET + 8 :]


def corrupt(data: bytes, offset: int, mask: int = 0xFF) -> bytes:
    patched = bytearray(data)
    patched[offset] ^= mask
    return bytes(patched)
