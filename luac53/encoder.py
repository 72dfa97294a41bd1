"""Write :class:`~luac53.model.Prototype` trees back into plain containers.

The layout mirrors :mod:`luac53.decoder` section for section.  Output is
always the plain format, whatever variant the tree was decoded from, so a
decode/encode pass doubles as a way to normalise obfuscated containers.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, Optional

from .byteops import ByteWriter
from .exceptions import EncodeError, NestingTooDeepError, UnknownConstantTagError
from .header import write_header
from .model import ConstantTag, Prototype
from .options import CodecOptions

LOG = logging.getLogger(__name__)

__all__ = ["PrototypeEncoder", "dump", "encode"]


class PrototypeEncoder:
    """Serialise a prototype tree through a :class:`ByteWriter`.

    Trees nested deeper than ``options.max_depth`` are refused, so anything
    this encoder writes can be read back with the same options.
    """

    def __init__(
        self,
        writer: Optional[ByteWriter] = None,
        *,
        options: Optional[CodecOptions] = None,
    ) -> None:
        self.writer = writer if writer is not None else ByteWriter()
        self.options = options or CodecOptions()

    def write(self, proto: Prototype) -> None:
        """Write the header, the main closure upvalue count and ``proto``."""

        write_header(self.writer)
        self.writer.write_byte(len(proto.upvalues), what="main closure upvalue count")
        try:
            self.write_function(proto, b"")
        except RecursionError:
            raise NestingTooDeepError(
                "nested prototypes exhausted the interpreter stack after "
                f"{self.writer.tell()} byte(s); lower max_depth "
                f"(currently {self.options.max_depth})"
            ) from None
        LOG.debug("encoded container of %d byte(s)", self.writer.tell())

    def encode(self, proto: Prototype) -> bytes:
        self.write(proto)
        return self.writer.getvalue()

    # ------------------------------------------------------------------
    # Function blocks
    # ------------------------------------------------------------------

    def write_function(self, proto: Prototype, parent_source: bytes, *, depth: int = 1) -> None:
        if depth > self.options.max_depth:
            raise NestingTooDeepError(
                f"nested prototypes exceed the depth limit of {self.options.max_depth} "
                f"after {self.writer.tell()} byte(s)"
            )
        writer = self.writer
        if proto.source == parent_source:
            writer.write_string(b"")
        else:
            writer.write_string(proto.source)
        writer.write_u32(proto.line_defined, what="linedefined")
        writer.write_u32(proto.last_line_defined, what="lastlinedefined")
        writer.write_byte(proto.num_params, what="numparams")
        writer.write_byte(proto.is_vararg, what="is_vararg")
        writer.write_byte(proto.max_stack_size, what="maxstacksize")

        self._write_code(proto)
        self._write_constants(proto)
        self._write_upvalues(proto)
        self._write_protos(proto, depth)
        self._write_debug(proto)

    def _write_code(self, proto: Prototype) -> None:
        self.writer.write_u32(len(proto.code))
        self.writer.write_u32_array(proto.code, what="instructions")

    def _write_constants(self, proto: Prototype) -> None:
        writer = self.writer
        writer.write_u32(len(proto.constants))
        for index, constant in enumerate(proto.constants):
            try:
                tag = ConstantTag(constant.tag)
            except ValueError:
                raise UnknownConstantTagError(constant.tag, index=index) from None
            writer.write_byte(tag)
            if tag == ConstantTag.NIL:
                continue
            if tag == ConstantTag.BOOLEAN:
                writer.write_byte(1 if constant.value else 0)
            elif tag == ConstantTag.NUMFLT:
                writer.write_number(constant.value)
            elif tag == ConstantTag.NUMINT:
                writer.write_integer(constant.value)
            else:
                if not isinstance(constant.value, (bytes, bytearray)):
                    raise EncodeError(
                        f"string constant [{index}] holds {type(constant.value).__name__}, "
                        "expected bytes"
                    )
                writer.write_string(bytes(constant.value))

    def _write_upvalues(self, proto: Prototype) -> None:
        writer = self.writer
        writer.write_u32(len(proto.upvalues))
        for upvalue in proto.upvalues:
            writer.write_byte(upvalue.in_stack, what="upvalue instack")
            writer.write_byte(upvalue.index, what="upvalue idx")

    def _write_protos(self, proto: Prototype, depth: int) -> None:
        self.writer.write_u32(len(proto.protos))
        for child in proto.protos:
            self.write_function(child, proto.source, depth=depth + 1)

    def _write_debug(self, proto: Prototype) -> None:
        writer = self.writer
        writer.write_u32(len(proto.line_info))
        writer.write_u32_array(proto.line_info, what="line info")

        writer.write_u32(len(proto.local_vars))
        for local in proto.local_vars:
            writer.write_string(local.name)
            writer.write_u32(local.start_pc, what="local startpc")
            writer.write_u32(local.end_pc, what="local endpc")

        writer.write_u32(len(proto.upvalue_names))
        for name in proto.upvalue_names:
            writer.write_string(name)


def encode(proto: Prototype, *, options: Optional[CodecOptions] = None) -> bytes:
    """Return ``proto`` serialised as a plain Lua 5.3 container."""

    return PrototypeEncoder(options=options).encode(proto)


def dump(proto: Prototype, stream: BinaryIO, *, options: Optional[CodecOptions] = None) -> int:
    """Write ``proto`` to ``stream`` and return the number of bytes written."""

    writer = ByteWriter(stream)
    PrototypeEncoder(writer, options=options).write(proto)
    return writer.tell()
