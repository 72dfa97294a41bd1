"""Decode Lua 5.3 bytecode containers into :class:`~luac53.model.Prototype` trees.

The loader follows ``lundump.c``: a header, one byte with the number of
upvalues of the main closure, then the main function block.  Each function
block nests its child functions, so decoding is a depth-first walk that
produces children in file order.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .byteops import ByteReader
from .exceptions import NestingTooDeepError, UnknownConstantTagError, UpvalueCountMismatchError
from .header import HeaderInfo, read_header
from .model import Constant, ConstantTag, LocalVariable, Prototype, UpvalueDesc
from .options import CodecOptions

LOG = logging.getLogger(__name__)

__all__ = ["PrototypeDecoder", "decode"]


class PrototypeDecoder:
    """Single-use decoder bound to one input buffer.

    The reader, the header facts and the obfuscation key all live on the
    instance; nothing is shared between decoders.
    """

    def __init__(self, data: bytes, *, options: Optional[CodecOptions] = None) -> None:
        self.options = options or CodecOptions()
        self.reader = ByteReader(data)
        self.header: Optional[HeaderInfo] = None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def decode(self) -> Prototype:
        self.header = read_header(self.reader)
        declared_upvalues = self.reader.read_byte()

        try:
            main = self._load_function(b"", depth=1)
        except RecursionError:
            raise NestingTooDeepError(
                f"nested prototypes exhausted the interpreter stack near offset "
                f"{self.reader.offset}; lower max_depth (currently {self.options.max_depth})"
            ) from None
        if declared_upvalues != len(main.upvalues):
            raise UpvalueCountMismatchError(declared_upvalues, len(main.upvalues))

        if self.reader.remaining:
            LOG.warning(
                "ignoring %d trailing byte(s) after the main function", self.reader.remaining
            )
        LOG.debug(
            "decoded %d prototype(s) from %d byte(s)",
            sum(1 for _ in main.walk()),
            self.reader.offset,
        )
        return main

    # ------------------------------------------------------------------
    # Function blocks
    # ------------------------------------------------------------------

    def _load_function(self, parent_source: bytes, *, depth: int) -> Prototype:
        if depth > self.options.max_depth:
            raise NestingTooDeepError(
                f"nested prototypes exceed the depth limit of {self.options.max_depth} "
                f"at offset {self.reader.offset}"
            )
        reader = self.reader

        source = reader.read_string() or parent_source
        line_defined = reader.read_u32()
        last_line_defined = reader.read_u32()
        num_params = reader.read_byte()
        is_vararg = reader.read_byte()
        max_stack_size = reader.read_byte()

        code = self._load_code()
        constants = self._load_constants()
        upvalues = self._load_upvalues()
        protos = self._load_protos(source, depth)
        line_info, local_vars, upvalue_names = self._load_debug()

        LOG.debug(
            "prototype depth=%d lines=%d-%d: %d instruction(s), %d constant(s), "
            "%d upvalue(s), %d child(ren)",
            depth,
            line_defined,
            last_line_defined,
            len(code),
            len(constants),
            len(upvalues),
            len(protos),
        )
        return Prototype(
            source=source,
            line_defined=line_defined,
            last_line_defined=last_line_defined,
            num_params=num_params,
            is_vararg=is_vararg,
            max_stack_size=max_stack_size,
            code=code,
            constants=constants,
            upvalues=upvalues,
            protos=protos,
            line_info=line_info,
            local_vars=local_vars,
            upvalue_names=upvalue_names,
        )

    def _load_code(self) -> Tuple[int, ...]:
        count = self.reader.read_u32()
        words = self.reader.read_u32_array(count)
        cipher = self.reader.cipher
        if cipher is not None:
            words = cipher.adjust_instructions(words)
        return tuple(words)

    def _load_constants(self) -> Tuple[Constant, ...]:
        reader = self.reader
        count = reader.read_u32()
        constants: List[Constant] = []
        for index in range(count):
            tag = reader.read_byte()
            if tag == ConstantTag.NIL:
                constant = Constant.nil()
            elif tag == ConstantTag.BOOLEAN:
                constant = Constant.boolean(reader.read_byte() != 0)
            elif tag == ConstantTag.NUMFLT:
                constant = Constant.number(reader.read_number())
            elif tag == ConstantTag.NUMINT:
                constant = Constant.integer(reader.read_integer())
            elif tag == ConstantTag.SHRSTR or tag == ConstantTag.LNGSTR:
                constant = Constant(ConstantTag(tag), reader.read_string())
            else:
                raise UnknownConstantTagError(tag, index=index)
            constants.append(constant)
        return tuple(constants)

    def _load_upvalues(self) -> Tuple[UpvalueDesc, ...]:
        reader = self.reader
        count = reader.read_u32()
        upvalues: List[UpvalueDesc] = []
        for _ in range(count):
            in_stack = reader.read_byte()
            index = reader.read_byte()
            upvalues.append(UpvalueDesc(in_stack=in_stack, index=index))
        return tuple(upvalues)

    def _load_protos(self, source: bytes, depth: int) -> Tuple[Prototype, ...]:
        count = self.reader.read_u32()
        return tuple(self._load_function(source, depth=depth + 1) for _ in range(count))

    def _load_debug(
        self,
    ) -> Tuple[Tuple[int, ...], Tuple[LocalVariable, ...], Tuple[bytes, ...]]:
        reader = self.reader
        line_count = reader.read_u32()
        line_info = tuple(reader.read_u32_array(line_count))

        local_count = reader.read_u32()
        local_vars: List[LocalVariable] = []
        for _ in range(local_count):
            name = reader.read_string()
            start_pc = reader.read_u32()
            end_pc = reader.read_u32()
            local_vars.append(LocalVariable(name=name, start_pc=start_pc, end_pc=end_pc))

        name_count = reader.read_u32()
        upvalue_names = tuple(reader.read_string() for _ in range(name_count))
        return line_info, tuple(local_vars), upvalue_names


def decode(data: bytes, *, options: Optional[CodecOptions] = None) -> Prototype:
    """Decode a complete container and return its main prototype."""

    return PrototypeDecoder(data, options=options).decode()
