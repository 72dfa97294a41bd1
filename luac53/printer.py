"""Human-readable listing of a decoded prototype tree.

Float constants are printed the way Lua's own ``tostring`` prints them
(``%.14g``, with ``.0`` appended to integral values), so ``1/3`` shows as
``0.33333333333333`` and ``3.0`` as ``3.0``.  Inspectors that stream floats
with C++ iostream defaults print six significant digits (``0.333333`` and
``3``), so their listings differ from this one on float constants.
"""

from __future__ import annotations

import io
import math
from typing import Optional, TextIO

from .exceptions import NestingTooDeepError
from .model import (
    Constant,
    ConstantTag,
    LocalVariable,
    Prototype,
    UpvalueDesc,
    display_text,
)

__all__ = ["PrototypeFormatter", "format_number", "format_prototype", "render"]

_INDENT = "  "


def format_number(value: float) -> str:
    """Format ``value`` the way Lua's ``tostring`` does (``%.14g``)."""

    if math.isnan(value):
        return "-nan" if math.copysign(1.0, value) < 0 else "nan"
    if math.isinf(value):
        return "-inf" if value < 0 else "inf"
    text = "%.14g" % value
    if text.lstrip("-").isdigit():
        text += ".0"
    return text


class PrototypeFormatter:
    """Write one indented block per prototype straight into ``stream``."""

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream
        self._level = 0

    def format(self, proto: Prototype) -> None:
        self._level = 0
        try:
            self._format_proto(proto)
        except RecursionError:
            raise NestingTooDeepError(
                "prototype tree is nested too deeply to format"
            ) from None

    def _line(self, text: str) -> None:
        self.stream.write(_INDENT * self._level + text + "\n")

    def _format_instruction(self, word: int, pc: int) -> None:
        self._line(f"{pc:04d}  0x{word:08x}")

    def _format_constant(self, constant: Constant, index: int) -> None:
        tag = constant.tag
        if tag == ConstantTag.NIL:
            body = "NIL"
        elif tag == ConstantTag.BOOLEAN:
            body = "BOOLEAN " + ("true" if constant.value else "false")
        elif tag == ConstantTag.NUMFLT:
            body = "NUMBER (float) " + format_number(constant.value)
        elif tag == ConstantTag.NUMINT:
            body = f"NUMBER (integer) {constant.value}"
        elif constant.is_string:
            body = f'STRING "{display_text(constant.value)}"'
        else:
            body = constant.kind
        self._line(f"  [{index}] {body}")

    def _format_upvalue(self, upvalue: UpvalueDesc, index: int, name: Optional[bytes]) -> None:
        text = f"  Upvalue [{index}]: Instack={upvalue.in_stack}, Idx={upvalue.index}"
        if name:
            text += f', Name="{display_text(name)}"'
        self._line(text)

    def _format_local(self, local: LocalVariable, index: int) -> None:
        self._line(
            f'  LocalVar [{index}]: Name="{display_text(local.name)}", '
            f"StartPC={local.start_pc}, EndPC={local.end_pc}"
        )

    def _format_proto(self, proto: Prototype) -> None:
        self._line("Function Prototype:")
        self._level += 1

        self._line(f'Source: "{display_text(proto.source)}"')
        self._line(f"Line Defined: {proto.line_defined}")
        self._line(f"Last Line Defined: {proto.last_line_defined}")
        self._line(f"Num Params: {proto.num_params}")
        self._line(f"Is Vararg: {proto.is_vararg}")
        self._line(f"Max Stack Size: {proto.max_stack_size}")

        self._line(f"Code ({len(proto.code)} instructions):")
        self._level += 1
        for pc, word in enumerate(proto.code):
            self._format_instruction(word, pc)
        self._level -= 1

        self._line(f"Constants ({len(proto.constants)}):")
        self._level += 1
        for index, constant in enumerate(proto.constants):
            self._format_constant(constant, index)
        self._level -= 1

        self._line(f"Upvalues ({len(proto.upvalues)}):")
        self._level += 1
        for index, upvalue in enumerate(proto.upvalues):
            self._format_upvalue(upvalue, index, proto.upvalue_name(index))
        self._level -= 1

        self._line(f"Local Variables ({len(proto.local_vars)}):")
        self._level += 1
        for index, local in enumerate(proto.local_vars):
            self._format_local(local, index)
        self._level -= 1

        self._line(f"Nested Prototypes ({len(proto.protos)}):")
        self._level += 1
        for child in proto.protos:
            self._format_proto(child)
        self._level -= 1

        self._level -= 1
        self._line("End Function Prototype")


def format_prototype(proto: Prototype, stream: TextIO) -> None:
    """Render ``proto`` and its children into ``stream``."""

    PrototypeFormatter(stream).format(proto)


def render(proto: Prototype) -> str:
    """Return the listing for ``proto`` as a string."""

    buffer = io.StringIO()
    format_prototype(proto, buffer)
    return buffer.getvalue()
