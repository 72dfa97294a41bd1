"""Immutable representation of a decoded Lua 5.3 prototype tree."""

from __future__ import annotations

import enum
import math
import struct
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple, Union

from .exceptions import NestingTooDeepError

__all__ = [
    "Constant",
    "ConstantTag",
    "ConstantValue",
    "display_text",
    "LocalVariable",
    "Prototype",
    "UpvalueDesc",
]

ConstantValue = Union[None, bool, int, float, bytes]

_FLOAT_BITS = struct.Struct("=d")


class ConstantTag(enum.IntEnum):
    """Variant tags Lua 5.3 writes in front of each constant."""

    NIL = 0x00
    BOOLEAN = 0x01
    NUMFLT = 0x03
    SHRSTR = 0x04
    NUMINT = 0x13
    LNGSTR = 0x14


_STRING_TAGS = frozenset((ConstantTag.SHRSTR, ConstantTag.LNGSTR))

_KIND_NAMES = {
    ConstantTag.NIL: "NIL",
    ConstantTag.BOOLEAN: "BOOLEAN",
    ConstantTag.NUMFLT: "NUMBER (float)",
    ConstantTag.NUMINT: "NUMBER (integer)",
    ConstantTag.SHRSTR: "STRING",
    ConstantTag.LNGSTR: "STRING",
}


def display_text(value: bytes) -> str:
    """Decode a Lua byte string for display, escaping invalid UTF-8."""

    return value.decode("utf-8", errors="backslashreplace")


def _optional_text(value: Optional[bytes]) -> Optional[str]:
    return None if value is None else display_text(value)


@dataclass(frozen=True, eq=False)
class Constant:
    """One entry of a prototype's constant pool.

    ``tag`` selects the meaning of ``value``.  It is kept as a plain integer
    so trees built by hand can carry tags the encoder will reject.  Float
    payloads compare by bit pattern so ``NaN`` constants survive equality
    checks after a round trip.
    """

    tag: int
    value: ConstantValue = None

    @classmethod
    def nil(cls) -> "Constant":
        return cls(ConstantTag.NIL)

    @classmethod
    def boolean(cls, value: bool) -> "Constant":
        return cls(ConstantTag.BOOLEAN, bool(value))

    @classmethod
    def number(cls, value: float) -> "Constant":
        return cls(ConstantTag.NUMFLT, float(value))

    @classmethod
    def integer(cls, value: int) -> "Constant":
        return cls(ConstantTag.NUMINT, int(value))

    @classmethod
    def string(cls, value: Union[bytes, str], *, long: bool = False) -> "Constant":
        if isinstance(value, str):
            value = value.encode("utf-8")
        return cls(ConstantTag.LNGSTR if long else ConstantTag.SHRSTR, bytes(value))

    @property
    def is_string(self) -> bool:
        return self.tag in _STRING_TAGS

    @property
    def kind(self) -> str:
        try:
            return _KIND_NAMES[ConstantTag(self.tag)]
        except ValueError:
            return f"UNKNOWN_TYPE ({self.tag})"

    def _key(self) -> Tuple[int, Any]:
        if self.tag == ConstantTag.NUMFLT and isinstance(self.value, float):
            return (self.tag, _FLOAT_BITS.pack(self.value))
        return (self.tag, self.value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Constant):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def as_dict(self) -> Dict[str, Any]:
        value: Any = self.value
        if isinstance(value, bytes):
            value = display_text(value)
        elif isinstance(value, float) and not math.isfinite(value):
            value = repr(value)
        return {"tag": int(self.tag), "kind": self.kind, "value": value}


@dataclass(frozen=True)
class UpvalueDesc:
    """Where a closure finds one of its upvalues when it is created."""

    in_stack: int
    index: int


@dataclass(frozen=True)
class LocalVariable:
    """Program-counter range over which a named local is live."""

    name: bytes
    start_pc: int
    end_pc: int


@dataclass(frozen=True)
class Prototype:
    """Static description of one compiled function and its children.

    ``upvalue_names`` comes from the debug section and is correlated with
    ``upvalues`` purely by position; the two tuples may differ in length
    (stripped dumps carry no names at all).
    """

    source: bytes = b""
    line_defined: int = 0
    last_line_defined: int = 0
    num_params: int = 0
    is_vararg: int = 0
    max_stack_size: int = 0
    code: Tuple[int, ...] = ()
    constants: Tuple[Constant, ...] = ()
    upvalues: Tuple[UpvalueDesc, ...] = ()
    protos: Tuple["Prototype", ...] = ()
    line_info: Tuple[int, ...] = ()
    local_vars: Tuple[LocalVariable, ...] = ()
    upvalue_names: Tuple[bytes, ...] = ()

    def upvalue_name(self, index: int) -> Optional[bytes]:
        """Return the debug name for upvalue ``index`` if one was recorded."""

        if 0 <= index < len(self.upvalue_names):
            return self.upvalue_names[index]
        return None

    def walk(self) -> Iterator["Prototype"]:
        """Yield this prototype and every descendant in pre-order."""

        stack = [self]
        while stack:
            proto = stack.pop()
            yield proto
            stack.extend(reversed(proto.protos))

    def as_dict(self) -> Dict[str, Any]:
        """Return a JSON-serialisable view of the subtree."""

        try:
            return self._subtree_dict()
        except RecursionError:
            raise NestingTooDeepError(
                "prototype tree is nested too deeply to convert to a dict"
            ) from None

    def _subtree_dict(self) -> Dict[str, Any]:
        return {
            "source": display_text(self.source),
            "line_defined": self.line_defined,
            "last_line_defined": self.last_line_defined,
            "num_params": self.num_params,
            "is_vararg": self.is_vararg,
            "max_stack_size": self.max_stack_size,
            "code": [f"0x{word:08x}" for word in self.code],
            "constants": [constant.as_dict() for constant in self.constants],
            "upvalues": [
                {
                    "in_stack": upvalue.in_stack,
                    "index": upvalue.index,
                    "name": _optional_text(self.upvalue_name(position)),
                }
                for position, upvalue in enumerate(self.upvalues)
            ],
            "local_vars": [
                {
                    "name": display_text(local.name),
                    "start_pc": local.start_pc,
                    "end_pc": local.end_pc,
                }
                for local in self.local_vars
            ],
            "line_info": list(self.line_info),
            "upvalue_names": [display_text(name) for name in self.upvalue_names],
            "protos": [child._subtree_dict() for child in self.protos],
        }
