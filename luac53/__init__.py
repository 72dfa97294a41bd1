"""Decode, print and re-encode Lua 5.3 bytecode containers."""

from __future__ import annotations

from .compiler import compile_source
from .decoder import PrototypeDecoder, decode
from .encoder import PrototypeEncoder, dump, encode
from .exceptions import BytecodeError, DecodeError, EncodeError
from .model import Constant, ConstantTag, LocalVariable, Prototype, UpvalueDesc
from .options import CodecOptions
from .printer import PrototypeFormatter, format_prototype, render

__version__ = "0.1.0"

__all__ = [
    "BytecodeError",
    "CodecOptions",
    "Constant",
    "ConstantTag",
    "DecodeError",
    "EncodeError",
    "LocalVariable",
    "Prototype",
    "PrototypeDecoder",
    "PrototypeEncoder",
    "PrototypeFormatter",
    "UpvalueDesc",
    "compile_source",
    "decode",
    "dump",
    "encode",
    "format_prototype",
    "render",
]
