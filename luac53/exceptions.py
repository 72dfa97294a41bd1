"""Exception hierarchy for the bytecode codec."""

from __future__ import annotations

from typing import Optional


class BytecodeError(Exception):
    """Base class for all bytecode related errors."""


class DecodeError(BytecodeError):
    """Raised when a container cannot be decoded."""


class EncodeError(BytecodeError):
    """Raised when a prototype tree cannot be written back to bytes."""


class TruncatedError(DecodeError):
    """Raised when the cursor runs past the end of the input buffer.

    ``granularity`` names the kind of read that failed (``"byte"``,
    ``"field"`` or ``"block"``).
    """

    def __init__(self, granularity: str, offset: int, requested: int, available: int) -> None:
        super().__init__(
            f"truncated ({granularity}): needed {requested} byte(s) at offset {offset}, "
            f"{available} available"
        )
        self.granularity = granularity
        self.offset = offset
        self.requested = requested
        self.available = available


class HeaderError(DecodeError):
    """Base class for container header validation failures."""


class MagicMismatchError(HeaderError):
    """The container does not start with the Lua signature."""


class VersionMismatchError(HeaderError):
    """The version byte does not describe Lua 5.3."""


class FormatMismatchError(HeaderError):
    """The format byte is neither the plain nor the obfuscated variant."""


class DataCanaryMismatchError(HeaderError):
    """The data integrity literal was corrupted."""


class PrimitiveWidthMismatchError(HeaderError):
    """A declared primitive width differs from the host width."""

    def __init__(self, primitive: str, expected: int, actual: int) -> None:
        super().__init__(f"{primitive} size mismatch: expected {expected}, got {actual}")
        self.primitive = primitive
        self.expected = expected
        self.actual = actual


class EndiannessMismatchError(HeaderError):
    """The integer canary did not decode to the expected value."""


class FloatLayoutMismatchError(HeaderError):
    """The float canary did not decode to the expected value."""


class UnknownConstantTagError(DecodeError, EncodeError):
    """A constant carries a tag outside the known Lua 5.3 variants."""

    def __init__(self, tag: int, *, index: Optional[int] = None) -> None:
        location = f" at constant [{index}]" if index is not None else ""
        super().__init__(f"unknown constant type: {tag}{location}")
        self.tag = tag
        self.index = index


class UpvalueCountMismatchError(DecodeError):
    """The main closure upvalue count disagrees with the main prototype."""

    def __init__(self, declared: int, actual: int) -> None:
        super().__init__(
            "main closure upvalue count mismatch with main prototype: "
            f"declared {declared}, prototype has {actual}"
        )
        self.declared = declared
        self.actual = actual


class NestingTooDeepError(DecodeError, EncodeError):
    """Nested prototypes exceed the configured depth limit or the interpreter stack."""


class CompileError(BytecodeError):
    """Raised when Lua source cannot be compiled into a container."""


__all__ = [
    "BytecodeError",
    "DecodeError",
    "EncodeError",
    "TruncatedError",
    "HeaderError",
    "MagicMismatchError",
    "VersionMismatchError",
    "FormatMismatchError",
    "DataCanaryMismatchError",
    "PrimitiveWidthMismatchError",
    "EndiannessMismatchError",
    "FloatLayoutMismatchError",
    "UnknownConstantTagError",
    "UpvalueCountMismatchError",
    "NestingTooDeepError",
    "CompileError",
]
