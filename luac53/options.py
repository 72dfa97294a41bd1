"""Runtime configuration for the decoder and encoder."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Mapping, Optional

__all__ = ["CodecOptions", "DEFAULT_MAX_DEPTH", "MAX_DEPTH_ENV_VAR", "max_supported_depth"]

DEFAULT_MAX_DEPTH = 200
MAX_DEPTH_ENV_VAR = "LUAC53_MAX_DEPTH"

# The decoder spends three Python frames per nesting level; the headroom
# covers the caller's own stack and the leaf reads.
FRAMES_PER_LEVEL = 3
STACK_HEADROOM = 150


def max_supported_depth() -> int:
    """Return the deepest nesting the interpreter's recursion limit allows."""

    return max(1, (sys.getrecursionlimit() - STACK_HEADROOM) // FRAMES_PER_LEVEL)


@dataclass(frozen=True)
class CodecOptions:
    """Knobs shared by a single decode or encode session."""

    max_depth: int = DEFAULT_MAX_DEPTH

    def __post_init__(self) -> None:
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be positive, got {self.max_depth}")
        ceiling = max_supported_depth()
        if self.max_depth > ceiling:
            raise ValueError(
                f"max_depth {self.max_depth} exceeds the supported maximum of {ceiling} "
                f"(interpreter recursion limit {sys.getrecursionlimit()})"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CodecOptions":
        """Return options populated from ``LUAC53_MAX_DEPTH`` when set."""

        env = os.environ if environ is None else environ
        raw = env.get(MAX_DEPTH_ENV_VAR, "").strip()
        if not raw:
            return cls()
        try:
            depth = int(raw, 10)
        except ValueError as exc:
            raise ValueError(f"{MAX_DEPTH_ENV_VAR} must be an integer, got {raw!r}") from exc
        return cls(max_depth=depth)
