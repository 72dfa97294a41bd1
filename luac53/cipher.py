"""Keystream transform used by obfuscated ("CE") Lua 5.3 containers.

Obfuscated containers carry an 8-byte key right after the format byte.  Every
block read after that point is XORed with a keystream derived from the key,
and the decoded instruction words are additionally shifted by their position.
The constants below were recovered from the tool that produces these files;
they are reproduced bit-for-bit and should be treated as an opaque algorithm.

The transform is only ever undone here.  The encoder always writes the plain
layout, so there is no inverse helper for producing obfuscated output.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

LOG = logging.getLogger(__name__)

__all__ = [
    "FIXED_KEYSTREAM_BYTE",
    "KEY_ROTATION_PERIOD",
    "BlockCipher",
    "keystream",
    "keystream_byte",
]

FIXED_KEYSTREAM_BYTE = 0xCE
KEY_ROTATION_PERIOD = 14

_U32_MASK = 0xFFFFFFFF
_U64_MASK = 0xFFFFFFFFFFFFFFFF


def keystream_byte(index: int, key: int) -> int:
    """Return the keystream byte at buffer-relative ``index``.

    The periodicity test lands on the fixed byte for one position out of
    every eight; all other positions take a byte of the shifted key.
    """

    test = ((index + (index >> 3)) & 7) - ((index >> 3) & 7)
    if test != 0:
        return (key >> (index % KEY_ROTATION_PERIOD)) & 0xFF
    return FIXED_KEYSTREAM_BYTE


def keystream(size: int, key: int) -> bytes:
    """Return the first ``size`` keystream bytes for ``key``."""

    key &= _U64_MASK
    return bytes(keystream_byte(index, key) for index in range(size))


class BlockCipher:
    """Stateless-per-call block transform bound to one container key.

    The keystream index restarts at zero for every :meth:`apply` call, which
    is why the reader must route each logical read through a single call.
    """

    def __init__(self, key: int) -> None:
        self.key = key & _U64_MASK
        self._stream = b""

    @property
    def active(self) -> bool:
        return self.key != 0

    def _keystream(self, size: int) -> bytes:
        if len(self._stream) < size:
            self._stream = keystream(max(size, 2 * len(self._stream), 64), self.key)
        return self._stream[:size]

    def apply(self, chunk: bytes) -> bytes:
        """Return ``chunk`` XORed with the keystream starting at index 0."""

        size = len(chunk)
        if not size or not self.active:
            return bytes(chunk)
        stream = self._keystream(size)
        mixed = int.from_bytes(chunk, "little") ^ int.from_bytes(stream, "little")
        return mixed.to_bytes(size, "little")

    def adjust_instructions(self, words: Iterable[int]) -> List[int]:
        """Undo the positional shift applied to decoded instruction words."""

        if not self.active:
            return list(words)
        return [(word - (index & 3)) & _U32_MASK for index, word in enumerate(words)]

    def __repr__(self) -> str:
        # Never leak key material into logs or tracebacks.
        return f"BlockCipher(active={self.active})"
