"""Compile Lua source into a 5.3 container using the embedded Lua runtime.

``lupa`` ships a Lua 5.3 build as :mod:`lupa.lua53`.  Its ``string.dump``
produces exactly the containers :mod:`luac53.decoder` reads, which makes it
both a convenient front-end for the CLI and a reference dumper for tests.
"""

from __future__ import annotations

import logging
from typing import Union

from .exceptions import CompileError

LOG = logging.getLogger(__name__)

__all__ = ["compile_source"]

_DUMP_HELPER = """
function(source, chunkname, strip)
  local fn, err = load(source, chunkname, "t")
  if not fn then
    return nil, err
  end
  return string.dump(fn, strip), nil
end
"""


def _runtime():
    from lupa.lua53 import LuaRuntime

    # encoding=None keeps Lua strings as bytes in both directions.
    return LuaRuntime(encoding=None, unpack_returned_tuples=True)


def compile_source(
    source: Union[str, bytes],
    *,
    chunkname: Union[str, bytes] = "=?",
    strip: bool = False,
) -> bytes:
    """Return the ``string.dump`` output for ``source``.

    ``chunkname`` becomes the main prototype's source label.  ``strip``
    drops the debug section just like ``luac -s``.  Syntax errors raise
    :class:`~luac53.exceptions.CompileError`.
    """

    if isinstance(source, str):
        source = source.encode("utf-8")
    if isinstance(chunkname, str):
        chunkname = chunkname.encode("utf-8")

    runtime = _runtime()
    helper = runtime.eval(_DUMP_HELPER)
    dumped, error = helper(source, chunkname, bool(strip))
    if dumped is None:
        message = error.decode("utf-8", errors="replace") if isinstance(error, bytes) else str(error)
        raise CompileError(f"cannot compile {chunkname.decode('utf-8', errors='replace')}: {message}")
    LOG.debug("compiled %d byte(s) of source into %d byte(s)", len(source), len(dumped))
    return bytes(dumped)
