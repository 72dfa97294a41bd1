"""Byte-exact parity with containers produced by the Lua 5.3 dumper."""

import pytest

from luac53 import compile_source, decode, encode, render
from luac53.exceptions import CompileError
from luac53.model import Constant, ConstantTag

SOURCE = """
local greeting = "hello"
local banner = "%s"
local function add(a, b)
  return a + b
end
local weights = {1.5, 42, -7}
function outer(n)
  local x = n * 2
  return function()
    return x + add(1, 2), greeting
  end
end
return banner, weights, outer
""" % ("y" * 300)


@pytest.fixture
def dumped(lua53):
    return compile_source(SOURCE, chunkname="@sample.lua")


def test_real_dump_round_trips_byte_exact(dumped):
    assert encode(decode(dumped)) == dumped


def test_stripped_dump_round_trips_byte_exact(lua53):
    stripped = compile_source(SOURCE, chunkname="@sample.lua", strip=True)
    proto = decode(stripped)
    assert encode(proto) == stripped
    assert proto.source == b""
    assert proto.line_info == ()
    assert proto.upvalue_names == ()


def test_real_dump_structure(dumped):
    main = decode(dumped)
    assert main.source == b"@sample.lua"
    assert main.is_vararg == 1
    assert main.upvalue_names == (b"_ENV",)
    assert len(main.line_info) == len(main.code)
    assert Constant.string(b"hello") in main.constants
    assert Constant.number(1.5) in main.constants
    assert Constant.integer(42) in main.constants
    assert any(c.tag == ConstantTag.LNGSTR for c in main.constants)

    assert [child.line_defined for child in main.protos] == [4, 8]
    add, outer = main.protos
    assert add.num_params == 2
    assert [local.name for local in add.local_vars] == [b"a", b"b"]
    assert all(proto.source == b"@sample.lua" for proto in main.walk())

    # upvalues are created in first-use order while the inner closure is parsed
    (closure,) = outer.protos
    assert outer.upvalue_names == (b"add", b"greeting")
    assert closure.upvalue_names == (b"x", b"add", b"greeting")
    assert closure.upvalues[0].in_stack == 1
    assert [upvalue.in_stack for upvalue in closure.upvalues[1:]] == [0, 0]


def test_real_dump_renders(dumped):
    text = render(decode(dumped))
    assert 'STRING "hello"' in text
    assert 'Name="_ENV"' in text
    assert text.count("Function Prototype:") == 4


def test_compile_error_is_reported(lua53):
    with pytest.raises(CompileError, match="broken.lua"):
        compile_source("return +", chunkname="@broken.lua")
