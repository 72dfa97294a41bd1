import json
import sys

import pytest

from bytecode_builders import nested_chain
from luac53.exceptions import NestingTooDeepError
from luac53.model import Constant, ConstantTag, Prototype, UpvalueDesc, display_text


def test_constant_constructors_pick_tags():
    assert Constant.nil().tag == ConstantTag.NIL
    assert Constant.boolean(1).value is True
    assert Constant.number(2).value == 2.0
    assert isinstance(Constant.number(2).value, float)
    assert Constant.string("é").value == "é".encode("utf-8")
    assert Constant.string(b"x", long=True).tag == ConstantTag.LNGSTR
    assert Constant.string(b"x").is_string


def test_constant_equality_is_bit_exact_for_floats():
    nan = float("nan")
    assert Constant.number(nan) == Constant.number(nan)
    assert Constant.number(0.0) != Constant.number(-0.0)
    assert len({Constant.number(nan), Constant.number(nan)}) == 1


def test_string_kinds_compare_by_tag():
    assert Constant.string(b"a") != Constant.string(b"a", long=True)
    assert Constant.string(b"a").kind == Constant.string(b"a", long=True).kind == "STRING"


def test_upvalue_names_are_positional():
    proto = Prototype(upvalues=(UpvalueDesc(1, 0), UpvalueDesc(0, 1)), upvalue_names=(b"_ENV",))
    assert proto.upvalue_name(0) == b"_ENV"
    assert proto.upvalue_name(1) is None
    assert proto.upvalue_name(-1) is None


def test_walk_is_pre_order(tree):
    lines = [proto.line_defined for proto in tree.walk()]
    assert lines == [0, 1, 5, 6, 11]


def test_as_dict_is_json_serialisable(tree):
    payload = json.loads(json.dumps(tree.as_dict()))
    assert payload["source"] == "@sample.lua"
    assert payload["code"][0] == "0x00000001"
    assert payload["upvalues"] == [{"in_stack": 1, "index": 0, "name": "_ENV"}]
    assert payload["constants"][4]["value"] == "nan"
    assert [child["line_defined"] for child in payload["protos"]] == [1, 5, 11]


def test_display_text_escapes_invalid_utf8():
    assert display_text("é".encode("utf-8")) == "é"
    assert display_text(b"a\xffb") == "a\\xffb"


def test_as_dict_reports_trees_deeper_than_the_stack():
    with pytest.raises(NestingTooDeepError, match="too deeply"):
        nested_chain(sys.getrecursionlimit()).as_dict()
