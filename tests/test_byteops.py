import io
import struct

import pytest

from luac53.byteops import ByteReader, ByteWriter
from luac53.cipher import BlockCipher
from luac53.exceptions import EncodeError, TruncatedError


def _written(value: bytes) -> bytes:
    writer = ByteWriter()
    writer.write_string(value)
    return writer.getvalue()


def test_empty_string_is_single_zero_byte():
    assert _written(b"") == b"\x00"
    assert ByteReader(b"\x00").read_string() == b""


def test_short_string_prefix_is_length_plus_one():
    assert _written(b"abc") == b"\x04abc"
    assert ByteReader(b"\x04abc").read_string() == b"abc"


@pytest.mark.parametrize(
    "length, prefix",
    [
        (253, b"\xfe"),
        (254, b"\xff" + struct.pack("=Q", 255)),
        (255, b"\xff" + struct.pack("=Q", 256)),
    ],
)
def test_string_prefix_boundary(length, prefix):
    body = b"s" * length
    encoded = _written(body)
    assert encoded == prefix + body
    reader = ByteReader(encoded)
    assert reader.read_string() == body
    assert reader.remaining == 0


def test_fixed_width_reads_are_host_native():
    payload = struct.pack("=IqdQ", 7, -2, 370.5, 2**40)
    reader = ByteReader(payload)
    assert reader.read_u32() == 7
    assert reader.read_integer() == -2
    assert reader.read_number() == 370.5
    assert reader.read_size() == 2**40
    assert reader.offset == len(payload)


def test_u32_array_reads_one_block():
    reader = ByteReader(struct.pack("=3I", 1, 2, 0xFFFFFFFF))
    assert reader.read_u32_array(3) == [1, 2, 0xFFFFFFFF]
    assert reader.read_u32_array(0) == []


@pytest.mark.parametrize(
    "payload, call, granularity",
    [
        (b"", lambda r: r.read_byte(), "byte"),
        (b"\x01\x02", lambda r: r.read_u32(), "field"),
        (b"\x01\x02\x03", lambda r: r.read_block(5), "block"),
        (b"\x05ab", lambda r: r.read_string(), "block"),
        (b"\x02\x00\x00\x00", lambda r: r.read_u32_array(2), "block"),
    ],
)
def test_truncation_reports_granularity(payload, call, granularity):
    reader = ByteReader(payload)
    with pytest.raises(TruncatedError) as excinfo:
        call(reader)
    assert excinfo.value.granularity == granularity
    assert "truncated" in str(excinfo.value)


def test_cipher_is_applied_per_read():
    cipher = BlockCipher(0x0123456789ABCDEF)
    plain = b"\x10\x20\x30\x40"
    encoded = cipher.apply(plain[:1]) + cipher.apply(plain[1:])
    reader = ByteReader(encoded, cipher=cipher)
    assert reader.read_byte() == 0x10
    assert reader.read_block(3) == b"\x20\x30\x40"


def test_attach_inactive_cipher_is_ignored():
    reader = ByteReader(b"\x01")
    reader.attach_cipher(BlockCipher(0))
    assert reader.cipher is None
    assert reader.read_byte() == 1


def test_writer_mirrors_reader():
    stream = io.BytesIO()
    writer = ByteWriter(stream)
    writer.write_byte(9)
    writer.write_u32(0xDEADBEEF)
    writer.write_integer(-5)
    writer.write_number(-0.25)
    writer.write_u32_array([3, 4])
    assert writer.tell() == len(stream.getvalue()) == 1 + 4 + 8 + 8 + 8

    reader = ByteReader(stream.getvalue())
    assert reader.read_byte() == 9
    assert reader.read_u32() == 0xDEADBEEF
    assert reader.read_integer() == -5
    assert reader.read_number() == -0.25
    assert reader.read_u32_array(2) == [3, 4]


@pytest.mark.parametrize(
    "call",
    [
        lambda w: w.write_byte(256),
        lambda w: w.write_byte(-1),
        lambda w: w.write_u32(2**32),
        lambda w: w.write_integer(2**63),
        lambda w: w.write_u32_array([1, -1]),
    ],
)
def test_writer_rejects_out_of_range_values(call):
    with pytest.raises(EncodeError):
        call(ByteWriter())
