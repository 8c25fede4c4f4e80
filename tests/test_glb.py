import json
import struct

import pytest

from vrmreduce.errors import FormatError
from vrmreduce.gltf import glb


def _container(doc: dict, buffers: list[bytes]) -> bytes:
    return glb.serialize(doc, buffers)


def test_roundtrip_json_and_buffer():
    doc = {"asset": {"version": "2.0"}, "nodes": [{"name": "ノード"}]}
    data = _container(doc, [b"\x01\x02\x03\x04\x05"])

    content = glb.deserialize(data)
    assert content.json == doc
    # BIN chunk comes back zero padded to a 4-byte multiple.
    assert content.buffers == [b"\x01\x02\x03\x04\x05\x00\x00\x00"]


def test_header_and_padding():
    data = _container({"a": 1}, [b"xyz"])
    magic, version, total_length = struct.unpack_from("<III", data, 0)
    assert magic == glb.GLB_MAGIC
    assert version == 2
    assert total_length == len(data)
    assert len(data) % 4 == 0

    json_length, json_type = struct.unpack_from("<II", data, 12)
    assert json_type == glb.CHUNK_TYPE_JSON
    assert json_length % 4 == 0
    payload = data[20 : 20 + json_length]
    assert payload.rstrip(b" ") == b'{"a":1}'
    assert json.loads(payload) == {"a": 1}


def test_serialize_is_deterministic():
    doc = {"b": [1, 2], "a": {"c": None}}
    assert _container(doc, [b"1234"]) == _container(doc, [b"1234"])


def test_no_buffers():
    content = glb.deserialize(_container({"asset": {}}, []))
    assert content.buffers == []


def test_bad_magic():
    data = bytearray(_container({}, []))
    data[0:4] = b"xxxx"
    with pytest.raises(FormatError, match="magic"):
        glb.deserialize(bytes(data))


def test_bad_version():
    data = bytearray(_container({}, []))
    struct.pack_into("<I", data, 4, 1)
    with pytest.raises(FormatError, match="version"):
        glb.deserialize(bytes(data))


def test_truncated():
    data = _container({"asset": {"version": "2.0"}}, [b"12345678"])
    with pytest.raises(FormatError):
        glb.deserialize(data[:8])
    with pytest.raises(FormatError):
        glb.deserialize(data[:-4])


def test_chunk_overrun():
    data = bytearray(_container({}, [b"1234"]))
    # Claim a JSON chunk longer than the container.
    struct.pack_into("<I", data, 12, 4096)
    with pytest.raises(FormatError, match="overruns"):
        glb.deserialize(bytes(data))


def test_first_chunk_must_be_json():
    body = glb.pad(b"1234", b"\x00")
    total = 12 + 8 + len(body)
    data = struct.pack("<III", glb.GLB_MAGIC, 2, total) + struct.pack("<II", len(body), glb.CHUNK_TYPE_BIN) + body
    with pytest.raises(FormatError, match="JSON chunk"):
        glb.deserialize(data)


def test_invalid_json():
    body = glb.pad(b"{not json", b" ")
    total = 12 + 8 + len(body)
    data = struct.pack("<III", glb.GLB_MAGIC, 2, total) + struct.pack("<II", len(body), glb.CHUNK_TYPE_JSON) + body
    with pytest.raises(FormatError):
        glb.deserialize(data)


def test_format_error_is_value_error():
    with pytest.raises(ValueError):
        glb.deserialize(b"")


def test_pad():
    assert glb.pad(b"", b" ") == b""
    assert glb.pad(b"abcde", b" ") == b"abcde   "
    assert glb.pad(b"abcd", b"\x00") == b"abcd"
