"""GLB (glTF 2.0 binary container) codec.

Layout, all little endian:

    magic: u32 ("glTF")
    version: u32 (2)
    totalLength: u32
    chunks: [chunkLength: u32][chunkType: u32][payload]...

The JSON chunk comes first and is padded with spaces; BIN chunks are padded
with zero bytes. Both are padded to 4-byte multiples.
"""

import json
import struct
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from ..errors import FormatError, check

GLB_HEADER_LENGTH = 12
GLB_CHUNK_HEADER_LENGTH = 8
GLB_MAGIC = 0x46546C67  # b"glTF"
GLB_VERSION = 2
CHUNK_TYPE_JSON = 0x4E4F534A  # b"JSON"
CHUNK_TYPE_BIN = 0x004E4942  # b"BIN\0"

_HEADER = struct.Struct("<III")
_CHUNK_HEADER = struct.Struct("<II")


class Chunk(NamedTuple):
    chunk_type: int
    data: bytes


@dataclass
class GlbContent:
    """Decoded GLB: the JSON document and the BIN chunk payloads."""

    json: dict[str, Any]
    buffers: list[bytes] = field(default_factory=list)


def deserialize(data: bytes) -> GlbContent:
    """Decode a GLB container.

    Only glTF version 2 is supported. Validation is minimal, but known
    broken layouts are rejected rather than partially recovered.

    Args:
        data: Whole file content

    Returns:
        GlbContent with the parsed JSON and every BIN chunk in file order

    Raises:
        FormatError: bad magic or version, truncated header or chunk,
            missing JSON chunk, undecodable JSON
    """
    data = bytes(data)
    if len(data) < GLB_HEADER_LENGTH:
        raise FormatError(f"GLB header truncated: {len(data)} bytes")

    magic, version, total_length = _HEADER.unpack_from(data, 0)
    if magic != GLB_MAGIC:
        raise FormatError(f"Unsupported glTF-Binary header magic 0x{magic:08x}")
    if version != GLB_VERSION:
        raise FormatError(f"Only GLB version 2 is supported, found {version}")
    if total_length > len(data):
        raise FormatError(
            f"GLB declares {total_length} bytes but only {len(data)} are available"
        )

    chunks = list(_iter_chunks(data, total_length))
    if not chunks or chunks[0].chunk_type != CHUNK_TYPE_JSON:
        raise FormatError("GLB must start with a JSON chunk")
    if sum(1 for c in chunks if c.chunk_type == CHUNK_TYPE_JSON) != 1:
        raise FormatError("GLB must contain exactly one JSON chunk")

    try:
        doc = json.loads(chunks[0].data.decode("utf-8").strip())
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise FormatError(f"JSON chunk is not valid UTF-8 JSON: {e}") from e
    if not isinstance(doc, dict):
        raise FormatError("JSON chunk must hold an object")

    return GlbContent(
        json=doc,
        buffers=[c.data for c in chunks if c.chunk_type == CHUNK_TYPE_BIN],
    )


def _iter_chunks(data: bytes, total_length: int):
    offset = GLB_HEADER_LENGTH
    while offset < total_length:
        if offset + GLB_CHUNK_HEADER_LENGTH > total_length:
            raise FormatError(f"Chunk header truncated at offset {offset}")
        length, chunk_type = _CHUNK_HEADER.unpack_from(data, offset)
        offset += GLB_CHUNK_HEADER_LENGTH
        if offset + length > total_length:
            raise FormatError(
                f"Chunk at offset {offset} overruns container ({length} bytes)"
            )
        yield Chunk(chunk_type, data[offset : offset + length])
        offset += length


def serialize(doc: dict[str, Any], buffers: list[bytes]) -> bytes:
    """Encode a JSON document and binary buffers as GLB.

    Args:
        doc: glTF JSON structure
        buffers: BIN chunk payloads, usually zero or one

    Returns:
        GLB bytes whose totalLength field equals the returned length
    """
    text = json.dumps(doc, ensure_ascii=False, separators=(",", ":"))
    chunks = [Chunk(CHUNK_TYPE_JSON, pad(text.encode("utf-8"), b" "))]
    chunks.extend(Chunk(CHUNK_TYPE_BIN, pad(bytes(b), b"\x00")) for b in buffers)

    total_length = GLB_HEADER_LENGTH + sum(
        GLB_CHUNK_HEADER_LENGTH + len(c.data) for c in chunks
    )
    out = bytearray(_HEADER.pack(GLB_MAGIC, GLB_VERSION, total_length))
    for chunk in chunks:
        out += _CHUNK_HEADER.pack(len(chunk.data), chunk.chunk_type)
        out += chunk.data

    check(len(out) == total_length, "GLB length mismatch")
    return bytes(out)


def pad(data: bytes, filler: bytes, alignment: int = 4) -> bytes:
    """Pad ``data`` with the single byte ``filler`` to a multiple of ``alignment``."""
    return data + filler * (-len(data) % alignment)
