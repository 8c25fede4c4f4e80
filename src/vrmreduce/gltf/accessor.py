"""Read and write typed element streams through accessors.

Reads materialize into numpy arrays (honouring byteOffset, byteStride and
sparse substitution). Writes re-encode tightly packed data into a fresh
bufferView region; ``VrmDocument.repack_buffer`` reclaims the old bytes.
"""

import numpy as np

from ..errors import check
from .document import VrmDocument
from .schema import (
    BYTE,
    FLOAT,
    SHORT,
    UNSIGNED_BYTE,
    UNSIGNED_INT,
    UNSIGNED_SHORT,
    Accessor,
)

COMPONENT_DTYPES = {
    BYTE: np.dtype("<i1"),
    UNSIGNED_BYTE: np.dtype("<u1"),
    SHORT: np.dtype("<i2"),
    UNSIGNED_SHORT: np.dtype("<u2"),
    UNSIGNED_INT: np.dtype("<u4"),
    FLOAT: np.dtype("<f4"),
}

TYPE_SIZES = {
    "SCALAR": 1,
    "VEC2": 2,
    "VEC3": 3,
    "VEC4": 4,
    "MAT2": 4,
    "MAT3": 9,
    "MAT4": 16,
}

INDEX_COMPONENT_TYPES = (UNSIGNED_BYTE, UNSIGNED_SHORT, UNSIGNED_INT)

# bufferView.target
ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963


def read_accessor(doc: VrmDocument, accessor_ix: int) -> np.ndarray:
    """Read an accessor as a ``(count, components)`` array of its component dtype."""
    acc = _accessor(doc, accessor_ix)
    dtype = _dtype(acc.component_type)
    ncomp = _components(acc.type)
    count = acc.count or 0

    if acc.buffer_view is None:
        data = np.zeros((count, ncomp), dtype=dtype)
    else:
        stride = doc.gltf.buffer_views[acc.buffer_view].byte_stride
        data = _read_strided(
            doc.get_buffer_view_bytes(acc.buffer_view),
            acc.byte_offset or 0,
            stride,
            dtype,
            ncomp,
            count,
        )

    sparse = acc.sparse
    if sparse is not None and sparse.count:
        check(
            sparse.indices is not None and sparse.values is not None,
            f"accessor {accessor_ix} sparse block is incomplete",
        )
        indices = _read_strided(
            doc.get_buffer_view_bytes(sparse.indices.buffer_view),
            sparse.indices.byte_offset or 0,
            None,
            _dtype(sparse.indices.component_type),
            1,
            sparse.count,
        ).reshape(-1)
        values = _read_strided(
            doc.get_buffer_view_bytes(sparse.values.buffer_view),
            sparse.values.byte_offset or 0,
            None,
            dtype,
            ncomp,
            sparse.count,
        )
        check(bool(np.all(indices < count)), f"accessor {accessor_ix} sparse index out of range")
        data[indices.astype(np.int64)] = values
    return data


def read_index_buffer(doc: VrmDocument, accessor_ix: int) -> np.ndarray:
    """Read an index accessor as a flat int64 array."""
    acc = _accessor(doc, accessor_ix)
    check(acc.type == "SCALAR", f"index accessor {accessor_ix} must be SCALAR, got {acc.type}")
    check(
        acc.component_type in INDEX_COMPONENT_TYPES,
        f"index accessor {accessor_ix} must be unsigned int, got {acc.component_type}",
    )
    return read_accessor(doc, accessor_ix).reshape(-1).astype(np.int64)


def write_index_buffer(doc: VrmDocument, accessor_ix: int, data) -> None:
    """Replace an index accessor's content.

    The component type becomes the smallest unsigned width that fits the
    largest index (1, 2 or 4 bytes).
    """
    acc = _accessor(doc, accessor_ix)
    check(acc.type == "SCALAR", f"index accessor {accessor_ix} must be SCALAR, got {acc.type}")
    data = np.asarray(data, dtype=np.int64).reshape(-1)
    check(len(data) > 0, "index buffer must not be empty")
    check(int(data.min()) >= 0, "index buffer must not hold negative values")

    max_value = int(data.max())
    check(max_value <= 0xFFFFFFFF, f"index {max_value} does not fit in u32")
    if max_value <= 0xFF:
        component_type = UNSIGNED_BYTE
    elif max_value <= 0xFFFF:
        component_type = UNSIGNED_SHORT
    else:
        component_type = UNSIGNED_INT

    acc.component_type = component_type
    acc.count = len(data)
    acc.min = None if acc.min is None else [int(data.min())]
    acc.max = None if acc.max is None else [max_value]
    _store(doc, accessor_ix, data.astype(COMPONENT_DTYPES[component_type]).tobytes(), ELEMENT_ARRAY_BUFFER)


def read_vec_buffer(doc: VrmDocument, accessor_ix: int) -> np.ndarray:
    """Read a VEC2/VEC3/VEC4 accessor as ``(count, n)``."""
    acc = _accessor(doc, accessor_ix)
    check(acc.type in ("VEC2", "VEC3", "VEC4"), f"accessor {accessor_ix} is not a vector ({acc.type})")
    return read_accessor(doc, accessor_ix)


def write_vec_buffer(doc: VrmDocument, accessor_ix: int, data) -> None:
    """Replace a vector accessor's content, keeping its type and componentType.

    Integer component types are rounded and clipped to their range. Existing
    min/max bounds are recomputed.
    """
    acc = _accessor(doc, accessor_ix)
    ncomp = _components(acc.type)
    data = np.asarray(data)
    if data.ndim == 1 and len(data) == 0:
        data = data.reshape(0, ncomp)
    check(data.ndim == 2 and data.shape[1] == ncomp, f"expected (n, {ncomp}) data, got {data.shape}")
    check(len(data) > 0, "vector buffer must not be empty")

    dtype = _dtype(acc.component_type)
    if dtype.kind in "iu":
        info = np.iinfo(dtype)
        encoded = np.clip(np.rint(data), info.min, info.max).astype(dtype)
    else:
        encoded = data.astype(dtype)

    acc.count = len(encoded)
    if acc.min is not None or acc.max is not None:
        acc.min = _bounds(encoded.min(axis=0), dtype)
        acc.max = _bounds(encoded.max(axis=0), dtype)
    _store(doc, accessor_ix, encoded.tobytes(), ARRAY_BUFFER)


def write_accessor_bytes(doc: VrmDocument, accessor_ix: int, count: int, blob: bytes) -> None:
    """Replace an accessor's raw content, keeping its type and componentType."""
    acc = _accessor(doc, accessor_ix)
    element_size = _dtype(acc.component_type).itemsize * _components(acc.type)
    check(len(blob) == element_size * count, f"expected {element_size * count} bytes, got {len(blob)}")
    acc.count = count
    _store(doc, accessor_ix, blob, None)


def _store(doc: VrmDocument, accessor_ix: int, blob: bytes, target: int | None) -> None:
    acc = doc.gltf.accessors[accessor_ix]
    acc.byte_offset = None
    acc.sparse = None
    if acc.buffer_view is None or _view_is_shared(doc, acc.buffer_view, accessor_ix):
        old_target = None if acc.buffer_view is None else doc.gltf.buffer_views[acc.buffer_view].target
        acc.buffer_view = doc.append_buffer_view(blob, target=old_target if old_target else target)
    else:
        doc.set_buffer_view_data(acc.buffer_view, blob)


def _view_is_shared(doc: VrmDocument, view_ix: int, accessor_ix: int) -> bool:
    for ix, acc in enumerate(doc.gltf.accessors):
        if ix != accessor_ix and acc.buffer_view == view_ix:
            return True
        if acc.sparse is not None:
            if acc.sparse.indices is not None and acc.sparse.indices.buffer_view == view_ix:
                return True
            if acc.sparse.values is not None and acc.sparse.values.buffer_view == view_ix:
                return True
    return any(image.buffer_view == view_ix for image in doc.gltf.images)


def _read_strided(blob: bytes, offset: int, stride: int | None, dtype: np.dtype, ncomp: int, count: int) -> np.ndarray:
    element_size = dtype.itemsize * ncomp
    stride = stride or element_size
    if count == 0:
        return np.zeros((0, ncomp), dtype=dtype)
    check(
        offset + stride * (count - 1) + element_size <= len(blob),
        f"accessor range exceeds bufferView of {len(blob)} bytes",
    )
    view = np.ndarray(
        shape=(count, ncomp),
        dtype=dtype,
        buffer=blob,
        offset=offset,
        strides=(stride, dtype.itemsize),
    )
    return view.copy()


def _bounds(values: np.ndarray, dtype: np.dtype) -> list:
    if dtype.kind in "iu":
        return [int(v) for v in values]
    return [float(v) for v in values]


def _accessor(doc: VrmDocument, accessor_ix: int) -> Accessor:
    check(
        0 <= accessor_ix < len(doc.gltf.accessors),
        f"accessor {accessor_ix} does not exist",
    )
    return doc.gltf.accessors[accessor_ix]


def _dtype(component_type: int | None) -> np.dtype:
    check(component_type in COMPONENT_DTYPES, f"unsupported componentType {component_type}")
    return COMPONENT_DTYPES[component_type]


def _components(type_name: str | None) -> int:
    check(type_name in TYPE_SIZES, f"unsupported accessor type {type_name}")
    return TYPE_SIZES[type_name]
