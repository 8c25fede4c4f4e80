"""Mutable in-memory VRM asset: typed JSON tree plus raw buffers."""

import base64
import logging

from ..errors import InvariantViolation, check
from . import glb
from .schema import MODE_TRIANGLES, Buffer, BufferView, Gltf, Primitive

logger = logging.getLogger(__name__)


class VrmDocument:
    """Single, whole VRM asset. Guaranteed to be (de)serializable from/to GLB.

    The document exclusively owns ``gltf`` and ``buffers``. Every structural
    mutation bumps ``version``; consumers use it only as a change signal.

    Usage:
        doc = VrmDocument.deserialize(path.read_bytes())
        view = doc.append_buffer_view(b"...")
        doc.repack_buffer()
        path.write_bytes(doc.serialize())
    """

    def __init__(self, gltf: Gltf, buffers: list[bytes]):
        self.gltf = gltf
        self.buffers: list[bytearray] = [bytearray(b) for b in buffers]
        self.version = 0
        self.last_report = None

    @classmethod
    def deserialize(cls, data: bytes) -> "VrmDocument":
        content = glb.deserialize(data)
        return cls(Gltf.from_json(content.json), content.buffers)

    def serialize(self) -> bytes:
        """Encode as GLB. Repeated calls return identical bytes."""
        return glb.serialize(self.gltf.to_json(), [bytes(b) for b in self.buffers])

    def mark_changed(self) -> None:
        self.version += 1

    # Mutation

    def append_data_to_buffer(self, data: bytes, buffer_ix: int = 0) -> BufferView:
        """Grow one buffer by ``data``.

        The appended region starts on a 4-byte boundary.

        Args:
            data: Bytes to append
            buffer_ix: Existing buffer index; buffer 0 is created if the
                document has no buffer yet

        Returns:
            Descriptor ``{buffer, byteOffset, byteLength}`` for a new view
            over the appended region
        """
        if buffer_ix == 0 and not self.buffers:
            self.buffers.append(bytearray())
            self.gltf.buffers = [Buffer(byte_length=0)]
        check(0 <= buffer_ix < len(self.buffers), f"buffer {buffer_ix} does not exist")

        buffer = self.buffers[buffer_ix]
        buffer += b"\x00" * (-len(buffer) % 4)
        offset = len(buffer)
        buffer += data
        self._sync_buffer_length(buffer_ix)
        self.version += 1
        return BufferView(buffer=buffer_ix, byte_offset=offset, byte_length=len(data))

    def set_buffer_view_data(self, view_ix: int, data: bytes) -> None:
        """Replace a bufferView's content wholesale.

        Fresh bytes are appended and the view is repointed at them; the old
        bytes stay allocated until ``repack_buffer``. ``byteStride`` is
        dropped, name and target are kept.
        """
        self._check_view(view_ix)
        old = self.gltf.buffer_views[view_ix]
        new = self.append_data_to_buffer(data, 0)
        new.name = old.name
        new.target = old.target
        new.extra = old.extra
        self.gltf.buffer_views[view_ix] = new

    def append_buffer_view(self, data: bytes, target: int | None = None) -> int:
        """Append ``data`` to buffer 0 as a brand-new bufferView and return its index."""
        view = self.append_data_to_buffer(data, 0)
        view.target = target
        self.gltf.buffer_views.append(view)
        return len(self.gltf.buffer_views) - 1

    def set_image_bytes(self, image_ix: int, data: bytes, mime_type: str | None = None) -> None:
        image = self._image(image_ix)
        self.set_buffer_view_data(image.buffer_view, data)
        if mime_type is not None:
            image.mime_type = mime_type

    def repack_buffer(self) -> None:
        """Copy every bufferView into buffer 0 with tight packing.

        Views are laid out in bufferView order, each starting on a 4-byte
        boundary. This is the only operation that reclaims orphaned bytes.
        """
        pre_total = sum(len(b) for b in self.buffers)
        contents = [self.get_buffer_view_bytes(ix) for ix in range(len(self.gltf.buffer_views))]

        packed = bytearray()
        for view, data in zip(self.gltf.buffer_views, contents):
            packed += b"\x00" * (-len(packed) % 4)
            view.buffer = 0
            view.byte_offset = len(packed)
            view.byte_length = len(data)
            packed += data

        if self.gltf.buffer_views:
            self.buffers = [packed]
            self.gltf.buffers = [Buffer(byte_length=len(packed))]
        else:
            self.buffers = []
            self.gltf.buffers = []
        self.version += 1
        logger.info("repack %d -> %d bytes", pre_total, len(packed))

    # Access

    def get_buffer_view_bytes(self, view_ix: int) -> bytes:
        self._check_view(view_ix)
        view = self.gltf.buffer_views[view_ix]
        check(
            view.buffer is not None and 0 <= view.buffer < len(self.buffers),
            f"bufferView {view_ix} references missing buffer {view.buffer}",
        )
        buffer = self.buffers[view.buffer]
        offset = view.byte_offset or 0
        length = view.byte_length or 0
        check(
            offset + length <= len(buffer),
            f"bufferView {view_ix} [{offset}, {offset + length}) exceeds buffer of {len(buffer)} bytes",
        )
        return bytes(buffer[offset : offset + length])

    def get_image_bytes(self, image_ix: int) -> bytes:
        return self.get_buffer_view_bytes(self._image(image_ix).buffer_view)

    def get_image_as_data_url(self, image_ix: int) -> str:
        """Base64 data URL of an embedded image.

        The MIME tag is always image/png, whatever the source encoding.
        """
        encoded = base64.b64encode(self.get_image_bytes(image_ix)).decode("ascii")
        return f"data:image/png;base64,{encoded}"

    def count_total_tris(self) -> int:
        """Triangles over all TRIANGLES-mode primitives; lines and points count as 0."""
        total = 0
        for mesh_ix, mesh in enumerate(self.gltf.meshes):
            for prim in mesh.primitives:
                if prim.mode is not None and prim.mode != MODE_TRIANGLES:
                    logger.debug("mesh %d: mode %d primitive not counted", mesh_ix, prim.mode)
                    continue
                total += self.count_primitive_tris(prim)
        return total

    def count_primitive_tris(self, primitive: Primitive) -> int:
        mode = MODE_TRIANGLES if primitive.mode is None else primitive.mode
        if mode != MODE_TRIANGLES:
            raise InvariantViolation(f"Unsupported primitive mode {mode}")
        if primitive.indices is None:
            position = (primitive.attributes or {}).get("POSITION")
            check(position is not None, "non-indexed primitive without POSITION")
            return self.gltf.accessors[position].count // 3
        return self.gltf.accessors[primitive.indices].count // 3

    @property
    def total_buffer_size(self) -> int:
        return sum(len(b) for b in self.buffers)

    def _image(self, image_ix: int):
        check(0 <= image_ix < len(self.gltf.images), f"image {image_ix} does not exist")
        image = self.gltf.images[image_ix]
        check(image.buffer_view is not None, f"image {image_ix} is not embedded in a bufferView")
        return image

    def _check_view(self, view_ix: int) -> None:
        check(
            0 <= view_ix < len(self.gltf.buffer_views),
            f"bufferView {view_ix} does not exist",
        )

    def _sync_buffer_length(self, buffer_ix: int) -> None:
        while len(self.gltf.buffers) <= buffer_ix:
            self.gltf.buffers.append(Buffer(byte_length=0))
        self.gltf.buffers[buffer_ix].byte_length = len(self.buffers[buffer_ix])


def load(data: bytes) -> VrmDocument:
    """Parse GLB/VRM bytes into a VrmDocument.

    Raises:
        FormatError: malformed container
    """
    return VrmDocument.deserialize(data)


def serialize(document: VrmDocument) -> bytes:
    return document.serialize()
