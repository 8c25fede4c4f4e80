"""Synthetic VRM assets built in memory for the test suite."""

import io

import numpy as np
import pytest
from PIL import Image

from vrmreduce.gltf import glb, load
from vrmreduce.gltf.accessor import ARRAY_BUFFER, COMPONENT_DTYPES, ELEMENT_ARRAY_BUFFER
from vrmreduce.gltf.document import VrmDocument
from vrmreduce.gltf.schema import FLOAT, UNSIGNED_BYTE, UNSIGNED_SHORT


class AssetBuilder:
    """Assembles glTF JSON plus one BIN buffer, then loads it through the GLB codec."""

    def __init__(self):
        self.gltf = {"asset": {"version": "2.0"}, "scene": 0, "scenes": [{"nodes": []}]}
        self.blob = bytearray()

    def add(self, key: str, obj: dict) -> int:
        items = self.gltf.setdefault(key, [])
        items.append(obj)
        return len(items) - 1

    def view(self, data: bytes, target: int | None = None, stride: int | None = None) -> int:
        self.blob += b"\x00" * (-len(self.blob) % 4)
        view = {"buffer": 0, "byteOffset": len(self.blob), "byteLength": len(data)}
        if target is not None:
            view["target"] = target
        if stride is not None:
            view["byteStride"] = stride
        self.blob += data
        return self.add("bufferViews", view)

    def accessor(self, array, component_type: int, type_: str, target: int | None = None, bounds: bool = False) -> int:
        data = np.ascontiguousarray(array, dtype=COMPONENT_DTYPES[component_type])
        count = len(data)
        acc = {
            "bufferView": self.view(data.tobytes(), target),
            "componentType": component_type,
            "count": count,
            "type": type_,
        }
        if bounds:
            flat = data.reshape(count, -1)
            acc["min"] = flat.min(axis=0).tolist()
            acc["max"] = flat.max(axis=0).tolist()
        return self.add("accessors", acc)

    def vec(self, array, type_: str = "VEC3", bounds: bool = False) -> int:
        return self.accessor(array, FLOAT, type_, ARRAY_BUFFER, bounds)

    def indices(self, triangles) -> int:
        flat = np.asarray(triangles).reshape(-1)
        return self.accessor(flat, UNSIGNED_SHORT, "SCALAR", ELEMENT_ARRAY_BUFFER)

    def image(self, size: tuple[int, int], name: str | None = None, color=(200, 40, 40, 255)) -> int:
        image = {"bufferView": self.view(png_bytes(size, color)), "mimeType": "image/png"}
        if name is not None:
            image["name"] = name
        return self.add("images", image)

    def vrm(self, block: dict) -> None:
        self.gltf["extensionsUsed"] = ["VRM"]
        self.gltf.setdefault("extensions", {})["VRM"] = block

    def build(self) -> VrmDocument:
        self.gltf["buffers"] = [{"byteLength": len(self.blob)}]
        return load(glb.serialize(self.gltf, [bytes(self.blob)]))


def png_bytes(size: tuple[int, int], color=(200, 40, 40, 255)) -> bytes:
    with io.BytesIO() as buf:
        Image.new("RGBA", size, color).save(buf, format="PNG")
        return buf.getvalue()


def heightfield(n: int) -> tuple[np.ndarray, np.ndarray]:
    """Non-flat n x n vertex grid with one open boundary loop."""
    xs, ys = np.meshgrid(np.arange(n, dtype=np.float64), np.arange(n, dtype=np.float64))
    zs = 0.3 * np.sin(xs * 1.3) * np.cos(ys * 0.9)
    positions = np.column_stack([xs.ravel(), ys.ravel(), zs.ravel()])
    triangles = []
    for j in range(n - 1):
        for i in range(n - 1):
            a = j * n + i
            triangles.append((a, a + 1, a + n + 1))
            triangles.append((a, a + n + 1, a + n))
    return positions.astype(np.float32), np.asarray(triangles, dtype=np.int64)


def open_box() -> tuple[np.ndarray, np.ndarray]:
    """Unit cube without its top face: 8 vertices, 10 triangles, one 4-edge boundary loop."""
    positions = np.array(
        [
            [0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0],
            [0, 0, 1], [1, 0, 1], [1, 1, 1], [0, 1, 1],
        ],
        dtype=np.float32,
    )
    triangles = np.array(
        [
            [0, 2, 1], [0, 3, 2],  # bottom
            [0, 1, 5], [0, 5, 4],
            [1, 2, 6], [1, 6, 5],
            [2, 3, 7], [2, 7, 6],
            [3, 0, 4], [3, 4, 7],
        ],
        dtype=np.int64,
    )
    return positions, triangles


@pytest.fixture
def builder() -> AssetBuilder:
    return AssetBuilder()


@pytest.fixture
def grid_doc() -> VrmDocument:
    """One 8x8 heightfield mesh with POSITION, NORMAL and TEXCOORD_0."""
    b = AssetBuilder()
    positions, triangles = heightfield(8)
    normals = np.tile([0.0, 0.0, 1.0], (len(positions), 1))
    uvs = positions[:, :2] / 7.0
    primitive = {
        "attributes": {
            "POSITION": b.vec(positions, bounds=True),
            "NORMAL": b.vec(normals),
            "TEXCOORD_0": b.vec(uvs, "VEC2"),
        },
        "indices": b.indices(triangles),
        "mode": 4,
    }
    b.add("meshes", {"name": "grid", "primitives": [primitive]})
    b.add("nodes", {"name": "grid", "mesh": 0})
    b.gltf["scenes"][0]["nodes"] = [0]
    return b.build()


# Node layout of avatar_doc:
#
#   0 Armature (scene root)
#   +-- 1 hips (humanoid)
#   |   +-- 2 spine (humanoid, firstPerson bone)
#   |       +-- 3 hair_root (joint, spring bone root)
#   |           +-- 4 hair_tip (joint)
#   +-- 5 body (mesh 0, skin 0)
#   +-- 6 secondary
AVATAR_NODE_COUNT = 7


@pytest.fixture
def avatar_doc() -> VrmDocument:
    """Skinned 6x6 heightfield body with morphs, materials, textures and a VRM block."""
    b = AssetBuilder()
    positions, triangles = heightfield(6)
    n = len(positions)
    rows = np.arange(n) // 6

    joints = np.zeros((n, 4), dtype=np.uint8)
    weights = np.zeros((n, 4), dtype=np.float32)
    low = rows < 2
    mid = (rows >= 2) & (rows < 4)
    high = rows >= 4
    joints[low] = [0, 0, 0, 0]
    weights[low] = [1.0, 0.0, 0.0, 0.0]
    joints[mid] = [1, 2, 0, 0]
    weights[mid] = [0.5, 0.5, 0.0, 0.0]
    joints[high] = [2, 3, 1, 0]
    weights[high] = [0.25, 0.25, 0.5, 0.0]

    targets = []
    for k in range(3):
        delta = np.zeros((n, 3), dtype=np.float32)
        delta[:, 2] = 0.1 * (k + 1)
        targets.append({"POSITION": b.vec(delta)})

    primitive = {
        "attributes": {
            "POSITION": b.vec(positions, bounds=True),
            "NORMAL": b.vec(np.tile([0.0, 0.0, 1.0], (n, 1))),
            "TEXCOORD_0": b.vec(positions[:, :2] / 5.0, "VEC2"),
            "JOINTS_0": b.accessor(joints, UNSIGNED_BYTE, "VEC4", ARRAY_BUFFER),
            "WEIGHTS_0": b.vec(weights, "VEC4"),
        },
        "indices": b.indices(triangles),
        "material": 0,
        "targets": targets,
        "extras": {"targetNames": ["a", "b", "c"]},
    }
    b.add(
        "meshes",
        {
            "name": "body",
            "primitives": [primitive],
            "weights": [0.0, 0.0, 0.0],
            "extras": {"targetNames": ["a", "b", "c"]},
        },
    )

    inverse_binds = np.tile(np.eye(4, dtype=np.float32).ravel(order="F"), (4, 1))
    inverse_binds[:, 12] = np.arange(4)  # x translation tags each row
    b.add("skins", {"name": "skin", "joints": [1, 2, 3, 4], "inverseBindMatrices": b.accessor(inverse_binds, FLOAT, "MAT4")})

    b.gltf["nodes"] = [
        {"name": "Armature", "children": [1, 5, 6], "translation": [0.0, 0.0, 0.0]},
        {"name": "hips", "children": [2]},
        {"name": "spine", "children": [3]},
        {"name": "hair_root", "children": [4]},
        {"name": "hair_tip"},
        {"name": "body", "mesh": 0, "skin": 0},
        {"name": "secondary"},
    ]
    b.gltf["scenes"][0]["nodes"] = [0]

    b.image((32, 16), "albedo")
    b.image((24, 24), "thumbnail", color=(10, 200, 10, 255))
    b.image((8, 8), "unused", color=(0, 0, 0, 255))
    b.gltf["textures"] = [{"source": 0}, {"source": 1}, {"source": 2}]
    b.gltf["materials"] = [{"name": "body", "pbrMetallicRoughness": {"baseColorTexture": {"index": 0}}}]

    # Nothing references this accessor.
    b.vec(np.ones((3, 3)))

    b.vrm(
        {
            "exporterVersion": "test",
            "meta": {"title": "avatar", "texture": 1},
            "humanoid": {"humanBones": [{"bone": "hips", "node": 1}, {"bone": "spine", "node": 2}]},
            "firstPerson": {"firstPersonBone": 2, "meshAnnotations": [{"mesh": 0, "firstPersonFlag": "Auto"}]},
            "blendShapeMaster": {
                "blendShapeGroups": [
                    {"name": "Joy", "presetName": "joy", "binds": [{"mesh": 0, "index": 2, "weight": 100}], "materialValues": []},
                    {"name": "A", "presetName": "a", "binds": [{"mesh": 0, "index": 0, "weight": 100}], "materialValues": []},
                ]
            },
            "secondaryAnimation": {
                "boneGroups": [{"comment": "hair", "center": -1, "bones": [3], "colliderGroups": []}],
                "colliderGroups": [],
            },
            "materialProperties": [{"name": "body", "shader": "VRM/MToon", "textureProperties": {"_MainTex": 0}}],
        }
    )
    return b.build()


@pytest.fixture
def box_doc() -> VrmDocument:
    """Open box mesh, one unused image, two blendshape groups over two morphs."""
    b = AssetBuilder()
    positions, triangles = open_box()
    targets = []
    for k in range(2):
        delta = np.zeros((len(positions), 3), dtype=np.float32)
        delta[k] = [0.0, 0.0, 0.2]
        targets.append({"POSITION": b.vec(delta)})
    primitive = {
        "attributes": {"POSITION": b.vec(positions, bounds=True)},
        "indices": b.indices(triangles),
        "targets": targets,
    }
    b.add("meshes", {"name": "box", "primitives": [primitive], "weights": [0.0, 0.0]})
    b.add("nodes", {"name": "box", "mesh": 0})
    b.gltf["scenes"][0]["nodes"] = [0]
    b.image((16, 16), "orphan")
    b.vrm(
        {
            "meta": {"title": "box"},
            "blendShapeMaster": {
                "blendShapeGroups": [
                    {"name": "Blink", "presetName": "blink", "binds": [{"mesh": 0, "index": 0, "weight": 100}], "materialValues": []},
                    {"name": "Joy", "presetName": "joy", "binds": [{"mesh": 0, "index": 1, "weight": 100}], "materialValues": []},
                ]
            },
        }
    )
    return b.build()
