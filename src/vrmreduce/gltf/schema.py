"""Typed glTF 2.0 document schema.

Only the fields the reducer reads or rewrites are modeled; everything else
rides along in ``Element.extra``.
"""

import copy
from dataclasses import dataclass
from typing import Any

from .element import Element, prop
from .vrm import Vrm

# componentType
BYTE = 5120
UNSIGNED_BYTE = 5121
SHORT = 5122
UNSIGNED_SHORT = 5123
UNSIGNED_INT = 5125
FLOAT = 5126

# primitive.mode
MODE_TRIANGLES = 4

VRM_EXTENSION = "VRM"


@dataclass
class Asset(Element):
    version: str | None = prop("version")
    generator: str | None = prop("generator")


@dataclass
class Scene(Element):
    name: str | None = prop("name")
    nodes: list[int] = prop("nodes", many=True)


@dataclass
class Node(Element):
    name: str | None = prop("name")
    children: list[int] = prop("children", many=True)
    mesh: int | None = prop("mesh")
    skin: int | None = prop("skin")


@dataclass
class Primitive(Element):
    attributes: dict[str, int] | None = prop("attributes")
    indices: int | None = prop("indices")
    material: int | None = prop("material")
    mode: int | None = prop("mode")
    targets: list[dict[str, int]] = prop("targets", many=True)
    extras: dict[str, Any] | None = prop("extras")

    @property
    def target_names(self) -> list[str] | None:
        if self.extras and "targetNames" in self.extras:
            return self.extras["targetNames"]
        return None


@dataclass
class Mesh(Element):
    name: str | None = prop("name")
    primitives: list[Primitive] = prop("primitives", Primitive, many=True, keep_empty=True)
    weights: list[float] = prop("weights", many=True)
    extras: dict[str, Any] | None = prop("extras")


@dataclass
class TextureInfo(Element):
    index: int | None = prop("index")
    tex_coord: int | None = prop("texCoord")


@dataclass
class PbrMetallicRoughness(Element):
    base_color_texture: TextureInfo | None = prop("baseColorTexture", TextureInfo)
    metallic_roughness_texture: TextureInfo | None = prop(
        "metallicRoughnessTexture", TextureInfo
    )


@dataclass
class Material(Element):
    name: str | None = prop("name")
    pbr_metallic_roughness: PbrMetallicRoughness | None = prop(
        "pbrMetallicRoughness", PbrMetallicRoughness
    )
    normal_texture: TextureInfo | None = prop("normalTexture", TextureInfo)
    occlusion_texture: TextureInfo | None = prop("occlusionTexture", TextureInfo)
    emissive_texture: TextureInfo | None = prop("emissiveTexture", TextureInfo)

    def texture_slots(self) -> list[tuple[str, TextureInfo]]:
        """(slot name, TextureInfo) for every populated texture slot."""
        slots = []
        pbr = self.pbr_metallic_roughness
        if pbr is not None:
            slots.append(("pbr_baseColor", pbr.base_color_texture))
            slots.append(("pbr_roughness", pbr.metallic_roughness_texture))
        slots.append(("normal", self.normal_texture))
        slots.append(("occlusion", self.occlusion_texture))
        slots.append(("emission", self.emissive_texture))
        return [(name, info) for name, info in slots if info is not None and info.index is not None]


@dataclass
class Texture(Element):
    name: str | None = prop("name")
    sampler: int | None = prop("sampler")
    source: int | None = prop("source")


@dataclass
class Image(Element):
    name: str | None = prop("name")
    uri: str | None = prop("uri")
    mime_type: str | None = prop("mimeType")
    buffer_view: int | None = prop("bufferView")


@dataclass
class Sampler(Element):
    pass


@dataclass
class SparseIndices(Element):
    buffer_view: int | None = prop("bufferView")
    byte_offset: int | None = prop("byteOffset")
    component_type: int | None = prop("componentType")


@dataclass
class SparseValues(Element):
    buffer_view: int | None = prop("bufferView")
    byte_offset: int | None = prop("byteOffset")


@dataclass
class Sparse(Element):
    count: int | None = prop("count")
    indices: SparseIndices | None = prop("indices", SparseIndices)
    values: SparseValues | None = prop("values", SparseValues)


@dataclass
class Accessor(Element):
    name: str | None = prop("name")
    buffer_view: int | None = prop("bufferView")
    byte_offset: int | None = prop("byteOffset")
    component_type: int | None = prop("componentType")
    normalized: bool | None = prop("normalized")
    count: int | None = prop("count")
    type: str | None = prop("type")
    min: list[float] | None = prop("min")
    max: list[float] | None = prop("max")
    sparse: Sparse | None = prop("sparse", Sparse)


@dataclass
class BufferView(Element):
    name: str | None = prop("name")
    buffer: int | None = prop("buffer")
    byte_offset: int | None = prop("byteOffset")
    byte_length: int | None = prop("byteLength")
    byte_stride: int | None = prop("byteStride")
    target: int | None = prop("target")


@dataclass
class Buffer(Element):
    name: str | None = prop("name")
    uri: str | None = prop("uri")
    byte_length: int | None = prop("byteLength")


@dataclass
class Skin(Element):
    name: str | None = prop("name")
    inverse_bind_matrices: int | None = prop("inverseBindMatrices")
    skeleton: int | None = prop("skeleton")
    joints: list[int] = prop("joints", many=True, keep_empty=True)


@dataclass
class AnimationTarget(Element):
    node: int | None = prop("node")
    path: str | None = prop("path")


@dataclass
class AnimationChannel(Element):
    sampler: int | None = prop("sampler")
    target: AnimationTarget | None = prop("target", AnimationTarget)


@dataclass
class AnimationSampler(Element):
    input: int | None = prop("input")
    output: int | None = prop("output")
    interpolation: str | None = prop("interpolation")


@dataclass
class Animation(Element):
    name: str | None = prop("name")
    channels: list[AnimationChannel] = prop("channels", AnimationChannel, many=True)
    samplers: list[AnimationSampler] = prop("samplers", AnimationSampler, many=True)


@dataclass
class Gltf(Element):
    """Root of the glTF JSON document.

    The ``VRM`` extension is lifted out of ``extensions`` into the typed
    ``vrm`` attribute; other extensions stay as plain JSON.
    """

    asset: Asset | None = prop("asset", Asset)
    scene: int | None = prop("scene")
    scenes: list[Scene] = prop("scenes", Scene, many=True)
    nodes: list[Node] = prop("nodes", Node, many=True)
    meshes: list[Mesh] = prop("meshes", Mesh, many=True)
    materials: list[Material] = prop("materials", Material, many=True)
    textures: list[Texture] = prop("textures", Texture, many=True)
    images: list[Image] = prop("images", Image, many=True)
    samplers: list[Sampler] = prop("samplers", Sampler, many=True)
    accessors: list[Accessor] = prop("accessors", Accessor, many=True)
    buffer_views: list[BufferView] = prop("bufferViews", BufferView, many=True)
    buffers: list[Buffer] = prop("buffers", Buffer, many=True)
    skins: list[Skin] = prop("skins", Skin, many=True)
    animations: list[Animation] = prop("animations", Animation, many=True)
    extensions_used: list[str] = prop("extensionsUsed", many=True)
    extensions_required: list[str] = prop("extensionsRequired", many=True)
    extensions: dict[str, Any] | None = prop("extensions")
    extras: Any = prop("extras")
    vrm: Vrm | None = None

    @classmethod
    def from_json(cls, obj: Any) -> "Gltf":
        gltf = super().from_json(obj)
        if gltf.extensions and VRM_EXTENSION in gltf.extensions:
            gltf.vrm = Vrm.from_json(gltf.extensions.pop(VRM_EXTENSION))
        return gltf

    def to_json(self) -> dict[str, Any]:
        out = super().to_json()
        if self.vrm is not None:
            extensions = copy.deepcopy(self.extensions) if self.extensions else {}
            extensions[VRM_EXTENSION] = self.vrm.to_json()
            out["extensions"] = extensions
        return out
