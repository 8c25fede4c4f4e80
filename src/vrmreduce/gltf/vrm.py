"""Typed VRM 0.x extension block (``extensions.VRM``)."""

from dataclasses import dataclass

from .element import Element, prop


@dataclass
class VrmMeta(Element):
    title: str | None = prop("title")
    version: str | None = prop("version")
    author: str | None = prop("author")
    texture: int | None = prop("texture")  # thumbnail


@dataclass
class HumanBone(Element):
    bone: str | None = prop("bone")
    node: int | None = prop("node")
    use_default_values: bool | None = prop("useDefaultValues")


@dataclass
class Humanoid(Element):
    human_bones: list[HumanBone] = prop("humanBones", HumanBone, many=True, keep_empty=True)


@dataclass
class MeshAnnotation(Element):
    mesh: int | None = prop("mesh")
    first_person_flag: str | None = prop("firstPersonFlag")


@dataclass
class FirstPerson(Element):
    first_person_bone: int | None = prop("firstPersonBone")
    first_person_bone_offset: dict | None = prop("firstPersonBoneOffset")
    mesh_annotations: list[MeshAnnotation] = prop(
        "meshAnnotations", MeshAnnotation, many=True, keep_empty=True
    )


@dataclass
class BlendShapeBind(Element):
    mesh: int | None = prop("mesh")
    index: int | None = prop("index")  # morph target index within mesh
    weight: float | None = prop("weight")  # 0-100


@dataclass
class BlendShapeGroup(Element):
    name: str | None = prop("name")
    preset_name: str | None = prop("presetName")
    binds: list[BlendShapeBind] = prop("binds", BlendShapeBind, many=True, keep_empty=True)
    material_values: list = prop("materialValues", many=True, keep_empty=True)
    is_binary: bool | None = prop("isBinary")

    @property
    def emotion_id(self) -> str | None:
        """Preset name, or the group name for ``unknown`` presets."""
        if self.preset_name and self.preset_name != "unknown":
            return self.preset_name
        return self.name


@dataclass
class BlendShapeMaster(Element):
    blend_shape_groups: list[BlendShapeGroup] = prop(
        "blendShapeGroups", BlendShapeGroup, many=True, keep_empty=True
    )


@dataclass
class BoneGroup(Element):
    comment: str | None = prop("comment")
    center: int | None = prop("center")  # node, -1 when unset
    bones: list[int] = prop("bones", many=True, keep_empty=True)
    collider_groups: list[int] = prop("colliderGroups", many=True, keep_empty=True)


@dataclass
class ColliderGroup(Element):
    node: int | None = prop("node")
    colliders: list = prop("colliders", many=True, keep_empty=True)


@dataclass
class SecondaryAnimation(Element):
    bone_groups: list[BoneGroup] = prop("boneGroups", BoneGroup, many=True, keep_empty=True)
    collider_groups: list[ColliderGroup] = prop(
        "colliderGroups", ColliderGroup, many=True, keep_empty=True
    )


@dataclass
class MaterialProperties(Element):
    name: str | None = prop("name")
    shader: str | None = prop("shader")
    texture_properties: dict[str, int] | None = prop("textureProperties")


@dataclass
class Vrm(Element):
    exporter_version: str | None = prop("exporterVersion")
    spec_version: str | None = prop("specVersion")
    meta: VrmMeta | None = prop("meta", VrmMeta)
    humanoid: Humanoid | None = prop("humanoid", Humanoid)
    first_person: FirstPerson | None = prop("firstPerson", FirstPerson)
    blend_shape_master: BlendShapeMaster | None = prop("blendShapeMaster", BlendShapeMaster)
    secondary_animation: SecondaryAnimation | None = prop(
        "secondaryAnimation", SecondaryAnimation
    )
    material_properties: list[MaterialProperties] = prop(
        "materialProperties", MaterialProperties, many=True, keep_empty=True
    )
