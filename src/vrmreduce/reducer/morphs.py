"""Blendshape group stripping and morph target pruning."""

import logging

from ..errors import check
from ..gltf.document import VrmDocument
from .result import StepResult

logger = logging.getLogger(__name__)


def strip_all_emotions(doc: VrmDocument) -> StepResult:
    """Delete all blendshape groups."""
    vrm = doc.gltf.vrm
    emotions = [group.emotion_id for group in _blend_shape_groups(doc)]
    if emotions:
        logger.info("stripping blendshape groups %s", emotions)
        vrm.blend_shape_master.blend_shape_groups = []
    doc.mark_changed()
    return StepResult("strip_all_emotions", details={"removed": len(emotions), "emotions": emotions})


def is_uniform_primitive(doc: VrmDocument) -> bool:
    """True if every mesh's primitives agree on their morph target count."""
    for mesh in doc.gltf.meshes:
        if not mesh.primitives:
            continue
        count = len(mesh.primitives[0].targets)
        if any(len(prim.targets) != count for prim in mesh.primitives):
            return False
    return True


def remove_unused_morphs(doc: VrmDocument) -> StepResult:
    """Drop morph targets no blendshape bind references and renumber the binds.

    Skipped with a warning when a mesh's primitives disagree on morph count,
    since no consistent remap exists then.
    """
    if not is_uniform_primitive(doc):
        logger.warning(
            "A mesh has primitives with different morph counts; remove_unused_morphs won't be executed."
        )
        return StepResult("remove_unused_morphs", skipped=True)

    gltf = doc.gltf
    groups = _blend_shape_groups(doc)
    used = {(bind.mesh, bind.index) for group in groups for bind in group.binds}

    morph_remap: dict[tuple[int, int], int] = {}
    removed = 0
    dropped: dict[str, list] = {}
    for mesh_ix, mesh in enumerate(gltf.meshes):
        if not mesh.primitives or not mesh.primitives[0].targets:
            continue
        num_morphs = len(mesh.primitives[0].targets)
        kept = [ix for ix in range(num_morphs) if (mesh_ix, ix) in used]
        for new_ix, old_ix in enumerate(kept):
            morph_remap[(mesh_ix, old_ix)] = new_ix
        removed += num_morphs - len(kept)
        if len(kept) < num_morphs:
            names = mesh.primitives[0].target_names or []
            dropped[str(mesh_ix)] = [
                names[ix] if ix < len(names) else ix for ix in range(num_morphs) if ix not in kept
            ]
            logger.info("mesh %d: dropping morph targets %s", mesh_ix, dropped[str(mesh_ix)])

        for prim in mesh.primitives:
            prim.targets = [prim.targets[ix] for ix in kept]
            _filter_target_names(prim.extras, kept)
        _filter_target_names(mesh.extras, kept)
        if len(mesh.weights) == num_morphs:
            mesh.weights = [mesh.weights[ix] for ix in kept]
    logger.debug("morph remap %s", morph_remap)

    for group in groups:
        for bind in group.binds:
            key = (bind.mesh, bind.index)
            check(key in morph_remap, f"blendshape bind {key} references a missing morph target")
            bind.index = morph_remap[key]

    doc.mark_changed()
    return StepResult(
        "remove_unused_morphs",
        details={
            "removed": removed,
            "dropped": dropped,
            "remap": {f"{m}:{i}": new for (m, i), new in morph_remap.items()},
        },
    )


def remove_all_names(doc: VrmDocument) -> StepResult:
    """Strip human-readable labels from images, meshes, morph targets and nodes.

    Material names are kept: renderers match VRM material properties by name.
    """
    gltf = doc.gltf
    for image in gltf.images:
        image.name = None
    for mesh in gltf.meshes:
        mesh.name = None
        _drop_target_names(mesh)
        for prim in mesh.primitives:
            _drop_target_names(prim)
    for node in gltf.nodes:
        node.name = None
    doc.mark_changed()
    return StepResult("remove_all_names")


def _blend_shape_groups(doc: VrmDocument):
    vrm = doc.gltf.vrm
    if vrm is None or vrm.blend_shape_master is None:
        return []
    return vrm.blend_shape_master.blend_shape_groups


def _filter_target_names(extras: dict | None, kept: list[int]) -> None:
    if not extras or "targetNames" not in extras:
        return
    names = extras["targetNames"]
    extras["targetNames"] = [names[ix] if ix < len(names) else "" for ix in kept]


def _drop_target_names(element) -> None:
    if element.extras and "targetNames" in element.extras:
        del element.extras["targetNames"]
        if not element.extras:
            element.extras = None
