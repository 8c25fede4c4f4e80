"""Garbage collection of unreachable textures, images, accessors and bufferViews.

Run in dependency order (textures -> images -> accessors -> bufferViews):
each step rebuilds the usage graph so that it no longer counts references
held by elements the previous step deleted.
"""

import logging

from ..algorithm import IndexPacking
from ..gltf.document import VrmDocument
from ..gltf.usage import UsageGraph
from .result import StepResult

logger = logging.getLogger(__name__)


def remove_unused_textures(doc: VrmDocument) -> StepResult:
    gltf = doc.gltf
    packing = IndexPacking(UsageGraph(doc).get_directly_used_textures(), len(gltf.textures))
    gltf.textures = packing.apply(gltf.textures)

    vrm = gltf.vrm
    if vrm is not None and vrm.meta is not None:
        vrm.meta.texture = packing.convert_optional(vrm.meta.texture)
    material_props = vrm.material_properties if vrm is not None else []
    for mat_ix, mat in enumerate(gltf.materials):
        if mat_ix < len(material_props) and material_props[mat_ix].texture_properties:
            props = material_props[mat_ix].texture_properties
            for name, tex_ix in props.items():
                props[name] = packing.convert(tex_ix)
        for _slot, info in mat.texture_slots():
            info.index = packing.convert(info.index)
    return _finish(doc, "remove_unused_textures", packing)


def remove_unused_images(doc: VrmDocument) -> StepResult:
    gltf = doc.gltf
    packing = IndexPacking(UsageGraph(doc).get_directly_used_images(), len(gltf.images))
    gltf.images = packing.apply(gltf.images)
    for tex in gltf.textures:
        tex.source = packing.convert_optional(tex.source)
    return _finish(doc, "remove_unused_images", packing)


def remove_unused_accessors(doc: VrmDocument) -> StepResult:
    gltf = doc.gltf
    packing = IndexPacking(UsageGraph(doc).get_directly_used_accessors(), len(gltf.accessors))
    gltf.accessors = packing.apply(gltf.accessors)
    for mesh in gltf.meshes:
        for prim in mesh.primitives:
            prim.indices = packing.convert_optional(prim.indices)
            if prim.attributes is not None:
                prim.attributes = {name: packing.convert(ix) for name, ix in prim.attributes.items()}
            prim.targets = [
                {name: packing.convert(ix) for name, ix in target.items()}
                for target in prim.targets
            ]
    for skin in gltf.skins:
        skin.inverse_bind_matrices = packing.convert_optional(skin.inverse_bind_matrices)
    for anim in gltf.animations:
        for sampler in anim.samplers:
            sampler.input = packing.convert_optional(sampler.input)
            sampler.output = packing.convert_optional(sampler.output)
    return _finish(doc, "remove_unused_accessors", packing)


def remove_unused_buffer_views(doc: VrmDocument) -> StepResult:
    gltf = doc.gltf
    packing = IndexPacking(UsageGraph(doc).get_directly_used_buffers(), len(gltf.buffer_views))
    gltf.buffer_views = packing.apply(gltf.buffer_views)
    for img in gltf.images:
        img.buffer_view = packing.convert_optional(img.buffer_view)
    for acc in gltf.accessors:
        acc.buffer_view = packing.convert_optional(acc.buffer_view)
        if acc.sparse is not None:
            if acc.sparse.indices is not None:
                acc.sparse.indices.buffer_view = packing.convert_optional(acc.sparse.indices.buffer_view)
            if acc.sparse.values is not None:
                acc.sparse.values.buffer_view = packing.convert_optional(acc.sparse.values.buffer_view)
    return _finish(doc, "remove_unused_buffer_views", packing)


def collect_garbage(doc: VrmDocument) -> list[StepResult]:
    """Run all four removal steps in dependency order."""
    return [
        remove_unused_textures(doc),
        remove_unused_images(doc),
        remove_unused_accessors(doc),
        remove_unused_buffer_views(doc),
    ]


def _finish(doc: VrmDocument, name: str, packing: IndexPacking) -> StepResult:
    removed = packing.length - len(packing)
    if removed:
        doc.mark_changed()
    logger.info("%s: removed %d of %d", name, removed, packing.length)
    logger.debug("%s remap %s", name, packing.mapping)
    return StepResult(name, remap=packing.as_dict(), details={"removed": removed})
