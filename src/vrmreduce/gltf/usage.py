"""Whole-asset reference graph: which elements are reachable and why.

The graph is built bottom-up in one pass (textures -> images, accessors ->
bufferViews) and is never maintained incrementally; rebuild it after every
structural mutation.
"""

import logging

from .document import VrmDocument

logger = logging.getLogger(__name__)

NOT_REFERENCED = "(not referenced)"


def multimap_add(mapping: dict[int, list[str]], key: int, *values: str) -> None:
    mapping.setdefault(key, []).extend(values)


class UsageGraph:
    """Multimaps from element index to human-readable usage reasons.

    Attributes:
        texture_usage: texture index -> reasons
        image_usage: image index -> reasons
        accessor_usage: accessor index -> reasons
        view_usage: bufferView index -> reasons
    """

    def __init__(self, doc: VrmDocument):
        gltf = doc.gltf
        vrm = gltf.vrm

        self.texture_usage: dict[int, list[str]] = {}
        if vrm is not None and vrm.meta is not None and vrm.meta.texture is not None:
            multimap_add(self.texture_usage, vrm.meta.texture, "VRM-thumbnail")
        material_props = vrm.material_properties if vrm is not None else []
        for mat_ix, mat in enumerate(gltf.materials):
            mat_name = f"mat({mat.name})"
            if mat_ix < len(material_props):
                for prop_name, tex_ix in (material_props[mat_ix].texture_properties or {}).items():
                    multimap_add(self.texture_usage, tex_ix, f"{mat_name}.vrm{prop_name}")
            for slot, info in mat.texture_slots():
                multimap_add(self.texture_usage, info.index, f"{mat_name}.{slot}")

        self.image_usage: dict[int, list[str]] = {}
        for tex_ix, tex in enumerate(gltf.textures):
            if tex.source is None:
                continue
            if tex_ix in self.texture_usage:
                multimap_add(
                    self.image_usage,
                    tex.source,
                    *(f"tex as {usage}" for usage in self.texture_usage[tex_ix]),
                )
            else:
                # Held by a texture nothing uses; kept until that texture is collected.
                multimap_add(self.image_usage, tex.source, "tex")

        self.accessor_usage: dict[int, list[str]] = {}
        for mesh in gltf.meshes:
            self._add_mesh_accessors(mesh)
        for skin in gltf.skins:
            if skin.inverse_bind_matrices is not None:
                multimap_add(self.accessor_usage, skin.inverse_bind_matrices, f"skin({skin.name}).bindMatrix")
        for anim in gltf.animations:
            for sampler_ix, sampler in enumerate(anim.samplers):
                ref = f"anim({anim.name}).sampler[{sampler_ix}]"
                if sampler.input is not None:
                    multimap_add(self.accessor_usage, sampler.input, f"{ref}.input")
                if sampler.output is not None:
                    multimap_add(self.accessor_usage, sampler.output, f"{ref}.output")

        self.view_usage: dict[int, list[str]] = {}
        for img_ix, img in enumerate(gltf.images):
            if img.buffer_view is None:
                continue
            img_ref = f"img({img.name},{img.mime_type})"
            self._add_view(img.buffer_view, img_ref, self.image_usage.get(img_ix))
        for acc_ix, acc in enumerate(gltf.accessors):
            acc_ref = f"accessor({acc.type},{acc.byte_offset})"
            usages = self.accessor_usage.get(acc_ix)
            if acc.buffer_view is not None:
                self._add_view(acc.buffer_view, acc_ref, usages)
            if acc.sparse is not None:
                if acc.sparse.indices is not None and acc.sparse.indices.buffer_view is not None:
                    self._add_view(acc.sparse.indices.buffer_view, f"{acc_ref}.sparse.indices", usages)
                if acc.sparse.values is not None and acc.sparse.values.buffer_view is not None:
                    self._add_view(acc.sparse.values.buffer_view, f"{acc_ref}.sparse.values", usages)

        logger.debug("texture usage %s", self.texture_usage)
        logger.debug("image usage %s", self.image_usage)
        logger.debug("accessor usage %s", self.accessor_usage)
        logger.debug("view usage %s", self.view_usage)

    def _add_mesh_accessors(self, mesh) -> None:
        if not mesh.primitives:
            return
        ref = f"mesh({mesh.name})"
        reference = mesh.primitives[0]

        # Primitives sharing indices/attributes with the first one are recorded once.
        if all(prim.indices == reference.indices for prim in mesh.primitives):
            if reference.indices is not None:
                multimap_add(self.accessor_usage, reference.indices, f"{ref}.prim[*].indices")
        else:
            for prim_ix, prim in enumerate(mesh.primitives):
                if prim.indices is not None:
                    multimap_add(self.accessor_usage, prim.indices, f"{ref}.prim[{prim_ix}].indices")

        if all(prim.attributes == reference.attributes for prim in mesh.primitives):
            for name, acc_ix in (reference.attributes or {}).items():
                multimap_add(self.accessor_usage, acc_ix, f"{ref}.prim[*].{name}")
        else:
            for prim_ix, prim in enumerate(mesh.primitives):
                for name, acc_ix in (prim.attributes or {}).items():
                    multimap_add(self.accessor_usage, acc_ix, f"{ref}.prim[{prim_ix}].{name}")

        for prim_ix, prim in enumerate(mesh.primitives):
            for target_ix, target in enumerate(prim.targets):
                for name, acc_ix in target.items():
                    multimap_add(
                        self.accessor_usage,
                        acc_ix,
                        f"{ref}.prim[{prim_ix}].morph[{target_ix}].{name}",
                    )

    def _add_view(self, view_ix: int, ref: str, usages: list[str] | None) -> None:
        if usages:
            multimap_add(self.view_usage, view_ix, *(f"{ref} as {usage}" for usage in usages))
        else:
            multimap_add(self.view_usage, view_ix, f"{ref} {NOT_REFERENCED}")

    def get_directly_used_textures(self) -> set[int]:
        return _reachable(self.texture_usage)

    def get_directly_used_images(self) -> set[int]:
        return _reachable(self.image_usage)

    def get_directly_used_accessors(self) -> set[int]:
        return _reachable(self.accessor_usage)

    def get_directly_used_buffers(self) -> set[int]:
        """bufferView indices reachable from the scene."""
        return _reachable(self.view_usage)


def _reachable(usage: dict[int, list[str]]) -> set[int]:
    return {
        ix
        for ix, reasons in usage.items()
        if any(not reason.endswith(NOT_REFERENCED) for reason in reasons)
    }
