"""Fixed-order asset reduction pipeline."""

import asyncio
import logging
from dataclasses import asdict, dataclass

from ..gltf.document import VrmDocument
from . import bones, decimate, gc, morphs, textures
from .result import ReductionReport, StepResult
from .textures import Resizer, pil_resize

logger = logging.getLogger(__name__)


@dataclass
class ReduceOptions:
    """Knobs for ``reduce``.

    Attributes:
        texture_max_side: Images are downscaled to fit this many pixels per side
        mesh_target_ratio: Fraction of edges kept by decimation, in (0, 1]
        keep_secondary_animation: Pin spring-bone/collider nodes instead of
            clearing secondary animation
        strip_names: Remove image/mesh/node/morph names
    """

    texture_max_side: int = 128
    mesh_target_ratio: float = 0.6
    keep_secondary_animation: bool = False
    strip_names: bool = False

    def __post_init__(self):
        if not isinstance(self.texture_max_side, int) or self.texture_max_side < 1:
            raise ValueError(f"texture_max_side must be a positive int, got {self.texture_max_side!r}")
        if not 0 < self.mesh_target_ratio <= 1:
            raise ValueError(f"mesh_target_ratio must be in (0, 1], got {self.mesh_target_ratio!r}")

    @classmethod
    def from_json(cls, obj: dict) -> "ReduceOptions":
        """Build from camelCase or snake_case keys, ignoring unknown ones."""
        if not isinstance(obj, dict):
            raise ValueError(f"options must be a JSON object, got {type(obj).__name__}")
        names = {
            "textureMaxSide": "texture_max_side",
            "meshTargetRatio": "mesh_target_ratio",
            "keepSecondaryAnimation": "keep_secondary_animation",
            "stripNames": "strip_names",
        }
        known = set(names.values())
        kwargs = {}
        for key, value in obj.items():
            name = names.get(key, key)
            if name in known:
                kwargs[name] = value
        return cls(**kwargs)

    def to_json(self) -> dict:
        return asdict(self)


async def reduce_async(
    doc: VrmDocument,
    options: ReduceOptions | None = None,
    resizer: Resizer = pil_resize,
) -> VrmDocument:
    """Reduce ``doc`` in place and return it.

    Steps run strictly in this order: prune bones, delete the thumbnail,
    resize textures, strip blendshape groups, prune morphs, decimate meshes,
    then collect textures, images, accessors and bufferViews, and finally
    repack the buffer once. Not reentrant; a cancelled run leaves the
    document inconsistent and it must be discarded.

    Args:
        doc: Document to mutate
        options: Reduction options (defaults if None)
        resizer: Image resize service, sync or async

    Returns:
        The same ``doc``, with ``doc.last_report`` set
    """
    options = options or ReduceOptions()
    report = ReductionReport(
        tris_before=doc.count_total_tris(),
        bytes_before=doc.total_buffer_size,
    )

    def record(result: StepResult) -> None:
        report.steps.append(result)
        logger.info("step %s done%s", result.name, " (skipped)" if result.skipped else "")

    record(bones.delete_non_essential_bones(doc, options.keep_secondary_animation))
    record(textures.delete_vrm_thumbnail(doc))
    record(await textures.resize_textures(doc, options.texture_max_side, resizer))
    record(morphs.strip_all_emotions(doc))
    record(morphs.remove_unused_morphs(doc))
    record(decimate.reduce_mesh(doc, options.mesh_target_ratio))
    if options.strip_names:
        record(morphs.remove_all_names(doc))
    for result in gc.collect_garbage(doc):
        record(result)
    doc.repack_buffer()

    report.tris_after = doc.count_total_tris()
    report.bytes_after = doc.total_buffer_size
    doc.last_report = report
    logger.info(
        "reduced %d -> %d tris, %d -> %d bytes",
        report.tris_before,
        report.tris_after,
        report.bytes_before,
        report.bytes_after,
    )
    return doc


def reduce(
    doc: VrmDocument,
    options: ReduceOptions | None = None,
    resizer: Resizer = pil_resize,
) -> VrmDocument:
    """Synchronous wrapper around ``reduce_async``."""
    return asyncio.run(reduce_async(doc, options, resizer))
