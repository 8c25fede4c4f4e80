"""Texture-side reduction: thumbnail removal and image downscaling."""

import inspect
import io
import logging
from collections.abc import Awaitable, Callable

from PIL import Image

from ..gltf.document import VrmDocument
from .result import StepResult

logger = logging.getLogger(__name__)

Resizer = Callable[[bytes, int], bytes | Awaitable[bytes]]


def pil_resize(data: bytes, max_side: int) -> bytes:
    """Scale an encoded image to fit in ``max_side`` x ``max_side`` and re-encode as PNG.

    Aspect ratio is kept and images are never upscaled.

    Args:
        data: Encoded image (any format Pillow reads)
        max_side: Maximum width and height in pixels

    Returns:
        PNG bytes
    """
    with Image.open(io.BytesIO(data)) as image:
        image.load()
        if image.mode not in ("RGB", "RGBA", "L", "LA"):
            image = image.convert("RGBA")
        image.thumbnail((max_side, max_side), Image.Resampling.LANCZOS)
        with io.BytesIO() as buf:
            image.save(buf, format="PNG")
            return buf.getvalue()


def delete_vrm_thumbnail(doc: VrmDocument) -> StepResult:
    vrm = doc.gltf.vrm
    if vrm is not None and vrm.meta is not None:
        vrm.meta.texture = None
    doc.mark_changed()
    return StepResult("delete_vrm_thumbnail")


async def resize_textures(doc: VrmDocument, max_side: int, resizer: Resizer = pil_resize) -> StepResult:
    """Downscale every embedded image through ``resizer``.

    ``resizer`` may be a plain function or a coroutine function; awaiting it
    is the only suspension point of the pipeline.
    """
    result = StepResult("resize_textures")
    for image_ix, image in enumerate(doc.gltf.images):
        if image.buffer_view is None:
            logger.warning("image %d is not embedded, skipping resize", image_ix)
            continue
        before = doc.get_image_bytes(image_ix)
        resized = resizer(before, max_side)
        if inspect.isawaitable(resized):
            resized = await resized
        doc.set_image_bytes(image_ix, resized, mime_type="image/png")
        result.details[f"image{image_ix}"] = [len(before), len(resized)]
    logger.info("resized %d images to max side %d", len(result.details), max_side)
    return result
