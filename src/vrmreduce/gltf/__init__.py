"""glTF/VRM document model: GLB codec, typed schema, buffers and usage graph."""

from . import accessor, glb, schema, usage, vrm
from .document import VrmDocument, load, serialize
from .usage import UsageGraph

__all__ = [
    "accessor",
    "glb",
    "schema",
    "usage",
    "vrm",
    "VrmDocument",
    "UsageGraph",
    "load",
    "serialize",
]
