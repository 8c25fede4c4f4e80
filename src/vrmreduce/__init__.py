"""Edit and compact VRM avatar assets."""

from .errors import FormatError, InvariantViolation, VrmReduceError
from .gltf import VrmDocument, load, serialize
from .reducer import ReduceOptions, reduce, reduce_async

__all__ = [
    "FormatError",
    "InvariantViolation",
    "VrmReduceError",
    "VrmDocument",
    "ReduceOptions",
    "load",
    "serialize",
    "reduce",
    "reduce_async",
]
