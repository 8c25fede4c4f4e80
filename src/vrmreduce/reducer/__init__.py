"""Asset reduction steps and the pipeline that orders them."""

from . import bones, decimate, gc, morphs, textures
from .pipeline import ReduceOptions, reduce, reduce_async
from .result import ReductionReport, StepResult

__all__ = [
    "bones",
    "decimate",
    "gc",
    "morphs",
    "textures",
    "ReduceOptions",
    "ReductionReport",
    "StepResult",
    "reduce",
    "reduce_async",
]
