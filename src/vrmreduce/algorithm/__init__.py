"""Index-space algorithms shared by the reducer steps."""

from .heap import MinHeap
from .merge import MergeTracker
from .packing import IndexPacking

__all__ = ["MinHeap", "MergeTracker", "IndexPacking"]
