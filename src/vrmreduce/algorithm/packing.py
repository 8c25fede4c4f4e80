"""Order-preserving compaction of index spaces."""

from collections.abc import Iterable, Sequence
from typing import TypeVar

import numpy as np

from ..errors import check

T = TypeVar("T")


class IndexPacking:
    """Stable bijection from kept old indices to ``0..len(used)-1``.

    Ascending order of old indices is preserved, so remapping every
    reference through one instance keeps all cross-references consistent
    while the unused elements are dropped.

    Args:
        used: Indices to keep, each in ``[0, length)``
        length: Size of the original index space
    """

    def __init__(self, used: Iterable[int], length: int):
        check(length >= 0, f"length must be non-negative, got {length}")
        kept = sorted({int(ix) for ix in used})
        for ix in kept:
            check(0 <= ix < length, f"index {ix} out of range [0, {length})")

        self.length = length
        self.kept = kept
        self.mapping = {old: new for new, old in enumerate(kept)}

    def __len__(self) -> int:
        return len(self.kept)

    def is_identity(self) -> bool:
        return len(self.kept) == self.length

    def convert(self, old_ix: int) -> int:
        check(old_ix in self.mapping, f"index {old_ix} was not kept by packing")
        return self.mapping[old_ix]

    def convert_optional(self, old_ix: int | None) -> int | None:
        return None if old_ix is None else self.convert(old_ix)

    def convert_array(self, old: np.ndarray) -> np.ndarray:
        """Vectorized ``convert`` over an integer array."""
        lut = np.full(self.length, -1, dtype=np.int64)
        lut[self.kept] = np.arange(len(self.kept), dtype=np.int64)
        old = np.asarray(old, dtype=np.int64)
        check(
            bool(np.all((old >= 0) & (old < self.length))),
            f"index array has values outside [0, {self.length})",
        )
        new = lut[old]
        check(bool(np.all(new >= 0)), "index array references indices not kept by packing")
        return new

    def apply(self, array: Sequence[T] | np.ndarray) -> list[T] | np.ndarray:
        """Filter ``array`` (of length ``self.length``) down to the kept elements."""
        check(
            len(array) == self.length,
            f"expected array of length {self.length}, got {len(array)}",
        )
        if isinstance(array, np.ndarray):
            return array[np.asarray(self.kept, dtype=np.int64)]
        return [array[ix] for ix in self.kept]

    def as_dict(self) -> dict[int, int]:
        return dict(self.mapping)
