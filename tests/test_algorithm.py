import numpy as np
import pytest

from vrmreduce.algorithm import IndexPacking, MergeTracker, MinHeap
from vrmreduce.errors import InvariantViolation


class TestMinHeap:
    def test_pop_order(self):
        heap = MinHeap()
        heap.insert("A", 5)
        heap.insert("C", 1)
        heap.insert("B", 2)

        assert heap.size() == 3
        assert heap.pop_min() == ("C", 1)
        assert heap.size() == 2
        assert heap.pop_min() == ("B", 2)
        assert heap.size() == 1
        assert heap.pop_min() == ("A", 5)
        assert heap.size() == 0

    def test_pop_empty(self):
        with pytest.raises(InvariantViolation):
            MinHeap().pop_min()

    def test_many_sorted(self):
        rng = np.random.default_rng(3)
        priorities = rng.random(200).tolist()
        heap = MinHeap()
        for ix, p in enumerate(priorities):
            heap.insert(ix, p)
        popped = [heap.pop_min()[1] for _ in range(len(priorities))]
        assert popped == sorted(priorities)

    def test_duplicate_keys(self):
        heap = MinHeap()
        heap.insert("x", 3)
        heap.insert("x", 1)
        assert heap.pop_min() == ("x", 1)
        assert "x" in heap
        assert heap.pop_min() == ("x", 3)
        assert "x" not in heap

    def test_update_raises_and_lowers(self):
        heap = MinHeap()
        for key, p in [("a", 1), ("b", 2), ("c", 3), ("d", 4)]:
            heap.insert(key, p)
        heap.update("a", 10)
        heap.update("d", 0)
        assert [heap.pop_min()[0] for _ in range(4)] == ["d", "b", "c", "a"]

    def test_update_missing(self):
        heap = MinHeap()
        heap.insert("a", 1)
        with pytest.raises(InvariantViolation):
            heap.update("z", 0)


class TestIndexPacking:
    def test_order_preservation(self):
        packing = IndexPacking({1, 3, 4}, 5)
        assert packing.convert(1) == 0
        assert packing.convert(3) == 1
        assert packing.convert(4) == 2
        with pytest.raises(InvariantViolation):
            packing.convert(0)
        with pytest.raises(InvariantViolation):
            packing.convert(2)
        assert packing.apply(["a", "b", "c", "d", "e"]) == ["b", "d", "e"]

    def test_apply_ndarray(self):
        packing = IndexPacking([0, 2], 3)
        data = np.array([[1, 1], [2, 2], [3, 3]])
        np.testing.assert_array_equal(packing.apply(data), [[1, 1], [3, 3]])

    def test_apply_length_mismatch(self):
        with pytest.raises(InvariantViolation):
            IndexPacking([0], 3).apply([1, 2])

    def test_used_out_of_range(self):
        with pytest.raises(InvariantViolation):
            IndexPacking([5], 3)

    def test_convert_array(self):
        packing = IndexPacking([1, 3, 4], 5)
        np.testing.assert_array_equal(packing.convert_array(np.array([4, 1, 3])), [2, 0, 1])
        with pytest.raises(InvariantViolation):
            packing.convert_array(np.array([0]))

    def test_optional_and_identity(self):
        packing = IndexPacking(range(3), 3)
        assert packing.is_identity()
        assert packing.convert_optional(None) is None
        assert packing.as_dict() == {0: 0, 1: 1, 2: 2}


class TestMergeTracker:
    def test_transitivity(self):
        tracker = MergeTracker()
        tracker.merge_pair(0, 1)
        tracker.merge_pair(1, 2)
        assert tracker.resolve(1) == 0
        assert tracker.resolve(2) == 0

        before = dict(tracker.mapping)
        tracker.merge_pair(0, 1)
        assert tracker.mapping == before

    def test_unmerged_resolves_to_self(self):
        tracker = MergeTracker()
        assert tracker.resolve(7) == 7
        assert len(tracker) == 0

    def test_path_compression(self):
        tracker = MergeTracker()
        # Build the chain 4 -> 3 -> 2 -> 1 -> 0 by hand.
        tracker.mapping = {4: 3, 3: 2, 2: 1, 1: 0}
        assert tracker.resolve(4) == 0
        assert tracker.mapping == {4: 0, 3: 0, 2: 0, 1: 0}

    def test_resolve_all(self):
        tracker = MergeTracker()
        tracker.merge_pair(2, 0)
        tracker.merge_pair(3, 2)
        assert tracker.resolve_all(5) == [3, 1, 3, 3, 4]
