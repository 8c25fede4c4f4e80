"""Binary min-heap keyed by a numeric priority."""

from collections.abc import Hashable

from ..errors import InvariantViolation, check


class MinHeap:
    """Array-backed binary min-heap of ``(key, priority)`` pairs.

    Keys need not be unique. A position index is maintained per key so that
    ``update`` can locate an entry without scanning the whole tree.

    Usage:
        heap = MinHeap()
        heap.insert("A", 5)
        heap.insert("C", 1)
        heap.pop_min()  # ("C", 1)
    """

    def __init__(self) -> None:
        self.tree: list[tuple[Hashable, float]] = []
        self._positions: dict[Hashable, set[int]] = {}

    def __len__(self) -> int:
        return len(self.tree)

    def size(self) -> int:
        return len(self.tree)

    def insert(self, key: Hashable, priority: float) -> None:
        ix = len(self.tree)
        self.tree.append((key, priority))
        self._positions.setdefault(key, set()).add(ix)
        self._sift_up(ix)

    def pop_min(self) -> tuple[Hashable, float]:
        """Remove and return the pair with the smallest priority.

        Raises:
            InvariantViolation: if the heap is empty
        """
        check(len(self.tree) > 0, "pop_min() cannot be used on an empty MinHeap")

        top = self.tree[0]
        last_ix = len(self.tree) - 1
        if last_ix > 0:
            self._swap(0, last_ix)
        self._forget(top[0], last_ix)
        self.tree.pop()
        if self.tree:
            self._sift_down(0)
        return top

    def update(self, key: Hashable, priority: float) -> None:
        """Change the priority of an existing entry in place.

        When several entries share ``key`` the one closest to the root is
        updated. Heap order is restored in whichever direction the change
        requires; for the decimator's monotonically growing collapse costs
        this is always a sift-down.

        Raises:
            InvariantViolation: if no entry has ``key``
        """
        positions = self._positions.get(key)
        if not positions:
            raise InvariantViolation(f"key {key!r} is not in the heap")

        ix = min(positions)
        old = self.tree[ix][1]
        self.tree[ix] = (key, priority)
        if priority < old:
            self._sift_up(ix)
        else:
            self._sift_down(ix)

    def __contains__(self, key: Hashable) -> bool:
        return bool(self._positions.get(key))

    def _sift_up(self, ix: int) -> None:
        while ix != 0:
            pix = (ix - 1) // 2
            if self.tree[pix][1] <= self.tree[ix][1]:
                return
            self._swap(ix, pix)
            ix = pix

    def _sift_down(self, ix: int) -> None:
        n = len(self.tree)
        while True:
            lix = 2 * ix + 1
            rix = 2 * ix + 2
            if lix >= n:
                return

            cv = self.tree[ix][1]
            lv = self.tree[lix][1]
            if rix >= n:
                if cv <= lv:
                    return
                self._swap(ix, lix)
                ix = lix
                continue

            rv = self.tree[rix][1]
            if cv <= lv and cv <= rv:
                return
            child = lix if lv < rv else rix
            self._swap(ix, child)
            ix = child

    def _swap(self, i0: int, i1: int) -> None:
        k0 = self.tree[i0][0]
        k1 = self.tree[i1][0]
        if k0 != k1:
            p0 = self._positions[k0]
            p1 = self._positions[k1]
            p0.discard(i0)
            p0.add(i1)
            p1.discard(i1)
            p1.add(i0)
        self.tree[i0], self.tree[i1] = self.tree[i1], self.tree[i0]

    def _forget(self, key: Hashable, ix: int) -> None:
        positions = self._positions[key]
        positions.discard(ix)
        if not positions:
            del self._positions[key]
