"""Union-find over integer indices."""


class MergeTracker:
    """Tracks which old index now resolves to which survivor.

    There is no explicit make-set: an index that was never merged resolves
    to itself.

    Usage:
        tracker = MergeTracker()
        tracker.merge_pair(0, 1)
        tracker.merge_pair(1, 2)
        tracker.resolve(2)  # 0
    """

    def __init__(self) -> None:
        self.mapping: dict[int, int] = {}

    def merge_pair(self, survivor: int, absorbed: int) -> None:
        """Make ``absorbed`` (and everything resolving to it) resolve to ``survivor``.

        No-op if both already share a root.
        """
        survivor = self.resolve(survivor)
        absorbed = self.resolve(absorbed)
        if survivor == absorbed:
            return
        self.mapping[absorbed] = survivor

    def resolve(self, ix: int) -> int:
        """Follow parent links to the current root, compressing the visited path."""
        visited = []
        root = ix
        while root in self.mapping:
            visited.append(root)
            root = self.mapping[root]

        # Path compression: the last visited node already points at root.
        for node in visited[:-1]:
            self.mapping[node] = root
        return root

    def resolve_all(self, length: int) -> list[int]:
        return [self.resolve(ix) for ix in range(length)]

    def __len__(self) -> int:
        return len(self.mapping)
