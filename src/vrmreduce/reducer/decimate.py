"""Quadric error metric mesh decimation with open-boundary preservation.

Garland & Heckbert, "Surface Simplification Using Quadric Error Metrics"
(1997). Edges used by exactly one triangle get an extra constraint plane
(edge direction x face normal) so that open borders of clothing and hair
do not erode.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
import trimesh

from ..algorithm import IndexPacking, MergeTracker, MinHeap
from ..errors import check
from ..gltf.accessor import (
    read_accessor,
    read_index_buffer,
    read_vec_buffer,
    write_accessor_bytes,
    write_index_buffer,
    write_vec_buffer,
)
from ..gltf.document import VrmDocument
from ..gltf.schema import MODE_TRIANGLES
from .result import StepResult

logger = logging.getLogger(__name__)

BOUNDARY_WEIGHT = 10.0


@dataclass
class DecimationResult:
    """Rewritten triangle lists (in packed vertex indices) and the vertex packing."""

    triangles: list[np.ndarray]
    packing: IndexPacking
    collapses: int


class QuadricDecimator:
    """Greedy edge-collapse over one shared vertex space.

    Args:
        positions: (N, 3) vertex positions
        triangle_lists: One (F, 3) index array per primitive, all indexing
            into ``positions``
        boundary_weight: Multiplier for open-edge constraint quadrics
    """

    def __init__(
        self,
        positions: np.ndarray,
        triangle_lists: list[np.ndarray],
        boundary_weight: float = BOUNDARY_WEIGHT,
    ):
        self.positions = np.asarray(positions, dtype=np.float64)
        self.triangle_lists = [np.asarray(t, dtype=np.int64).reshape(-1, 3) for t in triangle_lists]
        self.boundary_weight = boundary_weight
        n = len(self.positions)
        for tris in self.triangle_lists:
            check(
                len(tris) == 0 or (tris.min() >= 0 and tris.max() < n),
                f"triangle indices out of range [0, {n})",
            )

        self.quadrics = np.zeros((n, 4, 4), dtype=np.float64)
        self.open_edges: set[tuple[int, int]] = set()
        edge_sets = []
        for tris in self.triangle_lists:
            if len(tris) == 0:
                continue
            edge_sets.append(self._accumulate(tris))
        self.edges = (
            np.unique(np.concatenate(edge_sets), axis=0) if edge_sets else np.zeros((0, 2), dtype=np.int64)
        )

    def _accumulate(self, tris: np.ndarray) -> np.ndarray:
        """Add face and boundary quadrics of one primitive; return its sorted edges."""
        mesh = trimesh.Trimesh(vertices=self.positions, faces=tris, process=False, validate=False)
        # Degenerate faces get a zero normal, hence a zero plane.
        normals = np.asarray(mesh.face_normals, dtype=np.float64)
        d = -np.einsum("ij,ij->i", normals, self.positions[tris[:, 0]])
        planes = np.column_stack([normals, d])
        face_quadrics = planes[:, :, None] * planes[:, None, :]
        for corner in range(3):
            np.add.at(self.quadrics, tris[:, corner], face_quadrics)

        edges = np.asarray(mesh.edges_sorted, dtype=np.int64)
        edges_face = np.asarray(mesh.edges_face, dtype=np.int64)
        open_rows = np.asarray(trimesh.grouping.group_rows(edges, require_count=1), dtype=np.int64).reshape(-1)
        if len(open_rows):
            open_edges = edges[open_rows]
            p0 = self.positions[open_edges[:, 0]]
            p1 = self.positions[open_edges[:, 1]]
            with np.errstate(invalid="ignore", divide="ignore"):
                direction = p1 - p0
                direction /= np.linalg.norm(direction, axis=1, keepdims=True)
                constraint = np.cross(direction, normals[edges_face[open_rows]])
            valid = np.all(np.isfinite(constraint), axis=1)
            for (v0, v1), n, a, b in zip(open_edges[valid], constraint[valid], p0[valid], p1[valid]):
                self.open_edges.add((int(v0), int(v1)))
                for vix, point in ((v0, a), (v1, b)):
                    plane = np.append(n, -np.dot(n, point))
                    self.quadrics[vix] += np.outer(plane, plane) * self.boundary_weight
        return edges

    def vertex_error(self, quadric: np.ndarray, vix: int) -> float:
        h = np.append(self.positions[vix], 1.0)
        # Quadratic forms are non-negative; negatives are rounding noise.
        return max(float(h @ quadric @ h), 0.0)

    def collapse_cost(self, u: int, v: int) -> tuple[float, int]:
        """Minimal error of collapsing edge (u, v) and the endpoint that achieves it."""
        combined = self.quadrics[u] + self.quadrics[v]
        eu = self.vertex_error(combined, u)
        ev = self.vertex_error(combined, v)
        if eu < ev:
            return eu, u
        return ev, v

    def _seed_costs(self) -> np.ndarray:
        """Vectorized ``collapse_cost`` over all edges."""
        a = self.edges[:, 0]
        b = self.edges[:, 1]
        combined = self.quadrics[a] + self.quadrics[b]
        ha = np.column_stack([self.positions[a], np.ones(len(a))])
        hb = np.column_stack([self.positions[b], np.ones(len(b))])
        ea = np.maximum(np.einsum("ei,eij,ej->e", ha, combined, ha), 0.0)
        eb = np.maximum(np.einsum("ei,eij,ej->e", hb, combined, hb), 0.0)
        return np.minimum(ea, eb)

    def run(self, target_ratio: float) -> DecimationResult:
        """Collapse ``floor(edges * (1 - target_ratio))`` popped edges.

        Pops whose endpoints already resolve to the same vertex count toward
        the budget but are skipped.
        """
        check(0 < target_ratio <= 1, f"target_ratio must be in (0, 1], got {target_ratio}")
        n = len(self.positions)
        heap = MinHeap()
        vertex_edges: dict[int, set[tuple[int, int]]] = {}
        for (a, b), cost in zip(self.edges.tolist(), self._seed_costs().tolist()):
            key = (a, b)
            heap.insert(key, cost)
            vertex_edges.setdefault(a, set()).add(key)
            vertex_edges.setdefault(b, set()).add(key)

        tracker = MergeTracker()
        collapses = 0
        for _ in range(math.floor(len(self.edges) * (1 - target_ratio))):
            if not heap:
                break
            (a, b), _cost = heap.pop_min()
            u = tracker.resolve(a)
            v = tracker.resolve(b)
            if u == v:
                continue

            _err, dst = self.collapse_cost(u, v)
            src = v if dst == u else u
            self.quadrics[dst] = self.quadrics[u] + self.quadrics[v]
            tracker.merge_pair(dst, src)
            collapses += 1

            affected = vertex_edges.setdefault(dst, set())
            affected |= vertex_edges.pop(src, set())
            for key in affected:
                if key not in heap:
                    continue
                x = tracker.resolve(key[0])
                y = tracker.resolve(key[1])
                if x == y:
                    continue
                heap.update(key, self.collapse_cost(x, y)[0])

        resolution = np.asarray(tracker.resolve_all(n), dtype=np.int64)
        rewritten = [_rewrite_triangles(resolution, tris) for tris in self.triangle_lists]
        used = set()
        for tris in rewritten:
            used.update(tris.reshape(-1).tolist())
        packing = IndexPacking(used, n)
        return DecimationResult(
            triangles=[packing.convert_array(tris).reshape(-1, 3) for tris in rewritten],
            packing=packing,
            collapses=collapses,
        )


def _rewrite_triangles(resolution: np.ndarray, tris: np.ndarray) -> np.ndarray:
    """Resolve vertices, drop degenerate and double-covered triangles.

    Triangle identity is invariant under cyclic rotation but not under
    reflection, so opposite windings of the same vertices are both kept.
    """
    if len(tris) == 0:
        return tris
    resolved = resolution[tris]
    keep = (
        (resolved[:, 0] != resolved[:, 1])
        & (resolved[:, 1] != resolved[:, 2])
        & (resolved[:, 2] != resolved[:, 0])
    )
    resolved = resolved[keep]
    if len(resolved) == 0:
        return resolved

    shift = np.argmin(resolved, axis=1)
    order = (shift[:, None] + np.arange(3)[None, :]) % 3
    canonical = np.take_along_axis(resolved, order, axis=1)
    _, first = np.unique(canonical, axis=0, return_index=True)
    return resolved[np.sort(first)]


def reduce_mesh(doc: VrmDocument, target_ratio: float) -> StepResult:
    """Decimate every mesh of ``doc`` in place.

    Primitives of a mesh that share one attribute set share one vertex
    space: they are decimated together and re-indexed through a single
    packing, applied to every vertex attribute and morph target delta.
    """
    check(0 < target_ratio <= 1, f"target_ratio must be in (0, 1], got {target_ratio}")
    result = StepResult("reduce_mesh")
    if target_ratio == 1:
        return result

    groups = _vertex_space_groups(doc)
    owners: dict[int, set[tuple]] = {}
    for group_key, group in groups.items():
        for acc_ix in _vertex_accessors(doc, group):
            owners.setdefault(acc_ix, set()).add(group_key)

    for group_key, group in groups.items():
        mesh_ix = group_key[0]
        stats = _reduce_group(doc, group, owners, target_ratio)
        if stats is not None:
            result.details.setdefault(f"mesh{mesh_ix}", []).append(stats)

    doc.mark_changed()
    return result


def _vertex_space_groups(doc: VrmDocument) -> dict[tuple, list[tuple[int, int]]]:
    """(mesh index, attribute set) -> (mesh index, primitive index) pairs."""
    groups: dict[tuple, list] = {}
    for mesh_ix, mesh in enumerate(doc.gltf.meshes):
        for prim_ix, prim in enumerate(mesh.primitives):
            key = (mesh_ix, tuple(sorted((prim.attributes or {}).items())))
            groups.setdefault(key, []).append((mesh_ix, prim_ix))
    return groups


def _vertex_accessors(doc: VrmDocument, group: list) -> list[int]:
    accessors = []
    for mesh_ix, prim_ix in group:
        prim = doc.gltf.meshes[mesh_ix].primitives[prim_ix]
        candidates = list((prim.attributes or {}).values())
        for target in prim.targets:
            candidates.extend(target.values())
        for acc_ix in candidates:
            if acc_ix not in accessors:
                accessors.append(acc_ix)
    return accessors


def _reduce_group(doc: VrmDocument, group: list, owners: dict, target_ratio: float) -> dict | None:
    mesh_ix = group[0][0]
    prims = [doc.gltf.meshes[m].primitives[p] for m, p in group]
    attributes = prims[0].attributes or {}
    if "POSITION" not in attributes:
        logger.warning("mesh %d: primitive without POSITION, skipping decimation", mesh_ix)
        return None
    if any(p.indices is None or p.mode not in (None, MODE_TRIANGLES) for p in prims):
        logger.warning("mesh %d: non-indexed or non-triangle primitive, skipping decimation", mesh_ix)
        return None

    vertex_accessors = _vertex_accessors(doc, group)
    if any(len(owners[acc_ix]) > 1 for acc_ix in vertex_accessors):
        logger.warning("mesh %d: vertex data shared with another mesh, skipping decimation", mesh_ix)
        return None

    positions = read_vec_buffer(doc, attributes["POSITION"])
    num_vertices = len(positions)
    if num_vertices <= 3:
        return None

    index_accessors = []
    for prim in prims:
        if prim.indices not in index_accessors:
            index_accessors.append(prim.indices)
    triangle_lists = [read_index_buffer(doc, acc_ix).reshape(-1, 3) for acc_ix in index_accessors]

    decimated = QuadricDecimator(positions, triangle_lists).run(target_ratio)
    if any(len(tris) == 0 for tris in decimated.triangles):
        logger.warning("mesh %d: decimation would empty a primitive, keeping original", mesh_ix)
        return None

    for acc_ix, tris in zip(index_accessors, decimated.triangles):
        write_index_buffer(doc, acc_ix, tris.reshape(-1))
    for acc_ix in vertex_accessors:
        acc = doc.gltf.accessors[acc_ix]
        data = read_accessor(doc, acc_ix)
        check(len(data) == num_vertices, f"accessor {acc_ix} has {len(data)} elements, expected {num_vertices}")
        packed = decimated.packing.apply(data)
        if acc.type in ("VEC2", "VEC3", "VEC4"):
            write_vec_buffer(doc, acc_ix, packed)
        else:
            write_accessor_bytes(doc, acc_ix, len(packed), packed.tobytes())

    stats = {
        "vertices": [num_vertices, len(decimated.packing)],
        "tris": [sum(len(t) for t in triangle_lists), sum(len(t) for t in decimated.triangles)],
        "collapses": decimated.collapses,
    }
    logger.info("mesh %d: %s", mesh_ix, stats)
    return stats
