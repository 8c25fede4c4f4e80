"""Convert document meshes to trimesh for the rendering side."""

import io

import numpy as np
import trimesh

from ..errors import check
from ..gltf.accessor import read_index_buffer, read_vec_buffer
from ..gltf.document import VrmDocument


def primitive_to_trimesh(doc: VrmDocument, mesh_ix: int, prim_ix: int) -> trimesh.Trimesh:
    """Convert one primitive (POSITION + indices) to trimesh.

    Args:
        doc: Source document
        mesh_ix: Mesh index
        prim_ix: Primitive index within the mesh

    Returns:
        Unprocessed trimesh sharing the primitive's vertex order
    """
    check(0 <= mesh_ix < len(doc.gltf.meshes), f"mesh {mesh_ix} does not exist")
    mesh = doc.gltf.meshes[mesh_ix]
    check(0 <= prim_ix < len(mesh.primitives), f"primitive {prim_ix} does not exist")
    prim = mesh.primitives[prim_ix]

    attributes = prim.attributes or {}
    check("POSITION" in attributes, f"mesh {mesh_ix} primitive {prim_ix} has no POSITION")
    vertices = read_vec_buffer(doc, attributes["POSITION"]).astype(np.float64)
    if prim.indices is None:
        faces = np.arange(len(vertices) - len(vertices) % 3).reshape(-1, 3)
    else:
        faces = read_index_buffer(doc, prim.indices).reshape(-1, 3)

    tm = trimesh.Trimesh(vertices=vertices, faces=faces, process=False)
    if "NORMAL" in attributes:
        tm.vertex_normals = read_vec_buffer(doc, attributes["NORMAL"]).astype(np.float64)
    return tm


def mesh_to_trimesh(doc: VrmDocument, mesh_ix: int) -> trimesh.Trimesh:
    """Merge all primitives of a mesh into a single trimesh."""
    check(0 <= mesh_ix < len(doc.gltf.meshes), f"mesh {mesh_ix} does not exist")
    parts = [
        primitive_to_trimesh(doc, mesh_ix, prim_ix)
        for prim_ix in range(len(doc.gltf.meshes[mesh_ix].primitives))
    ]
    check(len(parts) > 0, f"mesh {mesh_ix} has no primitives")
    if len(parts) == 1:
        return parts[0]
    return trimesh.util.concatenate(parts)


def mesh_to_glb(doc: VrmDocument, mesh_ix: int) -> bytes:
    """Export one mesh as standalone GLB bytes."""
    return _export_glb(mesh_to_trimesh(doc, mesh_ix))


def _export_glb(mesh: trimesh.Trimesh) -> bytes:
    """Export trimesh to GLB bytes."""
    with io.BytesIO() as buf:
        mesh.export(buf, file_type="glb")
        return buf.getvalue()
