"""Prune skeleton nodes that nothing depends on.

A node is *free* when it is not pinned and all of its children are free.
Free nodes are deleted; the skin weights of free joints are merged into the
nearest kept ancestor first.
"""

import logging

import numpy as np

from ..algorithm import IndexPacking, MergeTracker
from ..errors import InvariantViolation, check
from ..gltf.accessor import read_accessor, read_vec_buffer, write_accessor_bytes, write_vec_buffer
from ..gltf.document import VrmDocument
from .result import StepResult

logger = logging.getLogger(__name__)

# UniVRM crashes without this node.
SECONDARY_NODE_NAME = "secondary"


def delete_non_essential_bones(doc: VrmDocument, keep_secondary_animation: bool = False) -> StepResult:
    """Delete free node subtrees and merge their skin weights upward.

    Args:
        doc: Document to mutate
        keep_secondary_animation: Pin spring-bone and collider nodes instead
            of clearing the secondary animation groups

    Returns:
        StepResult whose remap is old node index -> new node index
    """
    gltf = doc.gltf
    vrm = gltf.vrm
    secondary = vrm.secondary_animation if vrm is not None else None
    if secondary is not None and not keep_secondary_animation:
        secondary.bone_groups = []
        secondary.collider_groups = []

    parents = _parents(doc)
    locked = _pinned_nodes(doc, keep_secondary_animation, parents)
    free = _free_nodes(doc, locked)

    tracker = MergeTracker()
    for node_ix in sorted(free):
        tracker.merge_pair(_first_non_free(node_ix, free, parents), node_ix)
    plan = {node_ix: tracker.resolve(node_ix) for node_ix in free}
    logger.debug(
        "node weight merge plan %s",
        {_node_label(doc, k): _node_label(doc, v) for k, v in plan.items()},
    )
    merge_weights(doc, plan, parents)

    packing = IndexPacking(set(range(len(gltf.nodes))) - free, len(gltf.nodes))
    _apply_node_packing(doc, packing)
    doc.mark_changed()

    logger.info("deleted %d of %d nodes", len(free), packing.length)
    return StepResult(
        "delete_non_essential_bones",
        remap=packing.as_dict(),
        details={"removed": len(free)},
    )


def _parents(doc: VrmDocument) -> dict[int, int]:
    parents = {}
    for node_ix, node in enumerate(doc.gltf.nodes):
        for child in node.children:
            if child in parents:
                raise InvariantViolation(f"node {child} has several parents; node graph is not a tree")
            parents[child] = node_ix
    return parents


def _pinned_nodes(doc: VrmDocument, keep_secondary_animation: bool, parents: dict[int, int]) -> set[int]:
    gltf = doc.gltf
    vrm = gltf.vrm
    locked = set()
    for node_ix, node in enumerate(gltf.nodes):
        if node.skin is not None or node.mesh is not None:
            locked.add(node_ix)
        if node.name == SECONDARY_NODE_NAME:
            locked.add(node_ix)
    for scene in gltf.scenes:
        locked.update(scene.nodes)
    for skin in gltf.skins:
        if skin.skeleton is not None:
            locked.add(skin.skeleton)
    for anim in gltf.animations:
        for channel in anim.channels:
            if channel.target is not None and channel.target.node is not None:
                locked.add(channel.target.node)

    if vrm is not None:
        if vrm.first_person is not None and vrm.first_person.first_person_bone is not None:
            locked.add(vrm.first_person.first_person_bone)
        if vrm.humanoid is not None:
            locked.update(hb.node for hb in vrm.humanoid.human_bones if hb.node is not None)
        if keep_secondary_animation and vrm.secondary_animation is not None:
            secondary = vrm.secondary_animation
            for group in secondary.bone_groups:
                # Spring chains simulate every descendant of their roots.
                for root in group.bones:
                    locked.update(_subtree(doc, root))
                if group.center is not None and group.center >= 0:
                    locked.add(group.center)
            locked.update(cg.node for cg in secondary.collider_groups if cg.node is not None)
    return locked


def _subtree(doc: VrmDocument, root: int) -> list[int]:
    nodes = []
    stack = [root]
    while stack:
        node_ix = stack.pop()
        nodes.append(node_ix)
        stack.extend(doc.gltf.nodes[node_ix].children)
    return nodes


def _free_nodes(doc: VrmDocument, locked: set[int]) -> set[int]:
    """Nodes reachable from a scene that are unpinned with only free children."""
    free = set()
    for scene in doc.gltf.scenes:
        for root in scene.nodes:
            # Post-order: a node is decided after all of its children.
            order = list(reversed(_subtree(doc, root)))
            for node_ix in order:
                children = doc.gltf.nodes[node_ix].children
                if node_ix not in locked and all(c in free for c in children):
                    free.add(node_ix)
    return free


def _first_non_free(node_ix: int, free: set[int], parents: dict[int, int]) -> int:
    while node_ix in free:
        check(node_ix in parents, f"free node {node_ix} has no parent")
        node_ix = parents[node_ix]
    return node_ix


def merge_weights(doc: VrmDocument, plan: dict[int, int], parents: dict[int, int]) -> None:
    """Move skin weights of free joints onto kept joints.

    Nodes are neither deleted nor re-indexed here. Each skin's joint list,
    inverse bind matrices and JOINTS_n/WEIGHTS_n streams are rewritten to
    drop the free joints.

    Args:
        doc: Document to mutate
        plan: Free node -> kept node receiving its weights
        parents: Child node -> parent node
    """
    gltf = doc.gltf
    processed_joint_accessors = set()
    for skin_ix, skin in enumerate(gltf.skins):
        new_joints = []
        for node_ix in skin.joints:
            if node_ix not in plan and node_ix not in new_joints:
                new_joints.append(node_ix)
        if new_joints == skin.joints:
            continue
        new_node_to_joint = {node_ix: jix for jix, node_ix in enumerate(new_joints)}

        joint_transfer = np.zeros(len(skin.joints), dtype=np.int64)
        kept_rows = []
        for jix, node_ix in enumerate(skin.joints):
            dst = _nearest_joint(plan.get(node_ix, node_ix), new_node_to_joint, parents)
            joint_transfer[jix] = new_node_to_joint[dst]
            if node_ix not in plan and new_node_to_joint[node_ix] == len(kept_rows):
                kept_rows.append(jix)
        logger.debug("skin %d joint transfer %s", skin_ix, joint_transfer.tolist())

        if skin.inverse_bind_matrices is not None:
            matrices = read_accessor(doc, skin.inverse_bind_matrices)
            check(
                len(matrices) == len(skin.joints),
                f"skin {skin_ix} has {len(skin.joints)} joints but {len(matrices)} bind matrices",
            )
            kept = matrices[kept_rows]
            write_accessor_bytes(doc, skin.inverse_bind_matrices, len(kept), kept.tobytes())

        for joints_ix, weights_ix in _skinned_streams(doc, skin_ix):
            if joints_ix in processed_joint_accessors:
                continue
            remap_weights(doc, joints_ix, weights_ix, joint_transfer)
            processed_joint_accessors.add(joints_ix)

        skin.joints = new_joints


def _nearest_joint(node_ix: int, joints: dict[int, int], parents: dict[int, int]) -> int:
    while node_ix not in joints:
        if node_ix not in parents:
            raise InvariantViolation(f"no kept joint above node {node_ix} to receive its weights")
        node_ix = parents[node_ix]
    return node_ix


def _skinned_streams(doc: VrmDocument, skin_ix: int) -> list[tuple[int, int]]:
    streams = []
    for node in doc.gltf.nodes:
        if node.skin != skin_ix or node.mesh is None:
            continue
        for prim in doc.gltf.meshes[node.mesh].primitives:
            attributes = prim.attributes or {}
            for name, joints_ix in attributes.items():
                if not name.startswith("JOINTS_"):
                    continue
                weights_ix = attributes.get("WEIGHTS_" + name[len("JOINTS_"):])
                if weights_ix is not None and (joints_ix, weights_ix) not in streams:
                    streams.append((joints_ix, weights_ix))
    return streams


def remap_weights(doc: VrmDocument, joints_ix: int, weights_ix: int, joint_transfer: np.ndarray) -> None:
    """Rewrite one JOINTS/WEIGHTS pair through ``joint_transfer``.

    Influences that land on the same new joint are summed. Weights are not
    renormalized.
    """
    joints = read_vec_buffer(doc, joints_ix).astype(np.int64)
    weights = read_vec_buffer(doc, weights_ix).astype(np.float64)
    check(len(joints) == len(weights), "JOINTS and WEIGHTS differ in vertex count")
    check(
        len(joints) == 0 or int(joints.max()) < len(joint_transfer),
        f"JOINTS accessor {joints_ix} references joints beyond the skin",
    )

    new_joints = np.zeros_like(joints)
    new_weights = np.zeros_like(weights)
    width = joints.shape[1]
    for vix in range(len(joints)):
        merged: dict[int, float] = {}
        for j, w in zip(joints[vix], weights[vix]):
            if j == 0 and w == 0:
                continue  # padding slot
            nj = int(joint_transfer[j])
            merged[nj] = merged.get(nj, 0.0) + w
        for slot, (nj, w) in enumerate(list(merged.items())[:width]):
            new_joints[vix, slot] = nj
            new_weights[vix, slot] = w

    write_vec_buffer(doc, joints_ix, new_joints)
    write_vec_buffer(doc, weights_ix, new_weights)


def _apply_node_packing(doc: VrmDocument, packing: IndexPacking) -> None:
    gltf = doc.gltf
    if packing.is_identity():
        return
    kept = packing.mapping

    gltf.nodes = packing.apply(gltf.nodes)
    for node in gltf.nodes:
        node.children = [kept[c] for c in node.children if c in kept]
    for scene in gltf.scenes:
        scene.nodes = [packing.convert(n) for n in scene.nodes]
    for skin in gltf.skins:
        skin.skeleton = packing.convert_optional(skin.skeleton)
        skin.joints = [packing.convert(n) for n in skin.joints]
    for anim in gltf.animations:
        for channel in anim.channels:
            if channel.target is not None:
                channel.target.node = packing.convert_optional(channel.target.node)

    vrm = gltf.vrm
    if vrm is None:
        return
    if vrm.first_person is not None:
        vrm.first_person.first_person_bone = packing.convert_optional(vrm.first_person.first_person_bone)
    if vrm.humanoid is not None:
        for hb in vrm.humanoid.human_bones:
            hb.node = packing.convert_optional(hb.node)
    if vrm.secondary_animation is not None:
        for group in vrm.secondary_animation.bone_groups:
            group.bones = [packing.convert(n) for n in group.bones]
            if group.center is not None and group.center >= 0:
                group.center = packing.convert(group.center)
        for cg in vrm.secondary_animation.collider_groups:
            cg.node = packing.convert_optional(cg.node)


def _node_label(doc: VrmDocument, node_ix: int) -> str:
    return f"{node_ix}:{doc.gltf.nodes[node_ix].name or ''}"
