"""Mesh integrity validation.

A loaded scene is checked once, before it reaches a renderer. Every geometry of
every mesh node must hold only finite position, normal and texture coordinate
data, and the bounding volumes derived from its positions must be finite with a
positive radius. The outcome is either ``Valid(scene)`` or ``Invalid``; faults
raised while checking a geometry are reported as ``Invalid`` and never escape.
"""
from __future__ import annotations
import dataclasses
import logging
import math
import typing
import numpy as np
import meshguard
from meshguard.bounds import compute_bounding_box, compute_bounding_sphere
from meshguard.scene import Geometry, Node, Scene, ScratchAllocator

logger = logging.getLogger(__name__)

SCANNED_ATTRIBUTES = (
    meshguard.Attribute.POSITION,
    meshguard.Attribute.NORMAL,
    meshguard.Attribute.TEXCOORD,
)


def _find_non_finite_attribute(
    geometry: Geometry
) -> typing.Optional[meshguard.Attribute]:
    for attribute in SCANNED_ATTRIBUTES:
        buffer = geometry.get(attribute)
        if buffer is not None and not np.isfinite(buffer).all():
            return attribute
    return None


def _check_bounds(
    geometry: Geometry, allocator: ScratchAllocator
) -> typing.Optional[str]:
    with allocator.scratch(geometry) as scratch_geometry:
        box = compute_bounding_box(scratch_geometry)
        sphere = compute_bounding_sphere(scratch_geometry, box)

    if not math.isfinite(sphere.radius) or sphere.radius <= 0:
        return f"bounding sphere radius is {sphere.radius}"
    if not all(math.isfinite(_) for _ in box.min + box.max):
        return f"bounding box {box.min} - {box.max} is not finite"
    return None


def _check_geometry(
    geometry: Geometry, allocator: ScratchAllocator
) -> typing.Optional[str]:
    try:
        attribute = _find_non_finite_attribute(geometry)
        if attribute is not None:
            return f"non-finite value in {attribute.value} data"
        return _check_bounds(geometry, allocator)
    except Exception as error:  # pylint: disable = broad-except
        logger.warning("Geometry check failed: %r", error)
        return f"geometry check failed: {error}"


def _check_node(node: Node, allocator: ScratchAllocator) -> typing.Optional[str]:
    for geometry in node.mesh.geometries:
        reason = _check_geometry(geometry, allocator)
        if reason:
            return reason
    return None


def _describe(node: Node) -> str:
    return repr(node.name) if node.name else "<unnamed>"


def _prune_node(
    node: Node,
    allocator: ScratchAllocator,
    pruned: typing.List[str],
    ancestors: typing.FrozenSet[int] = frozenset(),
) -> typing.Optional[Node]:
    # a child that is also an ancestor closes a cycle and is dropped
    ancestors = ancestors | {id(node)}
    children = [
        kept_child
        for kept_child in (
            _prune_node(child, allocator, pruned, ancestors)
            for child in node.children
            if id(child) not in ancestors
        )
        if kept_child is not None
    ]

    mesh = node.mesh
    if node.is_mesh_node:
        reason = _check_node(node, allocator)
        if reason:
            logger.info("Pruning mesh node %s: %s", _describe(node), reason)
            pruned.append(f"node {_describe(node)}: {reason}")
            if not children:
                return None
            mesh = None

    unchanged = (
        mesh is node.mesh
        and len(children) == len(node.children)
        and all(kept is original for kept, original in zip(children, node.children))
    )
    if unchanged:
        return node
    return dataclasses.replace(node, mesh=mesh, children=children)


def _validate_pruning(
    scene: Scene, allocator: ScratchAllocator
) -> meshguard.ValidationResult:
    pruned: typing.List[str] = []
    nodes = [
        kept_node
        for kept_node in (_prune_node(node, allocator, pruned) for node in scene.nodes)
        if kept_node is not None
    ]
    if not pruned:
        return meshguard.Valid(scene)

    pruned_scene = dataclasses.replace(scene, nodes=nodes)
    if next(pruned_scene.mesh_nodes(), None) is None:
        logger.warning("Every mesh node of scene %r was pruned", scene.name)
        return meshguard.Invalid("; ".join(pruned))
    return meshguard.Valid(pruned_scene)


def _validate_whole_scene(
    scene: Scene, allocator: ScratchAllocator
) -> meshguard.ValidationResult:
    for node in scene.mesh_nodes():
        reason = _check_node(node, allocator)
        if reason:
            logger.warning(
                "Scene %r failed validation at node %s: %s",
                scene.name,
                _describe(node),
                reason,
            )
            return meshguard.Invalid(f"node {_describe(node)}: {reason}")

    return meshguard.Valid(scene)


def validate(
    scene: typing.Optional[Scene],
    *,
    policy: meshguard.Policy = meshguard.Policy.INVALIDATE_SCENE,
    allocator: typing.Optional[ScratchAllocator] = None,
) -> meshguard.ValidationResult:
    if scene is None:
        return meshguard.Invalid("no scene was loaded")

    if allocator is None:
        allocator = ScratchAllocator()

    try:
        if policy is meshguard.Policy.PRUNE_MESHES:
            return _validate_pruning(scene, allocator)
        return _validate_whole_scene(scene, allocator)
    except Exception as error:  # pylint: disable = broad-except
        logger.warning("Scene %r could not be traversed: %r", scene.name, error)
        return meshguard.Invalid(f"scene traversal failed: {error}")
