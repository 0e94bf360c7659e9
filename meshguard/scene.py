from __future__ import annotations
import contextlib
import dataclasses
import typing
import numpy as np
import meshguard

AffineTransform = typing.Tuple[
    float, float, float, float, float, float, float, float, float, float, float, float
]

IDENTITY_TRANSFORM: AffineTransform = (
    1.0, 0.0, 0.0, 0.0,
    0.0, 1.0, 0.0, 0.0,
    0.0, 0.0, 1.0, 0.0,
)  # fmt: skip


@dataclasses.dataclass(frozen=True)
class Material:
    color: str = "#ffffff"
    wireframe: bool = False
    name: typing.Optional[str] = None


@dataclasses.dataclass(frozen=True, eq=False)
class Geometry:
    attributes: typing.Dict[meshguard.Attribute, np.ndarray]
    indices: typing.Optional[np.ndarray] = None

    def get(self, attribute: meshguard.Attribute) -> typing.Optional[np.ndarray]:
        return self.attributes.get(attribute)

    @property
    def vertex_count(self) -> int:
        positions = self.get(meshguard.Attribute.POSITION)
        return 0 if positions is None else len(positions)

    def clone(self) -> Geometry:
        return Geometry(
            attributes={
                attribute: np.array(buffer, copy=True)
                for attribute, buffer in self.attributes.items()
            },
            indices=None if self.indices is None else np.array(self.indices, copy=True),
        )


def _as_attribute_buffer(
    attribute: meshguard.Attribute, values: typing.Sequence[float]
) -> np.ndarray:
    component_count = meshguard.ATTRIBUTE_COMPONENT_COUNTS[attribute]
    buffer = np.asarray(values, dtype=np.float32)
    if buffer.size % component_count:
        raise meshguard.GeometryError(
            f"{attribute.value} buffer of {buffer.size} scalars is not a whole "
            f"number of {component_count}-component elements"
        )
    return buffer.reshape(-1, component_count)


def new_geometry(
    *,
    positions: typing.Sequence[float],
    normals: typing.Optional[typing.Sequence[float]] = None,
    texcoords: typing.Optional[typing.Sequence[float]] = None,
    indices: typing.Optional[typing.Sequence[int]] = None,
) -> Geometry:
    attributes = {
        meshguard.Attribute.POSITION: _as_attribute_buffer(
            meshguard.Attribute.POSITION, positions
        )
    }
    if normals is not None:
        attributes[meshguard.Attribute.NORMAL] = _as_attribute_buffer(
            meshguard.Attribute.NORMAL, normals
        )
    if texcoords is not None:
        attributes[meshguard.Attribute.TEXCOORD] = _as_attribute_buffer(
            meshguard.Attribute.TEXCOORD, texcoords
        )

    return Geometry(
        attributes=attributes,
        indices=None if indices is None else np.asarray(indices, dtype=np.uint32),
    )


@dataclasses.dataclass(frozen=True)
class Primitive:
    geometry: Geometry
    material: typing.Optional[Material] = None


@dataclasses.dataclass(frozen=True)
class Mesh:
    primitives: typing.List[Primitive]
    name: typing.Optional[str] = None

    @property
    def geometries(self) -> typing.Iterator[Geometry]:
        return (primitive.geometry for primitive in self.primitives)


@dataclasses.dataclass(frozen=True)
class Node:
    name: typing.Optional[str] = None
    mesh: typing.Optional[Mesh] = None
    children: typing.List[Node] = dataclasses.field(default_factory=list)
    transform: AffineTransform = IDENTITY_TRANSFORM

    @property
    def is_mesh_node(self) -> bool:
        return self.mesh is not None and bool(self.mesh.primitives)


@dataclasses.dataclass(frozen=True)
class Scene:
    nodes: typing.List[Node]
    name: typing.Optional[str] = None

    def traverse(self) -> typing.Iterator[Node]:
        """Yields every node of the scene once, depth first, parents before children."""
        visited: typing.Set[int] = set()
        pending = list(reversed(self.nodes))
        while pending:
            node = pending.pop()
            if id(node) in visited:
                continue
            visited.add(id(node))
            yield node
            pending.extend(reversed(node.children))

    def mesh_nodes(self) -> typing.Iterator[Node]:
        return (node for node in self.traverse() if node.is_mesh_node)


def single_mesh_scene(
    geometry: Geometry,
    *,
    material: typing.Optional[Material] = None,
    name: typing.Optional[str] = None,
) -> Scene:
    return Scene(
        nodes=[
            Node(
                name=name,
                mesh=Mesh(primitives=[Primitive(geometry, material)], name=name),
            )
        ],
        name=name,
    )


class ScratchAllocator:
    """Hands out disposable geometry copies and tracks which are still alive."""

    def __init__(self) -> None:
        self.live: typing.List[Geometry] = []
        self.allocation_count = 0

    @contextlib.contextmanager
    def scratch(self, geometry: Geometry) -> typing.Generator[Geometry, None, None]:
        copy = geometry.clone()
        self.live.append(copy)
        self.allocation_count += 1
        try:
            yield copy
        finally:
            self.live.remove(copy)
