from __future__ import annotations
import base64
import dataclasses
import json
import logging
import os.path
import typing
import urllib.parse
import numpy as np
import meshguard
from meshguard.scene import (
    AffineTransform,
    Geometry,
    Material,
    Mesh,
    Node,
    Primitive,
    Scene,
)

logger = logging.getLogger(__name__)

COMPONENT_TYPES = {
    5120: np.int8,
    5121: np.uint8,
    5122: np.int16,
    5123: np.uint16,
    5125: np.uint32,
    5126: np.float32,
}

COMPONENT_COUNTS = {
    "SCALAR": 1,
    "VEC2": 2,
    "VEC3": 3,
    "VEC4": 4,
    "MAT2": 4,
    "MAT3": 9,
    "MAT4": 16,
}

MAX_ZERO_FILLED_BYTES = 1 << 28


@dataclasses.dataclass(frozen=True)
class Model:
    nodes: typing.List[Node]
    meshes: typing.List[Mesh]
    scenes: typing.List[Scene]
    default_scene_index: typing.Optional[int] = None

    @property
    def default_scene(self) -> typing.Optional[Scene]:
        if not self.scenes:
            return None
        return self.scenes[self.default_scene_index or 0]


def _get_transform(node_json: typing.Dict) -> AffineTransform:
    if "matrix" in node_json:
        # column major 4x4
        matrix = [float(_) for _ in node_json["matrix"]]
        if len(matrix) != 16:
            raise meshguard.GltfError(f"node matrix has {len(matrix)} elements")
        return tuple(
            matrix[column * 4 + row] for row in range(3) for column in range(4)
        )

    scale = [float(_) for _ in node_json.get("scale", (1.0, 1.0, 1.0))]
    x, y, z, w = (float(_) for _ in node_json.get("rotation", (0.0, 0.0, 0.0, 1.0)))
    translation = [float(_) for _ in node_json.get("translation", (0.0, 0.0, 0.0))]

    # pylint: disable = invalid-name
    rotation_rows = (
        (1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)),
        (2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)),
        (2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)),
    )
    return tuple(
        value
        for row, rotation_row in enumerate(rotation_rows)
        for value in (
            rotation_row[0] * scale[0],
            rotation_row[1] * scale[1],
            rotation_row[2] * scale[2],
            translation[row],
        )
    )


def _get_buffers(
    buffers_json: typing.List[typing.Dict],
    uri_resolver: typing.Callable[[str], bytes],
) -> typing.List[bytes]:
    buffers_data = []
    for buffer_index, buffer_json in enumerate(buffers_json):
        uri: str = buffer_json["uri"]
        if uri.startswith("data:application/"):
            buffer_bytes = base64.b64decode(uri.split(",", 1)[1], validate=True)
        else:
            buffer_bytes = uri_resolver(uri)

        byte_length = buffer_json.get("byteLength", len(buffer_bytes))
        if len(buffer_bytes) < byte_length:
            raise meshguard.GltfError(
                f"buffer {buffer_index} holds {len(buffer_bytes)} bytes, "
                f"expected {byte_length}"
            )
        buffers_data.append(buffer_bytes)

    return buffers_data


def _get_item(items: typing.Sequence, index: typing.Any, kind: str) -> typing.Any:
    if isinstance(index, bool) or not isinstance(index, int):
        raise meshguard.GltfError(f"{kind} index {index!r} is not an integer")
    if not 0 <= index < len(items):
        raise meshguard.GltfError(f"{kind} {index} does not exist")
    return items[index]


def _read_buffer_view(
    *,
    buffer_views_json: typing.List[typing.Dict],
    buffers_data: typing.List[bytes],
    buffer_view_index: int,
    byte_offset: int,
    count: int,
    dtype: np.dtype,
    component_count: int,
    strided: bool = True,
) -> np.ndarray:
    buffer_view_json = _get_item(buffer_views_json, buffer_view_index, "buffer view")
    buffer_bytes = _get_item(buffers_data, buffer_view_json["buffer"], "buffer")
    view_offset = buffer_view_json.get("byteOffset", 0)
    view_end = view_offset + buffer_view_json.get("byteLength", len(buffer_bytes))
    byte_offset += view_offset

    natural_stride = dtype.itemsize * component_count
    byte_stride = natural_stride
    if strided:
        byte_stride = buffer_view_json.get("byteStride", natural_stride)
    if byte_offset < view_offset or byte_stride < natural_stride:
        raise meshguard.GltfError(f"buffer view {buffer_view_index} has a bad layout")

    end = byte_offset + (count - 1) * byte_stride + natural_stride
    if end > len(buffer_bytes) or end > view_end:
        raise meshguard.GltfError(
            f"{count} elements read past the end of buffer view {buffer_view_index}"
        )

    return np.ndarray(
        shape=(count, component_count),
        dtype=dtype,
        buffer=buffer_bytes,
        offset=byte_offset,
        strides=(byte_stride, dtype.itemsize),
    ).copy()


def _apply_sparse(
    dense: np.ndarray,
    sparse_json: typing.Dict,
    *,
    buffer_views_json: typing.List[typing.Dict],
    buffers_data: typing.List[bytes],
) -> None:
    count = sparse_json["count"]
    if count < 1 or count > len(dense):
        raise meshguard.GltfError(f"sparse count {count} is out of range")

    indices_json = sparse_json["indices"]
    index_type = indices_json["componentType"]
    if index_type not in (5121, 5123, 5125):
        raise meshguard.GltfError(f"sparse index component type {index_type}")
    indices = _read_buffer_view(
        buffer_views_json=buffer_views_json,
        buffers_data=buffers_data,
        buffer_view_index=indices_json["bufferView"],
        byte_offset=indices_json.get("byteOffset", 0),
        count=count,
        dtype=np.dtype(COMPONENT_TYPES[index_type]),
        component_count=1,
        strided=False,
    ).reshape(-1)
    if indices.max() >= len(dense):
        raise meshguard.GltfError("sparse index points past the end of its accessor")

    values_json = sparse_json["values"]
    dense[indices] = _read_buffer_view(
        buffer_views_json=buffer_views_json,
        buffers_data=buffers_data,
        buffer_view_index=values_json["bufferView"],
        byte_offset=values_json.get("byteOffset", 0),
        count=count,
        dtype=dense.dtype,
        component_count=dense.shape[1],
        strided=False,
    )


def _get_accessors(
    *,
    accessors_json: typing.List[typing.Dict],
    buffer_views_json: typing.List[typing.Dict],
    buffers_data: typing.List[bytes],
) -> typing.List[np.ndarray]:
    accessor_data = []
    for accessor_index, accessor_json in enumerate(accessors_json):
        count = accessor_json["count"]
        dtype = np.dtype(COMPONENT_TYPES[accessor_json["componentType"]])
        component_count = COMPONENT_COUNTS[accessor_json["type"]]

        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise meshguard.GltfError(f"accessor {accessor_index} count is {count!r}")

        if "bufferView" in accessor_json and count:
            data = _read_buffer_view(
                buffer_views_json=buffer_views_json,
                buffers_data=buffers_data,
                buffer_view_index=accessor_json["bufferView"],
                byte_offset=accessor_json.get("byteOffset", 0),
                count=count,
                dtype=dtype,
                component_count=component_count,
            )
        else:
            # zero filled data has no backing bytes to bound its size
            if count * component_count * dtype.itemsize > MAX_ZERO_FILLED_BYTES:
                raise meshguard.GltfError(
                    f"accessor {accessor_index} asks for {count} zero filled elements"
                )
            data = np.zeros((count, component_count), dtype=dtype)

        if "sparse" in accessor_json:
            _apply_sparse(
                data,
                accessor_json["sparse"],
                buffer_views_json=buffer_views_json,
                buffers_data=buffers_data,
            )

        accessor_data.append(data)

    return accessor_data


def _to_float_attribute(
    accessor: np.ndarray, accessor_json: typing.Dict
) -> np.ndarray:
    if accessor_json.get("normalized") and accessor.dtype.kind in "iu":
        scaled = accessor / np.iinfo(accessor.dtype).max
        if accessor.dtype.kind == "i":
            scaled = np.maximum(scaled, -1.0)
        return scaled.astype(np.float32)
    return accessor.astype(np.float32)


def _get_materials(materials_json: typing.List[typing.Dict]) -> typing.List[Material]:
    def get_material(material_json: typing.Dict) -> Material:
        red, green, blue, _alpha = material_json.get("pbrMetallicRoughness", {}).get(
            "baseColorFactor", (1.0, 1.0, 1.0, 1.0)
        )
        color = "#" + "".join(
            f"{round(min(max(channel, 0.0), 1.0) * 255):02x}"
            for channel in (red, green, blue)
        )
        return Material(color=color, name=material_json.get("name"))

    return [get_material(material_json) for material_json in materials_json]


def _get_meshes(
    *,
    accessors: typing.List[np.ndarray],
    accessors_json: typing.List[typing.Dict],
    meshes_json: typing.List[typing.Dict],
    materials: typing.List[Material],
) -> typing.List[Mesh]:
    def create_primitive(primitive_json: typing.Dict) -> Primitive:
        attributes_json = primitive_json["attributes"]
        attributes = {}
        for attribute in meshguard.Attribute:
            if attribute.value in attributes_json:
                accessor_index = attributes_json[attribute.value]
                attributes[attribute] = _to_float_attribute(
                    _get_item(accessors, accessor_index, "accessor"),
                    accessors_json[accessor_index],
                )

        indices = None
        if "indices" in primitive_json:
            indices = _get_item(accessors, primitive_json["indices"], "accessor")
            indices = indices.reshape(-1).astype(np.uint32)

        material = None
        if "material" in primitive_json:
            material = _get_item(materials, primitive_json["material"], "material")

        return Primitive(
            geometry=Geometry(attributes=attributes, indices=indices),
            material=material,
        )

    return [
        Mesh(
            primitives=[
                create_primitive(primitive_json)
                for primitive_json in mesh_json["primitives"]
            ],
            name=mesh_json.get("name"),
        )
        for mesh_json in meshes_json
    ]


def _get_nodes(
    nodes_json: typing.List[typing.Dict], meshes: typing.List[Mesh]
) -> typing.List[Node]:
    nodes: typing.List[typing.Optional[Node]] = [None] * len(nodes_json)
    visiting: typing.Set[int] = set()

    def create_node(node_index: int) -> Node:
        node = _get_item(nodes, node_index, "node")
        if node is not None:
            return node
        if node_index in visiting:
            raise meshguard.GltfError(f"node {node_index} is its own ancestor")

        visiting.add(node_index)
        node_json = nodes_json[node_index]
        node = Node(
            name=node_json.get("name"),
            mesh=_get_item(meshes, node_json["mesh"], "mesh")
            if "mesh" in node_json
            else None,
            children=[create_node(_) for _ in node_json.get("children", [])],
            transform=_get_transform(node_json),
        )
        visiting.discard(node_index)
        nodes[node_index] = node
        return node

    return [create_node(node_index) for node_index in range(len(nodes_json))]


def _get_root_node_indices(nodes_json: typing.List[typing.Dict]) -> typing.List[int]:
    child_indices = {
        child_index
        for node_json in nodes_json
        for child_index in node_json.get("children", [])
    }
    return [_ for _ in range(len(nodes_json)) if _ not in child_indices]


def from_json(
    file: typing.TextIO, uri_resolver: typing.Callable[[str], bytes]
) -> Model:
    try:
        gltf_json = json.load(file)

        accessors_json = gltf_json.get("accessors", [])
        accessors = _get_accessors(
            accessors_json=accessors_json,
            buffer_views_json=gltf_json.get("bufferViews", []),
            buffers_data=_get_buffers(gltf_json.get("buffers", []), uri_resolver),
        )
        meshes = _get_meshes(
            accessors=accessors,
            accessors_json=accessors_json,
            meshes_json=gltf_json.get("meshes", []),
            materials=_get_materials(gltf_json.get("materials", [])),
        )

        nodes_json = gltf_json.get("nodes", [])
        nodes = _get_nodes(nodes_json, meshes)

        scenes_json = gltf_json.get("scenes")
        if scenes_json is None:
            scenes_json = [{"nodes": _get_root_node_indices(nodes_json)}] if nodes else []
        scenes = [
            Scene(
                nodes=[
                    _get_item(nodes, node_index, "node")
                    for node_index in scene_json.get("nodes", [])
                ],
                name=scene_json.get("name"),
            )
            for scene_json in scenes_json
        ]

        default_scene_index = gltf_json.get("scene")
        if default_scene_index is not None and not 0 <= default_scene_index < len(
            scenes
        ):
            raise meshguard.GltfError(f"default scene {default_scene_index} is missing")
    except (
        KeyError,
        IndexError,
        TypeError,
        ValueError,
        MemoryError,
        RecursionError,
    ) as error:
        raise meshguard.GltfError(f"malformed glTF document: {error!r}") from error

    return Model(
        nodes=nodes,
        meshes=meshes,
        scenes=scenes,
        default_scene_index=default_scene_index,
    )


def load(path: str) -> typing.Optional[Scene]:
    directory = os.path.dirname(path)

    def read_file_bytes(uri: str) -> bytes:
        with open(os.path.join(directory, urllib.parse.unquote(uri)), "rb") as file:
            return file.read()

    try:
        with open(path, encoding="utf-8") as gltf_file:
            model = from_json(gltf_file, read_file_bytes)
    except (OSError, meshguard.GltfError) as error:
        logger.warning("Failed to load %s: %s", path, error)
        return None

    scene = model.default_scene
    if scene is None:
        logger.warning("%s contains no scenes", path)
    return scene
