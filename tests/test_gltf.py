import base64
import io
import json
import math
import typing
import numpy as np
import pytest
import meshguard
import meshguard.gltf
from meshguard import Attribute
from conftest import build_gltf


def from_document(
    document: typing.Dict, uri_resolver: typing.Callable[[str], bytes] = None
) -> meshguard.gltf.Model:
    def no_external_buffers(uri: str) -> bytes:
        raise AssertionError(f"unexpected external buffer {uri}")

    return meshguard.gltf.from_json(
        io.StringIO(json.dumps(document)), uri_resolver or no_external_buffers
    )


def test_embedded_buffers() -> None:
    model = from_document(
        build_gltf(
            [
                {"POSITION": [0, 0, 0, 1, 1, 1], "NORMAL": [0, 0, 1, 0, 0, 1]},
                {"POSITION": [0, 0, 0, 1, 0, 0, 0, 1, 0], "TEXCOORD_0": [0, 0, 1, 0, 0, 1]},
            ]
        )
    )

    scene = model.default_scene
    assert scene.name == "main"
    assert [node.name for node in scene.traverse()] == ["mesh-0", "mesh-1"]

    first, second = (node.mesh.primitives[0].geometry for node in scene.nodes)
    assert first.get(Attribute.POSITION).tolist() == [[0, 0, 0], [1, 1, 1]]
    assert first.get(Attribute.NORMAL).shape == (2, 3)
    assert first.get(Attribute.TEXCOORD) is None
    assert second.get(Attribute.TEXCOORD).tolist() == [[0, 0], [1, 0], [0, 1]]
    assert second.vertex_count == 3


def test_nan_survives_loading() -> None:
    model = from_document(build_gltf([{"POSITION": [0, 0, 0, float("nan"), 1, 1]}]))
    positions = model.default_scene.nodes[0].mesh.primitives[0].geometry.get(
        Attribute.POSITION
    )
    assert math.isnan(positions[1][0])
    assert isinstance(meshguard.validate(model.default_scene), meshguard.Invalid)


def test_node_transforms() -> None:
    document = build_gltf([{"POSITION": [0, 0, 0, 1, 1, 1]}])
    half_sqrt2 = math.sqrt(0.5)
    document["nodes"] = [
        {
            "name": "trs",
            "rotation": [0, 0, half_sqrt2, half_sqrt2],
            "scale": [2, 2, 2],
            "translation": [1, 2, 3],
            "children": [1],
        },
        {
            "name": "matrix",
            "mesh": 0,
            "matrix": [1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1, 0, 5, 6, 7, 1],
        },
    ]
    document["scenes"] = [{"nodes": [0]}]

    scene = from_document(document).default_scene
    trs_node, matrix_node = scene.traverse()
    assert trs_node.transform == pytest.approx(
        (0, -2, 0, 1, 2, 0, 0, 2, 0, 0, 2, 3), abs=1e-12
    )
    assert matrix_node.transform == (1, 0, 0, 5, 0, 1, 0, 6, 0, 0, 1, 7)
    assert trs_node.children == [matrix_node]
    assert not trs_node.is_mesh_node
    assert matrix_node.is_mesh_node


def test_interleaved_attributes() -> None:
    vertices = np.array(
        [[0, 0, 0, 0, 0, 1], [1, 0, 0, 0, 0, 1], [0, 1, 0, 0, 0, 1]], dtype=np.float32
    )
    document = {
        "scenes": [{"nodes": [0]}],
        "nodes": [{"mesh": 0}],
        "meshes": [{"primitives": [{"attributes": {"POSITION": 0, "NORMAL": 1}}]}],
        "accessors": [
            {"bufferView": 0, "componentType": 5126, "count": 3, "type": "VEC3"},
            {
                "bufferView": 0,
                "byteOffset": 12,
                "componentType": 5126,
                "count": 3,
                "type": "VEC3",
            },
        ],
        "bufferViews": [
            {"buffer": 0, "byteOffset": 0, "byteLength": vertices.nbytes, "byteStride": 24}
        ],
        "buffers": [{"byteLength": vertices.nbytes, "uri": "interleaved.bin"}],
    }

    model = from_document(document, lambda uri: vertices.tobytes())
    geometry = model.meshes[0].primitives[0].geometry
    assert geometry.get(Attribute.POSITION).tolist() == vertices[:, :3].tolist()
    assert geometry.get(Attribute.NORMAL).tolist() == vertices[:, 3:].tolist()


def test_indices_and_normalized_texcoords() -> None:
    indices = np.array([0, 1, 2], dtype=np.uint16)
    texcoords = np.array([0, 0, 255, 0, 0, 255], dtype=np.uint8)
    positions = np.array([0, 0, 0, 1, 0, 0, 0, 1, 0], dtype=np.float32)
    buffer_bytes = positions.tobytes() + texcoords.tobytes() + indices.tobytes()
    document = {
        "scenes": [{"nodes": [0]}],
        "nodes": [{"mesh": 0}],
        "meshes": [
            {
                "primitives": [
                    {"attributes": {"POSITION": 0, "TEXCOORD_0": 1}, "indices": 2}
                ]
            }
        ],
        "accessors": [
            {"bufferView": 0, "componentType": 5126, "count": 3, "type": "VEC3"},
            {
                "bufferView": 1,
                "componentType": 5121,
                "normalized": True,
                "count": 3,
                "type": "VEC2",
            },
            {"bufferView": 2, "componentType": 5123, "count": 3, "type": "SCALAR"},
        ],
        "bufferViews": [
            {"buffer": 0, "byteOffset": 0, "byteLength": 36},
            {"buffer": 0, "byteOffset": 36, "byteLength": 6},
            {"buffer": 0, "byteOffset": 42, "byteLength": 6},
        ],
        "buffers": [
            {
                "byteLength": len(buffer_bytes),
                "uri": "data:application/gltf-buffer;base64,"
                + base64.b64encode(buffer_bytes).decode("ascii"),
            }
        ],
    }

    geometry = from_document(document).meshes[0].primitives[0].geometry
    assert geometry.indices.tolist() == [0, 1, 2]
    assert geometry.get(Attribute.TEXCOORD).tolist() == [[0, 0], [1, 0], [0, 1]]


def test_materials() -> None:
    document = build_gltf([{"POSITION": [0, 0, 0, 1, 1, 1]}])
    document["materials"] = [
        {"name": "purple", "pbrMetallicRoughness": {"baseColorFactor": [1, 0, 0.5, 1]}}
    ]
    document["meshes"][0]["primitives"][0]["material"] = 0

    primitive = from_document(document).meshes[0].primitives[0]
    assert primitive.material.color == "#ff0080"
    assert primitive.material.name == "purple"


def test_default_scene_index() -> None:
    document = build_gltf([{"POSITION": [0, 0, 0, 1, 1, 1]}])
    document["scenes"].append({"name": "other", "nodes": []})
    document["scene"] = 1
    assert from_document(document).default_scene.name == "other"


def test_missing_scenes_use_root_nodes() -> None:
    document = build_gltf([{"POSITION": [0, 0, 0, 1, 1, 1]}] * 2)
    document["nodes"][0]["children"] = [1]
    del document["scenes"]
    del document["scene"]

    scene = from_document(document).default_scene
    assert [node.name for node in scene.nodes] == ["mesh-0"]
    assert [node.name for node in scene.traverse()] == ["mesh-0", "mesh-1"]


def test_empty_document_has_no_scene() -> None:
    assert from_document({"asset": {"version": "2.0"}}).default_scene is None


@pytest.mark.parametrize(
    "corrupt",
    [
        lambda document: document["meshes"][0]["primitives"][0].pop("attributes"),
        lambda document: document["accessors"][0].update(componentType=1),
        lambda document: document["accessors"][0].update(count=100),
        lambda document: document["buffers"][0].update(byteLength=10_000),
        lambda document: document["buffers"][0].update(
            uri="data:application/octet-stream;base64,!!!"
        ),
        lambda document: document["nodes"][0].update(children=[0]),
        lambda document: document["nodes"][0].update(matrix=[1, 0, 0]),
        lambda document: document.update(scene=3),
        lambda document: document["nodes"][0].update(mesh=-1),
        lambda document: document["scenes"][0].update(nodes=[-1]),
        lambda document: document["meshes"][0]["primitives"][0]["attributes"].update(
            POSITION=-1
        ),
        lambda document: document["accessors"][0].update(bufferView=-1),
        lambda document: document["accessors"][0].update(count=-1),
        lambda document: document["accessors"][0].update(count=1.5),
    ],
)
def test_malformed_documents(corrupt) -> None:
    document = build_gltf([{"POSITION": [0, 0, 0, 1, 1, 1]}])
    corrupt(document)
    with pytest.raises(meshguard.GltfError):
        from_document(document)


def test_invalid_json() -> None:
    with pytest.raises(meshguard.GltfError):
        meshguard.gltf.from_json(io.StringIO("{not json"), lambda uri: b"")


def test_load_resolves_external_buffers(tmp_path) -> None:
    positions = np.array([0, 0, 0, 1, 1, 1], dtype=np.float32)
    (tmp_path / "scene.bin").write_bytes(positions.tobytes())
    document = {
        "scenes": [{"nodes": [0]}],
        "nodes": [{"mesh": 0}],
        "meshes": [{"primitives": [{"attributes": {"POSITION": 0}}]}],
        "accessors": [
            {"bufferView": 0, "componentType": 5126, "count": 2, "type": "VEC3"}
        ],
        "bufferViews": [{"buffer": 0, "byteLength": positions.nbytes}],
        "buffers": [{"byteLength": positions.nbytes, "uri": "scene.bin"}],
    }
    (tmp_path / "scene.gltf").write_text(json.dumps(document), encoding="utf-8")

    scene = meshguard.gltf.load(str(tmp_path / "scene.gltf"))
    assert isinstance(meshguard.validate(scene), meshguard.Valid)


def test_load_failures_yield_no_scene(tmp_path, write_gltf, caplog) -> None:
    document = build_gltf([{"POSITION": [0, 0, 0, 1, 1, 1]}])
    document["buffers"][0]["uri"] = "missing.bin"

    assert meshguard.gltf.load(str(tmp_path / "missing.gltf")) is None
    assert meshguard.gltf.load(write_gltf(document)) is None
    assert len([r for r in caplog.records if r.name == "meshguard.gltf"]) == 2


def embedded_buffer(buffer_bytes: bytes) -> typing.Dict:
    return {
        "byteLength": len(buffer_bytes),
        "uri": "data:application/octet-stream;base64,"
        + base64.b64encode(buffer_bytes).decode("ascii"),
    }


def sparse_document(values: typing.Sequence[float], index: int = 1) -> typing.Dict:
    positions = np.array([0, 0, 0, 1, 1, 1, 2, 2, 2], dtype=np.float32)
    sparse_indices = np.array([index], dtype=np.uint16)
    sparse_values = np.array(values, dtype=np.float32)
    # values start on a four byte boundary
    buffer_bytes = (
        positions.tobytes() + sparse_indices.tobytes() + b"\0\0" + sparse_values.tobytes()
    )
    return {
        "scenes": [{"nodes": [0]}],
        "nodes": [{"mesh": 0}],
        "meshes": [{"primitives": [{"attributes": {"POSITION": 0}}]}],
        "accessors": [
            {
                "bufferView": 0,
                "componentType": 5126,
                "count": 3,
                "type": "VEC3",
                "sparse": {
                    "count": 1,
                    "indices": {"bufferView": 1, "componentType": 5123},
                    "values": {"bufferView": 2},
                },
            }
        ],
        "bufferViews": [
            {"buffer": 0, "byteOffset": 0, "byteLength": 36},
            {"buffer": 0, "byteOffset": 36, "byteLength": 2},
            {"buffer": 0, "byteOffset": 40, "byteLength": 12},
        ],
        "buffers": [embedded_buffer(buffer_bytes)],
    }


def test_sparse_values_replace_dense_values() -> None:
    scene = from_document(sparse_document([5, 6, 7])).default_scene
    positions = scene.nodes[0].mesh.primitives[0].geometry.get(Attribute.POSITION)
    assert positions.tolist() == [[0, 0, 0], [5, 6, 7], [2, 2, 2]]
    assert isinstance(meshguard.validate(scene), meshguard.Valid)


def test_sparse_nan_is_invalid() -> None:
    scene = from_document(sparse_document([float("nan"), 0, 0])).default_scene
    result = meshguard.validate(scene)
    assert isinstance(result, meshguard.Invalid)
    assert "POSITION" in result.reason


def test_sparse_values_without_dense_data() -> None:
    document = sparse_document([float("inf"), 0, 0], index=2)
    del document["accessors"][0]["bufferView"]
    positions = from_document(document).meshes[0].primitives[0].geometry.get(
        Attribute.POSITION
    )
    assert positions[:2].tolist() == [[0, 0, 0], [0, 0, 0]]
    assert math.isinf(positions[2][0])


def test_sparse_index_past_the_end() -> None:
    with pytest.raises(meshguard.GltfError):
        from_document(sparse_document([1, 1, 1], index=3))


def test_signed_normalized_texcoords_are_clamped() -> None:
    positions = np.array([0, 0, 0, 1, 1, 1], dtype=np.float32)
    texcoords = np.array([-128, 127, 0, -127], dtype=np.int8)
    document = {
        "scenes": [{"nodes": [0]}],
        "nodes": [{"mesh": 0}],
        "meshes": [{"primitives": [{"attributes": {"POSITION": 0, "TEXCOORD_0": 1}}]}],
        "accessors": [
            {"bufferView": 0, "componentType": 5126, "count": 2, "type": "VEC3"},
            {
                "bufferView": 1,
                "componentType": 5120,
                "normalized": True,
                "count": 2,
                "type": "VEC2",
            },
        ],
        "bufferViews": [
            {"buffer": 0, "byteOffset": 0, "byteLength": 24},
            {"buffer": 0, "byteOffset": 24, "byteLength": 4},
        ],
        "buffers": [embedded_buffer(positions.tobytes() + texcoords.tobytes())],
    }

    geometry = from_document(document).meshes[0].primitives[0].geometry
    assert geometry.get(Attribute.TEXCOORD).tolist() == [[-1, 1], [0, -1]]


def test_oversized_zero_filled_accessor(write_gltf) -> None:
    document = build_gltf([{"POSITION": [0, 0, 0, 1, 1, 1]}])
    del document["accessors"][0]["bufferView"]
    document["accessors"][0]["count"] = 10**13

    with pytest.raises(meshguard.GltfError, match="zero filled"):
        from_document(document)
    assert meshguard.gltf.load(write_gltf(document)) is None


def test_deeply_nested_nodes() -> None:
    document = build_gltf([{"POSITION": [0, 0, 0, 1, 1, 1]}])
    depth = 5000
    document["nodes"] = [{"children": [_ + 1]} for _ in range(depth - 1)]
    document["nodes"].append({"mesh": 0})
    document["scenes"] = [{"nodes": [0]}]

    with pytest.raises(meshguard.GltfError):
        from_document(document)
