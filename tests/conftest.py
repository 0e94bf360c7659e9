import base64
import json
import typing
import numpy as np
import pytest


def build_gltf(
    meshes: typing.List[typing.Dict[str, typing.Sequence[float]]]
) -> typing.Dict:
    """Builds a glTF document with one node per mesh and one embedded buffer."""
    buffer_bytes = bytearray()
    buffer_views: typing.List[typing.Dict] = []
    accessors: typing.List[typing.Dict] = []
    meshes_json = []

    for mesh_attributes in meshes:
        attributes_json = {}
        for attribute_name, values in mesh_attributes.items():
            data = np.asarray(values, dtype=np.float32)
            component_count = 2 if attribute_name.startswith("TEXCOORD") else 3
            buffer_views.append(
                {"buffer": 0, "byteOffset": len(buffer_bytes), "byteLength": data.nbytes}
            )
            accessors.append(
                {
                    "bufferView": len(buffer_views) - 1,
                    "componentType": 5126,
                    "count": data.size // component_count,
                    "type": {2: "VEC2", 3: "VEC3"}[component_count],
                }
            )
            buffer_bytes.extend(data.tobytes())
            attributes_json[attribute_name] = len(accessors) - 1
        meshes_json.append({"primitives": [{"attributes": attributes_json}]})

    return {
        "asset": {"version": "2.0"},
        "scene": 0,
        "scenes": [{"name": "main", "nodes": list(range(len(meshes)))}],
        "nodes": [
            {"mesh": mesh_index, "name": f"mesh-{mesh_index}"}
            for mesh_index in range(len(meshes))
        ],
        "meshes": meshes_json,
        "accessors": accessors,
        "bufferViews": buffer_views,
        "buffers": [
            {
                "byteLength": len(buffer_bytes),
                "uri": "data:application/octet-stream;base64,"
                + base64.b64encode(bytes(buffer_bytes)).decode("ascii"),
            }
        ],
    }


@pytest.fixture(name="write_gltf")
def write_gltf_fixture(tmp_path):
    def write(document: typing.Dict, relative_path: str = "scene.gltf") -> str:
        path = tmp_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document), encoding="utf-8")
        return str(path)

    return write


@pytest.fixture(name="valid_gltf")
def valid_gltf_fixture():
    return build_gltf([{"POSITION": [0, 0, 0, 1, 1, 1]}])


@pytest.fixture(name="corrupt_gltf")
def corrupt_gltf_fixture():
    return build_gltf([{"POSITION": [0, 0, 0, float("nan"), 1, 1]}])
