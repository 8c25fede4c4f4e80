import pytest
import trimesh
from starlette.testclient import TestClient

from vrmreduce import load
from vrmreduce.errors import InvariantViolation
from vrmreduce.preview import PreviewServer, geom


def test_primitive_to_trimesh(grid_doc):
    mesh = geom.primitive_to_trimesh(grid_doc, 0, 0)
    assert isinstance(mesh, trimesh.Trimesh)
    assert len(mesh.vertices) == 64
    assert len(mesh.faces) == 98


def test_primitive_out_of_range(grid_doc):
    with pytest.raises(InvariantViolation):
        geom.primitive_to_trimesh(grid_doc, 0, 3)


def test_mesh_to_glb(avatar_doc):
    data = geom.mesh_to_glb(avatar_doc, 0)
    assert data[:4] == b"glTF"
    # Standalone mesh GLBs go through the same codec.
    assert load(data).count_total_tris() == 50


@pytest.fixture
def server(avatar_doc):
    return PreviewServer(avatar_doc)


@pytest.fixture
def client(server):
    return TestClient(server.app)


def test_model(client, avatar_doc):
    response = client.get("/model.vrm")
    assert response.status_code == 200
    assert response.headers["content-type"] == "model/gltf-binary"
    assert load(response.content).gltf.to_json() == avatar_doc.gltf.to_json()


def test_stats(client):
    stats = client.get("/stats").json()
    assert stats["tris"] == 50
    assert stats["nodes"] == 7
    assert stats["images"] == 3
    assert "lastReport" not in stats


def test_images(client):
    manifest = client.get("/images").json()
    assert [item["name"] for item in manifest] == ["albedo", "thumbnail", "unused"]
    assert all(item["dataUrl"].startswith("data:image/png;base64,") for item in manifest)

    response = client.get("/image/1")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")
    assert client.get("/image/9").status_code == 404


def test_mesh(client):
    response = client.get("/mesh/0.glb")
    assert response.status_code == 200
    assert response.content[:4] == b"glTF"
    assert client.get("/mesh/4.glb").status_code == 404


def test_reduce(client, server, avatar_doc):
    response = client.post("/reduce", json={"meshTargetRatio": 0.5, "textureMaxSide": 16})
    assert response.status_code == 200
    report = response.json()
    assert report["trisAfter"] < report["trisBefore"] == 50
    assert report["steps"][0]["name"] == "delete_non_essential_bones"

    stats = client.get("/stats").json()
    assert stats["tris"] == report["trisAfter"]
    assert stats["lastReport"] == report
    assert stats["version"] == server.doc.version > avatar_doc.version
    assert server.doc is not avatar_doc


@pytest.mark.parametrize("body", [{"meshTargetRatio": 2}, {"textureMaxSide": "big"}, [1]])
def test_reduce_rejects_bad_options(client, body):
    response = client.post("/reduce", json=body)
    assert response.status_code == 400
    assert "error" in response.json()


def test_failed_reduce_keeps_previous_document(avatar_doc):
    def broken_resizer(data: bytes, max_side: int) -> bytes:
        raise InvariantViolation("resize service failed")

    server = PreviewServer(avatar_doc, resizer=broken_resizer)
    client = TestClient(server.app)
    before = client.get("/stats").json()
    model_before = client.get("/model.vrm").content

    response = client.post("/reduce", json={})
    assert response.status_code == 500
    assert response.json() == {"error": "resize service failed"}

    assert server.doc is avatar_doc
    assert client.get("/stats").json() == before
    assert before["nodes"] == 7
    assert client.get("/model.vrm").content == model_before
