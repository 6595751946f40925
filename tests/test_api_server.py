"""
HTTP surface tests (FastAPI TestClient over a pipeline with the fake encoder).
"""
import os
import sys
import time

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from api_server import create_app


@pytest.fixture
def pipeline(make_pipeline):
    return make_pipeline()


@pytest.fixture
def client(pipeline):
    return TestClient(create_app(pipeline=pipeline))


def _poll(client, job_id, timeout=60):
    deadline = time.time() + timeout
    while time.time() < deadline:
        data = client.get(f"/api/videos/status/{job_id}").json()["data"]
        if data["state"] in ("completed", "failed"):
            return data
        time.sleep(0.05)
    raise AssertionError(f"job {job_id} did not finish")


SCRIPT = {"scenes": [{"text": "Hola mundo"}, {"text": "Segunda escena", "imagePrompt": "city at night"}]}


class TestService:

    def test_root(self, client):
        body = client.get("/").json()
        assert body["status"] == "OK"
        assert body["endpoints"]["videos"] == "/api/videos"

    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["status"] == "healthy"
        assert body["runner"] == "inprocess"

    def test_unknown_route(self, client):
        assert client.get("/api/nothing-here").status_code == 404


class TestVideos:

    def test_generate_poll_and_download(self, client):
        resp = client.post("/api/videos/generate", json={"script": SCRIPT, "settings": {"voice": "es-ES"}})
        assert resp.status_code == 202
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "pending"

        status = _poll(client, body["data"]["jobId"])
        assert status["state"] == "completed"
        assert status["progress"] == 100
        assert status["degraded_scenes"] == []

        video = client.get(status["output_location"])
        assert video.status_code == 200
        assert video.content

        listed = client.get("/api/videos").json()["data"]
        assert [v["id"] for v in listed] == [status["id"]]

    def test_failed_job_reports_error(self, client):
        resp = client.post("/api/videos/generate", json={"script": {"scenes": [{"text": "ok"}, {"text": ""}]}})
        status = _poll(client, resp.json()["data"]["jobId"])
        assert status["state"] == "failed"
        assert status["error"] == "Scene 2 has empty narration"
        assert client.get("/api/videos").json()["data"] == []

    @pytest.mark.parametrize("payload", [
        {},
        {"script": {}},
        {"script": {"scenes": []}},
        {"script": {"scenes": "nope"}},
        {"script": {"scenes": [{"imagePrompt": "no text"}]}},
    ])
    def test_invalid_input_is_400(self, client, payload):
        resp = client.post("/api/videos/generate", json=payload)
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    @pytest.mark.parametrize("settings", [
        {"backgroundMusic": "/etc/passwd"},
        {"backgroundMusic": "../../secrets.mp3"},
        {"videoWidth": 1081},
    ])
    def test_rejected_settings_are_400(self, client, settings):
        resp = client.post("/api/videos/generate", json={"script": SCRIPT, "settings": settings})
        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert client.get("/api/videos").json()["data"] == []

    def test_unknown_job_is_404(self, client):
        resp = client.get("/api/videos/status/does-not-exist")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Job not found: does-not-exist"}

    def test_unhandled_error_is_500(self, pipeline):
        def explode(job_id):
            raise RuntimeError("store offline")

        pipeline.get_status = explode
        client = TestClient(create_app(pipeline=pipeline), raise_server_exceptions=False)
        resp = client.get("/api/videos/status/any")
        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "store offline"}


class TestScripts:

    def test_crud(self, client):
        created = client.post("/api/scripts", json={"title": "Demo", **SCRIPT})
        assert created.status_code == 201
        script = created.json()["data"]
        assert script["scenes"][1]["visual_prompt"] == "city at night"

        assert client.get(f"/api/scripts/{script['id']}").json()["data"]["title"] == "Demo"
        assert [s["id"] for s in client.get("/api/scripts").json()["data"]] == [script["id"]]

        updated = client.put(f"/api/scripts/{script['id']}", json={"title": "Renamed"}).json()["data"]
        assert updated["title"] == "Renamed"
        assert len(updated["scenes"]) == 2

        assert client.delete(f"/api/scripts/{script['id']}").json()["success"] is True
        assert client.get(f"/api/scripts/{script['id']}").status_code == 404

    def test_create_requires_title_and_scenes(self, client):
        assert client.post("/api/scripts", json={"scenes": SCRIPT["scenes"]}).status_code == 400
        assert client.post("/api/scripts", json={"title": "No scenes"}).status_code == 400

    def test_generate_from_stored_script(self, client):
        script = client.post(
            "/api/scripts",
            json={"title": "Stored", **SCRIPT, "settings": {"videoWidth": 90, "videoHeight": 160}},
        ).json()["data"]

        resp = client.post(f"/api/scripts/{script['id']}/generate")
        assert resp.status_code == 202
        status = _poll(client, resp.json()["data"]["jobId"])
        assert status["state"] == "completed"

    def test_generate_unknown_script(self, client):
        assert client.post("/api/scripts/missing/generate").status_code == 404
