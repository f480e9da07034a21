import importlib
import json
import sys

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient


def _reload_main():
    module_name = "module_2_blur_decision.app.main"
    if module_name in sys.modules:
        return importlib.reload(sys.modules[module_name])
    return importlib.import_module(module_name)


def _png(value: int = 128, size: int = 160) -> bytes:
    ok, buffer = cv2.imencode(".png", np.full((size, size, 3), value, dtype=np.uint8))
    assert ok
    return buffer.tobytes()


@pytest.fixture()
def client(monkeypatch, tmp_path):
    monkeypatch.setenv("GUARD_ENABLE_BACKGROUND_TICKER", "0")
    monkeypatch.setenv("GUARD_HISTORY_PATH", str(tmp_path / "history.json"))
    monkeypatch.setenv("GUARD_STATE_SNAPSHOT_PATH", str(tmp_path / "state.json"))
    monkeypatch.setenv("GUARD_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("GUARD_PREVIEW_DIR", str(tmp_path / "previews"))
    monkeypatch.setenv("GUARD_MODEL_PATH", str(tmp_path / "absent.onnx"))

    main = _reload_main()
    with TestClient(main.app) as test_client:
        yield test_client


def test_analyze_frame_endpoint(client, tmp_path) -> None:
    assert client.get("/health").json() == {"status": "ok"}

    response = client.post("/frames/analyze", files={"file": ("frame.png", _png(), "image/png")})
    assert response.status_code == 200
    payload = response.json()
    assert payload["decision"]["action"] == "NO_ACTION"
    assert payload["record"]["frame_id"] == 1
    assert payload["warning"]["state"] == "idle"
    assert payload["session_started"] is False

    history = client.get("/history").json()
    assert len(history) == 1
    assert history[0]["action"] == "NO_ACTION"

    metrics = client.get("/metrics").json()
    assert metrics["frames_processed"] == 1
    assert metrics["performance"]["sample_count"] == 1

    persisted = json.loads((tmp_path / "history.json").read_text())
    assert persisted[0]["frame_id"] == 1


def test_undecodable_upload_is_rejected(client) -> None:
    response = client.post("/frames/analyze", files={"file": ("frame.png", b"not an image", "image/png")})

    assert response.status_code == 422


def test_warning_endpoints(client) -> None:
    status = client.get("/warning/status").json()
    assert status["state"] == "idle"
    assert status["dismissible"] is False

    response = client.post("/warning/continue")
    assert response.status_code == 409

    closed = client.post("/warning/close").json()
    assert closed["state"] == "closed"


def test_tier_and_reset_endpoints(client) -> None:
    response = client.post("/tier", json={"tier": "fast"})
    assert response.status_code == 200
    assert response.json() == {"tier": "FAST", "changed": True}
    assert client.post("/tier", json={"tier": "FAST"}).json()["changed"] is False
    assert client.post("/tier", json={"tier": "warp"}).status_code == 422

    client.post("/frames/analyze", files={"file": ("frame.png", _png(), "image/png")})
    assert client.post("/reset").status_code == 204
    assert client.get("/history").json() == []
    assert client.get("/metrics").json()["frames_processed"] == 0
