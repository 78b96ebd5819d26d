"""
Tests for the FastAPI application.
"""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.errors import ArtifactError, InferenceError
from app.main import build_service, create_app
from app.model import Model
from app.service import InferenceService
from tests.conftest import FakeEngine


@pytest.fixture
def service():
    return InferenceService(Model(FakeEngine(), ("cat", "dog", "bird")))


@pytest.fixture
def test_client(service):
    return TestClient(create_app(Settings(), service=service))


class TestHealthEndpoint:
    def test_health(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "OK"}


class TestPredictEndpoint:
    def test_success(self, test_client, rgb_png):
        response = test_client.post("/predict", files={"file": ("red.png", rgb_png, "image/png")})

        assert response.status_code == 200
        prediction = response.json()["prediction"]
        assert [p["class_label"] for p in prediction] == ["cat", "dog", "bird"]
        assert prediction[0]["probability"] == pytest.approx(70.0)

    def test_missing_file(self, test_client):
        response = test_client.post("/predict", data={"other": "value"})
        assert response.status_code == 400
        assert response.json() == {"error": "No file uploaded"}

    def test_empty_file(self, test_client):
        response = test_client.post("/predict", files={"file": ("empty.png", b"", "image/png")})
        assert response.status_code == 400
        assert response.json() == {"error": "No file uploaded"}

    def test_invalid_image(self, test_client):
        response = test_client.post("/predict", files={"file": ("bad.png", b"garbage", "image/png")})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid image")

    def test_inference_failure(self, rgb_png):
        service = Mock()
        service.predict.side_effect = InferenceError("Inference failed: shape mismatch")
        client = TestClient(create_app(Settings(), service=service))

        response = client.post("/predict", files={"file": ("red.png", rgb_png, "image/png")})

        assert response.status_code == 500
        assert response.json() == {"error": "Inference failed: shape mismatch"}

    def test_unexpected_error_is_structured_and_logged(self, rgb_png, caplog):
        service = Mock()
        service.predict.side_effect = RuntimeError("out of memory")
        client = TestClient(create_app(Settings(), service=service), raise_server_exceptions=False)

        with caplog.at_level("ERROR", logger="app.main"):
            response = client.post("/predict", files={"file": ("red.png", rgb_png, "image/png")})

        assert response.status_code == 500
        assert response.json() == {"error": "out of memory"}
        assert any(record.exc_info for record in caplog.records)

    def test_file_too_large(self, service):
        client = TestClient(create_app(Settings(body_limit_mb=1), service=service))
        payload = b"\x00" * (1024 * 1024 + 1)

        response = client.post("/predict", files={"file": ("big.png", payload, "image/png")})

        assert response.status_code == 413
        assert "limit" in response.json()["error"]

    def test_empty_prediction_list(self, rgb_png):
        service = InferenceService(Model(FakeEngine(scores=[0.0, 0.0]), ("a", "b")))
        client = TestClient(create_app(Settings(), service=service))

        response = client.post("/predict", files={"file": ("red.png", rgb_png, "image/png")})

        assert response.status_code == 200
        assert response.json() == {"prediction": []}


class TestStartup:
    def test_build_service_without_artifacts_fails(self, tmp_path):
        settings = Settings(
            model_path=str(tmp_path / "frozen_graph.pb"),
            class_list_path=str(tmp_path / "class_list.txt"),
        )
        with pytest.raises(ArtifactError):
            build_service(settings)

    def test_build_service_from_files(self, tmp_path, graph_bytes):
        (tmp_path / "frozen_graph.pb").write_bytes(graph_bytes)
        (tmp_path / "class_list.txt").write_text("r\ng\nb\n")
        settings = Settings(
            model_path=str(tmp_path / "frozen_graph.pb"),
            class_list_path=str(tmp_path / "class_list.txt"),
        )

        service = build_service(settings)

        assert service.model.labels == ("r", "g", "b")
        service.close()

    def test_startup_loads_model_and_shutdown_closes_it(self, monkeypatch):
        engine = FakeEngine()
        monkeypatch.setattr(
            "app.main.build_service",
            lambda settings: InferenceService(Model(engine, ("a",))),
        )
        app = create_app(Settings())

        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
            assert app.state.service is not None

        assert engine.closed
