"""
API tests for the OCR router, using FastAPI's TestClient.
The orchestrator on app.state is replaced with stub providers.
"""
import pytest
from fastapi.testclient import TestClient

from apps.api.main import app
from packages.parsers.errors import OcrError, OcrErrorKind
from packages.parsers.ocr.base import OcrProviderName
from packages.parsers.ocr.orchestrator import RecognitionOrchestrator
from tests.conftest import HEYTEA_LABEL, StubProvider, make_image

CLOUD = OcrProviderName.CLOUD
LOCAL = OcrProviderName.LOCAL


@pytest.fixture
def use_orchestrator():
    """Install an orchestrator on app state for the duration of a test"""
    def install(cloud=None, local=None) -> RecognitionOrchestrator:
        app.state.orchestrator = RecognitionOrchestrator(cloud=cloud, local=local)
        return app.state.orchestrator

    yield install
    app.state.orchestrator = None


@pytest.fixture
def client():
    # No context manager: the lifespan (real providers) is not started
    return TestClient(app)


def upload(client, data: bytes, content_type: str = "image/png"):
    return client.post("/api/recognize", files={"file": ("label.png", data, content_type)})


class TestRecognizeEndpoint:

    def test_success(self, client, use_orchestrator):
        use_orchestrator(cloud=StubProvider(CLOUD, text=HEYTEA_LABEL))

        response = upload(client, make_image().data)

        assert response.status_code == 200
        body = response.json()
        assert body["provider"] == "cloud"
        assert body["text"] == HEYTEA_LABEL
        assert body["parsed"]["brand"] == "喜茶"
        assert body["parsed"]["price"] == 28
        assert body["filled_fields"] == ["brand", "name", "sugar", "ice", "price"]
        assert body["missing_fields"] == []

    def test_partial_result_reports_missing_fields(self, client, use_orchestrator):
        use_orchestrator(
            cloud=StubProvider(CLOUD, error=OcrError(OcrErrorKind.NETWORK_ERROR, "down")),
            local=StubProvider(LOCAL, text="伯牙绝弦\n去冰"),
        )

        response = upload(client, make_image().data)

        assert response.status_code == 200
        body = response.json()
        assert body["provider"] == "local"
        assert body["filled_fields"] == ["name", "ice"]
        assert body["missing_fields"] == ["brand", "sugar", "price"]

    def test_both_providers_fail(self, client, use_orchestrator):
        use_orchestrator(
            cloud=StubProvider(CLOUD, error=OcrError(OcrErrorKind.NETWORK_ERROR, "down")),
            local=StubProvider(LOCAL, error=OcrError(OcrErrorKind.EMPTY_RESULT, "nothing")),
        )

        response = upload(client, make_image().data)

        assert response.status_code == 502
        body = response.json()
        assert "network_error" in body["cloud_error"]
        assert "empty_result" in body["local_error"]

    def test_unreadable_image(self, client, use_orchestrator):
        use_orchestrator(cloud=StubProvider(CLOUD, text="x"))

        response = upload(client, b"not an image", "image/jpeg")
        assert response.status_code == 422

    def test_unsupported_content_type(self, client, use_orchestrator):
        use_orchestrator(cloud=StubProvider(CLOUD, text="x"))

        response = upload(client, b"%PDF-1.4", "application/pdf")
        assert response.status_code == 415

    def test_not_initialized(self, client):
        app.state.orchestrator = None
        response = upload(client, make_image().data)
        assert response.status_code == 503


class TestOcrProxyEndpoint:

    def test_success(self, client, use_orchestrator):
        cloud = StubProvider(CLOUD, text="喜茶\n多肉葡萄")
        use_orchestrator(cloud=cloud)

        response = client.post("/api/ocr", json={"image": "/9j/AAAA"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "text": "喜茶\n多肉葡萄"}
        assert cloud.base64_calls == ["/9j/AAAA"]

    def test_missing_image(self, client, use_orchestrator):
        use_orchestrator(cloud=StubProvider(CLOUD, text="x"))

        response = client.post("/api/ocr", json={})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_cloud_not_configured(self, client, use_orchestrator):
        use_orchestrator(local=StubProvider(LOCAL, text="x"))

        response = client.post("/api/ocr", json={"image": "/9j/AAAA"})

        assert response.status_code == 500
        assert "BAIDU_API_KEY" in response.json()["message"]

    def test_provider_failure(self, client, use_orchestrator):
        use_orchestrator(cloud=StubProvider(CLOUD, error=OcrError(OcrErrorKind.PROVIDER_REJECTED, "quota")))

        response = client.post("/api/ocr", json={"image": "/9j/AAAA"})

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "quota" in response.json()["error"]


class TestSystemEndpoints:

    def test_health(self, client, use_orchestrator):
        use_orchestrator(local=StubProvider(LOCAL, text="x"))

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["services"] == {"cloud_ocr": "disabled", "local_ocr": "enabled"}

    def test_health_unavailable_before_startup(self, client):
        app.state.orchestrator = None
        assert client.get("/health").status_code == 503

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "teabook_ocr_attempts_total" in response.text
