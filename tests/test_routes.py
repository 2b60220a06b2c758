"""
HTTP API Tests (httpx ASGITransport against the FastAPI app)
==============================================================

What we test:
    ✅ /api/ocr success body and request ID echo
    ✅ Status mapping: 400, 413, 422, 500, 502, 503
    ✅ Engine diagnostics never reach the client
    ✅ /api/ocr-correct with and without a working corrector
    ✅ /api/ocr/normalize-image
    ✅ /health
    ✅ Rate limit middleware: fixed window, 429 with Retry-After
"""

import base64
import io

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from PIL import Image

from beanscan.exceptions import RateLimitExceededError
from beanscan.main import app
from beanscan.middleware.rate_limit import RateLimitMiddleware
from beanscan.ocr.models import CorrectionResult
from beanscan.routes.ocr import get_correction_service, get_ocr_service
from beanscan.services.circuit_breaker import CircuitBreaker
from beanscan.services.correction_base import TextCorrectionService
from vision_fixtures import RecordingVision, vision_response


class StubCorrector(TextCorrectionService):
    async def correct_text(self, text: str) -> CorrectionResult:
        return CorrectionResult(corrected_text=f"{text} (corrected)", used_ai=True)

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def use_vision(make_ocr_service):
    """Route the app's OcrService to a RecordingVision; returns the service."""

    def install(handler, **overrides):
        service = make_ocr_service(handler, **overrides)
        app.dependency_overrides[get_ocr_service] = lambda: service
        return service

    return install


class TestOcrEndpoint:
    @pytest.mark.asyncio
    async def test_success(self, test_client, use_vision, png_base64):
        use_vision(RecordingVision(vision_response(["Etiópia Guji", "||||||", "Natural"])))

        response = await test_client.post(
            "/api/ocr",
            json={"imageBase64": f"data:image/jpeg;base64,{png_base64}", "languageHints": ["sk"]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["rawText"] == "Etiópia Guji\n||||||\nNatural"
        assert body["cleanedLines"] == ["Etiópia Guji", "Natural"]
        assert body["cleanedText"] == "Etiópia Guji\nNatural"
        assert body["normalizedText"] == "Etiopia Guji\nNatural"
        assert body["metadata"]["detectedLanguage"] in {"sk", "cs", "en"}
        assert body["metadata"]["confidence"] == pytest.approx(0.95)
        assert [line["text"] for line in body["lines"]] == ["Etiópia Guji", "||||||", "Natural"]
        assert len(body["blocks"]) == 1
        assert response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, test_client, use_vision, png_base64):
        use_vision(RecordingVision(vision_response(["Káva"])))

        response = await test_client.post(
            "/api/ocr",
            json={"imageBase64": png_base64},
            headers={"X-Request-ID": "label-42"},
        )

        assert response.headers["X-Request-ID"] == "label-42"

    @pytest.mark.asyncio
    async def test_missing_image_is_400(self, test_client, use_vision):
        handler = RecordingVision(vision_response(["Káva"]))
        use_vision(handler)

        response = await test_client.post(
            "/api/ocr", json={"languageHints": ["sk"]}, headers={"X-Request-ID": "abc123"}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["details"]["field"] == "imageBase64"
        assert body["request_id"] == "abc123"
        assert handler.calls == 0

    @pytest.mark.asyncio
    async def test_wrong_type_is_400(self, test_client, use_vision):
        use_vision(RecordingVision(vision_response(["Káva"])))

        response = await test_client.post("/api/ocr", json={"imageBase64": 12345})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_invalid_hints_are_400(self, test_client, use_vision, png_base64):
        use_vision(RecordingVision(vision_response(["Káva"])))

        response = await test_client.post(
            "/api/ocr", json={"imageBase64": png_base64, "languageHints": ["not a code"]}
        )

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "languageHints"

    @pytest.mark.asyncio
    async def test_oversized_payload_is_413(self, test_client, use_vision):
        handler = RecordingVision(vision_response(["Káva"]))
        use_vision(handler, max_payload_bytes=1024)

        response = await test_client.post("/api/ocr", json={"imageBase64": "A" * 2048})

        assert response.status_code == 413
        assert response.json()["error"] == "payload_too_large"
        assert handler.calls == 0

    @pytest.mark.asyncio
    async def test_no_text_is_422(self, test_client, use_vision, png_base64):
        use_vision(RecordingVision({"responses": [{}]}))

        response = await test_client.post("/api/ocr", json={"imageBase64": png_base64})

        assert response.status_code == 422
        assert response.json()["error"] == "no_text_detected"

    @pytest.mark.asyncio
    async def test_engine_error_is_502_without_diagnostics(self, test_client, use_vision, png_base64):
        use_vision(
            RecordingVision({"responses": [{"error": {"code": 3, "message": "secret engine detail"}}]})
        )

        response = await test_client.post("/api/ocr", json={"imageBase64": png_base64})

        assert response.status_code == 502
        assert response.json()["error"] == "recognition_error"
        assert "secret engine detail" not in response.text

    @pytest.mark.asyncio
    async def test_transport_error_is_502(self, test_client, use_vision, png_base64):
        use_vision(RecordingVision((403, {"error": {"message": "API key not valid"}})))

        response = await test_client.post("/api/ocr", json={"imageBase64": png_base64})

        assert response.status_code == 502
        assert "API key not valid" not in response.text

    @pytest.mark.asyncio
    async def test_undecodable_image_is_502(self, test_client, use_vision):
        use_vision(RecordingVision(vision_response(["Káva"])))

        response = await test_client.post(
            "/api/ocr", json={"imageBase64": base64.b64encode(b"definitely not a photo").decode()}
        )

        assert response.status_code == 502
        assert response.json()["error"] == "image_decode_error"

    @pytest.mark.asyncio
    async def test_open_circuit_is_503(self, test_client, use_vision, png_base64):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        breaker.record_failure()
        use_vision(RecordingVision(vision_response(["Káva"])), circuit_breaker=breaker)

        response = await test_client.post("/api/ocr", json={"imageBase64": png_base64})

        assert response.status_code == 503
        assert response.json()["error"] == "service_unavailable"
        assert int(response.headers["Retry-After"]) > 0

    @pytest.mark.asyncio
    async def test_missing_vision_key_is_500(self, test_client, use_vision, png_base64):
        use_vision(RecordingVision(vision_response(["Káva"])), api_key="")

        response = await test_client.post("/api/ocr", json={"imageBase64": png_base64})

        assert response.status_code == 500
        assert response.json()["error"] == "configuration_error"


class TestOcrCorrectEndpoint:
    @pytest.mark.asyncio
    async def test_with_corrector(self, test_client, use_vision, png_base64):
        use_vision(RecordingVision(vision_response(["Kava z Etiopie"])))
        app.dependency_overrides[get_correction_service] = StubCorrector

        response = await test_client.post("/api/ocr-correct", json={"imageBase64": png_base64})

        assert response.status_code == 200
        body = response.json()
        assert body["rawText"] == "Kava z Etiopie"
        assert body["cleanedText"] == "Kava z Etiopie"
        assert body["correctedText"] == "Kava z Etiopie (corrected)"
        assert body["usedAi"] is True
        assert set(body["metadata"]) == {"detectedLanguage", "confidence"}

    @pytest.mark.asyncio
    async def test_unconfigured_corrector_passes_text_through(self, test_client, use_vision, png_base64):
        use_vision(RecordingVision(vision_response(["Kava z Etiopie"])))

        response = await test_client.post("/api/ocr-correct", json={"imageBase64": png_base64})

        assert response.status_code == 200
        body = response.json()
        assert body["correctedText"] == body["rawText"]
        assert body["usedAi"] is False

    @pytest.mark.asyncio
    async def test_no_text_is_422(self, test_client, use_vision, png_base64):
        use_vision(RecordingVision({"responses": [{}]}))
        app.dependency_overrides[get_correction_service] = StubCorrector

        response = await test_client.post("/api/ocr-correct", json={"imageBase64": png_base64})

        assert response.status_code == 422


class TestNormalizeImageEndpoint:
    @pytest.mark.asyncio
    async def test_returns_grayscale_png(self, test_client, png_base64):
        response = await test_client.post(
            "/api/ocr/normalize-image", json={"imageBase64": f"data:image/png;base64,{png_base64}"}
        )

        assert response.status_code == 200
        image = Image.open(io.BytesIO(base64.b64decode(response.json()["imageBase64"])))
        assert image.format == "PNG"
        assert image.mode == "L"

    @pytest.mark.asyncio
    async def test_missing_image_is_400(self, test_client):
        response = await test_client.post("/api/ocr/normalize-image", json={})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_bad_image_is_502(self, test_client):
        response = await test_client.post("/api/ocr/normalize-image", json={"imageBase64": "aGVsbG8="})
        assert response.status_code == 502


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"status", "version", "vision", "correction", "uptimeSeconds"}
        assert body["vision"] == "configured"
        assert body["correction"] == "disabled"
        assert body["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_degraded_when_circuit_open(self, test_client, use_vision):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        breaker.record_failure()
        use_vision(RecordingVision({"responses": [{}]}), circuit_breaker=breaker)
        app.dependency_overrides[get_correction_service] = StubCorrector

        body = (await test_client.get("/health")).json()

        assert body["status"] == "degraded"
        assert body["vision"] == "circuit_open"
        assert body["correction"] == "available"


class TestRateLimit:
    def _app(self, max_requests):
        limited = FastAPI()
        limited.add_middleware(RateLimitMiddleware, max_requests=max_requests, window_seconds=60)

        @limited.get("/ping")
        async def ping():
            return {"ok": True}

        @limited.get("/health")
        async def health():
            return {"ok": True}

        return limited

    @pytest.mark.asyncio
    async def test_rejects_after_limit_with_retry_after(self):
        transport = ASGITransport(app=self._app(max_requests=2))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            assert (await client.get("/ping")).status_code == 200
            assert (await client.get("/ping")).status_code == 200
            rejected = await client.get("/ping")

        assert rejected.status_code == 429
        assert rejected.json()["error"] == "rate_limit_exceeded"
        assert 1 <= int(rejected.headers["Retry-After"]) <= 60

    @pytest.mark.asyncio
    async def test_health_is_never_limited(self):
        transport = ASGITransport(app=self._app(max_requests=1))
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            statuses = [(await client.get("/health")).status_code for _ in range(5)]
        assert statuses == [200] * 5

    def test_window_resets(self):
        clock = {"now": 0.0}
        limiter = RateLimitMiddleware(FastAPI(), max_requests=1, window_seconds=10, clock=lambda: clock["now"])

        limiter.check("1.2.3.4")
        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.check("1.2.3.4")
        assert exc_info.value.retry_after == 10

        clock["now"] = 10.0
        limiter.check("1.2.3.4")
        limiter.check("5.6.7.8")
