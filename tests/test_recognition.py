"""
Vision Recognition Client Tests (httpx MockTransport)
=======================================================

What we test:
    ✅ Request body shape, with and without language hints
    ✅ API key sent as query parameter to the configured endpoint
    ✅ Non-2xx → RecognitionTransportError (retriable classification)
    ✅ Embedded engine error → RecognitionEngineError
    ✅ Network failure and unreadable body → RecognitionTransportError
    ❌ Real Vision calls
"""

import httpx
import pytest

from beanscan.exceptions import RecognitionEngineError, RecognitionTransportError
from beanscan.ocr.recognition import VISION_ENDPOINT, VisionClient, build_vision_payload
from vision_fixtures import RecordingVision, vision_response


class TestBuildVisionPayload:
    def test_without_hints_omits_image_context(self):
        payload = build_vision_payload("QUJD")
        assert payload == {
            "requests": [
                {"image": {"content": "QUJD"}, "features": [{"type": "TEXT_DETECTION"}]}
            ]
        }

    def test_with_hints(self):
        payload = build_vision_payload("QUJD", ["sk", "cs"])
        assert payload["requests"][0]["imageContext"] == {"languageHints": ["sk", "cs"]}


class TestVisionClient:
    @pytest.mark.asyncio
    async def test_posts_to_endpoint_with_key(self):
        handler = RecordingVision(vision_response(["Káva"]))
        client = VisionClient(api_key="secret", http_client=handler.client())

        data = await client.annotate("QUJD", ["sk"])

        request = handler.requests[0]
        assert request.method == "POST"
        assert str(request.url).startswith(VISION_ENDPOINT)
        assert request.url.params["key"] == "secret"
        assert handler.body()["requests"][0]["imageContext"] == {"languageHints": ["sk"]}
        assert data["responses"][0]["fullTextAnnotation"]["text"] == "Káva\n"

    @pytest.mark.asyncio
    async def test_custom_endpoint(self):
        handler = RecordingVision({"responses": [{}]})
        client = VisionClient(
            api_key="k",
            endpoint="http://vision.local/v1/images:annotate",
            http_client=handler.client(),
        )
        await client.annotate("QUJD")
        assert handler.requests[0].url.host == "vision.local"

    @pytest.mark.asyncio
    async def test_non_2xx_raises_transport_error_with_details(self):
        error_body = {"error": {"code": 403, "message": "API key not valid"}}
        handler = RecordingVision((403, error_body))
        client = VisionClient(api_key="bad", http_client=handler.client())

        with pytest.raises(RecognitionTransportError) as exc_info:
            await client.annotate("QUJD")

        assert exc_info.value.status_code == 403
        assert exc_info.value.details == error_body
        assert exc_info.value.is_retriable is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_throttling_and_server_errors_are_retriable(self, status):
        handler = RecordingVision((status, "upstream unavailable"))
        client = VisionClient(api_key="k", http_client=handler.client())

        with pytest.raises(RecognitionTransportError) as exc_info:
            await client.annotate("QUJD")

        assert exc_info.value.status_code == status
        assert exc_info.value.details == "upstream unavailable"
        assert exc_info.value.is_retriable is True

    @pytest.mark.asyncio
    async def test_embedded_error_raises_engine_error(self):
        engine_error = {"code": 3, "message": "Bad image data."}
        handler = RecordingVision({"responses": [{"error": engine_error}]})
        client = VisionClient(api_key="k", http_client=handler.client())

        with pytest.raises(RecognitionEngineError) as exc_info:
            await client.annotate("QUJD")

        assert exc_info.value.details == engine_error

    @pytest.mark.asyncio
    async def test_network_failure_raises_transport_error_without_status(self):
        handler = RecordingVision(httpx.ConnectError("connection refused"))
        client = VisionClient(api_key="k", http_client=handler.client())

        with pytest.raises(RecognitionTransportError) as exc_info:
            await client.annotate("QUJD")

        assert exc_info.value.status_code is None
        assert exc_info.value.details["error_type"] == "ConnectError"
        assert exc_info.value.is_retriable is True

    @pytest.mark.asyncio
    async def test_unreadable_success_body_raises_transport_error(self):
        handler = RecordingVision((200, "<html>proxy error</html>"))
        client = VisionClient(api_key="k", http_client=handler.client())

        with pytest.raises(RecognitionTransportError) as exc_info:
            await client.annotate("QUJD")

        assert exc_info.value.status_code == 200
        assert "unreadable" in exc_info.value.message
