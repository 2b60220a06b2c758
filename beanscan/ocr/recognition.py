"""
BeanScan Backend - Google Vision Recognition Client
=====================================================

What:  Sends the normalized image to Google Cloud Vision TEXT_DETECTION.
How:   Single HTTPS POST to images:annotate with an API key, via httpx.
       The response envelope is checked for transport and engine errors and
       otherwise returned untouched for reconstruction.
Who:   Called once per pipeline run.

Failure Modes:
    Non-2xx response          → RecognitionTransportError (raw body attached)
    Network failure           → RecognitionTransportError (status_code=None)
    2xx with embedded error   → RecognitionEngineError (error object attached)

This client never retries. Retry policy belongs to the caller (OcrService).
"""

import logging
import time
from typing import Any, Dict, Optional, Sequence

import httpx

from beanscan.exceptions import RecognitionEngineError, RecognitionTransportError

logger = logging.getLogger(__name__)

VISION_ENDPOINT = "https://vision.googleapis.com/v1/images:annotate"
TEXT_DETECTION = "TEXT_DETECTION"


def build_vision_payload(image_base64: str, language_hints: Sequence[str] = ()) -> Dict[str, Any]:
    """
    Build the images:annotate request body.

    imageContext is omitted entirely when there are no hints; an empty hint
    list changes how the engine picks its recognition model.
    """
    request: Dict[str, Any] = {
        "image": {"content": image_base64},
        "features": [{"type": TEXT_DETECTION}],
    }
    if language_hints:
        request["imageContext"] = {"languageHints": list(language_hints)}
    return {"requests": [request]}


def _response_details(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class VisionClient:
    """
    Thin async client for the Vision annotate endpoint.

    Args:
        api_key:     Engine credential, sent as the ``key`` query parameter
        endpoint:    images:annotate URL (overridable for tests and proxies)
        timeout:     Per-request timeout in seconds; None leaves it to the caller
        http_client: Shared AsyncClient (connection pool). When None, a client
                     is opened and closed around each call.
    """

    def __init__(
        self,
        api_key: str,
        endpoint: str = VISION_ENDPOINT,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self._http_client = http_client

    async def annotate(self, image_base64: str, language_hints: Sequence[str] = ()) -> Dict[str, Any]:
        """
        Run text detection and return the raw annotation envelope.

        Raises:
            RecognitionTransportError: non-2xx, unreadable body, or network failure
            RecognitionEngineError: 2xx body carrying responses[0].error
        """
        payload = build_vision_payload(image_base64, language_hints)
        start_time = time.perf_counter()

        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, payload)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, payload)
        except httpx.HTTPError as e:
            logger.warning("Vision request failed before a response: %s", str(e))
            raise RecognitionTransportError(
                status_code=None,
                details={"error": str(e), "error_type": type(e).__name__},
            ) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Vision response received: status=%d in %.0fms",
            response.status_code,
            duration_ms,
        )

        if not response.is_success:
            raise RecognitionTransportError(
                status_code=response.status_code,
                details=_response_details(response),
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RecognitionTransportError(
                status_code=response.status_code,
                details=response.text,
                message="Google Vision API returned an unreadable response.",
            ) from e

        responses = data.get("responses") if isinstance(data, dict) else None
        first = responses[0] if isinstance(responses, list) and responses else None
        if isinstance(first, dict) and first.get("error"):
            raise RecognitionEngineError(details=first["error"])

        return data

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> httpx.Response:
        options: Dict[str, Any] = {}
        if self.timeout is not None:
            options["timeout"] = self.timeout
        return await client.post(
            self.endpoint,
            params={"key": self.api_key},
            json=payload,
            **options,
        )
