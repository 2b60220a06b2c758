"""
BeanScan Backend - OpenAI Text Correction Service
===================================================

What:  Chat-completions call that fixes spelling, punctuation and formatting
       in OCR text while keeping its meaning.
How:   One POST to {endpoint}/chat/completions over httpx. Transient network
       failures are retried with tenacity; everything else passes the input
       through untouched.

Pass-through cases (used_ai=False, logged):
    - no API key configured
    - blank input
    - transport errors persisting after retries
    - non-2xx response
    - missing or empty message content
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from beanscan.config import Settings, settings
from beanscan.middleware.request_id import request_id_var
from beanscan.ocr.models import CorrectionResult
from beanscan.services.correction_base import TextCorrectionService

logger = logging.getLogger(__name__)

OPENAI_ENDPOINT = "https://api.openai.com/v1"

SYSTEM_PROMPT = "You are a helpful assistant that corrects OCR text while preserving meaning."
USER_PROMPT = (
    "Please correct spelling, punctuation, and formatting issues in this OCR text. "
    "Return only the corrected text:\n\n{text}"
)
TEMPERATURE = 0.2


def build_correction_payload(text: str, model: str) -> Dict[str, Any]:
    return {
        "model": model,
        "temperature": TEMPERATURE,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": USER_PROMPT.format(text=text)},
        ],
    }


def _message_content(data: Any) -> Optional[str]:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) else None


class OpenAICorrectionService(TextCorrectionService):
    """
    Args:
        api_key:            OpenAI key; empty disables correction
        model:              Chat model name
        endpoint:           API base URL (no trailing slash)
        timeout:            Request timeout in seconds
        retry_max_attempts: Attempts for transport failures
        http_client:        Optional client, injected by tests
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        endpoint: str = OPENAI_ENDPOINT,
        timeout: float = 30.0,
        retry_max_attempts: int = 3,
        retry_min_wait: float = 1.0,
        retry_max_wait: float = 8.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.retry_max_attempts = retry_max_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait
        self._http_client = http_client

    @classmethod
    def from_settings(cls, config: Settings) -> "OpenAICorrectionService":
        return cls(
            api_key=config.openai_api_key if config.openai_configured else "",
            model=config.openai_model,
            endpoint=config.openai_endpoint,
            timeout=config.openai_timeout,
            retry_max_attempts=config.retry_max_attempts,
            retry_min_wait=config.retry_min_wait,
            retry_max_wait=config.retry_max_wait,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def correct_text(self, text: str) -> CorrectionResult:
        rid = request_id_var.get("")
        passthrough = CorrectionResult(corrected_text=text, used_ai=False)

        if not self.is_configured:
            logger.info("[%s] OPENAI_API_KEY not set, skipping correction", rid)
            return passthrough
        if not text.strip():
            return passthrough

        logger.info("[%s] OpenAI correction started: %d chars", rid, len(text))
        start_time = time.perf_counter()
        try:
            response = await self._post_with_retry(build_correction_payload(text, self.model))
        except httpx.HTTPError as e:
            logger.warning(
                "[%s] OpenAI correction unreachable after %d attempts: %s",
                rid,
                self.retry_max_attempts,
                str(e),
            )
            return passthrough

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "[%s] OpenAI correction response: status=%d in %.0fms",
            rid,
            response.status_code,
            duration_ms,
        )

        if not response.is_success:
            logger.warning(
                "[%s] OpenAI correction failed with status %d: %s",
                rid,
                response.status_code,
                response.text[:500],
            )
            return passthrough

        try:
            data = response.json()
        except ValueError:
            logger.warning("[%s] OpenAI correction returned a non-JSON body", rid)
            return passthrough

        content = _message_content(data)
        corrected = content.strip() if content else ""
        if not corrected:
            logger.warning("[%s] OpenAI did not return corrected text", rid)
            return passthrough

        logger.info("[%s] OpenAI corrected text ready: %d chars", rid, len(corrected))
        return CorrectionResult(corrected_text=corrected, used_ai=True)

    async def _post_with_retry(self, payload: Dict[str, Any]) -> httpx.Response:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self.retry_max_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry_min_wait,
                max=self.retry_max_wait,
                jitter=min(1.0, self.retry_max_wait),
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                response = await self._request("POST", "/chat/completions", json=payload)
        return response

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.endpoint}{path}"
        if self._http_client is not None:
            return await self._http_client.request(
                method, url, headers=self._headers, timeout=self.timeout, **kwargs
            )
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, headers=self._headers, **kwargs)

    async def health_check(self) -> bool:
        """GET /models: verifies the key and connectivity without spending tokens."""
        if not self.is_configured:
            return False
        try:
            response = await self._request("GET", "/models")
        except httpx.HTTPError as e:
            logger.warning("OpenAI health check failed: %s", str(e))
            return False
        if not response.is_success:
            logger.warning("OpenAI health check returned status %d", response.status_code)
            return False
        return True


correction_service = OpenAICorrectionService.from_settings(settings)
