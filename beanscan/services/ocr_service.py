"""
BeanScan Backend - OCR Service
================================

What:  The caller of the OCR pipeline. Owns everything the pipeline refuses
       to know about: request validation, credentials, retries, the circuit
       breaker and the shared HTTP connection pool.
Who:   Singleton `ocr_service`, used by the /api/ocr routes.

Request Flow (recognize):
    1. Vision key configured?            no  → ConfigurationError
    2. circuit_breaker.can_execute()     open → CircuitBreakerOpenError
    3. run_ocr_pipeline() under tenacity AsyncRetrying
         retried: RecognitionTransportError with status None, 429 or 5xx
         not retried: engine errors, other 4xx, decode errors
    4. success → record_success(); final recognition failure → record_failure()

Decode errors never move the breaker.
"""

import logging
import re
import time
from typing import Optional, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from beanscan.config import Settings, settings
from beanscan.exceptions import (
    ConfigurationError,
    PayloadTooLargeError,
    RecognitionError,
    RecognitionTransportError,
    ValidationError,
)
from beanscan.middleware.request_id import request_id_var
from beanscan.ocr.image import normalize_image, strip_data_url_prefix
from beanscan.ocr.models import OcrResult
from beanscan.ocr.pipeline import run_ocr_pipeline
from beanscan.ocr.recognition import VISION_ENDPOINT
from beanscan.services.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

LANGUAGE_HINT_PATTERN = re.compile(r"^[A-Za-z]{2,3}(-[A-Za-z0-9]{2,8})*$")
MAX_LANGUAGE_HINTS = 10


def _is_retriable(exc: BaseException) -> bool:
    return isinstance(exc, RecognitionTransportError) and exc.is_retriable


class OcrService:
    """
    Resilient wrapper around run_ocr_pipeline().

    Args:
        api_key:            Google Vision API key (empty means unconfigured)
        endpoint:           images:annotate URL
        timeout:            Vision request timeout in seconds
        max_payload_bytes:  Upper bound on the encoded image length
        retry_max_attempts: Total attempts including the first
        retry_min_wait:     Initial backoff in seconds
        retry_max_wait:     Backoff ceiling in seconds
        circuit_breaker:    Shared breaker; a fresh one is created when omitted
        http_client:        Pre-built connection pool; otherwise opened by startup()
    """

    def __init__(
        self,
        api_key: str,
        endpoint: str = VISION_ENDPOINT,
        timeout: Optional[float] = None,
        max_payload_bytes: int = 20 * 1024 * 1024,
        retry_max_attempts: int = 3,
        retry_min_wait: float = 1.0,
        retry_max_wait: float = 8.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_payload_bytes = max_payload_bytes
        self.retry_max_attempts = retry_max_attempts
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self._http_client = http_client

    @classmethod
    def from_settings(cls, config: Settings) -> "OcrService":
        return cls(
            api_key=config.google_vision_api_key if config.vision_configured else "",
            endpoint=config.vision_endpoint,
            timeout=config.vision_timeout,
            max_payload_bytes=config.max_image_payload_bytes,
            retry_max_attempts=config.retry_max_attempts,
            retry_min_wait=config.retry_min_wait,
            retry_max_wait=config.retry_max_wait,
            circuit_breaker=CircuitBreaker(
                failure_threshold=config.cb_failure_threshold,
                recovery_timeout=config.cb_recovery_timeout,
            ),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def startup(self) -> None:
        """Open the shared connection pool. Called from the app lifespan."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
            logger.info("OcrService connection pool opened")

    async def shutdown(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
            logger.info("OcrService connection pool closed")

    # ── Validation ────────────────────────────────────────────────────────

    def validate_request(
        self,
        image_base64: Optional[str],
        language_hints: Optional[Sequence[str]] = None,
    ) -> None:
        """
        Reject bad input before any decoding or network work.

        Raises:
            ValidationError:      blank image or malformed language hints
            PayloadTooLargeError: encoded image longer than max_payload_bytes
        """
        if image_base64 is None or not image_base64.strip():
            raise ValidationError(
                message="Missing imageBase64.",
                field="imageBase64",
            )

        actual = len(image_base64)
        if actual > self.max_payload_bytes:
            raise PayloadTooLargeError(max_bytes=self.max_payload_bytes, actual_bytes=actual)

        hints = list(language_hints or [])
        if len(hints) > MAX_LANGUAGE_HINTS:
            raise ValidationError(
                message=f"At most {MAX_LANGUAGE_HINTS} language hints are allowed.",
                field="languageHints",
                context={"count": len(hints)},
            )
        invalid = [hint for hint in hints if not LANGUAGE_HINT_PATTERN.match(hint)]
        if invalid:
            raise ValidationError(
                message="languageHints must be BCP-47 style codes such as 'sk' or 'en-US'.",
                field="languageHints",
                context={"invalid": invalid},
            )

    # ── Operations ────────────────────────────────────────────────────────

    async def recognize(self, image_base64: str, language_hints: Sequence[str] = ()) -> OcrResult:
        """
        Run the OCR pipeline with retries behind the circuit breaker.

        Raises:
            ConfigurationError, CircuitBreakerOpenError, ImageDecodeError,
            RecognitionTransportError, RecognitionEngineError
        """
        rid = request_id_var.get("")
        if not self.is_configured:
            raise ConfigurationError(
                message="Text recognition is not configured on the server.",
                setting="GOOGLE_VISION_API_KEY",
            )

        self.circuit_breaker.can_execute()

        hints = list(language_hints)
        start_time = time.perf_counter()
        try:
            result = await self._run_with_retry(image_base64, hints)
        except RecognitionError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Recognition failed: %s | %s",
                rid,
                e.message,
                e.context,
            )
            raise

        self.circuit_breaker.record_success()
        logger.info(
            "[%s] OCR completed in %.0fms: %d chars, language=%s, confidence=%s",
            rid,
            (time.perf_counter() - start_time) * 1000,
            len(result.raw_text),
            result.metadata.detected_language,
            result.metadata.confidence,
        )
        return result

    async def _run_with_retry(self, image_base64: str, hints: Sequence[str]) -> OcrResult:
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_retriable),
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
                result = await run_ocr_pipeline(
                    image_base64,
                    hints,
                    self.api_key,
                    endpoint=self.endpoint,
                    timeout=self.timeout,
                    http_client=self._http_client,
                )
        return result

    def normalize(self, image_base64: str) -> str:
        """Return the normalized PNG (base64) the engine would receive."""
        return normalize_image(strip_data_url_prefix(image_base64))


ocr_service = OcrService.from_settings(settings)
