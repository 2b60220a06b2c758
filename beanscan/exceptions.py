"""
BeanScan Backend - Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for every failure the OCR backend reports.
How:   Each exception carries a user-safe message and an optional context dict.
       Global handlers registered in main.py turn them into JSON error
       responses. The context is logged server-side only.
Who:   Raised by the OCR pipeline, services and middleware; caught by handlers.

Exception Hierarchy:
    BeanScanError (base)
    ├── ValidationError            → 400 Bad Request
    ├── PayloadTooLargeError       → 413 Payload Too Large
    ├── NoTextDetectedError        → 422 Unprocessable Entity
    ├── RateLimitExceededError     → 429 Too Many Requests
    ├── ImageDecodeError           → 502 Bad Gateway
    ├── RecognitionError           → 502 Bad Gateway
    │   ├── RecognitionTransportError
    │   └── RecognitionEngineError
    ├── CircuitBreakerOpenError    → 503 Service Unavailable
    └── ConfigurationError         → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class BeanScanError(Exception):
    """
    Base exception for all BeanScan application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Diagnostic info (logged, never returned for server-side failures)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(BeanScanError):
    """
    Raised when client input fails validation before the pipeline runs.

    When:    Missing or blank imageBase64, malformed language hints.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class PayloadTooLargeError(BeanScanError):
    """
    Raised when the encoded image exceeds the configured payload bound.

    Checked at the boundary, before any decoding work is done.
    HTTP:    413 Payload Too Large
    """

    def __init__(
        self,
        max_bytes: int,
        actual_bytes: int,
        context: Optional[Dict[str, Any]] = None,
    ):
        max_mb = max_bytes / (1024 * 1024)
        message = f"Image payload exceeds maximum of {max_mb:.0f}MB. Please send a smaller image."
        ctx = context or {}
        ctx.update({"max_bytes": max_bytes, "actual_bytes": actual_bytes})
        super().__init__(message=message, context=ctx)
        self.max_bytes = max_bytes
        self.actual_bytes = actual_bytes


class NoTextDetectedError(BeanScanError):
    """
    Raised by the HTTP layer when OCR succeeded but found no text.

    The pipeline itself returns an empty result for this case; only the
    route decides that an empty rawText is a user-facing failure.
    HTTP:    422 Unprocessable Entity
    """

    def __init__(
        self,
        message: str = "No text detected in the image.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ImageDecodeError(BeanScanError):
    """
    Raised when the image payload is not valid base64 or not a raster image.

    Fatal for the request. Retrying with identical bytes cannot succeed,
    so neither the pipeline nor the service retries it.
    HTTP:    502 Bad Gateway
    """

    def __init__(
        self,
        message: str = "The image could not be decoded.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RecognitionError(BeanScanError):
    """
    Base for failures reported by the text-recognition engine.

    Attributes:
        details: Raw diagnostic payload from the engine (logged, never echoed)
    """

    def __init__(
        self,
        message: str = "Text recognition failed.",
        details: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if details is not None:
            ctx["details"] = details
        super().__init__(message=message, context=ctx)
        self.details = details


class RecognitionTransportError(RecognitionError):
    """
    The engine answered with a non-2xx status, or could not be reached at all.

    Attributes:
        status_code: HTTP status from the engine; None for network failures
    """

    def __init__(
        self,
        status_code: Optional[int] = None,
        details: Any = None,
        message: str = "Google Vision API request failed.",
    ):
        super().__init__(
            message=message,
            details=details,
            context={"status_code": status_code},
        )
        self.status_code = status_code

    @property
    def is_retriable(self) -> bool:
        """Network failures, throttling and server-side errors may succeed later."""
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


class RecognitionEngineError(RecognitionError):
    """The engine answered 2xx but embedded a per-request error object."""

    def __init__(
        self,
        details: Any = None,
        message: str = "Google Vision API returned an error.",
    ):
        super().__init__(message=message, details=details)


class CircuitBreakerOpenError(BeanScanError):
    """
    Raised when the recognition engine's circuit breaker is OPEN.

    When:    After cb_failure_threshold consecutive engine failures.
    HTTP:    503 Service Unavailable, with Retry-After
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "Text recognition is temporarily unavailable due to repeated failures. "
            f"Please retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class ConfigurationError(BeanScanError):
    """
    Raised when a required credential is missing at request time.

    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "The service is not configured.",
        setting: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if setting:
            ctx["setting"] = setting
        super().__init__(message=message, context=ctx)


class RateLimitExceededError(BeanScanError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests, with Retry-After
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = "Too many requests. Please slow down."
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
