"""
BeanScan Backend - Request/Response Schemas
=============================================

What:  Pydantic models for the HTTP contract with the mobile client.
How:   Request and response bodies use camelCase on the wire
       (imageBase64, languageHints, usedAi). The OCR result body itself is
       the pipeline's OcrResult model, returned as-is.

Input validation is split in two. Pydantic enforces types here (a
non-string imageBase64 → 400 via RequestValidationError). Presence,
payload size and hint syntax are checked by OcrService.validate_request so
the error messages match the rest of the API.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from beanscan.ocr.models import OcrMetadata


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class OcrRequest(_CamelModel):
    """Body of POST /api/ocr and POST /api/ocr-correct."""

    image_base64: Optional[str] = Field(
        default=None,
        description="Base64 image, optionally with a data:image/...;base64, prefix",
    )
    language_hints: List[str] = Field(
        default_factory=list,
        description="Optional language codes, e.g. ['sk', 'cs']",
    )


class NormalizeImageRequest(_CamelModel):
    """Body of POST /api/ocr/normalize-image."""

    image_base64: Optional[str] = Field(default=None)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class OcrCorrectResponse(_CamelModel):
    """
    OCR followed by language-model correction.

    used_ai is False when correction was skipped or failed; corrected_text
    then equals raw_text.
    """

    raw_text: str
    cleaned_text: str
    corrected_text: str
    used_ai: bool
    metadata: OcrMetadata


class NormalizeImageResponse(_CamelModel):
    image_base64: str = Field(description="Normalized grayscale PNG, base64 without prefix")


class ErrorResponse(BaseModel):
    """
    Error body shared by every endpoint.

    Example:
        {
            "error": "payload_too_large",
            "message": "Image payload exceeds maximum of 20MB. Please send a smaller image.",
            "details": {"max_bytes": 20971520, "actual_bytes": 24117248},
            "request_id": "a1b2c3d4"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(_CamelModel):
    status: str = Field(description="healthy or degraded")
    version: str
    vision: str = Field(description="configured, not_configured or circuit_open")
    correction: str = Field(description="available, unavailable or disabled")
    uptime_seconds: float
