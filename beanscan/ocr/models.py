"""
BeanScan Backend - OCR Result Models
======================================

What:  Immutable records produced by the OCR pipeline (lines, blocks, result).
How:   Frozen Pydantic models serialized with camelCase aliases, which is what
       the mobile client reads (rawText, cleanedText, detectedLanguage, ...).
Who:   Built by the reconstruction and assembly stages; returned by the OCR
       routes as the response body.
"""

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _FrozenModel(BaseModel):
    """Shared config: immutable, camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Line(_FrozenModel):
    """A single reconstructed row of recognized text."""

    text: str = Field(description="Trimmed line text in reading order")
    confidence: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Mean word confidence; null when the engine reported none",
    )


class Block(_FrozenModel):
    """A contiguous recognized region, composed of lines."""

    text: str = Field(description="Block lines joined by newline")
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    lines: Tuple[Line, ...] = Field(default=())


class OcrMetadata(_FrozenModel):
    detected_language: str = Field(description="Detected language code (sk, cs, en)")
    confidence: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Mean of all line confidences, ignoring absent values",
    )


class OcrResult(_FrozenModel):
    """
    Terminal output of the OCR pipeline.

    raw_text is the engine's own full-text rendering; cleaned_text is built
    from the reconstructed lines after artifact rejection and deduplication;
    normalized_text is cleaned_text with diacritics removed, for fuzzy
    matching downstream. An empty raw_text is a valid result: the caller
    decides whether "no text" is a user-facing failure.
    """

    raw_text: str
    cleaned_text: str
    cleaned_lines: Tuple[str, ...] = ()
    normalized_text: str
    blocks: Tuple[Block, ...] = ()
    lines: Tuple[Line, ...] = ()
    metadata: OcrMetadata


class CorrectionResult(_FrozenModel):
    """Output of the text-correction step."""

    corrected_text: str
    used_ai: bool = False
