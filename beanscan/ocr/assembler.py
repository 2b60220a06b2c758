"""Packages pipeline stage outputs into the immutable OcrResult."""

from typing import Sequence

from beanscan.ocr.cleaning import clean_text
from beanscan.ocr.language import detect_language
from beanscan.ocr.models import Block, Line, OcrMetadata, OcrResult
from beanscan.ocr.reconstruction import average


def build_ocr_result(
    raw_text: str,
    blocks: Sequence[Block],
    lines: Sequence[Line],
    language_hints: Sequence[str] = (),
) -> OcrResult:
    cleaned = clean_text(line.text for line in lines)

    return OcrResult(
        raw_text=raw_text,
        cleaned_text=cleaned.text,
        cleaned_lines=tuple(cleaned.lines),
        normalized_text=cleaned.normalized_text,
        blocks=tuple(blocks),
        lines=tuple(lines),
        metadata=OcrMetadata(
            detected_language=detect_language(cleaned.text, language_hints),
            confidence=average(line.confidence for line in lines if line.confidence is not None),
        ),
    )
