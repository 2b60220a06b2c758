"""
BeanScan Backend - OCR Pipeline Package
=========================================

Stages, leaves first:
    image           → Image Normalizer (Pillow preprocessing)
    recognition     → Google Vision client
    reconstruction  → annotation tree → blocks and lines
    cleaning        → line normalization, artifact rejection, dedup
    language        → sk / cs / en detection with hint bias
    assembler       → immutable OcrResult
    pipeline        → run_ocr_pipeline(), the single entry point
"""

from beanscan.ocr.models import Block, CorrectionResult, Line, OcrMetadata, OcrResult
from beanscan.ocr.pipeline import run_ocr_pipeline

__all__ = [
    "Block",
    "CorrectionResult",
    "Line",
    "OcrMetadata",
    "OcrResult",
    "run_ocr_pipeline",
]
