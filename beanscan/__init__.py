"""
BeanScan Backend
=================

OCR service for photos of coffee bag labels.

    ┌─────────────────────────────────────┐
    │        Routes (HTTP, FastAPI)       │  ← status codes, request/response bodies
    ├─────────────────────────────────────┤
    │   Services (retry, circuit breaker, │  ← OcrService, TextCorrectionService
    │   validation, correction)           │
    ├─────────────────────────────────────┤
    │   OCR pipeline (beanscan.ocr)       │  ← pure stages + one Vision HTTP call
    └─────────────────────────────────────┘

The pipeline knows nothing about HTTP status codes, settings or retries.
"""

__version__ = "1.0.0"
