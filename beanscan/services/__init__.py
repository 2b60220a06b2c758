"""
BeanScan Backend - Services Layer
===================================

Sits between the routes (HTTP) and the OCR pipeline.

Service Inventory:
    - CircuitBreaker: CLOSED / OPEN / HALF_OPEN guard for the recognition engine
    - OcrService: validation, credentials, retries and breaker around run_ocr_pipeline
    - TextCorrectionService (abstract): contract for OCR text correction
    - OpenAICorrectionService: chat-completions implementation over httpx
"""
