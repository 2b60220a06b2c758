"""
BeanScan Backend - OCR Route Handlers
=======================================

What:  POST /api/ocr, POST /api/ocr-correct and POST /api/ocr/normalize-image.
How:   Thin handlers. Validation, retries and the circuit breaker live in
       OcrService; correction lives in the TextCorrectionService. Errors
       propagate to the global handlers in main.py.

Request Flow (/api/ocr):
    1. OcrService.validate_request()     → 400 / 413
    2. OcrService.recognize()            → 500 / 502 / 503
    3. empty rawText                     → 422 NoTextDetectedError
    4. 200 with the OcrResult body
"""

import logging

from fastapi import APIRouter, Depends

from beanscan.exceptions import NoTextDetectedError
from beanscan.ocr.models import OcrResult
from beanscan.schemas.ocr import (
    ErrorResponse,
    NormalizeImageRequest,
    NormalizeImageResponse,
    OcrCorrectResponse,
    OcrRequest,
)
from beanscan.services.correction_base import TextCorrectionService
from beanscan.services.ocr_service import OcrService, ocr_service
from beanscan.services.openai_service import correction_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["OCR"])

ERROR_RESPONSES = {
    400: {"description": "Missing or invalid fields", "model": ErrorResponse},
    413: {"description": "Image payload too large", "model": ErrorResponse},
    429: {"description": "Rate limit exceeded", "model": ErrorResponse},
    500: {"description": "Server not configured", "model": ErrorResponse},
    502: {"description": "Image decode or recognition engine failure", "model": ErrorResponse},
    503: {"description": "Recognition engine temporarily unavailable", "model": ErrorResponse},
}


def get_ocr_service() -> OcrService:
    return ocr_service


def get_correction_service() -> TextCorrectionService:
    return correction_service


async def _recognize_text(request: OcrRequest, service: OcrService) -> OcrResult:
    service.validate_request(request.image_base64, request.language_hints)
    result = await service.recognize(request.image_base64, request.language_hints)
    if not result.raw_text:
        raise NoTextDetectedError()
    return result


@router.post(
    "/ocr",
    response_model=OcrResult,
    responses={**ERROR_RESPONSES, 422: {"description": "No text detected", "model": ErrorResponse}},
    summary="Recognize text in a photo",
    description=(
        "Normalizes the image, runs Google Vision text detection and returns raw, "
        "cleaned and diacritic-free text with blocks, lines and detected language."
    ),
)
async def recognize(
    request: OcrRequest,
    service: OcrService = Depends(get_ocr_service),
) -> OcrResult:
    logger.info(
        "Received OCR request: payload=%d chars, hints=%s",
        len(request.image_base64 or ""),
        request.language_hints,
    )
    return await _recognize_text(request, service)


@router.post(
    "/ocr-correct",
    response_model=OcrCorrectResponse,
    responses={**ERROR_RESPONSES, 422: {"description": "No text detected", "model": ErrorResponse}},
    summary="Recognize text and correct it with a language model",
)
async def recognize_and_correct(
    request: OcrRequest,
    service: OcrService = Depends(get_ocr_service),
    corrector: TextCorrectionService = Depends(get_correction_service),
) -> OcrCorrectResponse:
    """
    Same as /api/ocr, then corrects the raw text.

    Correction failures never fail the request: correctedText falls back to
    rawText and usedAi is false.
    """
    result = await _recognize_text(request, service)
    correction = await corrector.correct_text(result.raw_text)

    return OcrCorrectResponse(
        raw_text=result.raw_text,
        cleaned_text=result.cleaned_text,
        corrected_text=correction.corrected_text,
        used_ai=correction.used_ai,
        metadata=result.metadata,
    )


@router.post(
    "/ocr/normalize-image",
    response_model=NormalizeImageResponse,
    responses={code: ERROR_RESPONSES[code] for code in (400, 413, 429, 502)},
    summary="Preview the normalized image sent to the recognition engine",
)
async def normalize_image(
    request: NormalizeImageRequest,
    service: OcrService = Depends(get_ocr_service),
) -> NormalizeImageResponse:
    service.validate_request(request.image_base64)
    return NormalizeImageResponse(image_base64=service.normalize(request.image_base64))
