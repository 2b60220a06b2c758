"""
BeanScan Backend - OCR Pipeline Entry Point
=============================================

What:  One request's full transformation: base64 photo → OcrResult.
How:   strip data-URL prefix → normalize image → Vision annotate →
       reconstruct blocks/lines → clean → detect language → assemble.

Only the Vision call suspends; every other stage is synchronous and
in-memory. Credentials arrive as parameters; nothing here reads settings or
the environment. No retries happen here.

Raises:
    ImageDecodeError:           image bytes are not a decodable raster image
    RecognitionTransportError:  non-2xx (or unreachable) engine
    RecognitionEngineError:     engine error embedded in a 2xx body
"""

import logging
from typing import Optional, Sequence

import httpx

from beanscan.ocr.assembler import build_ocr_result
from beanscan.ocr.image import normalize_image, strip_data_url_prefix
from beanscan.ocr.models import OcrResult
from beanscan.ocr.reconstruction import extract_blocks_and_lines, extract_raw_text
from beanscan.ocr.recognition import VISION_ENDPOINT, VisionClient

logger = logging.getLogger(__name__)


async def run_ocr_pipeline(
    image_base64: str,
    language_hints: Sequence[str],
    api_key: str,
    *,
    endpoint: str = VISION_ENDPOINT,
    timeout: Optional[float] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> OcrResult:
    """
    Run OCR on a base64 image and return the structured, cleaned result.

    Args:
        image_base64:   Base64 image, optionally prefixed with ``data:...;base64,``
        language_hints: Language codes passed to the engine and used to bias
                        language detection; empty means no bias
        api_key:        Google Vision API key
        endpoint:       images:annotate URL
        timeout:        Vision request timeout in seconds
        http_client:    Shared httpx client (connection pool), optional

    Returns:
        OcrResult. An empty raw_text is a successful outcome.
    """
    hints = list(language_hints)
    normalized = normalize_image(strip_data_url_prefix(image_base64))

    client = VisionClient(api_key=api_key, endpoint=endpoint, timeout=timeout, http_client=http_client)
    vision_response = await client.annotate(normalized, hints)

    raw_text = extract_raw_text(vision_response).strip()
    blocks, lines = extract_blocks_and_lines(vision_response)
    result = build_ocr_result(raw_text=raw_text, blocks=blocks, lines=lines, language_hints=hints)

    logger.info(
        "OCR pipeline finished: %d blocks, %d lines, %d cleaned lines, language=%s",
        len(result.blocks),
        len(result.lines),
        len(result.cleaned_lines),
        result.metadata.detected_language,
    )
    return result
