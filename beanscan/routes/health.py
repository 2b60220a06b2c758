"""
BeanScan Backend - Health Check Route
=======================================

What:  GET /health for container probes and uptime monitors.
How:   Reports configuration and circuit state of the recognition engine and
       reachability of the correction provider.

Status levels:
    healthy:   Vision configured and its circuit is not open
    degraded:  Vision unconfigured or circuit open (still HTTP 200; the
               process is alive and can answer)
Correction availability never degrades the status; it is optional.
"""

import logging
import time

from fastapi import APIRouter, Depends

from beanscan import __version__
from beanscan.routes.ocr import get_correction_service, get_ocr_service
from beanscan.schemas.ocr import HealthResponse
from beanscan.services.circuit_breaker import CircuitBreaker
from beanscan.services.correction_base import TextCorrectionService
from beanscan.services.ocr_service import OcrService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    service: OcrService = Depends(get_ocr_service),
    corrector: TextCorrectionService = Depends(get_correction_service),
) -> HealthResponse:
    overall = "healthy"

    if not service.is_configured:
        vision_status = "not_configured"
        overall = "degraded"
    elif service.circuit_breaker.state == CircuitBreaker.OPEN:
        vision_status = "circuit_open"
        overall = "degraded"
    else:
        vision_status = "configured"

    if not corrector.is_configured:
        correction_status = "disabled"
    elif await corrector.health_check():
        correction_status = "available"
    else:
        correction_status = "unavailable"
        logger.warning("Health check: correction provider unreachable")

    return HealthResponse(
        status=overall,
        version=__version__,
        vision=vision_status,
        correction=correction_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
