"""
BeanScan Backend - FastAPI Application Factory
================================================

What:  Builds the FastAPI app: logging, lifespan, middleware, error handlers
       and routes.
Who:   uvicorn beanscan.main:app

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                       FastAPI App                        │
    │                                                          │
    │  Middleware: Request ID → Rate Limit → Access Log → GZip │
    │              → CORS                                      │
    │                                                          │
    │  Routes:  POST /api/ocr                                  │
    │           POST /api/ocr-correct                          │
    │           POST /api/ocr/normalize-image                  │
    │           GET  /health                                   │
    │                                                          │
    │  Errors:  400 validation   413 too large   422 no text   │
    │           429 rate limit   502 decode/engine             │
    │           503 circuit open 500 not configured/unexpected │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config validation (logged, not fatal) → open the
              Vision connection pool
    Shutdown: close the connection pool
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from beanscan import __version__
from beanscan.config import settings
from beanscan.exceptions import (
    BeanScanError,
    CircuitBreakerOpenError,
    ConfigurationError,
    ImageDecodeError,
    NoTextDetectedError,
    PayloadTooLargeError,
    RateLimitExceededError,
    RecognitionError,
    ValidationError,
)
from beanscan.middleware.logging import RequestLoggingMiddleware
from beanscan.middleware.rate_limit import RateLimitMiddleware
from beanscan.middleware.request_id import RequestIDMiddleware, request_id_var
from beanscan.routes import health, ocr
from beanscan.services.ocr_service import ocr_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Our access log replaces uvicorn's; httpx logs every request at INFO.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("BeanScan Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: /health reports the gap and OCR routes answer 500.
        logger.error("Configuration error: %s", str(e))

    await ocr_service.startup()

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("BeanScan Backend shutting down...")
    await ocr_service.shutdown()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "") or request_id_var.get("")


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {"error": error, "message": message}
    if details:
        content["details"] = details
    content["request_id"] = _request_id(request)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exceptions to status codes and the shared error body.

        ValidationError / RequestValidationError → 400
        PayloadTooLargeError                     → 413
        NoTextDetectedError                      → 422
        RateLimitExceededError                   → 429
        ImageDecodeError / RecognitionError      → 502
        CircuitBreakerOpenError                  → 503
        ConfigurationError                       → 500
        BeanScanError / Exception                → 500

    5xx bodies carry a generic message. Context and engine payloads are
    logged server-side only.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", _request_id(request), exc.message)
        return error_response(request, 400, "validation_error", exc.message, exc.context)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        logger.warning("[%s] Request body rejected: %s", _request_id(request), errors)
        return error_response(
            request, 400, "validation_error", "Invalid request body.", {"errors": errors}
        )

    @app.exception_handler(PayloadTooLargeError)
    async def handle_payload_too_large(request: Request, exc: PayloadTooLargeError):
        logger.warning("[%s] Payload too large: %d bytes", _request_id(request), exc.actual_bytes)
        return error_response(request, 413, "payload_too_large", exc.message, exc.context)

    @app.exception_handler(NoTextDetectedError)
    async def handle_no_text(request: Request, exc: NoTextDetectedError):
        return error_response(request, 422, "no_text_detected", exc.message)

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return error_response(
            request,
            429,
            "rate_limit_exceeded",
            exc.message,
            {"retry_after": exc.retry_after},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(ImageDecodeError)
    async def handle_image_decode_error(request: Request, exc: ImageDecodeError):
        logger.warning(
            "[%s] Image decode failed: %s | Context: %s",
            _request_id(request),
            exc.message,
            exc.context,
        )
        return error_response(request, 502, "image_decode_error", exc.message)

    @app.exception_handler(RecognitionError)
    async def handle_recognition_error(request: Request, exc: RecognitionError):
        logger.error(
            "[%s] Recognition engine error: %s | Context: %s",
            _request_id(request),
            exc.message,
            exc.context,
        )
        return error_response(request, 502, "recognition_error", exc.message)

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", _request_id(request), exc.message)
        return error_response(
            request,
            503,
            "service_unavailable",
            exc.message,
            {"recovery_time": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        logger.error(
            "[%s] Configuration error: %s | Context: %s",
            _request_id(request),
            exc.message,
            exc.context,
        )
        return error_response(request, 500, "configuration_error", exc.message)

    @app.exception_handler(BeanScanError)
    async def handle_beanscan_error(request: Request, exc: BeanScanError):
        logger.error(
            "[%s] Unhandled application error: %s | Context: %s",
            _request_id(request),
            exc.message,
            exc.context,
        )
        return error_response(
            request, 500, "server_error", "An internal error occurred. Please try again later."
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            _request_id(request),
            str(exc),
            exc_info=True,
        )
        return error_response(
            request,
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again or contact support.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="BeanScan API",
        description=(
            "OCR backend for coffee bag labels: Google Vision text detection with "
            "image normalization, line reconstruction, cleaning, language detection "
            "and optional language-model correction."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Last added runs first: RequestID → RateLimit → Logging → GZip → CORS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(ocr.router)
    app.include_router(health.router)

    return app


app = create_app()
