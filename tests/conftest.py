"""
BeanScan Backend - Test Configuration (conftest.py)
=====================================================

Shared fixtures. Environment variables are set before any beanscan import
so the settings singleton and service singletons pick up test values:
no real credentials, no retry backoff, no effective rate limit.

Fixtures:
    png_base64          small PNG label image, base64 without prefix
    vision              RecordingVision factory (httpx MockTransport handler)
    make_ocr_service    OcrService wired to a RecordingVision
    test_client         httpx AsyncClient over ASGITransport to the app
"""

import os

os.environ["GOOGLE_VISION_API_KEY"] = "test-vision-key"
os.environ["OPENAI_API_KEY"] = ""
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RETRY_MAX_ATTEMPTS"] = "3"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from beanscan.services.circuit_breaker import CircuitBreaker
from beanscan.services.ocr_service import OcrService
from vision_fixtures import RecordingVision, make_png_base64


@pytest.fixture
def png_base64():
    return make_png_base64()


@pytest.fixture
def vision():
    """Usage: handler = vision(response_a, (503, {...}), ...)"""
    return RecordingVision


@pytest.fixture
def make_ocr_service():
    def factory(handler: RecordingVision, **overrides) -> OcrService:
        options = dict(
            api_key="test-vision-key",
            retry_max_attempts=3,
            retry_min_wait=0,
            retry_max_wait=0,
            circuit_breaker=CircuitBreaker(failure_threshold=5, recovery_timeout=60),
            http_client=handler.client(),
        )
        options.update(overrides)
        return OcrService(**options)

    return factory


@pytest_asyncio.fixture
async def test_client():
    """
    HTTPX AsyncClient talking to the FastAPI app in-process.

    Dependency overrides set by a test are cleared afterwards.
    """
    from beanscan.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
