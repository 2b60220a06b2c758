"""
BeanScan Backend - Application Configuration
==============================================

What:  Typed settings loaded from environment variables or a .env file.
How:   pydantic-settings validates types and ranges when the module is
       imported and exposes a singleton `settings` object.
Who:   Read by main.py, middleware and the service singletons. The OCR
       pipeline itself never reads settings; credentials reach it as
       parameters.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from beanscan.ocr.recognition import VISION_ENDPOINT

PLACEHOLDER_KEYS = {"", "your_google_vision_api_key_here", "your_openai_api_key_here"}


class Settings(BaseSettings):
    """
    Application settings, grouped by concern.

    Every field has a development default. Production must provide
    GOOGLE_VISION_API_KEY; OPENAI_API_KEY is optional (correction passes
    text through without it).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Google Vision ─────────────────────────────────────────────────────
    google_vision_api_key: str = Field(
        default="",
        description="API key for Google Cloud Vision images:annotate",
    )
    vision_endpoint: str = Field(default=VISION_ENDPOINT)
    # Seconds; None leaves the request unbounded.
    vision_timeout: Optional[float] = Field(default=30.0, gt=0, le=300)

    # ── OpenAI (text correction) ──────────────────────────────────────────
    openai_api_key: str = Field(default="")
    openai_model: str = Field(default="gpt-4o-mini")
    openai_endpoint: str = Field(default="https://api.openai.com/v1")
    openai_timeout: float = Field(default=30.0, gt=0, le=300)

    # ── Limits ────────────────────────────────────────────────────────────
    # Encoded (base64) size of the image field: 20MB.
    max_image_payload_bytes: int = Field(default=20 * 1024 * 1024, ge=1024, le=100 * 1024 * 1024)

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:8081,http://localhost:19006")

    @property
    def cors_origins_list(self) -> List[str]:
        """Comma-separated CORS_ORIGINS as a list for CORSMiddleware."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {sorted(valid_levels)}")
        return upper

    # ── Retry (recognition engine) ────────────────────────────────────────
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_min_wait: float = Field(default=1.0, ge=0, le=30)
    retry_max_wait: float = Field(default=8.0, ge=0, le=120)

    # ── Circuit Breaker ───────────────────────────────────────────────────
    cb_failure_threshold: int = Field(default=5, ge=1, le=50)
    cb_recovery_timeout: int = Field(default=60, ge=1, le=600)

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # Fixed window per client IP: 60 requests per minute.
    rate_limit_requests: int = Field(default=60, ge=1, le=10000)
    rate_limit_window: int = Field(default=60, ge=1, le=86400)

    @property
    def vision_configured(self) -> bool:
        return self.google_vision_api_key not in PLACEHOLDER_KEYS

    @property
    def openai_configured(self) -> bool:
        return self.openai_api_key not in PLACEHOLDER_KEYS

    def validate_required_for_production(self) -> None:
        """
        Report missing credentials at startup.

        Raises:
            ValueError listing every problem found.
        """
        errors = []
        if not self.vision_configured:
            errors.append(
                "GOOGLE_VISION_API_KEY is not set. "
                "Create a key with the Cloud Vision API enabled in the Google Cloud console."
            )
        if self.retry_min_wait > self.retry_max_wait:
            errors.append("RETRY_MIN_WAIT must not exceed RETRY_MAX_WAIT.")
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


settings = Settings()
