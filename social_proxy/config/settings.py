"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the social feed proxy service.

    All settings can be overridden via environment variables.
    Prefix is not used to allow standard env var names (e.g., API_KEYS).
    Social-specific settings live in SocialConfig (SOCIAL_ prefix).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # API server
    api_host: str = "0.0.0.0"
    api_port: int = 8001
    api_keys: str | None = None  # Comma-separated; unset = dev mode
    cors_origins: str = "http://localhost:3000"
    cors_allow_credentials: bool = False
    # Above the default worst-case discovery: 2 lookups plus 4 probes
    request_timeout_seconds: float = Field(default=60.0, ge=0.0)

    # Coarse per-client limiter (slowapi), in front of the social limits
    rate_limit_enabled: bool = False
    rate_limit_default: str = "60/minute"

    # Feed reader (Miniflux)
    miniflux_base_url: str | None = None
    miniflux_api_token: str | None = None
    miniflux_timeout_seconds: float = Field(default=15.0, gt=0.0)

    # HTTP retry configuration
    max_http_retries: int = Field(default=3, ge=0, le=10)
    max_backoff_seconds: float = Field(default=10.0, ge=0.1, le=300.0)

    # Observability
    metrics_port: int = 8000
    tracing_enabled: bool = False
    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "social-feed-proxy"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def miniflux_configured(self) -> bool:
        """Check if the feed reader API is configured."""
        return bool(self.miniflux_base_url) and bool(self.miniflux_api_token)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
