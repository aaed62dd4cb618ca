"""Configuration for the social feed proxy."""

import math
from typing import Any

from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_POSITIVE_NUMBER_FIELDS = (
    "proxy_cache_ttl_seconds",
    "discovery_cache_ttl_seconds",
    "discovery_lookup_timeout_seconds",
    "discovery_probe_timeout_seconds",
    "proxy_fetch_timeout_seconds",
    "proxy_global_rate_limit",
    "proxy_source_rate_limit",
    "create_rate_limit",
    "rate_limit_window_seconds",
)


class SocialConfig(BaseSettings):
    """Settings for bridge discovery, proxy caching and rate limits.

    Numeric values fall back to their defaults when unset, unparsable,
    non-finite or not positive.
    """

    model_config = SettingsConfigDict(
        env_prefix="SOCIAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    bridge_base_url: str = Field(
        default="",
        description="RSS-Bridge base URL, e.g. http://rss-bridge:80",
    )
    feeds_base_url: str = Field(
        default="",
        description="Public base URL the feed reader uses to reach this service",
    )
    token_secret: SecretStr | None = Field(
        default=None,
        description="Secret used to derive the token encryption key",
    )
    metrics_token: str | None = Field(
        default=None,
        description="Shared secret for the metrics endpoint (unset = disabled)",
    )

    # Caches
    proxy_cache_ttl_seconds: float = 120.0
    discovery_cache_ttl_seconds: float = 600.0

    # Timeouts
    discovery_lookup_timeout_seconds: float = 15.0
    discovery_probe_timeout_seconds: float = 5.0
    proxy_fetch_timeout_seconds: float = 20.0

    # Rate limits (requests per window)
    proxy_global_rate_limit: int = 300
    proxy_source_rate_limit: int = 120
    create_rate_limit: int = 10
    rate_limit_window_seconds: float = 60.0

    @field_validator("bridge_base_url", "feeds_base_url", mode="before")
    @classmethod
    def _strip_trailing_slashes(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @field_validator("metrics_token", mode="before")
    @classmethod
    def _blank_token_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value.strip() if isinstance(value, str) else value

    @field_validator(*_POSITIVE_NUMBER_FIELDS, mode="before")
    @classmethod
    def _positive_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        default = cls.model_fields[info.field_name].default
        try:
            number = float(value)
        except (TypeError, ValueError):
            return default
        if not math.isfinite(number) or number <= 0:
            return default
        if isinstance(default, int):
            return int(number) or default
        return number

    @property
    def bridge_configured(self) -> bool:
        return bool(self.bridge_base_url)

    @property
    def token_secret_value(self) -> str | None:
        if self.token_secret is None:
            return None
        return self.token_secret.get_secret_value()
