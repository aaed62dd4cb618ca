"""
Request and response models for the social feed API.
"""

from typing import Any

from pydantic import BaseModel, Field

from social_proxy.social.schemas import Platform


class CreateSocialFeedRequest(BaseModel):
    """Request model for creating a social feed.

    ``platform`` and ``handle`` stay plain strings here; the normalizer
    reports bad values with the proxy's own error messages.
    """

    platform: str = Field(..., description="Social platform: instagram or twitter")
    handle: str = Field(
        ...,
        max_length=2048,
        description="Handle, @handle, or profile URL",
    )
    login_username: str | None = Field(
        default=None,
        max_length=256,
        description="RSS-Bridge HTTP Basic username (requires login_password)",
    )
    login_password: str | None = Field(
        default=None,
        max_length=256,
        description="RSS-Bridge HTTP Basic password (requires login_username)",
    )
    category_id: int | None = Field(
        default=None,
        ge=1,
        description="Feed reader category for the subscription",
    )


class CreateSocialFeedResponse(BaseModel):
    """Response model for a created social feed."""

    feed_url: str = Field(..., description="Public proxy URL the feed reader polls")
    platform: Platform
    handle: str = Field(..., description="Normalized handle")
    feed_id: int | None = Field(
        default=None,
        description="Feed reader id, when the feed was subscribed",
    )
    subscribed: bool = Field(
        default=False,
        description="Whether the feed reader subscription was created",
    )
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class MetricEventItem(BaseModel):
    """A recent metrics event."""

    at: str
    kind: str
    details: dict[str, Any] = Field(default_factory=dict)


class SocialMetricsResponse(BaseModel):
    """Snapshot of the social proxy counters and recent events."""

    started_at: str
    generated_at: str
    counters: dict[str, int] = Field(default_factory=dict)
    recent_events: list[MetricEventItem] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy or degraded",
    )
    bridge_configured: bool = Field(default=False, description="Whether RSS-Bridge is configured")
    token_secret_configured: bool = Field(default=False, description="Whether the token secret is set")
    feed_reader_configured: bool = Field(default=False, description="Whether the feed reader is configured")
    stores: dict[str, int] = Field(
        default_factory=dict,
        description="Entry counts of the in-memory stores",
    )
    version: str = Field(default="0.1.0")


class ErrorResponse(BaseModel):
    """Error response model."""

    detail: str = Field(..., description="Error message")
    error_type: str = Field(..., description="Machine-readable error category")
