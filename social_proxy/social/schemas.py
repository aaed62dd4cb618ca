"""
Data models for the social feed proxy.

The token payload is the only structure that crosses a trust boundary (it is
decrypted from a public URL), so it is a strict pydantic model. Everything
else is an in-process dataclass.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    """Social platforms that can be subscribed to through the bridge."""

    INSTAGRAM = "instagram"
    TWITTER = "twitter"


@dataclass(frozen=True)
class NormalizedSocialInput:
    """Validated platform/handle pair with optional bridge credentials.

    Credentials are either both set or both None.
    """

    platform: Platform
    handle: str
    login_username: str | None = None
    login_password: str | None = None

    @property
    def has_credentials(self) -> bool:
        return self.login_username is not None and self.login_password is not None


class SocialFeedTokenPayload(BaseModel):
    """Routing metadata carried inside an encrypted proxy token.

    Serialized with camelCase keys; optional credentials are omitted
    from the JSON when unset.
    """

    model_config = ConfigDict(
        strict=True,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )

    version: Literal[1] = 1
    platform: Platform
    handle: str = Field(min_length=1)
    bridge_feed_url: str = Field(alias="bridgeFeedUrl", min_length=1)
    bridge_login_username: str | None = Field(default=None, alias="bridgeLoginUsername")
    bridge_login_password: str | None = Field(default=None, alias="bridgeLoginPassword")


@dataclass
class RateLimitResult:
    """Outcome of a single fixed-window rate limit check."""

    allowed: bool
    remaining: int
    retry_after_seconds: int = 0


@dataclass(frozen=True)
class ProxyCacheEntry:
    """Last successful upstream response for a source key.

    Timestamps come from the cache's clock (monotonic seconds by default).
    """

    body: bytes
    content_type: str
    cached_at: float
    expires_at: float


@dataclass
class MetricEvent:
    """A recent notable event kept in the metrics ring buffer."""

    at: str
    kind: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"at": self.at, "kind": self.kind, "details": dict(self.details)}


@dataclass(frozen=True)
class ProxyResponse:
    """Raw upstream bytes to hand back to the feed reader.

    The upstream content type names their charset.
    """

    body: bytes
    content_type: str
    cache_status: Literal["HIT", "MISS"]
    age_seconds: int = 0


@dataclass(frozen=True)
class CreatedSocialFeed:
    """Result of a successful social feed creation."""

    feed_url: str
    platform: Platform
    handle: str
    feed_id: int | None = None

    @property
    def subscribed(self) -> bool:
        return self.feed_id is not None
