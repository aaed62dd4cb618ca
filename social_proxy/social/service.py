"""
Social feed creation.

Turns a user's platform/handle (plus optional bridge credentials) into a
public proxy URL and, when a feed reader is configured, subscribes it.
"""

import logging
import time
from typing import Any, Mapping
from urllib.parse import quote

from social_proxy.reader.client import FeedReaderClient
from social_proxy.social.bridge import BridgeDiscovery
from social_proxy.social.config import SocialConfig
from social_proxy.social.errors import ConfigurationError, RateLimitedError, SocialFeedError
from social_proxy.social.metrics import SocialMetrics, get_social_metrics
from social_proxy.social.normalize import normalize_social_input
from social_proxy.social.rate_limiter import FixedWindowRateLimiter
from social_proxy.social.schemas import CreatedSocialFeed, SocialFeedTokenPayload
from social_proxy.social.source import source_key_for_input
from social_proxy.social.token import SocialFeedTokenCodec

logger = logging.getLogger(__name__)

PROXY_PATH = "/api/social/rss/"


def create_rate_key(caller_id: str) -> str:
    return f"social-create:user:{caller_id}"


def build_proxy_url(feeds_base_url: str, token: str) -> str:
    """Public URL the feed reader polls for a token."""
    return f"{feeds_base_url.rstrip('/')}{PROXY_PATH}{quote(token, safe='')}"


class SocialFeedCreator:
    """
    Orchestrates creation of a social feed subscription.

    Usage:
        creator = SocialFeedCreator(config, codec, discovery, limiter, reader=reader)
        created = await creator.create({"platform": "twitter", "handle": "@jack"}, caller_id="42")
    """

    def __init__(
        self,
        config: SocialConfig,
        codec: SocialFeedTokenCodec,
        discovery: BridgeDiscovery,
        limiter: FixedWindowRateLimiter,
        *,
        reader: FeedReaderClient | None = None,
        metrics: SocialMetrics | None = None,
    ) -> None:
        self._config = config
        self._codec = codec
        self._discovery = discovery
        self._limiter = limiter
        self._reader = reader
        self._metrics = metrics or get_social_metrics()

    async def create(
        self,
        raw: Mapping[str, Any],
        caller_id: str,
        category_id: int | None = None,
    ) -> CreatedSocialFeed:
        """
        Create a proxy feed for a social profile.

        Args:
            raw: Untrusted ``platform``, ``handle``, ``login_username``, ``login_password``
            caller_id: Identity the per-user creation limit is keyed on
            category_id: Reader category for the subscription

        Raises:
            RateLimitedError: Caller exceeded the creation limit
            InvalidInputError: Platform, handle or credentials invalid
            DiscoveryFailedError: No working bridge feed was found
            ConfigurationError: Bridge, public base URL or token secret missing
            FeedReaderError: The reader refused the subscription
        """
        if not self._config.feeds_base_url:
            raise ConfigurationError("SOCIAL_FEEDS_BASE_URL is not set")

        rate = self._limiter.check(
            create_rate_key(caller_id),
            self._config.create_rate_limit,
            self._config.rate_limit_window_seconds,
        )
        if not rate.allowed:
            self._metrics.increment("social_create_rate_limited_total")
            self._metrics.record_event(
                "social_create_rate_limited",
                {"caller": caller_id, "retry_after_seconds": rate.retry_after_seconds},
            )
            raise RateLimitedError("create", rate.retry_after_seconds)

        start = time.perf_counter()
        platform_label = str(raw.get("platform") or "unknown").strip().lower()[:32]
        self._metrics.increment("social_create_attempts_total", {"platform": platform_label})

        try:
            social_input = normalize_social_input(raw)
        except SocialFeedError as e:
            self._metrics.increment(
                "social_create_failures_total",
                {"platform": platform_label, "stage": "normalize"},
            )
            self._metrics.record_event(
                "social_create_failed",
                {"stage": "normalize", "platform": platform_label, "message": e.public_message},
            )
            raise

        platform = social_input.platform.value
        source_key = source_key_for_input(social_input)

        try:
            bridge_feed_url = await self._discovery.discover(social_input)
        except SocialFeedError as e:
            self._record_failure(platform, source_key, "discover", e)
            raise

        payload = SocialFeedTokenPayload(
            platform=social_input.platform,
            handle=social_input.handle,
            bridge_feed_url=bridge_feed_url,
            bridge_login_username=social_input.login_username,
            bridge_login_password=social_input.login_password,
        )
        feed_url = build_proxy_url(self._config.feeds_base_url, self._codec.encode(payload))

        feed_id: int | None = None
        if self._reader is not None:
            try:
                feed_id = await self._reader.subscribe(feed_url, category_id)
            except SocialFeedError as e:
                self._record_failure(platform, source_key, "subscribe", e)
                raise

        latency_ms = round((time.perf_counter() - start) * 1000)
        self._metrics.increment(
            "social_create_success_total",
            {"platform": platform, "subscribed": feed_id is not None},
        )
        self._metrics.record_event(
            "social_create_succeeded",
            {"platform": platform, "source_key": source_key, "latency_ms": latency_ms},
        )
        logger.info(f"Created social feed for {source_key} in {latency_ms}ms")

        return CreatedSocialFeed(
            feed_url=feed_url,
            platform=social_input.platform,
            handle=social_input.handle,
            feed_id=feed_id,
        )

    def _record_failure(self, platform: str, source_key: str, stage: str, error: SocialFeedError) -> None:
        self._metrics.increment(
            "social_create_failures_total",
            {"platform": platform, "stage": stage, "error_type": error.error_type},
        )
        self._metrics.record_event(
            "social_create_failed",
            {
                "stage": stage,
                "platform": platform,
                "source_key": source_key,
                "error_type": error.error_type,
                "message": str(error),
            },
        )
