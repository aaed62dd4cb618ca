"""
Public feed proxy: turn an opaque token into the upstream bridge feed.

Stages run strictly in order and each rejects early:

    decode token -> validate origin -> global limit -> source limit
    -> cache lookup -> coalesced upstream fetch -> cache store

Responses from the upstream are never retried here; the feed reader polls
again on its own schedule.
"""

import asyncio
import logging
import time
from typing import Callable

import httpx

from social_proxy.observability.metrics import MetricsCollector, get_metrics
from social_proxy.observability.tracing import get_tracer, traced
from social_proxy.social.bridge import FEED_ACCEPT, basic_auth
from social_proxy.social.cache import ProxyResponseCache, RequestCoalescer
from social_proxy.social.config import SocialConfig
from social_proxy.social.errors import InvalidTokenError, RateLimitedError, UpstreamError
from social_proxy.social.metrics import SocialMetrics, get_social_metrics
from social_proxy.social.rate_limiter import FixedWindowRateLimiter
from social_proxy.social.schemas import ProxyCacheEntry, ProxyResponse, SocialFeedTokenPayload
from social_proxy.social.source import source_key_for_payload
from social_proxy.social.token import SocialFeedTokenCodec

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

DEFAULT_CONTENT_TYPE = "application/xml; charset=utf-8"
GLOBAL_RATE_KEY = "social-proxy:global"


def source_rate_key(source_key: str) -> str:
    return f"social-proxy:source:{source_key}"


def parse_retry_after(value: str | None) -> int | None:
    """Parse a delta-seconds Retry-After header. HTTP dates are ignored."""
    if not value:
        return None
    value = value.strip()
    if not value.isdigit():
        return None
    seconds = int(value)
    return seconds if seconds > 0 else None


class SocialFeedProxy:
    """
    Serve upstream bridge feeds behind encrypted tokens.

    Usage:
        proxy = SocialFeedProxy(config, codec, client, is_bridge_feed_url=discovery.is_bridge_feed_url)
        response = await proxy.fetch(token)
    """

    def __init__(
        self,
        config: SocialConfig,
        codec: SocialFeedTokenCodec,
        http_client: httpx.AsyncClient,
        *,
        is_bridge_feed_url: Callable[[str], bool],
        limiter: FixedWindowRateLimiter | None = None,
        cache: ProxyResponseCache | None = None,
        coalescer: RequestCoalescer[ProxyCacheEntry] | None = None,
        metrics: SocialMetrics | None = None,
        collector: MetricsCollector | None = None,
    ) -> None:
        self._config = config
        self._codec = codec
        self._client = http_client
        self._is_bridge_feed_url = is_bridge_feed_url
        self._limiter = limiter if limiter is not None else FixedWindowRateLimiter()
        self._cache = cache if cache is not None else ProxyResponseCache()
        self._coalescer: RequestCoalescer[ProxyCacheEntry] = (
            coalescer if coalescer is not None else RequestCoalescer()
        )
        self._metrics = metrics or get_social_metrics()
        self._collector = collector

    @property
    def cache(self) -> ProxyResponseCache:
        return self._cache

    @property
    def in_flight(self) -> int:
        return len(self._coalescer)

    async def fetch(self, token: str) -> ProxyResponse:
        """
        Resolve a token to the upstream feed body, from cache when fresh.

        Raises:
            InvalidTokenError: Token malformed, tampered with, or pointing off the bridge
            RateLimitedError: Global or per-source limit exhausted
            UpstreamError: Upstream answered non-2xx, timed out, or was unreachable
        """
        try:
            return await self._fetch(token)
        except (InvalidTokenError, RateLimitedError, UpstreamError):
            raise
        except Exception as e:
            self._metrics.increment("social_proxy_internal_errors_total")
            self._metrics.record_event(
                "social_proxy_internal_error",
                {"message": str(e) or type(e).__name__},
            )
            logger.exception("Unexpected social proxy error")
            raise

    async def _fetch(self, token: str) -> ProxyResponse:
        try:
            payload = self._codec.decode(token)
        except InvalidTokenError as e:
            self._metrics.increment("social_proxy_invalid_tokens_total", {"reason": "decode"})
            self._metrics.record_event("social_proxy_invalid_token", {"message": str(e)})
            raise

        if not self._is_bridge_feed_url(payload.bridge_feed_url):
            self._metrics.increment("social_proxy_invalid_tokens_total", {"reason": "origin"})
            self._metrics.record_event(
                "social_proxy_invalid_token",
                {"platform": payload.platform.value, "message": "Invalid bridge feed URL in token"},
            )
            raise InvalidTokenError("Invalid bridge feed URL in token")

        platform = payload.platform.value
        source_key = source_key_for_payload(payload)
        self._metrics.increment("social_proxy_requests_total", {"platform": platform})

        window = self._config.rate_limit_window_seconds
        global_rate = self._limiter.check(GLOBAL_RATE_KEY, self._config.proxy_global_rate_limit, window)
        if not global_rate.allowed:
            self._metrics.increment("social_proxy_rate_limited_total", {"scope": "global"})
            self._metrics.record_event(
                "social_proxy_rate_limited",
                {"scope": "global", "retry_after_seconds": global_rate.retry_after_seconds},
            )
            raise RateLimitedError("global", global_rate.retry_after_seconds)

        source_rate = self._limiter.check(
            source_rate_key(source_key), self._config.proxy_source_rate_limit, window
        )
        if not source_rate.allowed:
            self._metrics.increment(
                "social_proxy_rate_limited_total", {"scope": "source", "platform": platform}
            )
            self._metrics.record_event(
                "social_proxy_rate_limited",
                {
                    "scope": "source",
                    "platform": platform,
                    "source_key": source_key,
                    "retry_after_seconds": source_rate.retry_after_seconds,
                },
            )
            raise RateLimitedError("source", source_rate.retry_after_seconds)

        cached = self._cache.get(source_key)
        if cached is not None:
            self._metrics.increment("social_proxy_cache_hits_total", {"platform": platform})
            age = max(0, int(self._cache.now() - cached.cached_at))
            return ProxyResponse(
                body=cached.body,
                content_type=cached.content_type,
                cache_status="HIT",
                age_seconds=age,
            )

        self._metrics.increment("social_proxy_cache_misses_total", {"platform": platform})
        if self._coalescer.is_in_flight(source_key):
            self._metrics.increment("social_proxy_coalesced_total", {"platform": platform})

        try:
            entry = await self._coalescer.coalesce(
                source_key,
                lambda: self._fetch_upstream(payload, source_key),
            )
        except UpstreamError as e:
            status = str(e.upstream_status) if e.upstream_status is not None else "network"
            self._metrics.increment("social_proxy_upstream_errors_total", {"status": status})
            self._metrics.record_event(
                "social_proxy_upstream_error",
                {"status": status, "source_key": source_key, "message": str(e)},
            )
            raise

        self._metrics.increment("social_proxy_upstream_success_total", {"platform": platform})
        return ProxyResponse(body=entry.body, content_type=entry.content_type, cache_status="MISS")

    async def _fetch_upstream(self, payload: SocialFeedTokenPayload, source_key: str) -> ProxyCacheEntry:
        """Fetch the bridge feed once and store it. Runs inside the coalescer."""
        platform = payload.platform.value
        auth = basic_auth(payload.bridge_login_username, payload.bridge_login_password)
        timeout = self._config.proxy_fetch_timeout_seconds
        start = time.perf_counter()
        outcome = "error"

        try:
            with traced(tracer, "proxy.upstream_fetch", {"platform": platform}):
                try:
                    async with asyncio.timeout(timeout):
                        response = await self._client.get(
                            payload.bridge_feed_url,
                            headers={"Accept": FEED_ACCEPT},
                            auth=auth,
                        )
                except (TimeoutError, httpx.TimeoutException):
                    raise UpstreamError(
                        f"Upstream RSS-Bridge request timed out after {int(timeout * 1000)}ms"
                    ) from None
                except httpx.HTTPError as e:
                    raise UpstreamError(f"Upstream RSS-Bridge request failed: {e}") from None

                if not response.is_success:
                    raise UpstreamError(
                        f"Upstream RSS-Bridge error {response.status_code} {response.reason_phrase}\n"
                        f"{response.text}".strip(),
                        upstream_status=response.status_code,
                        retry_after_seconds=parse_retry_after(response.headers.get("retry-after")),
                    )

                entry = self._cache.set(
                    source_key,
                    response.content,
                    response.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
                    self._config.proxy_cache_ttl_seconds,
                )
                outcome = "success"
                return entry
        finally:
            collector = self._collector or get_metrics()
            collector.record_upstream_fetch(platform, outcome, time.perf_counter() - start)
