"""
RSS-Bridge feed discovery.

Finds a working bridge feed URL for a social profile:

1. Ask the bridge's ``findfeed`` action for candidates, trying each profile
   URL form of the handle (Twitter has legacy and current domains)
2. Keep only candidates on the configured bridge origin
3. Rank them by a per-platform preference over bridge implementation names
4. Probe each in order until one answers with an XML/Atom/RSS feed

Results are cached per source key, and concurrent discoveries for the same
source share one run.
"""

import asyncio
import logging
import time
from typing import Mapping, Sequence
from urllib.parse import parse_qs, urljoin, urlsplit

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from social_proxy.observability.metrics import MetricsCollector, get_metrics
from social_proxy.observability.tracing import get_tracer, traced
from social_proxy.social.cache import RequestCoalescer, TTLCache
from social_proxy.social.config import SocialConfig
from social_proxy.social.errors import (
    ConfigurationError,
    DiscoveryFailedError,
    NoBridgeAvailableError,
)
from social_proxy.social.metrics import SocialMetrics, get_social_metrics
from social_proxy.social.schemas import NormalizedSocialInput, Platform
from social_proxy.social.source import source_key_for_input

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

FEED_ACCEPT = "application/atom+xml, application/rss+xml, application/xml;q=0.9, */*;q=0.8"
JSON_ACCEPT = "application/json, text/plain;q=0.9, */*;q=0.8"

NO_BRIDGE_MARKER = "No bridge found for given url"
MEDIUM_BRIDGE = "MediumBridge"

# Longest response body excerpt kept in an error message
_ERROR_BODY_EXCERPT = 200

DEFAULT_BRIDGE_PREFERENCES: dict[Platform, tuple[str, ...]] = {
    Platform.TWITTER: (
        "TwitterV2Bridge",
        "TwitterBridge",
        "NitterBridge",
        "FarsideNitterBridge",
    ),
    Platform.INSTAGRAM: (
        "ImgsedBridge",
        "InstagramBridge",
    ),
}


class FindFeedItem(BaseModel):
    """One entry of the findfeed JSON array."""

    model_config = ConfigDict(extra="ignore")

    url: str | None = None


_FIND_FEED_RESPONSE = TypeAdapter(list[FindFeedItem | None])


class _LookupError(Exception):
    """A findfeed lookup produced no usable candidates."""


def bridge_name_from_url(url: str) -> str:
    """Return the ``bridge`` query parameter of a bridge feed URL, or ""."""
    try:
        values = parse_qs(urlsplit(url).query).get("bridge")
    except ValueError:
        return ""
    return values[0] if values else ""


def url_origin(url: str) -> tuple[str, str, int] | None:
    """Return ``(scheme, host, port)`` with default ports filled in."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if scheme not in ("http", "https") or not host:
        return None
    if port is None:
        port = 443 if scheme == "https" else 80
    return scheme, host, port


def is_feed_content_type(content_type: str) -> bool:
    lowered = content_type.lower()
    return "xml" in lowered or "atom" in lowered or "rss" in lowered


def basic_auth(login_username: str | None, login_password: str | None) -> httpx.BasicAuth | None:
    if not login_username or not login_password:
        return None
    return httpx.BasicAuth(login_username, login_password)


def profile_urls(social_input: NormalizedSocialInput) -> list[str]:
    """Profile URL forms to submit to findfeed, in order."""
    if social_input.platform == Platform.INSTAGRAM:
        return [f"https://www.instagram.com/{social_input.handle}/"]
    return [
        f"https://twitter.com/{social_input.handle}",
        f"https://x.com/{social_input.handle}",
    ]


class BridgeRanking:
    """
    Per-platform preference order over bridge implementation names.

    Names earlier in a platform's list rank higher. Unlisted names rank
    after every listed one; ties keep discovery order.
    """

    def __init__(self, preferences: Mapping[Platform, Sequence[str]] | None = None):
        preferences = DEFAULT_BRIDGE_PREFERENCES if preferences is None else preferences
        self._ranks: dict[Platform, dict[str, int]] = {
            platform: {name: index for index, name in enumerate(names)}
            for platform, names in preferences.items()
        }

    def rank(self, platform: Platform, bridge_name: str) -> int:
        ranks = self._ranks.get(platform, {})
        return ranks.get(bridge_name, len(ranks))

    def sort(self, platform: Platform, candidates: Sequence[str]) -> list[str]:
        return sorted(candidates, key=lambda url: self.rank(platform, bridge_name_from_url(url)))


class BridgeDiscovery:
    """
    Discover bridge feed URLs for social profiles.

    Usage:
        async with httpx.AsyncClient() as client:
            discovery = BridgeDiscovery(config, client)
            feed_url = await discovery.discover(social_input)
    """

    def __init__(
        self,
        config: SocialConfig,
        http_client: httpx.AsyncClient,
        *,
        ranking: BridgeRanking | None = None,
        cache: TTLCache[str] | None = None,
        coalescer: RequestCoalescer[str] | None = None,
        metrics: SocialMetrics | None = None,
        collector: MetricsCollector | None = None,
    ) -> None:
        self._config = config
        self._client = http_client
        self._ranking = ranking or BridgeRanking()
        self._cache: TTLCache[str] = cache if cache is not None else TTLCache()
        self._coalescer: RequestCoalescer[str] = coalescer if coalescer is not None else RequestCoalescer()
        self._metrics = metrics or get_social_metrics()
        self._collector = collector

    @property
    def cache(self) -> TTLCache[str]:
        return self._cache

    @property
    def in_flight(self) -> int:
        return len(self._coalescer)

    @property
    def bridge_base_url(self) -> str:
        if not self._config.bridge_base_url:
            raise ConfigurationError("SOCIAL_BRIDGE_BASE_URL is not set")
        return self._config.bridge_base_url

    def is_bridge_feed_url(self, url: str) -> bool:
        """Whether ``url`` is an absolute URL on the configured bridge origin."""
        if not self._config.bridge_base_url:
            return False
        origin = url_origin(url)
        return origin is not None and origin == url_origin(self._config.bridge_base_url)

    def resolve_candidate(self, value: str) -> str | None:
        """Resolve a findfeed URL against the bridge base; None if foreign."""
        resolved = urljoin(f"{self.bridge_base_url}/", value)
        return resolved if self.is_bridge_feed_url(resolved) else None

    async def discover(self, social_input: NormalizedSocialInput) -> str:
        """
        Return a probed, working bridge feed URL for a profile.

        Raises:
            NoBridgeAvailableError: If the bridge has no handler for the profile
            DiscoveryFailedError: If no candidate could be found or probed
            ConfigurationError: If the bridge base URL is not configured
        """
        if not self._config.bridge_configured:
            raise ConfigurationError("SOCIAL_BRIDGE_BASE_URL is not set")
        source_key = source_key_for_input(social_input)
        platform = social_input.platform.value

        cached = self._cache.get(source_key)
        if cached is not None:
            self._metrics.increment("social_discovery_cache_hits_total", {"platform": platform})
            return cached

        if self._coalescer.is_in_flight(source_key):
            self._metrics.increment("social_discovery_coalesced_total", {"platform": platform})

        return await self._coalescer.coalesce(
            source_key,
            lambda: self._discover_uncached(social_input, source_key),
        )

    async def _discover_uncached(self, social_input: NormalizedSocialInput, source_key: str) -> str:
        platform = social_input.platform.value
        self._metrics.increment("social_discovery_requests_total", {"platform": platform})
        auth = basic_auth(social_input.login_username, social_input.login_password)
        start = time.perf_counter()
        errors: list[str] = []

        with traced(tracer, "bridge.discover", {"platform": platform}):
            for profile_url in profile_urls(social_input):
                try:
                    candidates = await self._find_feed_candidates(profile_url, auth)
                except _LookupError as e:
                    errors.append(str(e))
                    self._metrics.increment("social_discovery_lookup_errors_total", {"platform": platform})
                    continue

                for feed_url in self._ranking.sort(social_input.platform, candidates):
                    probe_error = await self.probe(feed_url, auth)
                    if probe_error is None:
                        self._cache.set(source_key, feed_url, self._config.discovery_cache_ttl_seconds)
                        self._metrics.increment(
                            "social_discovery_success_total",
                            {"platform": platform, "bridge": bridge_name_from_url(feed_url) or "unknown"},
                        )
                        self._observe(platform, "success", start)
                        logger.info(
                            f"Discovered bridge feed for {source_key}: {bridge_name_from_url(feed_url)}"
                        )
                        return feed_url
                    errors.append(probe_error)
                    self._metrics.increment("social_discovery_probe_failures_total", {"platform": platform})

        joined = " | ".join(errors)
        label = f"{platform}:{social_input.handle}"
        if NO_BRIDGE_MARKER in joined:
            reason = "no_bridge"
            error: DiscoveryFailedError = NoBridgeAvailableError(
                f"No RSS-Bridge bridge found for {label}", errors
            )
        else:
            reason = "failed"
            error = DiscoveryFailedError(f"RSS-Bridge discovery failed for {label}. {joined}".strip(), errors)

        self._metrics.increment("social_discovery_failures_total", {"platform": platform, "reason": reason})
        self._metrics.record_event(
            "social_discovery_failed",
            {"platform": platform, "source_key": source_key, "reason": reason, "message": joined},
        )
        self._observe(platform, reason, start)
        logger.warning(f"Bridge discovery failed for {source_key}: {joined}")
        raise error

    async def _find_feed_candidates(self, source_url: str, auth: httpx.BasicAuth | None = None) -> list[str]:
        """Run a findfeed lookup and return validated, de-duplicated candidates."""
        lookup_url = f"{self.bridge_base_url}/"
        params = {"action": "findfeed", "format": "Atom", "url": source_url}
        timeout = self._config.discovery_lookup_timeout_seconds

        try:
            async with asyncio.timeout(timeout):
                response = await self._client.get(
                    lookup_url,
                    params=params,
                    headers={"Accept": JSON_ACCEPT},
                    auth=auth,
                )
        except (TimeoutError, httpx.TimeoutException):
            raise _LookupError(f"findfeed({source_url}) timed out after {int(timeout * 1000)}ms") from None
        except httpx.HTTPError as e:
            raise _LookupError(f"findfeed({source_url}) failed: {e}") from None

        if not response.is_success:
            raise _LookupError(
                f"findfeed({source_url}) -> {response.status_code} {response.reason_phrase} "
                f"{response.text[:_ERROR_BODY_EXCERPT]}".strip()
            )

        if "application/json" not in response.headers.get("content-type", ""):
            raise _LookupError(
                f"findfeed({source_url}) returned non-JSON response: "
                f"{response.text[:_ERROR_BODY_EXCERPT]}".strip()
            )

        try:
            items = _FIND_FEED_RESPONSE.validate_json(response.content)
        except ValidationError:
            raise _LookupError(f"findfeed({source_url}) returned an unexpected JSON shape") from None

        if not items:
            raise _LookupError(f"findfeed({source_url}) returned no feed candidates")

        candidates: list[str] = []
        for item in items:
            if item is None or not item.url:
                continue
            resolved = self.resolve_candidate(item.url)
            if resolved is None:
                logger.warning(f"Discarding findfeed candidate outside bridge origin: {item.url}")
                continue
            if resolved not in candidates:
                candidates.append(resolved)

        if not candidates:
            raise _LookupError(f"findfeed({source_url}) returned no valid bridge URLs")
        return candidates

    async def probe(self, feed_url: str, auth: httpx.BasicAuth | None = None) -> str | None:
        """
        Check that a candidate serves a feed.

        Returns:
            None if the candidate works, otherwise an error description
        """
        timeout = self._config.discovery_probe_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                async with self._client.stream(
                    "GET",
                    feed_url,
                    headers={"Accept": FEED_ACCEPT},
                    auth=auth,
                ) as response:
                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        return (
                            f"probe({feed_url}) -> {response.status_code} {response.reason_phrase} "
                            f"{body[:_ERROR_BODY_EXCERPT]}".strip()
                        )
                    content_type = response.headers.get("content-type", "")
                    if not is_feed_content_type(content_type):
                        return f"probe({feed_url}) returned non-feed content-type: {content_type or 'unknown'}"
                    return None
        except (TimeoutError, httpx.TimeoutException):
            return f"probe({feed_url}) timed out after {int(timeout * 1000)}ms"
        except httpx.HTTPError as e:
            return f"probe({feed_url}) failed: {e}"

    async def discover_medium_feed_url(self, source_url: str) -> str:
        """
        Find a bridge feed for an arbitrary page, preferring MediumBridge.

        Candidates are probed MediumBridge first, then in lexicographic order.

        Raises:
            DiscoveryFailedError: If the lookup fails or every probe fails
        """
        try:
            candidates = await self._find_feed_candidates(source_url)
        except _LookupError as e:
            raise DiscoveryFailedError(str(e), [str(e)]) from None

        prioritized = sorted(
            candidates,
            key=lambda url: (0 if bridge_name_from_url(url) == MEDIUM_BRIDGE else 1, url),
        )

        errors: list[str] = []
        for candidate in prioritized:
            probe_error = await self.probe(candidate)
            if probe_error is None:
                return candidate
            errors.append(probe_error)

        joined = " | ".join(errors)
        raise DiscoveryFailedError(
            f"RSS-Bridge Medium fallback failed for {source_url}. {joined}".strip(), errors
        )

    def _observe(self, platform: str, outcome: str, start: float) -> None:
        collector = self._collector or get_metrics()
        collector.record_discovery(platform, outcome, time.perf_counter() - start)
