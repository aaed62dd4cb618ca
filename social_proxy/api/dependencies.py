"""
Dependency injection for FastAPI endpoints.

All in-memory stores (rate buckets, caches, in-flight registries) are created
once per process here and shared by every request.
"""

import httpx

from social_proxy import __version__
from social_proxy.config.settings import get_settings
from social_proxy.reader.client import FeedReaderClient, RetryConfig
from social_proxy.social.bridge import BridgeDiscovery
from social_proxy.social.cache import ProxyResponseCache, TTLCache
from social_proxy.social.config import SocialConfig
from social_proxy.social.metrics import SocialMetrics, get_social_metrics
from social_proxy.social.proxy import SocialFeedProxy
from social_proxy.social.rate_limiter import FixedWindowRateLimiter
from social_proxy.social.service import SocialFeedCreator
from social_proxy.social.token import SocialFeedTokenCodec

USER_AGENT = f"social-feed-proxy/{__version__}"

# Global instances (initialized on first request)
_social_config: SocialConfig | None = None
_http_client: httpx.AsyncClient | None = None
_rate_limiter: FixedWindowRateLimiter | None = None
_proxy_cache: ProxyResponseCache | None = None
_discovery_cache: TTLCache[str] | None = None
_token_codec: SocialFeedTokenCodec | None = None
_bridge_discovery: BridgeDiscovery | None = None
_feed_proxy: SocialFeedProxy | None = None
_feed_reader: FeedReaderClient | None = None
_feed_creator: SocialFeedCreator | None = None


def get_social_config() -> SocialConfig:
    global _social_config
    if _social_config is None:
        _social_config = SocialConfig()
    return _social_config


def get_metrics_recorder() -> SocialMetrics:
    return get_social_metrics()


def create_http_client() -> httpx.AsyncClient:
    """
    Outbound client for RSS-Bridge and upstream feeds.

    httpx timeouts are disabled; each call is bounded by the matching
    SOCIAL_*_TIMEOUT_SECONDS setting through asyncio.timeout.
    """
    return httpx.AsyncClient(
        timeout=None,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    )


async def get_http_client() -> httpx.AsyncClient:
    """Shared outbound client for RSS-Bridge and upstream feeds."""
    global _http_client
    if _http_client is None:
        _http_client = create_http_client()
    return _http_client


def get_rate_limiter() -> FixedWindowRateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = FixedWindowRateLimiter()
    return _rate_limiter


def get_proxy_cache() -> ProxyResponseCache:
    global _proxy_cache
    if _proxy_cache is None:
        _proxy_cache = ProxyResponseCache()
    return _proxy_cache


def get_discovery_cache() -> TTLCache[str]:
    global _discovery_cache
    if _discovery_cache is None:
        _discovery_cache = TTLCache()
    return _discovery_cache


def get_token_codec() -> SocialFeedTokenCodec:
    """
    Get the token codec.

    Raises ConfigurationError (503) until SOCIAL_TOKEN_SECRET is set; the
    codec is only cached once construction succeeds.
    """
    global _token_codec
    if _token_codec is None:
        _token_codec = SocialFeedTokenCodec(get_social_config().token_secret_value)
    return _token_codec


async def get_bridge_discovery() -> BridgeDiscovery:
    global _bridge_discovery
    if _bridge_discovery is None:
        _bridge_discovery = BridgeDiscovery(
            get_social_config(),
            await get_http_client(),
            cache=get_discovery_cache(),
        )
    return _bridge_discovery


async def get_feed_proxy() -> SocialFeedProxy:
    global _feed_proxy
    if _feed_proxy is None:
        discovery = await get_bridge_discovery()
        _feed_proxy = SocialFeedProxy(
            get_social_config(),
            get_token_codec(),
            await get_http_client(),
            is_bridge_feed_url=discovery.is_bridge_feed_url,
            limiter=get_rate_limiter(),
            cache=get_proxy_cache(),
        )
    return _feed_proxy


async def get_feed_reader() -> FeedReaderClient | None:
    """Feed reader client, or None when MINIFLUX_* is not configured."""
    global _feed_reader
    settings = get_settings()
    if not settings.miniflux_configured:
        return None
    if _feed_reader is None:
        _feed_reader = FeedReaderClient(
            settings.miniflux_base_url,
            settings.miniflux_api_token,
            retry_config=RetryConfig(
                max_retries=settings.max_http_retries,
                max_backoff_seconds=settings.max_backoff_seconds,
            ),
            timeout=settings.miniflux_timeout_seconds,
            http_client=await get_http_client(),
        )
    return _feed_reader


async def get_feed_creator() -> SocialFeedCreator:
    global _feed_creator
    if _feed_creator is None:
        _feed_creator = SocialFeedCreator(
            get_social_config(),
            get_token_codec(),
            await get_bridge_discovery(),
            get_rate_limiter(),
            reader=await get_feed_reader(),
        )
    return _feed_creator


def get_store_sizes() -> dict[str, int]:
    """Entry counts of the process-wide stores that exist so far."""
    sizes = {
        "rate_buckets": len(_rate_limiter) if _rate_limiter is not None else 0,
        "proxy_cache": len(_proxy_cache) if _proxy_cache is not None else 0,
        "discovery_cache": len(_discovery_cache) if _discovery_cache is not None else 0,
        "in_flight": 0,
    }
    if _feed_proxy is not None:
        sizes["in_flight"] += _feed_proxy.in_flight
    if _bridge_discovery is not None:
        sizes["in_flight"] += _bridge_discovery.in_flight
    return sizes


async def cleanup_dependencies() -> None:
    """Close the shared HTTP client and drop all process-wide state."""
    global _social_config, _http_client, _rate_limiter, _proxy_cache, _discovery_cache
    global _token_codec, _bridge_discovery, _feed_proxy, _feed_reader, _feed_creator

    if _http_client is not None:
        await _http_client.aclose()

    _social_config = None
    _http_client = None
    _rate_limiter = None
    _proxy_cache = None
    _discovery_cache = None
    _token_codec = None
    _bridge_discovery = None
    _feed_proxy = None
    _feed_reader = None
    _feed_creator = None
