"""Pytest fixtures for social feed proxy tests."""

import pytest
from prometheus_client import CollectorRegistry

from social_proxy.config.settings import Settings
from social_proxy.observability.metrics import MetricsCollector
from social_proxy.social.config import SocialConfig
from social_proxy.social.metrics import SocialMetrics
from social_proxy.social.schemas import NormalizedSocialInput, Platform, SocialFeedTokenPayload
from social_proxy.social.token import SocialFeedTokenCodec

BRIDGE_BASE = "http://bridge.test"
FEEDS_BASE = "https://feeds.test"
TOKEN_SECRET = "test-token-secret"
METRICS_TOKEN = "metrics-secret"


class FakeClock:
    """Manually advanced monotonic clock for time-dependent stores."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        _env_file=None,
        environment="development",
        log_level="DEBUG",
    )


@pytest.fixture
def social_config() -> SocialConfig:
    """Fully configured social settings pointing at fake hosts."""
    return SocialConfig(
        _env_file=None,
        bridge_base_url=BRIDGE_BASE,
        feeds_base_url=FEEDS_BASE,
        token_secret=TOKEN_SECRET,
        metrics_token=METRICS_TOKEN,
        discovery_lookup_timeout_seconds=1,
        discovery_probe_timeout_seconds=0.5,
        proxy_fetch_timeout_seconds=1,
    )


@pytest.fixture
def social_metrics() -> SocialMetrics:
    """Isolated metrics recorder."""
    return SocialMetrics()


@pytest.fixture
def prometheus_collector() -> MetricsCollector:
    """Prometheus collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def codec() -> SocialFeedTokenCodec:
    return SocialFeedTokenCodec(TOKEN_SECRET)


@pytest.fixture
def twitter_input() -> NormalizedSocialInput:
    return NormalizedSocialInput(platform=Platform.TWITTER, handle="jack")


@pytest.fixture
def sample_payload() -> SocialFeedTokenPayload:
    """Token payload for an anonymous Twitter feed on the fake bridge."""
    return SocialFeedTokenPayload(
        platform=Platform.TWITTER,
        handle="jack",
        bridge_feed_url=f"{BRIDGE_BASE}/?action=display&bridge=TwitterV2Bridge&u=jack&format=Atom",
    )
