"""Shared fixtures for API tests."""

from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from social_proxy.api.app import create_app
from social_proxy.api.auth import verify_api_key
from social_proxy.api.dependencies import (
    get_feed_creator,
    get_feed_proxy,
    get_metrics_recorder,
    get_social_config,
)
from social_proxy.social.cache import ProxyResponseCache, TTLCache
from social_proxy.social.proxy import SocialFeedProxy
from social_proxy.social.rate_limiter import FixedWindowRateLimiter
from social_proxy.social.service import SocialFeedCreator

BRIDGE_FEED = "http://bridge.test/?action=display&bridge=TwitterV2Bridge&u=jack&format=Atom"
FEED_BODY = b"<?xml version='1.0'?><feed xmlns='http://www.w3.org/2005/Atom'/>"


class Upstream:
    """Configurable upstream bridge behind an httpx MockTransport."""

    def __init__(self):
        self.status_code = 200
        self.headers = {"content-type": "application/atom+xml"}
        self.body = FEED_BODY
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        return httpx.Response(self.status_code, headers=self.headers, content=self.body)


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def mock_discovery():
    discovery = AsyncMock()
    discovery.discover = AsyncMock(return_value=BRIDGE_FEED)
    return discovery


@pytest.fixture
def feed_proxy(social_config, codec, upstream, social_metrics, prometheus_collector, clock):
    return SocialFeedProxy(
        social_config,
        codec,
        httpx.AsyncClient(transport=httpx.MockTransport(upstream)),
        is_bridge_feed_url=lambda url: url.startswith("http://bridge.test/"),
        limiter=FixedWindowRateLimiter(clock=clock),
        cache=ProxyResponseCache(TTLCache(clock=clock)),
        metrics=social_metrics,
        collector=prometheus_collector,
    )


@pytest.fixture
def feed_creator(social_config, codec, mock_discovery, social_metrics, clock):
    return SocialFeedCreator(
        social_config,
        codec,
        mock_discovery,
        FixedWindowRateLimiter(clock=clock),
        metrics=social_metrics,
    )


@pytest.fixture
def app(social_config, social_metrics, feed_proxy, feed_creator):
    app = create_app()
    app.dependency_overrides[get_social_config] = lambda: social_config
    app.dependency_overrides[get_metrics_recorder] = lambda: social_metrics
    app.dependency_overrides[get_feed_proxy] = lambda: feed_proxy
    app.dependency_overrides[get_feed_creator] = lambda: feed_creator
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """FastAPI TestClient with dependency overrides."""
    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    with TestClient(app) as c:
        yield c
