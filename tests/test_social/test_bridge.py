"""Tests for RSS-Bridge discovery."""

import asyncio

import httpx
import pytest
import respx

from social_proxy.social.bridge import (
    BridgeDiscovery,
    BridgeRanking,
    bridge_name_from_url,
    is_feed_content_type,
    profile_urls,
)
from social_proxy.social.cache import TTLCache
from social_proxy.social.config import SocialConfig
from social_proxy.social.errors import (
    ConfigurationError,
    DiscoveryFailedError,
    NoBridgeAvailableError,
)
from social_proxy.social.schemas import NormalizedSocialInput, Platform

BRIDGE = "http://bridge.test"
ATOM = {"content-type": "application/atom+xml; charset=utf-8"}

V2_URL = f"{BRIDGE}/?action=display&bridge=TwitterV2Bridge&context=By+username&u=jack&format=Atom"
NITTER_URL = f"{BRIDGE}/?action=display&bridge=NitterBridge&context=By+username&u=jack&format=Atom"


def _findfeed(*urls: str) -> httpx.Response:
    return httpx.Response(200, json=[{"url": url, "bridgeMeta": {"name": "x"}} for url in urls])


def _copy(response: httpx.Response) -> httpx.Response:
    return httpx.Response(response.status_code, headers=response.headers, content=response.content)


class BridgeStub:
    """Routes fake RSS-Bridge requests by ``action`` and records them."""

    def __init__(self, findfeed, probes: dict[str, httpx.Response] | None = None):
        self.findfeed = findfeed
        self.probes = probes or {}
        self.lookups: list[str] = []
        self.probed: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.params.get("action") == "findfeed":
            self.lookups.append(request.url.params["url"])
            if callable(self.findfeed):
                return self.findfeed(request)
            return _copy(self.findfeed)
        name = bridge_name_from_url(str(request.url))
        self.probed.append(name)
        template = self.probes.get(name)
        if template is None:
            return httpx.Response(404)
        return _copy(template)


@pytest.fixture
def discovery_factory(social_config, social_metrics, prometheus_collector, clock):
    def build(client: httpx.AsyncClient, config: SocialConfig | None = None, **kwargs) -> BridgeDiscovery:
        return BridgeDiscovery(
            config or social_config,
            client,
            cache=TTLCache(clock=clock),
            metrics=social_metrics,
            collector=prometheus_collector,
            **kwargs,
        )
    return build


class TestHelpers:
    def test_bridge_name_from_url(self):
        assert bridge_name_from_url(V2_URL) == "TwitterV2Bridge"
        assert bridge_name_from_url(f"{BRIDGE}/?action=display") == ""

    @pytest.mark.parametrize(
        "content_type,expected",
        [
            ("application/atom+xml", True),
            ("application/rss+xml; charset=utf-8", True),
            ("text/xml", True),
            ("text/html", False),
            ("application/json", False),
            ("", False),
        ],
    )
    def test_is_feed_content_type(self, content_type, expected):
        assert is_feed_content_type(content_type) is expected

    def test_profile_urls(self):
        twitter = NormalizedSocialInput(platform=Platform.TWITTER, handle="jack")
        instagram = NormalizedSocialInput(platform=Platform.INSTAGRAM, handle="someone")

        assert profile_urls(twitter) == ["https://twitter.com/jack", "https://x.com/jack"]
        assert profile_urls(instagram) == ["https://www.instagram.com/someone/"]


class TestBridgeRanking:
    def test_preferred_order(self):
        ranking = BridgeRanking()
        candidates = [
            f"{BRIDGE}/?bridge=FarsideNitterBridge",
            f"{BRIDGE}/?bridge=NitterBridge",
            f"{BRIDGE}/?bridge=TwitterBridge",
            f"{BRIDGE}/?bridge=TwitterV2Bridge",
        ]

        ranked = ranking.sort(Platform.TWITTER, candidates)

        assert [bridge_name_from_url(url) for url in ranked] == [
            "TwitterV2Bridge",
            "TwitterBridge",
            "NitterBridge",
            "FarsideNitterBridge",
        ]

    def test_unranked_last_and_stable(self):
        ranking = BridgeRanking()
        candidates = [
            f"{BRIDGE}/?bridge=ZetaBridge",
            f"{BRIDGE}/?bridge=InstagramBridge",
            f"{BRIDGE}/?bridge=AlphaBridge",
            f"{BRIDGE}/?bridge=ImgsedBridge",
        ]

        ranked = ranking.sort(Platform.INSTAGRAM, candidates)

        assert [bridge_name_from_url(url) for url in ranked] == [
            "ImgsedBridge",
            "InstagramBridge",
            "ZetaBridge",
            "AlphaBridge",
        ]

    def test_injected_preferences(self):
        ranking = BridgeRanking({Platform.TWITTER: ["NitterBridge"]})
        ranked = ranking.sort(Platform.TWITTER, [V2_URL, NITTER_URL])
        assert ranked == [NITTER_URL, V2_URL]


class TestOrigin:
    @pytest.mark.parametrize(
        "url,expected",
        [
            (f"{BRIDGE}/?action=display", True),
            ("http://bridge.test:80/?action=display", True),
            ("http://BRIDGE.test/feed", True),
            ("https://bridge.test/?action=display", False),
            ("http://bridge.test:8080/", False),
            ("http://evil.test/?action=display", False),
            ("/?action=display", False),
            ("not a url", False),
        ],
    )
    def test_is_bridge_feed_url(self, discovery_factory, url, expected):
        discovery = discovery_factory(httpx.AsyncClient())
        assert discovery.is_bridge_feed_url(url) is expected

    def test_unconfigured_bridge_rejects_everything(self, discovery_factory):
        discovery = discovery_factory(httpx.AsyncClient(), SocialConfig(_env_file=None))
        assert not discovery.is_bridge_feed_url(f"{BRIDGE}/?action=display")

    def test_resolve_relative_candidate(self, discovery_factory):
        discovery = discovery_factory(httpx.AsyncClient())
        assert discovery.resolve_candidate("?action=display&bridge=NitterBridge") == (
            f"{BRIDGE}/?action=display&bridge=NitterBridge"
        )
        assert discovery.resolve_candidate("http://evil.test/?bridge=NitterBridge") is None


class TestDiscover:
    @pytest.mark.asyncio
    @respx.mock
    async def test_probes_v2_before_nitter_and_caches_fallback(
        self, discovery_factory, twitter_input, social_metrics
    ):
        """V2 fails its probe, Nitter answers; Nitter is returned and cached."""
        stub = BridgeStub(
            _findfeed(NITTER_URL, V2_URL),
            probes={
                "TwitterV2Bridge": httpx.Response(503, text="Service Unavailable"),
                "NitterBridge": httpx.Response(200, headers=ATOM, text="<feed/>"),
            },
        )
        respx.get(f"{BRIDGE}/").mock(side_effect=stub)

        async with httpx.AsyncClient() as client:
            discovery = discovery_factory(client)
            first = await discovery.discover(twitter_input)
            second = await discovery.discover(twitter_input)

        assert first == NITTER_URL
        assert second == NITTER_URL
        assert stub.probed == ["TwitterV2Bridge", "NitterBridge"]
        assert stub.lookups == ["https://twitter.com/jack"]
        assert social_metrics.get("social_discovery_cache_hits_total", {"platform": "twitter"}) == 1
        assert social_metrics.get(
            "social_discovery_success_total", {"platform": "twitter", "bridge": "NitterBridge"}
        ) == 1

    @pytest.mark.asyncio
    async def test_concurrent_discoveries_share_one_run(self, discovery_factory, twitter_input, social_metrics):
        stub = BridgeStub(_findfeed(V2_URL), probes={"TwitterV2Bridge": httpx.Response(200, headers=ATOM)})

        async def slow_bridge(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.05)
            return stub(request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(slow_bridge)) as client:
            discovery = discovery_factory(client)
            results = await asyncio.gather(*(discovery.discover(twitter_input) for _ in range(4)))

        assert results == [V2_URL] * 4
        assert stub.lookups == ["https://twitter.com/jack"]
        assert stub.probed == ["TwitterV2Bridge"]
        assert social_metrics.get("social_discovery_requests_total", {"platform": "twitter"}) == 1
        assert social_metrics.get("social_discovery_coalesced_total", {"platform": "twitter"}) == 3
        assert discovery.in_flight == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_falls_back_to_x_dot_com(self, discovery_factory, twitter_input):
        def findfeed(request: httpx.Request) -> httpx.Response:
            if request.url.params["url"] == "https://twitter.com/jack":
                return httpx.Response(200, json=[])
            return _findfeed(V2_URL)

        stub = BridgeStub(findfeed, probes={"TwitterV2Bridge": httpx.Response(200, headers=ATOM)})
        respx.get(f"{BRIDGE}/").mock(side_effect=stub)

        async with httpx.AsyncClient() as client:
            result = await discovery_factory(client).discover(twitter_input)

        assert result == V2_URL
        assert stub.lookups == ["https://twitter.com/jack", "https://x.com/jack"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_lookup_sends_findfeed_params_and_basic_auth(self, discovery_factory):
        stub = BridgeStub(_findfeed(V2_URL), probes={"TwitterV2Bridge": httpx.Response(200, headers=ATOM)})
        route = respx.get(f"{BRIDGE}/").mock(side_effect=stub)
        social_input = NormalizedSocialInput(
            platform=Platform.TWITTER,
            handle="jack",
            login_username="user",
            login_password="pass",
        )

        async with httpx.AsyncClient() as client:
            await discovery_factory(client).discover(social_input)

        lookup = route.calls[0].request
        assert lookup.url.params["action"] == "findfeed"
        assert lookup.url.params["format"] == "Atom"
        assert "application/json" in lookup.headers["accept"]
        for call in route.calls:
            assert call.request.headers["authorization"] == "Basic dXNlcjpwYXNz"

    @pytest.mark.asyncio
    @respx.mock
    async def test_foreign_candidates_discarded(self, discovery_factory, twitter_input):
        stub = BridgeStub(_findfeed(
            "http://evil.test/?action=display&bridge=TwitterV2Bridge",
            "?action=display&bridge=NitterBridge&u=jack",
        ), probes={"NitterBridge": httpx.Response(200, headers=ATOM)})
        respx.get(f"{BRIDGE}/").mock(side_effect=stub)
        evil = respx.get("http://evil.test/").mock(return_value=httpx.Response(200, headers=ATOM))

        async with httpx.AsyncClient() as client:
            result = await discovery_factory(client).discover(twitter_input)

        assert result == f"{BRIDGE}/?action=display&bridge=NitterBridge&u=jack"
        assert not evil.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_feed_content_type_is_probe_failure(self, discovery_factory, twitter_input):
        stub = BridgeStub(
            _findfeed(V2_URL),
            probes={"TwitterV2Bridge": httpx.Response(200, headers={"content-type": "text/html"})},
        )
        respx.get(f"{BRIDGE}/").mock(side_effect=stub)

        async with httpx.AsyncClient() as client:
            with pytest.raises(DiscoveryFailedError) as exc_info:
                await discovery_factory(client).discover(twitter_input)

        assert not isinstance(exc_info.value, NoBridgeAvailableError)
        assert any("non-feed content-type: text/html" in e for e in exc_info.value.errors)

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_bridge_found(self, discovery_factory, twitter_input, social_metrics):
        respx.get(f"{BRIDGE}/").mock(return_value=httpx.Response(
            404, text="Exception: No bridge found for given url: https://twitter.com/jack"
        ))

        async with httpx.AsyncClient() as client:
            with pytest.raises(NoBridgeAvailableError) as exc_info:
                await discovery_factory(client).discover(twitter_input)

        assert exc_info.value.status_code == 400
        assert len(exc_info.value.errors) == 2
        assert social_metrics.get(
            "social_discovery_failures_total", {"platform": "twitter", "reason": "no_bridge"}
        ) == 1
        assert social_metrics.recent_events[-1].kind == "social_discovery_failed"

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_lookup(self, discovery_factory, twitter_input):
        respx.get(f"{BRIDGE}/").mock(return_value=httpx.Response(200, text="<html>oops</html>"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(DiscoveryFailedError) as exc_info:
                await discovery_factory(client).discover(twitter_input)

        assert "non-JSON response" in exc_info.value.errors[0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_unexpected_json_shape(self, discovery_factory, twitter_input):
        respx.get(f"{BRIDGE}/").mock(return_value=httpx.Response(200, json={"url": V2_URL}))

        async with httpx.AsyncClient() as client:
            with pytest.raises(DiscoveryFailedError) as exc_info:
                await discovery_factory(client).discover(twitter_input)

        assert "unexpected JSON shape" in exc_info.value.errors[0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_lookup_transport_error(self, discovery_factory, twitter_input):
        respx.get(f"{BRIDGE}/").mock(side_effect=httpx.ConnectError("refused"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(DiscoveryFailedError) as exc_info:
                await discovery_factory(client).discover(twitter_input)

        assert "failed: refused" in exc_info.value.errors[0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_failures_are_not_cached(self, discovery_factory, twitter_input):
        route = respx.get(f"{BRIDGE}/").mock(return_value=httpx.Response(200, json=[]))

        async with httpx.AsyncClient() as client:
            discovery = discovery_factory(client)
            for _ in range(2):
                with pytest.raises(DiscoveryFailedError):
                    await discovery.discover(twitter_input)

        assert route.call_count == 4
        assert len(discovery.cache) == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_cache_expires(self, discovery_factory, twitter_input, clock):
        stub = BridgeStub(_findfeed(V2_URL), probes={"TwitterV2Bridge": httpx.Response(200, headers=ATOM)})
        respx.get(f"{BRIDGE}/").mock(side_effect=stub)

        async with httpx.AsyncClient() as client:
            discovery = discovery_factory(client)
            await discovery.discover(twitter_input)
            clock.advance(600)
            await discovery.discover(twitter_input)

        assert len(stub.lookups) == 2

    @pytest.mark.asyncio
    async def test_requires_bridge_configuration(self, discovery_factory, twitter_input):
        async with httpx.AsyncClient() as client:
            discovery = discovery_factory(client, SocialConfig(_env_file=None))
            with pytest.raises(ConfigurationError):
                await discovery.discover(twitter_input)


class TestDiscoverMedium:
    @pytest.mark.asyncio
    @respx.mock
    async def test_medium_bridge_probed_first(self, discovery_factory):
        medium = f"{BRIDGE}/?action=display&bridge=MediumBridge&context=Profile&uid=someone"
        stub = BridgeStub(
            _findfeed(
                f"{BRIDGE}/?action=display&bridge=CssSelectorBridge",
                f"{BRIDGE}/?action=display&bridge=AtomBridge",
                medium,
            ),
            probes={
                "MediumBridge": httpx.Response(500),
                "AtomBridge": httpx.Response(200, headers=ATOM),
                "CssSelectorBridge": httpx.Response(200, headers=ATOM),
            },
        )
        respx.get(f"{BRIDGE}/").mock(side_effect=stub)

        async with httpx.AsyncClient() as client:
            result = await discovery_factory(client).discover_medium_feed_url("https://medium.com/@someone")

        assert stub.probed == ["MediumBridge", "AtomBridge"]
        assert bridge_name_from_url(result) == "AtomBridge"

    @pytest.mark.asyncio
    @respx.mock
    async def test_all_probes_fail(self, discovery_factory):
        stub = BridgeStub(
            _findfeed(f"{BRIDGE}/?action=display&bridge=MediumBridge"),
            probes={"MediumBridge": httpx.Response(502, text="bad gateway")},
        )
        respx.get(f"{BRIDGE}/").mock(side_effect=stub)

        async with httpx.AsyncClient() as client:
            with pytest.raises(DiscoveryFailedError, match="Medium fallback failed"):
                await discovery_factory(client).discover_medium_feed_url("https://medium.com/@someone")
