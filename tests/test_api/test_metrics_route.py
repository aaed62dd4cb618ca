"""Tests for the social metrics snapshot endpoint."""

import pytest
from fastapi.testclient import TestClient

from social_proxy.api.dependencies import get_social_config


class TestSocialMetricsRoute:
    def test_disabled_without_token(self, app, social_config):
        config = social_config.model_copy(update={"metrics_token": None})
        app.dependency_overrides[get_social_config] = lambda: config

        with TestClient(app) as client:
            response = client.get("/api/social/metrics", headers={"X-Social-Metrics-Token": "anything"})

        assert response.status_code == 404

    @pytest.mark.parametrize("headers", [{}, {"X-Social-Metrics-Token": "wrong"}])
    def test_rejects_bad_token(self, client, headers):
        response = client.get("/api/social/metrics", headers=headers)

        assert response.status_code == 401

    def test_header_token(self, client, social_metrics):
        social_metrics.increment("social_proxy_requests_total", {"platform": "twitter"})
        social_metrics.record_event("social_proxy_rate_limited", {"scope": "global", "retry_after_seconds": 12})

        response = client.get("/api/social/metrics", headers={"X-Social-Metrics-Token": "metrics-secret"})

        assert response.status_code == 200
        data = response.json()
        assert data["counters"] == {"social_proxy_requests_total|platform=twitter": 1}
        assert data["recent_events"][0]["kind"] == "social_proxy_rate_limited"
        assert data["recent_events"][0]["details"] == {"scope": "global", "retry_after_seconds": 12}
        assert data["started_at"] == social_metrics.started_at

    def test_query_token(self, client):
        response = client.get("/api/social/metrics", params={"token": "metrics-secret"})

        assert response.status_code == 200

    def test_reflects_proxy_traffic(self, client, codec, sample_payload):
        token = codec.encode(sample_payload)
        client.get(f"/api/social/rss/{token}")
        client.get(f"/api/social/rss/{token}")

        counters = client.get(
            "/api/social/metrics", params={"token": "metrics-secret"}
        ).json()["counters"]

        assert counters["social_proxy_requests_total|platform=twitter"] == 2
        assert counters["social_proxy_cache_misses_total|platform=twitter"] == 1
        assert counters["social_proxy_cache_hits_total|platform=twitter"] == 1
        assert counters["social_proxy_upstream_success_total|platform=twitter"] == 1

    def test_blank_header_falls_back_to_query_token(self, client):
        response = client.get(
            "/api/social/metrics",
            params={"token": "metrics-secret"},
            headers={"X-Social-Metrics-Token": "   "},
        )

        assert response.status_code == 200

    def test_wrong_header_not_rescued_by_query_token(self, client):
        response = client.get(
            "/api/social/metrics",
            params={"token": "metrics-secret"},
            headers={"X-Social-Metrics-Token": "wrong"},
        )

        assert response.status_code == 401
