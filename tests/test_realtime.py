"""
test_realtime.py — Tests for the /api/v1/realtime query surface.

The runtime installed by the `client` fixture is never started; each test
drives an aggregation cycle by hand so results are deterministic.
"""

from unittest.mock import patch

import pytest

BASE = "/api/v1/realtime"


@pytest.fixture()
async def loaded(client, runtime):
    """Client with one completed aggregation cycle in the store."""
    await runtime.aggregator.run_cycle()
    return client


# ── Before the first cycle ────────────────────────────────────────────────────

class TestNoSnapshot:
    @pytest.mark.parametrize("path", [
        "/data", "/weather-alerts", "/earthquakes", "/social-alerts", "/news-alerts", "/stats",
    ])
    async def test_returns_404(self, client, path):
        r = await client.get(BASE + path)
        assert r.status_code == 404

    async def test_health_is_degraded(self, client):
        r = await client.get(f"{BASE}/health")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "degraded"
        assert data["last_update"] is None

    async def test_503_without_runtime(self, client):
        from disaster_hub.main import app

        app.state.runtime = None
        r = await client.get(f"{BASE}/data")
        assert r.status_code == 503


# ── Snapshot views ────────────────────────────────────────────────────────────

class TestViews:
    async def test_data_returns_whole_snapshot(self, loaded):
        body = (await loaded.get(f"{BASE}/data")).json()
        assert body["success"] is True
        data = body["data"]
        assert data["total_alerts"] == sum(
            len(data[k]) for k in ("weather_alerts", "earthquakes", "social_media_alerts", "news_alerts")
        )
        assert data["weather_alerts"][0]["kind"] == "weather"

    async def test_weather_severity_filter(self, loaded):
        body = (await loaded.get(f"{BASE}/weather-alerts?severity=severe")).json()
        assert body["total"] == 1
        assert body["alerts"][0]["severity"] == "severe"

    async def test_weather_rejects_unknown_severity(self, loaded):
        r = await loaded.get(f"{BASE}/weather-alerts?severity=apocalyptic")
        assert r.status_code == 422

    async def test_earthquakes_sorted_strongest_first(self, loaded):
        body = (await loaded.get(f"{BASE}/earthquakes")).json()
        magnitudes = [e["magnitude"] for e in body["earthquakes"]]
        assert magnitudes == sorted(magnitudes, reverse=True)

    async def test_earthquake_min_magnitude(self, loaded):
        body = (await loaded.get(f"{BASE}/earthquakes?min_magnitude=5")).json()
        assert [e["magnitude"] for e in body["earthquakes"]] == [5.4]
        assert body["filters"]["min_magnitude"] == 5

    async def test_social_alerts_filters(self, loaded):
        body = (await loaded.get(f"{BASE}/social-alerts?min_urgency=4&verified=true")).json()
        assert body["alerts"]
        for alert in body["alerts"]:
            assert alert["urgency_score"] >= 4
            assert alert["verified"] is True
        scores = [a["urgency_score"] for a in body["alerts"]]
        assert scores == sorted(scores, reverse=True)

    async def test_social_alerts_limit(self, loaded):
        body = (await loaded.get(f"{BASE}/social-alerts?limit=2")).json()
        assert len(body["alerts"]) == 2
        assert body["total"] >= 2

    async def test_news_newest_first(self, loaded):
        body = (await loaded.get(f"{BASE}/news-alerts")).json()
        published = [a["published_at"] for a in body["alerts"]]
        assert published == sorted(published, reverse=True)

    async def test_news_severity_filter(self, loaded):
        body = (await loaded.get(f"{BASE}/news-alerts?severity=high")).json()
        assert body["total"] == 1


# ── Stats / health ────────────────────────────────────────────────────────────

class TestStats:
    async def test_breakdown_matches_snapshot(self, loaded, runtime):
        snapshot = runtime.store.get()
        body = (await loaded.get(f"{BASE}/stats")).json()

        assert body["total_alerts"] == snapshot.total_alerts
        assert body["high_priority_count"] == snapshot.high_priority_count
        assert body["breakdown"]["earthquakes"] == len(snapshot.earthquakes)
        assert body["severity_breakdown"]["earthquakes"]["strong"] == 1
        assert body["severity_breakdown"]["earthquakes"]["light"] == 1
        assert body["severity_breakdown"]["weather"]["severe"] == 1
        assert body["data_freshness_ms"] >= 0

    async def test_health_healthy_after_cycle(self, loaded):
        body = (await loaded.get(f"{BASE}/health")).json()
        assert body["status"] == "healthy"
        assert body["services"]["aggregator"] == "stopped"
        assert body["services"]["change_feed"] == "memory"
        assert body["services"]["database"] == "disconnected"
        assert body["services"]["connections"] == 0

    async def test_health_degraded_when_stale(self, loaded):
        from disaster_hub.core.config import settings

        with patch.object(settings, "stale_after_seconds", -1):
            body = (await loaded.get(f"{BASE}/health")).json()
        assert body["status"] == "degraded"


# ── Refresh ───────────────────────────────────────────────────────────────────

class TestRefresh:
    async def test_refresh_publishes_snapshot(self, client, runtime):
        assert runtime.store.get() is None
        r = await client.post(f"{BASE}/refresh")

        assert r.status_code == 200
        body = r.json()
        assert body["success"] is True
        assert body["data"]["total_alerts"] == runtime.store.get().total_alerts

    async def test_refresh_is_rate_limited(self, client):
        from disaster_hub.core.rate_limit import limiter

        with patch.object(limiter._limiter, "hit", return_value=False):
            r = await client.post(f"{BASE}/refresh")
        assert r.status_code == 429
