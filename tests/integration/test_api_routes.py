"""Integration Tests for the HTTP API

Runs the FastAPI app through ``TestClient`` with the lifespan, so a real
SystemManager starts on the in-memory row store. Both upstream HTTP
services are ``httpx.MockTransport`` handlers: vendor REST always fails
with 500, the streaming cache serves whatever ``cache_bars`` holds.
"""
import httpx
import pytest
from datetime import date, timedelta
from fastapi.testclient import TestClient

from traderpro.config.settings import AlpacaConfig, Settings
from traderpro.logger import logger_manager
from traderpro.main import create_app
from traderpro.managers.system_manager.api import SystemManager
from tests.fixtures.market_data import trading_day_keys
from tests.fixtures.test_database import (
    seed_classifications,
    seed_daily_rows,
    seed_watchlist,
)


@pytest.fixture
def cache_bars():
    """Candles the mocked streaming cache returns, per symbol."""
    return {}


@pytest.fixture
def client(store_engine, cache_bars):
    def alpaca_handler(request):
        return httpx.Response(500, text="upstream exploded")

    def cache_handler(request):
        symbol = request.url.params["symbol"]
        return httpx.Response(200, json={"ok": True, "candles": cache_bars.get(symbol, []), "meta": {}})

    app_settings = Settings(ALPACA=AlpacaConfig(api_key_id="key", api_secret_key="secret"))
    system_manager = SystemManager(
        app_settings,
        engine=store_engine,
        alpaca_http=httpx.AsyncClient(transport=httpx.MockTransport(alpaca_handler)),
        cache_http=httpx.AsyncClient(transport=httpx.MockTransport(cache_handler)),
    )
    app = create_app(app_settings, system_manager=system_manager)
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["system"]["state"] == "running"

    def test_not_running_without_lifespan(self):
        app = create_app(Settings())
        response = TestClient(app).get("/api/market/candles/window", params={"target": "SYMBOL"})
        assert response.status_code == 503


# ============================================================================
# Candle windows
# ============================================================================

class TestCandleWindowRoute:

    def test_missing_target_is_bad_request(self, client):
        response = client.get("/api/market/candles/window", params={"range": "1D", "res": "5m"})

        assert response.status_code == 400
        assert response.json()["ok"] is False
        assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_durable_candles(self, client, session_factory):
        today = date.today()
        days = [(today - timedelta(days=n)).isoformat() for n in (10, 9, 8)]
        seed_daily_rows(session_factory, "AAPL", [(d, 100.0 + i, 1000.0) for i, d in enumerate(days)])

        response = client.get(
            "/api/market/candles/window",
            params={"target": "SYMBOL", "symbol": "aapl", "range": "3M", "res": "1d"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert [c["close"] for c in body["candles"]] == [100.0, 101.0, 102.0]
        assert body["meta"]["source"] == "durable_db"
        assert body["meta"]["symbol"] == "AAPL"

    def test_every_source_failing_is_bad_gateway(self, client):
        response = client.get(
            "/api/market/candles/window",
            params={"target": "SYMBOL", "symbol": "AAPL", "range": "1D", "res": "5m"},
        )

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "UPSTREAM_ERROR"
        assert error["details"]["fallbackReason"] == "NO_DATA"
        assert error["details"]["restError"]["status"] == 500


# ============================================================================
# Industry posture, pressure, sparklines and intraday breadth
# ============================================================================

class TestIndustryRoutes:

    def test_cache_only_posture(self, client, session_factory):
        seed_watchlist(session_factory, "u1", "core", ["AAPL"])
        seed_classifications(session_factory, {"AAPL": ("TECH", "TEC")})

        response = client.get("/api/market/industry-posture", params={"ownerUserId": "u1", "cacheOnly": "1"})

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "classification_only"
        assert body["reason"] == "CACHE_ONLY"
        assert body["items"][0]["industryCode"] == "TECH"

    def test_posture_without_owner(self, client):
        response = client.get("/api/market/industry-posture")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MISSING_OWNER_USER_ID"

    def test_pressure_requires_industries(self, client):
        response = client.post("/api/realtime/industry-pressure", json={"res": "5m", "industries": []})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MISSING_INDUSTRIES"

    def test_pressure_from_cached_bars(self, client, cache_bars):
        cache_bars["AAPL"] = [
            {"time": 1_720_531_800_000, "open": 100, "high": 100, "low": 100, "close": 100, "volume": 1000},
            {"time": 1_720_532_100_000, "open": 100, "high": 101, "low": 100, "close": 101, "volume": 1000},
        ]

        response = client.post(
            "/api/realtime/industry-pressure",
            json={"industries": [{"industryCode": "TECH", "symbols": ["AAPL"]}]},
        )

        assert response.status_code == 200
        tech = response.json()["byIndustry"]["TECH"]
        assert tech["dir"] == "UP"
        assert tech["symbolsOk"] == 1

    def test_rotation_sparklines(self, client, session_factory, calendar):
        last_session = calendar.get_previous_trading_day(date.today())
        keys = trading_day_keys(calendar, last_session.isoformat(), 3)
        seed_daily_rows(session_factory, "AAPL", [(k, c, 1000.0) for k, c in zip(keys, [100.0, 101.0, 102.01])])

        response = client.get(
            "/api/market/industry-rotation-sparklines",
            params={"industryCode": "tech", "symbols": "aapl,msft", "ownerUserId": "u1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["meta"]["industryCode"] == "TECH"
        assert body["axis"]["days"] == keys
        assert [p["pct"] for p in body["seriesBySymbol"]["AAPL"]["points"]] == [None, pytest.approx(0.01), pytest.approx(0.01)]
        assert body["seriesBySymbol"]["MSFT"]["coverage"] == 0.0
        assert body["industry"]["points"][-1]["pct"] == pytest.approx(0.01)

    def test_sparklines_require_symbols(self, client):
        response = client.get(
            "/api/market/industry-rotation-sparklines",
            params={"industryCode": "TECH", "ownerUserId": "u1"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MISSING_SYMBOLS"

    def test_intraday_breadth_from_cached_bars(self, client, cache_bars):
        cache_bars["AAPL"] = [
            {"time": 1_720_531_800_000, "open": 100, "high": 100, "low": 100, "close": 100, "volume": 1000},
            {"time": 1_720_532_100_000, "open": 100, "high": 101, "low": 100, "close": 101, "volume": 1000},
        ]

        response = client.get("/api/realtime/industry-intraday", params={"symbols": "aapl,msft"})

        assert response.status_code == 200
        body = response.json()
        assert body["meta"] == {"res": "5m", "symbolsRequested": 2, "symbolsOk": 1}
        assert body["rows"][0]["symbol"] == "AAPL"
        assert body["rows"][0]["pctSinceOpen"] == pytest.approx(0.01)
        assert body["summary"]["breadth"]["green"] == 1
        assert [e["symbol"] for e in body["errors"]] == ["MSFT"]

    def test_intraday_requires_symbols(self, client):
        response = client.get("/api/realtime/industry-intraday")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MISSING_SYMBOLS"


# ============================================================================
# Realtime adapter and admin
# ============================================================================

class TestRealtimeRoutes:

    def test_state_snapshot(self, client):
        response = client.get("/api/realtime/state")

        assert response.status_code == 200
        state = response.json()["state"]
        assert state["connectionState"] == "disconnected"
        assert state["lastTickBySymbol"] == {}

    def test_tracked_symbols(self, client):
        response = client.put("/api/realtime/tracked-symbols", json={"symbols": ["aapl", "msft"]})

        body = response.json()
        assert body["trackedSymbols"] == ["AAPL", "MSFT"]
        assert body["subscribe"] == ["AAPL", "MSFT"]

        body = client.put("/api/realtime/tracked-symbols", json={"symbols": ["MSFT"]}).json()
        assert body["unsubscribe"] == ["AAPL"]
        assert body["subscribe"] == []


class TestAdminRoutes:

    def test_status(self, client):
        body = client.get("/api/admin/status").json()

        assert body["state"] == "running"
        assert set(body["breakers"]) == {"store", "alpaca_rest"}
        assert body["realtime"] == "disconnected"
        assert "industryPosture" in body["caches"]

    def test_log_level(self, client):
        original = logger_manager.get_level()
        try:
            response = client.post("/api/admin/log-level", json={"level": "debug"})
            assert response.status_code == 200
            assert response.json()["level"] == "DEBUG"
            assert client.get("/api/admin/log-level").json()["level"] == "DEBUG"
        finally:
            logger_manager.set_level(original)

    def test_invalid_log_level(self, client):
        response = client.post("/api/admin/log-level", json={"level": "bogus"})
        assert response.status_code == 400
