"""Integration Tests for the AnalysisEngine

Industry posture runs end to end against the in-memory row store
(watchlists, holdings, classifications and daily candles). Live pressure
patches the DataManager candle query.
"""
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from traderpro.config.settings import PostureConfig
from traderpro.core.exceptions import BadRequestError, CircuitOpenError, StoreUnavailableError, UpstreamError
from traderpro.managers.analysis_engine.api import AnalysisEngine
from traderpro.models.candles import CandleResult, CanonicalMeta, ErrorResult, SessionWindow
from traderpro.core.enums import CandleSource
from tests.fixtures.market_data import make_candles, trading_day_keys
from tests.fixtures.test_database import (
    seed_classifications,
    seed_daily_rows,
    seed_holding,
    seed_watchlist,
)

NOW = datetime(2024, 7, 12, 22, 0, tzinfo=timezone.utc)


def seed_closes(session_factory, calendar, symbol, closes):
    keys = trading_day_keys(calendar, "2024-07-12", len(closes))
    seed_daily_rows(session_factory, symbol, [(k, c, 1_000_000.0) for k, c in zip(keys, closes)])


@pytest.fixture
def universe(session_factory, calendar):
    """Owner u1: TECH and SEMI via the watchlist, ENERGY via a held position."""
    seed_watchlist(session_factory, "u1", "core", ["AAPL", "MSFT", "NVDA"])
    seed_holding(session_factory, "u1", "XOM", 10)
    seed_holding(session_factory, "u1", "CVX", 0)
    seed_classifications(session_factory, {
        "AAPL": ("TECH", "TEC"),
        "MSFT": ("TECH", "TEC"),
        "NVDA": ("SEMI", "SEM"),
        "XOM": ("ENERGY", "ENR"),
        "CVX": ("ENERGY", "ENR"),
    })
    seed_closes(session_factory, calendar, "QQQ", [100.0] * 11)
    seed_closes(session_factory, calendar, "AAPL", [100.0] * 10 + [102.5])
    seed_closes(session_factory, calendar, "MSFT", [200.0] * 10 + [205.0])
    seed_closes(session_factory, calendar, "NVDA", [50.0] * 11)
    seed_closes(session_factory, calendar, "XOM", [100.0] * 10 + [99.0])


def codes(response):
    return [item["industryCode"] for item in response["items"]]


# ============================================================================
# Industry posture
# ============================================================================

class TestIndustryPosture:

    @pytest.mark.asyncio
    async def test_computed_posture(self, analysis_engine, universe):
        response = await analysis_engine.get_industry_posture("u1", now=NOW)

        assert response["ok"] is True
        assert response["mode"] == "computed"
        assert codes(response) == ["TECH", "ENERGY", "SEMI"]

        tech, energy, semi = response["items"]
        assert tech["symbols"] == ["AAPL", "MSFT"]
        assert tech["dayChangePct"] == pytest.approx(2.5)
        assert tech["relToIndex"] == "OUTPERFORM"
        assert tech["trend5d"] == "UP"
        assert energy["symbols"] == ["XOM"]
        assert energy["dayChangePct"] == pytest.approx(-1.0)
        assert energy["relToIndex"] == "UNDERPERFORM"
        assert semi["relToIndex"] == "INLINE"

    @pytest.mark.asyncio
    async def test_watchlist_narrows_universe(self, analysis_engine, universe):
        response = await analysis_engine.get_industry_posture("u1", watchlist_key="core", now=NOW)
        # Holdings only join the unscoped universe
        assert codes(response) == ["TECH", "SEMI"]

    @pytest.mark.asyncio
    async def test_debug_diagnostics(self, analysis_engine, universe):
        response = await analysis_engine.get_industry_posture("u1", debug=True, now=NOW)

        assert response["debug"]["indexSymbol"] == "QQQ"
        assert response["debug"]["indexSeriesLen"] == 11
        assert len(response["items"][0]["debug"]["sessionKeys"]) == 11
        assert response["items"][0]["debug"]["missingRotationPairs"] == []

    @pytest.mark.asyncio
    async def test_cache_only(self, analysis_engine, universe):
        response = await analysis_engine.get_industry_posture("u1", cache_only=True, now=NOW)

        assert response["mode"] == "classification_only"
        assert response["reason"] == "CACHE_ONLY"
        assert set(codes(response)) == {"TECH", "SEMI", "ENERGY"}
        assert all(item["provenance"] == "classification_only" for item in response["items"])

    @pytest.mark.asyncio
    async def test_missing_owner(self, analysis_engine):
        with pytest.raises(BadRequestError) as exc_info:
            await analysis_engine.get_industry_posture("  ", now=NOW)
        assert exc_info.value.code == "MISSING_OWNER_USER_ID"

    @pytest.mark.asyncio
    async def test_dev_owner_fallback(self, data_manager, session_factory, universe):
        engine = AnalysisEngine(data_manager, session_factory, posture_config=PostureConfig(dev_owner_user_id="u1"))
        response = await engine.get_industry_posture(None, now=NOW)
        assert codes(response) == ["TECH", "ENERGY", "SEMI"]

    @pytest.mark.asyncio
    async def test_unknown_owner_has_no_items(self, analysis_engine, universe):
        response = await analysis_engine.get_industry_posture("nobody", now=NOW)
        assert response == {"ok": True, "mode": "computed", "items": []}

    @pytest.mark.asyncio
    async def test_second_request_served_from_cache(self, analysis_engine, universe):
        first = await analysis_engine.get_industry_posture("u1", now=NOW)
        second = await analysis_engine.get_industry_posture("u1", now=NOW)

        assert second is first
        assert analysis_engine.posture_cache.stats()["hits"] == 1


class TestDegradedPosture:
    """Store failures produce classification-only items, never an error."""

    @pytest.mark.asyncio
    async def test_provider_error(self, analysis_engine, data_manager, universe):
        data_manager.fetch_daily_series = AsyncMock(side_effect=StoreUnavailableError("store is down"))

        response = await analysis_engine.get_industry_posture("u1", debug=True, now=NOW)

        assert response["mode"] == "classification_only"
        assert response["reason"] == "PROVIDER_ERROR"
        assert response["debug"]["providerError"] == "store is down"
        assert response["debug"]["byIndustry"]["TECH"] == {"symbolsTotal": 2}

    @pytest.mark.asyncio
    async def test_provider_error_details_hidden_by_default(self, analysis_engine, data_manager, universe):
        data_manager.fetch_daily_series = AsyncMock(side_effect=StoreUnavailableError("store is down"))

        response = await analysis_engine.get_industry_posture("u1", now=NOW)

        assert response["reason"] == "PROVIDER_ERROR"
        assert "debug" not in response

    @pytest.mark.asyncio
    async def test_circuit_open(self, analysis_engine, data_manager, universe):
        data_manager.fetch_daily_series = AsyncMock(side_effect=CircuitOpenError("store", retry_at=1030.0))

        response = await analysis_engine.get_industry_posture("u1", now=NOW)

        assert response["mode"] == "classification_only"
        assert response["reason"] == "CIRCUIT_OPEN"


# ============================================================================
# Live industry pressure
# ============================================================================

def candle_result(candles):
    window = SessionWindow(start_ms=0, end_ms=0, expected_bars=0)
    meta = CanonicalMeta(source=CandleSource.REALTIME_WS, expected_bars=0, received_bars=len(candles), window=window)
    return CandleResult(candles=candles, meta=meta)


class TestIndustryPressure:

    @pytest.fixture
    def candles_window(self, data_manager):
        def respond(**kwargs):
            if kwargs["symbol"] == "MSFT":
                return ErrorResult(code="UPSTREAM_ERROR", message="no candles")
            return candle_result(make_candles(0, 2, step_ms=300_000, step=1.0))

        data_manager.get_candles_window = AsyncMock(side_effect=respond)
        return data_manager.get_candles_window

    @pytest.mark.asyncio
    async def test_pressure_by_industry(self, analysis_engine, candles_window):
        response = await analysis_engine.get_industry_pressure([
            {"industryCode": "tech", "symbols": ["AAPL", "MSFT"]},
            {"industryCode": "EMPTY", "symbols": []},
        ])

        assert response["ok"] is True
        assert response["meta"]["res"] == "5m"
        assert response["meta"]["symbolsRequested"] == 2
        assert response["byIndustry"]["TECH"] == {"dir": "UP", "mag": 1.0, "symbolsOk": 1, "symbolsTotal": 2}
        assert response["byIndustry"]["EMPTY"]["dir"] == "FLAT"
        assert {"industryCode": "*", "symbol": "MSFT", "code": "UPSTREAM_ERROR", "message": "no candles"} in response["errors"]
        assert any(e["code"] == "NO_SYMBOLS" and e["industryCode"] == "EMPTY" for e in response["errors"])
        candles_window.assert_any_await(target="SYMBOL", symbol="AAPL", range_="1D", res="5m", session="regular")

    @pytest.mark.asyncio
    async def test_raised_symbol_failure_is_listed(self, analysis_engine, data_manager):
        def respond(**kwargs):
            if kwargs["symbol"] == "MSFT":
                raise UpstreamError("malformed body", provider="alpaca_rest")
            return candle_result(make_candles(0, 2, step_ms=300_000, step=1.0))

        data_manager.get_candles_window = AsyncMock(side_effect=respond)

        response = await analysis_engine.get_industry_pressure([{"industryCode": "TECH", "symbols": ["AAPL", "MSFT"]}])

        assert response["ok"] is True
        assert response["byIndustry"]["TECH"]["symbolsOk"] == 1
        assert {"industryCode": "*", "symbol": "MSFT", "code": "UPSTREAM_ERROR", "message": "malformed body"} in response["errors"]

    @pytest.mark.asyncio
    async def test_cached_between_calls(self, analysis_engine, candles_window):
        industries = [{"industryCode": "TECH", "symbols": ["AAPL"]}]
        await analysis_engine.get_industry_pressure(industries, res="15m")
        await analysis_engine.get_industry_pressure(industries, res="15m")
        assert candles_window.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_industries(self, analysis_engine):
        with pytest.raises(BadRequestError) as exc_info:
            await analysis_engine.get_industry_pressure([{"industryCode": "", "symbols": ["AAPL"]}])
        assert exc_info.value.code == "MISSING_INDUSTRIES"


# ============================================================================
# Rotation sparklines
# ============================================================================

class TestRotationSparklines:

    @pytest.mark.asyncio
    async def test_sparklines_from_store(self, analysis_engine, universe):
        response = await analysis_engine.get_industry_rotation_sparklines("tech", "aapl, msft", "u1", now=NOW)

        assert response["ok"] is True
        assert response["meta"]["symbols"] == ["AAPL", "MSFT"]
        assert response["meta"]["asOfDay"] == "2024-07-12"
        assert len(response["axis"]["days"]) == 11
        assert response["seriesBySymbol"]["MSFT"]["points"][0]["pct"] is None
        assert response["seriesBySymbol"]["MSFT"]["points"][-1]["pct"] == pytest.approx(0.025)
        assert response["industry"]["points"][-1]["pct"] == pytest.approx(0.025)
        assert response["industry"]["points"][1]["pct"] == 0.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("industry_code,symbols,owner,code", [
        ("", "AAPL", "u1", "MISSING_INDUSTRY_CODE"),
        ("TECH", " , ", "u1", "MISSING_SYMBOLS"),
        ("TECH", "AAPL", None, "MISSING_OWNER_USER_ID"),
    ])
    async def test_missing_parameters(self, analysis_engine, industry_code, symbols, owner, code):
        with pytest.raises(BadRequestError) as exc_info:
            await analysis_engine.get_industry_rotation_sparklines(industry_code, symbols, owner, now=NOW)
        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_store_failure_is_structured_and_not_cached(self, analysis_engine, data_manager):
        data_manager.fetch_daily_series = AsyncMock(side_effect=StoreUnavailableError("store is down"))

        first = await analysis_engine.get_industry_rotation_sparklines("TECH", "AAPL", "u1", now=NOW)
        await analysis_engine.get_industry_rotation_sparklines("TECH", "AAPL", "u1", now=NOW)

        assert first == {"ok": False, "error": {"code": "DAILY_CLOSES_UNAVAILABLE", "message": "store is down"}}
        assert data_manager.fetch_daily_series.await_count == 2

    @pytest.mark.asyncio
    async def test_circuit_open_is_structured(self, analysis_engine, data_manager):
        data_manager.fetch_daily_series = AsyncMock(side_effect=CircuitOpenError("store", retry_at=1030.0))

        response = await analysis_engine.get_industry_rotation_sparklines("TECH", "AAPL", "u1", now=NOW)

        assert response["ok"] is False
        assert response["error"]["code"] == "DAILY_CLOSES_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_cached_between_calls(self, analysis_engine, universe):
        first = await analysis_engine.get_industry_rotation_sparklines("TECH", "AAPL,MSFT", "u1", now=NOW)
        second = await analysis_engine.get_industry_rotation_sparklines("TECH", "MSFT,AAPL,AAPL", "u1", now=NOW)
        third = await analysis_engine.get_industry_rotation_sparklines("TECH", "AAPL,MSFT", "u1", now=NOW)

        assert third is first
        assert second is not first


# ============================================================================
# Intraday breadth
# ============================================================================

class TestIndustryIntraday:

    @pytest.fixture
    def candles_window(self, data_manager):
        def respond(**kwargs):
            symbol = kwargs["symbol"]
            if symbol == "MSFT":
                return ErrorResult(code="UPSTREAM_ERROR", message="no candles")
            if symbol == "NVDA":
                raise UpstreamError("malformed body", provider="alpaca_rest")
            step = -1.0 if symbol == "AMD" else 1.0
            return candle_result(make_candles(0, 2, step_ms=300_000, step=step))

        data_manager.get_candles_window = AsyncMock(side_effect=respond)
        return data_manager.get_candles_window

    @pytest.mark.asyncio
    async def test_breadth(self, analysis_engine, candles_window):
        response = await analysis_engine.get_industry_intraday("aapl,msft,nvda,amd,aapl")

        assert response["ok"] is True
        assert response["meta"] == {"res": "5m", "symbolsRequested": 4, "symbolsOk": 2}
        assert response["summary"]["breadth"]["green"] == 1
        assert response["summary"]["breadth"]["red"] == 1
        assert [r["symbol"] for r in response["summary"]["leaders"]] == ["AAPL", "AMD"]
        assert {"symbol": "MSFT", "ok": False, "error": {"code": "UPSTREAM_ERROR", "message": "no candles"}} in response["errors"]
        assert {"symbol": "NVDA", "ok": False, "error": {"code": "UPSTREAM_ERROR", "message": "malformed body"}} in response["errors"]
        candles_window.assert_any_await(target="SYMBOL", symbol="AAPL", range_="1D", res="5m", session="regular")

    @pytest.mark.asyncio
    async def test_symbols_capped(self, analysis_engine, candles_window):
        response = await analysis_engine.get_industry_intraday([f"S{i}" for i in range(150)])

        assert response["meta"]["symbolsRequested"] == 120
        assert candles_window.await_count == 120

    @pytest.mark.asyncio
    async def test_cached_between_calls(self, analysis_engine, candles_window):
        await analysis_engine.get_industry_intraday("AAPL")
        await analysis_engine.get_industry_intraday("aapl")
        assert candles_window.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_symbols(self, analysis_engine):
        with pytest.raises(BadRequestError) as exc_info:
            await analysis_engine.get_industry_intraday("")
        assert exc_info.value.code == "MISSING_SYMBOLS"
