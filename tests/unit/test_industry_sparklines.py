"""Unit Tests for Industry Rotation Sparklines

Tests:
1. Per-symbol daily change and the industry median on a shared axis
2. Gaps, non-trading rows and the 30-day axis cap
3. The p05/p95 scale band and its helpers
"""
import pytest

from traderpro.managers.analysis_engine.industry_sparklines import (
    build_rotation_sparklines,
    percentile,
    unique_symbols,
)
from traderpro.models.candles import DailyBar
from tests.fixtures.market_data import daily_series


def pcts(points):
    return [p["pct"] for p in points]


class TestRotationSparklines:

    def test_change_and_industry_median(self, calendar):
        series = {
            "AAA": daily_series(calendar, [100.0, 110.0, 99.0]),
            "BBB": daily_series(calendar, [50.0, 50.0, 55.0]),
        }

        response = build_rotation_sparklines("TECH", ["AAA", "BBB"], series, calendar)

        assert response["ok"] is True
        assert response["axis"]["days"] == ["2024-07-10", "2024-07-11", "2024-07-12"]
        assert pcts(response["seriesBySymbol"]["AAA"]["points"]) == [None, pytest.approx(0.1), pytest.approx(-0.1)]
        assert pcts(response["seriesBySymbol"]["BBB"]["points"]) == [None, 0.0, pytest.approx(0.1)]
        assert response["seriesBySymbol"]["AAA"]["coverage"] == pytest.approx(2 / 3)
        assert response["industry"]["method"] == "median"
        assert pcts(response["industry"]["points"]) == [None, pytest.approx(0.05), pytest.approx(0.0)]

    def test_meta(self, calendar):
        series = {"AAA": daily_series(calendar, [100.0, 101.0])}

        meta = build_rotation_sparklines("TECH", ["AAA"], series, calendar)["meta"]

        assert meta == {
            "industryCode": "TECH",
            "symbols": ["AAA"],
            "days": 30,
            "calendar": "trading_days",
            "metric": "daily_pct_change",
            "unit": "ratio",
            "timezone": "America/New_York",
            "asOfDay": "2024-07-12",
        }

    def test_missing_day_keeps_own_previous_close(self, calendar):
        bbb = [
            DailyBar(time=0, day_key="2024-07-09", close=50.0),
            DailyBar(time=0, day_key="2024-07-10", close=55.0),
            DailyBar(time=0, day_key="2024-07-12", close=44.0),
        ]
        series = {"AAA": daily_series(calendar, [100.0] * 4), "BBB": bbb}

        response = build_rotation_sparklines("TECH", ["AAA", "BBB"], series, calendar)

        # 2024-07-12 is measured against the 07-10 close, not skipped
        assert pcts(response["seriesBySymbol"]["BBB"]["points"]) == [None, pytest.approx(0.1), None, pytest.approx(-0.2)]
        assert response["seriesBySymbol"]["BBB"]["coverage"] == pytest.approx(0.5)
        assert pcts(response["industry"]["points"])[2:] == [0.0, pytest.approx(-0.1)]

    def test_non_trading_rows_stay_off_axis(self, calendar):
        series = {
            "AAA": daily_series(calendar, [100.0, 101.0]) + [DailyBar(time=0, day_key="2024-07-13", close=120.0)],
        }

        response = build_rotation_sparklines("TECH", ["AAA"], series, calendar)

        assert response["axis"]["days"] == ["2024-07-11", "2024-07-12"]
        assert response["meta"]["asOfDay"] == "2024-07-12"

    def test_axis_capped_at_thirty_trading_days(self, calendar):
        series = {"AAA": daily_series(calendar, [100.0 + i for i in range(40)])}

        response = build_rotation_sparklines("TECH", ["AAA"], series, calendar)

        assert len(response["axis"]["days"]) == 30
        assert response["axis"]["days"][-1] == "2024-07-12"
        assert response["seriesBySymbol"]["AAA"]["coverage"] == pytest.approx(29 / 30)

    def test_symbol_without_rows(self, calendar):
        series = {"AAA": daily_series(calendar, [100.0, 101.0])}

        response = build_rotation_sparklines("TECH", ["AAA", "ZZZ"], series, calendar)

        assert pcts(response["seriesBySymbol"]["ZZZ"]["points"]) == [None, None]
        assert response["seriesBySymbol"]["ZZZ"]["coverage"] == 0.0
        assert pcts(response["industry"]["points"]) == [None, pytest.approx(0.01)]

    def test_no_rows_at_all(self, calendar):
        response = build_rotation_sparklines("TECH", ["AAA"], {}, calendar)

        assert response["axis"]["days"] == []
        assert response["meta"]["asOfDay"] == ""
        assert response["seriesBySymbol"]["AAA"] == {"points": [], "coverage": 0.0}


class TestScale:

    def test_band_with_enough_points(self, calendar):
        closes = [100.0, 102.0, 99.0, 101.0, 105.0, 104.0, 98.0, 100.0, 103.0, 101.0, 106.0, 107.0]
        series = {"AAA": daily_series(calendar, closes)}

        response = build_rotation_sparklines("TECH", ["AAA"], series, calendar)

        points = sorted(p for p in pcts(response["seriesBySymbol"]["AAA"]["points"]) if p is not None)
        assert response["scale"]["method"] == "p05_p95"
        assert response["scale"]["yMin"] == pytest.approx(percentile(points, 0.05))
        assert response["scale"]["yMax"] == pytest.approx(percentile(points, 0.95))
        assert points[0] < response["scale"]["yMin"] < response["scale"]["yMax"] < points[-1]

    def test_no_band_with_few_points(self, calendar):
        series = {"AAA": daily_series(calendar, [100.0, 110.0, 99.0])}
        assert "scale" not in build_rotation_sparklines("TECH", ["AAA"], series, calendar)

    def test_no_band_when_flat(self, calendar):
        series = {"AAA": daily_series(calendar, [100.0] * 15)}
        assert "scale" not in build_rotation_sparklines("TECH", ["AAA"], series, calendar)


class TestHelpers:

    def test_percentile_interpolates(self):
        assert percentile([0.0, 1.0, 2.0, 3.0, 4.0], 0.05) == pytest.approx(0.2)
        assert percentile([0.0, 1.0, 2.0, 3.0, 4.0], 0.5) == 2.0
        assert percentile([], 0.5) is None

    def test_unique_symbols(self):
        assert unique_symbols("aapl, msft,AAPL,,") == ["AAPL", "MSFT"]
        assert unique_symbols(["nvda", " NVDA "]) == ["NVDA"]
        assert unique_symbols(None) == []
