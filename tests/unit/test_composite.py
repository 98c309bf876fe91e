"""Unit Tests for Watchlist Composites

Tests:
1. Rebasing to 100 and per-timestamp averaging over contributing symbols
2. Input order does not change the output
3. Constituents without a usable base are excluded
"""
import pytest

from traderpro.managers.data_manager.composite import build_composite, normalization_base
from traderpro.models.candles import Candle


def bar(t, o, h, l, c, v=None):
    return Candle(time=t, open=o, high=h, low=l, close=c, volume=v)


@pytest.fixture
def series():
    return {
        "AAA": [bar(1, 50, 55, 45, 52, 100), bar(2, 52, 60, 50, 58, 200)],
        "BBB": [bar(1, 200, 210, 190, 204, 10), bar(3, 204, 220, 200, 210, 20)],
    }


class TestBuildComposite:
    """Equal-weighted rebased basket."""

    def test_rebased_average(self, series):
        candles, constituents = build_composite(series)

        assert [c.time for c in candles] == [1, 2, 3]
        first = candles[0]
        assert first.open == pytest.approx(100.0)
        assert first.high == pytest.approx(107.5)
        assert first.low == pytest.approx(92.5)
        assert first.close == pytest.approx(103.0)
        assert first.volume == pytest.approx(110.0)

    def test_timestamps_with_one_contributor(self, series):
        candles, _ = build_composite(series)
        # Only AAA at t=2, only BBB at t=3; nothing is interpolated
        assert candles[1].close == pytest.approx(116.0)
        assert candles[1].volume == pytest.approx(200.0)
        assert candles[2].open == pytest.approx(102.0)
        assert candles[2].close == pytest.approx(105.0)

    def test_constituents_report_base_and_bars(self, series):
        _, constituents = build_composite(series)
        assert constituents == {"AAA": {"base": 50, "bars": 2}, "BBB": {"base": 200, "bars": 2}}

    def test_order_invariance(self, series):
        reversed_input = dict(reversed(list(series.items())))
        assert build_composite(reversed_input) == build_composite(series)

    def test_unusable_base_excluded(self, series):
        series["ZERO"] = [bar(1, 0, 0, 0, 0, 5)]
        series["EMPTY"] = []
        candles, constituents = build_composite(series)
        assert set(constituents) == {"AAA", "BBB"}
        assert candles[0].volume == pytest.approx(110.0)

    def test_missing_volume_counts_as_zero(self):
        candles, _ = build_composite({"AAA": [bar(1, 10, 10, 10, 10)]})
        assert candles[0].volume == 0.0

    def test_empty_input(self):
        assert build_composite({}) == ([], {})


class TestNormalizationBase:

    def test_open_then_close(self):
        assert normalization_base([bar(1, 10, 11, 9, 10.5)]) == 10
        assert normalization_base([bar(1, float("nan"), 11, 9, 10.5)]) == 10.5

    def test_non_positive_base(self):
        assert normalization_base([bar(1, -1, 1, -1, -1)]) is None
        assert normalization_base([]) is None
