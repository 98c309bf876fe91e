"""Industry rotation sparklines

Per-symbol daily close-to-close change over the last 30 trading days, aligned
on a shared New York trading-day axis, plus the industry median per day and a
robust p05/p95 y-scale for drawing them side by side. Changes are ratios
(0.01 == +1%).
"""
import math
from statistics import median
from typing import Any, Dict, List, Mapping, Optional, Sequence

from traderpro.managers.data_manager.trading_calendar import TradingCalendar
from traderpro.models.candles import DailyBar


SPARKLINE_DAYS = 30
MIN_SCALE_POINTS = 10


def unique_symbols(raw: Any) -> List[str]:
    """Upper-cased, de-duplicated symbols from a comma list or a sequence."""
    parts = raw.split(",") if isinstance(raw, str) else list(raw or ())
    out: List[str] = []
    for part in parts:
        sym = str(part or "").strip().upper()
        if sym and sym not in out:
            out.append(sym)
    return out


def pct_change(prev: float, cur: float) -> Optional[float]:
    if not math.isfinite(prev) or prev == 0 or not math.isfinite(cur):
        return None
    return (cur - prev) / prev


def percentile(sorted_asc: Sequence[float], p: float) -> Optional[float]:
    """Linear-interpolated percentile of an ascending sequence."""
    if not sorted_asc:
        return None
    idx = (len(sorted_asc) - 1) * p
    lo, hi = math.floor(idx), math.ceil(idx)
    if lo == hi:
        return sorted_asc[lo]
    w = idx - lo
    return sorted_asc[lo] * (1 - w) + sorted_asc[hi] * w


def closes_by_day(bars: Sequence[DailyBar]) -> Dict[str, float]:
    """Day key -> close; a repeated day keeps the later bar."""
    out: Dict[str, float] = {}
    for bar in bars or ():
        if bar.day_key and bar.close is not None and math.isfinite(bar.close):
            out[bar.day_key] = bar.close
    return out


def build_axis(
    closes: Mapping[str, Mapping[str, float]],
    calendar: TradingCalendar,
    days: int = SPARKLINE_DAYS,
) -> List[str]:
    """Last ``days`` trading days present in any symbol's series, ascending."""
    keys = {k for per_symbol in closes.values() for k in per_symbol}
    return sorted(k for k in keys if calendar.is_trading_day(k))[-days:]


def build_rotation_sparklines(
    industry_code: str,
    symbols: Sequence[str],
    series: Mapping[str, Sequence[DailyBar]],
    calendar: TradingCalendar,
    days: int = SPARKLINE_DAYS,
) -> Dict[str, Any]:
    """
    Sparkline payload for one industry

    A symbol's change on an axis day is measured against its own previous
    close, so a day the symbol has no row for reads ``None`` and does not
    reset the baseline. The first axis day a symbol appears on is ``None``.

    Args:
        industry_code: Industry the symbols belong to
        symbols: Constituents, in display order
        series: Daily bars per symbol, ascending
        calendar: Trading calendar for the axis
        days: Axis length

    Returns:
        ``{ok, meta, axis, industry, seriesBySymbol, scale?}``
    """
    closes = {sym: closes_by_day(series.get(sym, ())) for sym in symbols}
    axis = build_axis(closes, calendar, days)

    series_by_symbol: Dict[str, Dict[str, Any]] = {}
    all_pct: List[float] = []

    for sym in symbols:
        by_day = closes[sym]
        points = []
        non_null = 0
        prev_close: Optional[float] = None
        for d in axis:
            close = by_day.get(d)
            if close is None:
                points.append({"d": d, "pct": None})
                continue
            pct = pct_change(prev_close, close) if prev_close is not None else None
            points.append({"d": d, "pct": pct})
            if pct is not None:
                non_null += 1
                all_pct.append(pct)
            prev_close = close
        series_by_symbol[sym] = {
            "points": points,
            "coverage": non_null / len(axis) if axis else 0.0,
        }

    industry_points = []
    for idx, d in enumerate(axis):
        values = [
            p for p in (series_by_symbol[sym]["points"][idx]["pct"] for sym in symbols)
            if p is not None
        ]
        industry_points.append({"d": d, "pct": median(values) if values else None})

    response: Dict[str, Any] = {
        "ok": True,
        "meta": {
            "industryCode": industry_code,
            "symbols": list(symbols),
            "days": days,
            "calendar": "trading_days",
            "metric": "daily_pct_change",
            "unit": "ratio",
            "timezone": calendar.tz,
            "asOfDay": axis[-1] if axis else "",
        },
        "axis": {"days": axis},
        "industry": {"method": "median", "points": industry_points},
        "seriesBySymbol": series_by_symbol,
    }

    # Robust y-band, only with enough points to be meaningful
    if len(all_pct) >= MIN_SCALE_POINTS:
        ordered = sorted(all_pct)
        p05, p95 = percentile(ordered, 0.05), percentile(ordered, 0.95)
        if p05 != p95:
            response["scale"] = {"yMin": p05, "yMax": p95, "method": "p05_p95"}

    return response
