"""Industry posture aggregation

Cross-sectional snapshot of each industry's recent daily behavior, computed
from day-level store series. Everything here is pure: callers fetch the
series and the classification, this module only does arithmetic.

Session anchor: the last 11 trading sessions of the index proxy series give
10 consecutive session pairs. Per pair, every constituent with a close on
both days contributes its own percentage change; the industry's rotation
for that day is the equal-weighted mean of those changes.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from traderpro.core.enums import PostureMode, RelToIndex, Trend5d
from traderpro.managers.data_manager.trading_calendar import TradingCalendar
from traderpro.models.candles import DailyBar, IndustryPostureItem


SESSION_KEYS = 11
TREND_THRESHOLD = 0.02
REL_TO_INDEX_DEADBAND_PCT = 0.25
VOLUME_BASELINE_SESSIONS = 5


@dataclass
class IndustryGroup:
    """Symbols sharing one industry classification."""
    code: str
    abbrev: str
    symbols: List[str] = field(default_factory=list)


def _finite(x: Optional[float]) -> bool:
    return x is not None and math.isfinite(x)


def _avg(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def build_last_n_session_keys(
    index_series: Sequence[DailyBar],
    calendar: TradingCalendar,
    n: int = SESSION_KEYS,
) -> List[str]:
    """Last ``n`` distinct trading-session day keys of the index series, chronological."""
    keys: List[str] = []
    seen = set()
    for bar in sorted(index_series, key=lambda b: b.time, reverse=True):
        key = bar.day_key or calendar.day_key_from_timestamp(bar.time)
        if key in seen or not calendar.is_trading_day(key):
            continue
        seen.add(key)
        keys.append(key)
        if len(keys) >= n:
            break
    keys.reverse()
    return keys


def day_change_pct(series: Sequence[DailyBar]) -> Optional[float]:
    if len(series) < 2:
        return None
    last, prev = series[-1].close, series[-2].close
    if not _finite(last) or not _finite(prev) or prev == 0:
        return None
    return (last - prev) / prev * 100


def trend_5d(series: Sequence[DailyBar]) -> Trend5d:
    """UP/DOWN when the last close is more than 2% away from the close 5 sessions earlier."""
    if len(series) < 6:
        return Trend5d.FLAT
    last, prev5 = series[-1].close, series[-6].close
    if not _finite(last) or not _finite(prev5) or prev5 == 0:
        return Trend5d.FLAT
    pct = (last - prev5) / prev5
    if pct > TREND_THRESHOLD:
        return Trend5d.UP
    if pct < -TREND_THRESHOLD:
        return Trend5d.DOWN
    return Trend5d.FLAT


def majority_trend(trends: Sequence[Trend5d]) -> Trend5d:
    up = sum(1 for t in trends if t == Trend5d.UP)
    down = sum(1 for t in trends if t == Trend5d.DOWN)
    if up > down:
        return Trend5d.UP
    if down > up:
        return Trend5d.DOWN
    return Trend5d.FLAT


def vol_rel_from_ratio(ratio: float) -> float:
    """Ratio 1 maps to the 0.5 midpoint; +/-100% maps to about [0.25, 0.75]."""
    if not math.isfinite(ratio) or ratio <= 0:
        return 0.5
    return clamp01(0.5 + (ratio - 1) * 0.25)


def volume_ratio(volumes: Sequence[float]) -> float:
    """Latest volume over the mean of up to 5 prior positive volumes; 1 without a baseline."""
    if not volumes:
        return 1.0
    today = volumes[-1] if _finite(volumes[-1]) else 0.0
    prior = [v for v in volumes[:-1][-VOLUME_BASELINE_SESSIONS:] if _finite(v) and v > 0]
    baseline = _avg(prior)
    return today / baseline if baseline > 0 else 1.0


def rel_to_index(delta_pct: float) -> RelToIndex:
    if not math.isfinite(delta_pct):
        return RelToIndex.INLINE
    if delta_pct > REL_TO_INDEX_DEADBAND_PCT:
        return RelToIndex.OUTPERFORM
    if delta_pct < -REL_TO_INDEX_DEADBAND_PCT:
        return RelToIndex.UNDERPERFORM
    return RelToIndex.INLINE


def compound_pct5d(rotation: Sequence[Optional[float]]) -> Optional[float]:
    """Compounded change over the last 5 finite rotation values; None when fewer exist."""
    last5 = [v for v in rotation if _finite(v)][-5:]
    if len(last5) < 5:
        return None
    mult = 1.0
    for pct in last5:
        mult *= 1 + pct / 100
    return (mult - 1) * 100


def _day_map(series: Sequence[DailyBar], calendar: TradingCalendar) -> Dict[str, DailyBar]:
    """Bars keyed by trading day; the latest timestamp wins within a day."""
    out: Dict[str, DailyBar] = {}
    for bar in series:
        if not _finite(bar.close):
            continue
        key = bar.day_key or calendar.day_key_from_timestamp(bar.time)
        prev = out.get(key)
        if prev is None or bar.time > prev.time:
            out[key] = bar
    return out


def sort_items(items: List[IndustryPostureItem]) -> List[IndustryPostureItem]:
    return sorted(
        items,
        key=lambda i: (-i.vol_rel, -abs(i.day_change_pct), i.industry_abbrev, i.industry_code),
    )


def compute_posture(
    groups: Sequence[IndustryGroup],
    series_by_symbol: Mapping[str, Sequence[DailyBar]],
    index_series: Sequence[DailyBar],
    calendar: Optional[TradingCalendar] = None,
    debug: bool = False,
) -> List[IndustryPostureItem]:
    """
    Posture item per industry with at least one usable constituent

    Args:
        groups: Industries and their symbols
        series_by_symbol: Day-level series per symbol
        index_series: Day-level series of the index proxy
        calendar: Trading calendar for day keys
        debug: Attach per-industry coverage diagnostics

    Returns:
        Items in posture order (volRel desc, |dayChangePct| desc, abbrev, code)
    """
    calendar = calendar or TradingCalendar()
    index_sorted = sorted(index_series, key=lambda b: b.time)
    index_day_pct = day_change_pct(index_sorted) or 0.0
    session_keys = build_last_n_session_keys(index_sorted, calendar, SESSION_KEYS)

    items: List[IndustryPostureItem] = []
    for group in groups:
        per_symbol_day_pct: List[float] = []
        per_symbol_trend: List[Trend5d] = []
        day_maps: Dict[str, Dict[str, DailyBar]] = {}
        lengths = [len(series_by_symbol.get(s) or ()) for s in group.symbols]

        for symbol in group.symbols:
            series = sorted(series_by_symbol.get(symbol) or (), key=lambda b: b.time)
            if len(series) < 2:
                continue
            pct = day_change_pct(series)
            if pct is not None:
                per_symbol_day_pct.append(pct)
            per_symbol_trend.append(trend_5d(series))
            day_maps[symbol] = _day_map(series, calendar)

        if not per_symbol_day_pct:
            continue

        rotation: List[Optional[float]] = []
        volumes: List[float] = []
        missing_pairs: List[str] = []
        for prev_key, cur_key in zip(session_keys, session_keys[1:]):
            changes: List[float] = []
            vol_sum = 0.0
            for symbol, by_day in day_maps.items():
                prev, cur = by_day.get(prev_key), by_day.get(cur_key)
                if prev is None or cur is None or prev.close == 0:
                    continue
                changes.append((cur.close - prev.close) / prev.close * 100)
                if _finite(cur.volume):
                    vol_sum += cur.volume
            if changes:
                rotation.append(_avg(changes))
            else:
                rotation.append(None)
                missing_pairs.append(f"{prev_key}->{cur_key}")
            volumes.append(vol_sum)

        rotation = rotation[-10:]
        volumes = volumes[-10:]

        finite_rotation = [v for v in rotation if _finite(v)]
        day_pct = finite_rotation[-1] if finite_rotation else _avg(per_symbol_day_pct)
        vol_rel = vol_rel_from_ratio(volume_ratio(volumes))

        item = IndustryPostureItem(
            industry_code=group.code,
            industry_abbrev=group.abbrev,
            day_change_pct=day_pct,
            vol_rel=vol_rel,
            trend5d=majority_trend(per_symbol_trend),
            rel_to_index=rel_to_index(day_pct - index_day_pct),
            symbols=list(group.symbols),
            provenance=PostureMode.COMPUTED,
            pct5d=compound_pct5d(rotation),
            rotation10d=rotation,
            volumes10d=volumes,
        )
        if debug:
            item.debug = {
                "symbolsTotal": len(group.symbols),
                "symbolsWithSeriesGE2": sum(1 for n in lengths if n >= 2),
                "symbolsWithSeriesGE6": sum(1 for n in lengths if n >= 6),
                "symbolsWithSeriesGE11": sum(1 for n in lengths if n >= 11),
                "indexSeriesLen": len(index_sorted),
                "sessionKeys": list(session_keys),
                "finitePairsLen": len(finite_rotation),
                "missingSessionKeys": [
                    k for k in session_keys if not any(k in m for m in day_maps.values())
                ],
                "missingRotationPairs": missing_pairs,
            }
        items.append(item)

    return sort_items(items)


def classification_only_items(groups: Sequence[IndustryGroup]) -> List[IndustryPostureItem]:
    """Neutral stubs tagged with their own provenance, never a real zero reading."""
    return [
        IndustryPostureItem(
            industry_code=group.code,
            industry_abbrev=group.abbrev,
            day_change_pct=0.0,
            vol_rel=0.5,
            trend5d=Trend5d.FLAT,
            rel_to_index=RelToIndex.INLINE,
            symbols=list(group.symbols),
            provenance=PostureMode.CLASSIFICATION_ONLY,
        )
        for group in groups
    ]


def group_by_industry(
    symbols: Sequence[str],
    classifications: Mapping[str, Any],
) -> List[IndustryGroup]:
    """Group symbols by ``(industry_code, industry_abbrev)``; unclassified symbols are skipped."""
    groups: Dict[str, IndustryGroup] = {}
    for symbol in symbols:
        entry = classifications.get(symbol)
        if not entry:
            continue
        code, abbrev = (str(entry[0] or "").strip(), str(entry[1] or "").strip())
        if not code or not abbrev:
            continue
        group = groups.setdefault(code, IndustryGroup(code=code, abbrev=abbrev))
        if symbol not in group.symbols:
            group.symbols.append(symbol)
    return list(groups.values())
