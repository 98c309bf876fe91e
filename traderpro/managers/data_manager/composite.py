"""Watchlist composite candles

Fuses several per-symbol series into one synthetic basket series. Every
constituent is rebased to 100 at its first bar (open, or close when the
open is unusable), then each timestamp in the union of all constituents
averages the rebased OHLC of the symbols that have a bar there and sums
their volumes. Timestamps nobody contributes to are omitted; nothing is
interpolated.

Symbols are processed in sorted order, so the output does not depend on
the order the caller supplied them in.
"""
import math
from typing import Dict, List, Mapping, Optional, Tuple

from traderpro.models.candles import Candle


def _finite(x: Optional[float]) -> bool:
    return x is not None and math.isfinite(x)


def normalization_base(series: List[Candle]) -> Optional[float]:
    """First bar's open (close as fallback); None if not a positive finite number."""
    if not series:
        return None
    first = series[0]
    base = first.open if _finite(first.open) else first.close
    if not _finite(base) or base <= 0:
        return None
    return base


def build_composite(
    series_by_symbol: Mapping[str, List[Candle]],
) -> Tuple[List[Candle], Dict[str, Dict[str, float]]]:
    """
    Build the composite series.

    Returns:
        (candles, constituents) where constituents maps each included symbol
        to ``{"base": ..., "bars": ...}``
    """
    symbols = sorted(series_by_symbol)
    bases: Dict[str, float] = {}
    constituents: Dict[str, Dict[str, float]] = {}
    bars_by_time: Dict[int, Dict[str, Candle]] = {}

    for symbol in symbols:
        series = series_by_symbol[symbol] or []
        base = normalization_base(series)
        if base is None:
            continue
        bases[symbol] = base
        constituents[symbol] = {"base": base, "bars": len(series)}
        for bar in series:
            bars_by_time.setdefault(bar.time, {})[symbol] = bar

    out: List[Candle] = []
    for t in sorted(bars_by_time):
        row = bars_by_time[t]
        n = 0
        o = h = l = c = v = 0.0
        for symbol in symbols:
            bar = row.get(symbol)
            if bar is None:
                continue
            scale = 100.0 / bases[symbol]
            values = (bar.open * scale, bar.high * scale, bar.low * scale, bar.close * scale)
            if not all(math.isfinite(x) for x in values):
                continue
            o += values[0]
            h += values[1]
            l += values[2]
            c += values[3]
            v += bar.volume if _finite(bar.volume) else 0.0
            n += 1

        if n == 0:
            continue
        out.append(Candle(time=t, open=o / n, high=h / n, low=l / n, close=c / n, volume=v))

    return out, constituents
