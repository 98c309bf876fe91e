"""Live industry pressure

Short-horizon buying/selling pressure per industry from the latest intraday
bars. Each symbol contributes its last-bar return weighted by
``ln(1 + relative volume)``; an industry's pressure is the median of its
symbols' contributions, then mapped to a direction and a [0, 1] magnitude.
"""
import math
from dataclasses import dataclass
from statistics import median
from typing import Dict, List, Mapping, Optional, Sequence

from traderpro.core.enums import PressureDirection
from traderpro.models.candles import Candle


PRESSURE_RESOLUTIONS = ("5m", "15m")
BASELINE_WINDOWS = 20
MAX_PRESSURE_SYMBOLS = 400
MAX_SYMBOLS_PER_INDUSTRY = 120
RVOL_MIN = 0.25
RVOL_MAX = 4.0

# (deadband, strength normalization) per resolution
THRESHOLDS = {
    "5m": (0.00025, 0.006),
    "15m": (0.00035, 0.0075),
}


@dataclass
class IndustryPressure:
    direction: PressureDirection
    magnitude: float
    symbols_ok: int
    symbols_total: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "dir": self.direction.value,
            "mag": self.magnitude,
            "symbolsOk": self.symbols_ok,
            "symbolsTotal": self.symbols_total,
        }


def normalize_pressure_res(raw: Optional[str]) -> str:
    return "15m" if str(raw or "").strip().lower() == "15m" else "5m"


def normalize_industries(industries: Sequence[Mapping]) -> Dict[str, List[str]]:
    """Industry code -> unique upper-cased symbols; a repeated code replaces the earlier one."""
    out: Dict[str, List[str]] = {}
    for entry in industries or ():
        if not isinstance(entry, Mapping):
            continue
        code = str(entry.get("industryCode") or "").strip().upper()
        if not code:
            continue
        raw = entry.get("symbols")
        symbols: List[str] = []
        for s in raw if isinstance(raw, list) else ():
            sym = str(s).strip().upper()
            if sym and sym not in symbols:
                symbols.append(sym)
        out[code] = symbols
    return out


def symbol_contribution(bars: Sequence[Candle]) -> Optional[float]:
    """``r * ln(1 + rvol)`` for the last bar, or None with fewer than two bars."""
    if len(bars) < 2:
        return None
    last, prev = bars[-1], bars[-2]
    if prev.close == 0 or not math.isfinite(prev.close) or not math.isfinite(last.close):
        r = 0.0
    else:
        r = (last.close - prev.close) / prev.close

    baseline = [
        b.volume for b in bars[max(0, len(bars) - (BASELINE_WINDOWS + 1)):-1]
        if b.volume is not None and math.isfinite(b.volume) and b.volume >= 0
    ]
    rvol = 1.0
    base = median(baseline) if baseline else None
    if base and base > 0 and last.volume is not None and last.volume >= 0:
        rvol = last.volume / base
    rvol = max(RVOL_MIN, min(RVOL_MAX, rvol))

    p = r * math.log(1 + rvol)
    return p if math.isfinite(p) else None


def compute_pressure(
    industries: Mapping[str, Sequence[str]],
    bars_by_symbol: Mapping[str, Sequence[Candle]],
    res: str = "5m",
) -> Dict[str, IndustryPressure]:
    """
    Pressure per industry

    Args:
        industries: Industry code -> symbols
        bars_by_symbol: Ascending intraday bars per symbol
        res: ``5m`` or ``15m`` (selects the thresholds)
    """
    eps, theta = THRESHOLDS[normalize_pressure_res(res)]
    out: Dict[str, IndustryPressure] = {}

    for code, symbols in industries.items():
        symbols = list(dict.fromkeys(symbols))[:MAX_SYMBOLS_PER_INDUSTRY]
        contributions = []
        for symbol in symbols:
            p = symbol_contribution(bars_by_symbol.get(symbol) or ())
            if p is not None:
                contributions.append(p)

        pressure = median(contributions) if contributions else 0.0
        if abs(pressure) < eps:
            direction, magnitude = PressureDirection.FLAT, 0.0
        else:
            direction = PressureDirection.UP if pressure > 0 else PressureDirection.DOWN
            magnitude = max(0.0, min(1.0, abs(pressure) / theta))

        out[code] = IndustryPressure(
            direction=direction,
            magnitude=magnitude,
            symbols_ok=len(contributions),
            symbols_total=len(symbols),
        )

    return out
