"""Industry intraday breadth

Regular-session breadth for a set of symbols from today's 5m bars: each
symbol's move since the session open and over the last 60 minutes, the
green/red split, and the top and bottom movers.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from traderpro.managers.data_manager.trading_calendar import TradingCalendar
from traderpro.models.candles import Candle


INTRADAY_RES = "5m"
MAX_INTRADAY_SYMBOLS = 120
BARS_PER_HOUR = 12
MOVERS = 3


@dataclass
class IntradayRow:
    symbol: str
    last: Optional[float]
    pct_since_open: float
    pct_60m: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "ok": True,
            "last": self.last,
            "pctSinceOpen": self.pct_since_open,
            "pct60m": self.pct_60m,
        }


def _ratio(base: float, value: float) -> float:
    if not math.isfinite(base) or base == 0 or not math.isfinite(value):
        return 0.0
    return (value - base) / base


def intraday_row(symbol: str, candles: Sequence[Candle], calendar: TradingCalendar) -> Optional[IntradayRow]:
    """
    Session move for one symbol, or None without bars

    The session is the exchange day of the latest bar; its first bar's open
    is the reference. The 60m move looks 12 bars back within that session,
    and reads 0 when the session is shorter than an hour.
    """
    ordered = sorted(candles or (), key=lambda c: c.time)
    if not ordered:
        return None

    last = ordered[-1]
    session_key = calendar.day_key_from_timestamp(last.time)
    session = [c for c in ordered if calendar.day_key_from_timestamp(c.time) == session_key]

    idx = len(session) - 1
    hour_ago = session[idx - BARS_PER_HOUR] if idx >= BARS_PER_HOUR else None

    return IntradayRow(
        symbol=symbol,
        last=last.close if math.isfinite(last.close) else None,
        pct_since_open=_ratio(session[0].open, last.close),
        pct_60m=_ratio(hour_ago.close, last.close) if hour_ago is not None else 0.0,
    )


def summarize_breadth(rows: Sequence[IntradayRow]) -> Dict[str, Any]:
    """Green/red counts and shares plus leaders and laggards by move since open."""
    green = sum(1 for r in rows if r.pct_since_open > 0)
    red = sum(1 for r in rows if r.pct_since_open < 0)
    total = len(rows)

    ranked = sorted(rows, key=lambda r: r.pct_since_open, reverse=True)
    return {
        "breadth": {
            "green": green,
            "red": red,
            "total": total,
            "pctGreen": green / total if total else 0.0,
            "pctRed": red / total if total else 0.0,
        },
        "leaders": [r.to_dict() for r in ranked[:MOVERS]],
        "laggards": [r.to_dict() for r in reversed(ranked[-MOVERS:])],
    }


def build_intraday_breadth(
    symbols: Sequence[str],
    candles_by_symbol: Dict[str, Sequence[Candle]],
    errors: List[Dict[str, Any]],
    calendar: TradingCalendar,
) -> Dict[str, Any]:
    """
    Breadth payload for ``symbols``

    Args:
        symbols: Requested symbols (already unique and capped)
        candles_by_symbol: Regular-session bars for the symbols that loaded
        errors: ``{symbol, ok: false, error}`` entries for symbols that failed
        calendar: Exchange calendar for the session day

    Returns:
        ``{ok, meta, summary, rows, errors}``
    """
    errors = list(errors)
    rows: List[IntradayRow] = []
    for symbol in symbols:
        if symbol not in candles_by_symbol:
            continue
        row = intraday_row(symbol, candles_by_symbol[symbol], calendar)
        if row is None:
            errors.append({
                "symbol": symbol,
                "ok": False,
                "error": {"code": "NO_CANDLES", "message": "No candles returned"},
            })
        else:
            rows.append(row)

    return {
        "ok": True,
        "meta": {
            "res": INTRADAY_RES,
            "symbolsRequested": len(symbols),
            "symbolsOk": len(rows),
        },
        "summary": summarize_breadth(rows),
        "rows": [r.to_dict() for r in rows],
        "errors": errors,
    }
