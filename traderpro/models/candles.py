"""
Candle-path data structures

Plain dataclasses passed between the calendar, window, store, reconciler and
aggregation layers. ``to_dict()`` produces the camelCase wire shape returned
by the HTTP routes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from traderpro.core.enums import (
    CandleSource,
    FallbackReason,
    PostureMode,
    RelToIndex,
    Trend5d,
)


def iso_from_ms(ms: int) -> str:
    """Format epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(ms) % 1000:03d}Z"


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar. ``time`` is epoch milliseconds (UTC)."""
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
        }
        if self.volume is not None:
            data["volume"] = self.volume
        return data


@dataclass(frozen=True)
class DailyBar:
    """A store row reduced to what posture aggregation needs."""
    time: int
    day_key: str
    close: float
    volume: Optional[float] = None


@dataclass(frozen=True)
class SessionWindow:
    """Canonical [start, end) window for a request, in UTC."""
    start_ms: int
    end_ms: int
    expected_bars: int

    @property
    def start_iso(self) -> str:
        return iso_from_ms(self.start_ms)

    @property
    def end_iso(self) -> str:
        return iso_from_ms(self.end_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startISO": self.start_iso,
            "endISO": self.end_iso,
            "expectedBars": self.expected_bars,
        }


@dataclass
class CanonicalMeta:
    """Provenance envelope that always accompanies a candle array."""
    source: CandleSource
    expected_bars: int
    received_bars: int
    window: SessionWindow
    fallback_used: bool = False
    fallback_reason: Optional[FallbackReason] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "source": self.source.value,
            "expectedBars": self.expected_bars,
            "receivedBars": self.received_bars,
            "fallbackUsed": self.fallback_used,
            "fallbackReason": self.fallback_reason.value if self.fallback_reason else None,
            "window": self.window.to_dict(),
        }
        data.update(self.extra)
        return data


@dataclass
class CandleResult:
    """Successful candle query: bars plus provenance."""
    candles: List[Candle]
    meta: CanonicalMeta

    ok = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "candles": [c.to_dict() for c in self.candles],
            "meta": self.meta.to_dict(),
        }


@dataclass
class ErrorResult:
    """Structured failure; returned instead of raised so callers render a stable state."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    ok = False

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"ok": False, "error": error}


@dataclass
class IndustryPostureItem:
    """Derived, never-persisted snapshot of one industry."""
    industry_code: str
    industry_abbrev: str
    day_change_pct: float
    vol_rel: float
    trend5d: Trend5d
    rel_to_index: RelToIndex
    symbols: List[str]
    provenance: PostureMode = PostureMode.COMPUTED
    pct5d: Optional[float] = None
    rotation10d: Optional[List[Optional[float]]] = None
    volumes10d: Optional[List[float]] = None
    debug: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "industryCode": self.industry_code,
            "industryAbbrev": self.industry_abbrev,
            "dayChangePct": self.day_change_pct,
            "volRel": self.vol_rel,
            "trend5d": self.trend5d.value,
            "relToIndex": self.rel_to_index.value,
            "symbols": list(self.symbols),
            "provenance": self.provenance.value,
        }
        if self.pct5d is not None:
            data["pct5d"] = self.pct5d
        if self.rotation10d is not None:
            data["rotation10d"] = list(self.rotation10d)
        if self.volumes10d is not None:
            data["volumes10d"] = list(self.volumes10d)
        if self.debug is not None:
            data["debug"] = self.debug
        return data
