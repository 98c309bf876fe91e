"""Input Normalization

Converts the candle shapes different upstreams return into ``Candle``
objects with epoch-millisecond times.

Handles:
- Canonical dicts: {time, open, high, low, close, volume}
- Shorthand dicts: {ts, o, h, l, c, v} (streaming cache and vendor bars use these)
- ISO-8601 time strings (vendor REST ``t``)
- Epoch seconds, promoted to milliseconds
"""
import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from traderpro.logger import logger
from traderpro.models.candles import Candle

# Anything below this is epoch seconds (2e10 ms is 1970-08; 2e10 s is year 2603)
EPOCH_SECONDS_CUTOFF = 20_000_000_000

_SHORT_OFFSET = re.compile(r"\d{2}:\d{2}(:\d{2}(\.\d+)?)?[+-]\d{2}$")


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def coerce_time_ms(value: Any) -> Optional[int]:
    """Epoch ms from ms, seconds, ISO string or datetime; None when unusable."""
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    if isinstance(value, str) and not value.strip().lstrip("-").replace(".", "", 1).isdigit():
        text = value.strip()
        # Postgres text output: "YYYY-MM-DD HH:MM:SS+00"
        if _SHORT_OFFSET.search(text):
            text += ":00"
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
        return coerce_time_ms(dt)

    n = _number(value)
    if n is None:
        return None
    if abs(n) < EPOCH_SECONDS_CUTOFF:
        n *= 1000
    return int(n)


def normalize_candle(raw: Any) -> Optional[Candle]:
    if isinstance(raw, Candle):
        return raw
    if not isinstance(raw, dict):
        return None

    def pick(*keys):
        for key in keys:
            if raw.get(key) is not None:
                return raw[key]
        return None

    time_ms = coerce_time_ms(pick("time", "ts", "t"))
    o = _number(pick("open", "o"))
    h = _number(pick("high", "h"))
    l = _number(pick("low", "l"))
    c = _number(pick("close", "c"))
    if time_ms is None or None in (o, h, l, c):
        return None

    volume = _number(pick("volume", "v"))
    return Candle(time=time_ms, open=o, high=h, low=l, close=c, volume=volume)


def normalize_candle_array(items: Optional[Iterable[Any]]) -> List[Candle]:
    """Normalize, drop malformed rows, sort ascending and keep the last row per timestamp."""
    if not items:
        return []

    by_time = {}
    dropped = 0
    for raw in items:
        candle = normalize_candle(raw)
        if candle is None:
            dropped += 1
            continue
        by_time[candle.time] = candle

    if dropped:
        logger.debug(f"Dropped {dropped} malformed candle rows")
    return [by_time[t] for t in sorted(by_time)]
