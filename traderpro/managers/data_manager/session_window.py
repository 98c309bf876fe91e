"""Canonical session windows for candle requests

Given (range, resolution, session) this module produces the UTC window
[start, end) a chart should cover and the number of bars that window
implies. Everything here is pure: the only input from the outside world is
``now``, which callers may pin for deterministic results.

Range/resolution compatibility:

    range       valid resolutions
    ---------   -----------------
    1D          1m 5m 15m 30m 1h
    5D          1h 4h
    1M          4h 1d
    3M 6M 1Y    1d

Invalid pairs keep the requested resolution and move the range to the
nearest range that supports it (intraday -> 1D, 1h -> 5D, 4h -> 1M,
1d -> 1M or the requested long range). The original pair is reported back
as ``normalized_from``.
"""
import math
import re
from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Optional, Union

from traderpro.core.enums import CandleSession
from traderpro.managers.data_manager.trading_calendar import TradingCalendar, EXCHANGE_TZ
from traderpro.models.candles import SessionWindow


INTRADAY_RESOLUTIONS = ("1m", "5m", "15m", "30m")
DURABLE_RESOLUTIONS = ("1h", "4h", "1d")
RANGES = ("1D", "5D", "1M", "3M", "6M", "1Y")

MAX_EXPECTED_BARS = 50_000

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

_RES_ALIASES = {
    "1min": "1m",
    "5min": "5m",
    "15min": "15m",
    "30min": "30m",
    "60min": "1h",
    "1hour": "1h",
    "4hour": "4h",
    "1day": "1d",
}

_RANGE_DAYS = {"1D": 1, "2D": 2, "5D": 5, "1W": 7, "2W": 14, "1M": 30, "3M": 90, "6M": 180, "1Y": 365}

# Exchange-local session bounds
PREMARKET_OPEN = time(4, 0)
REGULAR_OPEN = time(9, 30)
REGULAR_CLOSE = time(16, 0)
AFTERHOURS_CLOSE = time(20, 0)

_RES_PATTERN = re.compile(r"^(\d+)(m|h|d)$")


@dataclass(frozen=True)
class RangeResPair:
    range: str
    res: str
    normalized_from: Optional[dict] = None


def normalize_res(raw: Optional[str]) -> Optional[str]:
    if not raw or not raw.strip():
        return None
    value = raw.strip().lower()
    return _RES_ALIASES.get(value, value)


def normalize_range(raw: Optional[str]) -> Optional[str]:
    if not raw or not raw.strip():
        return None
    return raw.strip().upper()


def normalize_session(raw: Optional[str]) -> CandleSession:
    """``regular`` unless ``extended``/``auto`` was asked for explicitly."""
    value = (raw or "").strip().lower()
    try:
        return CandleSession(value)
    except ValueError:
        return CandleSession.REGULAR


def is_intraday_res(res: str) -> bool:
    return res.endswith("m")


def is_durable_res(res: str) -> bool:
    return res in DURABLE_RESOLUTIONS


def bump_range_for_res(range_: str, res: str) -> str:
    r = range_.upper()
    intraday = is_intraday_res(res)

    if r == "1D":
        if res == "4h":
            return "5D"
        if res == "1d":
            return "1M"
        return "1D"
    if r == "5D":
        if res == "1d":
            return "1M"
        if intraday:
            return "1D"
        return "5D"
    if r == "1M":
        if intraday:
            return "1D"
        if res == "1h":
            return "5D"
        return "1M"
    if r in ("3M", "6M", "1Y"):
        if res == "1d":
            return r
        if res == "4h":
            return "1M"
        return "1D"
    return r


def is_valid_pair(range_: str, res: str) -> bool:
    r = range_.upper()
    if r == "1D":
        return is_intraday_res(res) or res == "1h"
    if r == "5D":
        return res in ("1h", "4h")
    if r == "1M":
        return res in ("4h", "1d")
    if r in ("3M", "6M", "1Y"):
        return res == "1d"
    return False


def normalize_range_res_pair(range_: str, res: str) -> RangeResPair:
    """Move ``range_`` to one compatible with ``res``; never drops the request."""
    r = bump_range_for_res(range_, res)

    if not is_valid_pair(r, res):
        if res == "1d":
            r = "1M" if r in ("1D", "5D") else r
        elif res == "4h":
            r = "1M"
        elif res == "1h":
            r = "5D"
        elif is_intraday_res(res):
            r = "1D"

    changed = r != range_
    return RangeResPair(
        range=r,
        res=res,
        normalized_from={"range": range_, "res": res} if changed else None,
    )


def res_to_ms(res: str) -> Optional[int]:
    match = _RES_PATTERN.match(res or "")
    if not match:
        return None
    n = int(match.group(1))
    if n <= 0:
        return None
    unit = match.group(2)
    if unit == "m":
        return n * MINUTE_MS
    if unit == "h":
        return n * HOUR_MS
    return n * DAY_MS


def range_to_approx_ms(range_: str) -> Optional[int]:
    days = _RANGE_DAYS.get((range_ or "").strip().upper())
    return days * DAY_MS if days else None


def compute_expected_bars(range_: str, res: str) -> Optional[int]:
    """Approximate bar count for multi-day ranges: ceil(range / res), capped."""
    res_ms = res_to_ms(res)
    range_ms = range_to_approx_ms(range_)
    if not res_ms or not range_ms:
        return None
    return max(0, min(math.ceil(range_ms / res_ms), MAX_EXPECTED_BARS))


class SessionWindowComputer:
    """Computes canonical request windows against a trading calendar.

    A 1D window covers one exchange session:
    - regular:  09:30 -> 16:00 exchange time
    - extended: 04:00 -> 20:00 exchange time

    It is anchored on the current exchange day, unless that day has not
    reached premarket open yet or is not a trading day, in which case the
    most recent trading day's full session is used. The end is clipped to
    ``now`` and aligned down to the resolution grid; expected bars count the
    grid slots in [start, aligned end).

    Longer ranges span ``now - approx(range)`` to ``now``.
    """

    def __init__(self, calendar: Optional[TradingCalendar] = None, exchange_tz: str = EXCHANGE_TZ):
        self.calendar = calendar or TradingCalendar(exchange_tz)
        self.zone = self.calendar.zone

    def _local_ms(self, day, wall: time) -> int:
        return int(datetime.combine(day, wall, tzinfo=self.zone).timestamp() * 1000)

    def compute_window(
        self,
        range_: str,
        res: str,
        session: Union[CandleSession, str] = CandleSession.REGULAR,
        now: Optional[datetime] = None,
    ) -> SessionWindow:
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        now_ms = int(now.timestamp() * 1000)
        session = normalize_session(session.value if isinstance(session, CandleSession) else session)
        res_ms = res_to_ms(res)

        if range_.upper() != "1D":
            approx = range_to_approx_ms(range_)
            start_ms = now_ms - approx if approx else now_ms
            expected = compute_expected_bars(range_, res)
            return SessionWindow(start_ms=start_ms, end_ms=now_ms, expected_bars=expected or 0)

        local_now = now.astimezone(self.zone)
        day = local_now.date()
        full_session = False
        if local_now.time() < PREMARKET_OPEN:
            day = self.calendar.get_previous_trading_day(day) or day
            full_session = True
        elif not self.calendar.is_trading_day(day):
            day = self.calendar.latest_trading_day(day)
            full_session = True

        if session == CandleSession.EXTENDED:
            start_ms = self._local_ms(day, PREMARKET_OPEN)
            session_end_ms = self._local_ms(day, AFTERHOURS_CLOSE)
        else:
            start_ms = self._local_ms(day, REGULAR_OPEN)
            session_end_ms = self._local_ms(day, REGULAR_CLOSE)

        end_ms = session_end_ms if full_session else min(now_ms, session_end_ms)
        end_ms = max(end_ms, start_ms)

        if res_ms:
            aligned_ms = (end_ms // res_ms) * res_ms
            if aligned_ms < start_ms:
                expected = 0
                end_ms = start_ms
            else:
                expected = (aligned_ms - start_ms) // res_ms
                end_ms = aligned_ms
        else:
            expected = compute_expected_bars(range_, res) or 0

        return SessionWindow(start_ms=start_ms, end_ms=end_ms, expected_bars=int(expected))
