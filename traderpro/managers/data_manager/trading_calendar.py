"""Trading Calendar for US Stock Markets

Computes the NYSE full-closure holiday set for any year and answers
weekend/holiday/trading-day questions keyed by exchange day keys
("YYYY-MM-DD" in the exchange timezone).

Holidays are derived from rules, not a hard-coded table:
- New Year's Day (Jan 1, observed)
- Martin Luther King Jr. Day (3rd Monday in January)
- Presidents' Day (3rd Monday in February)
- Good Friday (Easter Sunday - 2 days)
- Memorial Day (last Monday in May)
- Juneteenth (Jun 19, observed, from 2022)
- Independence Day (Jul 4, observed)
- Labor Day (1st Monday in September)
- Thanksgiving Day (4th Thursday in November)
- Christmas Day (Dec 25, observed)

Holiday sets are year-scoped: a Saturday New Year's Day is not observed on
the preceding Friday, which belongs to the previous year.
"""
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Dict, List, Optional, Union
from zoneinfo import ZoneInfo

from traderpro.logger import logger


EXCHANGE_TZ = "America/New_York"
JUNETEENTH_FIRST_YEAR = 2022

MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)

DayLike = Union[str, date]


def parse_day_key(day_key: DayLike) -> Optional[date]:
    """Parse a "YYYY-MM-DD" key; returns None for anything unparseable."""
    if isinstance(day_key, datetime):
        return day_key.date()
    if isinstance(day_key, date):
        return day_key
    if not isinstance(day_key, str) or len(day_key) < 10:
        return None
    try:
        return date.fromisoformat(day_key[:10])
    except ValueError:
        return None


def day_key(d: date) -> str:
    return d.isoformat()


def _weekday_at_noon(d: date, tz: str = EXCHANGE_TZ) -> int:
    # Anchored at local noon so DST transitions can never move the date
    return datetime.combine(d, time(12, 0), tzinfo=ZoneInfo(tz)).weekday()


def is_weekend(key: DayLike, tz: str = EXCHANGE_TZ) -> bool:
    """True for Saturday/Sunday in the exchange timezone."""
    d = parse_day_key(key)
    if d is None:
        return False
    return _weekday_at_noon(d, tz) >= SATURDAY


def day_key_from_timestamp(ms: Union[int, float], tz: str = EXCHANGE_TZ) -> str:
    """Exchange-timezone day key for an epoch-millisecond timestamp."""
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc).astimezone(ZoneInfo(tz))
    return dt.date().isoformat()


def easter_sunday(year: int) -> date:
    """Gregorian Easter Sunday (anonymous Meeus/Jones/Butcher algorithm)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


def observed_date(d: date, tz: str = EXCHANGE_TZ) -> date:
    """Saturday holidays are observed Friday, Sunday holidays Monday."""
    weekday = _weekday_at_noon(d, tz)
    if weekday == SATURDAY:
        return d - timedelta(days=1)
    if weekday == SUNDAY:
        return d + timedelta(days=1)
    return d


def nth_weekday_of_month(year: int, month: int, weekday: int, nth: int) -> date:
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (nth - 1))


def last_weekday_of_month(year: int, month: int, weekday: int) -> date:
    if month == 12:
        last = date(year, 12, 31)
    else:
        last = date(year, month + 1, 1) - timedelta(days=1)
    return last - timedelta(days=(last.weekday() - weekday) % 7)


@lru_cache(maxsize=64)
def nyse_holidays(year: int) -> Dict[date, str]:
    """NYSE full-closure holidays for one calendar year, keyed by observed date."""
    holidays: Dict[date, str] = {}

    def add(d: date, name: str):
        # Observed shifts never cross into a neighbouring year's set
        if d.year == year:
            holidays[d] = name

    add(observed_date(date(year, 1, 1)), "New Year's Day")
    add(nth_weekday_of_month(year, 1, MONDAY, 3), "Martin Luther King Jr. Day")
    add(nth_weekday_of_month(year, 2, MONDAY, 3), "Presidents' Day")
    add(easter_sunday(year) - timedelta(days=2), "Good Friday")
    add(last_weekday_of_month(year, 5, MONDAY), "Memorial Day")
    if year >= JUNETEENTH_FIRST_YEAR:
        add(observed_date(date(year, 6, 19)), "Juneteenth National Independence Day")
    add(observed_date(date(year, 7, 4)), "Independence Day")
    add(nth_weekday_of_month(year, 9, MONDAY, 1), "Labor Day")
    add(nth_weekday_of_month(year, 11, THURSDAY, 4), "Thanksgiving Day")
    add(observed_date(date(year, 12, 25)), "Christmas Day")
    return holidays


def is_holiday(key: DayLike) -> bool:
    d = parse_day_key(key)
    if d is None:
        return False
    return d in nyse_holidays(d.year)


def is_trading_day(key: DayLike, tz: str = EXCHANGE_TZ) -> bool:
    d = parse_day_key(key)
    if d is None:
        return False
    return not is_weekend(d, tz) and not is_holiday(d)


class TradingCalendar:
    """US stock market trading calendar bound to an exchange timezone.

    Handles:
    - Computed NYSE holidays for any year
    - Weekend detection in the exchange timezone
    - Previous/next trading day arithmetic on day keys
    """

    def __init__(self, tz: str = EXCHANGE_TZ):
        self.tz = tz
        self.zone = ZoneInfo(tz)
        self._extra_closures: set = set()
        logger.debug(f"Trading calendar initialized for {tz}")

    def is_weekend(self, key: DayLike) -> bool:
        return is_weekend(key, self.tz)

    def is_holiday(self, key: DayLike) -> bool:
        d = parse_day_key(key)
        return d is not None and (is_holiday(d) or d in self._extra_closures)

    def is_trading_day(self, key: DayLike) -> bool:
        """Check if a day key is a valid trading day.

        Args:
            key: "YYYY-MM-DD" or date

        Returns:
            True if the market is open on this date
        """
        d = parse_day_key(key)
        if d is None:
            return False
        return not self.is_weekend(d) and not self.is_holiday(d)

    def day_key_from_timestamp(self, ms: Union[int, float]) -> str:
        return day_key_from_timestamp(ms, self.tz)

    def holidays(self, year: int) -> Dict[date, str]:
        """Computed holidays plus any ad-hoc closures falling in ``year``."""
        result = dict(nyse_holidays(year))
        for d in self._extra_closures:
            if d.year == year:
                result.setdefault(d, "Special closure")
        return dict(sorted(result.items()))

    def get_previous_trading_day(self, from_key: DayLike, days_back: int = 1) -> Optional[date]:
        """Get the Nth trading day strictly before ``from_key``.

        Returns:
            Date of the Nth previous trading day, or None if not found within 60 days
        """
        return self._step(from_key, -1, days_back)

    def get_next_trading_day(self, from_key: DayLike, days_ahead: int = 1) -> Optional[date]:
        """Get the Nth trading day strictly after ``from_key``."""
        return self._step(from_key, 1, days_ahead)

    def _step(self, from_key: DayLike, direction: int, count: int) -> Optional[date]:
        if count < 1:
            raise ValueError("count must be at least 1")
        current = parse_day_key(from_key)
        if current is None:
            raise ValueError(f"Invalid day key: {from_key!r}")

        found = 0
        max_attempts = 60  # Safety limit
        for _ in range(max_attempts):
            current += timedelta(days=direction)
            if self.is_trading_day(current):
                found += 1
                if found == count:
                    return current

        logger.warning(f"Could not find {count} trading days from {from_key} within {max_attempts} days")
        return None

    def latest_trading_day(self, on_or_before: DayLike) -> date:
        """``on_or_before`` itself when it trades, else the previous trading day."""
        d = parse_day_key(on_or_before)
        if d is None:
            raise ValueError(f"Invalid day key: {on_or_before!r}")
        if self.is_trading_day(d):
            return d
        return self.get_previous_trading_day(d)

    def get_trading_days_in_range(self, start_key: DayLike, end_key: DayLike) -> List[date]:
        """All trading days in [start, end], inclusive."""
        start, end = parse_day_key(start_key), parse_day_key(end_key)
        if start is None or end is None or start > end:
            return []
        days = []
        current = start
        while current <= end:
            if self.is_trading_day(current):
                days.append(current)
            current += timedelta(days=1)
        return days

    def add_closure(self, closure: date) -> None:
        """Register an unscheduled closure (e.g. a national day of mourning)."""
        self._extra_closures.add(closure)
        logger.info(f"Added special closure to calendar: {closure}")

