"""Time Window Grouping

Groups hourly candles into exchange-anchored 4h buckets.

Buckets start at 01:00, 05:00, 09:00, 13:00, 17:00 and 21:00 exchange time.
The 21:00 bucket runs past midnight, so an 00:30 candle belongs to the
previous exchange day's 21:00 bucket.
"""
from datetime import datetime, time, timedelta, timezone
from itertools import groupby
from typing import List, Tuple
from zoneinfo import ZoneInfo

from traderpro.models.candles import Candle

BUCKET_ANCHOR = time(1, 0)
BUCKET_HOURS = 4


def bucket_start_ms_4h(ms: int, zone: ZoneInfo) -> int:
    local = datetime.fromtimestamp(ms / 1000, tz=timezone.utc).astimezone(zone)
    anchor = datetime.combine(local.date(), BUCKET_ANCHOR, tzinfo=zone)
    if local < anchor:
        anchor = datetime.combine(local.date() - timedelta(days=1), BUCKET_ANCHOR, tzinfo=zone)
    elapsed_hours = int((local.replace(tzinfo=None) - anchor.replace(tzinfo=None)).total_seconds() // 3600)
    index = elapsed_hours // BUCKET_HOURS
    start_local = anchor.replace(tzinfo=None) + timedelta(hours=index * BUCKET_HOURS)
    return int(start_local.replace(tzinfo=zone).timestamp() * 1000)


def group_into_4h_buckets(candles: List[Candle], zone: ZoneInfo) -> List[Tuple[int, List[Candle]]]:
    """Group chronologically sorted candles by 4h bucket start.

    Returns:
        List of (bucket_start_ms, candles) tuples, sorted chronologically
    """
    ordered = sorted(candles, key=lambda c: c.time)
    return [
        (start, list(group))
        for start, group in groupby(ordered, key=lambda c: bucket_start_ms_4h(c.time, zone))
    ]
