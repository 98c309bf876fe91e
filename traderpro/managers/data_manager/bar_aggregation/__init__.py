"""Candle normalization and aggregation

- normalization: upstream candle payloads -> ``Candle``
- grouping: exchange-anchored 4h buckets
- ohlcv: OHLCV folding shared by every derived resolution
"""
from typing import List
from zoneinfo import ZoneInfo

from traderpro.managers.data_manager.bar_aggregation.grouping import (
    bucket_start_ms_4h,
    group_into_4h_buckets,
)
from traderpro.managers.data_manager.bar_aggregation.normalization import (
    coerce_time_ms,
    normalize_candle,
    normalize_candle_array,
)
from traderpro.managers.data_manager.bar_aggregation.ohlcv import aggregate_ohlcv
from traderpro.models.candles import Candle


def aggregate_4h_from_1h(candles: List[Candle], zone: ZoneInfo) -> List[Candle]:
    """Fold hourly candles into 4h candles anchored at 01:00 exchange time."""
    return [aggregate_ohlcv(start, group) for start, group in group_into_4h_buckets(candles, zone)]


__all__ = [
    'aggregate_4h_from_1h',
    'aggregate_ohlcv',
    'bucket_start_ms_4h',
    'coerce_time_ms',
    'group_into_4h_buckets',
    'normalize_candle',
    'normalize_candle_array',
]
