"""OHLCV Aggregation Core

Shared aggregation logic for every derived candle resolution.
"""
from typing import List

from traderpro.models.candles import Candle


def aggregate_ohlcv(bucket_start_ms: int, items: List[Candle]) -> Candle:
    """Aggregate OHLCV for a group of candles.
    
    OHLCV Rules:
    - Open: First item's open
    - High: Maximum high across all items
    - Low: Minimum low across all items
    - Close: Last item's close
    - Volume: Sum of volumes that are present (absent if none are)
    
    Args:
        bucket_start_ms: Start time for the aggregated candle
        items: Candles to aggregate (chronologically sorted)
        
    Raises:
        ValueError: If items is empty
    """
    if not items:
        raise ValueError("Cannot aggregate empty group")

    volumes = [c.volume for c in items if c.volume is not None]
    return Candle(
        time=bucket_start_ms,
        open=items[0].open,
        high=max(c.high for c in items),
        low=min(c.low for c in items),
        close=items[-1].close,
        volume=sum(volumes) if volumes else None,
    )
