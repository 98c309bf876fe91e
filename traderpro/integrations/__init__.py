"""
External market-data integrations
"""
from traderpro.integrations.alpaca_data import AlpacaBarsClient
from traderpro.integrations.realtime_cache import RealtimeCacheClient, CachedWindow
from traderpro.integrations.realtime_ws import RealtimeSocketAdapter, ReconnectBackoff

__all__ = [
    "AlpacaBarsClient",
    "RealtimeCacheClient",
    "CachedWindow",
    "RealtimeSocketAdapter",
    "ReconnectBackoff",
]
