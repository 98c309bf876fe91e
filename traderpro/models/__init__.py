"""
Database models and candle-path data structures
"""
from traderpro.models.database import (
    Base,
    create_store_engine,
    create_session_factory,
    session_scope,
    init_db,
)
from traderpro.models.candles import (
    Candle,
    DailyBar,
    SessionWindow,
    CanonicalMeta,
    CandleResult,
    ErrorResult,
    IndustryPostureItem,
    iso_from_ms,
)

__all__ = [
    "Base",
    "create_store_engine",
    "create_session_factory",
    "session_scope",
    "init_db",
    "Candle",
    "DailyBar",
    "SessionWindow",
    "CanonicalMeta",
    "CandleResult",
    "ErrorResult",
    "IndustryPostureItem",
    "iso_from_ms",
]
