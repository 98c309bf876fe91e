"""Test Database Fixtures

Provides an in-memory SQLite row store with the service tables created,
plus helpers that seed candles, watchlists, holdings and classifications
the way the external ingester and the app database would.
"""
import pytest
from typing import Dict, Iterable, Optional, Sequence, Tuple

from traderpro.models.database import create_session_factory, create_store_engine, init_db, session_scope
from traderpro.models.schemas import (
    CandleDaily,
    CandleHourly,
    Holding,
    SymbolClassification,
    Watchlist,
    WatchlistSymbol,
)


@pytest.fixture
def store_engine():
    """Fresh in-memory row store per test."""
    engine = create_store_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(store_engine):
    return create_session_factory(store_engine)


# ============================================================================
# Seeding helpers
# ============================================================================

def seed_daily_rows(session_factory, symbol: str, rows: Iterable[Tuple[str, float, Optional[float]]]):
    """Insert daily rows as (day_key, close, volume); ts is 20:00 UTC of the day."""
    with session_scope(session_factory) as session:
        for day, close, volume in rows:
            session.add(CandleDaily(
                symbol=symbol,
                ts=f"{day} 20:00:00+00",
                ny_trade_day=day,
                o=close,
                h=close,
                l=close,
                c=close,
                v=volume,
            ))


def seed_ohlcv_rows(session_factory, symbol: str, rows: Iterable[Tuple[str, float, float, float, float, float]],
                    hourly: bool = False):
    """Insert OHLCV rows as (ts, o, h, l, c, v) into the daily or hourly table."""
    model = CandleHourly if hourly else CandleDaily
    with session_scope(session_factory) as session:
        for ts, o, h, l, c, v in rows:
            session.add(model(symbol=symbol, ts=ts, ny_trade_day=ts[:10], o=o, h=h, l=l, c=c, v=v))


def seed_watchlist(session_factory, owner_user_id: str, key: str, symbols: Sequence[str]):
    with session_scope(session_factory) as session:
        watchlist = Watchlist(owner_user_id=owner_user_id, key=key, name=key.title())
        for i, symbol in enumerate(symbols):
            watchlist.symbols.append(WatchlistSymbol(symbol=symbol, sort_order=i))
        session.add(watchlist)


def seed_holding(session_factory, owner_user_id: str, symbol: str, quantity: float):
    with session_scope(session_factory) as session:
        session.add(Holding(owner_user_id=owner_user_id, symbol=symbol, quantity=quantity))


def seed_classifications(session_factory, classifications: Dict[str, Tuple[str, str]]):
    """Insert symbol -> (industry_code, industry_abbrev)."""
    with session_scope(session_factory) as session:
        for symbol, (code, abbrev) in classifications.items():
            session.add(SymbolClassification(symbol=symbol, industry_code=code, industry_abbrev=abbrev))
