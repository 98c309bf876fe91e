"""
SQLAlchemy row store models

The candle tables are written by an external ingester; these definitions
describe the canonical column set so local and test databases can be
created. Readers never depend on them and tolerate other column names
(see ``CandleStoreReader``).
"""
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from traderpro.models.database import Base


class _CandleColumns:
    """OHLCV columns shared by the durable candle tables."""
    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(16), nullable=False)
    ts = Column(String(40), nullable=False)  # "YYYY-MM-DD HH:MM:SS+00" as written by the ingester
    ny_trade_day = Column(String(10))  # exchange-timezone day key
    o = Column(Float)
    h = Column(Float)
    l = Column(Float)
    c = Column(Float)
    v = Column(Float)


class CandleDaily(_CandleColumns, Base):
    """One row per symbol per trading day"""
    __tablename__ = "candles_daily"
    __table_args__ = (
        Index("ix_candles_daily_symbol_day", "symbol", "ny_trade_day"),
    )


class CandleHourly(_CandleColumns, Base):
    """One row per symbol per hour; 4h bars are aggregated from these"""
    __tablename__ = "candles_1h"
    __table_args__ = (
        Index("ix_candles_1h_symbol_ts", "symbol", "ts"),
    )


class SymbolClassification(Base):
    """Industry grouping per symbol"""
    __tablename__ = "symbol_classification"

    symbol = Column(String(16), primary_key=True)
    industry_code = Column(String(32), nullable=False, index=True)
    industry_abbrev = Column(String(32), nullable=False)
    industry_name = Column(String(200))


class Watchlist(Base):
    """Named symbol list owned by a user"""
    __tablename__ = "watchlists"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_user_id = Column(String(64), nullable=False, index=True)
    key = Column(String(64), nullable=False)
    name = Column(String(200))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    symbols = relationship("WatchlistSymbol", back_populates="watchlist", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("owner_user_id", "key", name="uix_watchlist_owner_key"),
    )

    def __repr__(self):
        return f"<Watchlist {self.owner_user_id}:{self.key}>"


class WatchlistSymbol(Base):
    __tablename__ = "watchlist_symbols"

    id = Column(Integer, primary_key=True, autoincrement=True)
    watchlist_id = Column(Integer, ForeignKey("watchlists.id"), nullable=False, index=True)
    symbol = Column(String(16), nullable=False)
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)

    watchlist = relationship("Watchlist", back_populates="symbols")


class Holding(Base):
    """Open position; only the symbol and quantity matter to posture"""
    __tablename__ = "holdings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_user_id = Column(String(64), nullable=False, index=True)
    symbol = Column(String(16), nullable=False)
    quantity = Column(Float, default=0.0)
