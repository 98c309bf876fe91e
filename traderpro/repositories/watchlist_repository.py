"""
Watchlist Repository
Read-only queries for watchlist symbols, held positions and industry classification
"""
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from traderpro.models.schemas import Holding, SymbolClassification, Watchlist, WatchlistSymbol


def _unique_upper(symbols) -> List[str]:
    seen = {}
    for s in symbols:
        sym = str(s or "").strip().upper()
        if sym and sym not in seen:
            seen[sym] = True
    return list(seen)


class WatchlistRepository:
    """Repository for watchlist-scoped symbol universes"""

    @staticmethod
    def get_watchlist_symbols(session: Session, owner_user_id: str, watchlist_key: str) -> List[str]:
        """
        Active symbols of one watchlist, in watchlist order
        
        Args:
            session: Database session
            owner_user_id: Owner of the watchlist
            watchlist_key: Watchlist key
            
        Returns:
            Upper-cased, de-duplicated symbols (empty if the watchlist does not exist)
        """
        query = (
            select(WatchlistSymbol.symbol)
            .join(Watchlist, Watchlist.id == WatchlistSymbol.watchlist_id)
            .where(
                Watchlist.owner_user_id == owner_user_id,
                Watchlist.key == watchlist_key,
                WatchlistSymbol.is_active.is_(True),
            )
            .order_by(WatchlistSymbol.sort_order, WatchlistSymbol.id)
        )
        return _unique_upper(session.execute(query).scalars().all())

    @staticmethod
    def get_owner_universe(
        session: Session,
        owner_user_id: str,
        watchlist_key: Optional[str] = None,
    ) -> List[str]:
        """
        Symbols an owner follows: every watchlist (or just ``watchlist_key``)
        plus held positions when the scope is not narrowed to one watchlist
        """
        query = (
            select(WatchlistSymbol.symbol)
            .join(Watchlist, Watchlist.id == WatchlistSymbol.watchlist_id)
            .where(Watchlist.owner_user_id == owner_user_id, WatchlistSymbol.is_active.is_(True))
            .order_by(Watchlist.id, WatchlistSymbol.sort_order, WatchlistSymbol.id)
        )
        if watchlist_key:
            query = query.where(Watchlist.key == watchlist_key)
        symbols = list(session.execute(query).scalars().all())

        if not watchlist_key:
            held = select(Holding.symbol).where(
                Holding.owner_user_id == owner_user_id,
                Holding.quantity != 0,
            )
            symbols.extend(session.execute(held).scalars().all())

        return _unique_upper(symbols)

    @staticmethod
    def get_classifications(session: Session, symbols: List[str]) -> Dict[str, Tuple[str, str]]:
        """
        Industry classification per symbol

        Returns:
            Dict of symbol -> (industry_code, industry_abbrev); unclassified symbols are absent
        """
        if not symbols:
            return {}
        query = select(
            SymbolClassification.symbol,
            SymbolClassification.industry_code,
            SymbolClassification.industry_abbrev,
        ).where(SymbolClassification.symbol.in_(symbols))
        return {
            row.symbol.upper(): (row.industry_code, row.industry_abbrev)
            for row in session.execute(query)
        }
