"""
Database repositories
"""
from traderpro.repositories.watchlist_repository import WatchlistRepository

__all__ = ["WatchlistRepository"]
