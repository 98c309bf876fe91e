"""
API Routes
"""
from traderpro.api.routes import admin, market, realtime

__all__ = ["admin", "market", "realtime"]
