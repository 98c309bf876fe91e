"""
📊 DataManager Module

Single source of truth for candle data.
Provides candle windows to the HTTP routes, the CLI and the AnalysisEngine.

Responsibilities:
- Trading calendar and canonical session windows
- Durable candles from the row store, with vendor REST backfill
- Intraday candles from the streaming cache, with vendor REST fallback
- Watchlist composites

The manager itself lives in ``traderpro.managers.data_manager.api``.
"""
