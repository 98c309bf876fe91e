"""Durable candle store reader

Reads day-level and hour-level candle series from the row store. The store
is populated by an external ingester whose schema has drifted over time
(``close`` vs ``c``, ``volume`` vs ``v``, with or without an explicit
``ny_trade_day`` column), so every read walks an ordered list of column
projections and keeps the first one the store accepts. Downstream code
always sees one row shape.

All methods are synchronous; async callers wrap them in ``asyncio.to_thread``.
"""
import math
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import column, select, table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from traderpro.core.exceptions import StoreUnavailableError
from traderpro.logger import logger
from traderpro.managers.data_manager.bar_aggregation import coerce_time_ms
from traderpro.managers.data_manager.trading_calendar import TradingCalendar, parse_day_key
from traderpro.models.candles import Candle, DailyBar


# Ordered column projections for the daily table
DAILY_PROJECTIONS: Tuple[Tuple[str, ...], ...] = (
    ("symbol", "ts", "ny_trade_day", "c", "v"),
    ("symbol", "ts", "ny_trade_day", "close", "volume"),
    ("symbol", "ts", "ny_trade_day", "c", "volume"),
    ("symbol", "ts", "ny_trade_day", "close", "v"),
    ("symbol", "ts", "ny_trade_day", "c"),
    ("symbol", "ts", "ny_trade_day", "close"),
    ("symbol", "ts", "c", "v"),
    ("symbol", "ts", "close", "volume"),
    ("symbol", "ts", "c"),
    ("symbol", "ts", "close"),
)

# Ordered column projections for full OHLCV reads
OHLCV_PROJECTIONS: Tuple[Tuple[str, ...], ...] = (
    ("symbol", "ts", "o", "h", "l", "c", "v"),
    ("symbol", "ts", "open", "high", "low", "close", "volume"),
    ("symbol", "ts", "o", "h", "l", "c"),
    ("symbol", "ts", "open", "high", "low", "close"),
)


def normalize_symbol(value) -> str:
    return str(value or "").strip().upper()


def coerce_day_key(value) -> Optional[str]:
    """First ten characters of a date-ish value when they form a real date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    d = parse_day_key(str(value).strip())
    return d.isoformat() if d else None


def _finite(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def _midday_utc_ms(day_key: str) -> int:
    d = parse_day_key(day_key)
    return int(datetime(d.year, d.month, d.day, 12, tzinfo=timezone.utc).timestamp() * 1000)


class CandleStoreReader:
    """Reads candle series from the durable row store.

    Duplicate-row suppression: vendor daily feeds occasionally emit a
    holiday-labeled row that repeats the next real session. A row is
    dropped when, compared to the previous kept row of the same symbol,
    its close is within ``dup_close_epsilon``, its volume is within
    ``dup_volume_epsilon`` and its timestamp is strictly later.
    """

    def __init__(
        self,
        engine: Engine,
        calendar: Optional[TradingCalendar] = None,
        daily_table: str = "candles_daily",
        hourly_table: str = "candles_1h",
        dup_close_epsilon: float = 0.001,
        dup_volume_epsilon: float = 2000.0,
    ):
        self.engine = engine
        self.calendar = calendar or TradingCalendar()
        self.daily_table = daily_table
        self.hourly_table = hourly_table
        self.dup_close_epsilon = dup_close_epsilon
        self.dup_volume_epsilon = dup_volume_epsilon

    # ------------------------------------------------------------------
    # Query plumbing
    # ------------------------------------------------------------------

    def _select_rows(
        self,
        table_name: str,
        projections: Sequence[Tuple[str, ...]],
        symbols: List[str],
        start_day_key: Optional[str] = None,
        start_ts: Optional[str] = None,
    ) -> List[dict]:
        """Run the first projection the store accepts.

        Raises:
            StoreUnavailableError: If every projection fails
        """
        last_error: Optional[Exception] = None
        for projection in projections:
            tbl = table(table_name, *(column(name) for name in projection))
            stmt = select(*tbl.c).where(tbl.c.symbol.in_(symbols))

            if "ny_trade_day" in projection:
                if start_day_key:
                    stmt = stmt.where(tbl.c.ny_trade_day >= start_day_key)
                stmt = stmt.order_by(tbl.c.ny_trade_day, tbl.c.ts)
            else:
                if start_ts:
                    stmt = stmt.where(tbl.c.ts >= start_ts)
                stmt = stmt.order_by(tbl.c.ts)

            try:
                with self.engine.connect() as conn:
                    rows = [dict(row._mapping) for row in conn.execute(stmt)]
            except SQLAlchemyError as e:
                last_error = e
                logger.debug(f"Projection {projection} rejected by {table_name}: {e.__class__.__name__}")
                continue

            return rows

        raise StoreUnavailableError(f"No usable projection for {table_name}: {last_error}")

    # ------------------------------------------------------------------
    # Daily series
    # ------------------------------------------------------------------

    def fetch_daily_series(self, symbols: Iterable[str], start_date: str) -> Dict[str, List[DailyBar]]:
        """
        Day-level close/volume series per symbol since ``start_date``

        Args:
            symbols: Symbols to read (normalized and de-duplicated)
            start_date: ISO date or timestamp; rows before it are dropped

        Returns:
            Dict of symbol -> bars sorted ascending by time
        """
        wanted = sorted({normalize_symbol(s) for s in symbols if normalize_symbol(s)})
        if not wanted:
            return {}

        start_day_key = coerce_day_key(start_date)
        start_ms = coerce_time_ms(start_date) if start_date else None
        rows = self._select_rows(
            self.daily_table,
            DAILY_PROJECTIONS,
            wanted,
            start_day_key=start_day_key,
            start_ts=start_day_key,
        )
        return self._normalize_daily_rows(rows, start_ms)

    def _normalize_daily_rows(self, rows: List[dict], start_ms: Optional[int]) -> Dict[str, List[DailyBar]]:
        out: Dict[str, List[DailyBar]] = defaultdict(list)
        last_kept: Dict[str, DailyBar] = {}
        dropped_malformed = 0
        dropped_duplicates = 0

        for row in rows:
            symbol = normalize_symbol(row.get("symbol"))
            if not symbol:
                continue

            ts_ms = coerce_time_ms(row.get("ts"))
            day = coerce_day_key(row.get("ny_trade_day"))
            if day is None and ts_ms is not None:
                day = self.calendar.day_key_from_timestamp(ts_ms)

            if ts_ms is not None:
                time_ms = ts_ms
            elif day is not None:
                time_ms = _midday_utc_ms(day)
            else:
                time_ms = None

            close = _finite(row.get("close", row.get("c")))
            volume = _finite(row.get("volume", row.get("v")))

            if time_ms is None or close is None or day is None:
                dropped_malformed += 1
                continue
            if start_ms is not None and time_ms < start_ms:
                continue

            bar = DailyBar(time=time_ms, day_key=day, close=close, volume=volume)
            prev = last_kept.get(symbol)
            if self._is_vendor_duplicate(prev, bar):
                dropped_duplicates += 1
                logger.debug(f"{symbol}: dropped duplicate daily row {day} (close={close}, volume={volume})")
                continue

            last_kept[symbol] = bar
            out[symbol].append(bar)

        if dropped_malformed or dropped_duplicates:
            logger.info(
                f"Daily store read dropped {dropped_malformed} malformed and "
                f"{dropped_duplicates} duplicate rows"
            )

        return {symbol: sorted(bars, key=lambda b: b.time) for symbol, bars in out.items()}

    def _is_vendor_duplicate(self, prev: Optional[DailyBar], bar: DailyBar) -> bool:
        if prev is None or bar.volume is None or bar.volume <= 0 or prev.volume is None:
            return False
        return (
            bar.time > prev.time
            and abs(bar.close - prev.close) <= self.dup_close_epsilon
            and abs(bar.volume - prev.volume) <= self.dup_volume_epsilon
        )

    # ------------------------------------------------------------------
    # Durable OHLCV candles
    # ------------------------------------------------------------------

    def fetch_candles(self, symbol: str, res: str, start_ms: int, end_ms: int) -> List[Candle]:
        """
        OHLCV candles for ``symbol`` in [start_ms, end_ms] from the durable tables

        ``1d`` reads the daily table; ``1h`` and ``4h`` read the hourly table
        (the caller aggregates 4h).
        """
        table_name = self.daily_table if res == "1d" else self.hourly_table
        start_iso = datetime.fromtimestamp(start_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
        rows = self._select_rows(table_name, OHLCV_PROJECTIONS, [normalize_symbol(symbol)], start_ts=start_iso)

        candles: Dict[int, Candle] = {}
        for row in rows:
            time_ms = coerce_time_ms(row.get("ts"))
            o = _finite(row.get("open", row.get("o")))
            h = _finite(row.get("high", row.get("h")))
            l = _finite(row.get("low", row.get("l")))
            c = _finite(row.get("close", row.get("c")))
            if time_ms is None or None in (o, h, l, c):
                continue
            if time_ms < start_ms or time_ms > end_ms:
                continue
            candles[time_ms] = Candle(
                time=time_ms, open=o, high=h, low=l, close=c,
                volume=_finite(row.get("volume", row.get("v"))),
            )

        return [candles[t] for t in sorted(candles)]
