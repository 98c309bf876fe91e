"""DataManager Public API

Single entry point for historical candle windows.
All CLI and API routes must use this interface.

Source priority:
- Durable resolutions (1h, 4h, 1d): row store first, vendor REST backfill.
- Intraday resolutions (1m, 5m, 15m, 30m): streaming candle cache first,
  vendor REST fallback (see ``WindowReconciler``).
- Watchlist composites: every constituent goes through the symbol path
  with bounded concurrency, then ``build_composite`` fuses them.
"""
import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import sessionmaker

from traderpro.config.settings import CandlesConfig
from traderpro.core.enums import CandleSession, CandleSource, CandleTarget, FallbackReason
from traderpro.core.exceptions import BadRequestError, CircuitOpenError, StoreUnavailableError, UpstreamError
from traderpro.integrations.alpaca_data import AlpacaBarsClient, to_alpaca_timeframe
from traderpro.logger import logger
from traderpro.managers.data_manager.bar_aggregation import aggregate_4h_from_1h
from traderpro.managers.data_manager.candle_store import CandleStoreReader
from traderpro.managers.data_manager.composite import build_composite
from traderpro.managers.data_manager.session_window import (
    SessionWindowComputer,
    is_durable_res,
    normalize_range,
    normalize_range_res_pair,
    normalize_res,
    normalize_session,
    RANGES,
    INTRADAY_RESOLUTIONS,
    DURABLE_RESOLUTIONS,
)
from traderpro.managers.data_manager.window_reconciler import ReconcileRequest, SymbolWindow, WindowReconciler
from traderpro.models.candles import CandleResult, CanonicalMeta, DailyBar, ErrorResult, SessionWindow
from traderpro.models.database import session_scope
from traderpro.repositories.watchlist_repository import WatchlistRepository
from traderpro.services.circuit_breaker import ProviderCircuitBreaker, guard_call


CandleOutcome = Union[SymbolWindow, ErrorResult]


def _as_source(value: str) -> CandleSource:
    """Map a per-symbol source label to the public enum; unknown cache labels read as realtime_ws."""
    try:
        return CandleSource(value)
    except ValueError:
        return CandleSource.REALTIME_WS


class DataManager:
    """
    📊 DataManager - candle windows for symbols and watchlist composites

    Provides:
    - Canonical session windows and range/resolution normalization
    - Durable candles (store, REST backfill, 4h aggregation)
    - Intraday candles (streaming cache, REST fallback)
    - Watchlist composites
    - Day-level store series for posture aggregation
    """

    def __init__(
        self,
        config: CandlesConfig,
        window_computer: SessionWindowComputer,
        store_reader: CandleStoreReader,
        reconciler: WindowReconciler,
        rest_client: AlpacaBarsClient,
        session_factory: sessionmaker,
        store_breaker: Optional[ProviderCircuitBreaker] = None,
        rest_breaker: Optional[ProviderCircuitBreaker] = None,
        include_diagnostics: bool = False,
        system_manager: Optional[object] = None,
    ):
        """Initialize DataManager.

        Args:
            config: Candle query knobs (thresholds, fan-out, caps)
            window_computer: Canonical window source
            store_reader: Durable row store reader (synchronous)
            reconciler: Intraday source selection
            rest_client: Vendor REST client for durable backfill
            session_factory: Row store sessions for watchlist lookups
            store_breaker: Circuit breaker guarding the row store
            rest_breaker: Circuit breaker guarding vendor REST
            include_diagnostics: Attach REST error details to composite meta
            system_manager: Optional back-reference to the service root
        """
        self.system_manager = system_manager
        self.config = config
        self.window_computer = window_computer
        self.calendar = window_computer.calendar
        self.store_reader = store_reader
        self.reconciler = reconciler
        self.rest_client = rest_client
        self.session_factory = session_factory
        self.store_breaker = store_breaker
        self.rest_breaker = rest_breaker
        self.include_diagnostics = include_diagnostics
        self._fanout = asyncio.Semaphore(max(1, config.fanout_limit))

        logger.info(f"DataManager initialized (fanout={config.fanout_limit}, tz={config.exchange_timezone})")

    # ==================== STORE ACCESS ====================

    def _run_in_session(self, fn: Callable, *args):
        with session_scope(self.session_factory) as session:
            return fn(session, *args)

    async def get_watchlist_symbols(self, owner_user_id: str, watchlist_key: str) -> List[str]:
        return await asyncio.to_thread(
            self._run_in_session, WatchlistRepository.get_watchlist_symbols, owner_user_id, watchlist_key
        )

    async def _guarded_store_call(self, fn: Callable, *args):
        """Run a synchronous store read behind the store circuit breaker.

        Raises:
            CircuitOpenError: Store is cooling down
            StoreUnavailableError: Store read failed
        """
        breaker = self.store_breaker
        with guard_call(breaker):
            try:
                result = await asyncio.to_thread(fn, *args)
            except StoreUnavailableError as e:
                if breaker is not None:
                    breaker.record_failure(str(e))
                raise
            if breaker is not None:
                breaker.record_success()
        return result

    async def fetch_daily_series(self, symbols: Iterable[str], start_date: str) -> Dict[str, List[DailyBar]]:
        """Day-level close/volume series per symbol (see ``CandleStoreReader``)."""
        return await self._guarded_store_call(self.store_reader.fetch_daily_series, list(symbols), start_date)

    # ==================== CANDLE WINDOWS ====================

    async def get_candles_window(
        self,
        target: Optional[str],
        range_: Optional[str],
        res: Optional[str],
        session: Optional[str] = None,
        symbol: Optional[str] = None,
        watchlist_key: Optional[str] = None,
        owner_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Union[CandleResult, ErrorResult]:
        """
        Historical candle query.

        Returns:
            CandleResult, or ErrorResult when every source failed for a symbol

        Raises:
            BadRequestError: Missing or invalid parameters
        """
        target_kind = self._parse_target(target)
        norm_range = normalize_range(range_)
        norm_res = normalize_res(res)
        if not norm_range:
            raise BadRequestError("Missing range.")
        if not norm_res:
            raise BadRequestError("Missing res (resolution).")
        if norm_range not in RANGES:
            raise BadRequestError(f"Unsupported range '{range_}'.")
        if norm_res not in INTRADAY_RESOLUTIONS + DURABLE_RESOLUTIONS:
            raise BadRequestError(f"Unsupported res '{res}'.")

        symbol = (symbol or "").strip().upper()
        watchlist_key = (watchlist_key or "").strip()
        owner_user_id = (owner_user_id or "").strip()
        if target_kind == CandleTarget.SYMBOL and not symbol:
            raise BadRequestError("Missing symbol for target=SYMBOL.")
        if target_kind == CandleTarget.WATCHLIST_COMPOSITE:
            if not watchlist_key:
                raise BadRequestError("Missing watchlistKey for target=WATCHLIST_COMPOSITE.")
            if not owner_user_id:
                raise BadRequestError("Missing ownerUserId for target=WATCHLIST_COMPOSITE.")

        pair = normalize_range_res_pair(norm_range, norm_res)
        candle_session = normalize_session(session)
        window = self.window_computer.compute_window(pair.range, pair.res, candle_session, now=now)

        extra: Dict[str, Any] = {
            "target": target_kind.value,
            "range": pair.range,
            "res": pair.res,
            "session": candle_session.value,
        }
        if pair.normalized_from:
            extra["normalizedFrom"] = pair.normalized_from

        if target_kind == CandleTarget.SYMBOL:
            extra["symbol"] = symbol
            outcome = await self.fetch_symbol_window(symbol, pair.range, pair.res, candle_session, window)
            if isinstance(outcome, ErrorResult):
                outcome.details.update(extra)
                return outcome
            meta = CanonicalMeta(
                source=_as_source(outcome.source),
                expected_bars=window.expected_bars,
                received_bars=len(outcome.candles),
                window=window,
                fallback_used=outcome.fallback_used,
                fallback_reason=outcome.fallback_reason,
                extra={**extra, **outcome.diagnostics()},
            )
            return CandleResult(candles=outcome.candles, meta=meta)

        extra.update({"watchlistKey": watchlist_key, "ownerUserId": owner_user_id})
        return await self._composite_window(owner_user_id, watchlist_key, pair.range, pair.res,
                                            candle_session, window, extra)

    @staticmethod
    def _parse_target(target: Optional[str]) -> CandleTarget:
        try:
            return CandleTarget((target or "").strip().upper())
        except ValueError:
            raise BadRequestError("Missing/invalid target (SYMBOL|WATCHLIST_COMPOSITE).")

    async def fetch_symbol_window(
        self,
        symbol: str,
        range_: str,
        res: str,
        session: CandleSession,
        window: SessionWindow,
    ) -> CandleOutcome:
        """One symbol through the durable or intraday path (already-normalized inputs)."""
        async with self._fanout:
            if is_durable_res(res):
                return await self._durable_window(symbol, range_, res, window)
            # auto sessions are windowed as regular but passed through to the cache
            request = ReconcileRequest(symbol=symbol, range=range_, res=res, session=session.value, window=window)
            return await self.reconciler.reconcile(request)

    async def _durable_window(self, symbol: str, range_: str, res: str, window: SessionWindow) -> CandleOutcome:
        """Store first; REST backfill when the store is empty, failing or circuit-open."""
        store_error = None
        try:
            candles = await self._guarded_store_call(
                self.store_reader.fetch_candles, symbol, res, window.start_ms, window.end_ms
            )
            if res == "4h":
                candles = aggregate_4h_from_1h(candles, self.calendar.zone)
            if candles:
                return SymbolWindow(symbol=symbol, candles=candles, source=CandleSource.DURABLE_DB.value)
            store_error = {"message": "store returned no rows"}
        except (StoreUnavailableError, CircuitOpenError) as e:
            logger.warning(f"{symbol}: durable store unavailable ({e}), backfilling from REST")
            store_error = {"message": str(e)}

        timeframe = to_alpaca_timeframe("1d" if res == "1d" else "1h")
        breaker = self.rest_breaker
        try:
            with guard_call(breaker):
                try:
                    candles = await self.rest_client.fetch_bars(symbol, timeframe, window.start_iso, window.end_iso)
                except UpstreamError as e:
                    if breaker is not None:
                        breaker.record_failure(str(e), throttled=e.throttled)
                    return self._durable_failure(symbol, store_error, {"message": str(e), "status": e.status})
                if breaker is not None:
                    breaker.record_success()
        except CircuitOpenError as e:
            return self._durable_failure(symbol, store_error, {"message": str(e), "circuitOpen": True})

        if res == "4h":
            candles = aggregate_4h_from_1h(candles, self.calendar.zone)
        if not candles:
            return self._durable_failure(symbol, store_error, {"message": "REST returned no bars"})
        return SymbolWindow(symbol=symbol, candles=candles, source=CandleSource.ALPACA_REST.value)

    @staticmethod
    def _durable_failure(symbol: str, store_error: Optional[dict], rest_error: dict) -> ErrorResult:
        logger.error(f"{symbol}: no durable candles from store or REST")
        return ErrorResult(
            code="UPSTREAM_ERROR",
            message=f"No durable candles available for {symbol}",
            details={
                "symbol": symbol,
                "fallbackReason": FallbackReason.NO_DATA.value,
                "storeError": store_error,
                "restError": rest_error,
            },
        )

    async def _composite_window(
        self,
        owner_user_id: str,
        watchlist_key: str,
        range_: str,
        res: str,
        session: CandleSession,
        window: SessionWindow,
        extra: Dict[str, Any],
    ) -> CandleResult:
        symbols = await self.get_watchlist_symbols(owner_user_id, watchlist_key)
        picked = symbols[: self.config.max_constituents]
        if len(symbols) > len(picked):
            logger.info(f"Composite {watchlist_key}: capped {len(symbols)} symbols to {len(picked)}")

        durable = is_durable_res(res)
        expected = window.expected_bars

        # Joined before fusing; no partial composites
        outcomes = await asyncio.gather(
            *(self.fetch_symbol_window(sym, range_, res, session, window) for sym in picked)
        )

        series: Dict[str, list] = {}
        sources: Dict[str, str] = {}
        fallbacks: Dict[str, Dict[str, Any]] = {}
        ws_errors: Dict[str, Any] = {}
        rest_errors: Dict[str, Any] = {}

        for sym, outcome in zip(picked, outcomes):
            if isinstance(outcome, ErrorResult):
                series[sym] = []
                sources[sym] = "none"
                fallbacks[sym] = {"used": True, "reason": FallbackReason.NO_DATA.value}
                if outcome.details.get("wsError"):
                    ws_errors[sym] = outcome.details["wsError"]
                if outcome.details.get("restError"):
                    rest_errors[sym] = outcome.details["restError"]
                continue
            series[sym] = outcome.candles
            sources[sym] = outcome.source
            fallbacks[sym] = {
                "used": outcome.fallback_used,
                "reason": outcome.fallback_reason.value if outcome.fallback_reason else None,
            }
            if outcome.ws_error:
                ws_errors[sym] = outcome.ws_error
            if outcome.rest_error:
                rest_errors[sym] = outcome.rest_error

        candles, constituents = build_composite(series)
        any_fallback = any(f["used"] for f in fallbacks.values())

        if any_fallback:
            source = CandleSource.COMPOSITE_MIXED
        elif durable:
            source = (
                CandleSource.COMPOSITE_DB
                if all(s == CandleSource.DURABLE_DB.value for s in sources.values())
                else CandleSource.COMPOSITE_MIXED
            )
        else:
            source = CandleSource.COMPOSITE_WS

        extra = dict(extra)
        extra.update({
            "constituents": constituents,
            "sourcesBySymbol": sources,
            "fallbackBySymbol": fallbacks,
        })
        if ws_errors:
            extra["wsError"] = {"bySymbol": ws_errors}
        if rest_errors and self.include_diagnostics:
            extra["restError"] = {"bySymbol": rest_errors}

        meta = CanonicalMeta(
            source=source,
            expected_bars=expected,
            received_bars=len(candles),
            window=window,
            fallback_used=any_fallback,
            fallback_reason=FallbackReason.CONSTITUENT_FALLBACK if any_fallback else None,
            extra=extra,
        )
        return CandleResult(candles=candles, meta=meta)
