"""Intraday window reconciliation

Decides, per symbol, whether an intraday candle window is served from the
streaming candle cache or backfilled from vendor REST, and records why.

Terminal states, in order of preference:

1. Streaming-viable: cache returned >= 1 bar, at least ``undersupply_ratio``
   of expected bars, and its session start is within
   ``window_skew_tolerance_ms`` of the canonical start.
2. REST fallback: streaming not viable and the resolution maps to a vendor
   timeframe. Reason is WS_ERROR, WS_EMPTY, WS_WINDOW_MISMATCH or
   WS_UNDERSUPPLIED (checked in that order).
3. Degraded streaming: REST failed, returned nothing, is circuit-open or has
   no timeframe mapping, but the cache returned something. The cache bars
   are served with REST_FALLBACK_FAILED.
4. Total failure: a structured ``ErrorResult``; nothing is raised.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from traderpro.core.enums import CandleSource, FallbackReason
from traderpro.core.exceptions import CircuitOpenError, UpstreamError
from traderpro.integrations.alpaca_data import AlpacaBarsClient, to_alpaca_timeframe
from traderpro.integrations.realtime_cache import CachedWindow, RealtimeCacheClient
from traderpro.logger import logger
from traderpro.models.candles import Candle, ErrorResult, SessionWindow
from traderpro.services.circuit_breaker import ProviderCircuitBreaker, guard_call


def is_undersupplied(received: int, expected: Optional[int], ratio: float = 0.6) -> bool:
    """``received < expected * ratio``, evaluated exactly (no float rounding at the boundary)."""
    if not expected or expected <= 0:
        return False
    return Decimal(received) < Decimal(expected) * Decimal(str(ratio))


@dataclass
class SymbolWindow:
    """Reconciled candles for one symbol plus per-symbol diagnostics."""
    symbol: str
    candles: List[Candle]
    source: str
    fallback_used: bool = False
    fallback_reason: Optional[FallbackReason] = None
    ws_error: Optional[Dict[str, Any]] = None
    rest_error: Optional[Dict[str, Any]] = None

    @property
    def has_data(self) -> bool:
        return bool(self.candles)

    def diagnostics(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.ws_error:
            data["wsError"] = self.ws_error
        if self.rest_error:
            data["restError"] = self.rest_error
        return data


@dataclass
class ReconcileRequest:
    symbol: str
    range: str
    res: str
    session: str
    window: SessionWindow


class WindowReconciler:
    """Streaming-cache-first candle source selection with REST backfill."""

    def __init__(
        self,
        cache_client: RealtimeCacheClient,
        rest_client: AlpacaBarsClient,
        rest_breaker: Optional[ProviderCircuitBreaker] = None,
        undersupply_ratio: float = 0.6,
        window_skew_tolerance_ms: int = 60_000,
    ):
        self.cache_client = cache_client
        self.rest_client = rest_client
        self.rest_breaker = rest_breaker
        self.undersupply_ratio = undersupply_ratio
        self.window_skew_tolerance_ms = window_skew_tolerance_ms

    async def _read_cache(self, req: ReconcileRequest):
        try:
            cached = await self.cache_client.fetch_intraday(
                req.symbol, req.res, req.range, req.session, req.window.expected_bars
            )
            return cached, None
        except UpstreamError as e:
            logger.warning(f"{req.symbol}: streaming cache failed: {e}")
            return CachedWindow(candles=[]), {"message": str(e), "status": e.status}

    async def _read_rest(self, req: ReconcileRequest, timeframe: str):
        """Returns (candles, error dict)."""
        breaker = self.rest_breaker
        try:
            with guard_call(breaker):
                try:
                    candles = await self.rest_client.fetch_bars(
                        req.symbol, timeframe, req.window.start_iso, req.window.end_iso
                    )
                except UpstreamError as e:
                    if breaker is not None:
                        breaker.record_failure(str(e), throttled=e.throttled)
                    return [], {"message": str(e), "status": e.status}
                if breaker is not None:
                    breaker.record_success()
        except CircuitOpenError as e:
            return [], {"message": str(e), "circuitOpen": True}

        if not candles:
            return [], {"message": "REST returned no bars"}
        return candles, None

    def _classify(self, cached: CachedWindow, ws_error: Optional[dict], window: SessionWindow):
        """Reason the streaming result is not viable, or None when it is."""
        if ws_error is not None:
            return FallbackReason.WS_ERROR
        if not cached.candles:
            return FallbackReason.WS_EMPTY

        start_ms = cached.session_start_ms
        if start_ms is not None and abs(start_ms - window.start_ms) > self.window_skew_tolerance_ms:
            return FallbackReason.WS_WINDOW_MISMATCH

        if is_undersupplied(len(cached.candles), window.expected_bars, self.undersupply_ratio):
            return FallbackReason.WS_UNDERSUPPLIED
        return None

    async def reconcile(self, req: ReconcileRequest):
        """
        Reconcile one symbol's intraday window.

        Returns:
            SymbolWindow on any usable data, ErrorResult when both sources fail
        """
        cached, ws_error = await self._read_cache(req)
        reason = self._classify(cached, ws_error, req.window)
        ws_source = cached.source or CandleSource.REALTIME_WS.value

        if reason is None:
            return SymbolWindow(symbol=req.symbol, candles=cached.candles, source=ws_source)

        if reason == FallbackReason.WS_WINDOW_MISMATCH:
            ws_error = {
                "code": reason.value,
                "canonWindowStart": req.window.start_iso,
                "wsWindowStartMs": cached.session_start_ms,
                "wsWindowSkewMs": abs(cached.session_start_ms - req.window.start_ms),
            }

        timeframe = to_alpaca_timeframe(req.res)
        if timeframe is None:
            rest_candles, rest_error = [], {"message": f"No REST timeframe for {req.res}"}
        else:
            rest_candles, rest_error = await self._read_rest(req, timeframe)

        if rest_candles:
            logger.info(
                f"{req.symbol}: REST fallback ({reason.value}); "
                f"cache={len(cached.candles)} rest={len(rest_candles)} expected={req.window.expected_bars}"
            )
            return SymbolWindow(
                symbol=req.symbol,
                candles=rest_candles,
                source=CandleSource.ALPACA_REST.value,
                fallback_used=True,
                fallback_reason=reason,
                ws_error=ws_error,
            )

        if cached.candles:
            logger.warning(f"{req.symbol}: REST fallback failed, serving {len(cached.candles)} cache bars")
            return SymbolWindow(
                symbol=req.symbol,
                candles=cached.candles,
                source=ws_source,
                fallback_used=True,
                fallback_reason=FallbackReason.REST_FALLBACK_FAILED,
                ws_error=ws_error,
                rest_error=rest_error,
            )

        logger.error(f"{req.symbol}: no intraday data from any source")
        return ErrorResult(
            code="UPSTREAM_ERROR",
            message=f"No intraday candles available for {req.symbol}",
            details={
                "symbol": req.symbol,
                "fallbackReason": FallbackReason.NO_DATA.value,
                "wsError": ws_error,
                "restError": rest_error,
            },
        )
