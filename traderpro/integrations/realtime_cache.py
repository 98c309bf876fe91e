"""Streaming candle cache client

The realtime socket server keeps a rolling intraday candle cache and serves
it over HTTP at ``/api/realtime/candles/intraday``. This client asks it for
one symbol's window and returns the candles plus the cache's own metadata.

Failures come back as ``UpstreamError``; the reconciler turns them into a
``WS_ERROR`` fallback.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from traderpro.config.settings import RealtimeConfig
from traderpro.core.exceptions import UpstreamError
from traderpro.logger import logger
from traderpro.managers.data_manager.bar_aggregation import coerce_time_ms, normalize_candle_array
from traderpro.models.candles import Candle


PROVIDER = "realtime_cache"
INTRADAY_PATH = "/api/realtime/candles/intraday"
DEFAULT_LIMIT = 500


@dataclass
class CachedWindow:
    candles: List[Candle]
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def session_start_ms(self) -> Optional[int]:
        """Session start the cache reports (``meta.window.session_start_ts``)."""
        window = self.meta.get("window") if isinstance(self.meta, dict) else None
        if not isinstance(window, dict):
            return None
        value = window.get("session_start_ts")
        if value in (None, ""):
            return None
        return coerce_time_ms(value)

    @property
    def source(self) -> Optional[str]:
        value = self.meta.get("source") if isinstance(self.meta, dict) else None
        return value if isinstance(value, str) and value else None


class RealtimeCacheClient:
    """HTTP client for the streaming candle cache."""

    def __init__(self, config: RealtimeConfig, max_limit: int = 5000, http: Optional[httpx.AsyncClient] = None):
        self.origin = config.http_origin.rstrip("/")
        self.max_limit = max_limit
        self._http = http or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._owns_http = http is None

    def limit_for(self, expected_bars: Optional[int]) -> int:
        if not expected_bars:
            return DEFAULT_LIMIT
        return max(1, min(expected_bars, self.max_limit))

    async def fetch_intraday(
        self,
        symbol: str,
        res: str,
        range_: str,
        session: str,
        expected_bars: Optional[int] = None,
    ) -> CachedWindow:
        """
        Raises:
            UpstreamError: Transport error, timeout, non-2xx or ``{ok: false}`` body
        """
        params = {
            "symbol": symbol.upper(),
            "resolution": res,
            "range": range_,
            "session": session,
            "limit": self.limit_for(expected_bars),
        }
        try:
            resp = await self._http.get(f"{self.origin}{INTRADAY_PATH}", params=params)
        except httpx.TimeoutException as exc:
            raise UpstreamError(f"Streaming cache timed out for {symbol}", provider=PROVIDER) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Streaming cache unreachable for {symbol}: {exc}", provider=PROVIDER) from exc

        if resp.status_code >= 400:
            raise UpstreamError(
                f"Streaming cache returned {resp.status_code} for {symbol}",
                status=resp.status_code,
                provider=PROVIDER,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"Streaming cache returned invalid JSON for {symbol}", provider=PROVIDER) from exc

        if not isinstance(body, dict):
            raise UpstreamError(f"Streaming cache returned an unexpected body for {symbol}", provider=PROVIDER)
        if body.get("ok") is False:
            error = body.get("error")
            code = error.get("code") if isinstance(error, dict) else error
            raise UpstreamError(f"Streaming cache error for {symbol}: {code}", provider=PROVIDER)

        candles = normalize_candle_array(body.get("candles"))
        meta = body.get("meta") if isinstance(body.get("meta"), dict) else {}
        logger.debug(f"[RealtimeCache] {symbol} {res}: {len(candles)} bars")
        return CachedWindow(candles=candles, meta=meta)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
