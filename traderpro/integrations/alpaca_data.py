"""Alpaca Market Data Integration

Fetches OHLCV bars from the Alpaca v2 stocks bars endpoint and maps them
into ``Candle`` objects. Used as the REST fallback tier for intraday windows
and as the backfill source for durable resolutions.

Each call is bounded by the client timeout and is never retried here;
callers degrade to the next source tier instead.
"""
from __future__ import annotations

from typing import Dict, List, Optional

import httpx

from traderpro.config.settings import AlpacaConfig
from traderpro.core.exceptions import UpstreamError
from traderpro.logger import logger
from traderpro.managers.data_manager.bar_aggregation import normalize_candle_array
from traderpro.models.candles import Candle


PROVIDER = "alpaca_rest"

# Canonical resolution -> Alpaca v2 timeframe token
ALPACA_TIMEFRAMES: Dict[str, str] = {
    "1m": "1Min",
    "5m": "5Min",
    "15m": "15Min",
    "30m": "30Min",
    "1h": "1Hour",
    "4h": "4Hour",
    "1d": "1Day",
}

MAX_PAGES = 20


def to_alpaca_timeframe(res: str) -> Optional[str]:
    return ALPACA_TIMEFRAMES.get(res)


class AlpacaBarsClient:
    """Authenticated bars client sharing one ``httpx.AsyncClient``.

    The HTTP client is injectable so the service root owns its lifecycle
    and tests can pass one built on ``httpx.MockTransport``.
    """

    def __init__(self, config: AlpacaConfig, http: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self.base_url = config.data_base_url.rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._owns_http = http is None

        if not config.api_key_id or not config.api_secret_key:
            logger.warning("Alpaca API credentials not configured")

    def _headers(self) -> Dict[str, str]:
        return {
            "APCA-API-KEY-ID": self.config.api_key_id or "",
            "APCA-API-SECRET-KEY": self.config.api_secret_key or "",
        }

    async def fetch_bars(
        self,
        symbol: str,
        timeframe: str,
        start_iso: str,
        end_iso: str,
        limit: Optional[int] = None,
    ) -> List[Candle]:
        """Fetch bars for one symbol, following ``next_page_token``.

        Raises:
            UpstreamError: On transport errors, timeouts, non-200 responses or malformed bodies
        """
        if not self.config.api_key_id or not self.config.api_secret_key:
            raise UpstreamError("Alpaca API credentials are missing", provider=PROVIDER)

        symbol = symbol.upper()
        url = f"{self.base_url}/v2/stocks/{symbol}/bars"
        params = {
            "timeframe": timeframe,
            "start": start_iso,
            "end": end_iso,
            "adjustment": "raw",
            "sort": "asc",
            "feed": self.config.feed,
        }
        if limit:
            params["limit"] = limit

        raw_bars: List[dict] = []
        page_token: Optional[str] = None

        for page in range(1, MAX_PAGES + 1):
            if page_token:
                params["page_token"] = page_token
            else:
                params.pop("page_token", None)

            try:
                resp = await self._http.get(url, headers=self._headers(), params=params)
            except httpx.TimeoutException as exc:
                raise UpstreamError(f"Alpaca bars request timed out for {symbol}", provider=PROVIDER) from exc
            except httpx.HTTPError as exc:
                raise UpstreamError(f"Alpaca bars request failed for {symbol}: {exc}", provider=PROVIDER) from exc

            if resp.status_code != 200:
                logger.warning(
                    f"[Alpaca] bars request failed: symbol={symbol} status={resp.status_code} "
                    f"body={resp.text[:200]}"
                )
                raise UpstreamError(
                    f"Alpaca bars request failed: {resp.status_code}",
                    status=resp.status_code,
                    provider=PROVIDER,
                )

            try:
                data = resp.json()
            except ValueError as exc:
                logger.warning(f"[Alpaca] bars response is not JSON: symbol={symbol} body={resp.text[:200]}")
                raise UpstreamError(
                    f"Alpaca bars response was not valid JSON for {symbol}",
                    status=resp.status_code,
                    provider=PROVIDER,
                ) from exc
            if not isinstance(data, dict):
                raise UpstreamError(
                    f"Alpaca bars response had an unexpected shape for {symbol}",
                    status=resp.status_code,
                    provider=PROVIDER,
                )

            bars = data.get("bars")
            raw_bars.extend(bars if isinstance(bars, list) else [])

            page_token = data.get("next_page_token")
            if not page_token or (limit and len(raw_bars) >= limit):
                break
        else:
            logger.warning(f"[Alpaca] {symbol}: stopped after {MAX_PAGES} pages")

        candles = normalize_candle_array(raw_bars)
        logger.debug(f"[Alpaca] {symbol} {timeframe}: {len(candles)} bars ({start_iso} -> {end_iso})")
        return candles

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
