"""
AnalysisEngine Public API

Cross-sectional industry views built on top of the DataManager.
All CLI and API routes must use this interface.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import sessionmaker

from traderpro.config.settings import PostureConfig, StoreConfig
from traderpro.core.enums import PostureMode
from traderpro.core.exceptions import BadRequestError, CircuitOpenError, StoreUnavailableError, TradingSystemError
from traderpro.logger import logger
from traderpro.managers.analysis_engine.industry_intraday import (
    INTRADAY_RES,
    MAX_INTRADAY_SYMBOLS,
    build_intraday_breadth,
)
from traderpro.managers.analysis_engine.industry_posture import (
    classification_only_items,
    compute_posture,
    group_by_industry,
)
from traderpro.managers.analysis_engine.industry_pressure import (
    BASELINE_WINDOWS,
    MAX_PRESSURE_SYMBOLS,
    compute_pressure,
    normalize_industries,
    normalize_pressure_res,
)
from traderpro.managers.analysis_engine.industry_sparklines import build_rotation_sparklines, unique_symbols
from traderpro.managers.data_manager.api import DataManager
from traderpro.models.candles import ErrorResult, iso_from_ms
from traderpro.models.database import session_scope
from traderpro.repositories.watchlist_repository import WatchlistRepository
from traderpro.services.response_cache import ResponseCache, build_cache_key


POSTURE_CACHE_PREFIX = "industry-posture:v2"
PRESSURE_CACHE_PREFIX = "industry-pressure:v1"
SPARKLINES_CACHE_PREFIX = "industry-rotation-sparklines:v1"
INTRADAY_CACHE_PREFIX = "industry-intraday:v1"

# Calendar days of daily rows behind a 30 trading-day sparkline
SPARKLINE_LOOKBACK_DAYS = 60

REASON_CACHE_ONLY = "CACHE_ONLY"
REASON_PROVIDER_ERROR = "PROVIDER_ERROR"
REASON_CIRCUIT_OPEN = "CIRCUIT_OPEN"


class AnalysisEngine:
    """
    🧠 AnalysisEngine - industry posture and live pressure

    Provides:
    - Industry posture (10-session rotation, volume pressure, labels)
    - Classification-only degraded posture when the store is unavailable
    - Live intraday industry pressure
    - 30-day rotation sparklines per industry
    - Regular-session intraday breadth
    """

    def __init__(
        self,
        data_manager: DataManager,
        session_factory: sessionmaker,
        posture_config: Optional[PostureConfig] = None,
        store_config: Optional[StoreConfig] = None,
        posture_cache: Optional[ResponseCache] = None,
        pressure_cache: Optional[ResponseCache] = None,
        system_manager: Optional[object] = None,
    ):
        """
        Initialize AnalysisEngine

        Args:
            data_manager: Candle and store series source
            session_factory: Row store sessions for universe and classification reads
            posture_config: Posture knobs (TTLs, caps, index proxy)
            store_config: Store knobs (daily lookback)
            posture_cache: Response cache for posture results
            pressure_cache: Response cache for pressure results
            system_manager: Optional back-reference to the service root
        """
        self.system_manager = system_manager
        self.data_manager = data_manager
        self.calendar = data_manager.calendar
        self.session_factory = session_factory
        self.config = posture_config or PostureConfig()
        self.store_config = store_config or StoreConfig()
        self.posture_cache = posture_cache or ResponseCache("industry-posture")
        self.pressure_cache = pressure_cache or ResponseCache("industry-pressure")
        logger.info(f"AnalysisEngine initialized (index={self.config.index_symbol})")

    # ==================== UNIVERSE ====================

    def _load_universe(self, owner_user_id: str, watchlist_key: Optional[str]) -> Tuple[List[str], Dict]:
        with session_scope(self.session_factory) as session:
            symbols = WatchlistRepository.get_owner_universe(session, owner_user_id, watchlist_key)
            symbols = symbols[: max(0, self.config.max_symbols)]
            classifications = WatchlistRepository.get_classifications(session, symbols)
        return symbols, classifications

    def _resolve_owner(self, owner_user_id: Optional[str]) -> str:
        owner = (owner_user_id or "").strip() or (self.config.dev_owner_user_id or "").strip()
        if not owner:
            raise BadRequestError("Missing ownerUserId.", code="MISSING_OWNER_USER_ID")
        return owner

    # ==================== INDUSTRY POSTURE ====================

    def _posture_ttl_seconds(self, response: Mapping[str, Any]) -> float:
        if response.get("mode") == PostureMode.CLASSIFICATION_ONLY.value:
            return self.config.classification_only_ttl_ms / 1000
        return self.config.ttl_ms / 1000

    async def get_industry_posture(
        self,
        owner_user_id: Optional[str],
        watchlist_key: Optional[str] = None,
        scheduler: bool = False,
        cache_only: bool = False,
        debug: bool = False,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Industry posture for an owner's universe

        Args:
            owner_user_id: Owner scope (falls back to the configured dev owner)
            watchlist_key: Narrow the universe to one watchlist
            scheduler: Request came from the scheduler (adds provider error details)
            cache_only: Skip the store and return classification-only items
            debug: Attach coverage diagnostics
            now: Pin the clock (exchange day key of the cache key)

        Returns:
            ``{ok, mode, items, reason?, debug?}``

        Raises:
            BadRequestError: No owner scope
        """
        owner = self._resolve_owner(owner_user_id)
        watchlist_key = (watchlist_key or "").strip() or None

        now = now or datetime.now(timezone.utc)
        key = build_cache_key(
            POSTURE_CACHE_PREFIX,
            day=self.calendar.day_key_from_timestamp(int(now.timestamp() * 1000)),
            owner=owner,
            watchlist=watchlist_key or "ALL",
            cacheOnly=cache_only,
            scheduler=scheduler,
            debug=debug,
        )
        return await self.posture_cache.get_or_compute(
            key,
            lambda: self._compute_posture(owner, watchlist_key, scheduler, cache_only, debug, now),
            ttl=self._posture_ttl_seconds,
        )

    async def _compute_posture(
        self,
        owner_user_id: str,
        watchlist_key: Optional[str],
        scheduler: bool,
        cache_only: bool,
        debug: bool,
        now: datetime,
    ) -> Dict[str, Any]:
        symbols, classifications = await asyncio.to_thread(self._load_universe, owner_user_id, watchlist_key)
        groups = group_by_industry(symbols, classifications)
        if not groups:
            return {"ok": True, "mode": PostureMode.COMPUTED.value, "items": []}

        if cache_only:
            return self._classification_only(groups, REASON_CACHE_ONLY, debug=debug)

        index_symbol = self.config.index_symbol.upper()
        wanted = [index_symbol] + [s for g in groups for s in g.symbols if s != index_symbol]
        start = (now - timedelta(days=self.store_config.lookback_days)).date().isoformat()

        try:
            series = await self.data_manager.fetch_daily_series(wanted, start)
        except CircuitOpenError as e:
            logger.warning(f"Industry posture degraded to classification-only: {e}")
            return self._classification_only(groups, REASON_CIRCUIT_OPEN, debug=debug)
        except StoreUnavailableError as e:
            logger.error(f"Industry posture degraded to classification-only: {e}")
            error = str(e) if (scheduler or debug) else None
            return self._classification_only(groups, REASON_PROVIDER_ERROR, debug=debug, provider_error=error)

        index_series = series.get(index_symbol, [])
        items = compute_posture(groups, series, index_series, self.calendar, debug=debug)
        response: Dict[str, Any] = {
            "ok": True,
            "mode": PostureMode.COMPUTED.value,
            "items": [item.to_dict() for item in items],
        }
        if debug:
            response["debug"] = {
                "mode": PostureMode.COMPUTED.value,
                "asOf": iso_from_ms(int(now.timestamp() * 1000)),
                "indexSymbol": index_symbol,
                "indexSeriesLen": len(index_series),
            }
        logger.debug(f"Industry posture for {owner_user_id}: {len(items)} industries from {len(symbols)} symbols")
        return response

    @staticmethod
    def _classification_only(groups, reason: str, debug: bool = False,
                             provider_error: Optional[str] = None) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "ok": True,
            "mode": PostureMode.CLASSIFICATION_ONLY.value,
            "reason": reason,
            "items": [item.to_dict() for item in classification_only_items(groups)],
        }
        if debug or provider_error:
            diagnostics: Dict[str, Any] = {"mode": PostureMode.CLASSIFICATION_ONLY.value}
            if provider_error:
                diagnostics["providerError"] = provider_error
            if debug:
                diagnostics["byIndustry"] = {g.code: {"symbolsTotal": len(g.symbols)} for g in groups}
            response["debug"] = diagnostics
        return response

    # ==================== LIVE INDUSTRY PRESSURE ====================

    async def get_industry_pressure(
        self,
        industries: Sequence[Mapping[str, Any]],
        res: Optional[str] = "5m",
    ) -> Dict[str, Any]:
        """
        Live pressure per industry from today's regular-session bars

        Raises:
            BadRequestError: No industries given
        """
        by_industry = normalize_industries(industries)
        if not by_industry:
            raise BadRequestError("No industries provided.", code="MISSING_INDUSTRIES")
        res = normalize_pressure_res(res)

        key = build_cache_key(
            PRESSURE_CACHE_PREFIX,
            res=res,
            industries=";".join(f"{code}={','.join(syms)}" for code, syms in sorted(by_industry.items())),
        )
        return await self.pressure_cache.get_or_compute(
            key,
            lambda: self._compute_pressure(by_industry, res),
            ttl=self.config.pressure_ttl_ms / 1000,
        )

    async def _regular_session_bars(self, symbol: str, res: str):
        """Today's regular-session bars for one symbol; failures come back as ``ErrorResult``."""
        try:
            return await self.data_manager.get_candles_window(
                target="SYMBOL", symbol=symbol, range_="1D", res=res, session="regular"
            )
        except TradingSystemError as e:
            logger.warning(f"Regular-session bars for {symbol} failed: {e}")
            return ErrorResult(code=getattr(e, "code", "UPSTREAM_ERROR"), message=str(e))

    async def _compute_pressure(self, by_industry: Dict[str, List[str]], res: str) -> Dict[str, Any]:
        symbols = list(dict.fromkeys(s for syms in by_industry.values() for s in syms))[:MAX_PRESSURE_SYMBOLS]

        results = await asyncio.gather(*(self._regular_session_bars(symbol, res) for symbol in symbols))

        errors: List[Dict[str, Any]] = []
        bars_by_symbol = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, ErrorResult):
                errors.append({"industryCode": "*", "symbol": symbol, "code": result.code, "message": result.message})
                bars_by_symbol[symbol] = []
            else:
                bars_by_symbol[symbol] = result.candles

        pressure = compute_pressure(by_industry, bars_by_symbol, res)
        for code, symbols_of_industry in by_industry.items():
            if not symbols_of_industry:
                errors.append({"industryCode": code, "code": "NO_SYMBOLS", "message": "No symbols for industry"})

        now_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
        return {
            "ok": True,
            "meta": {
                "res": res,
                "asOfTs": iso_from_ms(now_ms),
                "baselineWindows": BASELINE_WINDOWS,
                "symbolsRequested": len(symbols),
            },
            "byIndustry": {code: p.to_dict() for code, p in pressure.items()},
            "errors": errors,
        }

    # ==================== ROTATION SPARKLINES ====================

    async def get_industry_rotation_sparklines(
        self,
        industry_code: Optional[str],
        symbols: Any,
        owner_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        30 trading days of daily % change per symbol plus the industry median

        Args:
            industry_code: Industry the symbols belong to
            symbols: Comma list or sequence of constituents
            owner_user_id: Owner scope (falls back to the configured dev owner)
            now: Pin the clock (exchange day key of the cache key)

        Returns:
            The sparkline payload, or ``{ok: false, error}`` with
            ``DAILY_CLOSES_UNAVAILABLE`` when the store cannot be read

        Raises:
            BadRequestError: Missing industry code, symbols or owner scope
        """
        code = (industry_code or "").strip().upper()
        if not code:
            raise BadRequestError("Missing industryCode.", code="MISSING_INDUSTRY_CODE")
        wanted = unique_symbols(symbols)
        if not wanted:
            raise BadRequestError("No symbols provided.", code="MISSING_SYMBOLS")
        owner = self._resolve_owner(owner_user_id)

        now = now or datetime.now(timezone.utc)
        key = build_cache_key(
            SPARKLINES_CACHE_PREFIX,
            day=self.calendar.day_key_from_timestamp(int(now.timestamp() * 1000)),
            owner=owner,
            industry=code,
            symbols=",".join(wanted),
        )
        return await self.posture_cache.get_or_compute(
            key,
            lambda: self._compute_sparklines(code, wanted, now),
            ttl=lambda response: self.config.ttl_ms / 1000 if response.get("ok") else 0,
        )

    async def _compute_sparklines(self, code: str, symbols: List[str], now: datetime) -> Dict[str, Any]:
        start = (now - timedelta(days=SPARKLINE_LOOKBACK_DAYS)).date().isoformat()
        try:
            series = await self.data_manager.fetch_daily_series(symbols, start)
        except (StoreUnavailableError, CircuitOpenError) as e:
            logger.warning(f"Rotation sparklines for {code} unavailable: {e}")
            return {"ok": False, "error": {"code": "DAILY_CLOSES_UNAVAILABLE", "message": str(e)}}

        response = build_rotation_sparklines(code, symbols, series, self.calendar)
        logger.debug(f"Rotation sparklines for {code}: {len(response['axis']['days'])} days, {len(symbols)} symbols")
        return response

    # ==================== INTRADAY BREADTH ====================

    async def get_industry_intraday(self, symbols: Any) -> Dict[str, Any]:
        """
        Regular-session breadth, leaders and laggards from today's 5m bars

        Raises:
            BadRequestError: No symbols given
        """
        wanted = unique_symbols(symbols)[:MAX_INTRADAY_SYMBOLS]
        if not wanted:
            raise BadRequestError("No symbols provided.", code="MISSING_SYMBOLS")

        key = build_cache_key(INTRADAY_CACHE_PREFIX, symbols=",".join(wanted))
        return await self.pressure_cache.get_or_compute(
            key,
            lambda: self._compute_intraday(wanted),
            ttl=self.config.pressure_ttl_ms / 1000,
        )

    async def _compute_intraday(self, symbols: List[str]) -> Dict[str, Any]:
        results = await asyncio.gather(*(self._regular_session_bars(symbol, INTRADAY_RES) for symbol in symbols))

        errors: List[Dict[str, Any]] = []
        candles_by_symbol = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, ErrorResult):
                errors.append({"symbol": symbol, "ok": False, "error": {"code": result.code, "message": result.message}})
            else:
                candles_by_symbol[symbol] = result.candles

        return build_intraday_breadth(symbols, candles_by_symbol, errors, self.calendar)
