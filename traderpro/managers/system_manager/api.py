"""
SystemManager - Service root and owner of every shared resource

Key Responsibilities:
1. Build the row store engine, HTTP clients and the realtime socket adapter
2. Create the circuit breakers and response caches (one instance per process)
3. Create and wire the managers (DataManager, AnalysisEngine)
4. Track system state (STOPPED, RUNNING)
5. Handle start() and stop() lifecycle

There is no module-level instance: the FastAPI lifespan (or the CLI) builds
one SystemManager and passes it to whoever needs it.
"""
from typing import Any, Callable, Dict, Optional

import httpx
from sqlalchemy.engine import Engine

from traderpro.config.settings import Settings
from traderpro.core.enums import SystemState
from traderpro.integrations.alpaca_data import AlpacaBarsClient, PROVIDER as ALPACA_PROVIDER
from traderpro.integrations.realtime_cache import RealtimeCacheClient
from traderpro.integrations.realtime_ws import RealtimeSocketAdapter, ReconnectBackoff
from traderpro.logger import logger
from traderpro.managers.analysis_engine.api import AnalysisEngine
from traderpro.managers.data_manager.api import DataManager
from traderpro.managers.data_manager.candle_store import CandleStoreReader
from traderpro.managers.data_manager.session_window import SessionWindowComputer
from traderpro.managers.data_manager.trading_calendar import TradingCalendar
from traderpro.managers.data_manager.window_reconciler import WindowReconciler
from traderpro.models.database import create_session_factory, create_store_engine, init_db
from traderpro.services.circuit_breaker import ProviderCircuitBreaker
from traderpro.services.response_cache import ResponseCache


STORE_PROVIDER = "store"


class SystemManager:
    """
    Service root.

    Usage:
        system_mgr = SystemManager(settings)
        await system_mgr.start()
        data_mgr = system_mgr.get_data_manager()
        # ... use managers ...
        await system_mgr.stop()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine: Optional[Engine] = None,
        alpaca_http: Optional[httpx.AsyncClient] = None,
        cache_http: Optional[httpx.AsyncClient] = None,
        ws_connect: Optional[Callable[..., Any]] = None,
    ):
        """
        Initialize SystemManager.

        Args:
            settings: Configuration (a fresh ``Settings()`` when omitted)
            engine: Pre-built row store engine (tests)
            alpaca_http: Pre-built HTTP client for vendor REST (tests)
            cache_http: Pre-built HTTP client for the streaming cache (tests)
            ws_connect: Websocket connect factory (tests)
        """
        self.settings = settings or Settings()
        self._engine = engine
        self._alpaca_http = alpaca_http
        self._cache_http = cache_http
        self._ws_connect = ws_connect

        self._state = SystemState.STOPPED
        self.session_factory = None
        self.calendar: Optional[TradingCalendar] = None
        self.store_breaker: Optional[ProviderCircuitBreaker] = None
        self.rest_breaker: Optional[ProviderCircuitBreaker] = None
        self.posture_cache: Optional[ResponseCache] = None
        self.pressure_cache: Optional[ResponseCache] = None
        self.rest_client: Optional[AlpacaBarsClient] = None
        self.cache_client: Optional[RealtimeCacheClient] = None
        self.realtime: Optional[RealtimeSocketAdapter] = None
        self._data_manager: Optional[DataManager] = None
        self._analysis_engine: Optional[AnalysisEngine] = None

        logger.info("SystemManager initialized")

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def state(self) -> SystemState:
        return self._state

    @property
    def engine(self) -> Optional[Engine]:
        return self._engine

    def _require_running(self, name: str):
        if self._state != SystemState.RUNNING:
            raise RuntimeError(f"{name} is not available: system is {self._state.value}")

    def get_data_manager(self) -> DataManager:
        self._require_running("DataManager")
        return self._data_manager

    def get_analysis_engine(self) -> AnalysisEngine:
        self._require_running("AnalysisEngine")
        return self._analysis_engine

    def get_realtime_adapter(self) -> RealtimeSocketAdapter:
        self._require_running("RealtimeSocketAdapter")
        return self.realtime

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> bool:
        """
        Build and wire every component.

        Returns:
            True once the system is RUNNING
        """
        if self._state == SystemState.RUNNING:
            logger.debug("System already running")
            return True

        cfg = self.settings
        logger.info("=" * 70)
        logger.info("STARTING MARKET DATA SERVICE")
        logger.info("=" * 70)

        if self._engine is None:
            self._engine = create_store_engine(cfg.DATABASE.url, echo=cfg.DATABASE.echo)
        init_db(self._engine)
        self.session_factory = create_session_factory(self._engine)

        self.calendar = TradingCalendar(cfg.CANDLES.exchange_timezone)
        window_computer = SessionWindowComputer(self.calendar)
        store_reader = CandleStoreReader(
            self._engine,
            calendar=self.calendar,
            daily_table=cfg.STORE.daily_table,
            hourly_table=cfg.STORE.hourly_table,
            dup_close_epsilon=cfg.STORE.dup_close_epsilon,
            dup_volume_epsilon=cfg.STORE.dup_volume_epsilon,
        )

        self.store_breaker = ProviderCircuitBreaker(STORE_PROVIDER, cfg.CIRCUIT)
        self.rest_breaker = ProviderCircuitBreaker(ALPACA_PROVIDER, cfg.CIRCUIT)
        self.rest_client = AlpacaBarsClient(cfg.ALPACA, http=self._alpaca_http)
        self.cache_client = RealtimeCacheClient(
            cfg.REALTIME, max_limit=cfg.CANDLES.cache_max_limit, http=self._cache_http
        )

        reconciler = WindowReconciler(
            self.cache_client,
            self.rest_client,
            rest_breaker=self.rest_breaker,
            undersupply_ratio=cfg.CANDLES.undersupply_ratio,
            window_skew_tolerance_ms=cfg.CANDLES.window_skew_tolerance_ms,
        )
        self._data_manager = DataManager(
            config=cfg.CANDLES,
            window_computer=window_computer,
            store_reader=store_reader,
            reconciler=reconciler,
            rest_client=self.rest_client,
            session_factory=self.session_factory,
            store_breaker=self.store_breaker,
            rest_breaker=self.rest_breaker,
            include_diagnostics=cfg.DEBUG,
            system_manager=self,
        )

        self.posture_cache = ResponseCache("industry-posture", default_ttl_seconds=cfg.POSTURE.ttl_ms / 1000)
        self.pressure_cache = ResponseCache("industry-pressure", default_ttl_seconds=cfg.POSTURE.pressure_ttl_ms / 1000)
        self._analysis_engine = AnalysisEngine(
            self._data_manager,
            self.session_factory,
            posture_config=cfg.POSTURE,
            store_config=cfg.STORE,
            posture_cache=self.posture_cache,
            pressure_cache=self.pressure_cache,
            system_manager=self,
        )

        self.realtime = RealtimeSocketAdapter(
            cfg.REALTIME.ws_url,
            backoff=ReconnectBackoff(
                initial_ms=cfg.REALTIME.backoff_initial_ms,
                max_ms=cfg.REALTIME.backoff_max_ms,
                jitter_ratio=cfg.REALTIME.backoff_jitter_ratio,
            ),
            connect=self._ws_connect,
        )
        if cfg.REALTIME.enabled:
            self.realtime.connect()
        else:
            logger.info("Realtime socket disabled (REALTIME__ENABLED=false)")

        self._state = SystemState.RUNNING
        logger.info(f"System RUNNING (store={cfg.DATABASE.url}, tz={cfg.CANDLES.exchange_timezone})")
        return True

    async def stop(self) -> bool:
        """Disconnect the socket, close HTTP clients and dispose the engine."""
        if self._state == SystemState.STOPPED:
            logger.debug("System already stopped")
            return True

        logger.info("STOPPING MARKET DATA SERVICE")
        if self.realtime is not None:
            await self.realtime.disconnect()
        if self.rest_client is not None:
            await self.rest_client.aclose()
        if self.cache_client is not None:
            await self.cache_client.aclose()
        if self._engine is not None:
            self._engine.dispose()

        self._state = SystemState.STOPPED
        logger.success("Market data service stopped")
        return True

    def get_status(self) -> Dict[str, Any]:
        """Health summary: state, breakers, caches and socket state."""
        status: Dict[str, Any] = {"state": self._state.value}
        if self._state != SystemState.RUNNING:
            return status
        status.update({
            "breakers": {
                STORE_PROVIDER: self.store_breaker.to_dict(),
                ALPACA_PROVIDER: self.rest_breaker.to_dict(),
            },
            "caches": {
                "industryPosture": self.posture_cache.stats(),
                "industryPressure": self.pressure_cache.stats(),
            },
            "realtime": self.realtime.connection_state.value,
        })
        return status
