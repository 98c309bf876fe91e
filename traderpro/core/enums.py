"""
Core enumerations used throughout the system.

These fundamental enums are used by multiple components and should be
imported from here (single source of truth). All of them are ``str`` enums
so their values serialize straight into JSON responses.
"""

from enum import Enum


class SystemState(str, Enum):
    """
    Service root state.

    Values:
        STOPPED: Shared resources not created yet (or torn down)
        RUNNING: Engine, clients and socket adapter are live
    """
    STOPPED = "stopped"
    RUNNING = "running"


class ConnectionState(str, Enum):
    """Streaming socket connection state, owned by the socket adapter."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class CandleSession(str, Enum):
    """Trading session used to window intraday requests."""
    REGULAR = "regular"
    EXTENDED = "extended"
    AUTO = "auto"


class CandleTarget(str, Enum):
    SYMBOL = "SYMBOL"
    WATCHLIST_COMPOSITE = "WATCHLIST_COMPOSITE"


class CandleSource(str, Enum):
    """Provenance of a candle array."""
    REALTIME_WS = "realtime_ws"
    ALPACA_REST = "alpaca_rest"
    DURABLE_DB = "durable_db"
    COMPOSITE_WS = "composite_ws"
    COMPOSITE_MIXED = "composite_mixed"
    COMPOSITE_DB = "composite_db"


class FallbackReason(str, Enum):
    """
    Why a candle array did not come from its preferred source.

    Values:
        WS_ERROR: Streaming cache request errored or timed out
        WS_EMPTY: Streaming cache returned zero bars
        WS_UNDERSUPPLIED: Fewer than the undersupply ratio of expected bars
        WS_WINDOW_MISMATCH: Cache session start disagrees with canonical start
        REST_FALLBACK_FAILED: REST could not replace a weak streaming result
        CONSTITUENT_FALLBACK: At least one composite constituent fell back
        NO_DATA: Every source came back empty or errored
    """
    WS_ERROR = "WS_ERROR"
    WS_EMPTY = "WS_EMPTY"
    WS_UNDERSUPPLIED = "WS_UNDERSUPPLIED"
    WS_WINDOW_MISMATCH = "WS_WINDOW_MISMATCH"
    REST_FALLBACK_FAILED = "REST_FALLBACK_FAILED"
    CONSTITUENT_FALLBACK = "CONSTITUENT_FALLBACK"
    NO_DATA = "NO_DATA"


class Trend5d(str, Enum):
    UP = "UP"
    FLAT = "FLAT"
    DOWN = "DOWN"


class RelToIndex(str, Enum):
    OUTPERFORM = "OUTPERFORM"
    INLINE = "INLINE"
    UNDERPERFORM = "UNDERPERFORM"


class PostureMode(str, Enum):
    """
    Provenance of an industry posture response.

    CLASSIFICATION_ONLY responses carry neutral placeholder values and must
    never be read as a real zero-change reading.
    """
    COMPUTED = "computed"
    CLASSIFICATION_ONLY = "classification_only"


class PressureDirection(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    FLAT = "FLAT"


class BreakerState(str, Enum):
    """Provider circuit breaker state."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"
