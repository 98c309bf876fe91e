"""
Core primitives shared by every manager.

This package contains:
- enums.py: connection, session, provenance and label enums
- exceptions.py: Custom exceptions
"""

from traderpro.core.enums import (
    SystemState,
    ConnectionState,
    CandleSession,
    CandleTarget,
    CandleSource,
    FallbackReason,
    Trend5d,
    RelToIndex,
    PostureMode,
    PressureDirection,
    BreakerState,
)
from traderpro.core.exceptions import (
    TradingSystemError,
    ConfigurationError,
    BadRequestError,
    DataManagerError,
    RepositoryError,
    StoreUnavailableError,
    IntegrationError,
    UpstreamError,
    CircuitOpenError,
)

__all__ = [
    # Enums
    'SystemState',
    'ConnectionState',
    'CandleSession',
    'CandleTarget',
    'CandleSource',
    'FallbackReason',
    'Trend5d',
    'RelToIndex',
    'PostureMode',
    'PressureDirection',
    'BreakerState',
    # Exceptions
    'TradingSystemError',
    'ConfigurationError',
    'BadRequestError',
    'DataManagerError',
    'RepositoryError',
    'StoreUnavailableError',
    'IntegrationError',
    'UpstreamError',
    'CircuitOpenError',
]
