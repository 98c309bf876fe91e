"""
Configuration module
"""
from traderpro.config.settings import (
    settings,
    Settings,
    AlpacaConfig,
    CandlesConfig,
    CircuitConfig,
    PostureConfig,
    RealtimeConfig,
    StoreConfig,
)

__all__ = [
    "settings",
    "Settings",
    "AlpacaConfig",
    "CandlesConfig",
    "CircuitConfig",
    "PostureConfig",
    "RealtimeConfig",
    "StoreConfig",
]
