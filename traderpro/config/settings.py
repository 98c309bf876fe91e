"""
Application configuration using pydantic-settings with nested structure
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pathlib import Path


# ============================================================================
# NESTED CONFIGURATION MODELS
# ============================================================================

# Absolute path to the .env file at the project root
_BASE_DIR = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BASE_DIR / ".env"


class APIConfig(BaseSettings):
    """HTTP API server configuration."""
    host: str = "127.0.0.1"
    port: int = 8000
    model_config = SettingsConfigDict(env_prefix="API__", extra="ignore")


class DatabaseConfig(BaseSettings):
    """Row store connection configuration."""
    url: str = "sqlite:///./data/traderpro.db"
    echo: bool = False
    model_config = SettingsConfigDict(env_prefix="DATABASE__", extra="ignore")


class AlpacaConfig(BaseSettings):
    """Alpaca market data credentials and configuration."""
    api_key_id: str = ""
    api_secret_key: str = ""
    data_base_url: str = "https://data.alpaca.markets"
    feed: str = "sip"
    timeout_seconds: float = 10.0
    model_config = SettingsConfigDict(env_prefix="ALPACA__", extra="ignore")


class RealtimeConfig(BaseSettings):
    """Streaming socket and streaming candle cache configuration."""
    enabled: bool = False
    ws_url: str = "ws://127.0.0.1:8787/ws"
    http_origin: str = "http://127.0.0.1:8787"
    timeout_seconds: float = 5.0
    backoff_initial_ms: int = 250
    backoff_max_ms: int = 10_000
    backoff_jitter_ratio: float = 0.1
    model_config = SettingsConfigDict(env_prefix="REALTIME__", extra="ignore")


class CandlesConfig(BaseSettings):
    """Historical candle query configuration."""
    exchange_timezone: str = "America/New_York"
    undersupply_ratio: float = 0.6
    window_skew_tolerance_ms: int = 60_000
    max_constituents: int = 60
    fanout_limit: int = 16
    cache_max_limit: int = 5000
    model_config = SettingsConfigDict(env_prefix="CANDLES__", extra="ignore")


class StoreConfig(BaseSettings):
    """Durable candle store configuration.

    The duplicate epsilons were picked empirically against vendor artifacts;
    they are tunable rather than structurally meaningful.
    """
    daily_table: str = "candles_daily"
    hourly_table: str = "candles_1h"
    dup_close_epsilon: float = 0.001
    dup_volume_epsilon: float = 2000.0
    lookback_days: int = 60
    model_config = SettingsConfigDict(env_prefix="STORE__", extra="ignore")


class PostureConfig(BaseSettings):
    """Industry posture aggregation configuration."""
    ttl_ms: int = 60_000
    classification_only_ttl_ms: int = 15_000
    pressure_ttl_ms: int = 10_000
    max_symbols: int = 160
    index_symbol: str = "QQQ"
    dev_owner_user_id: Optional[str] = None
    model_config = SettingsConfigDict(env_prefix="POSTURE__", extra="ignore")


class CircuitConfig(BaseSettings):
    """Provider circuit breaker configuration."""
    failure_threshold: int = 3
    cooldown_seconds: float = 30.0
    rate_limit_window_seconds: float = 60.0
    model_config = SettingsConfigDict(env_prefix="CIRCUIT__", extra="ignore")


class LoggerConfig(BaseSettings):
    """Logger configuration settings."""
    default_level: str = "INFO"
    file_path: str = "./data/logs/traderpro.log"
    rotation: str = "10 MB"
    retention: str = "30 days"
    filter_enabled: bool = True
    filter_max_history: int = 5
    filter_time_threshold_seconds: float = 1.0
    model_config = SettingsConfigDict(env_prefix="LOGGER__", extra="ignore")


# ============================================================================
# MAIN SETTINGS CLASS
# ============================================================================

class Settings(BaseSettings):
    """Application settings loaded from environment variables.
    
    Configuration is organized into nested sections.
    Use double underscore (__) in env vars to access nested configs.
    
    Example:
        LOGGER__DEFAULT_LEVEL=DEBUG
        CANDLES__UNDERSUPPLY_RATIO=0.6
        POSTURE__CLASSIFICATION_ONLY_TTL_MS=5000
    """
    
    # Application metadata
    APP_NAME: str = "TraderPro Market Data Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    
    # Nested configuration sections (manually construct from environment)
    API: Optional[APIConfig] = None
    DATABASE: Optional[DatabaseConfig] = None
    ALPACA: Optional[AlpacaConfig] = None
    REALTIME: Optional[RealtimeConfig] = None
    CANDLES: Optional[CandlesConfig] = None
    STORE: Optional[StoreConfig] = None
    POSTURE: Optional[PostureConfig] = None
    CIRCUIT: Optional[CircuitConfig] = None
    LOGGER: Optional[LoggerConfig] = None
    
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Nested sections read their own prefixed variables after .env is loaded
        self.API = kwargs.get("API") or APIConfig()
        self.DATABASE = kwargs.get("DATABASE") or DatabaseConfig()
        self.ALPACA = kwargs.get("ALPACA") or AlpacaConfig()
        self.REALTIME = kwargs.get("REALTIME") or RealtimeConfig()
        self.CANDLES = kwargs.get("CANDLES") or CandlesConfig()
        self.STORE = kwargs.get("STORE") or StoreConfig()
        self.POSTURE = kwargs.get("POSTURE") or PostureConfig()
        self.CIRCUIT = kwargs.get("CIRCUIT") or CircuitConfig()
        self.LOGGER = kwargs.get("LOGGER") or LoggerConfig()
    
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        env_nested_delimiter="__",
        env_prefix=""
    )


# Global settings instance
from dotenv import load_dotenv

# Load .env file into environment variables
if _ENV_FILE.exists():
    load_dotenv(str(_ENV_FILE), override=False)

settings = Settings()
