"""
Loguru logger configuration with runtime level control and deduplication

Fallback decisions in the candle path fire once per symbol, so a composite
request over sixty constituents can emit the same warning sixty times from
the same line. The deduplication filter collapses those bursts.
"""
from loguru import logger
import sys
import threading
from pathlib import Path
from collections import deque
from typing import Dict, Any, Optional
from traderpro.config import settings
from traderpro.config.settings import LoggerConfig


VALID_LEVELS = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]


class LogDeduplicationFilter:
    """Suppress repeated log records emitted from the same source line.

    A record is a duplicate when a recent record came from the same file and
    line, at the same level, within ``time_threshold_seconds``. The record's
    own timestamp is used so the filter behaves the same under enqueue.

    Example:
        10:01:02.100 | WARNING | ...window_reconciler:reconcile:88 - AAPL fell back (WS_EMPTY)
        10:01:02.104 | WARNING | ...window_reconciler:reconcile:88 - MSFT fell back  <- Suppressed
        10:01:03.500 | WARNING | ...window_reconciler:reconcile:88 - NVDA fell back  <- Allowed
    """

    def __init__(self, max_history: int = 5, time_threshold_seconds: float = 1.0):
        self.max_history = max_history
        self.time_threshold = time_threshold_seconds
        # (file, line, level, timestamp)
        self.recent_logs = deque(maxlen=max_history)
        self._lock = threading.Lock()

    def __call__(self, record: Dict[str, Any]) -> bool:
        key = (record["file"].path, record["line"], record["level"].name)
        stamp = record["time"].timestamp()

        with self._lock:
            for file_path, line, level, seen_at in self.recent_logs:
                if (file_path, line, level) == key and stamp - seen_at < self.time_threshold:
                    return False
            self.recent_logs.append((*key, stamp))
            return True


class LoggerManager:
    """Manages application logging with runtime level control"""

    def __init__(self, config: Optional[LoggerConfig] = None):
        self.config = config or settings.LOGGER
        self.current_level = self.config.default_level.upper()
        self.log_file_path = Path(self.config.file_path)

        self.dedup_filter = None
        if self.config.filter_enabled:
            self.dedup_filter = LogDeduplicationFilter(
                max_history=self.config.filter_max_history,
                time_threshold_seconds=self.config.filter_time_threshold_seconds
            )

        self.setup_logger()

    def setup_logger(self):
        """Install the console and rotating file sinks."""
        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.remove()

        # Console stays quiet so CLI tables are readable
        logger.add(
            sys.stderr,
            level="ERROR",
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
                "<level>{message}</level>"
            ),
            colorize=True,
            backtrace=True,
            diagnose=False,
            filter=self.dedup_filter
        )

        logger.add(
            str(self.log_file_path),
            level=self.current_level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation=self.config.rotation,
            retention=self.config.retention,
            compression="zip",
            backtrace=True,
            diagnose=False,
            enqueue=True,
            filter=self.dedup_filter
        )

        logger.debug(f"Logger initialized with level: {self.current_level}")

    def set_level(self, level: str) -> str:
        """
        Change the file sink level at runtime

        Raises:
            ValueError: If level is invalid
        """
        level_upper = level.upper()
        if level_upper not in VALID_LEVELS:
            raise ValueError(f"Invalid level '{level}'. Choose from: {', '.join(VALID_LEVELS)}")

        old_level = self.current_level
        self.current_level = level_upper
        self.setup_logger()

        logger.info(f"Log level changed from {old_level} to {level_upper}")
        return self.current_level

    def get_level(self) -> str:
        return self.current_level


# Global logger manager instance
logger_manager = LoggerManager()

# Export logger for use throughout the application
__all__ = ["logger", "logger_manager", "LogDeduplicationFilter", "VALID_LEVELS"]
