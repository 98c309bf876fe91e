"""
Custom exceptions for the market data service.

All custom exceptions should be defined here for easy discovery
and consistent error handling throughout the application.

Upstream failures (store, vendor REST, streaming cache) are caught at the
tier that issued them and degrade to the next tier; only contract errors
reach the caller as exceptions.
"""
from typing import Optional


class TradingSystemError(Exception):
    """Base exception for all service errors."""
    pass


class ConfigurationError(TradingSystemError):
    """Raised when there's an error in configuration."""
    pass


class BadRequestError(TradingSystemError):
    """Raised for missing or invalid request parameters (4xx contract errors)."""

    def __init__(self, message: str, code: str = "BAD_REQUEST"):
        super().__init__(message)
        self.code = code
        self.message = message


class DataManagerError(TradingSystemError):
    """Raised when there's an error in data management operations."""
    pass


class RepositoryError(TradingSystemError):
    """Raised when there's an error in database repository operations."""
    pass


class StoreUnavailableError(RepositoryError):
    """Raised when the durable row store cannot be queried with any known projection."""
    pass


class IntegrationError(TradingSystemError):
    """Raised when there's an error with external integrations."""
    pass


class UpstreamError(IntegrationError):
    """Raised when an upstream provider errors, times out or is throttled."""

    def __init__(self, message: str, status: Optional[int] = None, provider: str = ""):
        super().__init__(message)
        self.status = status
        self.provider = provider

    @property
    def throttled(self) -> bool:
        return self.status == 429


class CircuitOpenError(IntegrationError):
    """Raised when a provider is skipped because its circuit is open."""

    def __init__(self, provider: str, retry_at: float):
        super().__init__(f"Circuit open for provider '{provider}'")
        self.provider = provider
        self.retry_at = retry_at
