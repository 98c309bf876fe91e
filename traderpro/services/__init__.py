"""
Shared process-local services owned by the SystemManager
"""
from traderpro.services.circuit_breaker import ProviderCircuitBreaker
from traderpro.services.response_cache import ResponseCache, build_cache_key

__all__ = [
    "ProviderCircuitBreaker",
    "ResponseCache",
    "build_cache_key",
]
