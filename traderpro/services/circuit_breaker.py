"""
Provider circuit breaker

One breaker per upstream provider (row store, vendor REST). Repeated
failures trip the breaker; while it is open, callers skip the provider
entirely and serve degraded data instead.

States:
    CLOSED     requests flow; consecutive failures are counted
    OPEN       requests are skipped until ``retry_at``
    HALF_OPEN  one trial request is let through; success closes,
               failure re-opens

Requests run inside ``guard()``: a request that leaves the guard without
recording an outcome (cancelled, or failed with an unexpected exception)
releases its trial slot instead of holding the breaker half-open.

Cool-down: a throttled failure (HTTP 429) holds the breaker open until the
next rate-limit window boundary; any other trip holds it for a fixed
``cooldown_seconds``.
"""
from __future__ import annotations

import math
import time
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from typing import Callable, ContextManager, Dict, Iterator, Optional, Any

from traderpro.config.settings import CircuitConfig
from traderpro.core.enums import BreakerState
from traderpro.core.exceptions import CircuitOpenError
from traderpro.logger import logger


@dataclass
class TripRecord:
    """Most recent trip of a breaker."""
    tripped_at: float
    retry_at: float
    reason: str
    throttled: bool


class ProviderCircuitBreaker:
    """Consecutive-failure circuit breaker for a single upstream provider."""

    def __init__(
        self,
        provider: str,
        config: Optional[CircuitConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.provider = provider
        self.config = config or CircuitConfig()
        self._clock = clock

        self._state = BreakerState.CLOSED
        self._consecutive_failures = 0
        self._retry_at = 0.0
        self._trial_in_flight = False
        self._outcomes = 0
        self.last_trip: Optional[TripRecord] = None

    @property
    def state(self) -> BreakerState:
        """Current state, promoting OPEN to HALF_OPEN once the cool-down expires."""
        if self._state == BreakerState.OPEN and self._clock() >= self._retry_at:
            self._state = BreakerState.HALF_OPEN
            self._trial_in_flight = False
            logger.info(f"Circuit for '{self.provider}' half-open, allowing a trial request")
        return self._state

    @property
    def retry_at(self) -> float:
        return self._retry_at

    def allow_request(self) -> bool:
        """True if a request to the provider may be issued now."""
        state = self.state
        if state == BreakerState.CLOSED:
            return True
        if state == BreakerState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return True
        return False

    def ensure_closed(self) -> None:
        """
        Raises:
            CircuitOpenError: If the provider must be skipped
        """
        if not self.allow_request():
            raise CircuitOpenError(self.provider, self._retry_at)

    @contextmanager
    def guard(self) -> Iterator["ProviderCircuitBreaker"]:
        """
        Admit one request and make sure it settles the breaker.

        Callers still report ``record_success``/``record_failure`` themselves.
        An exception that escapes unrecorded counts as a failure; a
        cancelled half-open trial re-opens the breaker so the next cool-down
        admits a fresh trial.

        Raises:
            CircuitOpenError: If the provider must be skipped
        """
        self.ensure_closed()
        in_trial = self._state == BreakerState.HALF_OPEN
        outcomes = self._outcomes
        try:
            yield self
        except Exception as e:
            if self._outcomes == outcomes:
                self.record_failure(f"{type(e).__name__}: {e}")
            raise
        finally:
            if in_trial and self._outcomes == outcomes and self._trial_in_flight:
                self.record_failure("trial request abandoned")

    def record_success(self) -> None:
        self._outcomes += 1
        if self._state != BreakerState.CLOSED:
            logger.info(f"Circuit for '{self.provider}' closed after a successful trial request")
        self._state = BreakerState.CLOSED
        self._consecutive_failures = 0
        self._trial_in_flight = False

    def record_failure(self, reason: str = "", throttled: bool = False) -> None:
        self._outcomes += 1
        self._consecutive_failures += 1
        if (
            self._state == BreakerState.HALF_OPEN
            or throttled
            or self._consecutive_failures >= self.config.failure_threshold
        ):
            self.trip(reason, throttled=throttled)

    def trip(self, reason: str, throttled: bool = False) -> None:
        now = self._clock()
        if throttled:
            window = self.config.rate_limit_window_seconds
            retry_at = (math.floor(now / window) + 1) * window
        else:
            retry_at = now + self.config.cooldown_seconds

        self._state = BreakerState.OPEN
        self._retry_at = retry_at
        self._trial_in_flight = False
        self.last_trip = TripRecord(tripped_at=now, retry_at=retry_at, reason=reason, throttled=throttled)
        logger.warning(
            f"Circuit for '{self.provider}' OPEN for {retry_at - now:.1f}s "
            f"({'throttled' if throttled else 'failures'}): {reason}"
        )

    def reset(self) -> None:
        self._state = BreakerState.CLOSED
        self._consecutive_failures = 0
        self._retry_at = 0.0
        self._trial_in_flight = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "state": self.state.value,
            "consecutiveFailures": self._consecutive_failures,
            "retryAt": self._retry_at or None,
            "lastTripReason": self.last_trip.reason if self.last_trip else None,
        }


def guard_call(breaker: Optional[ProviderCircuitBreaker]) -> ContextManager:
    """``breaker.guard()``, or a no-op context when no breaker is configured."""
    return breaker.guard() if breaker is not None else nullcontext()
