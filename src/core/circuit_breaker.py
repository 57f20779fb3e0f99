"""
Circuit breaker for calls to external HTTP services.

Used in front of the reverse geocoding endpoint so a Nominatim outage
stops costing a timeout per request.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Failing service, requests blocked
- HALF_OPEN: Testing if service recovered

Usage:
    breaker = get_circuit_breaker("nominatim", failure_threshold=5, recovery_timeout=60)

    breaker.check()  # raises CircuitBreakerOpenError while open
    try:
        result = await call_api()
        await breaker.record_success()
    except httpx.TransportError:
        await breaker.record_failure()
        raise
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import structlog

from src.core.exceptions import CircuitBreakerOpenError
from src.monitoring.metrics import (
    record_circuit_breaker_failure,
    update_circuit_breaker_state,
)

logger = structlog.get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """
    Circuit breaker for protecting external service calls.

    Args:
        name: Identifier for this circuit (e.g., "nominatim")
        failure_threshold: Consecutive failures before opening circuit
        recovery_timeout: Seconds to wait before testing recovery
        success_threshold: Successes needed in half-open to close circuit
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 2

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _opened_at: Optional[float] = field(default=None, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    @property
    def state(self) -> CircuitState:
        """Current state; an open circuit turns half-open once the timeout elapses."""
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._transition(CircuitState.HALF_OPEN)
                self._success_count = 0
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def can_execute(self) -> bool:
        """Check if a request can be executed."""
        return self.state != CircuitState.OPEN

    def time_until_recovery(self) -> float:
        """Get seconds until circuit may recover."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        elapsed = time.monotonic() - self._opened_at
        return max(0.0, self.recovery_timeout - elapsed)

    def check(self) -> None:
        """Raise CircuitBreakerOpenError if calls are currently blocked."""
        if not self.can_execute():
            raise CircuitBreakerOpenError(self.name, self.time_until_recovery())

    async def record_success(self) -> None:
        """Record a successful call."""
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._failure_count = 0
                    self._success_count = 0
                    self._opened_at = None
                    self._transition(CircuitState.CLOSED)
            else:
                self._failure_count = 0

    async def record_failure(self) -> None:
        """Record a failed call."""
        async with self._lock:
            self._failure_count += 1
            record_circuit_breaker_failure(self.name)

            if self._state == CircuitState.HALF_OPEN:
                self._opened_at = time.monotonic()
                self._transition(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._opened_at = time.monotonic()
                self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        """Reset circuit breaker to closed state."""
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None
        self._transition(CircuitState.CLOSED)

    def snapshot(self) -> dict[str, Any]:
        """Serializable view of the breaker for health reporting."""
        return {
            "state": self.state.value,
            "failure_count": self._failure_count,
            "recovery_in_seconds": round(self.time_until_recovery(), 1),
        }

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        previous = self._state
        self._state = new_state
        update_circuit_breaker_state(self.name, new_state.value)
        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            f"circuit_breaker_{new_state.value}",
            name=self.name,
            previous_state=previous.value,
            failure_count=self._failure_count,
        )


# =============================================================================
# Global Circuit Breaker Registry
# =============================================================================


_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    name: str,
    failure_threshold: int = 5,
    recovery_timeout: float = 60.0,
) -> CircuitBreaker:
    """
    Get or create a circuit breaker by name.

    Args:
        name: Unique identifier for the circuit
        failure_threshold: Failures before opening
        recovery_timeout: Seconds before recovery test

    Returns:
        Circuit breaker instance (reused if already exists)
    """
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(
            name=name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )
    return _circuit_breakers[name]


def get_all_circuit_breakers() -> dict[str, CircuitBreaker]:
    """Get all registered circuit breakers."""
    return _circuit_breakers.copy()


def reset_all_circuit_breakers() -> None:
    """Reset all circuit breakers to closed state."""
    for breaker in _circuit_breakers.values():
        breaker.reset()
