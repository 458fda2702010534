"""
Circuit Breaker Pattern Implementation.

This module provides circuit breaker protection for Google Calendar calls
to prevent cascade failures when the API is down or degraded.

Circuit breaker states:
- CLOSED: Normal operation, requests pass through
- OPEN: Service is down, requests fail fast without calling the service
- HALF_OPEN: Testing if service recovered, limited requests allowed

Usage:
    from shared.circuit_breaker import calendar_breaker
    import pybreaker

    try:
        result = calendar_breaker.call(request.execute)
    except pybreaker.CircuitBreakerError:
        # Circuit is OPEN - calendar is down
        ...

The breaker is called from the executor thread that runs the blocking
googleapiclient request; pybreaker guards its state with a lock.
"""

import logging
from typing import Any

import pybreaker
from googleapiclient.errors import HttpError

logger = logging.getLogger(__name__)


class CircuitBreakerLogger(pybreaker.CircuitBreakerListener):
    """Log circuit breaker state changes and failures."""

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        """Log state transitions."""
        if new_state.name == "open":
            logger.warning(
                f"Circuit breaker '{cb.name}' OPENED - "
                f"service appears down, failing fast for {cb.reset_timeout}s"
            )
        elif new_state.name == "half-open":
            logger.info(
                f"Circuit breaker '{cb.name}' HALF-OPEN - "
                f"testing if service recovered"
            )
        elif new_state.name == "closed":
            logger.info(
                f"Circuit breaker '{cb.name}' CLOSED - "
                f"service recovered, resuming normal operation"
            )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: BaseException) -> None:
        """Log failures that count toward opening the circuit."""
        logger.warning(
            f"Circuit breaker '{cb.name}' recorded failure: {type(exc).__name__}: {exc}"
        )


def is_client_error(exc: BaseException) -> bool:
    """4xx responses (except 429) mean the request was wrong, not that Google is down."""
    if isinstance(exc, HttpError):
        status = exc.resp.status
        return 400 <= status < 500 and status != 429
    return False


# Singleton registry of circuit breakers
_breakers: dict[str, pybreaker.CircuitBreaker] = {}
_logger_instance = CircuitBreakerLogger()


def get_circuit_breaker(
    name: str,
    fail_max: int = 5,
    reset_timeout: int = 30,
    exclude: list[Any] | None = None,
) -> pybreaker.CircuitBreaker:
    """
    Get or create a circuit breaker for a service.

    Args:
        name: Unique identifier for the circuit breaker
        fail_max: Number of consecutive failures before opening circuit
        reset_timeout: Seconds before attempting recovery (half-open)
        exclude: Exception types or predicates that should NOT count as failures

    Returns:
        CircuitBreaker instance (singleton per name)
    """
    if name not in _breakers:
        _breakers[name] = pybreaker.CircuitBreaker(
            name=name,
            fail_max=fail_max,
            reset_timeout=reset_timeout,
            exclude=exclude or [],
            listeners=[_logger_instance],
        )
        logger.info(
            f"Created circuit breaker '{name}' | "
            f"fail_max={fail_max} | reset_timeout={reset_timeout}s"
        )
    return _breakers[name]


# Google Calendar API - every booking operation depends on it
# - 5 failures before opening
# - 15 second reset (calendar API typically recovers quickly)
calendar_breaker = get_circuit_breaker(
    name="google_calendar",
    fail_max=5,
    reset_timeout=15,
    exclude=[is_client_error],
)


def get_breaker_status() -> dict[str, dict[str, Any]]:
    """
    Get status of all circuit breakers for monitoring/health checks.

    Returns:
        Dict of {name: {state, fail_counter, reset_timeout}}
    """
    return {
        name: {
            "state": breaker.current_state,
            "fail_counter": breaker.fail_counter,
            "reset_timeout": breaker.reset_timeout,
        }
        for name, breaker in _breakers.items()
    }
