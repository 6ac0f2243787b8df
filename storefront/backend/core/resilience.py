"""
Resilience Infrastructure.

Guards around the two external dependencies: the mail provider (circuit
breaker on sends) and Redis (short tenacity retries on queue pushes).
Breaker transitions and retries are logged with a `resilience_event` field
and counted through the metrics collector.

Only brief, transient faults are retried here. A send that still fails is
handed back to the email queue's own backoff.

Usage:
    breaker = create_circuit_breaker("resend", fail_max=5, timeout_duration=60)
    await breaker.call_async(send_message, payload)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=1),
        retry=retry_if_exception_type(RedisConnectionError),
        before_sleep=log_retry,
        reraise=True,
    )
    async def _push(...): ...

Querying:
    jq 'select(.resilience_event != null)' logs/system.jsonl
"""

from datetime import timedelta
from typing import Any

import aiobreaker

from storefront.backend.core.logging import get_logger
from storefront.backend.core.metrics import get_metrics

logger = get_logger(__name__)

# Gauge values for circuit_breaker_state
BREAKER_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


def _state_name(state: Any) -> str:
    """Lowercase name for an aiobreaker state object, enum or string ("half-open" -> "half_open")."""
    state = getattr(state, "state", state)
    name = getattr(state, "name", None) or getattr(state, "value", None) or str(state)
    return str(name).lower().replace("-", "_")


class ResilienceLogger(aiobreaker.CircuitBreakerListener):
    """Breaker listener: logs transitions and failures, tracks state as a gauge."""

    def __init__(self, dependency: str) -> None:
        self.dependency = dependency

    def state_change(self, cb: aiobreaker.CircuitBreaker, old_state: Any, new_state: Any) -> None:
        old, new = _state_name(old_state), _state_name(new_state)
        fields = {
            "resilience_event": "circuit_breaker_opened" if new == "open" else f"circuit_breaker_{new}",
            "dependency": self.dependency,
            "failure_count": cb.fail_counter,
        }
        message = f"Circuit breaker {self.dependency}: {old} -> {new}"
        if new == "open":
            logger.error(message, extra=fields)
        else:
            logger.info(message, extra=fields)

        if new in BREAKER_STATE_VALUES:
            get_metrics().set_gauge(
                "circuit_breaker_state", BREAKER_STATE_VALUES[new], dependency=self.dependency,
            )

    def failure(self, cb: aiobreaker.CircuitBreaker, exception: Exception) -> None:
        logger.warning(
            f"Circuit breaker {self.dependency}: failure recorded",
            extra={
                "resilience_event": "circuit_breaker_failure",
                "dependency": self.dependency,
                "failure_count": cb.fail_counter,
                "error": str(exception),
            },
        )


def log_retry(retry_state: Any) -> None:
    """Tenacity before_sleep callback. `retry_state` is a tenacity.RetryCallState."""
    fn_name = getattr(retry_state.fn, "__name__", "unknown")

    elapsed_ms = None
    if retry_state.outcome_timestamp and retry_state.start_time:
        elapsed_ms = round((retry_state.outcome_timestamp - retry_state.start_time) * 1000)

    outcome = retry_state.outcome
    error = str(outcome.exception()) if outcome is not None and outcome.failed else None

    logger.warning(
        f"Retrying {fn_name} (attempt {retry_state.attempt_number})",
        extra={
            "resilience_event": "retry_attempt",
            "dependency": fn_name,
            "attempt": retry_state.attempt_number,
            "duration_ms": elapsed_ms,
            "error": error,
        },
    )
    get_metrics().increment("retries_total", dependency=fn_name)


def create_circuit_breaker(
    dependency: str,
    fail_max: int = 5,
    timeout_duration: int = 30,
) -> aiobreaker.CircuitBreaker:
    """
    Circuit breaker for one dependency.

    Opens after `fail_max` consecutive failures and allows a trial call
    after `timeout_duration` seconds.
    """
    return aiobreaker.CircuitBreaker(
        fail_max=fail_max,
        timeout_duration=timedelta(seconds=timeout_duration),
        listeners=[ResilienceLogger(dependency)],
    )
