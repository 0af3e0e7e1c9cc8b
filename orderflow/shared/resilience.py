# orderflow/shared/resilience.py
import logging
import time
from enum import Enum
from typing import Any, Callable, Coroutine

import structlog
from sqlalchemy.exc import OperationalError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger()

# --- 1. Custom Exceptions ---


class ResilienceError(Exception):
    """Base class for resilience-related errors."""
    pass


class CircuitBreakerOpenError(ResilienceError):
    """Raised when a call is blocked because the Circuit Breaker is OPEN."""
    def __init__(self, service_name: str, reset_timeout: float):
        self.service_name = service_name
        self.reset_timeout = reset_timeout
        super().__init__(f"Circuit Breaker for {service_name} is OPEN. Retrying in {reset_timeout}s.")


# --- 2. Circuit Breaker Implementation ---


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Fails fast while a downstream dependency (the SMTP relay) is known to be down.

    After `failure_threshold` consecutive failures the breaker opens; calls are
    rejected with CircuitBreakerOpenError until `recovery_timeout` seconds pass,
    then a single trial call is let through (HALF_OPEN).
    """
    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time = 0.0

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """Executes the function (Synchronously) if the circuit is CLOSED or HALF-OPEN."""
        self._check_state()

        try:
            result = func(*args, **kwargs)
        except Exception:
            self._handle_failure()
            raise
        self._handle_success()
        return result

    async def a_call(self, func: Callable[..., Coroutine[Any, Any, Any]], *args, **kwargs) -> Any:
        """Awaitable equivalent of call()."""
        self._check_state()

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._handle_failure()
            raise
        self._handle_success()
        return result

    def _check_state(self):
        if self.state == CircuitState.OPEN:
            if self._clock() - self.last_failure_time > self.recovery_timeout:
                self._transition_to(CircuitState.HALF_OPEN)
            else:
                raise CircuitBreakerOpenError(self.name, self.recovery_timeout)

    def _handle_success(self):
        if self.state == CircuitState.HALF_OPEN or self.failure_count:
            self._reset()

    def _handle_failure(self):
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)
        elif self.failure_count >= self.failure_threshold and self.state != CircuitState.OPEN:
            self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState):
        self.state = new_state
        logger.warning("circuit_breaker_state_change",
                       service=self.name,
                       state=new_state.value,
                       failures=self.failure_count)

    def _reset(self):
        recovering = self.state != CircuitState.CLOSED
        self.failure_count = 0
        self.state = CircuitState.CLOSED
        if recovering:
            logger.info("circuit_breaker_recovered", service=self.name)


# --- 3. Retry Policies (Tenacity) ---


def retry_transient_storage(func):
    """
    Decorator for short retries on transient database errors
    (e.g. a locked SQLite file or a dropped connection).

    Constraint violations (IntegrityError) are never retried.
    """
    return retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type(OperationalError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )(func)
