"""
Redis Circuit Breaker

Stops issuing cache commands after repeated connection failures so that an
unreachable Redis costs one fast rejection per call instead of a socket
timeout. After a cool-down a few trial calls decide whether to resume.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

import structlog

from ...exceptions import CacheCircuitOpenException

logger = structlog.get_logger()

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """
    failure_threshold: consecutive failures that open the circuit
    recovery_timeout: seconds an open circuit waits before a trial call
    success_threshold: trial successes needed to close again
    failure_exceptions: exception types that count as backend failures
    """

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    success_threshold: int = 2
    failure_exceptions: Tuple[Type[BaseException], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,
    )


@dataclass
class CircuitBreakerMetrics:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    circuit_opens: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None

    @property
    def failure_rate(self) -> float:
        return self.failed_calls / self.total_calls if self.total_calls else 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
            "failed_calls": self.failed_calls,
            "rejected_calls": self.rejected_calls,
            "failure_rate": self.failure_rate,
            "circuit_opens": self.circuit_opens,
        }


class RedisCircuitBreaker:
    """
    Thread-safe circuit breaker shared by all callers of one cache backend.

    Only exceptions listed in ``config.failure_exceptions`` move the breaker;
    anything else passes through without being counted.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.metrics = CircuitBreakerMetrics()
        self._lock = threading.Lock()

    def _transition(self, state: CircuitState, **context: Any) -> None:
        # Caller holds the lock
        previous, self.state = self.state, state
        self.success_count = 0
        if state is CircuitState.OPEN:
            self.metrics.circuit_opens += 1
        if state is CircuitState.CLOSED:
            self.failure_count = 0
        logger.info(
            "Cache: Circuit breaker state changed",
            previous=previous.value,
            state=state.value,
            **context,
        )

    def _admit(self) -> None:
        with self._lock:
            self.metrics.total_calls += 1
            if self.state is not CircuitState.OPEN:
                return
            elapsed = (
                self._clock() - self.last_failure_time
                if self.last_failure_time is not None
                else None
            )
            if elapsed is None or elapsed >= self.config.recovery_timeout:
                self._transition(CircuitState.HALF_OPEN)
                return
            self.metrics.rejected_calls += 1
        raise CacheCircuitOpenException()

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run ``func`` unless the circuit is open.

        Raises:
            CacheCircuitOpenException: While the circuit is open
        """
        self._admit()
        try:
            result = func(*args, **kwargs)
        except self.config.failure_exceptions as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    def _on_success(self) -> None:
        with self._lock:
            self.metrics.successful_calls += 1
            self.metrics.last_success_time = self._clock()
            if self.state is CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self._transition(CircuitState.CLOSED)
            else:
                self.failure_count = 0

    def _on_failure(self, error: BaseException) -> None:
        with self._lock:
            now = self._clock()
            self.metrics.failed_calls += 1
            self.metrics.last_failure_time = now
            self.last_failure_time = now

            if self.state is CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN, error=type(error).__name__)
                return

            self.failure_count += 1
            if (
                self.state is CircuitState.CLOSED
                and self.failure_count >= self.config.failure_threshold
            ):
                logger.warning(
                    "Cache: Too many backend failures, opening circuit",
                    failures=self.failure_count,
                    error=type(error).__name__,
                )
                self._transition(CircuitState.OPEN, error=type(error).__name__)

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of state, counters and configuration."""
        with self._lock:
            return {
                "state": self.state.value,
                "failure_count": self.failure_count,
                "success_count": self.success_count,
                "last_failure_time": self.last_failure_time,
                "metrics": self.metrics.as_dict(),
                "config": {
                    "failure_threshold": self.config.failure_threshold,
                    "recovery_timeout": self.config.recovery_timeout,
                    "success_threshold": self.config.success_threshold,
                },
            }

    def reset(self) -> None:
        with self._lock:
            self.last_failure_time = None
            if self.state is not CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED, reason="manual reset")
            self.failure_count = 0
