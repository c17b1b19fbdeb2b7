"""
Storage Write Circuit Breaker

Implements the circuit breaker pattern for page cache writes to stop
repeated failed-write storms. A manual trip doubles as the cooldown flag
operators and hosts can set.
"""

import time
import asyncio
import logging
from enum import Enum
from typing import Callable, Awaitable, Optional, TypeVar
from dataclasses import dataclass

from .exceptions import CircuitBreakerOpenException, StorageUnavailableException

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Cooldown, reject writes
    HALF_OPEN = "half_open"  # Testing if storage recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    # Failure threshold - consecutive failures before opening
    failure_threshold: int = 5

    # Recovery timeout - seconds to wait before trying again
    recovery_timeout: float = 60.0

    # Success threshold - number of successes needed to close circuit
    success_threshold: int = 1

    # Monitor these exception types as failures
    failure_exceptions: tuple = (StorageUnavailableException,)


@dataclass
class CircuitBreakerMetrics:
    """Metrics for circuit breaker monitoring."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    circuit_opens: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None

    @property
    def failure_rate(self) -> float:
        """Calculate failure rate."""
        if self.total_calls == 0:
            return 0.0
        return self.failed_calls / self.total_calls


class StorageCircuitBreaker:
    """
    Circuit breaker for page cache writes.

    While open, writes are rejected with CircuitBreakerOpenException until
    the open period has elapsed.
    """

    def __init__(self, config: Optional[CircuitBreakerConfig] = None):
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.open_until: Optional[float] = None
        self.last_state_change_time = time.time()
        self.metrics = CircuitBreakerMetrics()
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN and not self._should_attempt_reset()

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Execute a write with circuit breaker protection.

        Raises:
            CircuitBreakerOpenException: If cooldown is active
            Exception: Original exception from the write
        """
        async with self._lock:
            if self.state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self.state = CircuitState.HALF_OPEN
                    self.last_state_change_time = time.time()
                    logger.info("Write circuit breaker transitioning to HALF_OPEN")
                else:
                    self.metrics.rejected_calls += 1
                    raise CircuitBreakerOpenException(
                        retry_after=(self.open_until or time.time()) - time.time()
                    )
            self.metrics.total_calls += 1

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            if isinstance(e, self.config.failure_exceptions):
                await self._record_failure(type(e).__name__)
            raise

        await self._record_success()
        return result

    async def trip(self, seconds: float, reason: str = "manual") -> None:
        """Open the circuit for a fixed period (external cooldown trigger)."""
        async with self._lock:
            self._open(seconds)
            logger.warning(
                f"Write cooldown started for {seconds:.0f}s",
                extra={"reason": reason, "seconds": seconds},
            )

    async def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        async with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.success_count = 0
            self.open_until = None
            self.last_state_change_time = time.time()

            logger.info("Write circuit breaker manually reset to CLOSED state")

    async def _record_success(self) -> None:
        """Record successful write."""
        async with self._lock:
            self.metrics.successful_calls += 1
            self.metrics.last_success_time = time.time()

            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self.state = CircuitState.CLOSED
                    self.failure_count = 0
                    self.success_count = 0
                    self.open_until = None
                    self.last_state_change_time = time.time()
                    logger.info("Write circuit breaker closed after recovery")
            elif self.state == CircuitState.CLOSED:
                self.failure_count = 0

    async def _record_failure(self, failure_type: str) -> None:
        """Record failed write."""
        async with self._lock:
            self.metrics.failed_calls += 1
            self.metrics.last_failure_time = time.time()

            if self.state == CircuitState.HALF_OPEN:
                self._open(self.config.recovery_timeout)
                logger.warning(
                    "Write circuit breaker reopened after failure in half-open state",
                    extra={"failure_type": failure_type},
                )

            elif self.state == CircuitState.CLOSED:
                self.failure_count += 1

                if self.failure_count >= self.config.failure_threshold:
                    self._open(self.config.recovery_timeout)
                    logger.warning(
                        "Write circuit breaker opened due to failure threshold",
                        extra={
                            "failure_count": self.failure_count,
                            "threshold": self.config.failure_threshold,
                            "failure_type": failure_type,
                        },
                    )

    def _open(self, seconds: float) -> None:
        self.state = CircuitState.OPEN
        self.success_count = 0
        self.open_until = time.time() + seconds
        self.last_state_change_time = time.time()
        self.metrics.circuit_opens += 1

    def _should_attempt_reset(self) -> bool:
        """Check if the open period has elapsed."""
        if self.open_until is None:
            return True
        return time.time() >= self.open_until

    def get_status(self) -> dict:
        """Get current circuit breaker status for monitoring."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "open_until": self.open_until,
            "last_state_change_time": self.last_state_change_time,
            "metrics": {
                "total_calls": self.metrics.total_calls,
                "successful_calls": self.metrics.successful_calls,
                "failed_calls": self.metrics.failed_calls,
                "rejected_calls": self.metrics.rejected_calls,
                "failure_rate": self.metrics.failure_rate,
                "circuit_opens": self.metrics.circuit_opens,
            },
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "recovery_timeout": self.config.recovery_timeout,
                "success_threshold": self.config.success_threshold,
            },
        }
