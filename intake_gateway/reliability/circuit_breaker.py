"""
Circuit Breaker

Implements:
- Circuit breaker pattern for downstream dependencies (SMS gateway, storage)
- A registry owning one breaker per dependency name
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import wraps
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from intake_gateway.core.config import Settings, settings as default_settings
from intake_gateway.core.exceptions import CircuitOpenError
from intake_gateway.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, reject requests
    HALF_OPEN = "half_open"  # Single probe in flight


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker"""
    failure_threshold: int = 5          # Consecutive failures before opening
    timeout_seconds: float = 30.0       # Time before half-open


@dataclass
class CircuitStats:
    """Circuit breaker statistics"""
    consecutive_failures: int = 0
    last_failure_time: Optional[datetime] = None
    last_state_change: datetime = field(default_factory=datetime.utcnow)
    total_calls: int = 0
    total_failures: int = 0
    total_rejections: int = 0


def _always_failure(error: BaseException) -> bool:
    return True


class CircuitBreaker:
    """
    Circuit breaker for protecting against cascading failures.

    Usage:
        breaker = CircuitBreaker("sms_gateway", config)
        result = await breaker.call(lambda: gateway.send(to, body))

        @breaker
        async def write_row():
            ...
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        is_failure: Callable[[BaseException], bool] = _always_failure,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.stats = CircuitStats()
        self._clock = clock
        self._is_failure = is_failure
        self._lock = asyncio.Lock()
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False

    def _transition(self, new_state: CircuitState):
        old_state = self.state
        self.state = new_state
        self.stats.last_state_change = datetime.utcnow()
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
            logger.error(f"Circuit {self.name}: {old_state.name} -> OPEN")
        else:
            logger.info(f"Circuit {self.name}: {old_state.name} -> {new_state.name}")

    def _retry_after(self) -> float:
        if self._opened_at is None:
            return 0.0
        return self.config.timeout_seconds - (self._clock() - self._opened_at)

    async def _acquire(self) -> bool:
        """
        Check whether a call may proceed

        Returns:
            True when the call is the half-open probe
        Raises:
            CircuitOpenError: When the call must fail fast
        """
        async with self._lock:
            if self.state == CircuitState.CLOSED:
                return False

            if self.state == CircuitState.OPEN and self._retry_after() <= 0:
                self._transition(CircuitState.HALF_OPEN)
                self._probe_in_flight = True
                return True

            if self.state == CircuitState.HALF_OPEN and not self._probe_in_flight:
                self._probe_in_flight = True
                return True

            # OPEN within the timeout, or HALF_OPEN with the probe already running
            self.stats.total_rejections += 1
            raise CircuitOpenError(self.name, self._retry_after())

    async def record_success(self):
        """Record a successful call"""
        async with self._lock:
            self.stats.total_calls += 1
            self.stats.consecutive_failures = 0
            self._probe_in_flight = False
            if self.state != CircuitState.CLOSED:
                self._opened_at = None
                self._transition(CircuitState.CLOSED)

    async def record_failure(self, error: Optional[BaseException] = None):
        """Record a failed call"""
        async with self._lock:
            self.stats.total_calls += 1
            self.stats.total_failures += 1
            self.stats.consecutive_failures += 1
            self.stats.last_failure_time = datetime.utcnow()

            if error:
                logger.warning(f"Circuit {self.name} failure: {error}")

            if self.state == CircuitState.HALF_OPEN:
                self._probe_in_flight = False
                self._transition(CircuitState.OPEN)
            elif (
                self.state == CircuitState.CLOSED
                and self.stats.consecutive_failures >= self.config.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run an async operation through the breaker"""
        is_probe = await self._acquire()
        try:
            result = await operation()
        except asyncio.CancelledError:
            if is_probe:
                # Cancelled probes leave the circuit half-open for the next caller
                self._probe_in_flight = False
            raise
        except Exception as e:
            if self._is_failure(e):
                await self.record_failure(e)
            else:
                await self.record_success()
            raise
        await self.record_success()
        return result

    def __call__(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Decorator for wrapping async functions"""
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await self.call(lambda: func(*args, **kwargs))

        return wrapper

    def reset(self):
        """Force the breaker back to CLOSED"""
        self.state = CircuitState.CLOSED
        self.stats.consecutive_failures = 0
        self._opened_at = None
        self._probe_in_flight = False
        self.stats.last_state_change = datetime.utcnow()

    def get_stats(self) -> dict:
        """Get circuit breaker statistics"""
        return {
            "name": self.name,
            "state": self.state.value,
            "consecutive_failures": self.stats.consecutive_failures,
            "total_calls": self.stats.total_calls,
            "total_failures": self.stats.total_failures,
            "total_rejections": self.stats.total_rejections,
            "last_failure": self.stats.last_failure_time.isoformat() if self.stats.last_failure_time else None,
            "last_state_change": self.stats.last_state_change.isoformat(),
        }


class CircuitRegistry:
    """
    Owns one circuit breaker per downstream dependency name.

    Created once by the process root and passed to the components that
    call out to dependencies.
    """

    def __init__(
        self,
        default_config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._configs: Dict[str, CircuitBreakerConfig] = {}
        self._failure_predicates: Dict[str, Callable[[BaseException], bool]] = {}
        self._breakers: Dict[str, CircuitBreaker] = {}

    def configure(
        self,
        name: str,
        config: CircuitBreakerConfig,
        is_failure: Optional[Callable[[BaseException], bool]] = None,
    ):
        """Set the configuration used when the breaker for `name` is created"""
        self._configs[name] = config
        if is_failure is not None:
            self._failure_predicates[name] = is_failure
        if name in self._breakers:
            self._breakers[name].config = config
            if is_failure is not None:
                self._breakers[name]._is_failure = is_failure

    def get(self, name: str) -> CircuitBreaker:
        """Get or create the breaker for a dependency"""
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name,
                self._configs.get(name, self.default_config),
                clock=self._clock,
                is_failure=self._failure_predicates.get(name, _always_failure),
            )
            self._breakers[name] = breaker
        return breaker

    def names(self) -> list:
        return list(self._breakers)

    def reset(self, name: Optional[str] = None):
        targets = [self._breakers[name]] if name in self._breakers else (
            [] if name else list(self._breakers.values())
        )
        for breaker in targets:
            breaker.reset()

    def get_all_stats(self) -> Dict[str, Any]:
        """Get statistics for all circuit breakers"""
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "CircuitRegistry":
        """Registry with the SMS gateway and storage breakers pre-configured"""
        from intake_gateway.reliability.retry import is_retryable

        config = config or default_settings
        registry = cls(clock=clock)
        registry.configure(
            "sms_gateway",
            CircuitBreakerConfig(
                failure_threshold=config.sms_circuit_failure_threshold,
                timeout_seconds=config.sms_circuit_timeout_seconds,
            ),
            is_failure=is_retryable,
        )
        registry.configure(
            "storage",
            CircuitBreakerConfig(
                failure_threshold=config.storage_circuit_failure_threshold,
                timeout_seconds=config.storage_circuit_timeout_seconds,
            ),
            is_failure=is_retryable,
        )
        return registry
