"""
Retry Utilities
Provides retry logic for downstream calls with exponential backoff and jitter
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Optional, Callable, Any, Awaitable, TypeVar

import httpx

from intake_gateway.core.logging import get_logger
from intake_gateway.core.config import Settings, settings as default_settings
from intake_gateway.core.exceptions import (
    IntakeGatewayException,
    DownstreamTimeoutError,
)

logger = get_logger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


def is_retryable(error: BaseException) -> bool:
    """
    Default retry condition

    Retries timeouts, transport failures, 5xx and 429 responses.
    Authentication, validation and circuit-open errors are never retried.
    """
    if isinstance(error, IntakeGatewayException):
        return error.retryable
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status >= 500 or status == 429
    if isinstance(error, httpx.TransportError):
        return True
    # Unknown failures are treated as transient
    return True


@dataclass
class RetryPolicy:
    """Backoff configuration for retry_with_backoff"""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    retry_condition: Callable[[BaseException], bool] = field(default=is_retryable)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def compute_delay(self, attempt: int) -> float:
        """
        Delay to wait after a failed attempt

        Args:
            attempt: 1-based number of the attempt that just failed

        Returns:
            min(base_delay * exponential_base^(attempt-1), max_delay),
            scaled by a uniform factor in [0.5, 1.0] when jitter is enabled
        """
        delay = min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.0)
        return delay

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None, **overrides) -> "RetryPolicy":
        config = config or default_settings
        values = {
            "max_attempts": config.retry_max_attempts,
            "base_delay": config.retry_base_delay,
            "max_delay": config.retry_max_delay,
            "exponential_base": config.retry_exponential_base,
            "jitter": config.retry_jitter,
        }
        values.update(overrides)
        return cls(**values)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    operation_name: str = "operation",
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    sleep: SleepFunc = asyncio.sleep
) -> T:
    """
    Execute an async operation with retry logic

    Args:
        operation: Async callable to execute
        policy: Backoff policy (defaults from settings)
        operation_name: Name for logging purposes
        on_retry: Optional callback called with (attempt, error, delay) before each retry
        sleep: Non-blocking sleep used between attempts

    Returns:
        Result of the operation

    Raises:
        The last error once attempts are exhausted or the error is not retryable
    """
    policy = policy or RetryPolicy.from_settings()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await operation()
            if attempt > 1:
                logger.info(f"{operation_name} succeeded on attempt {attempt}/{policy.max_attempts}")
            return result
        except Exception as e:
            retryable = policy.retry_condition(e)
            if attempt >= policy.max_attempts or not retryable:
                if retryable:
                    logger.error(f"All {policy.max_attempts} attempts failed for {operation_name}: {e}")
                else:
                    logger.warning(f"{operation_name} failed with non-retryable error: {e}")
                raise

            delay = policy.compute_delay(attempt)
            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} failed for {operation_name}: {e}. "
                f"Retrying in {delay:.2f}s"
            )
            if on_retry:
                on_retry(attempt, e, delay)
            await sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError(f"{operation_name}: retry loop exited without result")


async def with_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: Optional[float],
    dependency: str = "downstream"
) -> T:
    """
    Await with an explicit timeout

    Raises:
        DownstreamTimeoutError: If the timeout elapses (retryable)
    """
    if timeout_seconds is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"{dependency} call timed out after {timeout_seconds}s")
        raise DownstreamTimeoutError(dependency, timeout_seconds)
