"""Resilience primitives: retry, circuit breaker, bounded task runner"""

from .retry import RetryPolicy, retry_with_backoff, with_timeout, is_retryable
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitRegistry,
    CircuitState,
)
from .task_runner import BoundedTaskRunner, TaskResult, chunked

__all__ = [
    "RetryPolicy",
    "retry_with_backoff",
    "with_timeout",
    "is_retryable",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitRegistry",
    "CircuitState",
    "BoundedTaskRunner",
    "TaskResult",
    "chunked",
]
