"""
Rate Limiting Middleware
Limits inbound webhook requests per client address
"""

import time
from collections import OrderedDict
from typing import Callable, Optional
from dataclasses import dataclass
from fastapi import Request

from intake_gateway.core.config import settings
from intake_gateway.core.logging import get_logger
from intake_gateway.core.exceptions import RateLimitError

logger = get_logger(__name__)


@dataclass
class RateLimitBucket:
    """Token bucket for rate limiting"""
    tokens: float
    last_update: float
    max_tokens: int
    refill_rate: float  # tokens per second

    def consume(self, now: float, tokens: int = 1) -> bool:
        """Try to consume tokens, return True if successful"""
        elapsed = max(now - self.last_update, 0.0)

        # Refill tokens
        self.tokens = min(
            self.max_tokens,
            self.tokens + elapsed * self.refill_rate
        )
        self.last_update = now

        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def is_full(self, now: float) -> bool:
        """True once the bucket would have refilled to capacity"""
        elapsed = max(now - self.last_update, 0.0)
        return self.tokens + elapsed * self.refill_rate >= self.max_tokens

    def time_until_available(self, tokens: int = 1) -> float:
        """Calculate time until tokens are available"""
        if self.tokens >= tokens:
            return 0
        needed = tokens - self.tokens
        return needed / self.refill_rate


class RateLimiter:
    """
    Token-bucket rate limiter, one bucket per client key.

    Buckets that have refilled completely are dropped on a periodic sweep,
    and at most max_clients buckets are kept, least recently used first out.
    """

    def __init__(
        self,
        requests_per_minute: int = 100,
        burst_multiplier: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        max_clients: int = 10000,
        sweep_interval: float = 60.0,
    ):
        self.requests_per_minute = requests_per_minute
        self.burst_multiplier = burst_multiplier
        self.max_clients = max(max_clients, 1)
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._last_sweep = clock()
        self.buckets: "OrderedDict[str, RateLimitBucket]" = OrderedDict()

    def _sweep(self, now: float) -> None:
        """Drop buckets that would be full by now; a fresh bucket is equivalent"""
        idle = [key for key, bucket in self.buckets.items() if bucket.is_full(now)]
        for key in idle:
            del self.buckets[key]
        self._last_sweep = now
        if idle:
            logger.debug(f"Rate limiter dropped {len(idle)} idle client bucket(s)")

    def _get_bucket(self, key: str, now: float) -> RateLimitBucket:
        """Get or create the bucket for a client"""
        bucket = self.buckets.get(key)
        if bucket is not None:
            self.buckets.move_to_end(key)
            return bucket

        if len(self.buckets) >= self.max_clients:
            self._sweep(now)
            while len(self.buckets) >= self.max_clients:
                self.buckets.popitem(last=False)

        capacity = max(int(self.requests_per_minute * self.burst_multiplier), 1)
        bucket = RateLimitBucket(
            tokens=capacity,
            last_update=now,
            max_tokens=capacity,
            refill_rate=self.requests_per_minute / 60.0
        )
        self.buckets[key] = bucket
        return bucket

    def check(self, key: str):
        """
        Consume one request for a client

        Raises:
            RateLimitError: If the client has no tokens left
        """
        now = self._clock()
        if now - self._last_sweep >= self.sweep_interval:
            self._sweep(now)

        bucket = self._get_bucket(key, now)
        if not bucket.consume(now):
            retry_after = int(bucket.time_until_available(1)) + 1
            logger.warning(f"Rate limit exceeded for client {key}")
            raise RateLimitError(retry_after=retry_after)

    def reset(self):
        self.buckets.clear()


# Singleton instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get rate limiter singleton"""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(requests_per_minute=settings.webhook_requests_per_minute)
    return _rate_limiter


async def check_webhook_rate_limit(request: Request):
    """
    Dependency enforcing the per-client webhook rate limit

    Raises:
        RateLimitError: If rate limit exceeded
    """
    limiter = getattr(request.app.state, "rate_limiter", None) or get_rate_limiter()
    client = request.client.host if request.client else "unknown"
    limiter.check(client)
