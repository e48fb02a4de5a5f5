"""
Tests for retry utilities
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

import httpx

from intake_gateway.core.exceptions import (
    CircuitOpenError,
    DownstreamTimeoutError,
    InvalidSignatureError,
    SmsDeliveryError,
    StorageError,
    ValidationError,
)
from intake_gateway.reliability import RetryPolicy, is_retryable, retry_with_backoff, with_timeout

from .conftest import RecordingSleep


class TestIsRetryable:
    """Tests for the default retry condition"""

    def test_transient_errors(self):
        """Test timeouts, 5xx and 429 are retried"""
        assert is_retryable(DownstreamTimeoutError("sms_gateway", 5.0))
        assert is_retryable(SmsDeliveryError("busy", upstream_status=503))
        assert is_retryable(StorageError("upsert", "slow down", upstream_status=429))
        assert is_retryable(StorageError("insert", "connection reset"))
        assert is_retryable(asyncio.TimeoutError())
        assert is_retryable(ConnectionError())

    def test_permanent_errors(self):
        """Test 4xx, validation, auth and open circuits are not retried"""
        assert not is_retryable(SmsDeliveryError("invalid number", upstream_status=400))
        assert not is_retryable(ValidationError("bad"))
        assert not is_retryable(InvalidSignatureError())
        assert not is_retryable(CircuitOpenError("sms_gateway", 10))

    def test_httpx_errors(self):
        """Test httpx status and transport errors"""
        request = httpx.Request("GET", "https://example.supabase.co/rest/v1/vapi_calls")
        server_error = httpx.HTTPStatusError("boom", request=request, response=httpx.Response(502, request=request))
        client_error = httpx.HTTPStatusError("nope", request=request, response=httpx.Response(404, request=request))
        assert is_retryable(server_error)
        assert not is_retryable(client_error)
        assert is_retryable(httpx.ConnectError("refused", request=request))


class TestRetryPolicy:
    """Tests for RetryPolicy"""

    def test_exponential_delays(self):
        """Test delays double and are capped"""
        policy = RetryPolicy(max_attempts=6, base_delay=1.0, max_delay=5.0, jitter=False)
        assert [policy.compute_delay(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_bounds(self):
        """Test jitter scales the delay into [0.5, 1.0] of its nominal value"""
        policy = RetryPolicy(base_delay=2.0, jitter=True)
        for _ in range(50):
            assert 1.0 <= policy.compute_delay(1) <= 2.0

    def test_invalid_attempts(self):
        """Test at least one attempt is required"""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_from_settings_overrides(self, test_settings):
        """Test settings values and explicit overrides"""
        policy = RetryPolicy.from_settings(test_settings, max_attempts=5)
        assert policy.max_attempts == 5
        assert policy.base_delay == test_settings.retry_base_delay
        assert policy.jitter is False


class TestRetryWithBackoff:
    """Tests for retry_with_backoff"""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        """Test the operation is retried until it succeeds"""
        operation = AsyncMock(side_effect=[
            SmsDeliveryError("busy", 503),
            SmsDeliveryError("busy", 503),
            "ok",
        ])
        sleep = RecordingSleep()
        policy = RetryPolicy(max_attempts=3, base_delay=0.5, jitter=False)

        result = await retry_with_backoff(operation, policy, "send", sleep=sleep)

        assert result == "ok"
        assert operation.await_count == 3
        assert sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_raises_last_error_when_exhausted(self):
        """Test the last error surfaces after max attempts"""
        errors = [StorageError("insert", f"fail {n}", 500) for n in range(3)]
        operation = AsyncMock(side_effect=errors)
        policy = RetryPolicy(max_attempts=3, base_delay=0.1, jitter=False)

        with pytest.raises(StorageError) as exc_info:
            await retry_with_backoff(operation, policy, sleep=RecordingSleep())

        assert exc_info.value is errors[-1]
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self):
        """Test non-retryable errors fail immediately"""
        operation = AsyncMock(side_effect=SmsDeliveryError("invalid number", 400))
        sleep = RecordingSleep()

        with pytest.raises(SmsDeliveryError):
            await retry_with_backoff(operation, RetryPolicy(max_attempts=5), sleep=sleep)

        assert operation.await_count == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_custom_condition_and_callback(self):
        """Test a custom retry condition and the on_retry hook"""
        operation = AsyncMock(side_effect=[KeyError("x"), "done"])
        on_retry = MagicMock()
        policy = RetryPolicy(max_attempts=2, base_delay=0.2, jitter=False,
                             retry_condition=lambda e: isinstance(e, KeyError))

        result = await retry_with_backoff(operation, policy, on_retry=on_retry, sleep=RecordingSleep())

        assert result == "done"
        on_retry.assert_called_once()
        attempt, error, delay = on_retry.call_args.args
        assert attempt == 1 and isinstance(error, KeyError) and delay == 0.2


class TestWithTimeout:
    """Tests for with_timeout"""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        """Test fast operations return normally"""
        async def fast():
            return 42

        assert await with_timeout(fast(), 1.0) == 42

    @pytest.mark.asyncio
    async def test_timeout_raises_downstream_error(self):
        """Test slow operations raise a retryable timeout error"""
        async def slow():
            await asyncio.sleep(10)

        with pytest.raises(DownstreamTimeoutError) as exc_info:
            await with_timeout(slow(), 0.01, dependency="storage")

        assert exc_info.value.dependency == "storage"
        assert exc_info.value.retryable is True
