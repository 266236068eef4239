"""
Unit tests for the retry policy.
"""

import asyncio

import httpx
import pytest

from coach.retry import is_retryable_error, with_retry


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "http://backend.test/x")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"{code}", request=request, response=response)


class TestIsRetryable:
    """Tests for transient-error classification."""

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectTimeout("timeout"),
            httpx.ConnectError("refused"),
            asyncio.TimeoutError(),
            ConnectionResetError(),
        ],
    )
    def test_transient(self, error):
        assert is_retryable_error(error)

    def test_server_errors_retry_client_errors_do_not(self):
        assert is_retryable_error(_status_error(503))
        assert not is_retryable_error(_status_error(400))
        assert not is_retryable_error(_status_error(401))

    def test_programming_errors_not_retried(self):
        assert not is_retryable_error(ValueError("bad"))


class TestWithRetry:
    """Tests for with_retry."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failure(self):
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            if calls < 2:
                raise httpx.ConnectTimeout("timeout")
            return "ok"

        assert await with_retry(operation, "op", max_retries=2, delay_seconds=0) == "ok"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        """Test the attempt count is max_retries + 1 and the last error surfaces."""
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            raise _status_error(502)

        with pytest.raises(httpx.HTTPStatusError):
            await with_retry(operation, "op", max_retries=2, delay_seconds=0)
        assert calls == 3

    @pytest.mark.asyncio
    async def test_client_error_fails_immediately(self):
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            raise _status_error(422)

        with pytest.raises(httpx.HTTPStatusError):
            await with_retry(operation, "op", max_retries=5, delay_seconds=0)
        assert calls == 1
