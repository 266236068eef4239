"""
Retry policy for external calls (TTS, STT, LLM, backend).

Transient failures (timeouts, dropped connections, 5xx) are retried a small
fixed number of times with a fixed delay. Client errors (4xx) fail at once.
Exhausted retries re-raise the last error so callers see an ordinary failure.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import httpx
import openai
from loguru import logger

T = TypeVar("T")


def is_retryable_error(error: BaseException) -> bool:
    """True for transient failures worth another attempt."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(error, openai.APIStatusError):
        return error.status_code >= 500
    if isinstance(error, (openai.APITimeoutError, openai.APIConnectionError)):
        return True
    return isinstance(error, (asyncio.TimeoutError, ConnectionError))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    label: str,
    max_retries: int = 2,
    delay_seconds: float = 0.5,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
) -> T:
    """
    Await operation(), retrying transient failures.

    Args:
        operation: Zero-argument coroutine factory (called once per attempt)
        label: Name used in log lines
        max_retries: Attempts after the first one
        delay_seconds: Fixed pause between attempts
        is_retryable: Predicate deciding whether an error is transient

    Returns:
        The operation's result

    Raises:
        The last error once retries are exhausted, or any non-retryable error
    """
    attempts = max_retries + 1
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e):
                logger.error(f"{label} failed (not retryable): {e}")
                raise
            if attempt == attempts:
                logger.error(f"{label} failed after {attempts} attempts: {e}")
                raise
            logger.warning(
                f"{label} attempt {attempt}/{attempts} failed: {e}. "
                f"Retrying in {delay_seconds}s..."
            )
            await asyncio.sleep(delay_seconds)

    raise RuntimeError("unreachable")  # pragma: no cover
