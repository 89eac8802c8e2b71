"""
Retry logic with exponential backoff for the completion service.
"""

import asyncio
import logging
import re
from functools import wraps
from typing import Any, Callable, TypeVar

import httpx
import openai
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Exception types that should trigger retries
RETRYABLE_EXCEPTIONS = (
    # Generic network errors
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    httpx.TransportError,
    # SDK-wrapped errors (APITimeoutError is a subclass of APIConnectionError)
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def is_rate_limit_error(exception: BaseException) -> bool:
    """Check if exception is a rate limit error from the provider."""
    error_str = str(exception).lower()

    rate_limit_indicators = [
        "rate_limit",
        "rate limit",
        "ratelimit",
        "429",
        "too many requests",
        "overloaded",
    ]

    return any(indicator in error_str for indicator in rate_limit_indicators)


def is_retryable(exception: BaseException) -> bool:
    return isinstance(exception, RETRYABLE_EXCEPTIONS) or is_rate_limit_error(exception)


def extract_retry_after(exception: BaseException) -> float | None:
    """Try to extract retry-after seconds from exception."""
    response = getattr(exception, "response", None)
    headers = getattr(response, "headers", None)
    if headers is not None:
        retry_after = headers.get("retry-after")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass

    match = re.search(r"retry.{0,10}?(\d+\.?\d*)\s*s", str(exception), re.IGNORECASE)
    if match:
        return float(match.group(1))

    return None


class RateLimitRetry:
    """
    Retry decorator for async provider calls.

    - Uses exponential backoff for transient errors
    - Respects retry-after hints when available
    - Re-raises the last error once attempts run out
    """

    def __init__(
        self,
        max_attempts: int = 3,
        min_wait: float = 1.0,
        max_wait: float = 20.0,
    ):
        self.max_attempts = max_attempts
        self.min_wait = min_wait
        self.max_wait = max_wait
        self._backoff = wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait)

    def _wait(self, retry_state: RetryCallState) -> float:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = extract_retry_after(exception) if exception else None
        if retry_after:
            return min(retry_after + 0.5, self.max_wait)
        return self._backoff(retry_state)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        wait_time = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"Retrying after error: {type(exception).__name__}. "
            f"Waiting {wait_time:.1f}s. "
            f"Attempt {retry_state.attempt_number}/{self.max_attempts}"
        )

    def __call__(self, func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            retrying = AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=self._wait,
                retry=retry_if_exception(is_retryable),
                before_sleep=self._log_retry,
                reraise=True,
            )
            async for attempt in retrying:
                with attempt:
                    return await func(*args, **kwargs)

        return wrapper


# Chat replies are interactive, so give up quickly and fall back
rate_limit_retry = RateLimitRetry(
    max_attempts=3,
    min_wait=1.0,
    max_wait=20.0,
)
