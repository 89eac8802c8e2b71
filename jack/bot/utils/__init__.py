"""Connector utility functions."""

from .retry import rate_limit_retry, RateLimitRetry, is_retryable

__all__ = [
    "rate_limit_retry",
    "RateLimitRetry",
    "is_retryable",
]
