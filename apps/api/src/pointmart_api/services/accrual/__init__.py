"""Accrual service integration: rate limiting, lookups and the pending order feed."""

from .client import (
    AccrualClient,
    AccrualClientError,
    AccrualNoDataError,
    AccrualQueryResult,
    AccrualRateLimitedError,
    AccrualTransientError,
)
from .limiter import DynamicRateLimiter, RateLimiterCancelledError
from .order_source import UnprocessedOrderSource

__all__ = [
    "AccrualClient",
    "AccrualClientError",
    "AccrualNoDataError",
    "AccrualQueryResult",
    "AccrualRateLimitedError",
    "AccrualTransientError",
    "DynamicRateLimiter",
    "RateLimiterCancelledError",
    "UnprocessedOrderSource",
]
