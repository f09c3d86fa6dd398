"""
catalogsync core - scheduling primitives shared by every stage.

Provides:
- SlidingWindowRateLimiter: admission control for AI calls
- with_retry: exponential backoff with jitter
- map_concurrent: bounded worker-pool map preserving order
"""

from .pool import CancellationToken, ItemError, map_concurrent
from .ratelimit import SlidingWindowRateLimiter
from .retry import (
    is_lock_conflict,
    is_rate_limited,
    is_retryable,
    is_transient_network,
    with_retry,
)

__all__ = [
    "CancellationToken",
    "ItemError",
    "map_concurrent",
    "SlidingWindowRateLimiter",
    "with_retry",
    "is_retryable",
    "is_rate_limited",
    "is_transient_network",
    "is_lock_conflict",
]
