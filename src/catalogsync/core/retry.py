"""
Exponential backoff with jitter for outbound calls.

Every HTTP fetch, AI call and store transaction goes through ``with_retry``
with its own attempt ceiling. Errors are re-raised unchanged once the
attempts run out or the error is not retryable.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from ..errors import LockConflictError, RateLimitError, TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEADLOCK_CODES = (
    "Neo.TransientError.Transaction.DeadlockDetected",
    "Neo.TransientError.Transaction.LockClientStopped",
    "Neo.TransientError.Transaction.LockAcquisitionTimeout",
)

SDK_RATE_LIMIT_ERRORS = ("RateLimitError", "ResourceExhausted", "TooManyRequests")


def is_rate_limited(exc: BaseException) -> bool:
    if isinstance(exc, RateLimitError):
        return True
    if getattr(exc, "status_code", None) == 429 or getattr(exc, "status", None) == 429:
        return True
    # openai.RateLimitError, google.api_core ResourceExhausted / TooManyRequests
    return type(exc).__name__ in SDK_RATE_LIMIT_ERRORS


def is_transient_network(exc: BaseException) -> bool:
    if isinstance(exc, (TransientNetworkError, httpx.TransportError)):
        return True
    if isinstance(exc, (ConnectionError, asyncio.TimeoutError)):
        return True
    # openai.APIConnectionError / APITimeoutError, matched by name so this
    # module does not import the SDK
    return type(exc).__name__ in ("APIConnectionError", "APITimeoutError")


def is_lock_conflict(exc: BaseException) -> bool:
    if isinstance(exc, LockConflictError):
        return True
    return getattr(exc, "code", None) in DEADLOCK_CODES


def is_retryable(exc: BaseException) -> bool:
    """Default classifier: rate limit, transient network, or lock conflict."""
    return is_rate_limited(exc) or is_transient_network(exc) or is_lock_conflict(exc)


def backoff_delay(attempt: int, base_delay: float, jitter: float, max_delay: Optional[float] = None) -> float:
    delay = base_delay * (2**attempt) + random.uniform(0, jitter)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


async def with_retry(
    op: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 5,
    base_delay: float = 1.0,
    jitter: Optional[float] = None,
    max_delay: Optional[float] = 60.0,
    is_retryable: Callable[[BaseException], bool] = is_retryable,
    before_attempt: Optional[Callable[[], Awaitable[None]]] = None,
    label: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Invoke ``op`` until it succeeds or attempts are exhausted.

    Args:
        op: Zero-argument coroutine factory; called once per attempt.
        max_attempts: Total attempts including the first.
        base_delay: Backoff base in seconds; sleeps ``base * 2**attempt + jitter``.
        jitter: Upper bound of the random jitter (defaults to ``base_delay``).
        is_retryable: Classifier deciding whether an error is worth retrying.
        before_attempt: Awaited before every attempt (e.g. a rate limiter).
        label: Name used in log lines.

    Returns:
        Whatever ``op`` returns.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if jitter is None:
        jitter = base_delay

    attempt = 1
    while True:
        if before_attempt is not None:
            await before_attempt()
        try:
            return await op()
        except Exception as e:
            if attempt >= max_attempts or not is_retryable(e):
                raise

            retry_after = getattr(e, "retry_after", None)
            if isinstance(retry_after, (int, float)) and retry_after > 0:
                delay = float(retry_after)
            else:
                delay = backoff_delay(attempt, base_delay, jitter, max_delay)

            logger.warning(
                f"{label} failed (attempt {attempt}/{max_attempts}): {e}; retrying in {delay:.1f}s"
            )
            await sleep(delay)
            attempt += 1
