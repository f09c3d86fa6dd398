"""Bounded-concurrency map operator."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar, Union

from ..errors import SyncCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class CancellationToken:
    """Cooperative cancellation flag shared by a job and its pipeline."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SyncCancelled(self.reason or "Sync cancelled")

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class ItemError:
    """Marker placed in a result slot whose call raised."""

    index: int
    error: BaseException

    def __bool__(self) -> bool:
        return False


async def map_concurrent(
    items: Sequence[T],
    k: int,
    fn: Callable[[T], Awaitable[R]],
    *,
    return_exceptions: bool = True,
    cancel_token: Optional[CancellationToken] = None,
) -> List[Union[R, ItemError]]:
    """Apply ``fn`` to every item with at most ``k`` calls in flight.

    Results come back in input order. A failing call never stops the other
    workers: its slot holds an ``ItemError``. With ``return_exceptions=False``
    the first error is raised once all scheduled work has drained.
    """
    if k < 1:
        raise ValueError("k must be >= 1")

    results: List[Union[R, ItemError, None]] = [None] * len(items)
    next_index = 0

    async def worker() -> None:
        nonlocal next_index
        while next_index < len(items):
            if cancel_token is not None and cancel_token.cancelled:
                return
            i = next_index
            next_index += 1
            try:
                results[i] = await fn(items[i])
            except Exception as e:
                logger.debug(f"Item {i} failed: {e}")
                results[i] = ItemError(index=i, error=e)

    workers = [worker() for _ in range(min(k, len(items)))]
    await asyncio.gather(*workers)

    # Slots never scheduled because of cancellation
    for i in range(next_index, len(items)):
        results[i] = ItemError(index=i, error=SyncCancelled(
            cancel_token.reason if cancel_token and cancel_token.reason else "Sync cancelled"
        ))

    if not return_exceptions:
        for result in results:
            if isinstance(result, ItemError):
                raise result.error

    return results  # type: ignore[return-value]
