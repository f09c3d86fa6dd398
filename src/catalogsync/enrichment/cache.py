"""Per-run embedding cache keyed by normalized input text."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Vector = List[float]


def normalize_key(text: str) -> str:
    return " ".join(text.lower().split())


class EmbeddingCache:
    """Caches embedding vectors for the lifetime of one sync run.

    Concurrent requests for the same key share a single in-flight call.
    Failed or empty results are not cached.
    """

    def __init__(self):
        self._values: Dict[str, Vector] = {}
        self._pending: Dict[str, asyncio.Future] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, text: str) -> bool:
        return normalize_key(text) in self._values

    def get(self, text: str) -> Optional[Vector]:
        return self._values.get(normalize_key(text))

    async def get_or_compute(
        self, text: str, compute: Callable[[str], Awaitable[Optional[Vector]]]
    ) -> Optional[Vector]:
        key = normalize_key(text)
        if not key:
            return None

        if key in self._values:
            self.hits += 1
            return self._values[key]

        pending = self._pending.get(key)
        if pending is not None:
            self.hits += 1
            return await asyncio.shield(pending)

        self.misses += 1
        future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            value = await compute(text)
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved; waiters re-raise it on their own
            future.exception()
            raise
        else:
            if value:
                self._values[key] = value
            future.set_result(value)
            return value
        finally:
            self._pending.pop(key, None)

    def clear(self) -> None:
        self._values.clear()
        self.hits = 0
        self.misses = 0
