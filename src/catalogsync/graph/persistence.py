"""
Batched, deadlock-tolerant product persistence.

A page is split into sub-batches (25 products by default), each saved in
its own transaction. At most two transactions run at once: every
sub-batch touches the shared Store and Category nodes.

A sub-batch that still fails after its retries is rolled back and skipped
so one contended batch cannot stall the run. The caller decides what a
skipped batch means for the run as a whole.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..config import PipelineConfig
from ..core.pool import CancellationToken, ItemError, map_concurrent
from ..core.retry import is_lock_conflict, is_transient_network, with_retry
from ..errors import SyncCancelled
from ..models import Product

logger = logging.getLogger(__name__)

TRANSACTION_JITTER = 0.3


def _transaction_retryable(exc: BaseException) -> bool:
    return is_lock_conflict(exc) or is_transient_network(exc)


@dataclass
class SaveResult:
    """Outcome of persisting one page."""

    saved_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    skipped_batches: int = 0
    cancelled: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed_ids and not self.cancelled


class PersistenceLayer:
    """Splits pages into sub-batch transactions against a graph store."""

    def __init__(self, graph, pipeline: Optional[PipelineConfig] = None):
        self.graph = graph
        self.pipeline = pipeline or PipelineConfig()

    def split(self, products: List[Product]) -> List[List[Product]]:
        size = max(1, self.pipeline.sub_batch_size)
        return [products[i : i + size] for i in range(0, len(products), size)]

    async def _save_sub_batch(self, batch: List[Product], store_id: str) -> int:
        return await with_retry(
            lambda: self.graph.save_product_batch(batch, store_id),
            max_attempts=self.pipeline.transaction_attempts,
            base_delay=self.pipeline.transaction_base_delay,
            jitter=TRANSACTION_JITTER,
            max_delay=None,
            is_retryable=_transaction_retryable,
            label=f"save batch ({len(batch)} products)",
        )

    async def save_page(
        self,
        products: List[Product],
        store_id: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SaveResult:
        result = SaveResult()
        if not products:
            return result

        batches = self.split(products)
        outcomes = await map_concurrent(
            batches,
            self.pipeline.max_concurrent_transactions,
            lambda batch: self._save_sub_batch(batch, store_id),
            cancel_token=cancel_token,
        )

        for index, (batch, outcome) in enumerate(zip(batches, outcomes), start=1):
            ids = [p.id for p in batch]
            if not isinstance(outcome, ItemError):
                result.saved_ids.extend(ids)
                logger.debug(f"Batch {index}/{len(batches)}: {len(batch)} products saved")
                continue

            result.failed_ids.extend(ids)
            if isinstance(outcome.error, SyncCancelled):
                result.cancelled = True
                continue

            result.skipped_batches += 1
            result.errors.append(str(outcome.error))
            logger.error(
                f"Batch {index}/{len(batches)} failed after retries, skipping "
                f"{len(batch)} products: {outcome.error}",
                exc_info=outcome.error,
            )

        logger.info(
            f"Saved {len(result.saved_ids)}/{len(products)} products "
            f"in {len(batches)} batch(es), {result.skipped_batches} skipped"
        )
        return result
