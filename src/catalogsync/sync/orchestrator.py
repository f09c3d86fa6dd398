"""
Sync orchestrator.

Drives one store sync through the state machine

    idle -> fetching -> diffing -> enriching -> persisting -> checkpointing
         -> (fetching | finalizing) -> done | failed | cancelled

Pages are processed strictly in adapter order. The checkpoint only
advances past a page once all of its sub-batches are persisted; if a
sub-batch is skipped the checkpoint, counters included, stays at that
page's starting cursor for the rest of the run, the page is not counted,
and the run ends ``failed`` after the remaining pages are processed. Ids
saved on later pages go into the checkpoint so a resumed run counts them
once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Set

from ..config import PipelineConfig
from ..core.pool import CancellationToken, ItemError, map_concurrent
from ..errors import BatchPersistenceError, SyncCancelled
from ..models import Page, Product, ShopMetadata, StoreRef, StoreStatus, SyncState
from ..stores import StoreConfig
from .checkpoint import CheckpointManager, CheckpointState
from .progress import LoggingProgressBroadcaster, ProgressBroadcaster

logger = logging.getLogger(__name__)

# Added to the running total while more pages remain and no total is known
COUNT_LOOKAHEAD = 200

StateListener = Callable[[SyncState, int, int], Any]


@dataclass
class SyncResult:
    """Counters and outcome of one sync run."""

    store_id: str
    state: SyncState = SyncState.IDLE
    count_processed: int = 0
    total_products_seen: int = 0
    count: int = 0
    pages: int = 0
    skipped_batches: int = 0
    failed_product_ids: List[str] = field(default_factory=list)
    resumed: bool = False
    error: Optional[str] = None


class SyncOrchestrator:
    """Runs the fetch/diff/enrich/persist/checkpoint loop for one store.

    Args:
        store: Store being synced.
        adapter: Provider adapter for the store.
        enrichment: ``EnrichmentStage``.
        persistence: ``PersistenceLayer``.
        graph: Graph store (diffing, store status, context).
        checkpoints: ``CheckpointManager`` for the store.
        ai: Service used for store suggestions during finalization.
        broadcaster: Progress channel.
        force: Re-process products that already exist in the store.
        resume: Continue from a saved checkpoint when one is found.
        cancel_token: Cooperative cancellation.
        listener: Called with ``(state, processed, total)`` on every change.
    """

    def __init__(
        self,
        store: StoreConfig,
        adapter,
        enrichment,
        persistence,
        graph,
        checkpoints: CheckpointManager,
        *,
        ai=None,
        broadcaster: Optional[ProgressBroadcaster] = None,
        pipeline: Optional[PipelineConfig] = None,
        force: bool = False,
        resume: bool = True,
        cancel_token: Optional[CancellationToken] = None,
        listener: Optional[StateListener] = None,
    ):
        self.store = store
        self.adapter = adapter
        self.enrichment = enrichment
        self.persistence = persistence
        self.graph = graph
        self.checkpoints = checkpoints
        self.ai = ai
        self.broadcaster = broadcaster or LoggingProgressBroadcaster()
        self.pipeline = pipeline or PipelineConfig()
        self.force = force
        self.resume = resume
        self.cancel_token = cancel_token or CancellationToken()
        self.listener = listener

        self.result = SyncResult(store_id=store.id)
        self._checkpoint: Optional[CheckpointState] = None
        # Saved on a previous attempt past its checkpoint cursor, not yet counted
        self._ahead: Set[str] = set()

    @property
    def state(self) -> SyncState:
        return self.result.state

    def _set_state(self, state: SyncState) -> None:
        self.result.state = state
        if self.listener is not None:
            self.listener(state, self.result.count_processed, self.result.count)

    # ==================== RUN ====================

    async def run(self) -> SyncResult:
        """Run the sync to completion.

        Raises:
            SyncCancelled: The cancellation token was set.
            BatchPersistenceError: One or more sub-batches were skipped.
            Exception: Any adapter or store error that survived its retries.
        """
        try:
            await self._run()
        except SyncCancelled as e:
            self.result.error = str(e)
            self._set_state(SyncState.CANCELLED)
            logger.warning(f"Sync of {self.store.id} cancelled: {e}")
            raise
        except Exception as e:
            self.result.error = str(e)
            self._set_state(SyncState.FAILED)
            logger.error(f"Sync of {self.store.id} failed: {e}")
            await self._mark_store_error()
            raise
        return self.result

    async def _mark_store_error(self) -> None:
        try:
            await self.graph.update_store_status(self.store.id, StoreStatus.ERROR)
        except Exception as e:
            logger.warning(f"Could not mark store {self.store.id} as errored: {e}")

    async def _run(self) -> None:
        self.cancel_token.raise_if_cancelled()
        logger.info(f"=== Starting {self.adapter.provider_type} sync for {self.store.id} ===")

        await self.graph.upsert_application_and_store(
            StoreRef(id=self.store.id, name=self.store.display_name)
        )
        categories = await self.adapter.fetch_category_tree()
        saved = await self.graph.upsert_categories(categories)
        logger.info(f"{saved} categories upserted for {self.store.id}")
        shop = await self.adapter.get_shop_metadata()

        cursor = self._restore()
        checkpoint = self._checkpoint
        frozen_state: Optional[dict] = None
        frozen_seen = 0
        frozen_processed = 0
        frozen_ahead: List[str] = []
        has_more = True

        while has_more:
            self.cancel_token.raise_if_cancelled()
            page_cursor = cursor
            seen_before = self.result.total_products_seen
            processed_before = self.result.count_processed

            self._set_state(SyncState.FETCHING)
            page = await self.adapter.fetch_page(cursor)
            cursor, has_more = page.next_cursor, page.has_more
            self.result.pages += 1
            self._count_page(page)

            counted = await self._process_page(page, shop)
            if counted is None and frozen_state is None:
                frozen_state = self.adapter.cursor_state(page_cursor)
                frozen_seen = seen_before
                frozen_processed = processed_before
                logger.error(
                    f"Page {self.result.pages} of {self.store.id} was not fully persisted; "
                    f"checkpoint held at its starting cursor"
                )
            elif counted and frozen_state is not None:
                frozen_ahead.extend(counted)

            self._set_state(SyncState.CHECKPOINTING)
            checkpoint.count = self.result.count
            if frozen_state is not None:
                checkpoint.count_processed = frozen_processed
                checkpoint.total_products_seen = frozen_seen
                checkpoint.provider_state = frozen_state
                checkpoint.persisted_ahead = sorted(self._ahead.union(frozen_ahead))
            else:
                checkpoint.count_processed = self.result.count_processed
                checkpoint.total_products_seen = self.result.total_products_seen
                checkpoint.provider_state = self.adapter.cursor_state(cursor)
                checkpoint.persisted_ahead = sorted(self._ahead)
            self.checkpoints.save(checkpoint)
            await self.broadcaster.publish_progress(
                self.store.progress_channel, self.result.count_processed, self.result.count
            )

        self.adapter.log_final_stats()

        if frozen_state is not None:
            raise BatchPersistenceError(
                f"{self.result.skipped_batches} sub-batch(es) could not be saved "
                f"({len(self.result.failed_product_ids)} products); resume from checkpoint to retry",
                failed_product_ids=self.result.failed_product_ids,
                provider=self.adapter.provider_type,
            )

        self._set_state(SyncState.FINALIZING)
        await self.finalize_context()
        self.checkpoints.clear()
        await self.graph.update_store_status(self.store.id, StoreStatus.ACTIVE, touch_last_sync=True)
        await self.broadcaster.publish_progress(
            self.store.progress_channel, self.result.count_processed, self.result.count
        )
        self._set_state(SyncState.DONE)
        logger.info(
            f"=== {self.store.id} sync complete: {self.result.count_processed} processed, "
            f"{self.result.total_products_seen} seen ==="
        )

    def _restore(self):
        saved = self.checkpoints.load() if self.resume else None
        if saved is None:
            self._checkpoint = self.checkpoints.new_state()
            return None

        self._checkpoint = saved
        self.result.resumed = True
        self.result.count_processed = saved.count_processed
        self.result.total_products_seen = saved.total_products_seen
        self.result.count = saved.count
        self._ahead = set(saved.persisted_ahead)
        logger.info(
            f"[Resume] {self.store.id}: continuing sync started at {saved.started_at:.0f}, "
            f"{saved.count_processed} products already processed"
        )
        return self.adapter.restore_cursor_state(saved.provider_state)

    def _count_page(self, page: Page) -> None:
        self.result.total_products_seen += len(page.items)
        seen = self.result.total_products_seen
        if not page.has_more:
            self.result.count = seen
        elif page.total_hint:
            self.result.count = max(page.total_hint, seen)
        elif not self.result.count or self.result.count < seen:
            self.result.count = seen + COUNT_LOOKAHEAD
        logger.info(f"=== Page {self.result.pages}: {len(page.items)} products, total seen {seen} ===")

    # ==================== PAGE STAGES ====================

    async def _diff(self, products: List[Product]) -> List[Product]:
        self._set_state(SyncState.DIFFING)
        if self.force:
            logger.info(f"Force mode: processing all {len(products)} products")
            return products

        existing = await self.graph.get_existing_product_ids(self.store.id, [p.id for p in products])
        fresh = [p for p in products if p.id not in existing]
        logger.info(f"Existing: {len(products) - len(fresh)}, new: {len(fresh)}")
        return fresh

    async def _enrich_one(self, product: Product, shop: ShopMetadata) -> Product:
        enriched = await self.enrichment.enrich(product, self.store, shop)
        return await self.adapter.post_process(enriched)

    async def _enrich(self, products: List[Product], shop: ShopMetadata) -> List[Product]:
        self._set_state(SyncState.ENRICHING)
        results = await map_concurrent(
            products,
            self.pipeline.concurrency,
            lambda p: self._enrich_one(p, shop),
            cancel_token=self.cancel_token,
        )

        enriched = []
        for product, outcome in zip(products, results):
            if isinstance(outcome, ItemError):
                if isinstance(outcome.error, SyncCancelled):
                    raise outcome.error
                logger.warning(f"Enrichment of '{product.title}' failed, saving as-is: {outcome.error}")
                enriched.append(product)
            else:
                enriched.append(outcome)
        return enriched

    async def _process_page(self, page: Page, shop: ShopMetadata) -> Optional[List[str]]:
        """Diff, enrich and persist one page.

        Returns the ids counted as processed, or None if a sub-batch was
        skipped. Products saved by an earlier attempt past its checkpoint
        are counted here once, whether or not they are processed again.
        """
        if not page.items:
            return []

        to_process = await self._diff(page.items)
        fresh_ids = {p.id for p in to_process}
        carried = [p.id for p in page.items if p.id in self._ahead and p.id not in fresh_ids]

        if to_process:
            enriched = await self._enrich(to_process, shop)
            self.cancel_token.raise_if_cancelled()

            self._set_state(SyncState.PERSISTING)
            saved = await self.persistence.save_page(enriched, self.store.id, self.cancel_token)
            if saved.cancelled:
                raise SyncCancelled(self.cancel_token.reason or "Sync cancelled")

            if not saved.complete:
                self.result.skipped_batches += saved.skipped_batches
                self.result.failed_product_ids.extend(saved.failed_ids)
                return None

        counted = [p.id for p in to_process] + carried
        self._ahead.difference_update(counted)
        self.result.count_processed += len(counted)
        if self.result.count_processed > self.result.count:
            self.result.count = self.result.count_processed
        return counted

    # ==================== FINALIZATION ====================

    async def finalize_context(self) -> None:
        """Store the category summary and AI conversation starters."""
        channel = self.store.progress_channel
        await self.broadcaster.publish_status(channel, {"contextFetching": "inProgress"})
        try:
            categories = await self.graph.fetch_store_categories(self.store.id)
            categories_list = ", ".join(c.lower() for c in categories)
            suggestions: List[str] = []
            if self.ai is not None and categories_list:
                suggestions = await self.ai.generate_suggestions(categories_list)
            await self.graph.save_store_context(self.store.id, categories, suggestions)
            logger.info(f"Context saved for {self.store.id}: {len(categories)} categories, {suggestions}")
        except Exception as e:
            logger.warning(f"Context generation failed for {self.store.id}: {e}")
        await self.broadcaster.publish_status(channel, {"contextFetching": "done"})
