"""
Periodic re-sync of every configured store.

Uses APScheduler to start a sync for each store in ``STORES_DIR`` every
``resync_interval`` seconds through the ``JobController``, so a store that
is still syncing is not started twice.
"""

import logging
from datetime import datetime
from typing import List

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import SyncConfig
from ..errors import ConfigurationError
from ..stores import load_all_stores
from .jobs import JobController

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Scheduler for background store syncs."""

    def __init__(self, config: SyncConfig, controller: JobController):
        self.config = config
        self.controller = controller
        self.scheduler = AsyncIOScheduler()

    def start(self, run_now: bool = True):
        """Start the scheduler."""
        kwargs = {}
        if run_now:
            # First run immediately, then on the interval
            kwargs["next_run_time"] = datetime.now()

        self.scheduler.add_job(
            self._sync_all_stores,
            trigger=IntervalTrigger(seconds=self.config.resync_interval),
            id="catalog_resync",
            name="Catalog Re-sync All Stores",
            replace_existing=True,
            max_instances=1,
            **kwargs,
        )

        self.scheduler.start()
        logger.info(f"Sync scheduler started. Re-syncing every {self.config.resync_interval}s")

    async def stop(self):
        """Stop the scheduler."""
        self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")

    async def _sync_all_stores(self) -> List[str]:
        """Start a sync job for every configured store."""
        try:
            stores = load_all_stores(self.config.stores_dir)
        except ConfigurationError as e:
            logger.error(f"Cannot schedule syncs: {e}")
            return []

        job_ids = []
        for store in stores.values():
            job_ids.append(self.controller.start_sync(store.id))

        logger.info(f"Scheduled {len(job_ids)} store sync(s)")
        return job_ids
