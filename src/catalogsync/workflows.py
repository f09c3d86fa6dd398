"""Temporal workflows for catalog sync.

Workflows give store syncs durability and retries; the heavy lifting
happens in activities.
"""

from __future__ import annotations

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from .activities import sync_store


@workflow.defn
class CatalogSyncWorkflow:
    """Workflow syncing one store's catalog.

    A failed attempt leaves its checkpoint on disk, so Temporal retries
    resume from the last persisted page.
    """

    @workflow.run
    async def run(self, store_id: str, force: bool = False) -> str:
        """Execute the catalog sync workflow.

        Args:
            store_id: Store config id
            force: Re-process products already in the graph

        Returns:
            Success message with the number of processed products
        """
        summary = await workflow.execute_activity(
            sync_store,
            {"store_id": store_id, "force": force, "resume": True},
            start_to_close_timeout=timedelta(hours=6),
            heartbeat_timeout=timedelta(minutes=10),
            retry_policy=RetryPolicy(maximum_attempts=3, initial_interval=timedelta(minutes=1)),
        )
        return f"Synced {summary['count_processed']} products for {store_id}"
