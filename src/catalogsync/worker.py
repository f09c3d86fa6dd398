"""
Temporal worker for catalog sync.

Connects to Temporal and serves ``CatalogSyncWorkflow`` and its
activities on the configured task queue (``catalog-sync`` by default).
"""

from __future__ import annotations

import logging
from typing import Optional

from temporalio.client import Client
from temporalio.worker import Worker

from .activities import sync_store
from .config import get_config
from .workflows import CatalogSyncWorkflow

logger = logging.getLogger(__name__)


async def get_temporal_client(host: Optional[str] = None) -> Client:
    """Get Temporal client connection (host from config if not provided)."""
    if host is None:
        host = get_config().temporal_host
    return await Client.connect(host)


def create_worker(client: Client, queue: str) -> Worker:
    """Create a Temporal worker for the sync queue."""
    return Worker(
        client,
        task_queue=queue,
        workflows=[CatalogSyncWorkflow],
        activities=[sync_store],
    )


async def run_worker(temporal_host: Optional[str] = None, queue: Optional[str] = None) -> None:
    """Run the sync worker until cancelled."""
    config = get_config()
    queue = queue or config.temporal_queue
    client = await get_temporal_client(temporal_host)

    worker = create_worker(client, queue)
    logger.info(f"--- Catalog sync worker starting on queue {queue} ---")
    await worker.run()


async def start_sync_workflow(store_id: str, force: bool = False, temporal_host: Optional[str] = None) -> str:
    """Submit a sync workflow and return its workflow id."""
    config = get_config()
    client = await get_temporal_client(temporal_host)
    handle = await client.start_workflow(
        CatalogSyncWorkflow.run,
        args=[store_id, force],
        id=f"catalog-sync-{store_id}",
        task_queue=config.temporal_queue,
    )
    logger.info(f"Started workflow {handle.id}")
    return handle.id
