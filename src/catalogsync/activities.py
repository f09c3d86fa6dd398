"""Temporal activities for catalog sync.

Activities wrap one full store sync so Temporal can retry, time out and
monitor it. Progress is reported through activity heartbeats.
"""

from __future__ import annotations

import logging
from typing import Any

from temporalio import activity

from .models import SyncState
from .sync.run import run_sync

logger = logging.getLogger(__name__)


def _heartbeat(state: SyncState, processed: int, total: int) -> None:
    activity.heartbeat({"state": state.value, "processed": processed, "total": total})


@activity.defn
async def sync_store(params: dict[str, Any]) -> dict[str, Any]:
    """Activity to sync one store into the graph.

    Args:
        params: ``{"store_id": str, "force": bool, "resume": bool}``

    Returns:
        Summary with processed/seen counts and the final state
    """
    store_id = params["store_id"]
    logger.info(f"Syncing store {store_id}")

    result = await run_sync(
        store_id,
        force=params.get("force", False),
        resume=params.get("resume", True),
        listener=_heartbeat,
    )
    return {
        "store_id": result.store_id,
        "state": result.state.value,
        "count_processed": result.count_processed,
        "total_products_seen": result.total_products_seen,
        "pages": result.pages,
        "resumed": result.resumed,
    }
