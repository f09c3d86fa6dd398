"""
Job control for store syncs.

``JobController`` starts each sync as a supervised asyncio task, keeps one
``SyncJob`` record per job in a ``JobStore`` and writes the outcome
(including any error) back to that record. Only one job per store runs at
a time; starting a sync for a store that is already syncing returns the
running job's id.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from ..core.pool import CancellationToken
from ..errors import SyncCancelled
from ..models import JobStatus, SyncJob, SyncState

logger = logging.getLogger(__name__)

# (store_id, force, cancel_token, listener) -> result
SyncRunner = Callable[..., Awaitable[Any]]


@dataclass
class _JobHandle:
    job: SyncJob
    token: CancellationToken
    task: Optional[asyncio.Task] = None


class JobStore:
    """Job records keyed by job id, plus the latest job of every store."""

    def __init__(self):
        self._jobs: Dict[str, _JobHandle] = {}
        self._latest: Dict[str, str] = {}

    def add(self, handle: _JobHandle) -> None:
        self._jobs[handle.job.id] = handle
        self._latest[handle.job.store_id] = handle.job.id

    def get(self, job_id: str) -> Optional[_JobHandle]:
        return self._jobs.get(job_id)

    def latest_for_store(self, store_id: str) -> Optional[_JobHandle]:
        job_id = self._latest.get(store_id)
        return self._jobs.get(job_id) if job_id else None

    def __len__(self) -> int:
        return len(self._jobs)


class JobController:
    """Start, observe, cancel and await store syncs.

    Args:
        runner: Coroutine function running one sync. Called as
            ``runner(store_id, force=..., cancel_token=..., listener=...)``.
        store: Job store, a fresh one by default.
    """

    def __init__(self, runner: SyncRunner, store: Optional[JobStore] = None):
        self._runner = runner
        self.jobs = store or JobStore()
        self._seq = itertools.count(1)

    def start_sync(self, store_id: str, force: bool = False) -> str:
        """Schedule a sync and return its job id. Must be called from a running loop."""
        current = self.jobs.latest_for_store(store_id)
        if current is not None and current.job.is_active:
            logger.info(f"Sync already in progress for {store_id} ({current.job.id})")
            return current.job.id

        job_id = f"sync_{store_id}_{int(time.time() * 1000)}_{next(self._seq)}"
        job = SyncJob(id=job_id, store_id=store_id, force=force)
        handle = _JobHandle(job=job, token=CancellationToken())
        self.jobs.add(handle)
        handle.task = asyncio.create_task(self._supervise(handle), name=job.id)
        logger.info(f"Sync job {job.id} queued")
        return job.id

    def get_status(self, store_id: str) -> Optional[Dict[str, Any]]:
        """Status of the store's latest job, or None if it never synced."""
        handle = self.jobs.latest_for_store(store_id)
        if handle is None:
            return None
        job = handle.job
        return {
            "jobId": job.id,
            "status": job.status.value,
            "state": job.state.value,
            "progress": job.progress,
            "total": job.total,
            "error": job.error,
        }

    def cancel(self, store_id: str, reason: str = "Cancelled by user") -> bool:
        """Request cooperative cancellation of the store's running job."""
        handle = self.jobs.latest_for_store(store_id)
        if handle is None or not handle.job.is_active:
            return False
        handle.token.cancel(reason)
        logger.info(f"Cancellation requested for {handle.job.id}: {reason}")
        return True

    async def wait(self, job_id: str) -> SyncJob:
        """Wait for a job to finish and return its final record."""
        handle = self.jobs.get(job_id)
        if handle is None:
            raise KeyError(job_id)
        if handle.task is not None:
            await asyncio.shield(handle.task)
        return handle.job

    def _listener(self, job: SyncJob) -> Callable[[SyncState, int, int], None]:
        def update(state: SyncState, processed: int, total: int) -> None:
            job.state = state
            job.progress = processed
            job.total = total

        return update

    async def _supervise(self, handle: _JobHandle) -> None:
        job = handle.job
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now(timezone.utc)
        try:
            await self._runner(
                job.store_id,
                force=job.force,
                cancel_token=handle.token,
                listener=self._listener(job),
            )
            job.status = JobStatus.COMPLETED
            logger.info(f"Sync job {job.id} completed: {job.progress}/{job.total}")
        except SyncCancelled as e:
            job.status = JobStatus.CANCELLED
            job.error = str(e)
            logger.info(f"Sync job {job.id} cancelled")
        except asyncio.CancelledError:
            job.status = JobStatus.CANCELLED
            job.error = "Task cancelled"
            raise
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error = str(e)
            logger.exception(f"Sync job {job.id} failed")
        finally:
            job.finished_at = datetime.now(timezone.utc)
