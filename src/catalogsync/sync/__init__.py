"""
Store sync: orchestration, checkpoints, progress and job control.
"""

from .checkpoint import CheckpointManager, CheckpointState
from .jobs import JobController, JobStore
from .orchestrator import SyncOrchestrator, SyncResult
from .progress import (
    LoggingProgressBroadcaster,
    ProgressBroadcaster,
    RedisProgressBroadcaster,
    create_broadcaster,
)
from .run import SyncServices, build_orchestrator, run_sync

__all__ = [
    "CheckpointManager",
    "CheckpointState",
    "JobController",
    "JobStore",
    "SyncOrchestrator",
    "SyncResult",
    "ProgressBroadcaster",
    "LoggingProgressBroadcaster",
    "RedisProgressBroadcaster",
    "create_broadcaster",
    "SyncServices",
    "build_orchestrator",
    "run_sync",
]
