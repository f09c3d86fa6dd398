"""
On-disk sync checkpoints.

One JSON file per store, ``.sync-progress-<store>.json``, rewritten after
every persisted page and removed when the sync completes:

    {"version": 1, "startedAt": 1718000000000, "countProcessed": 40,
     "totalProductsSeen": 45, "count": 245, "providerState": {...},
     "persistedAhead": []}

``startedAt`` is epoch milliseconds. Records older than the staleness
threshold (24h, measured from ``startedAt``) are discarded.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

CHECKPOINT_VERSION = 1


class CheckpointState(BaseModel):
    """Resume state for one store sync."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = CHECKPOINT_VERSION
    started_at: float = Field(alias="startedAt")
    count_processed: int = Field(default=0, alias="countProcessed")
    total_products_seen: int = Field(default=0, alias="totalProductsSeen")
    count: int = 0
    provider_state: Optional[Dict[str, Any]] = Field(default=None, alias="providerState")
    # Ids already saved and counted on pages past the cursor
    persisted_ahead: List[str] = Field(default_factory=list, alias="persistedAhead")


def _migrate(data: Dict[str, Any]) -> Dict[str, Any]:
    """Upgrade an older record to the current version."""
    if "version" not in data:
        # Unversioned records predate the field; their layout is version 1
        data = {**data, "version": 1}
    return data


class CheckpointManager:
    """Loads, saves and clears the checkpoint file of one store."""

    def __init__(
        self,
        store_id: str,
        directory: str | Path = ".",
        max_age_hours: float = 24.0,
        clock: Callable[[], float] = time.time,
    ):
        self.store_id = store_id
        self.directory = Path(directory)
        self.max_age_hours = max_age_hours
        self._clock = clock

    @property
    def path(self) -> Path:
        safe = re.sub(r"[^a-z0-9]", "_", self.store_id, flags=re.IGNORECASE)
        return self.directory / f".sync-progress-{safe}.json"

    def now_ms(self) -> float:
        return self._clock() * 1000

    def new_state(self) -> CheckpointState:
        return CheckpointState(started_at=self.now_ms())

    def load(self) -> Optional[CheckpointState]:
        """Return the saved state, or None when absent, stale or unreadable."""
        if not self.path.exists():
            return None

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[Resume] Unreadable checkpoint {self.path.name}, starting fresh: {e}")
            self.clear()
            return None

        if isinstance(data, dict):
            data = _migrate(data)
        version = data.get("version") if isinstance(data, dict) else None
        if not isinstance(version, int) or isinstance(version, bool):
            logger.warning(f"[Resume] Malformed checkpoint {self.path.name}, starting fresh")
            self.clear()
            return None

        if version > CHECKPOINT_VERSION:
            logger.warning(
                f"[Resume] Checkpoint {self.path.name} has version {version} "
                f"(supported: {CHECKPOINT_VERSION}), ignoring it"
            )
            return None

        try:
            state = CheckpointState.model_validate(data)
        except ValidationError as e:
            logger.warning(f"[Resume] Invalid checkpoint {self.path.name}, starting fresh: {e}")
            self.clear()
            return None

        age_hours = (self.now_ms() - state.started_at) / (1000 * 60 * 60)
        if age_hours > self.max_age_hours:
            logger.info(f"[Resume] Found old checkpoint ({age_hours:.0f}h ago), ignoring")
            self.clear()
            return None

        return state

    def save(self, state: CheckpointState) -> None:
        """Atomically replace the checkpoint file."""
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = state.model_dump(by_alias=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".sync-progress-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
