"""
Progress broadcasting.

Subscribers listen on the store's channel (``<store>_scan``) for two
message shapes:

    {"type": "progress", "processed": 40, "total": 245}
    {"type": "status", "contextFetching": "inProgress"}

A failed publish is logged and never fails the sync.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class ProgressBroadcaster:
    """Base broadcaster: formats events and delegates delivery."""

    async def _send(self, channel: str, message: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def publish_progress(self, channel: str, processed: int, total: int) -> None:
        await self._send(channel, {"type": "progress", "processed": processed, "total": total})

    async def publish_status(self, channel: str, event: Dict[str, Any]) -> None:
        await self._send(channel, {"type": "status", **event})

    async def close(self) -> None:
        return None


class LoggingProgressBroadcaster(ProgressBroadcaster):
    """Writes events to the log. Used when no Redis URL is configured."""

    async def _send(self, channel: str, message: Dict[str, Any]) -> None:
        if message["type"] == "progress" and message["total"]:
            pct = message["processed"] / message["total"] * 100
            logger.info(f"[{channel}] progress {message['processed']}/{message['total']} ({pct:.1f}%)")
        else:
            logger.info(f"[{channel}] {message}")


class RedisProgressBroadcaster(ProgressBroadcaster):
    """Publishes events as JSON on Redis pub/sub."""

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self._client = client
        self._connection_lock = asyncio.Lock()

    async def _get_client(self) -> redis.Redis:
        if self._client is None:
            async with self._connection_lock:
                if self._client is None:
                    self._client = redis.from_url(
                        self.redis_url,
                        encoding="utf-8",
                        decode_responses=True,
                        socket_connect_timeout=5,
                        socket_timeout=5,
                    )
        return self._client

    async def _send(self, channel: str, message: Dict[str, Any]) -> None:
        try:
            client = await self._get_client()
            await client.publish(channel, json.dumps(message))
        except RedisError as e:
            logger.warning(f"Progress publish to {channel} failed: {e}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def create_broadcaster(redis_url: str = "") -> ProgressBroadcaster:
    if redis_url:
        return RedisProgressBroadcaster(redis_url)
    return LoggingProgressBroadcaster()
