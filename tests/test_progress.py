"""
Tests for progress broadcasters.
"""

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from catalogsync.sync.progress import (
    LoggingProgressBroadcaster,
    RedisProgressBroadcaster,
    create_broadcaster,
)


class TestRedisProgressBroadcaster:
    @pytest.mark.asyncio
    async def test_publishes_progress_json(self):
        client = AsyncMock()
        broadcaster = RedisProgressBroadcaster("redis://localhost", client=client)

        await broadcaster.publish_progress("shop_scan", 40, 245)

        channel, payload = client.publish.call_args.args
        assert channel == "shop_scan"
        assert json.loads(payload) == {"type": "progress", "processed": 40, "total": 245}

    @pytest.mark.asyncio
    async def test_publishes_status_event(self):
        client = AsyncMock()
        broadcaster = RedisProgressBroadcaster("redis://localhost", client=client)

        await broadcaster.publish_status("shop_scan", {"contextFetching": "done"})

        payload = json.loads(client.publish.call_args.args[1])
        assert payload == {"type": "status", "contextFetching": "done"}

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_raise(self):
        client = AsyncMock()
        client.publish.side_effect = RedisConnectionError("down")
        broadcaster = RedisProgressBroadcaster("redis://localhost", client=client)

        await broadcaster.publish_progress("shop_scan", 1, 2)

    @pytest.mark.asyncio
    async def test_close(self):
        client = AsyncMock()
        broadcaster = RedisProgressBroadcaster("redis://localhost", client=client)

        await broadcaster.close()

        client.aclose.assert_awaited_once()


class TestCreateBroadcaster:
    def test_logging_without_url(self):
        assert isinstance(create_broadcaster(""), LoggingProgressBroadcaster)

    def test_redis_with_url(self):
        assert isinstance(create_broadcaster("redis://localhost:6379"), RedisProgressBroadcaster)

    @pytest.mark.asyncio
    async def test_logging_broadcaster_accepts_events(self):
        broadcaster = LoggingProgressBroadcaster()

        await broadcaster.publish_progress("shop_scan", 0, 0)
        await broadcaster.publish_status("shop_scan", {"contextFetching": "inProgress"})
