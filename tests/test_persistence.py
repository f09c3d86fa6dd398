"""
Tests for PersistenceLayer: sub-batching, lock-conflict retries, skipping.
"""

import asyncio

import pytest

from catalogsync.config import PipelineConfig
from catalogsync.core.pool import CancellationToken
from catalogsync.errors import LockConflictError
from catalogsync.graph import PersistenceLayer
from catalogsync.models import Product

from conftest import FakeGraph


def products(n, prefix="p"):
    return [Product(id=f"{prefix}{i}", store_id="teststore", title=f"Item {i}") for i in range(n)]


class TestSplit:
    def test_sub_batches_of_25(self):
        layer = PersistenceLayer(FakeGraph(), PipelineConfig())

        batches = layer.split(products(60))

        assert [len(b) for b in batches] == [25, 25, 10]


class TestSavePage:
    @pytest.mark.asyncio
    async def test_saves_all_batches(self, pipeline):
        graph = FakeGraph()

        result = await PersistenceLayer(graph, pipeline).save_page(products(60), "teststore")

        assert result.complete
        assert len(result.saved_ids) == 60
        assert len(graph.batch_calls) == 3

    @pytest.mark.asyncio
    async def test_lock_conflict_retried_until_success(self, pipeline):
        graph = FakeGraph()
        attempts = []

        def deadlock_twice(batch):
            attempts.append(len(batch))
            if len(attempts) <= 2:
                return LockConflictError("DeadlockDetected")
            return None

        graph.fail_when = deadlock_twice

        result = await PersistenceLayer(graph, pipeline).save_page(products(10), "teststore")

        assert result.complete
        assert len(attempts) == 3
        assert len(graph.products) == 10

    @pytest.mark.asyncio
    async def test_permanent_failure_skips_only_that_batch(self, pipeline):
        graph = FakeGraph()
        graph.fail_when = lambda batch: RuntimeError("constraint") if batch[0].id == "p25" else None

        result = await PersistenceLayer(graph, pipeline).save_page(products(60), "teststore")

        assert not result.complete
        assert result.skipped_batches == 1
        assert len(result.failed_ids) == 25
        assert len(result.saved_ids) == 35
        assert "p24" in graph.products and "p25" not in graph.products and "p50" in graph.products

    @pytest.mark.asyncio
    async def test_exhausted_lock_conflicts_skip_batch(self, pipeline):
        graph = FakeGraph()
        graph.fail_when = lambda batch: LockConflictError("DeadlockDetected")

        result = await PersistenceLayer(graph, pipeline).save_page(products(5), "teststore")

        assert result.skipped_batches == 1
        assert len(graph.batch_calls) == pipeline.transaction_attempts

    @pytest.mark.asyncio
    async def test_at_most_two_transactions_in_flight(self, pipeline):
        in_flight = 0
        peak = 0

        class SlowGraph(FakeGraph):
            async def save_product_batch(self, batch, store_id):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.001)
                in_flight -= 1
                return len(batch)

        await PersistenceLayer(SlowGraph(), pipeline).save_page(products(125), "teststore")

        assert peak == 2

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, pipeline):
        token = CancellationToken()
        token.cancel()
        graph = FakeGraph()

        result = await PersistenceLayer(graph, pipeline).save_page(products(30), "teststore", token)

        assert result.cancelled
        assert graph.batch_calls == []

    @pytest.mark.asyncio
    async def test_empty_page(self, pipeline):
        result = await PersistenceLayer(FakeGraph(), pipeline).save_page([], "teststore")

        assert result.complete
        assert result.saved_ids == []
