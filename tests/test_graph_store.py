"""
Tests for Neo4jGraphStore against a mocked async driver.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from catalogsync.config import Neo4jConfig
from catalogsync.graph.store import SAVE_PRODUCTS, Neo4jGraphStore
from catalogsync.models import Category, Product, StoreRef, StoreStatus, Variant


class FakeRecord:
    def __init__(self, data):
        self._data = data

    def data(self):
        return self._data


class FakeResult:
    def __init__(self, rows=()):
        self._rows = [FakeRecord(r) for r in rows]

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for row in self._rows:
            yield row

    async def consume(self):
        return None


def make_driver(rows=(), run_error=None):
    """Driver whose sessions and transactions return ``rows``."""
    tx = MagicMock()
    tx.run = AsyncMock(side_effect=run_error, return_value=FakeResult(rows))
    tx.commit = AsyncMock()
    tx.rollback = AsyncMock()
    tx.closed.return_value = False

    session = MagicMock()
    session.begin_transaction = AsyncMock(return_value=tx)
    session.run = AsyncMock(return_value=FakeResult(rows))
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)

    driver = MagicMock()
    driver.session.return_value = session
    driver.close = AsyncMock()
    return driver, session, tx


def product(pid="p1"):
    return Product(
        id=pid,
        store_id="shop",
        title="Linen dress",
        category="dresses",
        demographics={"woman"},
        variants=[Variant(id=f"{pid}-v", title="M", price=49.0, size="M")],
    )


class TestWrites:
    """Test transactional writes."""

    @pytest.mark.asyncio
    async def test_save_batch_commits(self):
        driver, _, tx = make_driver(rows=[{"saved": 2}])
        store = Neo4jGraphStore(Neo4jConfig(database="catalog"), driver=driver)

        saved = await store.save_product_batch([product("p1"), product("p2")], "shop")

        assert saved == 2
        query = tx.run.call_args.args[0]
        params = tx.run.call_args.kwargs
        assert query == SAVE_PRODUCTS
        assert [p["productId"] for p in params["products"]] == ["p1", "p2"]
        assert all(p["storeId"] == "shop" for p in params["products"])
        tx.commit.assert_awaited_once()
        tx.rollback.assert_not_awaited()
        driver.session.assert_called_with(database="catalog")

    @pytest.mark.asyncio
    async def test_failed_batch_rolls_back(self):
        driver, _, tx = make_driver(run_error=RuntimeError("deadlock"))
        store = Neo4jGraphStore(Neo4jConfig(), driver=driver)

        with pytest.raises(RuntimeError, match="deadlock"):
            await store.save_product_batch([product()], "shop")

        tx.rollback.assert_awaited_once()
        tx.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upsert_store_links_application(self):
        driver, _, tx = make_driver()
        store = Neo4jGraphStore(Neo4jConfig(application_id="app1"), driver=driver)

        await store.upsert_application_and_store(StoreRef(id="shop", name="Shop"))

        params = tx.run.call_args.kwargs
        assert params["appId"] == "app1"
        assert params["storeId"] == "shop"
        assert params["status"] == StoreStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_categories_deduplicated(self):
        driver, _, tx = make_driver()
        store = Neo4jGraphStore(Neo4jConfig(), driver=driver)

        count = await store.upsert_categories([Category(title="Dresses"), Category(title=" dresses"), Category(title="Tops")])

        assert count == 2
        assert tx.run.call_args.kwargs["names"] == ["dresses", "tops"]

    @pytest.mark.asyncio
    async def test_no_categories_no_write(self):
        driver, session, _ = make_driver()
        store = Neo4jGraphStore(Neo4jConfig(), driver=driver)

        assert await store.upsert_categories([]) == 0
        session.begin_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_status_update(self):
        driver, _, tx = make_driver()
        store = Neo4jGraphStore(Neo4jConfig(), driver=driver)

        await store.update_store_status("shop", StoreStatus.ACTIVE, touch_last_sync=True)

        params = tx.run.call_args.kwargs
        assert params["status"] == StoreStatus.ACTIVE.value
        assert params["touchLastSync"] is True


class TestReads:
    """Test read queries."""

    @pytest.mark.asyncio
    async def test_existing_ids(self):
        driver, session, _ = make_driver(rows=[{"id": "p1"}, {"id": 7}])
        store = Neo4jGraphStore(Neo4jConfig(), driver=driver)

        existing = await store.get_existing_product_ids("shop", ["p1", "7", "p9"])

        assert existing == {"p1", "7"}
        assert session.run.call_args.kwargs == {"storeId": "shop", "ids": ["p1", "7", "p9"]}

    @pytest.mark.asyncio
    async def test_existing_ids_empty_input(self):
        driver, session, _ = make_driver()
        store = Neo4jGraphStore(Neo4jConfig(), driver=driver)

        assert await store.get_existing_product_ids("shop", []) == set()
        session.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_categories(self):
        driver, _, _ = make_driver(rows=[{"name": "dresses"}, {"name": None}, {"name": "tops"}])
        store = Neo4jGraphStore(Neo4jConfig(), driver=driver)

        assert await store.fetch_store_categories("shop") == ["dresses", "tops"]

    @pytest.mark.asyncio
    async def test_ensure_schema_runs_every_statement(self):
        driver, session, _ = make_driver()
        store = Neo4jGraphStore(Neo4jConfig(), driver=driver)

        await store.ensure_schema()
        await store.close()

        assert session.run.await_count >= 5
        driver.close.assert_awaited_once()
