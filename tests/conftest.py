"""
Shared fixtures and in-memory fakes for the sync pipeline.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import pytest

from catalogsync.config import PipelineConfig
from catalogsync.errors import AdapterError
from catalogsync.models import Category, Product, ShopMetadata, Variant
from catalogsync.providers.base import ProviderAdapter, RawPage
from catalogsync.stores import StoreConfig
from catalogsync.sync.progress import ProgressBroadcaster


def raw_pages(*sizes: int) -> List[List[Dict[str, Any]]]:
    """Raw records for pages of the given sizes, ids ``p<page>-<n>``."""
    return [
        [{"id": f"p{page}-{n}", "title": f"Dress {page}-{n}"} for n in range(size)]
        for page, size in enumerate(sizes)
    ]


class ListAdapter(ProviderAdapter):
    """Adapter serving pre-built pages; cursor is ``{"page": n}``."""

    provider_type = "fake"

    def __init__(self, store, pages, *, pipeline=None, fail_at: Optional[int] = None):
        super().__init__(store, pipeline=pipeline)
        self.pages = pages
        self.fail_at = fail_at
        self.fetched_cursors: List[Optional[dict]] = []

    async def _fetch_raw_page(self, cursor):
        index = cursor["page"] if cursor else 0
        self.fetched_cursors.append(cursor)
        if self.fail_at == index:
            raise AdapterError("401 credentials rejected", status_code=401, provider="fake")
        has_more = index + 1 < len(self.pages)
        return RawPage(
            items=self.pages[index],
            next_cursor={"page": index + 1} if has_more else None,
            has_more=has_more,
        )

    def skip_reason(self, raw):
        return None if raw.get("available", True) else "out_of_stock"

    def normalize(self, raw):
        return Product(
            id=raw["id"],
            store_id=self.store.id,
            title=raw["title"],
            description=raw.get("description", "A flowing summer dress"),
            collections=raw.get("collections", []),
            variants=[Variant(id=f"{raw['id']}-v", title="M", price=49.0)],
        )

    async def fetch_category_tree(self):
        return [Category(title="Dresses"), Category(title="Tops")]

    async def get_shop_metadata(self):
        return ShopMetadata(currency="EUR", name="Test Shop")


class FakeAI:
    """OpenAI stand-in returning fixed classifications."""

    def __init__(self, fail_classify: bool = False, fail_embed: bool = False):
        self.fail_classify = fail_classify
        self.fail_embed = fail_embed
        self.embed_calls: List[str] = []
        self.suggestion_calls: List[str] = []

    async def classify_properties(self, text, categories):
        if self.fail_classify:
            raise RuntimeError("model unavailable")
        return {
            "product": "maxi dress",
            "characteristics": "cotton, long",
            "color": "red",
            "demographic": "woman",
            "category": "dresses",
        }

    async def embed(self, text):
        self.embed_calls.append(text)
        if self.fail_embed:
            raise RuntimeError("embedding quota")
        return [float(len(text)), 1.0]

    async def generate_suggestions(self, categories_list):
        self.suggestion_calls.append(categories_list)
        return ["Show me dresses", "Summer tops", "Something for a wedding"]

    async def classify_style(self, text, profile):
        return {"body": ["hourglass"], "personality": ["romantic"], "chromatic": ["summer"]}


class FakeGraph:
    """In-memory graph store."""

    def __init__(self):
        self.products: Dict[str, Dict[str, Any]] = {}
        self.stores: Dict[str, Any] = {}
        self.categories: List[str] = []
        self.statuses: List[tuple] = []
        self.context: Dict[str, Any] = {}
        self.need_update: set = set()
        self.batch_calls: List[List[str]] = []
        # (products) -> exception to raise, or None
        self.fail_when: Optional[Callable[[List[Product]], Optional[Exception]]] = None

    async def upsert_application_and_store(self, store):
        self.stores[store.id] = store

    async def upsert_categories(self, categories):
        self.categories = sorted({c.key for c in categories})
        return len(self.categories)

    async def update_store_status(self, store_id, status, *, touch_last_sync=False):
        self.statuses.append((store_id, status, touch_last_sync))

    async def fetch_store_categories(self, store_id):
        return sorted({r["category"] for r in self.products.values() if r["storeId"] == store_id})

    async def save_store_context(self, store_id, categories, suggestions):
        self.context[store_id] = {"categories": categories, "suggestions": suggestions}

    async def get_existing_product_ids(self, store_id, candidate_ids):
        return {i for i in candidate_ids if i in self.products and i not in self.need_update}

    async def save_product_batch(self, products, store_id):
        self.batch_calls.append([p.id for p in products])
        if self.fail_when is not None:
            error = self.fail_when(products)
            if error is not None:
                raise error
        for product in products:
            self.products[product.id] = product.to_record()
        return len(products)

    async def close(self):
        return None


class RecordingBroadcaster(ProgressBroadcaster):
    def __init__(self):
        self.messages: List[tuple] = []

    async def _send(self, channel, message):
        self.messages.append((channel, message))

    @property
    def progress(self):
        return [(m["processed"], m["total"]) for _, m in self.messages if m["type"] == "progress"]


@pytest.fixture
def store():
    return StoreConfig(id="teststore", provider="fake", name="Test Store", categories=["Dresses", "Tops"])


@pytest.fixture
def pipeline():
    return PipelineConfig(
        http_base_delay=0.0,
        ai_base_delay=0.0,
        transaction_base_delay=0.0,
        http_attempts=3,
        transaction_attempts=3,
    )
