"""
Neo4j graph store.

Node model:
    (Application)-[:HAS_STORE]->(Store)-[:HAS_PRODUCT]->(Product)
    (Product)-[:HAS_VARIANT]->(Variant)
    (Product)-[:HAS_CATEGORY]->(Category {name: lower-cased})
    (Product)-[:HAS_DEMOGRAPHIC]->(Demographic {name})

All writes are MERGE-based, so re-running a batch is idempotent.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from neo4j import AsyncDriver, AsyncGraphDatabase

from ..config import Neo4jConfig
from ..models import Category, Product, StoreRef, StoreStatus

logger = logging.getLogger(__name__)

SCHEMA = [
    "CREATE CONSTRAINT product_id IF NOT EXISTS FOR (p:Product) REQUIRE p.id IS UNIQUE",
    "CREATE CONSTRAINT variant_id IF NOT EXISTS FOR (v:Variant) REQUIRE v.id IS UNIQUE",
    "CREATE CONSTRAINT category_name IF NOT EXISTS FOR (c:Category) REQUIRE c.name IS UNIQUE",
    "CREATE CONSTRAINT demographic_name IF NOT EXISTS FOR (d:Demographic) REQUIRE d.name IS UNIQUE",
    "CREATE CONSTRAINT store_id IF NOT EXISTS FOR (s:Store) REQUIRE s.id IS UNIQUE",
    "CREATE INDEX product_store IF NOT EXISTS FOR (p:Product) ON (p.storeId)",
]

UPSERT_APPLICATION_AND_STORE = """
MERGE (app:Application {id: $appId})
SET app.name = $appName
MERGE (store:Store {id: $storeId})
ON CREATE SET store.status = $status
SET store.name = $storeName
MERGE (app)-[:HAS_STORE]->(store)
"""

UPSERT_CATEGORIES = """
UNWIND $names AS name
MERGE (:Category {name: name})
"""

EXISTING_PRODUCT_IDS = """
MATCH (p:Product)
WHERE p.storeId = $storeId AND p.id IN $ids
  AND (p.need_update IS NULL OR p.need_update <> true)
RETURN p.id AS id
"""

SAVE_PRODUCTS = """
UNWIND $products AS product
MERGE (p:Product {id: product.productId})
SET p += {
    storeId: product.storeId, title: product.title, description: product.description,
    descriptionSource: product.descriptionSource, content: product.content,
    handle: product.handle, vendor: product.vendor, status: product.status,
    sku: product.sku, currency: product.currency, category: product.category,
    product: product.product, characteristics: product.characteristics,
    styleCode: product.styleCode, styleBody: product.styleBody,
    stylePersonality: product.stylePersonality, styleChromatic: product.styleChromatic,
    is_neutral: product.isNeutral, neutral_whitelist: product.neutralWhitelist,
    color_vec: product.colorVec, image: product.image, images: product.images,
    sizes: product.sizes, color: product.color, colorEmbedding: product.colorEmbedding,
    titleEmbedding: product.titleEmbedding, contentEmbedding: product.contentEmbedding,
    productEmbedding: product.productEmbedding,
    characteristicsEmbedding: product.characteristicsEmbedding,
    categoryEmbedding: product.categoryEmbedding,
    styleCodeEmbedding: product.styleCodeEmbedding
}
SET p.updated_at = $now, p.need_update = false

WITH p, product
OPTIONAL MATCH (p)-[stale:HAS_VARIANT]->(old:Variant)
WHERE NOT old.id IN [v IN product.variants | v.id]
DELETE stale

WITH DISTINCT p, product
FOREACH (variant IN product.variants |
    MERGE (v:Variant {id: variant.id})
    SET v += {
        title: variant.title, price: variant.price, price_old: variant.compareAtPrice,
        size: variant.size, color: variant.color, sku: variant.sku,
        inventoryQuantity: variant.inventoryQuantity,
        sizeEmbedding: variant.sizeEmbedding, colorEmbedding: variant.colorEmbedding
    }
    MERGE (p)-[:HAS_VARIANT]->(v)
)
FOREACH (name IN product.categories |
    MERGE (c:Category {name: name})
    MERGE (p)-[:HAS_CATEGORY]->(c)
)
FOREACH (name IN product.demographics |
    MERGE (d:Demographic {name: name})
    MERGE (p)-[:HAS_DEMOGRAPHIC]->(d)
)

WITH p, product
MATCH (store:Store {id: product.storeId})
MERGE (store)-[:HAS_PRODUCT]->(p)
RETURN count(DISTINCT p) AS saved
"""

STORE_CATEGORIES = """
MATCH (:Store {id: $storeId})-[:HAS_PRODUCT]->(:Product)-[:HAS_CATEGORY]->(c:Category)
RETURN DISTINCT c.name AS name
ORDER BY name
"""

UPDATE_STORE_STATUS = """
MATCH (s:Store {id: $storeId})
SET s.status = $status
SET s.lastSync = CASE WHEN $touchLastSync THEN $now ELSE s.lastSync END
"""

SAVE_STORE_CONTEXT = """
MATCH (s:Store {id: $storeId})
SET s.contextCategories = $categories, s.suggestions = $suggestions, s.contextUpdatedAt = $now
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Neo4jGraphStore:
    """Destination graph store on the async Neo4j driver."""

    def __init__(self, config: Neo4jConfig, driver: Optional[AsyncDriver] = None):
        self.config = config
        self.driver = driver or AsyncGraphDatabase.driver(
            config.uri,
            auth=(config.user, config.password),
            max_connection_pool_size=50,
        )

    def _session(self):
        return self.driver.session(database=self.config.database)

    async def _write(self, query: str, **params) -> List[Dict[str, Any]]:
        """Run ``query`` in one explicit transaction; rolled back on any error."""
        async with self._session() as session:
            tx = await session.begin_transaction()
            try:
                result = await tx.run(query, **params)
                records = [record.data() async for record in result]
                await tx.commit()
                return records
            except BaseException:
                if not tx.closed():
                    await tx.rollback()
                raise

    async def _read(self, query: str, **params) -> List[Dict[str, Any]]:
        async with self._session() as session:
            result = await session.run(query, **params)
            return [record.data() async for record in result]

    async def ensure_schema(self) -> None:
        async with self._session() as session:
            for statement in SCHEMA:
                result = await session.run(statement)
                await result.consume()
        logger.info("Neo4j schema ensured")

    # ==================== STORE ====================

    async def upsert_application_and_store(self, store: StoreRef) -> None:
        await self._write(
            UPSERT_APPLICATION_AND_STORE,
            appId=self.config.application_id,
            appName=self.config.application_name,
            storeId=store.id,
            storeName=store.name,
            status=StoreStatus.PENDING.value,
        )
        logger.info(f"Store {store.id} linked to application {self.config.application_id}")

    async def upsert_categories(self, categories: Iterable[Category]) -> int:
        names = sorted({c.key for c in categories if c.key})
        if names:
            await self._write(UPSERT_CATEGORIES, names=names)
        return len(names)

    async def update_store_status(
        self, store_id: str, status: StoreStatus, *, touch_last_sync: bool = False
    ) -> None:
        await self._write(
            UPDATE_STORE_STATUS,
            storeId=store_id,
            status=status.value,
            touchLastSync=touch_last_sync,
            now=_now(),
        )

    async def fetch_store_categories(self, store_id: str) -> List[str]:
        records = await self._read(STORE_CATEGORIES, storeId=store_id)
        return [r["name"] for r in records if r.get("name")]

    async def save_store_context(self, store_id: str, categories: List[str], suggestions: List[str]) -> None:
        await self._write(
            SAVE_STORE_CONTEXT,
            storeId=store_id,
            categories=categories,
            suggestions=suggestions,
            now=_now(),
        )

    # ==================== PRODUCTS ====================

    async def get_existing_product_ids(self, store_id: str, candidate_ids: List[str]) -> Set[str]:
        """Ids already stored for this store, ignoring products flagged ``need_update``."""
        if not candidate_ids:
            return set()
        records = await self._read(EXISTING_PRODUCT_IDS, storeId=store_id, ids=list(candidate_ids))
        return {str(r["id"]) for r in records}

    async def save_product_batch(self, products: List[Product], store_id: str) -> int:
        """Upsert one sub-batch in a single transaction."""
        payload = [p.to_record() | {"storeId": store_id} for p in products]
        records = await self._write(SAVE_PRODUCTS, products=payload, now=_now())
        return records[0]["saved"] if records else 0

    async def close(self) -> None:
        await self.driver.close()
