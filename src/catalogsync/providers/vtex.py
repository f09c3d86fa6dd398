"""
VTEX adapter.

VTEX has no single paginated listing that includes availability, so one
page is built in two steps:

1. A window of product ids from ``GetProductAndSkuIds?_from=&_to=``
2. Details for those ids from the search API, in chunks of 25

The catalog total comes from the ``REST-Content-Range`` header of a one-item
probe. When it is known the window walks backwards from the newest
products; otherwise it walks forwards and an empty window ends the sync.

Cursor: ``{"position": int, "direction": "backwards"|"forwards", "total": int|None}``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from ..errors import AdapterError, AuthenticationError
from ..models import Category, Product, ShopMetadata, Variant
from .base import Cursor, ProviderAdapter, RawPage, to_price
from .registry import provider_registry

logger = logging.getLogger(__name__)

ID_WINDOW = 250
DETAIL_CHUNK = 25
DETAIL_DELAY = 0.3

COLOR_FIELDS = ("Color", "Cor", "Culoare")
SIZE_FIELDS = ("Size", "Tamanho", "Marime")

DEFAULT_DEMOGRAPHIC_PATHS = {"/femei/": "woman", "/bărbați/": "man"}

_RANGE_TOTAL = re.compile(r"/(\d+)\s*$")


def _first(value: Any) -> Optional[str]:
    if isinstance(value, list):
        return str(value[0]) if value else None
    return str(value) if value not in (None, "") else None


def _offers(item: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [seller.get("commertialOffer") or {} for seller in item.get("sellers") or []]


def _item_available(item: Dict[str, Any]) -> bool:
    return any(offer.get("IsAvailable") for offer in _offers(item))


def _strip_path(path: str) -> str:
    return path.strip("/")


@provider_registry.register("vtex")
class VtexAdapter(ProviderAdapter):
    """VTEX catalog via the Catalog System API.

    Credentials: ``account_name``, ``app_key``, ``app_token`` and optional
    ``environment`` (default ``vtexcommercestable``).
    """

    def __init__(self, store, **kwargs):
        super().__init__(store, **kwargs)
        creds = store.credentials
        self.account_name = creds.get("account_name") or store.id.split(".")[0]
        self.environment = creds.get("environment") or "vtexcommercestable"
        self.app_key = creds.get("app_key", "")
        self.app_token = creds.get("app_token", "")
        self.base_url = f"https://{self.account_name}.{self.environment}.com.br"

        options = store.options
        self.id_window = int(options.get("id_window", ID_WINDOW))
        self.detail_chunk = int(options.get("detail_chunk", DETAIL_CHUNK))
        self.detail_delay = float(options.get("detail_delay", DETAIL_DELAY))
        self.demographic_paths: Dict[str, str] = options.get(
            "demographic_paths", DEFAULT_DEMOGRAPHIC_PATHS
        )
        self.stats.update({"out_of_stock": 0, "no_price": 0})

    def default_headers(self) -> Dict[str, str]:
        headers = super().default_headers()
        headers["X-VTEX-API-AppKey"] = self.app_key
        headers["X-VTEX-API-AppToken"] = self.app_token
        return headers

    async def _get(self, path: str, **kwargs):
        return await self.request("GET", f"{self.base_url}{path}", headers=self.default_headers(), **kwargs)

    # ==================== PAGINATION ====================

    async def _initial_cursor(self) -> Dict[str, Any]:
        """Probe the catalog total and choose the walk direction."""
        try:
            response = await self._get(
                "/api/catalog_system/pvt/products/GetProductAndSkuIds",
                params={"_from": 1, "_to": 1},
            )
        except AuthenticationError:
            raise
        except AdapterError as e:
            logger.warning(f"[vtex] {self.account_name}: total probe failed ({e}), walking forwards")
            return {"position": 1, "direction": "forwards", "total": None}

        header = response.headers.get("rest-content-range") or response.headers.get("content-range") or ""
        match = _RANGE_TOTAL.search(header)
        total = int(match.group(1)) if match else None

        # range.total in the body is the batch size, never the catalog total
        if total and total > 1:
            logger.info(f"[vtex] {self.account_name}: {total} products, starting from newest")
            return {"position": total, "direction": "backwards", "total": total}

        logger.info(f"[vtex] {self.account_name}: total unknown, fetching until an empty window")
        return {"position": 1, "direction": "forwards", "total": None}

    def _window(self, cursor: Dict[str, Any]) -> tuple[int, int, Optional[Dict[str, Any]]]:
        """Return (from, to, next_cursor) for the id window at ``cursor``."""
        position = int(cursor["position"])
        total = cursor.get("total")

        if cursor["direction"] == "backwards":
            start = max(1, position - self.id_window + 1)
            end = position
            following = start - 1
            next_cursor = {**cursor, "position": following} if following >= 1 else None
        else:
            start = position
            end = position + self.id_window - 1
            if total:
                end = min(end, total)
            following = end + 1
            next_cursor = None if total and following > total else {**cursor, "position": following}
        return start, end, next_cursor

    async def _fetch_raw_page(self, cursor: Cursor) -> RawPage:
        if cursor is None:
            cursor = await self._initial_cursor()

        start, end, next_cursor = self._window(cursor)
        response = await self._get(
            "/api/catalog_system/pvt/products/GetProductAndSkuIds",
            params={"_from": start, "_to": end},
        )
        body = response.json()
        data = body.get("data", body) if isinstance(body, dict) else {}
        product_ids = [key for key in data if str(key).isdigit()]

        if not product_ids:
            if cursor["direction"] == "forwards":
                return RawPage(items=[], has_more=False, total_hint=cursor.get("total"))
            # Gaps in the id range are possible; keep walking back
            return RawPage(items=[], next_cursor=next_cursor, has_more=next_cursor is not None,
                           total_hint=cursor.get("total"))

        logger.info(
            f"[vtex] {self.account_name}: fetching {len(product_ids)} products "
            f"({start}-{end} of {cursor.get('total') or '?'})"
        )
        items = await self._fetch_details(product_ids)

        return RawPage(
            items=items,
            next_cursor=next_cursor,
            has_more=next_cursor is not None,
            total_hint=cursor.get("total"),
        )

    async def _fetch_details(self, product_ids: List[str]) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        for i in range(0, len(product_ids), self.detail_chunk):
            chunk = product_ids[i : i + self.detail_chunk]
            fq = ",".join(f"productId:{pid}" for pid in chunk)
            response = await self._get("/api/catalog_system/pub/products/search", params={"fq": fq})
            items.extend(response.json() or [])
            if self.detail_delay and i + self.detail_chunk < len(product_ids):
                await asyncio.sleep(self.detail_delay)
        return items

    # ==================== NORMALIZATION ====================

    def skip_reason(self, raw: Dict[str, Any]) -> Optional[str]:
        offers = [offer for item in raw.get("items") or [] for offer in _offers(item)]
        if not any(offer.get("IsAvailable") for offer in offers):
            return "out_of_stock"
        if not any(to_price(offer.get("Price")) > 0 for offer in offers):
            return "no_price"
        return None

    def detect_demographics(self, raw: Dict[str, Any]) -> set[str]:
        """woman/man from the first category path prefix, else unisex."""
        categories = raw.get("categories") or []
        first = categories[0].lower() if categories else ""
        found = {demo for prefix, demo in self.demographic_paths.items() if first.startswith(prefix)}
        return found or {"unisex"}

    def _variant(self, item: Dict[str, Any]) -> Variant:
        sellers = item.get("sellers") or []
        seller = next(
            (s for s in sellers if (s.get("commertialOffer") or {}).get("IsAvailable")),
            sellers[0] if sellers else {},
        )
        offer = seller.get("commertialOffer") or {}
        reference = (item.get("referenceId") or [{}])[0].get("Value")

        return Variant(
            id=str(item.get("itemId")),
            title=item.get("name") or item.get("nameComplete") or "",
            price=to_price(offer.get("Price") or offer.get("ListPrice")),
            compare_at_price=to_price(offer.get("ListPrice") or offer.get("PriceWithoutDiscount")) or None,
            sku=reference or item.get("ean") or None,
            color=next((_first(item[f]) for f in COLOR_FIELDS if item.get(f)), None),
            size=next((_first(item[f]) for f in SIZE_FIELDS if item.get(f)), None),
            inventory_quantity=int(offer.get("AvailableQuantity") or 0),
        )

    def normalize(self, raw: Dict[str, Any]) -> Product:
        available = [item for item in raw.get("items") or [] if _item_available(item)]
        main = available[0] if available else (raw.get("items") or [{}])[0]

        tags = [
            value
            for source in (raw.get("productClusters"), raw.get("clusterHighlights"))
            for value in (source or {}).values()
            if isinstance(value, str)
        ]
        categories = raw.get("categories") or []
        collections = [_strip_path(c).split("/")[-1] for c in categories if _strip_path(c)]

        return Product(
            id=str(raw["productId"]),
            store_id=self.store.id,
            title=raw.get("productName") or "",
            description=raw.get("description") or raw.get("metaTagDescription") or "",
            handle=raw.get("linkText"),
            vendor=raw.get("brand"),
            product_type=collections[-1] if collections else "",
            tags=tags,
            sku=raw.get("productReference") or None,
            images=[img["imageUrl"] for img in main.get("images") or [] if img.get("imageUrl")],
            variants=[self._variant(item) for item in available],
            collections=collections,
            demographics=self.detect_demographics(raw),
            extra={
                "brand_id": raw.get("brandId"),
                "category_id": raw.get("categoryId"),
                "link": raw.get("link"),
            },
        )

    # ==================== CATALOG METADATA ====================

    def _flatten(self, nodes: List[Dict[str, Any]], out: List[Category]) -> List[Category]:
        for node in nodes:
            handle = _strip_path(node.get("url") or "") or node["name"].lower().replace(" ", "-")
            out.append(Category(title=node["name"], id=str(node.get("id")), handle=handle))
            self._flatten(node.get("children") or [], out)
        return out

    async def fetch_category_tree(self) -> List[Category]:
        depth = int(self.store.options.get("category_depth", 3))
        response = await self._get(f"/api/catalog_system/pub/category/tree/{depth}")
        categories = self._flatten(response.json() or [], [])
        logger.info(f"[vtex] {self.account_name}: {len(categories)} categories")
        return categories

    async def get_shop_metadata(self) -> ShopMetadata:
        # No shop endpoint on VTEX; currency comes from store options
        return ShopMetadata(
            currency=self.store.options.get("currency", "RON"),
            name=self.account_name,
            domain=f"{self.account_name}.{self.environment}.com.br",
        )
