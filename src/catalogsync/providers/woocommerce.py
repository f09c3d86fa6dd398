"""
WooCommerce adapter.

REST API v3 with page-number pagination. ``X-WP-TotalPages`` drives
termination when present; otherwise an empty page ends the sync.

Cursor: ``{"page": int}``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..errors import AdapterError, AuthenticationError
from ..models import Category, Product, ShopMetadata, Variant
from .base import Cursor, ProviderAdapter, RawPage, to_price
from .registry import provider_registry

logger = logging.getLogger(__name__)

SIZE_ATTRIBUTES = {"size", "mărime", "marime", "pa_size"}
COLOR_ATTRIBUTES = {"color", "colour", "culoare", "pa_color"}


def _int_header(response, name: str) -> Optional[int]:
    value = response.headers.get(name)
    return int(value) if value and value.isdigit() else None


@provider_registry.register("woocommerce")
class WoocommerceAdapter(ProviderAdapter):
    """WooCommerce store via ``/wp-json/wc/v3``.

    Credentials: ``base_url``, ``consumer_key``, ``consumer_secret``.
    """

    def __init__(self, store, **kwargs):
        super().__init__(store, **kwargs)
        creds = store.credentials
        self.base_url = (creds.get("base_url") or f"https://{store.id}").rstrip("/")
        self.api_url = f"{self.base_url}/wp-json/wc/v3"
        self.auth = (creds.get("consumer_key", ""), creds.get("consumer_secret", ""))

    async def _get(self, path: str, **params):
        return await self.request("GET", f"{self.api_url}{path}", params=params, auth=self.auth)

    # ==================== PAGES ====================

    async def _fetch_raw_page(self, cursor: Cursor) -> RawPage:
        page = int((cursor or {}).get("page", 1))
        response = await self._get(
            "/products",
            page=page,
            per_page=self.page_size,
            status="publish",
            orderby="id",
            order="asc",
        )
        items: List[Dict[str, Any]] = response.json() or []
        total = _int_header(response, "X-WP-Total")
        total_pages = _int_header(response, "X-WP-TotalPages")

        for item in items:
            if item.get("type") == "variable" and self.skip_reason(item) is None:
                item["_variations"] = await self._fetch_variations(item["id"])

        if total_pages is not None:
            has_more = page < total_pages
        else:
            has_more = bool(items)

        return RawPage(
            items=items,
            next_cursor={"page": page + 1} if has_more else None,
            has_more=has_more,
            total_hint=total,
        )

    async def _fetch_variations(self, product_id: int) -> List[Dict[str, Any]]:
        response = await self._get(f"/products/{product_id}/variations", per_page=100)
        return response.json() or []

    # ==================== NORMALIZATION ====================

    def skip_reason(self, raw: Dict[str, Any]) -> Optional[str]:
        if raw.get("status") != "publish":
            return "unpublished"
        if raw.get("stock_status") != "instock" or raw.get("purchasable") is False:
            return "out_of_stock"
        if to_price(raw.get("price")) <= 0:
            return "no_price"
        return None

    @staticmethod
    def _attributes(record: Dict[str, Any]) -> Dict[str, str]:
        values = {}
        for attr in record.get("attributes") or []:
            name = str(attr.get("name") or attr.get("slug") or "").strip().lower()
            option = attr.get("option") or next(iter(attr.get("options") or []), None)
            if name and option:
                values[name] = option
        return values

    def _variant(self, record: Dict[str, Any], title: str) -> Variant:
        attrs = self._attributes(record)
        regular = to_price(record.get("regular_price"))
        price = to_price(record.get("price")) or regular
        return Variant(
            id=str(record["id"]),
            title=" / ".join(attrs.values()) or title,
            price=price,
            compare_at_price=regular if regular > price else None,
            sku=record.get("sku") or None,
            size=next((v for k, v in attrs.items() if k in SIZE_ATTRIBUTES), None),
            color=next((v for k, v in attrs.items() if k in COLOR_ATTRIBUTES), None),
            inventory_quantity=int(record.get("stock_quantity") or 0),
        )

    def normalize(self, raw: Dict[str, Any]) -> Product:
        title = raw.get("name") or ""
        variations = raw.get("_variations")
        if variations:
            variants = [
                self._variant(v, title)
                for v in variations
                if v.get("stock_status") == "instock" and to_price(v.get("price")) > 0
            ]
        else:
            variants = [self._variant(raw, title)]

        categories = [c["name"] for c in raw.get("categories") or [] if c.get("name")]
        return Product(
            id=str(raw["id"]),
            store_id=self.store.id,
            title=title,
            description=raw.get("description") or raw.get("short_description") or "",
            handle=raw.get("slug"),
            product_type=categories[0] if categories else "",
            tags=[t["name"] for t in raw.get("tags") or [] if t.get("name")],
            sku=raw.get("sku") or None,
            images=[img["src"] for img in raw.get("images") or [] if img.get("src")],
            variants=variants,
            collections=categories,
        )

    # ==================== CATALOG METADATA ====================

    async def fetch_category_tree(self) -> List[Category]:
        categories: List[Category] = []
        page = 1
        while True:
            response = await self._get("/products/categories", page=page, per_page=100)
            batch = response.json() or []
            categories.extend(
                Category(title=c["name"], id=str(c["id"]), handle=c.get("slug")) for c in batch
            )
            total_pages = _int_header(response, "X-WP-TotalPages")
            if not batch or (total_pages is not None and page >= total_pages):
                break
            page += 1
        logger.info(f"[woocommerce] {self.base_url}: {len(categories)} categories")
        return categories

    async def get_shop_metadata(self) -> ShopMetadata:
        if self.store.options.get("currency"):
            return ShopMetadata(currency=self.store.options["currency"], domain=self.base_url)
        try:
            response = await self._get("/settings/general/woocommerce_currency")
        except AuthenticationError:
            raise
        except AdapterError as e:
            logger.warning(f"[woocommerce] currency lookup failed ({e}), using USD")
            return ShopMetadata(currency="USD", domain=self.base_url)
        return ShopMetadata(currency=response.json().get("value") or "USD", domain=self.base_url)
