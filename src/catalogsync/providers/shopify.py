"""
Shopify adapter.

Products come from the GraphQL Admin API (``products(first, after)`` with
``pageInfo.endCursor``); collections and shop data from the REST Admin API.

Cursor: ``{"after": "<endCursor>"}``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from ..errors import RateLimitError, AdapterError
from ..models import Category, Product, ShopMetadata, Variant
from .base import Cursor, ProviderAdapter, RawPage, to_price
from .registry import provider_registry

logger = logging.getLogger(__name__)

API_VERSION = "2023-04"

PRODUCTS_QUERY = """
query getProducts($first: Int!, $after: String) {
  products(first: $first, after: $after, query: "status:active") {
    pageInfo { hasNextPage endCursor }
    edges {
      node {
        id title descriptionHtml handle vendor productType status tags publishedAt
        images(first: 10) { edges { node { src altText } } }
        variants(first: 100) {
          edges {
            node {
              id title price compareAtPrice sku inventoryQuantity availableForSale
              selectedOptions { name value }
            }
          }
        }
        collections(first: 10) { edges { node { id title handle } } }
      }
    }
  }
}
"""

SIZE_OPTIONS = {"size", "mărime", "marime", "talla", "größe"}
COLOR_OPTIONS = {"color", "colour", "culoare", "farbe"}


def _gid(value: str) -> str:
    """gid://shopify/Product/123 -> 123"""
    return str(value).rsplit("/", 1)[-1]


def _edges(connection: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [edge["node"] for edge in (connection or {}).get("edges", [])]


def _variant_purchasable(variant: Dict[str, Any]) -> bool:
    return bool(variant.get("availableForSale")) and to_price(variant.get("price")) > 0


@provider_registry.register("shopify")
class ShopifyAdapter(ProviderAdapter):
    """Shopify storefront via the Admin API.

    Credentials: ``shop_domain`` (defaults to the store id) and
    ``access_token``.
    """

    def __init__(self, store, **kwargs):
        super().__init__(store, **kwargs)
        self.shop_domain = store.credentials.get("shop_domain") or store.id
        self.access_token = store.credentials.get("access_token", "")
        self.api_version = store.options.get("api_version", API_VERSION)
        self.base_url = f"https://{self.shop_domain}/admin/api/{self.api_version}"

    def default_headers(self) -> Dict[str, str]:
        headers = super().default_headers()
        headers["X-Shopify-Access-Token"] = self.access_token
        return headers

    # ==================== PAGES ====================

    async def _graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.request(
            "POST",
            f"{self.base_url}/graphql.json",
            json={"query": query, "variables": variables},
            headers=self.default_headers(),
        )
        body = response.json()
        errors = body.get("errors")
        if errors:
            codes = {(e.get("extensions") or {}).get("code") for e in errors}
            if "THROTTLED" in codes:
                raise RateLimitError("GraphQL query throttled", provider=self.provider_type)
            raise AdapterError(f"GraphQL errors: {errors}", provider=self.provider_type)
        return body.get("data") or {}

    async def _fetch_raw_page(self, cursor: Cursor) -> RawPage:
        after = (cursor or {}).get("after")
        data = await self._graphql(PRODUCTS_QUERY, {"first": self.page_size, "after": after})

        products = data.get("products") or {}
        page_info = products.get("pageInfo") or {}
        has_more = bool(page_info.get("hasNextPage"))
        end_cursor = page_info.get("endCursor")

        return RawPage(
            items=_edges(products),
            next_cursor={"after": end_cursor} if has_more and end_cursor else None,
            has_more=has_more and bool(end_cursor),
        )

    def skip_reason(self, raw: Dict[str, Any]) -> Optional[str]:
        if not raw.get("publishedAt") or str(raw.get("status", "")).upper() != "ACTIVE":
            return "unpublished"
        variants = _edges(raw.get("variants"))
        if not any(to_price(v.get("price")) > 0 for v in variants):
            return "no_price"
        if not any(_variant_purchasable(v) for v in variants):
            return "out_of_stock"
        return None

    def normalize(self, raw: Dict[str, Any]) -> Product:
        variants = []
        for node in _edges(raw.get("variants")):
            if not _variant_purchasable(node):
                continue
            options = {o["name"].strip().lower(): o["value"] for o in node.get("selectedOptions") or []}
            size = next((v for k, v in options.items() if k in SIZE_OPTIONS), None)
            color = next((v for k, v in options.items() if k in COLOR_OPTIONS), None)
            variants.append(
                Variant(
                    id=_gid(node["id"]),
                    title=node.get("title") or "",
                    price=to_price(node.get("price")),
                    compare_at_price=to_price(node.get("compareAtPrice")) or None,
                    sku=node.get("sku") or None,
                    size=size,
                    color=color,
                    inventory_quantity=node.get("inventoryQuantity") or 0,
                )
            )

        return Product(
            id=_gid(raw["id"]),
            store_id=self.store.id,
            title=raw.get("title") or "",
            description=raw.get("descriptionHtml") or "",
            handle=raw.get("handle"),
            vendor=raw.get("vendor"),
            product_type=raw.get("productType") or "",
            status=str(raw.get("status", "active")).lower(),
            tags=[t for t in raw.get("tags") or [] if t],
            sku=next((v.sku for v in variants if v.sku), None),
            images=[img["src"] for img in _edges(raw.get("images")) if img.get("src")],
            variants=variants,
            collections=[c["title"] for c in _edges(raw.get("collections")) if c.get("title")],
        )

    # ==================== CATALOG METADATA ====================

    async def _list_collections(self, kind: str) -> List[Dict[str, Any]]:
        """Follow Link-header pagination for a REST collection endpoint."""
        url: Optional[str] = f"{self.base_url}/{kind}.json?limit=250"
        collections: List[Dict[str, Any]] = []
        while url:
            response = await self.request("GET", url, headers=self.default_headers())
            collections.extend(response.json().get(kind, []))
            url = response.links.get("next", {}).get("url")
        return collections

    async def fetch_category_tree(self) -> List[Category]:
        categories: Dict[str, Category] = {}
        for kind in ("custom_collections", "smart_collections"):
            for c in await self._list_collections(kind):
                category = Category(title=c["title"], id=str(c.get("id")), handle=c.get("handle"))
                categories.setdefault(category.key, category)
        logger.info(f"[shopify] {self.shop_domain}: {len(categories)} collections")
        return list(categories.values())

    async def get_shop_metadata(self) -> ShopMetadata:
        if self.store.options.get("currency"):
            return ShopMetadata(currency=self.store.options["currency"], domain=self.shop_domain)

        response = await self.request("GET", f"{self.base_url}/shop.json", headers=self.default_headers())
        shop = response.json().get("shop", {})
        return ShopMetadata(
            currency=shop.get("currency") or "USD",
            name=shop.get("name"),
            domain=shop.get("domain") or self.shop_domain,
        )

    # ==================== HOOKS ====================

    async def post_process(self, product: Product) -> Product:
        """Apply per-store description formatting.

        ``options.description_format = "text"`` strips the HTML markup that
        Shopify returns in ``descriptionHtml``.
        """
        if self.store.options.get("description_format") == "text" and product.description:
            text = BeautifulSoup(product.description, "html.parser").get_text(" ", strip=True)
            product.description = " ".join(text.split())
        return product
