"""
Tests for the Shopify, VTEX and WooCommerce adapters against mocked HTTP.
"""

import json

import httpx
import pytest

from catalogsync.config import PipelineConfig
from catalogsync.errors import AuthenticationError, TransientNetworkError
from catalogsync.providers import ShopifyAdapter, VtexAdapter, WoocommerceAdapter
from catalogsync.stores import StoreConfig

from conftest import ListAdapter

PIPELINE = PipelineConfig(http_base_delay=0.0, http_attempts=3)


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ==================== BASE ====================


class TestPageContract:
    """Test filtering shared by every adapter."""

    @pytest.mark.asyncio
    async def test_product_yielded_once_per_run(self, store):
        """Verify an id repeated on a later page is dropped and counted as a duplicate."""
        pages = [
            [{"id": "a", "title": "Dress A"}, {"id": "b", "title": "Dress B"}],
            [{"id": "b", "title": "Dress B"}, {"id": "c", "title": "Dress C"}],
        ]
        adapter = ListAdapter(store, pages, pipeline=PIPELINE)

        first = await adapter.fetch_page(None)
        second = await adapter.fetch_page(first.next_cursor)

        assert [p.id for p in first.items] == ["a", "b"]
        assert [p.id for p in second.items] == ["c"]
        assert adapter.stats["duplicates"] == 1
        assert adapter.stats["available"] == 3
        assert adapter.stats["total_fetched"] == 4


# ==================== SHOPIFY ====================


def shopify_node(pid, *, published=True, available=True, price="49.90", options=None):
    return {
        "id": f"gid://shopify/Product/{pid}",
        "title": f"Dress {pid}",
        "descriptionHtml": "<p>Soft <b>linen</b> dress</p>",
        "handle": f"dress-{pid}",
        "vendor": "Runa",
        "productType": "Dresses",
        "status": "ACTIVE",
        "tags": ["summer", ""],
        "publishedAt": "2024-05-01T00:00:00Z" if published else None,
        "images": {"edges": [{"node": {"src": f"https://cdn.shopify.com/{pid}.jpg"}}]},
        "variants": {
            "edges": [
                {
                    "node": {
                        "id": f"gid://shopify/ProductVariant/{pid}1",
                        "title": "M / Red",
                        "price": price,
                        "compareAtPrice": None,
                        "sku": f"SKU-{pid}",
                        "inventoryQuantity": 3,
                        "availableForSale": available,
                        "selectedOptions": options
                        or [{"name": "Size", "value": "M"}, {"name": "Color", "value": "Red"}],
                    }
                }
            ]
        },
        "collections": {"edges": [{"node": {"id": "gid://shopify/Collection/9", "title": "Dresses"}}]},
    }


def shopify_store(**options):
    return StoreConfig(
        id="runa.myshopify.com",
        provider="shopify",
        credentials={"access_token": "shpat_test"},
        options=options,
    )


class TestShopifyAdapter:
    @pytest.mark.asyncio
    async def test_pages_filtered_and_normalized(self):
        def handler(request):
            assert request.headers["X-Shopify-Access-Token"] == "shpat_test"
            assert request.url.path == "/admin/api/2023-04/graphql.json"
            after = json.loads(request.content)["variables"]["after"]
            if after is None:
                edges = [shopify_node(1), shopify_node(2, published=False), shopify_node(3, available=False)]
                page_info = {"hasNextPage": True, "endCursor": "c1"}
            else:
                assert after == "c1"
                edges = [shopify_node(4, price="0.00")]
                page_info = {"hasNextPage": False, "endCursor": "c2"}
            body = {"data": {"products": {"pageInfo": page_info, "edges": [{"node": n} for n in edges]}}}
            return httpx.Response(200, json=body)

        adapter = ShopifyAdapter(shopify_store(), pipeline=PIPELINE, client=mock_client(handler))

        first = await adapter.fetch_page(None)
        second = await adapter.fetch_page(first.next_cursor)

        assert [p.id for p in first.items] == ["1"]
        assert first.has_more and first.next_cursor == {"after": "c1"}
        product = first.items[0]
        assert product.variants[0].id == "11"
        assert (product.variants[0].size, product.variants[0].color) == ("M", "Red")
        assert product.collections == ["Dresses"]
        assert product.tags == ["summer"]
        assert product.sku == "SKU-1"
        assert second.items == [] and not second.has_more
        assert adapter.stats["unpublished"] == 1
        assert adapter.stats["out_of_stock"] == 1
        assert adapter.stats["no_price"] == 1

    @pytest.mark.asyncio
    async def test_rate_limit_retried_with_retry_after(self):
        calls = []

        def handler(request):
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(429, headers={"Retry-After": "0.01"})
            body = {"data": {"products": {"pageInfo": {"hasNextPage": False}, "edges": []}}}
            return httpx.Response(200, json=body)

        adapter = ShopifyAdapter(shopify_store(), pipeline=PIPELINE, client=mock_client(handler))

        page = await adapter.fetch_page(None)

        assert len(calls) == 2
        assert page.items == []

    @pytest.mark.asyncio
    async def test_rejected_credentials_propagate(self):
        adapter = ShopifyAdapter(
            shopify_store(), pipeline=PIPELINE, client=mock_client(lambda r: httpx.Response(401))
        )

        with pytest.raises(AuthenticationError):
            await adapter.fetch_page(None)

    @pytest.mark.asyncio
    async def test_collections_follow_link_pagination(self):
        base = "https://runa.myshopify.com/admin/api/2023-04"

        def handler(request):
            if request.url.path.endswith("custom_collections.json"):
                if "page_info" in str(request.url):
                    return httpx.Response(200, json={"custom_collections": [{"id": 2, "title": "Tops"}]})
                return httpx.Response(
                    200,
                    json={"custom_collections": [{"id": 1, "title": "Dresses"}]},
                    headers={"Link": f'<{base}/custom_collections.json?page_info=abc>; rel="next"'},
                )
            return httpx.Response(200, json={"smart_collections": [{"id": 3, "title": "dresses"}]})

        adapter = ShopifyAdapter(shopify_store(), pipeline=PIPELINE, client=mock_client(handler))

        categories = await adapter.fetch_category_tree()

        assert [c.title for c in categories] == ["Dresses", "Tops"]

    @pytest.mark.asyncio
    async def test_shop_currency(self):
        def handler(request):
            return httpx.Response(200, json={"shop": {"currency": "RON", "name": "Runa"}})

        adapter = ShopifyAdapter(shopify_store(), pipeline=PIPELINE, client=mock_client(handler))

        shop = await adapter.get_shop_metadata()

        assert shop.currency == "RON"
        assert shop.domain == "runa.myshopify.com"

    @pytest.mark.asyncio
    async def test_text_description_format_strips_html(self):
        adapter = ShopifyAdapter(shopify_store(description_format="text"), pipeline=PIPELINE)
        product = adapter.normalize(shopify_node(1))

        processed = await adapter.post_process(product)

        assert processed.description == "Soft linen dress"

    @pytest.mark.asyncio
    async def test_html_kept_by_default(self):
        adapter = ShopifyAdapter(shopify_store(), pipeline=PIPELINE)

        processed = await adapter.post_process(adapter.normalize(shopify_node(1)))

        assert processed.description.startswith("<p>")


# ==================== VTEX ====================


def vtex_product(pid, *, available=True, price=199.0, category="/femei/rochii/"):
    return {
        "productId": str(pid),
        "productName": f"Rochie {pid}",
        "productReference": f"REF{pid}",
        "brand": "Toff",
        "linkText": f"rochie-{pid}",
        "description": "Rochie din in",
        "categories": [category, "/femei/"],
        "productClusters": {"140": "Noutati"},
        "clusterHighlights": {},
        "items": [
            {
                "itemId": f"{pid}01",
                "name": "S",
                "Marime": ["S"],
                "Culoare": ["Rosu"],
                "images": [{"imageUrl": f"https://toff.vteximg.com.br/{pid}.jpg"}],
                "sellers": [{"commertialOffer": {"Price": price, "ListPrice": 249.0, "IsAvailable": available, "AvailableQuantity": 2}}],
            }
        ],
    }


class VtexCatalog:
    """Mock VTEX catalog with ``total`` product ids, 1..total."""

    def __init__(self, total, unavailable=(), missing=()):
        self.total = total
        self.unavailable = set(unavailable)
        self.missing = set(missing)
        self.total_sent = False
        self.windows = []
        self.searches = []

    def __call__(self, request):
        params = request.url.params
        if request.url.path.endswith("GetProductAndSkuIds"):
            start, end = int(params["_from"]), int(params["_to"])
            if not self.total_sent:
                self.total_sent = True
                return httpx.Response(
                    200,
                    json={"data": {"1": [101]}, "range": {"total": 1}},
                    headers={"REST-Content-Range": f"resources 0-1/{self.total}"},
                )
            self.windows.append((start, end))
            ids = [i for i in range(start, end + 1) if i not in self.missing]
            return httpx.Response(200, json={"data": {str(i): [i * 100] for i in ids}})
        if request.url.path.endswith("products/search"):
            ids = [int(part.split(":")[1]) for part in params["fq"].split(",")]
            self.searches.append(ids)
            return httpx.Response(200, json=[vtex_product(i, available=i not in self.unavailable) for i in ids])
        return httpx.Response(404)


def vtex_store(**options):
    options = {"id_window": 3, "detail_chunk": 2, "detail_delay": 0, **options}
    return StoreConfig(
        id="toffro.vtexcommercestable.com.br",
        provider="vtex",
        credentials={"account_name": "toffro", "app_key": "k", "app_token": "t"},
        options=options,
    )


async def drain(adapter):
    pages = []
    page = await adapter.fetch_page(None)
    pages.append(page)
    while page.has_more:
        page = await adapter.fetch_page(page.next_cursor)
        pages.append(page)
    return pages


class TestVtexAdapter:
    @pytest.mark.asyncio
    async def test_walks_backwards_from_total(self):
        catalog = VtexCatalog(total=7, unavailable={4})
        adapter = VtexAdapter(vtex_store(), pipeline=PIPELINE, client=mock_client(catalog))

        pages = await drain(adapter)

        assert catalog.windows == [(5, 7), (2, 4), (1, 1)]
        ids = [p.id for page in pages for p in page.items]
        assert sorted(ids, key=int) == ["1", "2", "3", "5", "6", "7"]
        assert adapter.stats["out_of_stock"] == 1
        assert pages[0].total_hint == 7

    @pytest.mark.asyncio
    async def test_details_fetched_in_chunks(self):
        catalog = VtexCatalog(total=3)
        adapter = VtexAdapter(vtex_store(), pipeline=PIPELINE, client=mock_client(catalog))

        await adapter.fetch_page(None)

        assert [len(chunk) for chunk in catalog.searches] == [2, 1]

    @pytest.mark.asyncio
    async def test_forwards_when_total_unknown(self):
        catalog = VtexCatalog(total=1)
        adapter = VtexAdapter(vtex_store(), pipeline=PIPELINE, client=mock_client(catalog))

        first = await adapter.fetch_page(None)

        assert first.next_cursor["direction"] == "forwards"
        assert catalog.windows[0] == (1, 3)

    @pytest.mark.asyncio
    async def test_empty_backwards_window_keeps_walking(self):
        catalog = VtexCatalog(total=6, missing={4, 5, 6})
        adapter = VtexAdapter(vtex_store(), pipeline=PIPELINE, client=mock_client(catalog))

        first = await adapter.fetch_page(None)

        assert first.items == []
        assert first.has_more
        second = await adapter.fetch_page(first.next_cursor)
        assert [p.id for p in second.items] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_normalize(self):
        adapter = VtexAdapter(vtex_store(), pipeline=PIPELINE)

        product = adapter.normalize(vtex_product(42, category="/bărbați/camasi/"))

        assert product.id == "42"
        assert product.sku == "REF42"
        assert product.demographics == {"man"}
        assert product.collections == ["camasi", "femei"]
        assert product.tags == ["Noutati"]
        variant = product.variants[0]
        assert (variant.size, variant.color, variant.price) == ("S", "Rosu", 199.0)

    def test_unknown_category_path_is_unisex(self):
        adapter = VtexAdapter(vtex_store(), pipeline=PIPELINE)

        assert adapter.detect_demographics({"categories": ["/accesorii/"]}) == {"unisex"}

    def test_zero_price_skipped(self):
        adapter = VtexAdapter(vtex_store(), pipeline=PIPELINE)

        assert adapter.skip_reason(vtex_product(1, price=0)) == "no_price"

    @pytest.mark.asyncio
    async def test_category_tree_flattened(self):
        tree = [{"id": 1, "name": "Femei", "url": "/femei", "children": [{"id": 2, "name": "Rochii", "url": "/femei/rochii", "children": []}]}]
        adapter = VtexAdapter(
            vtex_store(), pipeline=PIPELINE, client=mock_client(lambda r: httpx.Response(200, json=tree))
        )

        categories = await adapter.fetch_category_tree()

        assert [(c.title, c.handle) for c in categories] == [("Femei", "femei"), ("Rochii", "femei/rochii")]


# ==================== WOOCOMMERCE ====================


def woo_product(pid, *, stock="instock", price="120", kind="simple"):
    return {
        "id": pid,
        "name": f"Bluza {pid}",
        "slug": f"bluza-{pid}",
        "type": kind,
        "status": "publish",
        "stock_status": stock,
        "price": price,
        "regular_price": "150",
        "sku": f"W{pid}",
        "description": "<p>Bluza</p>",
        "categories": [{"id": 5, "name": "Bluze"}],
        "tags": [{"name": "nou"}],
        "images": [{"src": f"https://shop.ro/{pid}.jpg"}],
        "attributes": [],
    }


class TestWoocommerceAdapter:
    def store(self):
        return StoreConfig(
            id="shop.ro",
            provider="woocommerce",
            credentials={"base_url": "https://shop.ro", "consumer_key": "ck", "consumer_secret": "cs"},
        )

    @pytest.mark.asyncio
    async def test_pages_by_total_pages_header(self):
        def handler(request):
            assert request.headers["Authorization"].startswith("Basic ")
            path = request.url.path
            if path.endswith("/variations"):
                return httpx.Response(
                    200,
                    json=[
                        {"id": 31, "price": "99", "stock_status": "instock", "attributes": [{"name": "Size", "option": "L"}]},
                        {"id": 32, "price": "99", "stock_status": "outofstock", "attributes": [{"name": "Size", "option": "XL"}]},
                    ],
                )
            page = int(request.url.params["page"])
            items = [woo_product(1), woo_product(2, stock="outofstock")] if page == 1 else [woo_product(3, kind="variable")]
            return httpx.Response(200, json=items, headers={"X-WP-Total": "3", "X-WP-TotalPages": "2"})

        adapter = WoocommerceAdapter(self.store(), pipeline=PIPELINE, client=mock_client(handler))

        first = await adapter.fetch_page(None)
        second = await adapter.fetch_page(first.next_cursor)

        assert [p.id for p in first.items] == ["1"]
        assert first.next_cursor == {"page": 2}
        assert first.total_hint == 3
        assert not second.has_more
        variable = second.items[0]
        assert [v.size for v in variable.variants] == ["L"]
        assert variable.collections == ["Bluze"]
        assert adapter.stats["out_of_stock"] == 1

    @pytest.mark.asyncio
    async def test_currency_from_general_settings(self):
        def handler(request):
            assert request.url.path == "/wp-json/wc/v3/settings/general/woocommerce_currency"
            return httpx.Response(200, json={"id": "woocommerce_currency", "value": "RON"})

        adapter = WoocommerceAdapter(self.store(), pipeline=PIPELINE, client=mock_client(handler))

        assert (await adapter.get_shop_metadata()).currency == "RON"

    @pytest.mark.asyncio
    async def test_currency_fallback(self):
        adapter = WoocommerceAdapter(
            self.store(), pipeline=PIPELINE, client=mock_client(lambda r: httpx.Response(404))
        )

        assert (await adapter.get_shop_metadata()).currency == "USD"

    @pytest.mark.asyncio
    async def test_server_errors_retried_then_raised(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(503)

        adapter = WoocommerceAdapter(self.store(), pipeline=PIPELINE, client=mock_client(handler))

        with pytest.raises(TransientNetworkError) as exc_info:
            await adapter.fetch_page(None)

        assert exc_info.value.status_code == 503
        assert len(calls) == PIPELINE.http_attempts

    @pytest.mark.asyncio
    async def test_rejected_variation_fetch_not_retried(self):
        """Verify a 401 is raised on the first attempt even when the URL contains 429."""
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(401)

        adapter = WoocommerceAdapter(self.store(), pipeline=PIPELINE, client=mock_client(handler))

        with pytest.raises(AuthenticationError):
            await adapter._fetch_variations(4291)

        assert calls == ["/wp-json/wc/v3/products/4291/variations"]
