"""
Provider adapter contract.

All adapters expose the same page-cursor contract regardless of how the
platform paginates:

- fetch_page(cursor): one page of purchasable products + the next cursor
- fetch_category_tree(): flat list of the store's categories
- get_shop_metadata(): currency and shop identity
- post_process(product): shop-specific hook run after enrichment

Cursors are plain JSON-serializable dicts (``None`` for the first page) so
they can round-trip through the checkpoint file.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..config import PipelineConfig
from ..core.retry import with_retry
from ..errors import (
    AdapterError,
    AuthenticationError,
    RateLimitError,
    TransientNetworkError,
)
from ..models import Category, Page, Product, ShopMetadata
from ..stores import StoreConfig

logger = logging.getLogger(__name__)

Cursor = Optional[Dict[str, Any]]


@dataclass
class RawPage:
    """Platform-native records for one page, before filtering."""

    items: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Cursor = None
    has_more: bool = False
    total_hint: Optional[int] = None


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def to_price(value: Any) -> float:
    try:
        return float(value) if value not in (None, "") else 0.0
    except (TypeError, ValueError):
        return 0.0


class ProviderAdapter(ABC):
    """Base class for storefront adapters.

    Subclasses implement the platform-specific pieces (``_fetch_raw_page``,
    ``skip_reason``, ``normalize``); the base applies the availability
    filter and per-run de-duplication uniformly.
    """

    provider_type: str = "base"

    def __init__(
        self,
        store: StoreConfig,
        *,
        pipeline: Optional[PipelineConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.store = store
        self.pipeline = pipeline or PipelineConfig()
        self.page_size = int(store.options.get("page_size", self.pipeline.page_size))
        self._client = client
        self._owns_client = client is None
        self._seen_ids: set[str] = set()
        self.stats: Dict[str, int] = {"total_fetched": 0, "available": 0, "duplicates": 0}

    # ==================== HTTP ====================

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0, headers=self.default_headers())
        return self._client

    def default_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "Content-Type": "application/json"}

    async def _send_once(self, method: str, url: str, **kwargs) -> httpx.Response:
        response = await self.client.request(method, url, **kwargs)

        if response.status_code == 429:
            raise RateLimitError(
                f"{response.status_code} Too Many Requests: {url}",
                retry_after=parse_retry_after(response.headers.get("retry-after")),
                provider=self.provider_type,
            )
        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"{response.status_code} credentials rejected: {url}",
                status_code=response.status_code,
                provider=self.provider_type,
            )
        if response.status_code >= 500:
            raise TransientNetworkError(
                f"{response.status_code} server error: {url}",
                status_code=response.status_code,
                provider=self.provider_type,
            )
        if response.status_code >= 400:
            raise AdapterError(
                f"{response.status_code} {response.text[:200]}",
                status_code=response.status_code,
                provider=self.provider_type,
            )
        return response

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, retrying rate limits and transient failures."""
        return await with_retry(
            lambda: self._send_once(method, url, **kwargs),
            max_attempts=self.pipeline.http_attempts,
            base_delay=self.pipeline.http_base_delay,
            label=f"{self.provider_type} {method} {url}",
        )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    # ==================== PAGE CONTRACT ====================

    async def fetch_page(self, cursor: Cursor = None) -> Page:
        """Fetch one page, keeping only purchasable products not seen before."""
        raw = await self._fetch_raw_page(cursor)

        products: List[Product] = []
        for item in raw.items:
            self.stats["total_fetched"] += 1
            reason = self.skip_reason(item)
            if reason:
                self.stats[reason] = self.stats.get(reason, 0) + 1
                continue

            product = self.normalize(item)
            if product.id in self._seen_ids:
                self.stats["duplicates"] += 1
                continue
            self._seen_ids.add(product.id)
            self.stats["available"] += 1
            products.append(product)

        logger.debug(f"[{self.provider_type}] page: {len(raw.items)} raw, {len(products)} purchasable")
        return Page(
            items=products,
            next_cursor=raw.next_cursor if raw.has_more else None,
            has_more=raw.has_more,
            total_hint=raw.total_hint,
        )

    @abstractmethod
    async def _fetch_raw_page(self, cursor: Cursor) -> RawPage:
        """Fetch platform-native records for the page at ``cursor``."""

    @abstractmethod
    def skip_reason(self, raw: Dict[str, Any]) -> Optional[str]:
        """Return why a record is not purchasable, or None to keep it."""

    @abstractmethod
    def normalize(self, raw: Dict[str, Any]) -> Product:
        """Convert a platform record into a ``Product``."""

    @abstractmethod
    async def fetch_category_tree(self) -> List[Category]:
        ...

    @abstractmethod
    async def get_shop_metadata(self) -> ShopMetadata:
        ...

    async def post_process(self, product: Product) -> Product:
        """Shop-specific adjustments after enrichment. Default: no-op."""
        return product

    # ==================== RESUME STATE ====================

    def cursor_state(self, cursor: Cursor) -> Dict[str, Any]:
        """Serializable resume state: the next cursor plus running stats."""
        return {"cursor": cursor, "stats": dict(self.stats)}

    def restore_cursor_state(self, state: Optional[Dict[str, Any]]) -> Cursor:
        """Restore stats from a checkpoint and return the cursor to resume at."""
        if not state:
            return None
        if state.get("stats"):
            self.stats.update(state["stats"])
        return state.get("cursor")

    def log_final_stats(self) -> None:
        total = self.stats.get("total_fetched", 0)
        available = self.stats.get("available", 0)
        pct = (available / total * 100) if total else 0.0
        skipped = {k: v for k, v in self.stats.items() if k not in ("total_fetched", "available")}
        logger.info(
            f"[{self.provider_type}] availability: fetched={total} available={available} "
            f"({pct:.1f}%) skipped={skipped}"
        )
