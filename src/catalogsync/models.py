"""
Data types shared by adapters, enrichment and persistence.

Adapters normalize platform records into ``Product``; the enrichment stage
fills in the AI-derived fields; the persistence layer writes them out.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field


class DescriptionSource(str, Enum):
    """Where a product's description came from."""

    ORIGINAL = "original"
    GOOGLE_SEARCH = "google_search"
    AI_IMAGE = "ai_image"
    NONE = "none"


class StoreStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ERROR = "error"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SyncState(str, Enum):
    """Orchestrator state machine values."""

    IDLE = "idle"
    FETCHING = "fetching"
    DIFFING = "diffing"
    ENRICHING = "enriching"
    PERSISTING = "persisting"
    CHECKPOINTING = "checkpointing"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Variant(BaseModel):
    id: str
    title: str = ""
    price: float = 0.0
    compare_at_price: Optional[float] = None
    sku: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    inventory_quantity: int = 0
    size_embedding: Optional[List[float]] = None
    color_embedding: Optional[List[float]] = None


class Category(BaseModel):
    """Deduplicated category label, keyed by lower-cased name."""

    title: str
    id: Optional[str] = None
    handle: Optional[str] = None

    @property
    def key(self) -> str:
        return self.title.strip().lower()


class ShopMetadata(BaseModel):
    currency: str = "USD"
    name: Optional[str] = None
    domain: Optional[str] = None


class Product(BaseModel):
    """Normalized product, enriched in place by the enrichment stage."""

    id: str
    store_id: str
    title: str
    description: str = ""
    description_source: DescriptionSource = DescriptionSource.ORIGINAL
    handle: Optional[str] = None
    vendor: Optional[str] = None
    product_type: str = ""
    status: str = "active"
    tags: List[str] = Field(default_factory=list)
    sku: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list)
    collections: List[str] = Field(default_factory=list)
    demographics: Set[str] = Field(default_factory=set)
    currency: Optional[str] = None

    # Enrichment output
    category: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)
    color: Optional[str] = None
    sizes: List[str] = Field(default_factory=list)
    style_code: str = "none"
    style_data: Optional[Dict[str, Any]] = None
    content: str = ""
    title_embedding: Optional[List[float]] = None
    content_embedding: Optional[List[float]] = None
    product_embedding: Optional[List[float]] = None
    characteristics_embedding: Optional[List[float]] = None
    category_embedding: Optional[List[float]] = None
    style_code_embedding: Optional[List[float]] = None

    # Provider-specific passthrough (e.g. VTEX product reference)
    extra: Dict[str, Any] = Field(default_factory=dict)

    @property
    def image(self) -> Optional[str]:
        return self.images[0] if self.images else None

    def to_record(self) -> Dict[str, Any]:
        """Flatten into the parameter map consumed by the graph writer."""
        first = self.variants[0] if self.variants else None
        style = self.style_data or {}
        return {
            "productId": self.id,
            "storeId": self.store_id,
            "title": self.title,
            "description": self.description,
            "descriptionSource": self.description_source.value,
            "content": self.content,
            "handle": self.handle,
            "vendor": self.vendor,
            "status": self.status,
            "sku": self.sku,
            "currency": self.currency,
            "category": self.category,
            "product": self.properties.get("product"),
            "characteristics": self.properties.get("characteristics"),
            "styleCode": self.style_code or "none",
            "styleBody": style.get("body"),
            "stylePersonality": style.get("personality"),
            "styleChromatic": style.get("chromatic"),
            "isNeutral": style.get("is_neutral"),
            "neutralWhitelist": style.get("neutral_whitelist"),
            "colorVec": style.get("color_vec"),
            "image": self.image,
            "images": list(self.images),
            "sizes": list(self.sizes),
            "color": self.color or (first.color if first else None),
            "colorEmbedding": (first.color_embedding if first else None) or [],
            "titleEmbedding": self.title_embedding or [],
            "contentEmbedding": self.content_embedding or [],
            "productEmbedding": self.product_embedding or [],
            "characteristicsEmbedding": self.characteristics_embedding or [],
            "categoryEmbedding": self.category_embedding or [],
            "styleCodeEmbedding": self.style_code_embedding or [],
            "variants": [
                {
                    "id": v.id,
                    "title": v.title,
                    "price": v.price,
                    "compareAtPrice": v.compare_at_price,
                    "size": v.size,
                    "color": v.color,
                    "sku": v.sku,
                    "inventoryQuantity": v.inventory_quantity,
                    "sizeEmbedding": v.size_embedding or [],
                    "colorEmbedding": v.color_embedding or [],
                }
                for v in self.variants
            ],
            "categories": sorted(
                {c.strip().lower() for c in [*self.collections, *self.tags] if c and c.strip()}
            ),
            "demographics": sorted(self.demographics),
        }


class Page(BaseModel):
    """One page of purchasable products plus the cursor for the next one."""

    items: List[Product] = Field(default_factory=list)
    next_cursor: Optional[Dict[str, Any]] = None
    has_more: bool = False
    total_hint: Optional[int] = None


class StoreRef(BaseModel):
    """Identity of the destination Store node."""

    id: str
    name: str


class SyncJob(BaseModel):
    """Job record exposed to the job-control caller."""

    id: str
    store_id: str
    status: JobStatus = JobStatus.QUEUED
    state: SyncState = SyncState.IDLE
    progress: int = 0
    total: int = 0
    error: Optional[str] = None
    force: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in (JobStatus.QUEUED, JobStatus.RUNNING)
