"""
Per-product enrichment.

Every AI sub-step degrades to a default instead of failing the product:
missing descriptions become ``DescriptionSource.NONE``, failed
classification falls back to placeholder properties, failed embeddings
are stored as empty vectors.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..models import DescriptionSource, Product, ShopMetadata
from ..stores import StoreConfig
from .cache import EmbeddingCache
from .categories import DEFAULT_CATEGORIES, FALLBACK_CATEGORY

logger = logging.getLogger(__name__)

DEFAULT_PROPERTIES: Dict[str, Any] = {
    "product": "unknown",
    "characteristics": "unknown",
    "color": "unknown",
    "demographic": "woman",
    "category": FALLBACK_CATEGORY,
}

DEMOGRAPHICS = {"woman", "man", "unisex"}
UNKNOWN = "unknown"


def resolve_category(product: Product, properties: Dict[str, Any], categories: List[str]) -> str:
    """First collection, then product type if it is a known category, then the AI guess."""
    if product.collections:
        return product.collections[0]

    product_type = product.product_type.strip().lower()
    if product_type and product_type in {c.lower() for c in categories}:
        return product_type

    ai_category = str(properties.get("category") or "").strip().lower()
    return ai_category or FALLBACK_CATEGORY


def style_code(style: Optional[Dict[str, Any]]) -> str:
    if not style:
        return "none"
    return ",".join(
        ",".join(str(v) for v in style.get(key) or []) for key in ("body", "personality", "chromatic")
    )


class EnrichmentStage:
    """Runs AI classification, description generation and embeddings for one product.

    Args:
        ai: OpenAI-backed service (classification, embeddings, style).
        vision: Gemini-backed service (descriptions, colour, sub-categories).
            Optional; without it descriptions stay empty.
        cache: Embedding cache shared across the run.
        detect_color: Run image colour detection for every product.
    """

    def __init__(self, ai, vision=None, *, cache: Optional[EmbeddingCache] = None,
                 detect_color: bool = False):
        self.ai = ai
        self.vision = vision
        self.cache = cache or EmbeddingCache()
        self.detect_color = detect_color

    async def embed(self, text: Optional[str]) -> Optional[List[float]]:
        if not text:
            return None
        try:
            return await self.cache.get_or_compute(text, self.ai.embed)
        except Exception as e:
            logger.warning(f"Embedding failed for '{text[:40]}': {e}")
            return None

    # ==================== SUB-STEPS ====================

    async def _describe(self, product: Product) -> None:
        if product.description.strip():
            product.description_source = DescriptionSource.ORIGINAL
            return

        result = None
        if self.vision is not None:
            try:
                result = await self.vision.generate_description(product)
            except Exception as e:
                logger.warning(f"Description generation failed for '{product.title}': {e}")

        if result:
            product.description, product.description_source = result
            logger.info(f"AI description for '{product.title}' (source: {product.description_source.value})")
        else:
            product.description_source = DescriptionSource.NONE
            logger.info(f"No description for '{product.title}', continuing without it")

    async def _classify(self, product: Product, categories: List[str]) -> Dict[str, Any]:
        try:
            properties = await self.ai.classify_properties(
                f"{product.title} {product.description}", categories
            )
        except Exception as e:
            logger.warning(f"Classification failed for '{product.title}', using defaults: {e}")
            return dict(DEFAULT_PROPERTIES)

        for key in ("product", "characteristics"):
            if not properties.get(key):
                properties[key] = UNKNOWN
        return properties

    async def _vision_color(self, product: Product) -> Optional[str]:
        if not (self.detect_color and self.vision is not None and product.image):
            return None
        try:
            return await self.vision.detect_color(product)
        except Exception as e:
            logger.warning(f"Colour detection failed for '{product.title}': {e}")
            return None

    async def _refine_subcategory(self, product: Product, store: StoreConfig) -> None:
        if self.vision is None:
            return
        labels = [c.lower() for c in product.collections] + [(product.category or "").lower()]
        for rule in store.subcategory_rules:
            trigger = rule.trigger.lower()
            if not any(trigger in label for label in labels):
                continue
            try:
                refined = await self.vision.classify_subcategory(product, rule.choices)
            except Exception as e:
                logger.warning(f"Sub-category refinement failed for '{product.title}': {e}")
                return
            if refined:
                if refined not in {c.lower() for c in product.collections}:
                    product.collections.append(refined)
                product.category = refined
                logger.debug(f"'{product.title}' refined to '{refined}'")
            return

    async def _classify_style(self, product: Product, store: StoreConfig) -> None:
        if store.style is None:
            return
        try:
            product.style_data = await self.ai.classify_style(
                f"{product.title}. {product.description}", store.style
            )
        except Exception as e:
            logger.warning(f"Style classification failed for '{product.title}': {e}")
            product.style_data = None
        product.style_code = style_code(product.style_data)

    async def _embed_options(self, product: Product) -> None:
        for variant in product.variants:
            variant.color_embedding = await self.embed(f"color: {variant.color.lower()}") if variant.color else None
            variant.size_embedding = await self.embed(f"size: {variant.size.lower()}") if variant.size else None

    # ==================== PIPELINE ====================

    async def enrich(self, product: Product, store: StoreConfig, shop: ShopMetadata) -> Product:
        categories = store.categories or DEFAULT_CATEGORIES

        await self._describe(product)
        properties = await self._classify(product, categories)
        product.properties = properties

        detected = await self._vision_color(product)
        if detected:
            properties["color"] = detected
        color = detected or properties.get("color") or UNKNOWN
        product.color = color if color != UNKNOWN else None

        for variant in product.variants:
            variant.color = variant.color or color
            variant.size = variant.size or variant.title or UNKNOWN
        product.sizes = list(dict.fromkeys(v.size for v in product.variants if v.size and v.size != UNKNOWN))

        if not product.demographics:
            demographic = str(properties.get("demographic") or "").lower()
            product.demographics = {demographic} if demographic in DEMOGRAPHICS else set(store.default_demographics)

        product.category = resolve_category(product, properties, categories)
        if not product.collections:
            product.collections = [product.category]

        await self._refine_subcategory(product, store)
        await self._classify_style(product, store)

        product.content = f"{product.title}. {product.description}"
        (
            product.title_embedding,
            product.content_embedding,
            product.product_embedding,
            product.characteristics_embedding,
            product.category_embedding,
            product.style_code_embedding,
        ) = await asyncio.gather(
            self.embed(product.title),
            self.embed(product.content),
            self.embed(properties.get("product")),
            self.embed(properties.get("characteristics")),
            self.embed(f"category: {product.category}"),
            self.embed(product.style_code),
        )
        await self._embed_options(product)

        product.currency = shop.currency
        return product
