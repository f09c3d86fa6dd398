"""
Gemini service: product descriptions and image classification.

Description generation is two-level:

1. Google-grounded search for the product's SKU, validated against the
   main image before it is accepted
2. Description written from the product images

Gemini quotas are tight (10 RPM by default), so every call shares one
sliding-window limiter.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import google.generativeai as genai
import httpx

from ..config import GeminiConfig, PipelineConfig
from ..core.ratelimit import SlidingWindowRateLimiter
from ..core.retry import with_retry
from ..models import DescriptionSource, Product

logger = logging.getLogger(__name__)

SEARCH_SYSTEM = (
    "You are a product search assistant. Always use Google Search; never answer "
    "from memory. Search for exactly the code you are given, without adding a "
    "product type or brand. If you cannot find the product, say so."
)

SEARCH_PROMPT = """Search Google for exactly "{sku}".
Respond only with JSON:
{{"found": true, "description": "<elegant product description, max 800 characters>"}}
or {{"found": false, "description": ""}} when the product is not found."""

SEARCH_RETRY_PREFIX = (
    "IMPORTANT: use Google Search now, for the exact code only. "
    "Do not answer from memory.\n\n"
)

VALIDATE_PROMPT = """Does this search result describe the product in the image?
Product title: "{title}"
Brand: "{vendor}"
Search result:
\"\"\"{text}\"\"\"
Return JSON {{"descriptionAccurate": true|false}}. It is false when the product type,
appearance or brand does not match the image."""

IMAGE_DESCRIPTION_PROMPT = """Write an elegant product description for an online fashion store
from these images. Product title: "{title}". Describe only what is visible; do not
invent materials or measurements. Maximum 800 characters, no title or heading."""

COLOR_PROMPT = """Describe the colours of this product for outfit matching: dominant colour,
secondary colours, patterns and finishes. English, lowercase.
Product title: "{title}". Return JSON {{"color": "..."}}."""

SUBCATEGORY_PROMPT = """Classify this product image into exactly one of: {choices}.
Product title: "{title}".{hint}
Return JSON {{"category": "..."}}."""

MIN_DESCRIPTION_LENGTH = 50
MAX_VALIDATION_TEXT = 2000


def _json_from_text(text: str) -> Dict[str, Any]:
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end == -1:
        return {}
    return json.loads(text[start : end + 1])


def _was_grounded(response: Any) -> bool:
    candidates = getattr(response, "candidates", None) or []
    metadata = getattr(candidates[0], "grounding_metadata", None) if candidates else None
    if metadata is None:
        return False
    return bool(
        getattr(metadata, "grounding_chunks", None)
        or getattr(metadata, "grounding_supports", None)
        or getattr(metadata, "web_search_queries", None)
    )


class GeminiService:
    """AI provider backed by Google Gemini."""

    def __init__(
        self,
        config: GeminiConfig,
        pipeline: Optional[PipelineConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        limiter: Optional[SlidingWindowRateLimiter] = None,
    ):
        self.config = config
        self.pipeline = pipeline or PipelineConfig()
        self.http = http_client or httpx.AsyncClient(timeout=30.0, follow_redirects=True)
        self.limiter = limiter or SlidingWindowRateLimiter(config.max_rpm, name="gemini")
        genai.configure(api_key=config.api_key)

    @property
    def enabled(self) -> bool:
        return bool(self.config.api_key)

    def _model(self, **kwargs) -> genai.GenerativeModel:
        return genai.GenerativeModel(model_name=self.config.model, **kwargs)

    def _json_model(self) -> genai.GenerativeModel:
        return self._model(generation_config={"response_mime_type": "application/json"})

    async def _generate(self, model: genai.GenerativeModel, contents, label: str, **kwargs):
        return await with_retry(
            lambda: model.generate_content_async(contents, **kwargs),
            max_attempts=self.pipeline.ai_attempts,
            base_delay=self.pipeline.ai_base_delay,
            before_attempt=self.limiter.acquire,
            label=f"gemini {label}",
        )

    # ==================== IMAGES ====================

    async def load_images(self, urls: List[str], limit: int = 4) -> List[Dict[str, Any]]:
        """Download images as inline parts; unreachable images are skipped."""
        parts = []
        for url in urls[:limit]:
            try:
                response = await self.http.get(url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.debug(f"Skipping image {url}: {e}")
                continue
            parts.append(
                {
                    "mime_type": response.headers.get("content-type", "image/jpeg").split(";")[0],
                    "data": response.content,
                }
            )
        return parts

    # ==================== DESCRIPTIONS ====================

    async def search_description(self, sku: str) -> Optional[str]:
        """Grounded search by SKU. Returns text only when the search was grounded and found."""
        model = self._model(system_instruction=SEARCH_SYSTEM, tools=self.config.search_tool)
        prompt = SEARCH_PROMPT.format(sku=sku)

        for attempt in range(1, self.config.search_attempts + 1):
            contents = prompt if attempt == 1 else SEARCH_RETRY_PREFIX + prompt
            response = await self._generate(model, contents, "search")
            if not _was_grounded(response):
                logger.debug(f"Search for {sku}: no grounding (attempt {attempt}/{self.config.search_attempts})")
                continue

            try:
                parsed = _json_from_text(response.text)
            except ValueError:
                logger.debug(f"Search for {sku}: unparseable response, treating as not found")
                return None
            if parsed.get("found") is True and parsed.get("description"):
                return str(parsed["description"])
            return None
        return None

    async def validate_description(self, product: Product, text: str) -> bool:
        contents: List[Any] = [
            VALIDATE_PROMPT.format(
                title=product.title,
                vendor=product.vendor or "unknown",
                text=text[:MAX_VALIDATION_TEXT],
            )
        ]
        if product.image:
            contents.extend(await self.load_images([product.image], limit=1))
        response = await self._generate(self._json_model(), contents, "validate")
        return _json_from_text(response.text).get("descriptionAccurate") is True

    async def describe_from_images(self, product: Product) -> Optional[str]:
        images = await self.load_images(product.images)
        if not images:
            logger.debug(f"No images available for '{product.title}'")
            return None
        response = await self._generate(
            self._model(),
            [IMAGE_DESCRIPTION_PROMPT.format(title=product.title), *images],
            "describe",
        )
        text = (response.text or "").strip()
        return text if len(text) > MIN_DESCRIPTION_LENGTH else None

    async def generate_description(
        self, product: Product
    ) -> Optional[Tuple[str, DescriptionSource]]:
        """Search-grounded description, falling back to image-based generation."""
        sku = product.sku or product.handle or product.title
        if sku:
            try:
                found = await self.search_description(sku)
                if found and await self.validate_description(product, found):
                    return found, DescriptionSource.GOOGLE_SEARCH
                if found:
                    logger.info(f"Search description rejected for '{product.title}', using images")
            except Exception as e:
                logger.warning(f"Search description failed for '{product.title}': {e}")

        text = await self.describe_from_images(product)
        if text:
            return text, DescriptionSource.AI_IMAGE
        return None

    # ==================== CLASSIFICATION ====================

    async def detect_color(self, product: Product) -> Optional[str]:
        images = await self.load_images([product.image] if product.image else [], limit=1)
        if not images:
            return None
        response = await self._generate(
            self._json_model(), [COLOR_PROMPT.format(title=product.title), *images], "color"
        )
        color = str(_json_from_text(response.text).get("color") or "").strip().lower()
        return color or None

    async def classify_subcategory(self, product: Product, choices: List[str]) -> Optional[str]:
        images = await self.load_images([product.image] if product.image else [], limit=1)
        if not images or not choices:
            return None
        hint = " This is a men's product." if "man" in product.demographics else ""
        prompt = SUBCATEGORY_PROMPT.format(
            choices=", ".join(f'"{c}"' for c in choices), title=product.title, hint=hint
        )
        response = await self._generate(self._json_model(), [prompt, *images], "subcategory")
        category = str(_json_from_text(response.text).get("category") or "").strip().lower()
        return category or None

    async def close(self) -> None:
        await self.http.aclose()
