"""
OpenAI service for classification, embeddings and store suggestions.

Every call is admitted by a sliding-window limiter and wrapped in
``with_retry``; the SDK's own retries are disabled so the attempt ceiling
is ours.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from ..config import OpenAIConfig, PipelineConfig
from ..core.ratelimit import SlidingWindowRateLimiter
from ..core.retry import with_retry
from ..stores import StyleProfile

logger = logging.getLogger(__name__)

PROPERTIES_PROMPT = """Extract from the product text the following fields and return JSON:
{{
  "product": "detailed item type, e.g. 'high waist pants', 'maxi dress'",
  "characteristics": "item characteristics if present, e.g. 'cotton, low rise'",
  "color": "the color of the item if present",
  "material": "the material of the item if present",
  "brand": "the brand of the item if present",
  "demographic": "target group: 'woman' or 'man'",
  "category": "one category from this list: {categories}"
}}
"product", "characteristics", "color", "demographic" and "category" are mandatory.
Respond in the language of the product text, except "category" which must come from the list."""

SUGGESTIONS_PROMPT = """You receive the categories of an online store. Return JSON
{"suggestions": [...]} with 3 short conversation starters that help a shopper
search the store. At least one must be 3-4 words long."""

STYLE_PROMPT = """Classify the fashion product for style matching. Return JSON with:
"body": list of suitable body shapes from {body_shapes},
"personality": list of personas from {personas},
"chromatic": list of seasons from {seasons},
"is_neutral": true if the colour is a wardrobe neutral,
"neutral_whitelist": list of neutral colour names the item pairs with,
"color_vec": list of dominant colours.
{guidance}"""


def _parse_json(content: Optional[str]) -> Dict[str, Any]:
    if not content:
        raise ValueError("Empty completion")
    return json.loads(content[content.find("{") : content.rfind("}") + 1])


class OpenAIService:
    """AI provider backed by the OpenAI API."""

    def __init__(
        self,
        config: OpenAIConfig,
        pipeline: Optional[PipelineConfig] = None,
        *,
        client: Optional[AsyncOpenAI] = None,
        limiter: Optional[SlidingWindowRateLimiter] = None,
    ):
        self.config = config
        self.pipeline = pipeline or PipelineConfig()
        self.client = client or AsyncOpenAI(
            api_key=config.api_key, timeout=config.timeout, max_retries=0
        )
        self.limiter = limiter or SlidingWindowRateLimiter(config.max_rpm, name="openai")

    async def _call(self, op, label: str):
        return await with_retry(
            op,
            max_attempts=self.pipeline.ai_attempts,
            base_delay=self.pipeline.ai_base_delay,
            before_attempt=self.limiter.acquire,
            label=f"openai {label}",
        )

    async def _complete_json(self, system: str, user: str, label: str) -> Dict[str, Any]:
        async def op():
            response = await self.client.chat.completions.create(
                model=self.config.chat_model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=0.7,
                response_format={"type": "json_object"},
            )
            return response.choices[0].message.content

        return _parse_json(await self._call(op, label))

    async def classify_properties(self, text: str, categories: List[str]) -> Dict[str, Any]:
        """Extract product/characteristics/color/demographic/category from text."""
        system = PROPERTIES_PROMPT.format(categories=", ".join(categories))
        return await self._complete_json(system, text, "classify_properties")

    async def embed(self, text: str) -> Optional[List[float]]:
        if not text or not text.strip():
            return None

        async def op():
            response = await self.client.embeddings.create(
                model=self.config.embedding_model, input=text
            )
            return response.data[0].embedding if response.data else None

        return await self._call(op, "embed")

    async def generate_suggestions(self, categories_list: str) -> List[str]:
        """Conversation starters for the store's chat surface."""
        data = await self._complete_json(SUGGESTIONS_PROMPT, categories_list, "suggestions")
        return [str(s) for s in data.get("suggestions", [])][:3]

    async def classify_style(self, text: str, profile: StyleProfile) -> Optional[Dict[str, Any]]:
        system = STYLE_PROMPT.format(
            body_shapes=", ".join(profile.body_shapes),
            personas=", ".join(profile.personas) or "any",
            seasons=", ".join(profile.seasons),
            guidance=profile.guidance,
        )
        data = await self._complete_json(system, text, "classify_style")
        return data or None

    async def close(self) -> None:
        await self.client.close()
