"""
AI enrichment: classification, descriptions and embedding vectors.
"""

from .ai import OpenAIService
from .cache import EmbeddingCache
from .categories import DEFAULT_CATEGORIES
from .stage import EnrichmentStage, resolve_category
from .vision import GeminiService

__all__ = [
    "EnrichmentStage",
    "EmbeddingCache",
    "GeminiService",
    "OpenAIService",
    "DEFAULT_CATEGORIES",
    "resolve_category",
]
