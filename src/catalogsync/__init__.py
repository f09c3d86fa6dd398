"""
catalogsync - storefront catalog synchronization into a product graph.

Pulls products page by page from Shopify, VTEX or WooCommerce, enriches
them with AI classification, descriptions and embeddings, and writes them
to Neo4j with checkpointed, resumable progress.

Usage:
    from catalogsync import run_sync

    result = await run_sync("myshop.myshopify.com", force=False)
"""

__version__ = "0.1.0"

from .config import SyncConfig, get_config
from .providers import ProviderAdapter, provider_registry
from .stores import StoreConfig, load_all_stores, load_store_config
from .sync import JobController, SyncOrchestrator, SyncResult, run_sync

__all__ = [
    "__version__",
    # Config
    "SyncConfig",
    "get_config",
    "StoreConfig",
    "load_store_config",
    "load_all_stores",
    # Providers
    "ProviderAdapter",
    "provider_registry",
    # Sync
    "SyncOrchestrator",
    "SyncResult",
    "JobController",
    "run_sync",
]
