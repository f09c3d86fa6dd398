"""
Storefront provider adapters.

Importing this package registers the built-in adapters with
``provider_registry``.
"""

from .base import ProviderAdapter, RawPage
from .registry import ProviderRegistry, provider_registry
from .shopify import ShopifyAdapter
from .vtex import VtexAdapter
from .woocommerce import WoocommerceAdapter

__all__ = [
    "ProviderAdapter",
    "RawPage",
    "ProviderRegistry",
    "provider_registry",
    "ShopifyAdapter",
    "VtexAdapter",
    "WoocommerceAdapter",
]
