"""Provider adapter registry with plugin discovery.

Built-in adapters register themselves with a decorator; custom adapters can
be loaded from a plugin directory without touching PYTHONPATH.

Usage:
    from catalogsync.providers.registry import provider_registry

    @provider_registry.register("vtex")
    class VtexAdapter(ProviderAdapter): ...

    adapter = provider_registry.create(store_config)
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from pathlib import Path
from typing import Callable, Dict, Optional, Type

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry mapping provider codes to adapter classes."""

    def __init__(self):
        self._adapters: Dict[str, Type] = {}
        self._discovered_paths: set[str] = set()

    def register(self, provider_code: str) -> Callable[[Type], Type]:
        """Decorator to register an adapter class.

        Example:
            @provider_registry.register("shopify")
            class ShopifyAdapter(ProviderAdapter): ...
        """

        def decorator(cls: Type) -> Type:
            self._adapters[provider_code.lower()] = cls
            cls.provider_type = provider_code.lower()
            logger.debug(f"Registered provider: {provider_code} -> {cls.__name__}")
            return cls

        return decorator

    def discover_plugins(self, plugin_dir: str | Path) -> int:
        """Load adapters from ``plugin_dir/*.py``.

        A module named ``my_shop.py`` is expected to define ``MyShopAdapter``;
        otherwise the first public class ending in ``Adapter`` is used.
        Modules that register themselves via the decorator need neither.

        Returns:
            Number of adapters discovered.
        """
        plugin_path = Path(plugin_dir)
        path_str = str(plugin_path.resolve())

        if path_str in self._discovered_paths:
            logger.debug(f"Already discovered: {plugin_path}")
            return 0

        if not plugin_path.exists():
            logger.warning(f"Plugin directory not found: {plugin_path}")
            return 0

        discovered = 0
        for py_file in sorted(plugin_path.glob("*.py")):
            if py_file.name.startswith("_"):
                continue

            code = py_file.stem
            before = set(self._adapters)
            try:
                spec = importlib.util.spec_from_file_location(f"catalogsync_plugin_{code}", py_file)
                if not spec or not spec.loader:
                    continue
                module = importlib.util.module_from_spec(spec)
                sys.modules[spec.name] = module
                spec.loader.exec_module(module)
            except (ImportError, SyntaxError, OSError) as e:
                logger.warning(f"Failed to load provider plugin {py_file}: {e}")
                continue

            if set(self._adapters) - before:
                discovered += 1
                continue

            cls = getattr(module, self._code_to_classname(code), None)
            if cls is None:
                cls = next(
                    (
                        getattr(module, name)
                        for name in dir(module)
                        if name.endswith("Adapter")
                        and not name.startswith("_")
                        and isinstance(getattr(module, name), type)
                    ),
                    None,
                )
            if cls is not None:
                self.register(code)(cls)
                discovered += 1

        self._discovered_paths.add(path_str)
        logger.info(f"Discovered {discovered} provider plugins from {plugin_path}")
        return discovered

    @staticmethod
    def _code_to_classname(provider_code: str) -> str:
        """e.g. "my_shop" -> "MyShopAdapter"."""
        return "".join(part.capitalize() for part in provider_code.split("_")) + "Adapter"

    def get(self, provider_code: str) -> Optional[Type]:
        return self._adapters.get(provider_code.lower())

    def create(self, store, **kwargs):
        """Instantiate the adapter for a ``StoreConfig``."""
        cls = self.get(store.provider)
        if cls is None:
            raise ConfigurationError(
                f"Unknown provider '{store.provider}' for store {store.id}. "
                f"Known: {', '.join(sorted(self._adapters)) or 'none'}"
            )
        return cls(store, **kwargs)

    def list_providers(self) -> list[str]:
        return sorted(self._adapters)


# Global singleton
provider_registry = ProviderRegistry()


__all__ = ["ProviderRegistry", "provider_registry"]
