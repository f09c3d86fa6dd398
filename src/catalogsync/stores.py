"""
Store configuration loader.

Each storefront to sync is described by ``{STORES_DIR}/<store_id>.toml``:

    [store]
    id = "toffro.vtexcommercestable.com.br"
    provider = "vtex"
    name = "Toff"
    categories = ["Dresses", "Jeans"]

    [store.credentials]
    account_name = "toffro"
    app_key = "${TOFF_APP_KEY}"
    app_token = "${TOFF_APP_TOKEN}"

    [store.options]
    description_format = "text"

    [[store.subcategory_rules]]
    trigger = "de plaj"
    choices = ["costum de baie", "pantaloni de plajă"]

Credential values are expanded from the environment so secrets stay out
of the files.
"""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class SubcategoryRule(BaseModel):
    """Image-based sub-category refinement for a category trigger."""

    trigger: str
    choices: list[str] = Field(default_factory=list)


class StyleProfile(BaseModel):
    """Vocabulary for store-specific style classification."""

    personas: list[str] = Field(default_factory=list)
    body_shapes: list[str] = Field(
        default_factory=lambda: ["triangle", "inverted_triangle", "rectangle", "hourglass", "oval"]
    )
    seasons: list[str] = Field(default_factory=lambda: ["winter", "spring", "summer", "autumn"])
    guidance: str = ""


class StoreConfig(BaseModel):
    """Configuration for a single storefront."""

    id: str
    provider: str
    name: str = ""
    channel_id: str = ""
    categories: list[str] = Field(default_factory=list)
    default_demographics: list[str] = Field(default_factory=lambda: ["woman"])
    credentials: dict[str, str] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)
    subcategory_rules: list[SubcategoryRule] = Field(default_factory=list)
    style: Optional[StyleProfile] = None

    @property
    def progress_channel(self) -> str:
        return self.channel_id or f"{self.id}_scan"

    @property
    def display_name(self) -> str:
        return self.name or self.id


def find_stores_dir(stores_dir: str | Path | None = None) -> Path:
    """Find the store config directory.

    Looks in order:
    1. Explicit argument
    2. STORES_DIR env var
    3. ./stores
    """
    candidate = stores_dir or os.getenv("STORES_DIR") or "stores"
    path = Path(candidate)
    if not path.exists():
        raise ConfigurationError(
            f"Store config directory not found: {path}. Set STORES_DIR"
        )
    return path


def _expand(values: dict[str, Any]) -> dict[str, str]:
    return {key: os.path.expandvars(str(value)) for key, value in values.items()}


def parse_store_config(data: dict[str, Any], default_id: str) -> StoreConfig:
    store = data.get("store", {})
    if "provider" not in store:
        raise ConfigurationError(f"Store {default_id} has no provider")

    return StoreConfig(
        id=store.get("id", default_id),
        provider=store["provider"].lower(),
        name=store.get("name", ""),
        channel_id=store.get("channel_id", ""),
        categories=store.get("categories", []),
        default_demographics=store.get("default_demographics", ["woman"]),
        credentials=_expand(store.get("credentials", {})),
        options=store.get("options", {}),
        subcategory_rules=[SubcategoryRule(**r) for r in store.get("subcategory_rules", [])],
        style=StyleProfile(**store["style"]) if "style" in store else None,
    )


def load_store_config(store_id: str, stores_dir: str | Path | None = None) -> StoreConfig:
    """Load configuration for a specific store."""
    directory = find_stores_dir(stores_dir)

    store_file = directory / f"{store_id}.toml"
    if not store_file.exists():
        # Files may be named by a short alias while [store].id is the domain
        for candidate in load_all_stores(directory).values():
            if candidate.id == store_id:
                return candidate
        raise ConfigurationError(f"Store config not found: {store_file}")

    with open(store_file, "rb") as f:
        data = tomllib.load(f)

    return parse_store_config(data, store_file.stem)


def _load_all(directory: Path) -> list[tuple[str, StoreConfig]]:
    stores = []
    for toml_file in sorted(directory.glob("*.toml")):
        try:
            with open(toml_file, "rb") as f:
                data = tomllib.load(f)
            stores.append((toml_file.stem, parse_store_config(data, toml_file.stem)))
        except (OSError, tomllib.TOMLDecodeError, ConfigurationError) as e:
            logger.warning(f"Failed to load store config {toml_file.name}: {e}")
    return stores


def load_all_stores(stores_dir: str | Path | None = None) -> dict[str, StoreConfig]:
    """Load all store configurations, keyed by file stem."""
    directory = find_stores_dir(stores_dir)
    return dict(_load_all(directory))
