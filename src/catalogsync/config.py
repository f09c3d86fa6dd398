"""
Configuration for the catalog sync pipeline.

Uses Pydantic for validation and environment loading.
"""

import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class Neo4jConfig(BaseModel):
    """Connection settings for the destination graph database."""

    uri: str = Field(default="neo4j://localhost:7687", description="Bolt/neo4j URI")
    user: str = Field(default="neo4j")
    password: str = Field(default="")
    database: Optional[str] = Field(default=None, description="None=server default")
    application_id: str = Field(default="runa", description="Application node id")
    application_name: str = Field(default="Runa")


class OpenAIConfig(BaseModel):
    """Configuration for classification and embedding calls."""

    api_key: str = Field(default="")
    chat_model: str = Field(default="gpt-4o-mini")
    embedding_model: str = Field(default="text-embedding-3-small")
    max_rpm: int = Field(default=500, description="Requests per minute admitted")
    timeout: float = Field(default=60.0, description="Request timeout in seconds")


class GeminiConfig(BaseModel):
    """Configuration for description generation and vision calls."""

    api_key: str = Field(default="")
    model: str = Field(default="gemini-2.0-flash")
    max_rpm: int = Field(default=10, description="Requests per minute admitted")
    search_attempts: int = Field(
        default=3, description="Grounded search attempts before image fallback"
    )
    search_tool: str = Field(
        default="google_search_retrieval", description="Grounding tool passed to the model"
    )


class PipelineConfig(BaseModel):
    """Tuning knobs for the sync loop."""

    page_size: int = Field(default=20, description="Products requested per page")
    concurrency: int = Field(default=5, description="Products enriched in parallel")
    sub_batch_size: int = Field(default=25, description="Products per transaction")
    max_concurrent_transactions: int = Field(
        default=2, description="Sub-batch transactions in flight"
    )

    # Retry ceilings per call site
    http_attempts: int = Field(default=5)
    ai_attempts: int = Field(default=6)
    transaction_attempts: int = Field(default=5)
    http_base_delay: float = Field(default=1.0)
    ai_base_delay: float = Field(default=2.0)
    transaction_base_delay: float = Field(default=0.5)

    checkpoint_dir: str = Field(default=".", description="Directory for progress files")
    checkpoint_max_age_hours: float = Field(default=24.0)

    vision_color_detection: bool = Field(
        default=False, description="Detect product colour from its main image"
    )


class SyncConfig(BaseSettings):
    """Master configuration for catalogsync.

    Loads from environment variables (and a local .env file).
    """

    model_config = ConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    service_name: str = Field(default="catalogsync")
    log_level: str = Field(default="INFO")

    stores_dir: str = Field(default="stores", description="Directory of store TOML files")
    redis_url: str = Field(default="", description="Redis URL for progress pub/sub")

    # Temporal (worker mode)
    temporal_host: str = Field(default="localhost:7233")
    temporal_queue: str = Field(default="catalog-sync")

    # Scheduler (periodic mode)
    resync_interval: int = Field(
        default=86400, description="Seconds between scheduled full syncs"
    )

    neo4j: Neo4jConfig = Field(default_factory=Neo4jConfig)
    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Load configuration from environment variables."""
        return cls(
            service_name=os.getenv("SERVICE_NAME", "catalogsync"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            stores_dir=os.getenv("STORES_DIR", "stores"),
            redis_url=os.getenv("REDIS_URL", ""),
            temporal_host=os.getenv("TEMPORAL_HOST", "localhost:7233"),
            temporal_queue=os.getenv("TEMPORAL_QUEUE", "catalog-sync"),
            resync_interval=int(os.getenv("RESYNC_INTERVAL_SEC", "86400")),
            neo4j=Neo4jConfig(
                uri=os.getenv("NEO4J_URI", "neo4j://localhost:7687"),
                user=os.getenv("NEO4J_USER", "neo4j"),
                password=os.getenv("NEO4J_PASSWORD", ""),
                database=os.getenv("NEO4J_DATABASE") or None,
            ),
            openai=OpenAIConfig(
                api_key=os.getenv("OPENAI_API_KEY", ""),
                chat_model=os.getenv("OPENAI_CHAT_MODEL", "gpt-4o-mini"),
                embedding_model=os.getenv(
                    "OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"
                ),
                max_rpm=int(os.getenv("OPENAI_MAX_RPM", "500")),
            ),
            gemini=GeminiConfig(
                api_key=os.getenv("GEMINI_API_KEY", ""),
                model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
                max_rpm=int(os.getenv("GEMINI_MAX_RPM", "10")),
            ),
            pipeline=PipelineConfig(
                page_size=int(os.getenv("SYNC_PAGE_SIZE", "20")),
                concurrency=int(os.getenv("SYNC_CONCURRENCY", "5")),
                sub_batch_size=int(os.getenv("SYNC_SUB_BATCH_SIZE", "25")),
                max_concurrent_transactions=int(
                    os.getenv("SYNC_MAX_TRANSACTIONS", "2")
                ),
                checkpoint_dir=os.getenv("SYNC_CHECKPOINT_DIR", "."),
                checkpoint_max_age_hours=float(
                    os.getenv("SYNC_CHECKPOINT_MAX_AGE_HOURS", "24")
                ),
                vision_color_detection=os.getenv(
                    "SYNC_VISION_COLOR", "false"
                ).lower()
                == "true",
            ),
        )


@lru_cache(maxsize=1)
def get_config() -> SyncConfig:
    """Process-wide configuration, loaded once from the environment."""
    return SyncConfig.from_env()
