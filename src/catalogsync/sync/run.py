"""
Wiring for a store sync.

``SyncServices`` holds the long-lived clients (graph store, AI providers,
progress channel) shared by every store in a process. ``run_sync`` loads a
store's config, builds its adapter and pipeline stages, and runs the
orchestrator. Per-run state such as the embedding cache is built fresh for
every orchestrator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import SyncConfig, get_config
from ..core.pool import CancellationToken
from ..enrichment import EmbeddingCache, EnrichmentStage, GeminiService, OpenAIService
from ..graph import Neo4jGraphStore, PersistenceLayer
from ..providers import provider_registry
from ..stores import StoreConfig, load_store_config
from .checkpoint import CheckpointManager
from .orchestrator import StateListener, SyncOrchestrator, SyncResult
from .progress import ProgressBroadcaster, create_broadcaster

logger = logging.getLogger(__name__)


@dataclass
class SyncServices:
    """Process-wide clients used by every sync."""

    graph: Neo4jGraphStore
    ai: OpenAIService
    broadcaster: ProgressBroadcaster
    vision: Optional[GeminiService] = None

    @classmethod
    def create(cls, config: SyncConfig) -> "SyncServices":
        vision = None
        if config.gemini.api_key:
            vision = GeminiService(config.gemini, config.pipeline)
        else:
            logger.warning("GEMINI_API_KEY not set, description generation disabled")

        return cls(
            graph=Neo4jGraphStore(config.neo4j),
            ai=OpenAIService(config.openai, config.pipeline),
            broadcaster=create_broadcaster(config.redis_url),
            vision=vision,
        )

    async def close(self) -> None:
        await self.graph.close()
        await self.ai.close()
        if self.vision is not None:
            await self.vision.close()
        await self.broadcaster.close()


def build_orchestrator(
    store: StoreConfig,
    services: SyncServices,
    adapter,
    config: SyncConfig,
    *,
    force: bool = False,
    resume: bool = True,
    cancel_token: Optional[CancellationToken] = None,
    listener: Optional[StateListener] = None,
) -> SyncOrchestrator:
    pipeline = config.pipeline
    enrichment = EnrichmentStage(
        services.ai,
        services.vision,
        cache=EmbeddingCache(),
        detect_color=pipeline.vision_color_detection,
    )
    return SyncOrchestrator(
        store,
        adapter,
        enrichment,
        PersistenceLayer(services.graph, pipeline),
        services.graph,
        CheckpointManager(store.id, pipeline.checkpoint_dir, pipeline.checkpoint_max_age_hours),
        ai=services.ai,
        broadcaster=services.broadcaster,
        pipeline=pipeline,
        force=force,
        resume=resume,
        cancel_token=cancel_token,
        listener=listener,
    )


async def run_sync(
    store_id: str,
    *,
    config: Optional[SyncConfig] = None,
    services: Optional[SyncServices] = None,
    force: bool = False,
    resume: bool = True,
    cancel_token: Optional[CancellationToken] = None,
    listener: Optional[StateListener] = None,
) -> SyncResult:
    """Sync one store end to end.

    Args:
        store_id: Store config id (TOML file stem or ``[store].id``).
        config: Process config, ``get_config()`` by default.
        services: Shared clients. Created and closed here when omitted.
        force: Re-process products already in the graph.
        resume: Continue from a saved checkpoint.

    Returns:
        SyncResult of the completed run.
    """
    config = config or get_config()
    store = load_store_config(store_id, config.stores_dir)

    owns_services = services is None
    if services is None:
        services = SyncServices.create(config)

    adapter = None
    try:
        if owns_services:
            await services.graph.ensure_schema()
        adapter = provider_registry.create(store, pipeline=config.pipeline)
        orchestrator = build_orchestrator(
            store,
            services,
            adapter,
            config,
            force=force,
            resume=resume,
            cancel_token=cancel_token,
            listener=listener,
        )
        return await orchestrator.run()
    finally:
        if adapter is not None:
            await adapter.close()
        if owns_services:
            await services.close()
