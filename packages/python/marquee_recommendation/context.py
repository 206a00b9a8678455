from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from marquee_cache.cache_store import CacheStore, make_cache_store
from marquee_core.config import MEDIA_COLLECTION_NAME, PROFILE_COLLECTION_NAME
from marquee_core.settings import Settings
from marquee_core.types import LearnParams
from marquee_logging.rec_logger import TelemetryLogger
from marquee_retrieval.catalog import CatalogSource, InMemoryCatalog
from marquee_retrieval.embedding_provider import EmbeddingProvider, build_embedding_provider
from marquee_retrieval.similarity import Metric
from marquee_retrieval.vectorstore import (
    InMemoryVectorStore,
    VectorStore,
    connect_qdrant,
    make_vector_store,
)
from marquee_user.interactions.interaction_log import InteractionLog
from marquee_user.taste.taste_learner import InteractionLearner
from marquee_user.taste.taste_profile_repo import VectorStoreProfileRepo

from .personalization import PersonalizationService
from .search import HybridSearchService

log = logging.getLogger(__name__)


@dataclass
class DiscoveryContext:
    """Everything a request needs, built once per process and passed in explicitly."""

    settings: Settings
    catalog: CatalogSource
    media_store: VectorStore
    profile_store: VectorStore
    embeddings: EmbeddingProvider
    cache: CacheStore
    interactions: InteractionLog
    learner: InteractionLearner
    personalization: PersonalizationService
    search: HybridSearchService
    telemetry: TelemetryLogger


def assemble_context(
    settings: Settings,
    *,
    catalog: CatalogSource,
    media_store: VectorStore,
    embeddings: EmbeddingProvider,
    cache: CacheStore,
    profile_store: Optional[VectorStore] = None,
    telemetry: Optional[TelemetryLogger] = None,
    learn_params: LearnParams = LearnParams(),
) -> DiscoveryContext:
    """Wire services from already-built collaborators (tests pass their own)."""
    # profile magnitudes matter, so profiles never go to a normalizing backend
    profile_store = profile_store or InMemoryVectorStore(
        media_store.dim, Metric.COSINE, name=PROFILE_COLLECTION_NAME
    )
    interactions = InteractionLog(embedding_window=learn_params.rebuild_window)
    learner = InteractionLearner(
        VectorStoreProfileRepo(profile_store),
        cache,
        interactions,
        media_store=media_store,
        embeddings=embeddings,
        params=learn_params,
        profile_ttl=settings.profile_cache_ttl,
    )
    return DiscoveryContext(
        settings=settings,
        catalog=catalog,
        media_store=media_store,
        profile_store=profile_store,
        embeddings=embeddings,
        cache=cache,
        interactions=interactions,
        learner=learner,
        personalization=PersonalizationService(
            learner,
            cache,
            media_store=media_store,
            learn_params=learn_params,
            cache_ttl=settings.recommendations_cache_ttl,
        ),
        search=HybridSearchService(
            catalog, media_store, embeddings, cache, cache_ttl=settings.search_cache_ttl
        ),
        telemetry=telemetry
        or TelemetryLogger(
            settings.supabase_url, settings.supabase_api_key, sample=settings.telemetry_sample
        ),
    )


def build_context(settings: Settings, *, catalog: CatalogSource | None = None) -> DiscoveryContext:
    """Production wiring from settings."""
    qdrant = None
    if settings.vector_backend == "qdrant":
        qdrant = connect_qdrant(settings.qdrant_api_key, settings.qdrant_endpoint)
    media_store = make_vector_store(
        backend=settings.vector_backend,
        collection=MEDIA_COLLECTION_NAME,
        dim=settings.embedding_dim,
        qdrant=qdrant,
    )
    embeddings = build_embedding_provider(
        openai_api_key=settings.openai_api_key,
        model=settings.embedding_model,
        dim=settings.embedding_dim,
        timeout_s=settings.embedding_timeout_s,
        max_attempts=settings.embedding_max_attempts,
        cache_size=settings.embedding_cache_size,
        local_fallback=settings.use_local_embedding_fallback,
        local_model_name=settings.local_embedding_model,
    )
    cache = make_cache_store(
        use_redis=settings.use_redis_cache,
        redis_url=settings.redis_url,
        namespace=settings.cache_namespace,
    )
    log.info(
        "Discovery context: backend=%s dim=%d redis=%s",
        settings.vector_backend, settings.embedding_dim, settings.use_redis_cache,
    )
    return assemble_context(
        settings,
        catalog=catalog or InMemoryCatalog(),
        media_store=media_store,
        embeddings=embeddings,
        cache=cache,
    )
