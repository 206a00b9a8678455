from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from marquee_core.config import (
    EMBEDDING_DIM,
    LOCAL_EMBEDDING_MODEL,
    OPENAI_EMBEDDING_MODEL,
    PROFILE_CACHE_TTL,
    RECOMMENDATIONS_CACHE_TTL,
    SEARCH_CACHE_TTL,
)


class Settings(BaseSettings):
    app_name: str = "Marquee Discovery API"
    log_level: str = "INFO"
    # embeddings
    openai_api_key: str | None = None
    embedding_model: str = OPENAI_EMBEDDING_MODEL
    embedding_dim: int = EMBEDDING_DIM
    embedding_timeout_s: float = 10.0
    embedding_max_attempts: int = 3
    embedding_cache_size: int = 4096
    use_local_embedding_fallback: bool = True
    local_embedding_model: str = LOCAL_EMBEDDING_MODEL
    # vector store
    vector_backend: Literal["memory", "qdrant"] = "memory"
    qdrant_endpoint: str | None = None
    qdrant_api_key: str | None = None
    # cache
    use_redis_cache: bool = False
    redis_url: str | None = None
    cache_namespace: str = "marquee:"
    profile_cache_ttl: int = PROFILE_CACHE_TTL
    recommendations_cache_ttl: int = RECOMMENDATIONS_CACHE_TTL
    search_cache_ttl: int = SEARCH_CACHE_TTL
    # telemetry
    supabase_url: str | None = None
    supabase_api_key: str | None = None
    telemetry_sample: float = 1.0
    # env config
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
