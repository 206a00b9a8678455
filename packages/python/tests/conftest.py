from datetime import date
from typing import List

import pytest

from marquee_cache.cache_store import InMemoryCacheStore
from marquee_core.settings import Settings
from marquee_core.types import MediaItem, MediaType
from marquee_recommendation.context import assemble_context
from marquee_retrieval.catalog import InMemoryCatalog
from marquee_retrieval.embedding_provider import EmbeddingProvider
from marquee_retrieval.vectorstore import InMemoryVectorStore


@pytest.fixture
def provider(hash_strategy, dim):
    return EmbeddingProvider([hash_strategy], dim=dim, timeout_s=2.0, backoff_base=0.0)


@pytest.fixture
def media_store(dim):
    return InMemoryVectorStore(dim, name="media")


@pytest.fixture
def cache():
    return InMemoryCacheStore()


@pytest.fixture
def unit_vector(dim):
    def _make(i: int, size: int = dim) -> List[float]:
        v = [0.0] * size
        v[i % size] = 1.0
        return v

    return _make


@pytest.fixture
def make_item():
    def _make(media_id: str, **kw) -> MediaItem:
        data = dict(
            id=media_id,
            title=f"Title {media_id}",
            type=MediaType.MOVIE,
            genres=["Drama"],
            rating=7.0,
            release_date=date(2020, 1, 1),
            platforms=["Netflix"],
        )
        data.update(kw)
        return MediaItem(**data)

    return _make


@pytest.fixture
def catalog():
    return InMemoryCatalog()


@pytest.fixture
def ctx(catalog, media_store, provider, cache):
    return assemble_context(
        Settings(supabase_url=None, supabase_api_key=None),
        catalog=catalog,
        media_store=media_store,
        embeddings=provider,
        cache=cache,
    )
