from datetime import date

import pytest
from fastapi.testclient import TestClient

from marquee_cache.cache_store import InMemoryCacheStore
from marquee_core.settings import Settings
from marquee_core.types import MediaItem, MediaType
from marquee_recommendation.context import assemble_context
from marquee_retrieval.catalog import InMemoryCatalog
from marquee_retrieval.embedding_provider import EmbeddingProvider
from marquee_retrieval.vectorstore import InMemoryVectorStore

CATALOG = [
    MediaItem(
        id="m1",
        title="Dune Space Opera",
        type=MediaType.MOVIE,
        genres=["Action", "Sci-Fi"],
        rating=8.5,
        release_date=date(2021, 10, 22),
        platforms=["Netflix"],
    ),
    MediaItem(
        id="m2",
        title="Quiet Kitchen",
        type=MediaType.DOCUMENTARY,
        genres=["Food"],
        rating=6.5,
        release_date=date(2019, 3, 1),
        platforms=["Hulu"],
    ),
    MediaItem(
        id="m3",
        title="Starship Crew",
        type=MediaType.TV,
        genres=["Sci-Fi"],
        rating=7.8,
        release_date=date(2023, 5, 5),
        platforms=["Netflix"],
    ),
]


@pytest.fixture()
def ctx(hash_strategy, dim):
    return assemble_context(
        Settings(supabase_url=None, supabase_api_key=None),
        catalog=InMemoryCatalog(CATALOG),
        media_store=InMemoryVectorStore(dim, name="media"),
        embeddings=EmbeddingProvider([hash_strategy], dim=dim, backoff_base=0.0),
        cache=InMemoryCacheStore(),
    )


@pytest.fixture()
def test_client(ctx):
    # Import inside the fixture so no context is built at collection time
    from app.deps.deps import get_ctx  # type: ignore
    from app.main import app  # type: ignore

    app.dependency_overrides[get_ctx] = lambda: ctx

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def catalog_json():
    return [item.model_dump(mode="json") for item in CATALOG]
