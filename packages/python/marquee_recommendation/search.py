from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from anyio import to_thread
from pydantic import BaseModel, Field

from marquee_cache.cache_store import CacheStore
from marquee_core.config import CACHE_SEARCH_NS, SEARCH_CACHE_TTL
from marquee_core.types import MediaId, MediaItem, Pagination, SearchFilters
from marquee_ranking.hybrid import merge_hybrid
from marquee_ranking.types import ScoredHit
from marquee_retrieval.catalog import CatalogSource, item_matches
from marquee_retrieval.embedding_provider import EmbeddingProvider
from marquee_retrieval.keyword import keyword_relevance, query_terms
from marquee_retrieval.metadata import MediaVectorMeta
from marquee_retrieval.vectorstore import VectorRecord, VectorStore, as_vector

log = logging.getLogger(__name__)


class SearchOptions(BaseModel):
    limit: int = Field(default=20, ge=1, le=100)
    hybrid_weight: float = Field(default=0.5, ge=0.0, le=1.0)  # 0 = keyword only, 1 = semantic only
    score_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    use_cache: bool = True


@dataclass(frozen=True)
class SearchScores:
    keyword: float = 0.0
    semantic: float = 0.0
    hybrid: float = 0.0


@dataclass(frozen=True)
class SearchTimings:
    keyword_ms: float = 0.0
    semantic_ms: float = 0.0
    total_ms: float = 0.0


@dataclass
class HybridSearchResult:
    items: List[ScoredHit] = field(default_factory=list)
    scores: SearchScores = field(default_factory=SearchScores)
    timings: SearchTimings = field(default_factory=SearchTimings)
    cached: bool = False


def _avg(hits: Sequence[ScoredHit]) -> float:
    return sum(h.relevance for h in hits) / len(hits) if hits else 0.0


def _clamp01(x: float) -> float:
    return 0.0 if x <= 0.0 else 1.0 if x >= 1.0 else x


def _vector_filter(filters: SearchFilters) -> Optional[Dict[str, Any]]:
    # only single-value equality can be pushed into the index; the rest is post-filtered
    if len(filters.types) == 1:
        return {"media_type": filters.types[0].value}
    return None


class HybridSearchService:
    """Keyword + vector retrieval over the catalog, merged into one ranking."""

    def __init__(
        self,
        catalog: CatalogSource,
        media_store: VectorStore,
        embeddings: EmbeddingProvider,
        cache: CacheStore,
        *,
        cache_ttl: int = SEARCH_CACHE_TTL,
    ):
        self.catalog = catalog
        self.media_store = media_store
        self.embeddings = embeddings
        self.cache = cache
        self.cache_ttl = cache_ttl

    # ---------- legs ----------
    async def _resolve(self, ids: Sequence[MediaId]) -> List[Optional[MediaItem]]:
        return list(await asyncio.gather(*(self.catalog.find_by_id(i) for i in ids)))

    async def semantic_search(self, query: str, options: SearchOptions) -> List[ScoredHit]:
        vec = await self.embeddings.embed(query)
        hits = await to_thread.run_sync(
            lambda: self.media_store.search(
                vec,
                options.limit * 2,
                filter=_vector_filter(options.filters),
                min_score=options.score_threshold,
            )
        )
        items = await self._resolve([h.id for h in hits])
        out: List[ScoredHit] = []
        for hit, item in zip(hits, items):
            if item is None or not item_matches(item, options.filters):
                continue
            out.append(ScoredHit(item=item, relevance=_clamp01(hit.score)))
        return out[: options.limit]

    async def keyword_search(self, query: str, options: SearchOptions) -> List[ScoredHit]:
        page = await self.catalog.search(options.filters, Pagination(limit=options.limit * 2))
        terms = query_terms(query)
        scored = [ScoredHit(item=i, relevance=keyword_relevance(i, terms)) for i in page.items]
        scored = [s for s in scored if s.relevance > 0.0]
        scored.sort(key=lambda s: -s.relevance)
        return scored[: options.limit]

    async def _timed(self, coro):
        t0 = time.perf_counter()
        out = await coro
        return out, (time.perf_counter() - t0) * 1000

    # ---------- cache ----------
    @staticmethod
    def _cache_key(query: str, options: SearchOptions) -> str:
        blob = json.dumps(
            {"q": " ".join(query.lower().split()), "o": options.model_dump(mode="json", exclude={"use_cache"})},
            sort_keys=True,
            separators=(",", ":"),
        )
        return f"{CACHE_SEARCH_NS}:{hashlib.sha256(blob.encode('utf-8')).hexdigest()}"

    @staticmethod
    def _to_cache(result: HybridSearchResult) -> dict:
        return {
            "items": [
                {"item": h.item.model_dump(mode="json", exclude={"embedding"}), "relevance": h.relevance}
                for h in result.items
            ],
            "scores": result.scores.__dict__,
            "timings": result.timings.__dict__,
        }

    @staticmethod
    def _from_cache(data: dict) -> HybridSearchResult:
        return HybridSearchResult(
            items=[
                ScoredHit(item=MediaItem.model_validate(row["item"]), relevance=float(row["relevance"]))
                for row in data["items"]
            ],
            scores=SearchScores(**data["scores"]),
            timings=SearchTimings(**data["timings"]),
            cached=True,
        )

    # ---------- public ----------
    async def hybrid_search(self, query: str, options: SearchOptions = SearchOptions()) -> HybridSearchResult:
        """
        Run keyword and semantic retrieval concurrently and blend them.

        EmbeddingUnavailable from the query embedding propagates. Cancelling
        the caller cancels both legs.
        """
        if not query or not query.strip():
            raise ValueError("query must not be empty")

        key = self._cache_key(query, options)
        if options.use_cache:
            cached = await self.cache.get(key)
            if cached is not None:
                return self._from_cache(cached)

        t0 = time.perf_counter()
        kw_task = asyncio.ensure_future(self._timed(self.keyword_search(query, options)))
        try:
            semantic, semantic_ms = await self._timed(self.semantic_search(query, options))
            keyword, keyword_ms = await kw_task
        finally:
            if not kw_task.done():
                kw_task.cancel()
            elif not kw_task.cancelled():
                # mark a failed keyword leg as retrieved when the semantic leg raised first
                kw_task.exception()

        merged = merge_hybrid(keyword, semantic, hybrid_weight=options.hybrid_weight, limit=options.limit)
        result = HybridSearchResult(
            items=merged,
            scores=SearchScores(keyword=_avg(keyword), semantic=_avg(semantic), hybrid=_avg(merged)),
            timings=SearchTimings(
                keyword_ms=keyword_ms,
                semantic_ms=semantic_ms,
                total_ms=(time.perf_counter() - t0) * 1000,
            ),
        )
        if options.use_cache:
            await self.cache.set(key, self._to_cache(result), self.cache_ttl)
        log.info(
            "hybrid search: %d keyword, %d semantic, %d merged in %.1fms",
            len(keyword), len(semantic), len(merged), result.timings.total_ms,
        )
        return result

    async def similar_items(self, media_id: MediaId, *, limit: int = 10, score_threshold: float = 0.7) -> List[ScoredHit]:
        """Nearest catalog items to an indexed item, excluding the item itself. NotFound propagates."""
        source = await to_thread.run_sync(self.media_store.get, media_id)
        hits = await to_thread.run_sync(
            lambda: self.media_store.search(source.vector, limit + 1, min_score=score_threshold)
        )
        hits = [h for h in hits if h.id != media_id][:limit]
        items = await self._resolve([h.id for h in hits])
        return [
            ScoredHit(item=item, relevance=_clamp01(h.score))
            for h, item in zip(hits, items)
            if item is not None
        ]

    # ---------- index maintenance ----------
    async def index_media(self, items: Sequence[MediaItem]) -> int:
        """Embed (where needed) and upsert items into the media index."""
        if not items:
            return 0
        dim = self.media_store.dim
        ready = {i.id: as_vector(i.embedding) for i in items if i.embedding is not None and len(i.embedding) == dim}
        todo = [i for i in items if i.id not in ready]
        if todo:
            ready.update(await self.embeddings.embed_items(todo))
        records = [
            VectorRecord(id=i.id, vector=ready[i.id], metadata=MediaVectorMeta.from_item(i).to_payload())
            for i in items
        ]
        n = await to_thread.run_sync(self.media_store.upsert_many, records)
        await self.cache.delete_prefix(f"{CACHE_SEARCH_NS}:")
        log.info("indexed %d media items (%d embedded)", n, len(todo))
        return n

    async def remove_from_index(self, media_id: MediaId) -> bool:
        removed = await to_thread.run_sync(self.media_store.delete, media_id)
        if removed:
            await self.cache.delete_prefix(f"{CACHE_SEARCH_NS}:")
        return removed

    async def index_stats(self) -> Dict[str, Any]:
        count = await to_thread.run_sync(self.media_store.count)
        return {
            "count": count,
            "dim": self.media_store.dim,
            "metric": self.media_store.metric.value,
        }
