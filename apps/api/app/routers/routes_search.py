import uuid
from dataclasses import asdict
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from marquee_recommendation.context import DiscoveryContext
from marquee_recommendation.search import SearchOptions

from app.deps.deps import get_ctx
from app.schemas import SearchHitOut, SearchOut, SearchRequest

router = APIRouter(prefix="/v1", tags=["search"])


def _hits_out(hits) -> List[SearchHitOut]:
    return [
        SearchHitOut(media_id=h.item.id, title=h.item.title, type=h.item.type, score=h.relevance)
        for h in hits
    ]


@router.post("/search/hybrid", response_model=SearchOut)
async def hybrid_search(
    req: SearchRequest,
    background_tasks: BackgroundTasks,
    ctx: DiscoveryContext = Depends(get_ctx),
):
    options = SearchOptions(
        limit=req.limit,
        hybrid_weight=req.hybrid_weight,
        score_threshold=req.score_threshold,
        filters=req.filters,
    )
    result = await ctx.search.hybrid_search(req.query, options)
    background_tasks.add_task(
        ctx.telemetry.log_search,
        endpoint="search/hybrid",
        query_id=req.query_id or str(uuid.uuid4()),
        query_text=req.query,
        options=options,
        hits=result.items,
        timings=result.timings,
    )
    return SearchOut(
        items=_hits_out(result.items),
        scores=asdict(result.scores),
        timings=asdict(result.timings),
        cached=result.cached,
    )


@router.get("/media/{media_id}/similar", response_model=List[SearchHitOut])
async def similar_media(
    media_id: str,
    limit: int = Query(10, ge=1, le=100),
    ctx: DiscoveryContext = Depends(get_ctx),
):
    return _hits_out(await ctx.search.similar_items(media_id, limit=limit))
