import uuid
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends

from marquee_core.types import Pagination
from marquee_ranking.types import ScoringWeights
from marquee_recommendation.context import DiscoveryContext
from marquee_recommendation.personalization import RecommendationOptions

from app.deps.deps import get_ctx
from app.schemas import RankedItemOut, RecommendationsRequest

router = APIRouter(prefix="/v1/users/{user_id}/recommendations", tags=["recommendations"])


@router.post("", response_model=List[RankedItemOut])
async def recommend(
    user_id: str,
    req: RecommendationsRequest,
    background_tasks: BackgroundTasks,
    ctx: DiscoveryContext = Depends(get_ctx),
):
    if req.candidate_ids:
        found = [await ctx.catalog.find_by_id(mid) for mid in req.candidate_ids]
        candidates = [c for c in found if c is not None]
    else:
        page = await ctx.catalog.search(req.filters, Pagination(limit=req.candidate_pool))
        candidates = page.items

    options = RecommendationOptions(
        weights=ScoringWeights(**req.weights.model_dump()),
        limit=req.limit,
        diversify=req.diversify,
    )
    ranked = await ctx.personalization.get_recommendations(user_id, candidates, options)

    background_tasks.add_task(
        ctx.telemetry.log_recommendations,
        query_id=req.query_id or str(uuid.uuid4()),
        user_id=user_id,
        ranked=ranked,
    )
    return [
        RankedItemOut(
            media_id=r.item.id,
            title=r.item.title,
            type=r.item.type,
            score=r.score,
            reasons=r.reasons,
            confidence=r.confidence,
        )
        for r in ranked
    ]
