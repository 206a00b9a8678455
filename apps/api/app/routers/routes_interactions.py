from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from marquee_core.errors import NotFound
from marquee_recommendation.context import DiscoveryContext
from marquee_user.interactions.schemas import parse_interaction

from app.deps.deps import get_ctx
from app.schemas import InteractionCreateRequest, LearnOut

router = APIRouter(prefix="/v1/users/{user_id}/interactions", tags=["interactions"])


@router.post("", status_code=201, response_model=LearnOut)
async def create_interaction(
    user_id: str,
    req: InteractionCreateRequest,
    ctx: DiscoveryContext = Depends(get_ctx),
):
    item = await ctx.catalog.find_by_id(req.media_id)
    if item is None:
        raise NotFound(f"media '{req.media_id}' not found")
    interaction = parse_interaction(
        {
            **req.model_dump(exclude_none=True),
            "user_id": user_id,
            "timestamp": req.timestamp or datetime.now(timezone.utc),
        }
    )
    outcome = await ctx.learner.learn(user_id, interaction, item)
    return LearnOut(
        user_id=user_id,
        media_id=item.id,
        weight=outcome.weight,
        vector_updated=outcome.vector_updated,
        interaction_count=outcome.profile.interaction_count,
    )
