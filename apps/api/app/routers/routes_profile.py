import numpy as np
from fastapi import APIRouter, Depends, HTTPException

from marquee_recommendation.context import DiscoveryContext
from marquee_user.taste.analytics import InteractionStats, ProfileAnalytics
from marquee_user.taste.schemas import PreferenceProfile

from app.deps.deps import get_ctx
from app.schemas import ProfileOut

router = APIRouter(prefix="/v1/users/{user_id}/profile", tags=["profile"])


def _profile_out(p: PreferenceProfile) -> ProfileOut:
    return ProfileOut(
        user_id=p.user_id,
        genre_weights=p.genre_weights,
        platform_weights=p.platform_weights,
        content_type_weights=p.content_type_weights,
        rating_threshold=p.rating_threshold,
        interaction_count=p.interaction_count,
        last_updated=p.last_updated,
        vector_norm=float(np.linalg.norm(p.preference_vector)),
    )


@router.get("", response_model=ProfileOut)
async def get_profile(user_id: str, ctx: DiscoveryContext = Depends(get_ctx)):
    profile = await ctx.learner.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return _profile_out(profile)


@router.delete("")
async def delete_profile(user_id: str, ctx: DiscoveryContext = Depends(get_ctx)):
    deleted = await ctx.learner.delete_profile(user_id)
    return {"ok": True, "deleted": deleted}


@router.post("/rebuild", response_model=ProfileOut)
async def rebuild_profile(user_id: str, ctx: DiscoveryContext = Depends(get_ctx)):
    profile = await ctx.learner.rebuild(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return _profile_out(profile)


@router.get("/analytics", response_model=ProfileAnalytics)
async def profile_analytics(user_id: str, ctx: DiscoveryContext = Depends(get_ctx)):
    return await ctx.learner.analytics(user_id)


@router.get("/stats", response_model=InteractionStats)
async def interaction_stats(user_id: str, ctx: DiscoveryContext = Depends(get_ctx)):
    return await ctx.learner.stats(user_id)


@router.get("/export")
async def export_user_data(user_id: str, ctx: DiscoveryContext = Depends(get_ctx)):
    return await ctx.learner.export_user_data(user_id)
