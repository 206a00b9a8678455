from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from marquee_user.interactions.schemas import InteractionType, UserInteraction

from .schemas import PreferenceProfile

TOP_N = 5


class WeightedName(BaseModel):
    name: str
    weight: float


class ProfileAnalytics(BaseModel):
    total_interactions: int = 0
    top_genres: List[WeightedName] = Field(default_factory=list)
    top_platforms: List[WeightedName] = Field(default_factory=list)
    content_type_distribution: Dict[str, float] = Field(default_factory=dict)
    rating_threshold: float = 7.0
    last_activity: Optional[datetime] = None
    completeness: int = 0
    suggestions: List[str] = Field(default_factory=list)


class InteractionStats(BaseModel):
    counts: Dict[InteractionType, int] = Field(default_factory=dict)
    total: int = 0


def _top(weights: Dict[str, float], n: int = TOP_N) -> List[WeightedName]:
    ranked = sorted(weights.items(), key=lambda kv: (-kv[1], kv[0]))
    return [WeightedName(name=k, weight=v) for k, v in ranked[:n]]


def completeness(profile: Optional[PreferenceProfile]) -> tuple[int, List[str]]:
    """0-100 score of how much the profile knows, plus what would raise it."""
    score = 0
    suggestions: List[str] = []
    p = profile
    if p and any(w > 0 for w in p.genre_weights.values()):
        score += 25
    else:
        suggestions.append("Like a few titles in your favorite genres")
    if p and any(w > 0 for w in p.platform_weights.values()):
        score += 25
    else:
        suggestions.append("Watch something on your streaming platforms")
    if p and any(w > 0 for w in p.content_type_weights.values()):
        score += 20
    else:
        suggestions.append("Rate movies or shows you have seen")
    if p and p.interaction_count > 5:
        score += 30
    else:
        suggestions.append("Interact with more content to improve recommendations")
    return score, suggestions


def profile_analytics(profile: Optional[PreferenceProfile]) -> ProfileAnalytics:
    score, suggestions = completeness(profile)
    if profile is None:
        return ProfileAnalytics(completeness=score, suggestions=suggestions)

    # shares are over positive weight only; skipped or disliked types get 0
    positive = {k: max(v, 0.0) for k, v in profile.content_type_weights.items()}
    total = sum(positive.values())
    distribution = {k: (v / total if total > 0 else 0.0) for k, v in positive.items()}
    return ProfileAnalytics(
        total_interactions=profile.interaction_count,
        top_genres=_top(profile.genre_weights),
        top_platforms=_top(profile.platform_weights),
        content_type_distribution=distribution,
        rating_threshold=profile.rating_threshold,
        last_activity=profile.last_updated,
        completeness=score,
        suggestions=suggestions,
    )


def interaction_stats(interactions: Sequence[UserInteraction]) -> InteractionStats:
    counts = Counter(i.type for i in interactions)
    return InteractionStats(
        counts={t: counts.get(t, 0) for t in InteractionType},
        total=len(interactions),
    )
