from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Mapping, Optional, Sequence

import numpy as np

from marquee_core.types import MediaItem
from marquee_retrieval.similarity import cosine
from marquee_ranking.types import FeatureContribution, ScoreBreakdown, ScoringWeights
from marquee_user.taste.schemas import PreferenceProfile

NEUTRAL = 0.5


def genre_score(genres: Sequence[str], weights: Mapping[str, float]) -> float:
    if not genres:
        return NEUTRAL
    return sum(weights.get(g, 0.0) for g in genres) / len(genres)


def platform_score(platforms: Sequence[str], weights: Mapping[str, float]) -> float:
    known = [weights[p] for p in platforms if p in weights]
    return max(known) if known else 0.0


def type_score(media_type: str, weights: Mapping[str, float]) -> float:
    return weights.get(media_type, NEUTRAL)


def rating_score(rating: Optional[float]) -> float:
    return (rating or 0.0) / 10.0


def recency_score(release_date: Optional[date], now: datetime) -> float:
    """exp(-age_days / 365); unknown dates get 0, future dates count as today."""
    if release_date is None:
        return 0.0
    released = datetime(release_date.year, release_date.month, release_date.day, tzinfo=timezone.utc)
    age_days = max(0.0, (now - released).total_seconds() / 86400.0)
    return math.exp(-age_days / 365.0)


def _fc(feature: str, value: float, weight: float) -> FeatureContribution:
    return FeatureContribution(feature=feature, value=value, weight=weight, contribution=value * weight)


def score_candidate(
    profile: PreferenceProfile,
    item: MediaItem,
    embedding: np.ndarray,
    *,
    weights: ScoringWeights = ScoringWeights(),
    now: datetime | None = None,
) -> ScoreBreakdown:
    """
    Composite score of one candidate against a profile.

    Platform and type scores are carried with weight 0: they feed the
    explanation, not the ranking.
    """
    now = now or datetime.now(timezone.utc)
    return ScoreBreakdown(
        features={
            "personal": _fc("personal", cosine(profile.preference_vector, embedding), weights.personal),
            "genre": _fc("genre", genre_score(item.genres, profile.genre_weights), weights.diversity),
            "rating": _fc("rating", rating_score(item.rating), weights.popularity),
            "recency": _fc("recency", recency_score(item.release_date, now), weights.recency),
            "platform": _fc("platform", platform_score(item.platforms, profile.platform_weights), 0.0),
            "type": _fc("type", type_score(item.type.value, profile.content_type_weights), 0.0),
        }
    )
