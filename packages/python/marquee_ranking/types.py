from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from marquee_core.types import MediaItem


@dataclass(frozen=True)
class FeatureContribution:
    feature: str  # "personal", "genre", "rating", "recency", "platform", "type"
    value: float  # feature value (pre-weight)
    weight: float  # weight used in this run
    contribution: float  # weight * value


@dataclass(frozen=True)
class ScoreBreakdown:
    features: Dict[str, FeatureContribution]  # keyed by feature name

    @property
    def total(self) -> float:
        return sum(fc.contribution for fc in self.features.values())

    def value(self, feature: str, default: float = 0.0) -> float:
        fc = self.features.get(feature)
        return fc.value if fc is not None else default


@dataclass(frozen=True)
class ScoringWeights:
    diversity: float = 0.2  # applied to the genre score
    recency: float = 0.1
    popularity: float = 0.1  # applied to the rating score
    personal: float = 0.6


@dataclass(frozen=True)
class DiversifyParams:
    diversity_factor: float = 0.3
    bonus_threshold: float = 0.2
    score_threshold: float = 0.7
    guaranteed_fraction: float = 0.5


@dataclass
class RankedItem:
    item: MediaItem
    score: float
    reasons: List[str] = field(default_factory=list)
    confidence: float = 0.5
    breakdown: ScoreBreakdown | None = None


@dataclass(frozen=True)
class ScoredHit:
    """One retrieval result with its relevance in [0, 1]."""

    item: MediaItem
    relevance: float
