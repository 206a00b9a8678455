from __future__ import annotations

import math
from typing import List

from marquee_core.types import MediaItem
from marquee_ranking.types import ScoreBreakdown

COLD_START_REASON = "Popular with other users"
COLD_START_CONFIDENCE = 0.5
MAX_REASONS = 3


def confidence(interaction_count: int) -> float:
    return 1.0 / (1.0 + math.exp(-0.1 * (interaction_count - 20)))


def reasons_for(item: MediaItem, breakdown: ScoreBreakdown, rating_threshold: float) -> List[str]:
    out: List[str] = []
    if breakdown.value("genre") > 0.7 and item.genres:
        out.append(f"You enjoy {' and '.join(item.genres[:2])} content")
    if breakdown.value("personal") > 0.8:
        out.append("Matches your viewing preferences")
    if item.rating is not None and item.rating > rating_threshold:
        out.append(f"Highly rated ({item.rating:g}/10)")
    if breakdown.value("platform") > 0.7:
        out.append("Available on your preferred platforms")
    return out[:MAX_REASONS]
