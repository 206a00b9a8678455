from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from marquee_core.types import LearnParams
from marquee_user.interactions.schemas import UserInteraction
from marquee_user.signals.weights import engagement_weight, rebuild_weight


def build_preference_vector(
    interactions: Sequence[UserInteraction],
    *,
    dim: int,
    now: datetime,
    params: LearnParams = LearnParams(),
) -> Tuple[Optional[np.ndarray], Dict[str, Any]]:
    """
    Recompute a preference vector from logged interactions.

    Weighted mean of the interaction embeddings, weight = 30-day recency
    decay * engagement. Interactions without an embedding of the right size
    are ignored. Returns (None, debug) when nothing usable remains.
    """
    acc = np.zeros(dim, dtype=np.float64)
    total = 0.0
    used = 0
    skipped = 0
    for it in interactions:
        if it.embedding is None or len(it.embedding) != dim:
            skipped += 1
            continue
        w = rebuild_weight(it, now, params)
        if w <= 0.0:
            continue
        acc += w * np.asarray(it.embedding, dtype=np.float64)
        total += w
        used += 1

    debug = {
        "used": used,
        "skipped_no_embedding": skipped,
        "total_weight": total,
        "mean_engagement": (
            float(np.mean([engagement_weight(i) for i in interactions])) if interactions else 0.0
        ),
    }
    if total <= 0.0:
        return None, debug
    return (acc / total).astype(np.float32), debug
