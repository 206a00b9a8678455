from __future__ import annotations

from typing import Dict, List, Sequence

from marquee_core.types import MediaId, MediaItem
from marquee_ranking.types import ScoredHit


def _best_by_id(hits: Sequence[ScoredHit]) -> Dict[MediaId, ScoredHit]:
    out: Dict[MediaId, ScoredHit] = {}
    for hit in hits:
        prev = out.get(hit.item.id)
        if prev is None or hit.relevance > prev.relevance:
            out[hit.item.id] = hit
    return out


def merge_hybrid(
    keyword: Sequence[ScoredHit],
    semantic: Sequence[ScoredHit],
    *,
    hybrid_weight: float = 0.5,
    limit: int = 20,
) -> List[ScoredHit]:
    """
    Blend keyword and semantic relevance per item id.

    keyword-only: r * (1 - h); semantic-only: r * h; both: the sum of the two
    (not re-normalized). Sorted by combined score, ties by item id, so the
    result depends only on the scores and h.
    """
    if not 0.0 <= hybrid_weight <= 1.0:
        raise ValueError("hybrid_weight must be within [0, 1]")

    items: Dict[MediaId, MediaItem] = {}
    combined: Dict[MediaId, float] = {}
    for mid, hit in _best_by_id(keyword).items():
        items[mid] = hit.item
        combined[mid] = hit.relevance * (1.0 - hybrid_weight)
    for mid, hit in _best_by_id(semantic).items():
        items.setdefault(mid, hit.item)
        combined[mid] = combined.get(mid, 0.0) + hit.relevance * hybrid_weight

    ranked = sorted(combined.items(), key=lambda kv: (-kv[1], kv[0]))
    return [ScoredHit(item=items[mid], relevance=score) for mid, score in ranked[:limit]]
