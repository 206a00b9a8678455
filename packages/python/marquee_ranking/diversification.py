from __future__ import annotations

from typing import List

from marquee_ranking.types import DiversifyParams, RankedItem


def diversify_by_genre(
    ranked: List[RankedItem],  # descending score order
    *,
    limit: int,
    params: DiversifyParams = DiversifyParams(),
) -> List[RankedItem]:
    """
    Greedy genre-spreading selection over an already ranked list.

    An item is taken when it brings enough unseen genres, scores above the
    score threshold, or the guaranteed share of slots is not yet filled.
    Remaining slots are then filled with the best unselected items, appended
    after the greedy picks.
    """
    if limit <= 0:
        return []
    selected: List[RankedItem] = []
    taken: set[str] = set()
    seen_genres: set[str] = set()

    for r in ranked:
        if len(selected) >= limit:
            break
        new_genres = [g for g in r.item.genres if g not in seen_genres]
        bonus = len(new_genres) * params.diversity_factor
        if (
            bonus > params.bonus_threshold
            or r.score > params.score_threshold
            or len(selected) < limit * params.guaranteed_fraction
        ):
            selected.append(r)
            taken.add(r.item.id)
            seen_genres.update(r.item.genres)

    for r in ranked:
        if len(selected) >= limit:
            break
        if r.item.id not in taken:
            selected.append(r)
            taken.add(r.item.id)

    return selected
