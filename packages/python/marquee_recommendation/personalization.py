from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import numpy as np
from anyio import to_thread

from marquee_cache.cache_store import CacheStore
from marquee_core.config import CACHE_RECOMMENDATIONS_NS, RECOMMENDATIONS_CACHE_TTL
from marquee_core.errors import NotFound
from marquee_core.types import LearnParams, MediaId, MediaItem
from marquee_ranking.diversification import diversify_by_genre
from marquee_ranking.explain import (
    COLD_START_CONFIDENCE,
    COLD_START_REASON,
    confidence,
    reasons_for,
)
from marquee_ranking.metadata import score_candidate
from marquee_ranking.types import (
    DiversifyParams,
    FeatureContribution,
    RankedItem,
    ScoreBreakdown,
    ScoringWeights,
)
from marquee_retrieval.vectorstore import VectorStore
from marquee_user.taste.schemas import PreferenceProfile
from marquee_user.taste.taste_learner import InteractionLearner

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecommendationOptions:
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    limit: int = 20
    diversify: bool = True
    diversify_params: DiversifyParams = field(default_factory=DiversifyParams)


def _request_digest(candidates: Sequence[MediaItem], options: RecommendationOptions) -> str:
    blob = json.dumps(
        {"ids": [c.id for c in candidates], "options": asdict(options)},
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()[:24]


def _to_cache(ranked: List[RankedItem]) -> List[dict]:
    return [
        {
            "id": r.item.id,
            "score": r.score,
            "reasons": r.reasons,
            "confidence": r.confidence,
            "features": (
                {k: asdict(fc) for k, fc in r.breakdown.features.items()} if r.breakdown else None
            ),
        }
        for r in ranked
    ]


def _from_cache(rows: List[dict], by_id: Dict[MediaId, MediaItem]) -> Optional[List[RankedItem]]:
    out: List[RankedItem] = []
    for row in rows:
        item = by_id.get(row["id"])
        if item is None:
            return None
        features = row.get("features")
        out.append(
            RankedItem(
                item=item,
                score=float(row["score"]),
                reasons=list(row["reasons"]),
                confidence=float(row["confidence"]),
                breakdown=(
                    ScoreBreakdown({k: FeatureContribution(**v) for k, v in features.items()})
                    if features
                    else None
                ),
            )
        )
    return out


def cold_start(candidates: Sequence[MediaItem], limit: int) -> List[RankedItem]:
    """Rating-descending popularity list for users we know too little about."""
    ordered = sorted(candidates, key=lambda c: -(c.rating or 0.0))  # stable
    return [
        RankedItem(
            item=c,
            score=(c.rating or 0.0) / 10.0,
            reasons=[COLD_START_REASON],
            confidence=COLD_START_CONFIDENCE,
        )
        for c in ordered[:limit]
    ]


class PersonalizationService:
    def __init__(
        self,
        learner: InteractionLearner,
        cache: CacheStore,
        *,
        media_store: VectorStore | None = None,
        learn_params: LearnParams = LearnParams(),
        cache_ttl: int = RECOMMENDATIONS_CACHE_TTL,
    ):
        self.learner = learner
        self.cache = cache
        self.media_store = media_store
        self.learn_params = learn_params
        self.cache_ttl = cache_ttl

    def _lookup_embeddings(self, ids: List[MediaId]) -> Dict[MediaId, np.ndarray]:
        out: Dict[MediaId, np.ndarray] = {}
        if self.media_store is None:
            return out
        for mid in ids:
            try:
                out[mid] = self.media_store.get(mid).vector
            except NotFound:
                continue
        return out

    async def _resolve_embeddings(self, candidates: Sequence[MediaItem], dim: int) -> Dict[MediaId, np.ndarray]:
        out: Dict[MediaId, np.ndarray] = {}
        missing: List[MediaId] = []
        for c in candidates:
            if c.embedding is not None and len(c.embedding) == dim:
                out[c.id] = np.asarray(c.embedding, dtype=np.float32)
            else:
                missing.append(c.id)
        if missing:
            found = await to_thread.run_sync(self._lookup_embeddings, missing)
            out.update({k: v for k, v in found.items() if v.shape[0] == dim})
        return out

    def _rank(
        self,
        profile: PreferenceProfile,
        candidates: Sequence[MediaItem],
        embeddings: Dict[MediaId, np.ndarray],
        options: RecommendationOptions,
    ) -> List[RankedItem]:
        now = datetime.now(timezone.utc)
        conf = confidence(profile.interaction_count)
        ranked: List[RankedItem] = []
        for c in candidates:
            emb = embeddings.get(c.id)
            if emb is None:
                continue
            breakdown = score_candidate(profile, c, emb, weights=options.weights, now=now)
            ranked.append(
                RankedItem(
                    item=c,
                    score=breakdown.total,
                    reasons=reasons_for(c, breakdown, profile.rating_threshold),
                    confidence=conf,
                    breakdown=breakdown,
                )
            )
        # stable: ties keep candidate order
        ranked.sort(key=lambda r: -r.score)
        return ranked

    async def get_recommendations(
        self,
        user_id: str,
        candidates: Sequence[MediaItem],
        options: RecommendationOptions = RecommendationOptions(),
    ) -> List[RankedItem]:
        t0 = time.perf_counter()
        profile = await self.learner.get_profile(user_id)
        if profile is None or profile.interaction_count < self.learn_params.cold_start_min_interactions:
            out = cold_start(candidates, options.limit)
            log.info("cold start recommendations for %s: %d items", user_id, len(out))
            return out

        by_id = {c.id: c for c in candidates}
        key = f"{CACHE_RECOMMENDATIONS_NS}:{user_id}:{profile.version}:{_request_digest(candidates, options)}"
        cached = await self.cache.get(key)
        if cached is not None:
            hit = _from_cache(cached, by_id)
            if hit is not None:
                return hit

        embeddings = await self._resolve_embeddings(candidates, profile.preference_vector.shape[0])
        skipped = len(candidates) - len(embeddings)
        if skipped:
            log.warning("skipped %d candidates without embeddings for %s", skipped, user_id)

        ranked = self._rank(profile, candidates, embeddings, options)
        if options.diversify:
            out = diversify_by_genre(ranked, limit=options.limit, params=options.diversify_params)
        else:
            out = ranked[: options.limit]

        await self.cache.set(key, _to_cache(out), self.cache_ttl)
        log.info(
            "recommendations for %s: %d/%d candidates in %.1fms",
            user_id, len(out), len(candidates), (time.perf_counter() - t0) * 1000,
        )
        return out
