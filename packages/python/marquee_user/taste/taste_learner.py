from __future__ import annotations

import asyncio
import logging
import math
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import numpy as np
from anyio import to_thread

from marquee_cache.cache_store import CacheStore, invalidate_user, profile_key
from marquee_core.config import PROFILE_CACHE_TTL
from marquee_core.errors import EmbeddingUnavailable, InvalidInteraction, NotFound
from marquee_core.types import LearnParams, MediaItem
from marquee_retrieval.embedding_provider import EmbeddingProvider
from marquee_retrieval.vectorstore import VectorStore
from marquee_user.interactions.interaction_log import InteractionLog
from marquee_user.interactions.schemas import UserInteraction
from marquee_user.signals.decay import blend
from marquee_user.signals.weights import interaction_weight

from .analytics import InteractionStats, ProfileAnalytics, interaction_stats, profile_analytics
from .schemas import PreferenceProfile
from .taste_builder import build_preference_vector
from .taste_profile_repo import VectorStoreProfileRepo

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LearnOutcome:
    profile: PreferenceProfile
    weight: float
    vector_updated: bool


def _blend_map(weights: Dict[str, float], keys, w: float, keep: float) -> None:
    for key in keys:
        updated = blend(weights.get(key, 0.0), w, keep)
        if math.isfinite(updated):
            weights[key] = updated


class InteractionLearner:
    """
    Owns preference profiles: incremental learning from interactions,
    cached reads, rebuilds, analytics and erasure.

    Every mutation of a user's profile runs under that user's lock; different
    users never contend.
    """

    def __init__(
        self,
        repo: VectorStoreProfileRepo,
        cache: CacheStore,
        log_store: InteractionLog,
        *,
        media_store: VectorStore | None = None,
        embeddings: EmbeddingProvider | None = None,
        params: LearnParams = LearnParams(),
        profile_ttl: int = PROFILE_CACHE_TTL,
    ):
        self.repo = repo
        self.cache = cache
        self.interactions = log_store
        self.media_store = media_store
        self.embeddings = embeddings
        self.params = params
        self.profile_ttl = profile_ttl
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    @property
    def dim(self) -> int:
        return self.repo.dim

    # ---------- validation / embeddings ----------
    def _validate(self, user_id: str, interaction: UserInteraction, item: MediaItem) -> None:
        if not user_id:
            raise InvalidInteraction("user_id is required")
        if interaction.user_id != user_id:
            raise InvalidInteraction("interaction belongs to a different user")
        if interaction.media_id != item.id:
            raise InvalidInteraction("interaction does not refer to the given item")
        if interaction.embedding is not None and len(interaction.embedding) != self.dim:
            raise InvalidInteraction(
                f"interaction embedding has length {len(interaction.embedding)}, expected {self.dim}"
            )

    async def _resolve_embedding(self, interaction: UserInteraction, item: MediaItem) -> Optional[np.ndarray]:
        if interaction.embedding is not None:
            return np.asarray(interaction.embedding, dtype=np.float32)
        if item.embedding is not None:
            if len(item.embedding) == self.dim:
                return np.asarray(item.embedding, dtype=np.float32)
            log.warning("Item %s embedding has length %d, expected %d", item.id, len(item.embedding), self.dim)
        if self.media_store is not None and self.media_store.dim == self.dim:
            try:
                rec = await to_thread.run_sync(self.media_store.get, item.id)
                return rec.vector
            except NotFound:
                pass
        if self.embeddings is not None:
            try:
                return await self.embeddings.embed_item(item)
            except EmbeddingUnavailable as e:
                log.warning("No embedding for %s (%s); skipping vector update", item.id, e.kind)
        return None

    # ---------- reads ----------
    async def _load(self, user_id: str) -> Optional[PreferenceProfile]:
        return await self.repo.get(user_id)

    async def get_profile(self, user_id: str) -> Optional[PreferenceProfile]:
        """Cached read; None for users with no profile yet."""
        cached = await self.cache.get(profile_key(user_id))
        if cached is not None:
            return PreferenceProfile.from_cache(cached)
        async with self._lock(user_id):
            profile = await self._load(user_id)
            if profile is not None:
                await self.cache.set(profile_key(user_id), profile.to_cache(), self.profile_ttl)
        return profile

    # ---------- writes ----------
    def _apply(
        self,
        profile: PreferenceProfile,
        item: MediaItem,
        weight: float,
        embedding: Optional[np.ndarray],
        now: datetime,
    ) -> tuple[PreferenceProfile, bool]:
        p = profile.copy()
        keep = self.params.map_decay
        vector_updated = False

        if embedding is not None and weight != 0.0:
            alpha = self.params.alpha_base * weight
            updated = p.preference_vector * (1.0 - alpha) + embedding * alpha
            if np.all(np.isfinite(updated)):
                p.preference_vector = updated.astype(np.float32)
                vector_updated = True
            else:
                log.warning("Non-finite preference vector for %s; vector update dropped", p.user_id)

        _blend_map(p.genre_weights, item.genres, weight, keep)
        _blend_map(p.platform_weights, item.platforms, weight, keep)
        _blend_map(p.content_type_weights, [item.type.value], weight, keep)

        if item.rating is not None and weight > 0:
            p.rating_threshold = blend(p.rating_threshold, item.rating, keep)

        p.interaction_count += 1
        p.last_updated = now
        return p, vector_updated

    async def _restore(self, user_id: str, previous: Optional[PreferenceProfile]) -> None:
        if previous is None:
            await self.repo.delete(user_id)
        else:
            await self.repo.save(previous)
        try:
            await invalidate_user(self.cache, user_id)
        except Exception as e:
            log.warning("Cache invalidation for %s failed again during rollback: %s", user_id, e)

    async def _commit(
        self,
        profile: PreferenceProfile,
        logged: UserInteraction | None,
        previous: Optional[PreferenceProfile],
    ) -> None:
        # the log is appended last: nothing after it can fail
        await self.repo.save(profile)
        try:
            await invalidate_user(self.cache, profile.user_id)
        except Exception:
            log.error("Cache invalidation for %s failed; restoring previous profile", profile.user_id)
            await self._restore(profile.user_id, previous)
            raise
        if logged is not None:
            self.interactions.append(logged)

    async def _commit_shielded(
        self,
        profile: PreferenceProfile,
        logged: UserInteraction | None,
        previous: Optional[PreferenceProfile],
    ) -> None:
        # once started, a commit runs to completion even if the caller goes away,
        # and the user's lock is held until it has
        task = asyncio.ensure_future(self._commit(profile, logged, previous))
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            await task
            raise

    async def learn(self, user_id: str, interaction: UserInteraction, item: MediaItem) -> LearnOutcome:
        """
        Fold one interaction into the user's profile.

        All-or-nothing: updates are computed on a copy, persisted and
        cache-invalidated, and only then logged. A failed invalidation
        restores the previous profile before the error propagates.
        """
        self._validate(user_id, interaction, item)
        weight = interaction_weight(interaction, self.params)
        embedding = await self._resolve_embedding(interaction, item)

        async with self._lock(user_id):
            stored = await self._load(user_id)
            current = stored
            if current is None:
                current = PreferenceProfile.neutral(
                    user_id, self.dim, rating_threshold=self.params.rating_threshold_seed
                )
            now = datetime.now(timezone.utc)
            updated, vector_updated = self._apply(current, item, weight, embedding, now)

            logged = interaction
            if interaction.embedding is None and embedding is not None:
                logged = interaction.model_copy(update={"embedding": [float(x) for x in embedding]})
            await self._commit_shielded(updated, logged, stored)

        log.debug(
            "learned %s on %s for %s (w=%.2f, vector=%s, n=%d)",
            interaction.type.value, item.id, user_id, weight, vector_updated, updated.interaction_count,
        )
        return LearnOutcome(profile=updated, weight=weight, vector_updated=vector_updated)

    async def rebuild(self, user_id: str) -> Optional[PreferenceProfile]:
        """Recompute the preference vector from the most recent logged interactions."""
        async with self._lock(user_id):
            current = await self._load(user_id)
            if current is None:
                return None
            recent = self.interactions.recent(user_id, self.params.rebuild_window)
            now = datetime.now(timezone.utc)
            vector, debug = build_preference_vector(recent, dim=self.dim, now=now, params=self.params)
            if vector is None:
                log.info("Rebuild for %s found no usable interactions: %s", user_id, debug)
                return current
            updated = current.copy()
            updated.preference_vector = vector
            updated.last_updated = now
            await self._commit_shielded(updated, None, current)
        log.info("Rebuilt profile for %s from %d interactions", user_id, debug["used"])
        return updated

    async def delete_profile(self, user_id: str) -> bool:
        """Erase the stored profile, its interaction log and every cached copy."""
        async with self._lock(user_id):
            existed = await self.repo.delete(user_id)
            dropped = self.interactions.forget(user_id)
            await invalidate_user(self.cache, user_id)
        log.info("Deleted profile for %s (existed=%s, interactions=%d)", user_id, existed, dropped)
        return existed

    # ---------- reporting ----------
    async def analytics(self, user_id: str) -> ProfileAnalytics:
        return profile_analytics(await self.get_profile(user_id))

    async def stats(self, user_id: str) -> InteractionStats:
        return interaction_stats(self.interactions.all(user_id))

    async def export_user_data(self, user_id: str) -> Dict[str, Any]:
        profile = await self.get_profile(user_id)
        return {
            "user_id": user_id,
            "profile": profile.to_cache() if profile else None,
            "analytics": profile_analytics(profile).model_dump(mode="json"),
            "interactions": [
                i.model_dump(mode="json", exclude={"embedding"}) for i in self.interactions.all(user_id)
            ],
        }
