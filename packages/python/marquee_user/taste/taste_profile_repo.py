from __future__ import annotations

import logging
from typing import Optional

from anyio import to_thread
from pydantic import ValidationError

from marquee_core.errors import NotFound
from marquee_retrieval.vectorstore import VectorStore

from .schemas import PreferenceProfile, ProfileVectorMeta

log = logging.getLogger(__name__)


class VectorStoreProfileRepo:
    """
    Profiles persisted as one vector-store record per user:
    id = user_id, vector = preference vector, metadata = ProfileVectorMeta.
    """

    def __init__(self, store: VectorStore):
        self.store = store

    @property
    def dim(self) -> int:
        return self.store.dim

    # ---------- Async facade ----------
    async def get(self, user_id: str) -> Optional[PreferenceProfile]:
        return await to_thread.run_sync(self._get_sync, user_id)

    async def save(self, profile: PreferenceProfile) -> None:
        await to_thread.run_sync(self._save_sync, profile)

    async def delete(self, user_id: str) -> bool:
        return await to_thread.run_sync(self.store.delete, user_id)

    # ---------- Private sync impls ----------
    def _get_sync(self, user_id: str) -> Optional[PreferenceProfile]:
        try:
            rec = self.store.get(user_id)
        except NotFound:
            return None
        try:
            meta = ProfileVectorMeta.model_validate(rec.metadata)
        except ValidationError:
            log.error("Stored profile for %s has unreadable metadata", user_id)
            raise
        return PreferenceProfile.from_meta(user_id, rec.vector, meta)

    def _save_sync(self, profile: PreferenceProfile) -> None:
        self.store.insert(
            profile.user_id,
            profile.preference_vector,
            profile.to_meta().model_dump(mode="json"),
        )
