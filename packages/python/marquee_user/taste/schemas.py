from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Literal

import numpy as np
from pydantic import BaseModel, Field


class ProfileVectorMeta(BaseModel):
    """Metadata blob persisted next to a profile's preference vector."""

    kind: Literal["profile"] = "profile"
    genre_weights: Dict[str, float] = Field(default_factory=dict)
    platform_weights: Dict[str, float] = Field(default_factory=dict)
    content_type_weights: Dict[str, float] = Field(default_factory=dict)
    rating_threshold: float = 7.0
    interaction_count: int = 0
    last_updated: datetime


@dataclass
class PreferenceProfile:
    user_id: str
    preference_vector: np.ndarray
    genre_weights: Dict[str, float] = field(default_factory=dict)
    platform_weights: Dict[str, float] = field(default_factory=dict)
    content_type_weights: Dict[str, float] = field(default_factory=dict)
    rating_threshold: float = 7.0
    interaction_count: int = 0
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def neutral(cls, user_id: str, dim: int, *, rating_threshold: float = 7.0) -> "PreferenceProfile":
        return cls(
            user_id=user_id,
            preference_vector=np.zeros(dim, dtype=np.float32),
            rating_threshold=rating_threshold,
        )

    @property
    def version(self) -> str:
        """Changes on every learned interaction; used in derived cache keys."""
        return f"{self.interaction_count}-{int(self.last_updated.timestamp() * 1000)}"

    def copy(self) -> "PreferenceProfile":
        return PreferenceProfile(
            user_id=self.user_id,
            preference_vector=np.array(self.preference_vector, dtype=np.float32, copy=True),
            genre_weights=dict(self.genre_weights),
            platform_weights=dict(self.platform_weights),
            content_type_weights=dict(self.content_type_weights),
            rating_threshold=self.rating_threshold,
            interaction_count=self.interaction_count,
            last_updated=self.last_updated,
        )

    def to_meta(self) -> ProfileVectorMeta:
        return ProfileVectorMeta(
            genre_weights=dict(self.genre_weights),
            platform_weights=dict(self.platform_weights),
            content_type_weights=dict(self.content_type_weights),
            rating_threshold=self.rating_threshold,
            interaction_count=self.interaction_count,
            last_updated=self.last_updated,
        )

    @classmethod
    def from_meta(cls, user_id: str, vector: np.ndarray, meta: ProfileVectorMeta) -> "PreferenceProfile":
        return cls(
            user_id=user_id,
            preference_vector=np.array(vector, dtype=np.float32, copy=True),
            genre_weights=dict(meta.genre_weights),
            platform_weights=dict(meta.platform_weights),
            content_type_weights=dict(meta.content_type_weights),
            rating_threshold=meta.rating_threshold,
            interaction_count=meta.interaction_count,
            last_updated=meta.last_updated,
        )

    # ---- cache (JSON) ----
    def to_cache(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "vector": [float(x) for x in self.preference_vector],
            "meta": self.to_meta().model_dump(mode="json"),
        }

    @classmethod
    def from_cache(cls, data: Dict[str, Any]) -> "PreferenceProfile":
        meta = ProfileVectorMeta.model_validate(data["meta"])
        return cls.from_meta(data["user_id"], np.asarray(data["vector"], dtype=np.float32), meta)
