from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from marquee_core.errors import InvalidInteraction
from marquee_core.types import MediaId


class InteractionType(str, Enum):
    VIEW = "view"
    LIKE = "like"
    DISLIKE = "dislike"
    WATCH = "watch"
    SKIP = "skip"
    SEARCH = "search"


class UserInteraction(BaseModel):
    """One immutable user event against a media item."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    media_id: MediaId = Field(min_length=1)
    type: InteractionType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration: Optional[float] = Field(default=None, ge=0.0)  # seconds watched
    completion: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    rating: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    embedding: Optional[List[float]] = None

    @field_validator("timestamp")
    @classmethod
    def _tz_aware(cls, v: datetime) -> datetime:
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)

    @field_validator("duration", "completion", "rating")
    @classmethod
    def _finite(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not math.isfinite(v):
            raise ValueError("must be a finite number")
        return v


def parse_interaction(data: Mapping[str, Any]) -> UserInteraction:
    """Build an interaction from untrusted input, raising InvalidInteraction on bad fields."""
    try:
        return UserInteraction.model_validate(dict(data))
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise InvalidInteraction(f"invalid interaction fields: {fields}") from e
