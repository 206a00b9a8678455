from __future__ import annotations

from datetime import date
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from marquee_core.types import MediaItem

from .text_formatting import EMBEDDING_TEXT_VERSION


class MediaVectorMeta(BaseModel):
    """Metadata persisted next to a media embedding; flat so stores can filter on it."""

    kind: Literal["media"] = "media"
    media_type: str
    title: str
    genres: List[str] = Field(default_factory=list)
    platforms: List[str] = Field(default_factory=list)
    rating: Optional[float] = None
    release_date: Optional[date] = None
    extras: Dict[str, str] = Field(default_factory=dict)  # catalog-specific, open-ended
    text_version: int = EMBEDDING_TEXT_VERSION

    @classmethod
    def from_item(cls, item: MediaItem, **extras: str) -> "MediaVectorMeta":
        return cls(
            media_type=item.type.value,
            title=item.title,
            genres=list(item.genres),
            platforms=list(item.platforms),
            rating=item.rating,
            release_date=item.release_date,
            extras=dict(extras),
        )

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
