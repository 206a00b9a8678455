from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

MediaId = str


class MediaType(str, Enum):
    MOVIE = "movie"
    TV = "tv"
    DOCUMENTARY = "documentary"
    ANIME = "anime"
    SHORT = "short"
    OTHER = "other"


class MediaItem(BaseModel):
    """Catalog record. Read-only to the core apart from embedding attachment."""

    id: MediaId
    title: str
    type: MediaType = MediaType.MOVIE
    description: str = ""
    genres: List[str] = Field(default_factory=list)
    release_date: Optional[date] = None
    rating: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    platforms: List[str] = Field(default_factory=list)
    cast: List[str] = Field(default_factory=list)
    director: Optional[str] = None
    duration: Optional[int] = None  # minutes
    seasons: Optional[int] = None
    embedding: Optional[List[float]] = None


class SearchFilters(BaseModel):
    """Conjunctive catalog filters. Empty lists / None mean "no constraint"."""

    types: List[MediaType] = Field(default_factory=list)
    genres: List[str] = Field(default_factory=list)
    platforms: List[str] = Field(default_factory=list)
    min_rating: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    year_min: Optional[int] = None
    year_max: Optional[int] = None

    def is_empty(self) -> bool:
        return not (
            self.types
            or self.genres
            or self.platforms
            or self.min_rating is not None
            or self.year_min is not None
            or self.year_max is not None
        )


class Pagination(BaseModel):
    limit: int = Field(default=20, ge=1)
    offset: int = Field(default=0, ge=0)


@dataclass
class CatalogPage:
    items: List[MediaItem]
    total: int


@dataclass
class LearnParams:
    alpha_base: float = 0.1  # vector learning rate per unit of interaction weight
    map_decay: float = 0.95  # genre/platform/type/threshold retention
    watch_full_seconds: float = 1800.0  # watch time that counts as a full watch
    rebuild_window: int = 50  # most recent interactions used by rebuild()
    rebuild_lambda_month: float = 1.0  # exp(-days/30)
    cold_start_min_interactions: int = 3
    rating_threshold_seed: float = 7.0

