from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from marquee_core.types import MediaItem, MediaType, SearchFilters
from marquee_user.interactions.schemas import InteractionType


class InteractionCreateRequest(BaseModel):
    media_id: str = Field(..., min_length=1)
    type: InteractionType
    timestamp: Optional[datetime] = None
    duration: Optional[float] = Field(default=None, ge=0.0)
    completion: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    rating: Optional[float] = Field(default=None, ge=0.0, le=10.0)


class LearnOut(BaseModel):
    user_id: str
    media_id: str
    weight: float
    vector_updated: bool
    interaction_count: int


class ProfileOut(BaseModel):
    user_id: str
    genre_weights: Dict[str, float]
    platform_weights: Dict[str, float]
    content_type_weights: Dict[str, float]
    rating_threshold: float
    interaction_count: int
    last_updated: datetime
    vector_norm: float


class WeightsIn(BaseModel):
    diversity: float = Field(default=0.2, ge=0.0)
    recency: float = Field(default=0.1, ge=0.0)
    popularity: float = Field(default=0.1, ge=0.0)
    personal: float = Field(default=0.6, ge=0.0)


class RecommendationsRequest(BaseModel):
    candidate_ids: List[str] = Field(default_factory=list)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    candidate_pool: int = Field(default=200, ge=1, le=1000)
    limit: int = Field(default=20, ge=1, le=100)
    weights: WeightsIn = Field(default_factory=WeightsIn)
    diversify: bool = True
    query_id: Optional[str] = None


class RankedItemOut(BaseModel):
    media_id: str
    title: str
    type: MediaType
    score: float
    reasons: List[str]
    confidence: float


class SearchRequest(BaseModel):
    query: str = Field(..., examples=["action movies"])
    limit: int = Field(default=20, ge=1, le=100)
    hybrid_weight: float = Field(default=0.5, ge=0.0, le=1.0)
    score_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    filters: SearchFilters = Field(default_factory=SearchFilters)
    query_id: Optional[str] = None

    @field_validator("query")
    def validate_query(cls, v):
        if not v.strip():
            raise ValueError("Query cannot be empty")
        return v


class SearchHitOut(BaseModel):
    media_id: str
    title: str
    type: MediaType
    score: float


class SearchOut(BaseModel):
    items: List[SearchHitOut]
    scores: Dict[str, float]
    timings: Dict[str, float]
    cached: bool = False


class IndexRequest(BaseModel):
    items: List[MediaItem] = Field(..., min_length=1)
