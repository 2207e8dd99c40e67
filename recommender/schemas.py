from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BehaviorAction(str, Enum):
    VIEW = "view"
    LIKE = "like"
    COMMENT = "comment"
    SHARE = "share"
    SKIP = "skip"
    FOLLOW = "follow"
    UNFOLLOW = "unfollow"


# Core records
class BehaviorEvent(BaseModel):
    """A single user interaction. Immutable once ingested."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    user_id: str
    video_id: str
    action: BehaviorAction
    watch_time_seconds: float = 0.0
    # milliseconds since epoch
    timestamp: int
    category: str = ""
    tags: FrozenSet[str] = frozenset()

    @field_validator("watch_time_seconds", mode="before")
    @classmethod
    def clamp_watch_time(cls, value):
        # Malformed watch times are clamped, never rejected
        if value is None:
            return 0.0
        return max(0.0, float(value))


class ContentStats(BaseModel):
    views: int = Field(default=0, ge=0)
    likes: int = Field(default=0, ge=0)
    comments: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)


class ContentItem(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    category: str
    tags: Set[str] = Field(default_factory=set)
    creator_id: str
    duration_seconds: float = Field(default=0.0, ge=0)
    # milliseconds since epoch
    upload_time: int
    video_url: Optional[str] = None
    stats: ContentStats = Field(default_factory=ContentStats)
    quality_score: float = Field(default=5.0, ge=0, le=10)
    is_private: bool = False

    model_config = ConfigDict(from_attributes=True)


class ContentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[Set[str]] = None
    creator_id: Optional[str] = None
    duration_seconds: Optional[float] = Field(default=None, ge=0)
    upload_time: Optional[int] = None
    video_url: Optional[str] = None
    stats: Optional[ContentStats] = None
    quality_score: Optional[float] = Field(default=None, ge=0, le=10)
    is_private: Optional[bool] = None


class UserPreference(BaseModel):
    user_id: str
    categories: Dict[str, float] = Field(default_factory=dict)
    tags: Dict[str, float] = Field(default_factory=dict)
    creators: Dict[str, float] = Field(default_factory=dict)
    watch_time_preference_seconds: float = 0.0
    # milliseconds since epoch
    last_updated: int = 0

    def dimension_count(self) -> int:
        return len(self.categories) + len(self.tags) + len(self.creators)


class RecommendationResult(BaseModel):
    item_id: str
    score: float
    confidence: float = Field(ge=0, le=1)
    reason: str
    category: str


class PublishRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    hashtags: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    privacy_level: Optional[str] = None
    video_url: Optional[str] = None
    user_id: Optional[str] = None
    duration: Optional[float] = Field(default=None, ge=0)
    kind: str = Field(default="video", pattern="^(video|photo)$")


class EngineSnapshot(BaseModel):
    """Serialization contract for the engine's state."""

    events: Dict[str, List[BehaviorEvent]] = Field(default_factory=dict)
    preferences: Dict[str, UserPreference] = Field(default_factory=dict)
    catalog: Dict[str, ContentItem] = Field(default_factory=dict)
    # insertion order is preserved; it drives viewed-set aging
    viewed: Dict[str, List[str]] = Field(default_factory=dict)
    blacklisted: Dict[str, List[str]] = Field(default_factory=dict)


# Request models
class BehaviorCreate(BaseModel):
    user_id: str
    video_id: str
    action: BehaviorAction
    watch_time_seconds: Optional[float] = 0.0
    metadata: Optional[Dict[str, Any]] = None


class ExclusionRequest(BaseModel):
    video_id: str


class PruneRequest(BaseModel):
    event_max_age_days: float = Field(default=30.0, gt=0)
    catalog_max_age_days: Optional[float] = Field(default=None, gt=0)


# Response models
class RecommendationResponse(BaseModel):
    status: str = "success"
    user_id: str
    items: List[RecommendationResult] = []


class PublishResponse(BaseModel):
    status: str = "success"
    item_id: str


class StatusResponse(BaseModel):
    status: str
    message: Optional[str] = None


class PruneResponse(BaseModel):
    status: str = "success"
    events_removed: int
    items_removed: int


# Error responses
class ErrorResponse(BaseModel):
    detail: str


# API status
class HealthCheck(BaseModel):
    status: str
    version: str
    catalog_size: int
    users: int
