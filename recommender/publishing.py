"""Turning a creator's publish request into a catalog entry."""

from typing import Callable, Dict, List, Sequence
import random
import string

from .schemas import ContentItem, PublishRequest
from .utils import now_ms

DEFAULT_CATEGORY = "lifestyle"
DEFAULT_VIDEO_DURATION = 60.0

CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "food": ["food", "cooking", "recipe", "cuisine", "restaurant", "snack", "baking"],
    "travel": ["travel", "trip", "scenery", "sightseeing", "vacation", "explore", "outdoor"],
    "lifestyle": ["lifestyle", "daily", "vlog", "routine", "diary", "life"],
    "music": ["music", "song", "cover", "singing", "instrument", "beat"],
    "dance": ["dance", "dancing", "choreography", "performance", "groove"],
    "comedy": ["comedy", "funny", "humor", "prank", "joke", "meme"],
    "education": ["tutorial", "learn", "knowledge", "skill", "lesson", "howto", "analysis"],
    "tech": ["tech", "technology", "gadget", "digital", "electronics", "innovation", "coding"],
}


def infer_category(description: str, tags: Sequence[str]) -> str:
    text = f"{description or ''} {' '.join(tags)}".lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def initial_quality_score(request: PublishRequest) -> float:
    """Heuristic quality for content with no engagement yet, in [0, 10]."""
    score = 5.0
    if request.title and len(request.title) > 10:
        score += 0.5
    if request.description and len(request.description) > 20:
        score += 0.5
    if request.hashtags:
        score += min(len(request.hashtags) * 0.2, 1.0)
    if request.location:
        score += 0.3
    return min(score, 10.0)


def extract_tags(request: PublishRequest) -> List[str]:
    tags = [tag.lstrip("#") for tag in request.hashtags if tag and tag.lstrip("#")]
    if request.location:
        tags.append("location")
    tags.append(request.privacy_level or "public")
    if request.kind == "photo":
        tags.append("photo")
    return tags


def new_item_id(kind: str, at_ms: int, rng: random.Random) -> str:
    suffix = "".join(rng.choices(string.ascii_lowercase + string.digits, k=9))
    return f"user_{kind}_{at_ms}_{suffix}"


def build_item(
    request: PublishRequest,
    rng: random.Random,
    clock: Callable[[], int] = now_ms,
) -> ContentItem:
    at_ms = clock()
    tags = extract_tags(request)
    if request.kind == "photo":
        duration = 0.0
        default_title = "Untitled photo"
    else:
        duration = request.duration if request.duration is not None else DEFAULT_VIDEO_DURATION
        default_title = "Untitled video"

    return ContentItem(
        id=new_item_id(request.kind, at_ms, rng),
        title=request.title or default_title,
        description=request.description or "",
        category=infer_category(request.description or "", tags),
        tags=set(tags),
        creator_id=request.user_id or "user_unknown",
        duration_seconds=duration,
        upload_time=at_ms,
        video_url=request.video_url,
        quality_score=initial_quality_score(request),
        is_private=(request.privacy_level or "").lower() == "private",
    )
