import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure project root is on sys.path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from recommender.config import EngineConfig
from recommender.schemas import BehaviorEvent, ContentItem, ContentStats
from recommender.service import RecommendationService
from recommender.utils import MS_PER_DAY

# Thursday 2026-01-15 12:00 UTC
NOW = int(datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc).timestamp() * 1000)
HOUR = 60 * 60 * 1000


def make_item(
    item_id,
    category="travel",
    creator_id="c1",
    quality=7.0,
    age_days=2.0,
    duration=60.0,
    tags=(),
    views=0,
    likes=0,
    comments=0,
    shares=0,
    **extra,
):
    return ContentItem(
        id=item_id,
        title=f"Video {item_id}",
        category=category,
        creator_id=creator_id,
        quality_score=quality,
        upload_time=int(NOW - age_days * MS_PER_DAY),
        duration_seconds=duration,
        tags=set(tags),
        stats=ContentStats(views=views, likes=likes, comments=comments, shares=shares),
        **extra,
    )


def make_event(user_id, video_id, action="like", category="travel", tags=(), watch=0.0, at=NOW):
    return BehaviorEvent(
        user_id=user_id,
        video_id=video_id,
        action=action,
        watch_time_seconds=watch,
        timestamp=int(at),
        category=category,
        tags=frozenset(tags),
    )


@pytest.fixture
def config():
    return EngineConfig(shuffle=False)


@pytest.fixture
def service(config):
    return RecommendationService(config=config, clock=lambda: NOW)


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"
