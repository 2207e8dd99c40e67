"""
Relevance scoring for (user, item) pairs.

score = quality + popularity + freshness + personalization, then modulated by
the user's recent (7 day) behavior: a bonus when the request falls near the
hour the user is usually active, and a 0.8x-1.2x factor for how well the item
length matches the user's recent average watch time. Negative totals are
floored at 0.

Confidence is computed separately and only used for ordering.
"""

from collections import Counter
from typing import Optional, Sequence, Tuple
import logging
import math

from .config import EngineConfig, DEFAULT_CONFIG
from .schemas import BehaviorEvent, ContentItem, UserPreference
from .utils import MS_PER_DAY, days_between, hour_of_day

logger = logging.getLogger(__name__)

REASON_CATEGORY = "Because you like {category} content"
REASON_CREATOR = "From a creator you follow"
REASON_TAGS = "Matches your interests: {tags}"
REASON_TRENDING = "Trending now"
REASON_FRESH = "Just published"
REASON_QUALITY = "High quality pick"
REASON_FALLBACK = "Personalized pick"


class Scorer:
    def __init__(self, config: EngineConfig = DEFAULT_CONFIG):
        self.config = config

    # -------------------------------------------------------------------------
    # Non-personalized terms
    # -------------------------------------------------------------------------

    @staticmethod
    def engagement_rate(item: ContentItem) -> float:
        stats = item.stats
        if stats.views <= 0:
            return 0.0
        return (stats.likes + stats.comments + stats.shares) / stats.views

    def popularity(self, item: ContentItem) -> float:
        stats = item.stats
        return (
            math.log(stats.views + 1) * 0.08
            + math.log(stats.likes + 1) * 0.12
            + math.log(stats.comments + 1) * 0.08
            + self.engagement_rate(item) * 10
        )

    @staticmethod
    def freshness(age_days: float) -> float:
        if age_days < 1:
            return 1.2
        if age_days < 7:
            return math.exp(-age_days / 7)
        return math.exp(-age_days / 30) * 0.5

    def base_score(self, item: ContentItem, now_ms: int) -> float:
        cfg = self.config
        age_days = days_between(item.upload_time, now_ms)
        return (
            item.quality_score * cfg.quality_weight
            + self.popularity(item) * cfg.popularity_weight
            + self.freshness(age_days) * cfg.freshness_weight
        )

    # -------------------------------------------------------------------------
    # Personalization
    # -------------------------------------------------------------------------

    @staticmethod
    def matching_tags(item: ContentItem, preference: UserPreference, minimum: float = 0.0) -> list:
        return [tag for tag in sorted(item.tags) if preference.tags.get(tag, 0.0) > minimum]

    def personalization(self, item: ContentItem, preference: UserPreference) -> float:
        cfg = self.config
        score = 0.0

        category_weight = preference.categories.get(item.category, 0.0)
        bonus = cfg.category_strong_bonus if category_weight > cfg.category_strong_threshold else 1.0
        score += category_weight * cfg.category_weight * bonus

        tags = self.matching_tags(item, preference)
        if tags:
            score += sum(preference.tags[tag] for tag in tags) / len(tags) * cfg.tag_weight

        creator_weight = preference.creators.get(item.creator_id, 0.0)
        bonus = cfg.creator_strong_bonus if creator_weight > cfg.creator_strong_threshold else 1.0
        score += creator_weight * cfg.creator_weight * bonus

        preferred = preference.watch_time_preference_seconds
        if preferred > 0:
            ratio = min(item.duration_seconds, preferred) / max(item.duration_seconds, preferred)
            score += math.sqrt(ratio) * cfg.duration_fit_weight

        return score

    # -------------------------------------------------------------------------
    # Recent behavior
    # -------------------------------------------------------------------------

    def recent_events(self, events: Sequence[BehaviorEvent], now_ms: int) -> Tuple[BehaviorEvent, ...]:
        window = self.config.recent_window_days * MS_PER_DAY
        return tuple(e for e in events if now_ms - e.timestamp < window)

    def preferred_hour(self, events: Sequence[BehaviorEvent]) -> int:
        if not events:
            return self.config.default_preferred_hour
        counts = Counter(hour_of_day(e.timestamp) for e in events)
        # ties resolve to the earliest hour
        return min(counts, key=lambda hour: (-counts[hour], hour))

    def recent_modulation(self, item: ContentItem, recent: Sequence[BehaviorEvent], now_ms: int) -> float:
        if not recent:
            return 1.0
        factor = 1.0
        if abs(hour_of_day(now_ms) - self.preferred_hour(recent)) <= self.config.hour_match_window:
            factor *= self.config.hour_match_bonus

        avg_watch = sum(e.watch_time_seconds for e in recent) / len(recent)
        if avg_watch > 0:
            ratio = min(item.duration_seconds, avg_watch) / max(item.duration_seconds, avg_watch)
            factor *= 0.8 + 0.4 * ratio
        return factor

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def score(
        self,
        item: ContentItem,
        preference: Optional[UserPreference],
        events: Sequence[BehaviorEvent],
        now_ms: int,
    ) -> float:
        """Composite relevance score, never negative.

        `events` may be the user's full slice; only the recent window is used.
        """
        score = self.base_score(item, now_ms)
        if preference is not None:
            score += self.personalization(item, preference)
        score *= self.recent_modulation(item, self.recent_events(events, now_ms), now_ms)
        return max(0.0, score)

    def confidence(
        self,
        item: ContentItem,
        preference: Optional[UserPreference],
        events: Sequence[BehaviorEvent],
        now_ms: int,
    ) -> float:
        confidence = 0.5
        if preference is not None:
            confidence += min(0.3, preference.dimension_count() * 0.01)
        recent = self.recent_events(events, now_ms)
        if recent:
            confidence += min(0.2, len(recent) * 0.002)
        confidence += (item.quality_score / 10) * 0.2
        if item.stats.views > 100:
            confidence += min(0.1, math.log(item.stats.views) * 0.01)
        return min(1.0, max(0.0, confidence))

    def reason(self, item: ContentItem, preference: Optional[UserPreference], now_ms: int) -> str:
        cfg = self.config
        if preference is not None:
            if preference.categories.get(item.category, 0.0) > cfg.category_strong_threshold:
                return REASON_CATEGORY.format(category=item.category)
            if preference.creators.get(item.creator_id, 0.0) > cfg.creator_strong_threshold:
                return REASON_CREATOR
            tags = self.matching_tags(item, preference, minimum=2.0)
            if tags:
                return REASON_TAGS.format(tags=", ".join(tags[:2]))
        if item.stats.views > 10000:
            return REASON_TRENDING
        if days_between(item.upload_time, now_ms) < 1:
            return REASON_FRESH
        if item.quality_score > 8:
            return REASON_QUALITY
        return REASON_FALLBACK
