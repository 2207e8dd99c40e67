from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence
import logging
import math
import random

import numpy as np

from .catalog import Catalog
from .config import EngineConfig, DEFAULT_CONFIG
from .exclusions import ExclusionTracker
from .schemas import BehaviorEvent, ContentItem, RecommendationResult, UserPreference
from .scoring import Scorer
from .utils import days_between, now_ms

logger = logging.getLogger(__name__)


@dataclass
class ScoredCandidate:
    item: ContentItem
    score: float
    confidence: float
    reason: str

    @property
    def rank_key(self) -> float:
        return self.score * (0.7 + 0.3 * self.confidence)

    def to_result(self) -> RecommendationResult:
        return RecommendationResult(
            item_id=self.item.id,
            score=self.score,
            confidence=self.confidence,
            reason=self.reason,
            category=self.item.category,
        )


class Ranker:
    """Candidate filtering, scoring, diversity-constrained selection and light shuffle."""

    def __init__(
        self,
        catalog: Catalog,
        exclusions: ExclusionTracker,
        scorer: Optional[Scorer] = None,
        config: EngineConfig = DEFAULT_CONFIG,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.catalog = catalog
        self.exclusions = exclusions
        self.config = config
        self.scorer = scorer or Scorer(config)
        self.rng = rng or random.Random(config.shuffle_seed)
        self.clock = clock

    def is_eligible(self, item: ContentItem, at_ms: int) -> bool:
        cfg = self.config
        if item.is_private:
            return False
        if item.quality_score < cfg.min_quality_score:
            return False
        age_days = days_between(item.upload_time, at_ms)
        if age_days > cfg.stale_age_days and item.stats.views < cfg.stale_min_views:
            return False
        return True

    def candidates(self, user_id: str, exclude_ids: Iterable[str], at_ms: int) -> List[ContentItem]:
        excluded = self.exclusions.excluded_ids(user_id, exclude_ids)
        eligible = [
            item for item in self.catalog.all()
            if item.id not in excluded and self.is_eligible(item, at_ms)
        ]
        if len(eligible) > self.config.max_candidates:
            logger.warning(
                f"Candidate guard tripped for user {user_id}: "
                f"{len(eligible)} eligible, keeping newest {self.config.max_candidates}"
            )
            eligible.sort(key=lambda item: item.upload_time, reverse=True)
            eligible = eligible[: self.config.max_candidates]
        return eligible

    def score_candidate(
        self,
        item: ContentItem,
        preference: Optional[UserPreference],
        events: Sequence[BehaviorEvent],
        at_ms: int,
    ) -> ScoredCandidate:
        scorer = self.scorer
        try:
            return ScoredCandidate(
                item=item,
                score=scorer.score(item, preference, events, at_ms),
                confidence=scorer.confidence(item, preference, events, at_ms),
                reason=scorer.reason(item, preference, at_ms),
            )
        except Exception as e:
            logger.error(f"Personalized scoring failed for item {item.id}: {str(e)}", exc_info=True)
            return ScoredCandidate(
                item=item,
                score=scorer.score(item, None, (), at_ms),
                confidence=scorer.confidence(item, None, (), at_ms),
                reason=scorer.reason(item, None, at_ms),
            )

    @staticmethod
    def sort_candidates(scored: List[ScoredCandidate]) -> List[ScoredCandidate]:
        if not scored:
            return []
        keys = np.array([c.rank_key for c in scored], dtype=float)
        # stable so ties keep catalog order
        order = np.argsort(-keys, kind="stable")
        return [scored[i] for i in order]

    def diversify(self, ranked: List[ScoredCandidate], k: int) -> List[ScoredCandidate]:
        """Three-pass selection of up to k candidates from a ranked list.

        Pass A takes high-confidence items up to a share of k under per-category
        and per-creator caps. Pass B prefers categories not yet in the result,
        still under the creator cap. Pass C fills the remaining slots in rank
        order and ignores the caps, so caps can only be exceeded when A and B
        could not fill k.
        """
        cfg = self.config
        max_per_category = max(1, math.floor(k * cfg.max_category_share))
        max_per_creator = max(1, math.floor(k * cfg.max_creator_share))
        head_size = math.floor(k * cfg.high_confidence_share)

        result: List[ScoredCandidate] = []
        taken = set()
        category_count: Dict[str, int] = {}
        creator_count: Dict[str, int] = {}

        def take(candidate: ScoredCandidate) -> None:
            item = candidate.item
            result.append(candidate)
            taken.add(item.id)
            category_count[item.category] = category_count.get(item.category, 0) + 1
            creator_count[item.creator_id] = creator_count.get(item.creator_id, 0) + 1

        def within_caps(item: ContentItem) -> bool:
            return (
                category_count.get(item.category, 0) < max_per_category
                and creator_count.get(item.creator_id, 0) < max_per_creator
            )

        # Pass A
        for candidate in ranked:
            if len(result) >= head_size:
                break
            if candidate.confidence <= cfg.high_confidence_threshold:
                continue
            if within_caps(candidate.item):
                take(candidate)

        # Pass B
        for candidate in ranked:
            if len(result) >= k:
                break
            item = candidate.item
            if item.id in taken or item.category in category_count:
                continue
            if creator_count.get(item.creator_id, 0) >= max_per_creator:
                continue
            take(candidate)

        # Pass C
        for candidate in ranked:
            if len(result) >= k:
                break
            if candidate.item.id not in taken:
                take(candidate)

        return result

    def light_shuffle(self, selected: List[ScoredCandidate]) -> List[ScoredCandidate]:
        """Partial Fisher-Yates over everything after the fixed head."""
        cfg = self.config
        if not cfg.shuffle or len(selected) <= cfg.shuffle_fixed_head + 1:
            return selected
        head = selected[: cfg.shuffle_fixed_head]
        tail = list(selected[cfg.shuffle_fixed_head:])
        for i in range(len(tail) - 1, 0, -1):
            if self.rng.random() < cfg.shuffle_probability:
                j = self.rng.randrange(i + 1)
                tail[i], tail[j] = tail[j], tail[i]
        return head + tail

    def recommend(
        self,
        user_id: str,
        k: int,
        exclude_ids: Iterable[str] = (),
        preference: Optional[UserPreference] = None,
        events: Sequence[BehaviorEvent] = (),
        at_ms: Optional[int] = None,
    ) -> List[RecommendationResult]:
        if k <= 0:
            return []
        at_ms = self.clock() if at_ms is None else at_ms

        pool = self.candidates(user_id, exclude_ids, at_ms)
        scored = [self.score_candidate(item, preference, events, at_ms) for item in pool]
        selected = self.diversify(self.sort_candidates(scored), k)
        results = [c.to_result() for c in self.light_shuffle(selected)]

        logger.info(
            f"Ranked {len(results)} of {len(pool)} candidates for user {user_id} "
            f"(personalized={preference is not None})"
        )
        return results
