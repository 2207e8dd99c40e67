from collections import defaultdict
from typing import Callable, Dict, Optional, Sequence
import logging
import math
import threading

from .catalog import Catalog
from .config import EngineConfig, DEFAULT_CONFIG
from .event_store import EventStore
from .schemas import BehaviorEvent, UserPreference
from .utils import MS_PER_DAY, now_ms

logger = logging.getLogger(__name__)


class PreferenceModel:
    """Derives per-user category/tag/creator affinities from the event log.

    Preferences are never patched incrementally: recompute() rebuilds the
    whole UserPreference from the user's current event slice, so the cached
    value is always a function of the log (and of the evaluation time, through
    decay).
    """

    def __init__(
        self,
        events: EventStore,
        catalog: Catalog,
        config: EngineConfig = DEFAULT_CONFIG,
        clock: Callable[[], int] = now_ms,
    ):
        self.events = events
        self.catalog = catalog
        self.config = config
        self.clock = clock
        self._cache: Dict[str, UserPreference] = {}
        self._lock = threading.RLock()

    def behavior_weight(self, event: BehaviorEvent, at_ms: int) -> float:
        """Weight of a single event: action base weight, completion bonus, time decay."""
        weight = self.config.action_weights.get(event.action, 0.0)
        if weight == 0.0:
            return 0.0

        if event.action == "view":
            item = self.catalog.get(event.video_id)
            if item is not None and item.duration_seconds > 0:
                ratio = event.watch_time_seconds / item.duration_seconds
                weight *= min(self.config.view_completion_cap, ratio * 2)

        days_since = (at_ms - event.timestamp) / MS_PER_DAY
        return weight * math.exp(-days_since / self.config.decay_days)

    def build(self, user_id: str, events: Sequence[BehaviorEvent], at_ms: int) -> UserPreference:
        categories: Dict[str, float] = defaultdict(float)
        tags: Dict[str, float] = defaultdict(float)
        creators: Dict[str, float] = defaultdict(float)
        total_watch = 0.0
        watched = 0

        for event in events:
            if event.action == "view" and event.watch_time_seconds > 0:
                total_watch += event.watch_time_seconds
                watched += 1

            if not self.config.action_weights.get(event.action):
                # follow/unfollow feed the social graph, not content affinity
                continue
            weight = self.behavior_weight(event, at_ms)

            if event.category:
                categories[event.category] += weight
            for tag in sorted(event.tags):
                tags[tag] += weight * self.config.tag_weight_factor

            # Deleted items simply lose their creator contribution
            item = self.catalog.get(event.video_id)
            if item is not None:
                creators[item.creator_id] += weight

        return UserPreference(
            user_id=user_id,
            categories=dict(categories),
            tags=dict(tags),
            creators=dict(creators),
            watch_time_preference_seconds=total_watch / watched if watched else 0.0,
            last_updated=at_ms,
        )

    def recompute(self, user_id: str, at_ms: Optional[int] = None) -> UserPreference:
        at_ms = self.clock() if at_ms is None else at_ms
        preference = self.build(user_id, self.events.slice(user_id), at_ms)
        with self._lock:
            self._cache[user_id] = preference
        return preference

    def get(self, user_id: str) -> Optional[UserPreference]:
        with self._lock:
            return self._cache.get(user_id)

    def drop(self, user_id: str) -> None:
        with self._lock:
            self._cache.pop(user_id, None)

    def put(self, preference: UserPreference) -> None:
        with self._lock:
            self._cache[preference.user_id] = preference

    def dump(self) -> Dict[str, UserPreference]:
        with self._lock:
            return dict(self._cache)
