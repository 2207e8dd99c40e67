from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union
import logging
import random
import threading

from pydantic import ValidationError

from .catalog import Catalog
from .config import EngineConfig, DEFAULT_CONFIG
from .database import InMemorySnapshotRepository, SnapshotRepository
from .event_store import EventStore
from .exclusions import ExclusionTracker
from .preferences import PreferenceModel
from .publishing import build_item
from .ranker import Ranker
from .schemas import (
    BehaviorAction,
    BehaviorEvent,
    ContentItem,
    ContentUpdate,
    EngineSnapshot,
    PublishRequest,
    RecommendationResult,
    UserPreference,
)
from .scoring import Scorer
from .utils import MS_PER_DAY, now_ms

logger = logging.getLogger(__name__)


class RecommendationService:
    """Entry point used by the API layer.

    Owns the event store, preference cache, catalog and exclusion state.
    Writes for a user only mark that user's preference stale; the recompute
    happens under the same user lock on the next read, so every read sees all
    of that user's earlier writes.
    """

    def __init__(
        self,
        config: EngineConfig = DEFAULT_CONFIG,
        repository: Optional[SnapshotRepository] = None,
        clock: Callable[[], int] = now_ms,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.clock = clock
        self.repository = repository or InMemorySnapshotRepository()
        self.rng = rng or random.Random(config.shuffle_seed)

        self.catalog = Catalog()
        self.events = EventStore(config.max_events_per_user)
        self.exclusions = ExclusionTracker(config.viewed_prune_threshold, config.viewed_keep_recent)
        self.preferences = PreferenceModel(self.events, self.catalog, config, clock)
        self.ranker = Ranker(
            self.catalog,
            self.exclusions,
            scorer=Scorer(config),
            config=config,
            rng=self.rng,
            clock=clock,
        )

        self._user_locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._stale: set = set()

    # -------------------------------------------------------------------------
    # Per-user state
    # -------------------------------------------------------------------------

    def _user_lock(self, user_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._user_locks[user_id] = lock
            return lock

    def _mark_stale(self, user_ids: Iterable[str]) -> None:
        with self._locks_guard:
            self._stale.update(user_ids)

    def _take_stale(self, user_id: str) -> bool:
        with self._locks_guard:
            if user_id in self._stale:
                self._stale.discard(user_id)
                return True
            return False

    def _current_preference(self, user_id: str) -> Optional[UserPreference]:
        """Preference reflecting every event appended so far. Caller holds the user lock."""
        if self._take_stale(user_id):
            if not self.events.slice(user_id):
                self.preferences.drop(user_id)
                return None
            return self.preferences.recompute(user_id)
        return self.preferences.get(user_id)

    def _users_referencing(self, item_id: str) -> List[str]:
        return [
            user_id for user_id in self.events.users()
            if any(event.video_id == item_id for event in self.events.slice(user_id))
        ]

    # -------------------------------------------------------------------------
    # Ingest
    # -------------------------------------------------------------------------

    def record_behavior(
        self,
        user_id: str,
        video_id: str,
        action: Union[BehaviorAction, str],
        watch_time_seconds: Optional[float] = 0.0,
        metadata: Optional[Mapping[str, object]] = None,
    ) -> bool:
        metadata = metadata or {}
        item = self.catalog.get(video_id)
        category = metadata.get("category", item.category if item else "")
        tags = metadata.get("tags", item.tags if item else ())
        if isinstance(tags, str):
            tags = [tags]
        try:
            event = BehaviorEvent(
                user_id=user_id,
                video_id=video_id,
                action=action,
                watch_time_seconds=watch_time_seconds,
                timestamp=metadata.get("timestamp") or self.clock(),
                category=category or "",
                tags=frozenset(tags or ()),
            )
        except ValidationError as e:
            logger.warning(f"Rejected behavior event for user {user_id}: {e}")
            return False

        with self._user_lock(user_id):
            self.events.append(event)
            self._mark_stale([user_id])
        return True

    # -------------------------------------------------------------------------
    # Exclusions
    # -------------------------------------------------------------------------

    def mark_not_interested(self, user_id: str, video_id: str) -> None:
        with self._user_lock(user_id):
            self.exclusions.mark_blacklisted(user_id, video_id)
            self.record_behavior(user_id, video_id, BehaviorAction.SKIP, 0.0)

    def mark_viewed(self, user_id: str, video_id: str) -> None:
        with self._user_lock(user_id):
            self.exclusions.mark_viewed(user_id, video_id)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_recommendations(
        self,
        user_id: str,
        count: int = 10,
        exclude_ids: Iterable[str] = (),
    ) -> List[RecommendationResult]:
        exclude_ids = list(exclude_ids)
        try:
            with self._user_lock(user_id):
                events = self.events.slice(user_id)
                try:
                    preference = self._current_preference(user_id)
                except Exception as e:
                    logger.error(f"Preference lookup failed for user {user_id}: {str(e)}", exc_info=True)
                    preference = None

            return self.ranker.recommend(
                user_id,
                count,
                exclude_ids=exclude_ids,
                preference=preference,
                events=events,
            )
        except Exception as e:
            logger.error(f"Unexpected error in get_recommendations: {str(e)}", exc_info=True)
            return []

    def refresh_recommendations(self, user_id: str, count: int = 10) -> List[RecommendationResult]:
        with self._user_lock(user_id):
            self.exclusions.refresh(user_id)
        return self.get_recommendations(user_id, count)

    def get_user_preference_stats(self, user_id: str) -> Optional[UserPreference]:
        with self._user_lock(user_id):
            return self._current_preference(user_id)

    # -------------------------------------------------------------------------
    # Catalog admin
    # -------------------------------------------------------------------------

    def publish(self, content: Union[ContentItem, PublishRequest]) -> str:
        if isinstance(content, PublishRequest):
            item = build_item(content, self.rng, self.clock)
        else:
            item = content
        self.catalog.upsert(item)
        # events may already reference this id (re-publish after delete, restores)
        self._mark_stale(self._users_referencing(item.id))
        logger.info(f"Published item {item.id} in category {item.category}")
        return item.id

    def update(self, item_id: str, fields: Union[ContentUpdate, Mapping[str, object]]) -> bool:
        if isinstance(fields, ContentUpdate):
            fields = fields.model_dump(exclude_unset=True)
        try:
            updated = self.catalog.update(item_id, fields)
        except ValidationError as e:
            logger.warning(f"Rejected update for item {item_id}: {e}")
            return False
        if updated is None:
            return False
        self._mark_stale(self._users_referencing(item_id))
        logger.info(f"Updated item {item_id}: {sorted(fields)}")
        return True

    def delete(self, item_id: str) -> bool:
        if not self.catalog.delete(item_id):
            return False
        affected = self.events.purge_item(item_id)
        self.exclusions.forget_item(item_id)
        self._mark_stale(affected)
        logger.info(f"Deleted item {item_id}")
        return True

    def get_video(self, item_id: str) -> Optional[ContentItem]:
        return self.catalog.get(item_id)

    def get_user_videos(self, creator_id: str) -> List[ContentItem]:
        return self.catalog.by_creator(creator_id)

    def get_all_videos(self) -> List[ContentItem]:
        items = self.catalog.all()
        items.sort(key=lambda item: item.upload_time, reverse=True)
        return items

    # -------------------------------------------------------------------------
    # Maintenance / persistence
    # -------------------------------------------------------------------------

    def prune(
        self,
        event_max_age_days: float = 30.0,
        catalog_max_age_days: Optional[float] = None,
    ) -> Tuple[int, int]:
        """Drop old events and, optionally, old catalog items. Returns (events, items) removed."""
        at_ms = self.clock()
        events_removed, affected = self.events.prune_older_than(int(at_ms - event_max_age_days * MS_PER_DAY))
        self._mark_stale(affected)

        items_removed = 0
        if catalog_max_age_days is not None:
            cutoff = at_ms - catalog_max_age_days * MS_PER_DAY
            for item in self.catalog.all():
                if item.upload_time < cutoff and self.delete(item.id):
                    items_removed += 1

        logger.info(f"Pruned {events_removed} events and {items_removed} catalog items")
        return events_removed, items_removed

    def snapshot(self) -> EngineSnapshot:
        with self._locks_guard:
            stale = list(self._stale)
        for user_id in stale:
            with self._user_lock(user_id):
                self._current_preference(user_id)

        viewed, blacklisted = self.exclusions.dump()
        return EngineSnapshot(
            events=self.events.dump(),
            preferences=self.preferences.dump(),
            catalog=self.catalog.dump(),
            viewed=viewed,
            blacklisted=blacklisted,
        )

    def restore(self, snapshot: EngineSnapshot) -> None:
        self.catalog.load(snapshot.catalog)
        self.events.load(snapshot.events)
        self.exclusions.load(snapshot.viewed, snapshot.blacklisted)
        for user_id in self.preferences.dump():
            self.preferences.drop(user_id)
        for preference in snapshot.preferences.values():
            self.preferences.put(preference)
        # cached preferences are optional in a snapshot; rebuild what is missing
        self._mark_stale(u for u in snapshot.events if u not in snapshot.preferences)
        logger.info(
            f"Restored snapshot: {len(snapshot.catalog)} items, {len(snapshot.events)} users with events"
        )

    def save(self) -> bool:
        try:
            self.repository.save(self.snapshot())
            return True
        except Exception as e:
            logger.error(f"Error saving snapshot: {str(e)}", exc_info=True)
            return False

    def load(self) -> bool:
        try:
            snapshot = self.repository.load()
        except Exception as e:
            logger.error(f"Error loading snapshot: {str(e)}", exc_info=True)
            return False
        if snapshot is None:
            logger.info("No snapshot found; starting with an empty engine")
            return False
        self.restore(snapshot)
        return True

    def stats(self) -> Dict[str, int]:
        return {
            "catalog_size": len(self.catalog),
            "users": len(set(self.events.users()) | set(self.exclusions.users())),
            "events": len(self.events),
        }
