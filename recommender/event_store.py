from collections import deque
from typing import Deque, Dict, Iterable, List, Tuple
import logging
import threading

from .schemas import BehaviorEvent

logger = logging.getLogger(__name__)


class EventStore:
    """Append-only per-user behavior log with bounded retention."""

    def __init__(self, max_events_per_user: int = 1000):
        self.max_events_per_user = max(1, max_events_per_user)
        self._events: Dict[str, Deque[BehaviorEvent]] = {}
        self._lock = threading.RLock()

    def append(self, event: BehaviorEvent) -> None:
        with self._lock:
            log = self._events.get(event.user_id)
            if log is None:
                # deque(maxlen) drops the oldest entry on overflow
                log = deque(maxlen=self.max_events_per_user)
                self._events[event.user_id] = log
            log.append(event)

    def slice(self, user_id: str) -> Tuple[BehaviorEvent, ...]:
        """Return the user's events, oldest first."""
        with self._lock:
            return tuple(self._events.get(user_id, ()))

    def users(self) -> List[str]:
        with self._lock:
            return list(self._events.keys())

    def purge_item(self, item_id: str) -> List[str]:
        """Remove every event referencing item_id. Returns the affected user ids."""
        affected = []
        with self._lock:
            for user_id, log in self._events.items():
                kept = [e for e in log if e.video_id != item_id]
                if len(kept) != len(log):
                    self._events[user_id] = deque(kept, maxlen=self.max_events_per_user)
                    affected.append(user_id)
        if affected:
            logger.info(f"Purged events for item {item_id} from {len(affected)} users")
        return affected

    def prune_older_than(self, cutoff_ms: int) -> Tuple[int, List[str]]:
        """Drop events with timestamp < cutoff_ms. Returns (removed, affected users)."""
        removed = 0
        affected = []
        with self._lock:
            for user_id in list(self._events):
                log = self._events[user_id]
                kept = [e for e in log if e.timestamp >= cutoff_ms]
                if len(kept) == len(log):
                    continue
                removed += len(log) - len(kept)
                affected.append(user_id)
                if kept:
                    self._events[user_id] = deque(kept, maxlen=self.max_events_per_user)
                else:
                    del self._events[user_id]
        return removed, affected

    def load(self, events: Dict[str, Iterable[BehaviorEvent]]) -> None:
        with self._lock:
            self._events = {
                user_id: deque(log, maxlen=self.max_events_per_user)
                for user_id, log in events.items()
            }

    def dump(self) -> Dict[str, List[BehaviorEvent]]:
        with self._lock:
            return {user_id: list(log) for user_id, log in self._events.items()}

    def __len__(self) -> int:
        with self._lock:
            return sum(len(log) for log in self._events.values())
