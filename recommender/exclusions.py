from typing import Dict, Iterable, List, Mapping
import logging
import threading

logger = logging.getLogger(__name__)


class ExclusionTracker:
    """Per-user viewed and blacklisted item ids.

    The viewed set keeps insertion order (a dict used as an ordered set) so
    refresh() can forget the oldest entries and let them resurface.
    Blacklists are never aged.
    """

    def __init__(self, prune_threshold: int = 100, keep_recent: int = 50):
        self.prune_threshold = prune_threshold
        self.keep_recent = keep_recent
        self._viewed: Dict[str, Dict[str, None]] = {}
        self._blacklisted: Dict[str, Dict[str, None]] = {}
        self._lock = threading.RLock()

    def mark_viewed(self, user_id: str, item_id: str) -> None:
        with self._lock:
            # re-marking keeps the original position
            self._viewed.setdefault(user_id, {}).setdefault(item_id, None)

    def mark_blacklisted(self, user_id: str, item_id: str) -> None:
        with self._lock:
            self._blacklisted.setdefault(user_id, {})[item_id] = None

    def is_excluded(self, user_id: str, item_id: str, extra: Iterable[str] = ()) -> bool:
        with self._lock:
            if item_id in self._viewed.get(user_id, ()):
                return True
            if item_id in self._blacklisted.get(user_id, ()):
                return True
        return item_id in set(extra)

    def excluded_ids(self, user_id: str, extra: Iterable[str] = ()) -> set:
        with self._lock:
            ids = set(self._viewed.get(user_id, ()))
            ids.update(self._blacklisted.get(user_id, ()))
        ids.update(extra)
        return ids

    def refresh(self, user_id: str) -> int:
        """Age the viewed set. Returns how many ids were forgotten."""
        with self._lock:
            viewed = self._viewed.get(user_id)
            if not viewed or len(viewed) <= self.prune_threshold:
                return 0
            ordered = list(viewed)
            keep = ordered[-self.keep_recent:] if self.keep_recent else []
            self._viewed[user_id] = dict.fromkeys(keep)
            forgotten = len(ordered) - len(keep)
        logger.info(f"Aged viewed set for user {user_id}: forgot {forgotten} items")
        return forgotten

    def viewed(self, user_id: str) -> List[str]:
        with self._lock:
            return list(self._viewed.get(user_id, ()))

    def blacklisted(self, user_id: str) -> List[str]:
        with self._lock:
            return list(self._blacklisted.get(user_id, ()))

    def forget_item(self, item_id: str) -> None:
        with self._lock:
            for viewed in self._viewed.values():
                viewed.pop(item_id, None)
            for blacklisted in self._blacklisted.values():
                blacklisted.pop(item_id, None)

    def users(self) -> List[str]:
        with self._lock:
            return list(set(self._viewed) | set(self._blacklisted))

    def load(self, viewed: Mapping[str, Iterable[str]], blacklisted: Mapping[str, Iterable[str]]) -> None:
        with self._lock:
            self._viewed = {u: dict.fromkeys(ids) for u, ids in viewed.items()}
            self._blacklisted = {u: dict.fromkeys(ids) for u, ids in blacklisted.items()}

    def dump(self):
        with self._lock:
            return (
                {u: list(ids) for u, ids in self._viewed.items()},
                {u: list(ids) for u, ids in self._blacklisted.items()},
            )
