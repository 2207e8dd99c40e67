from contextlib import contextmanager
from typing import Dict, Iterable, List, Mapping, Optional
import logging
import threading

from .schemas import ContentItem

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Reader-preferring lock: many concurrent readers, one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0

    @contextmanager
    def read(self):
        with self._cond:
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._readers > 0:
                self._cond.wait()
            yield


class Catalog:
    """In-memory index of content items keyed by id."""

    def __init__(self, items: Optional[Iterable[ContentItem]] = None):
        self._items: Dict[str, ContentItem] = {}
        self._lock = ReadWriteLock()
        for item in items or ():
            self._items[item.id] = item

    def upsert(self, item: ContentItem) -> None:
        with self._lock.write():
            self._items[item.id] = item

    def get(self, item_id: str) -> Optional[ContentItem]:
        with self._lock.read():
            return self._items.get(item_id)

    def update(self, item_id: str, fields: Mapping[str, object]) -> Optional[ContentItem]:
        """Apply a partial update. Returns the new item, or None if item_id is unknown."""
        with self._lock.write():
            current = self._items.get(item_id)
            if current is None:
                return None
            data = current.model_dump()
            data.update({k: v for k, v in fields.items() if k != "id"})
            updated = ContentItem.model_validate(data)
            self._items[item_id] = updated
            return updated

    def delete(self, item_id: str) -> bool:
        with self._lock.write():
            return self._items.pop(item_id, None) is not None

    def by_creator(self, creator_id: str) -> List[ContentItem]:
        with self._lock.read():
            items = [item for item in self._items.values() if item.creator_id == creator_id]
        items.sort(key=lambda item: item.upload_time, reverse=True)
        return items

    def by_category(self, category: str) -> List[ContentItem]:
        with self._lock.read():
            return [item for item in self._items.values() if item.category == category]

    def all(self) -> List[ContentItem]:
        with self._lock.read():
            return list(self._items.values())

    def dump(self) -> Dict[str, ContentItem]:
        with self._lock.read():
            return dict(self._items)

    def load(self, items: Mapping[str, ContentItem]) -> None:
        with self._lock.write():
            self._items = dict(items)

    def __contains__(self, item_id: str) -> bool:
        with self._lock.read():
            return item_id in self._items

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._items)
