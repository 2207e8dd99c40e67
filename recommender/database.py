from sqlalchemy import create_engine, Column, Integer, BigInteger, String, Float, Boolean, Text, JSON
from sqlalchemy.orm import declarative_base, sessionmaker
from typing import Optional, Protocol
import logging

from .config import database_url
from .schemas import BehaviorEvent, ContentItem, ContentStats, EngineSnapshot, UserPreference

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


class ContentItemRow(Base):
    __tablename__ = "content_items"

    id = Column(String, primary_key=True, index=True)
    title = Column(String, default="")
    description = Column(Text, default="")
    category = Column(String, index=True, nullable=False)
    tags = Column(JSON, default=list)
    creator_id = Column(String, index=True, nullable=False)
    duration_seconds = Column(Float, default=0.0)
    upload_time = Column(BigInteger, nullable=False)
    video_url = Column(Text, nullable=True)
    views = Column(Integer, default=0)
    likes = Column(Integer, default=0)
    comments = Column(Integer, default=0)
    shares = Column(Integer, default=0)
    quality_score = Column(Float, default=5.0)
    is_private = Column(Boolean, default=False)


class BehaviorEventRow(Base):
    __tablename__ = "behavior_events"

    # autoincrement id preserves per-user insertion order
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    video_id = Column(String, index=True, nullable=False)
    action = Column(String, nullable=False)
    watch_time_seconds = Column(Float, default=0.0)
    timestamp = Column(BigInteger, nullable=False)
    category = Column(String, default="")
    tags = Column(JSON, default=list)


class UserExclusionRow(Base):
    __tablename__ = "user_exclusions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, index=True, nullable=False)
    item_id = Column(String, nullable=False)
    kind = Column(String, nullable=False)  # "viewed" or "blacklisted"


class UserPreferenceRow(Base):
    __tablename__ = "user_preferences"

    user_id = Column(String, primary_key=True)
    payload = Column(JSON, nullable=False)


class SnapshotRepository(Protocol):
    def load(self) -> Optional[EngineSnapshot]:
        ...

    def save(self, snapshot: EngineSnapshot) -> None:
        ...


class InMemorySnapshotRepository:
    """Keeps the last saved snapshot in process memory."""

    def __init__(self, snapshot: Optional[EngineSnapshot] = None):
        self._snapshot = snapshot

    def load(self) -> Optional[EngineSnapshot]:
        if self._snapshot is None:
            return None
        return self._snapshot.model_copy(deep=True)

    def save(self, snapshot: EngineSnapshot) -> None:
        self._snapshot = snapshot.model_copy(deep=True)


class SqlSnapshotRepository:
    """Persists engine snapshots to a relational database through SQLAlchemy.

    save() replaces the stored state wholesale; load() returns None when
    nothing has been saved yet.
    """

    def __init__(self, url: Optional[str] = None):
        url = url or database_url()
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.engine = create_engine(url, connect_args=connect_args)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self._tables_ready = False

    def _ensure_tables(self) -> None:
        if not self._tables_ready:
            Base.metadata.create_all(bind=self.engine)
            self._tables_ready = True

    def save(self, snapshot: EngineSnapshot) -> None:
        self._ensure_tables()
        db = self.SessionLocal()
        try:
            for model in (ContentItemRow, BehaviorEventRow, UserExclusionRow, UserPreferenceRow):
                db.query(model).delete(synchronize_session=False)

            db.add_all(_item_to_row(item) for item in snapshot.catalog.values())
            for events in snapshot.events.values():
                db.add_all(_event_to_row(event) for event in events)
            for kind, sets in (("viewed", snapshot.viewed), ("blacklisted", snapshot.blacklisted)):
                for user_id, ids in sets.items():
                    db.add_all(UserExclusionRow(user_id=user_id, item_id=i, kind=kind) for i in ids)
            db.add_all(
                UserPreferenceRow(user_id=user_id, payload=pref.model_dump(mode="json"))
                for user_id, pref in snapshot.preferences.items()
            )
            db.commit()
            logger.info(
                f"Saved snapshot: {len(snapshot.catalog)} items, "
                f"{sum(len(v) for v in snapshot.events.values())} events"
            )
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def load(self) -> Optional[EngineSnapshot]:
        self._ensure_tables()
        db = self.SessionLocal()
        try:
            items = db.query(ContentItemRow).all()
            events = db.query(BehaviorEventRow).order_by(BehaviorEventRow.id).all()
            exclusions = db.query(UserExclusionRow).order_by(UserExclusionRow.id).all()
            preferences = db.query(UserPreferenceRow).all()
            if not (items or events or exclusions or preferences):
                return None

            snapshot = EngineSnapshot()
            for row in items:
                snapshot.catalog[row.id] = _row_to_item(row)
            for row in events:
                snapshot.events.setdefault(row.user_id, []).append(_row_to_event(row))
            for row in exclusions:
                target = snapshot.viewed if row.kind == "viewed" else snapshot.blacklisted
                target.setdefault(row.user_id, []).append(row.item_id)
            for row in preferences:
                snapshot.preferences[row.user_id] = UserPreference.model_validate(row.payload)
            return snapshot
        finally:
            db.close()


def _item_to_row(item: ContentItem) -> ContentItemRow:
    return ContentItemRow(
        id=item.id,
        title=item.title,
        description=item.description,
        category=item.category,
        tags=sorted(item.tags),
        creator_id=item.creator_id,
        duration_seconds=item.duration_seconds,
        upload_time=item.upload_time,
        video_url=item.video_url,
        views=item.stats.views,
        likes=item.stats.likes,
        comments=item.stats.comments,
        shares=item.stats.shares,
        quality_score=item.quality_score,
        is_private=item.is_private,
    )


def _row_to_item(row: ContentItemRow) -> ContentItem:
    return ContentItem(
        id=row.id,
        title=row.title or "",
        description=row.description or "",
        category=row.category,
        tags=set(row.tags or []),
        creator_id=row.creator_id,
        duration_seconds=float(row.duration_seconds or 0.0),
        upload_time=int(row.upload_time),
        video_url=row.video_url,
        stats=ContentStats(
            views=int(row.views or 0),
            likes=int(row.likes or 0),
            comments=int(row.comments or 0),
            shares=int(row.shares or 0),
        ),
        quality_score=float(row.quality_score if row.quality_score is not None else 5.0),
        is_private=bool(row.is_private),
    )


def _event_to_row(event: BehaviorEvent) -> BehaviorEventRow:
    return BehaviorEventRow(
        user_id=event.user_id,
        video_id=event.video_id,
        action=event.action,
        watch_time_seconds=event.watch_time_seconds,
        timestamp=event.timestamp,
        category=event.category,
        tags=sorted(event.tags),
    )


def _row_to_event(row: BehaviorEventRow) -> BehaviorEvent:
    return BehaviorEvent(
        user_id=row.user_id,
        video_id=row.video_id,
        action=row.action,
        watch_time_seconds=row.watch_time_seconds,
        timestamp=int(row.timestamp),
        category=row.category or "",
        tags=frozenset(row.tags or []),
    )
