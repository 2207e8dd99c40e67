import pytest

from recommender.database import InMemorySnapshotRepository, SqlSnapshotRepository
from recommender.service import RecommendationService

from conftest import NOW, make_event, make_item


@pytest.fixture
def repository(tmp_path):
    return SqlSnapshotRepository(f"sqlite:///{tmp_path}/snapshot.db")


def test_empty_database_loads_nothing(repository):
    assert repository.load() is None


def test_sql_round_trip(repository, config):
    service = RecommendationService(config=config, repository=repository, clock=lambda: NOW)
    service.publish(make_item("v1", category="travel", tags=["beach", "sun"], views=120, likes=8))
    service.publish(make_item("v2", category="tech", is_private=True))
    service.record_behavior("u1", "v1", "view", watch_time_seconds=30)
    service.record_behavior("u1", "v1", "like")
    service.mark_viewed("u1", "v1")
    service.mark_viewed("u1", "v9")
    service.mark_not_interested("u2", "v2")
    assert service.save()

    snapshot = repository.load()

    assert snapshot.catalog == service.snapshot().catalog
    assert [e.action for e in snapshot.events["u1"]] == ["view", "like"]
    assert snapshot.viewed == {"u1": ["v1", "v9"]}
    assert snapshot.blacklisted == {"u2": ["v2"]}
    assert snapshot.preferences["u1"] == service.get_user_preference_stats("u1")


def test_save_replaces_previous_state(repository):
    first = InMemorySnapshotRepository()
    service = RecommendationService(repository=first, clock=lambda: NOW)
    service.publish(make_item("v1"))
    repository.save(service.snapshot())

    service.delete("v1")
    service.publish(make_item("v2"))
    repository.save(service.snapshot())

    assert list(repository.load().catalog) == ["v2"]


def test_in_memory_repository_copies():
    repository = InMemorySnapshotRepository()
    service = RecommendationService(repository=repository, clock=lambda: NOW)
    service.events.append(make_event("u1", "v1"))
    service.save()

    loaded = repository.load()
    loaded.events["u1"].clear()

    assert len(repository.load().events["u1"]) == 1
