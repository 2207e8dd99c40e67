import pytest

from recommender.config import EngineConfig
from recommender.database import InMemorySnapshotRepository
from recommender.schemas import ContentUpdate, PublishRequest
from recommender.service import RecommendationService
from recommender.utils import MS_PER_DAY

from conftest import NOW, make_item


def publish_all(service, items):
    for item in items:
        service.publish(item)


@pytest.fixture
def mixed_catalog(service):
    publish_all(service, [make_item(f"t{i}", category="travel", creator_id=f"ct{i}") for i in range(5)])
    publish_all(service, [make_item(f"x{i}", category="tech", creator_id=f"cx{i}") for i in range(5)])
    return service


def test_strong_affinity_dominates_feed(mixed_catalog):
    service = mixed_catalog
    for i in range(20):
        service.record_behavior("u1", f"old{i}", "like", metadata={"category": "travel"})

    results = service.get_recommendations("u1", 4)

    assert len(results) == 4
    assert sum(1 for r in results if r.category == "travel") >= 2


def test_new_user_gets_non_personalized_feed(mixed_catalog):
    results = mixed_catalog.get_recommendations("newcomer", 5)

    assert len(results) == 5
    assert all(r.confidence <= 0.7 for r in results)
    assert mixed_catalog.get_user_preference_stats("newcomer") is None


def test_not_interested_excludes_and_penalizes(mixed_catalog):
    service = mixed_catalog
    service.record_behavior("u1", "t0", "like")
    before = service.get_user_preference_stats("u1").categories["travel"]

    service.mark_not_interested("u1", "t0")

    for _ in range(3):
        assert "t0" not in [r.item_id for r in service.get_recommendations("u1", 10)]
    after = service.get_user_preference_stats("u1").categories["travel"]
    assert after < before


def test_not_interested_in_unknown_item(service):
    service.mark_not_interested("u1", "ghost")

    assert service.exclusions.blacklisted("u1") == ["ghost"]
    assert [e.action for e in service.events.slice("u1")] == ["skip"]
    assert service.get_user_preference_stats("u1").categories == {}


def test_small_catalog_returns_what_it_has(service):
    publish_all(service, [make_item(f"v{i}") for i in range(3)])
    publish_all(service, [make_item("junk", quality=1.0)])

    results = service.get_recommendations("u1", 10)

    assert sorted(r.item_id for r in results) == ["v0", "v1", "v2"]


def test_results_exclude_viewed_and_ad_hoc_ids(mixed_catalog):
    service = mixed_catalog
    service.mark_viewed("u1", "t1")

    ids = [r.item_id for r in service.get_recommendations("u1", 10, exclude_ids=["x1"])]

    assert "t1" not in ids and "x1" not in ids
    assert len(ids) == len(set(ids)) == 8


def test_same_state_gives_same_results(mixed_catalog):
    service = mixed_catalog
    service.record_behavior("u1", "x2", "share")

    assert service.get_recommendations("u1", 6) == service.get_recommendations("u1", 6)


def test_seeded_shuffle_is_reproducible():
    config = EngineConfig(shuffle=True, shuffle_seed=5)
    items = [make_item(f"v{i}", category=f"c{i}", creator_id=f"cr{i}") for i in range(10)]

    feeds = []
    for _ in range(2):
        service = RecommendationService(config=config, clock=lambda: NOW)
        publish_all(service, items)
        feeds.append([r.item_id for r in service.get_recommendations("u1", 10)])

    assert feeds[0] == feeds[1]


def test_refresh_ages_viewed_set(service):
    publish_all(service, [make_item("v0")])
    for i in range(101):
        service.mark_viewed("u1", f"seen{i}")

    service.refresh_recommendations("u1", 5)

    viewed = service.exclusions.viewed("u1")
    assert len(viewed) == 50
    assert viewed[0] == "seen51"


def test_refresh_never_resurfaces_blacklisted(service):
    publish_all(service, [make_item("v0"), make_item("v1")])
    service.mark_not_interested("u1", "v0")

    assert [r.item_id for r in service.refresh_recommendations("u1", 5)] == ["v1"]


def test_delete_cascades(service):
    publish_all(service, [make_item("v1"), make_item("v2")])
    service.record_behavior("u1", "v1", "like")
    service.mark_viewed("u2", "v1")
    assert service.get_user_preference_stats("u1") is not None

    assert service.delete("v1")

    assert service.get_video("v1") is None
    assert service.events.slice("u1") == ()
    assert service.exclusions.viewed("u2") == []
    assert service.get_user_preference_stats("u1") is None
    assert not service.delete("v1")


def test_update_changes_item_and_refreshes_preferences(service):
    publish_all(service, [make_item("v1", category="travel")])
    service.record_behavior("u1", "v1", "like")
    assert "alice" not in service.get_user_preference_stats("u1").creators

    assert service.update("v1", ContentUpdate(creator_id="alice", quality_score=9.0))

    item = service.get_video("v1")
    assert item.creator_id == "alice" and item.quality_score == 9.0
    assert service.get_user_preference_stats("u1").creators["alice"] == pytest.approx(3.0)


def test_update_rejects_unknown_and_invalid(service):
    publish_all(service, [make_item("v1")])

    assert not service.update("missing", {"title": "x"})
    assert not service.update("v1", {"quality_score": 11})
    assert service.get_video("v1").quality_score == 7.0


def test_publish_request_builds_catalog_item(service):
    request = PublishRequest(
        title="Sunday pasta night",
        description="Slow cooking a ragu for the whole family",
        hashtags=["#pasta", "#homemade"],
        location="Bologna",
        user_id="chef",
        duration=45,
    )

    item_id = service.publish(request)
    item = service.get_video(item_id)

    assert item_id.startswith(f"user_video_{NOW}_")
    assert item.category == "food"
    assert item.quality_score == pytest.approx(6.7)
    assert item.tags == {"pasta", "homemade", "location", "public"}
    assert item.duration_seconds == 45
    assert item.upload_time == NOW
    assert service.get_user_videos("chef") == [item]


def test_publish_photo(service):
    item = service.get_video(service.publish(PublishRequest(kind="photo", privacy_level="private")))

    assert item.id.startswith("user_photo_")
    assert item.duration_seconds == 0
    assert item.title == "Untitled photo"
    assert "photo" in item.tags
    assert item.is_private
    assert service.get_recommendations("u1", 5) == []


def test_invalid_action_is_rejected(service):
    assert not service.record_behavior("u1", "v1", "teleport")
    assert service.events.slice("u1") == ()


def test_event_context_comes_from_catalog(service):
    publish_all(service, [make_item("v1", category="travel", tags=["beach"])])

    assert service.record_behavior("u1", "v1", "view", watch_time_seconds=-5)

    event = service.events.slice("u1")[0]
    assert event.category == "travel"
    assert event.tags == frozenset({"beach"})
    assert event.watch_time_seconds == 0.0
    assert event.timestamp == NOW


def test_prune_drops_old_events_and_items(service):
    publish_all(service, [make_item("fresh", age_days=1), make_item("old", age_days=20)])
    service.record_behavior("u1", "fresh", "like", metadata={"timestamp": NOW - 40 * MS_PER_DAY})
    service.record_behavior("u1", "fresh", "like")

    assert service.prune(event_max_age_days=30) == (1, 0)
    assert service.prune(event_max_age_days=30, catalog_max_age_days=10) == (0, 1)
    assert [item.id for item in service.get_all_videos()] == ["fresh"]


def test_snapshot_round_trip(config):
    repository = InMemorySnapshotRepository()
    first = RecommendationService(config=config, repository=repository, clock=lambda: NOW)
    publish_all(first, [make_item(f"v{i}", category=f"c{i % 3}") for i in range(6)])
    first.record_behavior("u1", "v1", "like")
    first.mark_viewed("u1", "v2")
    first.mark_not_interested("u1", "v3")
    assert first.save()

    second = RecommendationService(config=config, repository=repository, clock=lambda: NOW)
    assert second.load()

    assert second.get_user_preference_stats("u1") == first.get_user_preference_stats("u1")
    assert second.get_recommendations("u1", 5) == first.get_recommendations("u1", 5)
    assert second.stats() == first.stats()


def test_load_without_snapshot(service):
    assert not service.load()


def test_scoring_failure_falls_back_to_base_score(mixed_catalog, monkeypatch):
    service = mixed_catalog
    service.record_behavior("u1", "t0", "like")

    def broken(item, preference):
        raise RuntimeError("boom")

    monkeypatch.setattr(service.ranker.scorer, "personalization", broken)

    results = service.get_recommendations("u1", 5)
    assert len(results) == 5


def test_single_string_tag_in_metadata(service):
    assert service.record_behavior("u1", "v1", "like", metadata={"category": "travel", "tags": "beach"})

    assert service.events.slice("u1")[0].tags == frozenset({"beach"})
