import math

import pytest

from recommender.config import EngineConfig
from recommender.schemas import UserPreference
from recommender.scoring import (
    REASON_CATEGORY,
    REASON_CREATOR,
    REASON_FALLBACK,
    REASON_FRESH,
    REASON_QUALITY,
    REASON_TRENDING,
    Scorer,
)
from recommender.utils import MS_PER_DAY

from conftest import HOUR, NOW, make_event, make_item


@pytest.fixture
def scorer():
    return Scorer(EngineConfig())


def test_non_personalized_score(scorer):
    item = make_item("v1", quality=8, age_days=2)

    expected = 8 * 0.25 + math.exp(-2 / 7) * 0.15
    assert scorer.score(item, None, (), NOW) == pytest.approx(expected)


@pytest.mark.parametrize("age, expected", [
    (0.5, 1.2),
    (3.0, math.exp(-3 / 7)),
    (60.0, math.exp(-2) * 0.5),
])
def test_freshness_branches(age, expected):
    assert Scorer.freshness(age) == pytest.approx(expected)


def test_popularity_term(scorer):
    item = make_item("v1", views=100, likes=20, comments=5, shares=5)

    expected = (
        math.log(101) * 0.08 + math.log(21) * 0.12 + math.log(6) * 0.08 + 0.3 * 10
    )
    assert scorer.popularity(item) == pytest.approx(expected)
    assert Scorer.engagement_rate(make_item("v2", likes=3)) == 0.0


def test_personalization_terms(scorer):
    item = make_item("v1", category="travel", creator_id="alice", duration=30, tags=["beach", "city"])
    pref = UserPreference(
        user_id="u1",
        categories={"travel": 6.0},
        tags={"beach": 2.0, "city": 4.0, "food": 9.0},
        creators={"alice": 4.0},
        watch_time_preference_seconds=120.0,
    )

    expected = (
        6.0 * 0.25 * 1.2
        + 3.0 * 0.2
        + 4.0 * 0.15 * 1.3
        + math.sqrt(30 / 120) * 0.1
    )
    assert scorer.personalization(item, pref) == pytest.approx(expected)


def test_weak_affinities_get_no_bonus(scorer):
    item = make_item("v1", category="travel", creator_id="alice")
    pref = UserPreference(user_id="u1", categories={"travel": 5.0}, creators={"alice": 3.0})

    assert scorer.personalization(item, pref) == pytest.approx(5.0 * 0.25 + 3.0 * 0.15)


def test_score_is_floored_at_zero(scorer):
    item = make_item("v1", category="travel")
    pref = UserPreference(user_id="u1", categories={"travel": -100.0})

    assert scorer.score(item, pref, (), NOW) == 0.0


def test_recent_activity_hour_bonus(scorer):
    item = make_item("v1")
    events = [make_event("u1", "x", at=NOW - i * MS_PER_DAY) for i in range(1, 4)]

    base = scorer.score(item, None, (), NOW)
    assert scorer.score(item, None, events, NOW) == pytest.approx(base * 1.1)


def test_recent_activity_outside_hour_window(scorer):
    item = make_item("v1")
    events = [make_event("u1", "x", at=NOW - 8 * HOUR)]

    base = scorer.score(item, None, (), NOW)
    assert scorer.score(item, None, events, NOW) == pytest.approx(base)


def test_old_events_do_not_modulate(scorer):
    item = make_item("v1")
    events = [make_event("u1", "x", watch=600, at=NOW - 10 * MS_PER_DAY)]

    assert scorer.score(item, None, events, NOW) == pytest.approx(scorer.score(item, None, (), NOW))


def test_watch_time_match_factor(scorer):
    item = make_item("v1", duration=15)
    events = [make_event("u1", "x", action="view", watch=60, at=NOW - 8 * HOUR)]

    base = scorer.score(item, None, (), NOW)
    assert scorer.score(item, None, events, NOW) == pytest.approx(base * (0.8 + 0.4 * 0.25))


def test_preferred_hour_defaults_to_noon(scorer):
    assert scorer.preferred_hour([]) == 12


def test_confidence_for_new_user(scorer):
    item = make_item("v1", quality=7, views=50)
    assert scorer.confidence(item, None, (), NOW) == pytest.approx(0.64)


def test_confidence_grows_with_signal_and_is_clamped(scorer):
    item = make_item("v1", quality=10, views=10 ** 6)
    pref = UserPreference(
        user_id="u1",
        categories={f"c{i}": 1.0 for i in range(40)},
    )
    events = [make_event("u1", "x") for _ in range(200)]

    assert scorer.confidence(item, pref, events, NOW) == 1.0
    assert scorer.confidence(item, None, (), NOW) == pytest.approx(0.5 + 0.2 + 0.1)


def test_reason_priority(scorer):
    item = make_item("v1", category="travel", creator_id="alice", tags=["beach"], quality=9,
                     views=20000, age_days=0.5)
    pref = UserPreference(
        user_id="u1",
        categories={"travel": 6.0},
        creators={"alice": 4.0},
        tags={"beach": 3.0},
    )

    assert scorer.reason(item, pref, NOW) == REASON_CATEGORY.format(category="travel")

    pref.categories["travel"] = 1.0
    assert scorer.reason(item, pref, NOW) == REASON_CREATOR

    pref.creators["alice"] = 1.0
    assert scorer.reason(item, pref, NOW) == "Matches your interests: beach"

    assert scorer.reason(item, None, NOW) == REASON_TRENDING
    assert scorer.reason(make_item("v2", age_days=0.5), None, NOW) == REASON_FRESH
    assert scorer.reason(make_item("v3", quality=9), None, NOW) == REASON_QUALITY
    assert scorer.reason(make_item("v4", quality=5), None, NOW) == REASON_FALLBACK


def test_tag_mean_ignores_non_positive_weights(scorer):
    item = make_item("v1", category="none", creator_id="nobody", tags=["a", "b", "c"])
    pref = UserPreference(user_id="u1", tags={"a": 4.0, "b": -2.0, "c": 0.0})

    assert scorer.personalization(item, pref) == pytest.approx(4.0 * 0.2)
