from dataclasses import replace

import pytest

from backend.syncup_engine.errors import ProfileNotFound
from backend.syncup_engine.matchmaker_engine import MatchMakerEngine

MEME = [("f12-hacker", "😂")]


def ids(results):
    return [r.candidate_id for r in results]


@pytest.fixture
def small_engine(store, weights):
    engine = MatchMakerEngine(store, replace(weights, buffer_size=3))
    yield engine
    engine.pool.close()


@pytest.fixture
def crowd(store, make_profile):
    """A requester ``me`` and six identical candidates, oldest first."""
    for profile_id in ["me"] + [f"c{i}" for i in range(6)]:
        store.create_profile(make_profile(profile_id, {1: "Night"}, MEME))
    return store


def test_buffer_fills_lazily(crowd, small_engine):
    assert not small_engine.pool.is_active("me")
    buffer = small_engine.get_buffer("me")

    assert ids(buffer) == ["c0", "c1", "c2"]
    assert small_engine.pool.is_active("me")
    assert buffer[0].final_score == 60


def test_get_buffer_returns_a_copy(crowd, small_engine):
    small_engine.get_buffer("me").clear()
    assert len(small_engine.get_buffer("me")) == 3


def test_acting_on_a_candidate_refills_without_repeats(crowd, small_engine):
    small_engine.get_buffer("me")

    small_engine.pass_candidate("me", "c1")
    assert ids(small_engine.get_buffer("me")) == ["c0", "c2", "c3"]

    small_engine.request_connection("me", "c0")
    assert ids(small_engine.get_buffer("me")) == ["c2", "c3", "c4"]

    assert small_engine.toggle_like("me", "c2") is True
    assert ids(small_engine.get_buffer("me")) == ["c3", "c4", "c5"]


def test_unlike_leaves_buffer_alone(crowd, small_engine):
    small_engine.toggle_like("me", "c5")
    before = ids(small_engine.get_buffer("me"))

    assert small_engine.toggle_like("me", "c5") is False
    assert ids(small_engine.get_buffer("me")) == before


def test_buffer_shrinks_when_pool_runs_dry(store, make_profile, small_engine):
    for profile_id in ("me", "c0", "c1"):
        store.create_profile(make_profile(profile_id, {1: "Night"}, MEME))

    assert ids(small_engine.get_buffer("me")) == ["c0", "c1"]
    small_engine.pass_candidate("me", "c0")
    assert ids(small_engine.get_buffer("me")) == ["c1"]


def test_handled_profiles_never_enter_the_buffer(crowd, small_engine):
    lifecycle = small_engine.lifecycle
    lifecycle.pass_candidate("me", "c0")
    lifecycle.request_connection("me", "c1")
    lifecycle.toggle_like("me", "c2")
    lifecycle.request_connection("c3", "me")
    lifecycle.accept_connection("me", "c3")

    assert ids(small_engine.get_buffer("me")) == ["c4", "c5"]
    assert small_engine.pool.exclusion_ids("me") == {"me", "c0", "c1", "c2", "c3", "c4", "c5"}


def test_incoming_requests_stay_visible(crowd, small_engine):
    small_engine.lifecycle.request_connection("c0", "me")
    assert "c0" in ids(small_engine.get_buffer("me"))


def test_accept_clears_both_buffers(crowd, small_engine):
    assert ids(small_engine.get_buffer("c0")) == ["me", "c1", "c2"]
    small_engine.get_buffer("me")

    small_engine.request_connection("c0", "me")
    assert "me" not in ids(small_engine.get_buffer("c0"))
    # still waiting on me to react
    assert "c0" in ids(small_engine.get_buffer("me"))

    small_engine.accept_connection("me", "c0")
    assert "c0" not in ids(small_engine.get_buffer("me"))
    assert "me" not in ids(small_engine.get_buffer("c0"))


def test_rejected_requester_is_not_refilled(crowd, small_engine):
    small_engine.request_connection("c0", "me")
    assert ids(small_engine.get_buffer("me")) == ["c0", "c1", "c2"]

    small_engine.reject_connection("me", "c0")

    assert ids(small_engine.get_buffer("me")) == ["c1", "c2", "c3"]
    assert "c0" in small_engine.pool.exclusion_ids("me")

    # later refills keep it out too
    small_engine.pass_candidate("me", "c1")
    assert ids(small_engine.get_buffer("me")) == ["c2", "c3", "c4"]


def test_release_forgets_dismissed_ids(crowd, small_engine):
    small_engine.request_connection("c0", "me")
    small_engine.get_buffer("me")
    small_engine.reject_connection("me", "c0")

    small_engine.pool.release("me")
    assert ids(small_engine.get_buffer("me")) == ["c0", "c1", "c2"]


def test_discard_reports_whether_anything_changed(crowd, small_engine):
    pool = small_engine.pool
    assert pool.discard("me", "c0") is False  # no buffer yet

    pool.get_buffer("me")
    small_engine.lifecycle.pass_candidate("me", "c0")
    assert pool.discard("me", "c5") is False
    assert pool.discard("me", "c0") is True
    assert ids(pool.get_buffer("me")) == ["c1", "c2", "c3"]


def test_release_forgets_the_buffer(crowd, small_engine):
    small_engine.get_buffer("me")
    small_engine.pool.release("me")
    assert not small_engine.pool.is_active("me")


def test_unknown_user_is_not_activated(store, small_engine):
    with pytest.raises(ProfileNotFound):
        small_engine.get_buffer("ghost")
    assert not small_engine.pool.is_active("ghost")
