from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from psycopg2 import errors

from backend.syncup_engine.errors import ProfileNotFound, StoreConflict
from backend.syncup_engine.interfaces.db_interface import PostgresProfileStore, RetrievalTier
from backend.syncup_engine.models.quiz_answers import CardChoiceAnswer


def relationship_row(profile_id, **sets):
    row = {"id": profile_id, "sent": [], "incoming": [], "mutual": [], "passed": [], "liked": []}
    row.update(sets)
    return row


def profile_row(profile_id):
    return {
        "id": profile_id,
        "provider": "github",
        "provider_id": "gh-" + profile_id,
        "email": f"{profile_id}@example.com",
        "name": profile_id,
        "avatar_url": None,
        "codename": "Night_AB12",
        "badges": None,
        "traits": ["Night Owl"],
        "quiz_answers": {"1": {"kind": "card", "value": "Night"}},
        "meme_reactions": [{"item_id": "f12-hacker", "reaction": "😂"}],
        "dev_dna": {"top_languages": [{"lang": "Go", "value": 10}]},
        "profile_complete": True,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "sent": ["b"],
        "incoming": None,
        "mutual": [],
        "passed": [],
        "liked": None,
    }


@pytest.fixture
def cursor():
    return MagicMock()


@pytest.fixture
def pg_store(cursor):
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return PostgresProfileStore(conn=conn, max_retries=3)


def request(sender, receiver):
    sender.sent.add("b")
    receiver.incoming.add("a")
    return "done"


def test_row_maps_to_profile(pg_store, cursor):
    cursor.fetchone.return_value = profile_row("a")

    profile = pg_store.get_profile("a")

    assert profile.quiz_answers == {1: CardChoiceAnswer(value="Night")}
    assert profile.badges == []
    assert profile.relationships.sent == {"b"}
    assert profile.relationships.incoming == set()
    cursor.execute.assert_called_once_with("SELECT * FROM profiles WHERE id = %s", ("a",))


def test_missing_row_raises(pg_store, cursor):
    cursor.fetchone.return_value = None
    with pytest.raises(ProfileNotFound):
        pg_store.get_profile("ghost")
    assert pg_store.get_profile_by_email("ghost@example.com") is None


def test_fetch_candidates_query(pg_store, cursor):
    cursor.fetchall.return_value = [profile_row("b")]

    found = pg_store.fetch_candidates(RetrievalTier.COMPLETE, {"z", "a"}, 10)

    assert [p.id for p in found] == ["b"]
    query, params = cursor.execute.call_args[0]
    assert "profile_complete" in query
    assert "ORDER BY created_at ASC, id ASC" in query
    assert params == (["a", "z"], 10)


def test_update_writes_both_rows(pg_store, cursor):
    cursor.fetchall.return_value = [relationship_row("a"), relationship_row("b")]

    assert pg_store.update_relationships("a", "b", request) == "done"

    select, update_a, update_b = cursor.execute.call_args_list
    assert "FOR UPDATE" in select[0][0]
    assert select[0][1] == (("a", "b"),)
    assert update_a[0][1] == (["b"], [], [], [], [], "a")
    assert update_b[0][1] == ([], ["a"], [], [], [], "b")


def test_update_retries_on_serialization_failure(pg_store, cursor):
    cursor.execute.side_effect = [errors.SerializationFailure("conflict"), None, None, None]
    cursor.fetchall.return_value = [relationship_row("a"), relationship_row("b")]

    assert pg_store.update_relationships("a", "b", request) == "done"
    assert cursor.execute.call_count == 4


def test_update_gives_up_after_max_retries(pg_store, cursor):
    cursor.execute.side_effect = errors.DeadlockDetected("deadlock")

    with pytest.raises(StoreConflict) as excinfo:
        pg_store.update_relationships("a", "b", request)

    assert cursor.execute.call_count == 3
    assert isinstance(excinfo.value.__cause__, errors.DeadlockDetected)


def test_update_with_unknown_profile(pg_store, cursor):
    cursor.fetchall.return_value = [relationship_row("a")]
    mutation = MagicMock()

    with pytest.raises(ProfileNotFound):
        pg_store.update_relationships("a", "b", mutation)
    mutation.assert_not_called()


def test_close_closes_connection(pg_store):
    with pg_store:
        pass
    pg_store.conn.close.assert_called_once_with()


def test_update_onboarding_locks_row_and_writes_merge(pg_store, cursor):
    written = dict(profile_row("a"), name="Ada")
    cursor.fetchone.side_effect = [profile_row("a"), written]
    seen = []

    def rename(profile):
        seen.append(profile.name)
        return {"name": "Ada", "relationships": None}

    updated = pg_store.update_onboarding("a", rename)

    assert seen == ["a"]
    assert updated.name == "Ada"
    assert updated.relationships.sent == {"b"}
    select, update = cursor.execute.call_args_list
    assert select[0] == ("SELECT * FROM profiles WHERE id = %s FOR UPDATE", ("a",))
    assert "UPDATE profiles" in update[0][0]
    assert update[0][1][2] == "Ada"
    assert update[0][1][-1] == "a"


def test_update_onboarding_unknown_profile(pg_store, cursor):
    cursor.fetchone.return_value = None
    mutation = MagicMock()

    with pytest.raises(ProfileNotFound):
        pg_store.update_onboarding("ghost", mutation)
    mutation.assert_not_called()
