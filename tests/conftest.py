from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from backend.syncup_engine.config.loader import DEFAULT_CONFIG_PATH, WeightConfig, load_config
from backend.syncup_engine.interfaces.memory_store import InMemoryProfileStore
from backend.syncup_engine.matchmaker_engine import MatchMakerEngine
from backend.syncup_engine.models.quiz_answers import parse_quiz_answers
from backend.syncup_engine.models.user_profile import DevDna, MemeReaction, Profile

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def weights():
    # built straight from the packaged file so environment overrides don't leak in
    return WeightConfig.from_dict(load_config(str(DEFAULT_CONFIG_PATH)))


@pytest.fixture
def make_profile(weights):
    """Factory for profiles; creation times increase with every call."""
    ticks = count()

    def _make(profile_id, answers=None, memes=None, languages=None, provider="github", complete=True):
        return Profile(
            id=profile_id,
            provider=provider,
            email=f"{profile_id}@example.com",
            name=profile_id,
            quiz_answers=parse_quiz_answers(answers or {}, weights.questions),
            meme_reactions=[MemeReaction(item_id=item, reaction=r) for item, r in (memes or [])],
            dev_dna=DevDna(top_languages=[{"lang": lang, "value": v} for lang, v in (languages or [])]),
            profile_complete=complete,
            created_at=EPOCH + timedelta(seconds=next(ticks)),
        )

    return _make


@pytest.fixture
def store():
    store = InMemoryProfileStore()
    yield store
    store.close()


@pytest.fixture
def trio(store, make_profile):
    """Three onboarded profiles a, b and c."""
    for profile_id in ("a", "b", "c"):
        store.create_profile(make_profile(profile_id, {1: "Night"}, [("f12-hacker", "😂")]))
    return store


@pytest.fixture
def engine(store, weights):
    engine = MatchMakerEngine(store, weights)
    yield engine
    engine.pool.close()
