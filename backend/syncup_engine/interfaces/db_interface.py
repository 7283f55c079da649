import logging
import os
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

import psycopg2
from psycopg2 import errors
from psycopg2.extras import Json, RealDictCursor
from dotenv import load_dotenv

from backend.syncup_engine.errors import ProfileNotFound, StoreConflict
from backend.syncup_engine.models.user_profile import Profile, RelationshipState

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

RELATIONSHIP_FIELDS = ("sent", "incoming", "mutual", "passed", "liked")

T = TypeVar("T")

# mutation(first_state, second_state) -> result; may raise to abort the update
RelationshipMutation = Callable[[RelationshipState, RelationshipState], T]

# mutation(current_profile) -> dict of onboarding fields to overwrite
OnboardingMutation = Callable[[Profile], Dict[str, Any]]

# never written by an onboarding update
_PROTECTED_FIELDS = ("id", "relationships", "created_at")


class RetrievalTier(Enum):
    COMPLETE = 1
    PARTIAL = 2
    ANY = 3

    def matches(self, profile: Profile) -> bool:
        if self is RetrievalTier.COMPLETE:
            return profile.profile_complete and profile.has_quiz_answers and profile.has_meme_reactions
        if self is RetrievalTier.PARTIAL:
            return profile.has_quiz_answers or profile.has_meme_reactions
        return True


class ProfileStore(ABC):
    """
    Storage capability the engine depends on.

    Implementations own their connection and must be closed at shutdown.
    Relationship updates go through ``update_relationships`` only, which
    applies a mutation to both profiles' relationship sets as one unit.
    """

    @abstractmethod
    def get_profile(self, profile_id: str) -> Profile:
        """Raises ProfileNotFound when the id is unknown."""

    @abstractmethod
    def get_profile_by_email(self, email: str) -> Optional[Profile]:
        ...

    @abstractmethod
    def create_profile(self, profile: Profile) -> Profile:
        ...

    @abstractmethod
    def update_onboarding(self, profile_id: str, mutation: OnboardingMutation) -> Profile:
        """
        Read-modify-write of onboarding fields, serialized per profile.

        Raises ProfileNotFound when the id is unknown.
        """

    @abstractmethod
    def fetch_candidates(self, tier: RetrievalTier, exclude_ids: Iterable[str], limit: int) -> List[Profile]:
        ...

    @abstractmethod
    def update_relationships(self, first_id: str, second_id: str, mutation: RelationshipMutation) -> T:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


_TIER_CLAUSES = {
    RetrievalTier.COMPLETE: (
        "profile_complete AND quiz_answers <> '{}'::jsonb "
        "AND jsonb_array_length(meme_reactions) > 0"
    ),
    RetrievalTier.PARTIAL: (
        "(quiz_answers <> '{}'::jsonb OR jsonb_array_length(meme_reactions) > 0)"
    ),
    RetrievalTier.ANY: "TRUE",
}


def _row_to_profile(row) -> Profile:
    data = {key: value for key, value in row.items() if key not in RELATIONSHIP_FIELDS}
    data["badges"] = data.get("badges") or []
    data["traits"] = data.get("traits") or []
    data["relationships"] = {name: row.get(name) or [] for name in RELATIONSHIP_FIELDS}
    return Profile.model_validate(data)


def _onboarding_fields(updates: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in updates.items() if key not in _PROTECTED_FIELDS}


def _state_from_row(row) -> RelationshipState:
    return RelationshipState(**{name: set(row.get(name) or []) for name in RELATIONSHIP_FIELDS})


class PostgresProfileStore(ProfileStore):
    """Profiles stored one row each; relationship sets are text[] columns."""

    def __init__(self, conn=None, max_retries: int = 3):
        if conn is None:
            load_dotenv()
            conn = psycopg2.connect(
                dbname=os.getenv("PG_DB"),
                user=os.getenv("PG_USER"),
                password=os.getenv("PG_PASSWORD"),
                host=os.getenv("PG_HOST")
            )
        self.conn = conn
        self.max_retries = max_retries

    def create_schema(self):
        with self.conn:
            with self.conn.cursor() as cur:
                cur.execute(SCHEMA_PATH.read_text(encoding="utf-8"))

    def get_profile(self, profile_id):
        with self.conn:
            with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("SELECT * FROM profiles WHERE id = %s", (profile_id,))
                row = cur.fetchone()
        if row is None:
            raise ProfileNotFound(profile_id)
        return _row_to_profile(row)

    def get_profile_by_email(self, email):
        with self.conn:
            with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("SELECT * FROM profiles WHERE email = %s", (email,))
                row = cur.fetchone()
        return _row_to_profile(row) if row else None

    def create_profile(self, profile):
        data = profile.model_dump(mode="json")
        with self.conn:
            with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("""
                    INSERT INTO profiles (id, provider, provider_id, email, name, avatar_url,
                                          codename, badges, traits, quiz_answers, meme_reactions,
                                          dev_dna, profile_complete, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                """, (data["id"], data["provider"], data["provider_id"], data["email"],
                      data["name"], data["avatar_url"], data["codename"], data["badges"],
                      data["traits"], Json(data["quiz_answers"]), Json(data["meme_reactions"]),
                      Json(data["dev_dna"]), data["profile_complete"], profile.created_at))
                row = cur.fetchone()
        return _row_to_profile(row)

    @staticmethod
    def _write_onboarding(cur, profile):
        data = profile.model_dump(mode="json")
        cur.execute("""
            UPDATE profiles
            SET provider = %s, provider_id = %s, name = %s, avatar_url = %s,
                codename = %s, badges = %s, traits = %s, quiz_answers = %s,
                meme_reactions = %s, dev_dna = %s, profile_complete = %s
            WHERE id = %s
            RETURNING *
        """, (data["provider"], data["provider_id"], data["name"], data["avatar_url"],
              data["codename"], data["badges"], data["traits"],
              Json(data["quiz_answers"]), Json(data["meme_reactions"]),
              Json(data["dev_dna"]), data["profile_complete"], data["id"]))
        return cur.fetchone()

    def update_onboarding(self, profile_id, mutation):
        with self.conn:
            with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
                # the row lock serializes concurrent submissions for one profile
                cur.execute("SELECT * FROM profiles WHERE id = %s FOR UPDATE", (profile_id,))
                row = cur.fetchone()
                if row is None:
                    raise ProfileNotFound(profile_id)
                current = _row_to_profile(row)
                updated = current.model_copy(update=_onboarding_fields(mutation(current)))
                row = self._write_onboarding(cur, updated)
        return _row_to_profile(row)

    def fetch_candidates(self, tier, exclude_ids, limit):
        query = f"""
            SELECT * FROM profiles
            WHERE NOT (id = ANY(%s::text[])) AND {_TIER_CLAUSES[tier]}
            ORDER BY created_at ASC, id ASC
            LIMIT %s
        """
        with self.conn:
            with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, (sorted(set(exclude_ids)), limit))
                rows = cur.fetchall()
        return [_row_to_profile(row) for row in rows]

    def update_relationships(self, first_id, second_id, mutation):
        ids = sorted({first_id, second_id})
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            try:
                with self.conn:
                    with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
                        # lock both rows in id order so opposite-direction updates cannot deadlock
                        cur.execute("""
                            SELECT id, sent, incoming, mutual, passed, liked
                            FROM profiles WHERE id IN %s
                            ORDER BY id
                            FOR UPDATE
                        """, (tuple(ids),))
                        rows = {row["id"]: row for row in cur.fetchall()}
                        for profile_id in (first_id, second_id):
                            if profile_id not in rows:
                                raise ProfileNotFound(profile_id)

                        states = {profile_id: _state_from_row(rows[profile_id]) for profile_id in ids}
                        result = mutation(states[first_id], states[second_id])

                        for profile_id in ids:
                            state = states[profile_id]
                            cur.execute("""
                                UPDATE profiles
                                SET sent = %s, incoming = %s, mutual = %s, passed = %s, liked = %s
                                WHERE id = %s
                            """, tuple(sorted(getattr(state, name)) for name in RELATIONSHIP_FIELDS) + (profile_id,))
                return result
            except (errors.SerializationFailure, errors.DeadlockDetected) as e:
                last_error = e
                logger.warning(
                    f"Conflict updating relationships of {first_id}/{second_id} "
                    f"(attempt {attempt}/{self.max_retries}): {e}"
                )

        raise StoreConflict(
            f"Relationship update for {first_id}/{second_id} failed after {self.max_retries} attempts"
        ) from last_error

    def close(self):
        self.conn.close()
