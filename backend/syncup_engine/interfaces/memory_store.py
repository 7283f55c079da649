import logging
import threading
from typing import Dict, Iterable, Optional

from backend.syncup_engine.errors import ProfileNotFound
from backend.syncup_engine.interfaces.db_interface import ProfileStore, RetrievalTier, _onboarding_fields
from backend.syncup_engine.models.user_profile import Profile

logger = logging.getLogger(__name__)


class InMemoryProfileStore(ProfileStore):
    """
    Process-local store for tests and single-instance deployments.

    Each profile has its own lock; relationship updates take both locks in
    id order, so updates touching a shared profile are serialized and
    opposite-direction updates cannot deadlock. Callers always get copies.
    """

    def __init__(self, profiles: Optional[Iterable[Profile]] = None):
        self._profiles: Dict[str, Profile] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._closed = False
        for profile in profiles or ():
            self.create_profile(profile)

    def _check_open(self):
        if self._closed:
            raise RuntimeError("Profile store is closed")

    def _lock_for(self, profile_id):
        with self._registry_lock:
            return self._locks.setdefault(profile_id, threading.Lock())

    def get_profile(self, profile_id):
        self._check_open()
        profile = self._profiles.get(profile_id)
        if profile is None:
            raise ProfileNotFound(profile_id)
        return profile.model_copy(deep=True)

    def _snapshot(self):
        with self._registry_lock:
            return list(self._profiles.values())

    def get_profile_by_email(self, email):
        self._check_open()
        for profile in self._snapshot():
            if profile.email == email:
                return profile.model_copy(deep=True)
        return None

    def create_profile(self, profile):
        self._check_open()
        with self._registry_lock:
            if profile.id in self._profiles:
                raise ValueError(f"Profile already exists: {profile.id}")
            self._profiles[profile.id] = profile.model_copy(deep=True)
        logger.debug(f"Created profile {profile.id}")
        return profile.model_copy(deep=True)

    def update_onboarding(self, profile_id, mutation):
        self._check_open()
        with self._lock_for(profile_id):
            current = self._profiles.get(profile_id)
            if current is None:
                raise ProfileNotFound(profile_id)
            updates = mutation(current.model_copy(deep=True))
            updated = current.model_copy(deep=True, update=_onboarding_fields(updates))
            self._profiles[profile_id] = updated
        return updated.model_copy(deep=True)

    def fetch_candidates(self, tier, exclude_ids, limit):
        self._check_open()
        excluded = set(exclude_ids)
        ordered = sorted(self._snapshot(), key=lambda p: (p.created_at, p.id))
        matches = [p for p in ordered if p.id not in excluded and tier.matches(p)]
        return [p.model_copy(deep=True) for p in matches[:limit]]

    def update_relationships(self, first_id, second_id, mutation):
        self._check_open()
        ids = sorted({first_id, second_id})
        locks = [self._lock_for(profile_id) for profile_id in ids]

        for lock in locks:
            lock.acquire()
        try:
            for profile_id in (first_id, second_id):
                if profile_id not in self._profiles:
                    raise ProfileNotFound(profile_id)

            # mutate copies so a raising mutation leaves nothing half-applied
            states = {
                profile_id: self._profiles[profile_id].relationships.model_copy(deep=True)
                for profile_id in ids
            }
            result = mutation(states[first_id], states[second_id])
            for profile_id, state in states.items():
                self._profiles[profile_id].relationships = state
            return result
        finally:
            for lock in reversed(locks):
                lock.release()

    def close(self):
        self._closed = True
        with self._registry_lock:
            self._profiles.clear()
            self._locks.clear()
