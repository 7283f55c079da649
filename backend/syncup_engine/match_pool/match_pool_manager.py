import logging
import threading
from typing import Dict, List, Set

from backend.syncup_engine.interfaces.db_interface import ProfileStore
from backend.syncup_engine.match_pool.candidate_retrieval import CandidateRetriever
from backend.syncup_engine.models.diversity_strategy import DiversityStrategy
from backend.syncup_engine.models.match_result import MatchResult
from backend.syncup_engine.scoring.profile_scorer import ProfileScorer

logger = logging.getLogger(__name__)


class MatchPoolManager:
    """
    Keeps a bounded rolling window of candidates each active user has not
    reacted to yet.

    Buffers live in memory for the lifetime of the manager and are filled
    on first access. Acting on a buffered candidate removes it and tops the
    buffer back up without bringing back anyone already handled. Discarded
    ids are remembered per buffer, so a rejected requester (which leaves no
    trace in the relationship sets) is not offered again either.
    """

    def __init__(self, store: ProfileStore, retriever: CandidateRetriever, scorer: ProfileScorer,
                 strategy: DiversityStrategy, buffer_size: int = 10):
        self.store = store
        self.retriever = retriever
        self.scorer = scorer
        self.strategy = strategy
        self.buffer_size = buffer_size
        self._buffers: Dict[str, List[MatchResult]] = {}
        self._dismissed: Dict[str, Set[str]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, user_id):
        with self._registry_lock:
            return self._locks.setdefault(user_id, threading.Lock())

    def get_buffer(self, user_id: str) -> List[MatchResult]:
        with self._lock_for(user_id):
            if user_id not in self._buffers:
                buffer = []
                self._refill(user_id, buffer)
                self._buffers[user_id] = buffer
            return list(self._buffers[user_id])

    def is_active(self, user_id: str) -> bool:
        return user_id in self._buffers

    def discard(self, user_id: str, target_id: str) -> bool:
        """
        Drop ``target_id`` from ``user_id``'s buffer and refill it.

        Returns False when the user has no buffer or the target was not in it.
        """
        with self._lock_for(user_id):
            buffer = self._buffers.get(user_id)
            if buffer is None:
                return False

            remaining = [result for result in buffer if result.candidate_id != target_id]
            if len(remaining) == len(buffer):
                return False

            self._buffers[user_id] = remaining
            self._dismissed.setdefault(user_id, set()).add(target_id)
            if len(remaining) < self.buffer_size:
                self._refill(user_id, remaining)
            return True

    def exclusion_ids(self, user_id: str) -> Set[str]:
        """Everyone who must not be offered to ``user_id`` again."""
        requester = self.store.get_profile(user_id)
        excluded = {user_id}
        excluded.update(result.candidate_id for result in self._buffers.get(user_id, ()))
        excluded.update(self._dismissed.get(user_id, ()))
        excluded.update(requester.relationships.acted_upon())
        return excluded

    def _refill(self, user_id, buffer):
        free_slots = self.buffer_size - len(buffer)
        if free_slots <= 0:
            return

        requester = self.store.get_profile(user_id)
        candidates = self.retriever.retrieve(user_id, self.exclusion_ids(user_id))

        scored = [self.scorer.score(requester, candidate) for candidate in candidates]
        scored.sort(key=lambda result: result.final_score, reverse=True)
        picks = self.strategy.select_matches(scored, free_slots)

        buffer.extend(picks)
        logger.debug(f"Refilled buffer for {user_id} with {len(picks)} candidates ({len(buffer)}/{self.buffer_size})")

    def release(self, user_id: str) -> None:
        with self._registry_lock:
            self._buffers.pop(user_id, None)
            self._dismissed.pop(user_id, None)
            self._locks.pop(user_id, None)

    def close(self) -> None:
        with self._registry_lock:
            self._buffers.clear()
            self._dismissed.clear()
            self._locks.clear()
