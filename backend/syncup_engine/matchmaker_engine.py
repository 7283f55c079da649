import logging
import os
from typing import Iterable, List, Optional, Sequence

from dotenv import load_dotenv

from backend.syncup_engine.config.loader import WeightConfig, load_weight_config, setup_logging
from backend.syncup_engine.interfaces.db_interface import PostgresProfileStore, ProfileStore
from backend.syncup_engine.interfaces.memory_store import InMemoryProfileStore
from backend.syncup_engine.lifecycle.connection_lifecycle import ConnectionLifecycleManager
from backend.syncup_engine.match_pool.candidate_retrieval import CandidateRetriever
from backend.syncup_engine.match_pool.match_pool_manager import MatchPoolManager
from backend.syncup_engine.models.diversity_strategy import DiversityStrategy
from backend.syncup_engine.models.match_result import MatchResult
from backend.syncup_engine.models.user_profile import Profile, RelationshipSnapshot
from backend.syncup_engine.onboarding.profile_builder import ProfileBuilder
from backend.syncup_engine.scoring.profile_scorer import ProfileScorer

logger = logging.getLogger(__name__)


class MatchMakerEngine:
    """
    Entry point wiring retrieval, scoring, reranking, the connection
    lifecycle and per-user buffers around one profile store.

    The engine owns the store: ``close()`` (or leaving a ``with`` block)
    drops all buffers and closes it.
    """

    def __init__(self, store: ProfileStore, weights: Optional[WeightConfig] = None):
        self.store = store
        self.weights = weights or load_weight_config()
        self.scorer = ProfileScorer(self.weights)
        self.strategy = DiversityStrategy(self.weights.mmr_lambda)
        self.retriever = CandidateRetriever(store, page_size=self.weights.retrieval_page_size)
        self.lifecycle = ConnectionLifecycleManager(store)
        self.pool = MatchPoolManager(
            store, self.retriever, self.scorer, self.strategy, buffer_size=self.weights.buffer_size
        )
        self.profiles = ProfileBuilder(store, self.weights)

    @classmethod
    def from_env(cls) -> "MatchMakerEngine":
        """Build an engine from environment variables (and a .env file, if present)."""
        load_dotenv()
        setup_logging(os.getenv("LOG_LEVEL", "INFO"))
        weights = load_weight_config()

        backend = os.getenv("SYNCUP_STORE", "memory").lower()
        if backend == "postgres":
            store = PostgresProfileStore(max_retries=weights.max_retries)
        elif backend == "memory":
            store = InMemoryProfileStore()
        else:
            raise ValueError(f"Unknown SYNCUP_STORE backend: {backend}")

        logger.info(f"Matchmaking engine started with {backend} store, weights {weights.version}")
        return cls(store, weights)

    # Matching

    def retrieve_candidates(self, requester_id: str, exclude_ids: Iterable[str] = ()) -> List[Profile]:
        return self.retriever.retrieve(requester_id, exclude_ids)

    def score_candidate(self, requester: Profile, candidate: Profile,
                        weights: Optional[WeightConfig] = None) -> MatchResult:
        scorer = self.scorer if weights is None else ProfileScorer(weights)
        return scorer.score(requester, candidate)

    def rerank(self, results: Sequence[MatchResult], k: int,
               lambda_: Optional[float] = None) -> List[MatchResult]:
        strategy = self.strategy if lambda_ is None else DiversityStrategy(lambda_)
        return strategy.select_matches(results, k)

    def generate_matches(self, user_id: str, k: int = 3) -> List[MatchResult]:
        """
        Top ``k`` diverse matches for a user, skipping anyone already acted upon.
        """
        requester = self.store.get_profile(user_id)
        excluded = requester.relationships.acted_upon()
        candidates = self.retrieve_candidates(user_id, excluded)

        scored = [self.scorer.score(requester, candidate) for candidate in candidates]
        scored.sort(key=lambda result: result.final_score, reverse=True)
        top = self.rerank(scored, min(k, len(scored)))

        logger.info(f"Top {len(top)} matches for {user_id}: {[(m.candidate_id, m.final_score) for m in top]}")
        return top

    def get_buffer(self, user_id: str) -> List[MatchResult]:
        return self.pool.get_buffer(user_id)

    # Connections

    def request_connection(self, from_id: str, to_id: str) -> None:
        self.lifecycle.request_connection(from_id, to_id)
        self.pool.discard(from_id, to_id)

    def accept_connection(self, of_id: str, from_id: str) -> None:
        self.lifecycle.accept_connection(of_id, from_id)
        # both sides now count each other as mutual
        self.pool.discard(of_id, from_id)
        self.pool.discard(from_id, of_id)

    def reject_connection(self, of_id: str, from_id: str) -> None:
        self.lifecycle.reject_connection(of_id, from_id)
        self.pool.discard(of_id, from_id)

    def pass_candidate(self, of_id: str, target_id: str) -> None:
        self.lifecycle.pass_candidate(of_id, target_id)
        self.pool.discard(of_id, target_id)

    def toggle_like(self, of_id: str, target_id: str) -> bool:
        liked = self.lifecycle.toggle_like(of_id, target_id)
        if liked:
            self.pool.discard(of_id, target_id)
        return liked

    def get_relationship_state(self, profile_id: str) -> RelationshipSnapshot:
        return self.lifecycle.get_relationship_state(profile_id)

    # Profiles

    def sync_profile(self, provider: str, email: str, provider_id: Optional[str] = None,
                     name: Optional[str] = None, avatar_url: Optional[str] = None) -> Profile:
        return self.profiles.sync_profile(provider, email, provider_id, name, avatar_url)

    def submit_onboarding(self, user_id: str, quiz_answers=None, meme_reactions=None,
                          profile_complete: Optional[bool] = None) -> Profile:
        return self.profiles.submit_onboarding(user_id, quiz_answers, meme_reactions, profile_complete)

    # Lifecycle

    def close(self) -> None:
        self.pool.close()
        self.store.close()
        logger.info("Matchmaking engine shut down")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
