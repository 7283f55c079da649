import logging
from typing import Iterable, List

from backend.syncup_engine.interfaces.db_interface import ProfileStore, RetrievalTier
from backend.syncup_engine.models.user_profile import Profile

logger = logging.getLogger(__name__)

PAGE_SIZE = 10


class CandidateRetriever:
    """
    Pulls a page of candidate profiles, preferring fully onboarded ones.

    Tiers are tried in order and the first non-empty tier wins:
    complete profiles, then anyone with quiz answers or meme reactions,
    then anyone at all.
    """

    def __init__(self, store: ProfileStore, page_size: int = PAGE_SIZE):
        self.store = store
        self.page_size = page_size

    def retrieve(self, requester_id: str, exclude_ids: Iterable[str] = ()) -> List[Profile]:
        # confirms the requester exists
        self.store.get_profile(requester_id)

        excluded = set(exclude_ids)
        excluded.add(requester_id)

        for tier in RetrievalTier:
            candidates = self.store.fetch_candidates(tier, excluded, self.page_size)
            if candidates:
                logger.debug(f"Tier {tier.name} returned {len(candidates)} candidates for {requester_id}")
                return candidates

        logger.info(f"No candidates available for {requester_id}")
        return []
