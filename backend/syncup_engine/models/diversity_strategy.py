from typing import List, Sequence

from backend.syncup_engine.models.match_result import MatchResult


def trait_similarity(a: MatchResult, b: MatchResult) -> float:
    """Jaccard similarity of two results' match reasons."""
    traits_a = set(a.matching_traits)
    traits_b = set(b.matching_traits)
    union = traits_a | traits_b
    if not union:
        return 0.0
    return len(traits_a & traits_b) / len(union)


class DiversityStrategy:
    """
    Greedy Maximal Marginal Relevance selection.

    Trades a little relevance for variety so the top picks are not three
    near-identical matches.
    """

    def __init__(self, lambda_: float = 0.7):
        if not 0 <= lambda_ <= 1:
            raise ValueError(f"lambda must be in [0, 1], got {lambda_}")
        self.lambda_ = lambda_

    def select_matches(self, scored_matches: Sequence[MatchResult], k: int) -> List[MatchResult]:
        """
        Select up to ``k`` results from a score-descending list.

        Returns exactly ``min(k, len(scored_matches))`` items in selection
        order. Ties go to the earlier item in the input.
        """
        if k < 0:
            raise ValueError(f"k must not be negative, got {k}")

        selected: List[MatchResult] = []
        remaining = list(scored_matches)

        while len(selected) < k and remaining:
            best_index = 0
            best_score = float("-inf")
            for index, candidate in enumerate(remaining):
                redundancy = max((trait_similarity(candidate, s) for s in selected), default=0.0)
                mmr_score = self.lambda_ * candidate.final_score - (1 - self.lambda_) * redundancy * 100
                if mmr_score > best_score:
                    best_score = mmr_score
                    best_index = index
            selected.append(remaining.pop(best_index))

        return selected
