import logging
from typing import List

from backend.syncup_engine.config.loader import WeightConfig
from backend.syncup_engine.models.match_result import CompatibilityTier, MatchResult
from backend.syncup_engine.models.user_profile import Profile
from backend.syncup_engine.scoring.dev_dna_similarity import dev_dna_similarity_percent
from backend.syncup_engine.scoring.quiz_similarity import compare_quiz_answers, round_half_up

logger = logging.getLogger(__name__)


class ProfileScorer:
    def __init__(self, weights: WeightConfig):
        self.weights = weights

    def score(self, requester: Profile, candidate: Profile) -> MatchResult:
        """
        Compute the 0-100 compatibility of ``candidate`` for ``requester``.

        Sub-scores are computed in a fixed order (quiz, meme overlap,
        engagement, dev DNA, provider) and each nonzero one adds a reason
        to ``matching_traits`` in that order. Missing input zeroes the
        affected sub-score and is recorded in ``degraded``.
        """
        result = MatchResult(candidate=candidate)
        reasons: List[str] = []

        self._score_quiz(requester, candidate, result, reasons)
        self._score_memes(requester, candidate, result, reasons)
        self._score_dev_dna(requester, candidate, result, reasons)
        self._score_provider(requester, candidate, result, reasons)

        total = (
            result.quiz_percent
            + result.meme_percent
            + result.engagement_bonus
            + result.dev_dna_contribution
            + result.provider_bonus
        )
        result.final_score = max(0, min(100, round_half_up(total)))
        result.compatibility = CompatibilityTier.from_score(result.final_score)
        result.matching_traits = reasons

        if result.degraded:
            logger.debug(
                f"Degraded score for {requester.id} -> {candidate.id}: missing {result.degraded}"
            )
        return result

    def _score_quiz(self, requester, candidate, result, reasons):
        if not requester.quiz_answers or not candidate.quiz_answers:
            result.degraded.append("quiz")
            return

        comparison = compare_quiz_answers(requester.quiz_answers, candidate.quiz_answers, self.weights)
        result.quiz_raw = comparison.raw
        result.quiz_percent = comparison.percent
        if comparison.percent >= self.weights.quiz_high_match_threshold:
            reasons.append(f"High quiz match ({comparison.percent}%)")
        elif comparison.percent > 0:
            reasons.append(f"Quiz overlap ({comparison.percent}%)")

    def _score_memes(self, requester, candidate, result, reasons):
        if not requester.meme_reactions or not candidate.meme_reactions:
            result.degraded.append("meme")
            return

        mine = {(r.item_id, r.reaction) for r in requester.meme_reactions}
        theirs = {(r.item_id, r.reaction) for r in candidate.meme_reactions}
        common = len(mine & theirs)

        result.meme_match_count = common
        result.meme_percent = min(self.weights.meme_percent_cap, common * self.weights.meme_percent_per_match)
        if result.meme_percent > 0:
            reasons.append(f"{common} similar meme reactions (+{result.meme_percent}%)")

        # both took part, regardless of overlap
        result.engagement_bonus = self.weights.meme_engagement_bonus
        if result.engagement_bonus > 0:
            reasons.append("Both engaged with memes")

    def _score_dev_dna(self, requester, candidate, result, reasons):
        if not requester.dev_dna.top_languages or not candidate.dev_dna.top_languages:
            result.degraded.append("dev_dna")
            return

        result.dev_dna_percent = dev_dna_similarity_percent(requester.dev_dna, candidate.dev_dna)
        result.dev_dna_contribution = round_half_up(result.dev_dna_percent * self.weights.dev_dna_weight)
        if result.dev_dna_contribution > 0:
            reasons.append(f"DevDNA similarity (+{result.dev_dna_contribution}%)")

    def _score_provider(self, requester, candidate, result, reasons):
        for rule in self.weights.provider_rules:
            answer = requester.quiz_answers.get(rule.question_id)
            if answer is None or answer.value != rule.answer:
                continue
            if candidate.provider.value != rule.provider:
                continue
            result.provider_bonus += self.weights.provider_bonus
            reasons.append(rule.reason)
