from dataclasses import dataclass, field
from enum import Enum
from typing import List

from backend.syncup_engine.models.user_profile import Profile


class CompatibilityTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_score(cls, score: int) -> "CompatibilityTier":
        if score >= 80:
            return cls.HIGH
        if score >= 50:
            return cls.MEDIUM
        return cls.LOW


@dataclass
class MatchResult:
    """Compatibility of one candidate for one requester. Never persisted."""

    candidate: Profile
    quiz_raw: int = 0
    quiz_percent: int = 0
    meme_match_count: int = 0
    meme_percent: int = 0
    engagement_bonus: int = 0
    dev_dna_percent: int = 0
    dev_dna_contribution: int = 0
    provider_bonus: int = 0
    final_score: int = 0
    matching_traits: List[str] = field(default_factory=list)
    compatibility: CompatibilityTier = CompatibilityTier.LOW
    # sub-scores that fell back to 0 because their input was missing
    degraded: List[str] = field(default_factory=list)

    @property
    def candidate_id(self) -> str:
        return self.candidate.id
