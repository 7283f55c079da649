from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Literal, Optional, Set

from pydantic import BaseModel, Field, field_validator

from backend.syncup_engine.models.quiz_answers import QuizAnswer

REACTION_SYMBOLS = ("😐", "😂", "💯", "😭")


class Provider(str, Enum):
    GITHUB = "github"
    GOOGLE = "google"
    LINKEDIN = "linkedin"


class MemeReaction(BaseModel):
    item_id: str
    reaction: Literal["😐", "😂", "💯", "😭"]


class LanguageShare(BaseModel):
    lang: str
    value: float = Field(default=0.0, ge=0)


class DevDna(BaseModel):
    top_languages: List[LanguageShare] = Field(default_factory=list)
    commit_frequency: float = 0
    star_count: int = 0


@dataclass(frozen=True)
class RelationshipSnapshot:
    sent: FrozenSet[str]
    incoming: FrozenSet[str]
    mutual: FrozenSet[str]
    passed: FrozenSet[str]
    liked: FrozenSet[str]


class RelationshipState(BaseModel):
    sent: Set[str] = Field(default_factory=set)
    incoming: Set[str] = Field(default_factory=set)
    mutual: Set[str] = Field(default_factory=set)
    passed: Set[str] = Field(default_factory=set)
    liked: Set[str] = Field(default_factory=set)

    def snapshot(self) -> RelationshipSnapshot:
        return RelationshipSnapshot(
            sent=frozenset(self.sent),
            incoming=frozenset(self.incoming),
            mutual=frozenset(self.mutual),
            passed=frozenset(self.passed),
            liked=frozenset(self.liked),
        )

    def acted_upon(self) -> Set[str]:
        """Ids this profile has already handled and should not be shown again."""
        return self.passed | self.sent | self.liked | self.mutual


def merge_meme_reactions(existing: List[MemeReaction], incoming: List[MemeReaction]) -> List[MemeReaction]:
    """Later reactions to the same item replace earlier ones in place."""
    by_item: Dict[str, MemeReaction] = {}
    for reaction in list(existing) + list(incoming):
        by_item[reaction.item_id] = reaction
    return list(by_item.values())


class Profile(BaseModel):
    id: str
    provider: Provider
    provider_id: str = ""
    email: str = ""
    name: str = ""
    avatar_url: Optional[str] = None

    codename: Optional[str] = None
    badges: List[str] = Field(default_factory=list)
    traits: List[str] = Field(default_factory=list)

    quiz_answers: Dict[int, QuizAnswer] = Field(default_factory=dict)
    meme_reactions: List[MemeReaction] = Field(default_factory=list)
    dev_dna: DevDna = Field(default_factory=DevDna)
    profile_complete: bool = False

    relationships: RelationshipState = Field(default_factory=RelationshipState)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("provider", mode="before")
    @classmethod
    def _lower_provider(cls, value):
        return value.lower() if isinstance(value, str) else value

    @field_validator("quiz_answers")
    @classmethod
    def _positive_question_ids(cls, value):
        for qid in value:
            if qid <= 0:
                raise ValueError(f"question ids must be positive, got {qid}")
        return value

    @field_validator("meme_reactions")
    @classmethod
    def _one_reaction_per_item(cls, value):
        return merge_meme_reactions([], value)

    @property
    def has_quiz_answers(self) -> bool:
        return bool(self.quiz_answers)

    @property
    def has_meme_reactions(self) -> bool:
        return bool(self.meme_reactions)
