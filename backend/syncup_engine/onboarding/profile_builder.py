"""
Profile creation on identity sync and onboarding submissions.

Traits, badges and the codename shown on a profile card are derived from
the stored quiz answers and meme reactions every time they change.
"""

import logging
import random
import string
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import ValidationError

from backend.syncup_engine.config.loader import WeightConfig
from backend.syncup_engine.errors import InvalidAnswerPayload
from backend.syncup_engine.interfaces.db_interface import ProfileStore
from backend.syncup_engine.models.quiz_answers import parse_quiz_answers
from backend.syncup_engine.models.user_profile import MemeReaction, Profile, merge_meme_reactions

logger = logging.getLogger(__name__)

# (question id, answer) -> traits
ANSWER_TRAITS = {
    (1, "Morning"): ["Early Bird", "Morning Person"],
    (1, "Night"): ["Night Owl", "Late Night Coder"],
    (1, "Flexible"): ["Flexible Schedule"],
    (2, "Customized Zsh/Fish"): ["Terminal Customizer", "CLI Enthusiast"],
    (2, "Default Bash"): ["Simplicity Lover"],
    (2, "Modern GUI terminal"): ["Modern Tools", "Innovation Seeker"],
    (4, "Spaces"): ["Clean Code", "Format Enthusiast"],
    (4, "Tabs"): ["Efficient", "Quick Coder"],
    (5, "GitHub Issues"): ["Version Control Oriented"],
    (5, "Kanban board"): ["Visual Organizer", "Project Manager"],
    (5, "Documentation-first"): ["Documentation Lover", "Organized"],
    (7, "Dark"): ["Dark Theme Lover", "Night Mode"],
    (7, "Light"): ["Light Theme Lover", "Day Mode"],
    (10, "Single laptop"): ["Minimalist", "Portable"],
    (10, "Multi-monitor desk"): ["Power User", "Multi-Tasker"],
    (10, "Coffee shop/Co-working"): ["Social Coder", "Networking"],
}

ANSWER_BADGES = {
    (5, "GitHub Issues"): "Version Control Oriented",
    (7, "Dark"): "Dark Theme Aficionado",
    (4, "Spaces"): "Clean Formatter",
    (1, "Night"): "Night Coder",
    (2, "Modern GUI terminal"): "Modern Terminal User",
}

DEFAULT_TRAITS = ["Developer", "Problem Solver"]


def _answer_value(quiz_answers, question_id):
    answer = quiz_answers.get(question_id)
    return answer.value if answer is not None else None


def derive_traits(quiz_answers: Dict[int, Any], meme_reactions: Sequence[MemeReaction],
                  stress_items: Iterable[str] = ()) -> List[str]:
    traits = []
    for question_id in sorted(quiz_answers):
        traits.extend(ANSWER_TRAITS.get((question_id, _answer_value(quiz_answers, question_id)), []))

    laughs = [r for r in meme_reactions if r.reaction == "😂"]
    if len(laughs) > 2:
        traits.extend(["Meme Lover", "Humor Appreciator"])
    stress_items = set(stress_items)
    if any(r.item_id in stress_items for r in laughs):
        traits.extend(["Stress Handler", "Resilient"])

    traits.extend(DEFAULT_TRAITS)
    return list(dict.fromkeys(traits))


def derive_badges(quiz_answers: Dict[int, Any]) -> List[str]:
    badges = [
        badge for (question_id, answer), badge in ANSWER_BADGES.items()
        if _answer_value(quiz_answers, question_id) == answer
    ]
    return badges or ["Developer"]


def generate_codename(quiz_answers: Dict[int, Any], rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    schedule = _answer_value(quiz_answers, 1)
    base = {"Night": "Night", "Morning": "Sun"}.get(schedule, "Flex")
    code = "".join(rng.choice(string.ascii_uppercase + string.digits) for _ in range(4))
    return f"{base}_{code}"


class ProfileBuilder:

    def __init__(self, store: ProfileStore, weights: WeightConfig, rng: Optional[random.Random] = None):
        self.store = store
        self.weights = weights
        self.rng = rng

    def sync_profile(self, provider: str, email: str, provider_id: Optional[str] = None,
                     name: Optional[str] = None, avatar_url: Optional[str] = None) -> Profile:
        """Create the profile for ``email`` on first sign-in, or refresh its identity fields."""
        if not provider or not email:
            raise ValueError("provider and email are required")

        profile = self.store.get_profile_by_email(email)
        if profile is None:
            profile = Profile(
                id=uuid.uuid4().hex,
                provider=provider.lower(),
                provider_id=provider_id or email,
                email=email,
                name=name or email.split("@")[0],
                avatar_url=avatar_url,
            )
            logger.info(f"Created profile {profile.id} for {email}")
            return self.store.create_profile(profile)

        updates = {}
        if name and name != profile.name:
            updates["name"] = name
        if avatar_url and avatar_url != profile.avatar_url:
            updates["avatar_url"] = avatar_url
        if not profile.provider_id:
            updates["provider_id"] = provider_id or email
        if not updates:
            return profile

        logger.info(f"Synced identity fields {sorted(updates)} for {profile.id}")
        return self.store.update_onboarding(profile.id, lambda current: updates)

    def submit_onboarding(self, user_id: str, quiz_answers: Optional[Mapping[Any, Any]] = None,
                          meme_reactions: Optional[Sequence[Any]] = None,
                          profile_complete: Optional[bool] = None) -> Profile:
        """
        Merge a partial onboarding submission into the stored profile.

        New quiz answers override earlier answers to the same question;
        meme reactions are merged by item. ``profile_complete`` is only
        changed when given.

        Raises:
            InvalidAnswerPayload: When answers or reactions are malformed
        """
        parsed = parse_quiz_answers(quiz_answers, self.weights.questions) if quiz_answers else {}

        incoming = []
        if meme_reactions:
            try:
                incoming = [MemeReaction.model_validate(r) for r in meme_reactions]
            except ValidationError as e:
                raise InvalidAnswerPayload(f"Malformed meme reaction ({e.error_count()} errors)") from e

        def merge(profile):
            answers = dict(profile.quiz_answers)
            answers.update(parsed)
            reactions = merge_meme_reactions(profile.meme_reactions, incoming)

            updates = {
                "quiz_answers": answers,
                "meme_reactions": reactions,
                "traits": derive_traits(answers, reactions, self.weights.stress_meme_ids),
                "badges": derive_badges(answers),
            }
            if profile_complete is not None:
                updates["profile_complete"] = profile_complete
            if parsed and (not profile.codename or profile.codename.startswith("Dev_")):
                updates["codename"] = generate_codename(answers, self.rng)
            return updates

        # read, merge and write all happen under the store's per-profile lock
        updated = self.store.update_onboarding(user_id, merge)
        logger.info(
            f"Onboarding update for {user_id}: {len(updated.quiz_answers)} answers, "
            f"{len(updated.meme_reactions)} reactions"
        )
        return updated
