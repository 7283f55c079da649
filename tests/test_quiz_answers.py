import pytest

from backend.syncup_engine.errors import InvalidAnswerPayload
from backend.syncup_engine.models.quiz_answers import (
    CardChoiceAnswer,
    SliderAnswer,
    ToggleAnswer,
    parse_quiz_answers,
)
from backend.syncup_engine.models.user_profile import Profile


def test_plain_values_are_tagged_by_question_type(weights):
    parsed = parse_quiz_answers({1: "Night", "3": 40, 4: "Spaces"}, weights.questions)

    assert parsed == {
        1: CardChoiceAnswer(value="Night"),
        3: SliderAnswer(value=40),
        4: ToggleAnswer(value="Spaces"),
    }


def test_tagged_payloads_are_accepted(weights):
    parsed = parse_quiz_answers(
        {7: {"kind": "toggle", "value": "Dark"}, 9: SliderAnswer(value=100)}, weights.questions
    )
    assert parsed[7] == ToggleAnswer(value="Dark")
    assert parsed[9].value == 100


@pytest.mark.parametrize("payload", [
    {11: "Night"},
    {0: "Night"},
    {"one": "Night"},
    {1: "Midnight"},
    {1: 3},
    {3: 101},
    {3: -1},
    {3: "40"},
    {3: True},
    {3: 40.5},
    {4: {"kind": "card", "value": "Tabs"}},
    {4: {"kind": "dial", "value": "Tabs"}},
])
def test_invalid_payloads_are_rejected(weights, payload):
    with pytest.raises(InvalidAnswerPayload):
        parse_quiz_answers(payload, weights.questions)


def test_payload_must_be_a_mapping(weights):
    with pytest.raises(InvalidAnswerPayload):
        parse_quiz_answers(["Night"], weights.questions)


def test_invalid_payload_is_a_value_error(weights):
    with pytest.raises(ValueError):
        parse_quiz_answers({1: "Midnight"}, weights.questions)


def test_profile_round_trips_tagged_answers(weights):
    profile = Profile(
        id="a",
        provider="GitHub",
        quiz_answers=parse_quiz_answers({1: "Night", 3: 20}, weights.questions),
    )
    restored = Profile.model_validate(profile.model_dump(mode="json"))

    assert restored.provider == "github"
    assert restored.quiz_answers == profile.quiz_answers
    assert isinstance(restored.quiz_answers[3], SliderAnswer)
