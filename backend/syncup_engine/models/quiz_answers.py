"""
Typed quiz answers.

Each answer is tagged with the kind of question it belongs to. Raw client
payloads such as ``{1: "Night", 3: 40}`` are checked against the question
catalogue by ``parse_quiz_answers`` before they reach a profile.
"""

from typing import Annotated, Any, Dict, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from backend.syncup_engine.config.loader import QuestionSpec
from backend.syncup_engine.errors import InvalidAnswerPayload


class CardChoiceAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["card"] = "card"
    value: str


class ToggleAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["toggle"] = "toggle"
    value: str


class SliderAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["slider"] = "slider"
    value: int


QuizAnswer = Annotated[
    Union[CardChoiceAnswer, ToggleAnswer, SliderAnswer],
    Field(discriminator="kind"),
]

_answer_adapter = TypeAdapter(QuizAnswer)

_KIND_BY_QUESTION_TYPE = {"cards": "card", "toggle": "toggle", "slider": "slider"}


def _question_id(key: Any) -> int:
    if isinstance(key, bool):
        raise InvalidAnswerPayload(f"Invalid question id: {key!r}")
    try:
        qid = int(key)
    except (TypeError, ValueError):
        raise InvalidAnswerPayload(f"Invalid question id: {key!r}") from None
    if qid <= 0 or str(qid) != str(key).strip():
        raise InvalidAnswerPayload(f"Invalid question id: {key!r}")
    return qid


def _parse_one(spec: QuestionSpec, raw: Any):
    if isinstance(raw, (BaseModel, dict)):
        try:
            answer = _answer_adapter.validate_python(
                raw.model_dump() if isinstance(raw, BaseModel) else raw
            )
        except ValidationError as e:
            raise InvalidAnswerPayload(f"Question {spec.id}: malformed answer ({e.error_count()} errors)") from e
        if answer.kind != _KIND_BY_QUESTION_TYPE[spec.type]:
            raise InvalidAnswerPayload(
                f"Question {spec.id} expects a {spec.type} answer, got {answer.kind}"
            )
        raw = answer.value

    if spec.type == "slider":
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw != int(raw):
            raise InvalidAnswerPayload(f"Question {spec.id} expects an integer, got {raw!r}")
        if not spec.min <= raw <= spec.max:
            raise InvalidAnswerPayload(
                f"Question {spec.id} answer {raw} outside [{spec.min}, {spec.max}]"
            )
        return SliderAnswer(value=int(raw))

    if not isinstance(raw, str) or raw not in spec.options:
        raise InvalidAnswerPayload(f"Question {spec.id} has no option {raw!r}")
    if spec.type == "toggle":
        return ToggleAnswer(value=raw)
    return CardChoiceAnswer(value=raw)


def parse_quiz_answers(raw_answers: Mapping[Any, Any], questions: Dict[int, QuestionSpec]) -> Dict[int, Any]:
    """
    Validate a raw ``{question_id: answer}`` payload against the catalogue.

    Raises:
        InvalidAnswerPayload: On unknown ids, options not offered, sliders
            out of range or values of the wrong type
    """
    if not isinstance(raw_answers, Mapping):
        raise InvalidAnswerPayload("Quiz answers must be a mapping of question id to answer")

    parsed = {}
    for key, raw in raw_answers.items():
        qid = _question_id(key)
        spec = questions.get(qid)
        if spec is None:
            raise InvalidAnswerPayload(f"Unknown question id: {qid}")
        parsed[qid] = _parse_one(spec, raw)
    return parsed
