"""
Weighted quiz-answer comparison.

Every question both profiles answered earns credit: full for identical
answers, partial for answers configured as close, and a small flat amount
otherwise so that differing answers still count for something.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict

from backend.syncup_engine.config.loader import WeightConfig

EXACT = "exact"
CLOSE = "close"
UNRELATED = "unrelated"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class QuizComparison:
    raw: int
    percent: int
    shared_questions: int
    exact_matches: int
    close_matches: int


def classify_answers(question_id: int, answer_a: Any, answer_b: Any, config: WeightConfig) -> str:
    if answer_a.kind != answer_b.kind:
        return UNRELATED
    if answer_a.value == answer_b.value:
        return EXACT
    if answer_a.kind == "slider":
        if abs(answer_a.value - answer_b.value) <= config.slider_close_tolerance:
            return CLOSE
        return UNRELATED
    if config.are_close(question_id, answer_a.value, answer_b.value):
        return CLOSE
    return UNRELATED


def answer_credit(classification: str, weight: float, config: WeightConfig) -> int:
    base = {
        EXACT: config.exact_credit,
        CLOSE: config.close_credit,
        UNRELATED: config.diversity_credit,
    }[classification]
    return round_half_up(base * weight)


def compare_quiz_answers(answers_a: Dict[int, Any], answers_b: Dict[int, Any], config: WeightConfig) -> QuizComparison:
    """Score two answer maps; the result does not depend on argument order."""
    raw = 0
    exact = close = 0
    shared = sorted(set(answers_a) & set(answers_b))

    for qid in shared:
        classification = classify_answers(qid, answers_a[qid], answers_b[qid], config)
        raw += answer_credit(classification, config.weight_for(qid), config)
        if classification == EXACT:
            exact += 1
        elif classification == CLOSE:
            close += 1

    percent = round_half_up(100 * min(raw, config.quiz_raw_cap) / config.quiz_raw_cap)
    return QuizComparison(
        raw=raw,
        percent=percent,
        shared_questions=len(shared),
        exact_matches=exact,
        close_matches=close,
    )
