"""
Configuration loading and validation.

Scoring weights, thresholds and the quiz catalogue live in one versioned
YAML file. ``load_weight_config`` reads it, applies environment overrides
and returns an immutable ``WeightConfig`` that is passed into the scorer,
the reranker and the buffer manager.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from backend.syncup_engine.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).with_name("default_weights.yaml")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

QUESTION_TYPES = ("cards", "toggle", "slider")


def setup_logging(log_level: str = "INFO") -> None:
    """Configure root logging for the service process."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


@dataclass(frozen=True)
class QuestionSpec:
    id: int
    type: str
    question: str = ""
    options: Tuple[str, ...] = ()
    min: int = 0
    max: int = 100


@dataclass(frozen=True)
class ProviderRule:
    """Bonus rule: requester gave ``answer`` to ``question_id`` and the
    candidate signed in with ``provider``."""

    question_id: int
    answer: str
    provider: str
    reason: str


@dataclass(frozen=True)
class WeightConfig:
    version: str = "default"

    question_weights: Dict[int, float] = field(default_factory=dict)
    default_weight: float = 0.5
    exact_credit: int = 40
    close_credit: int = 25
    diversity_credit: int = 5
    quiz_raw_cap: int = 100
    quiz_high_match_threshold: int = 60
    slider_close_tolerance: int = 15
    close_answer_groups: Dict[int, Tuple[FrozenSet[str], ...]] = field(default_factory=dict)

    meme_percent_per_match: int = 10
    meme_percent_cap: int = 50
    meme_engagement_bonus: int = 10
    # catalogue ids; laughing at a stress item earns the "Stress Handler" trait
    meme_ids: Tuple[str, ...] = ()
    stress_meme_ids: Tuple[str, ...] = ()

    dev_dna_weight: float = 0.10

    provider_bonus: int = 15
    provider_rules: Tuple[ProviderRule, ...] = ()

    mmr_lambda: float = 0.7
    buffer_size: int = 10
    retrieval_page_size: int = 10
    max_retries: int = 3

    questions: Dict[int, QuestionSpec] = field(default_factory=dict)

    def weight_for(self, question_id: int) -> float:
        return self.question_weights.get(question_id, self.default_weight)

    def are_close(self, question_id: int, answer_a: Any, answer_b: Any) -> bool:
        """True when both answers sit in one close-answer group of the question."""
        for group in self.close_answer_groups.get(question_id, ()):
            if answer_a in group and answer_b in group:
                return True
        return False

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "WeightConfig":
        # a section left empty in YAML loads as None
        def section(data, name):
            return data.get(name) or {}

        quiz = section(config, "quiz")
        credits = section(quiz, "credits")
        meme = section(config, "meme")
        provider = section(config, "provider")
        defaults = cls()

        close_groups = {
            int(qid): tuple(frozenset(group) for group in groups)
            for qid, groups in (quiz.get("close_answer_groups") or {}).items()
        }
        rules = tuple(
            ProviderRule(
                question_id=int(rule["question_id"]),
                answer=rule["answer"],
                provider=str(rule["provider"]).lower(),
                reason=rule.get("reason", f"Provider match ({rule['provider']})"),
            )
            for rule in provider.get("rules") or []
        )
        questions = {}
        for item in config.get("questions") or []:
            questions[int(item["id"])] = QuestionSpec(
                id=int(item["id"]),
                type=item["type"],
                question=item.get("question", ""),
                options=tuple(item.get("options", ())),
                min=int(item.get("min", 0)),
                max=int(item.get("max", 100)),
            )

        return cls(
            version=str(config.get("version", defaults.version)),
            question_weights={
                int(qid): float(w) for qid, w in (quiz.get("question_weights") or {}).items()
            },
            default_weight=float(quiz.get("default_weight", defaults.default_weight)),
            exact_credit=int(credits.get("exact", defaults.exact_credit)),
            close_credit=int(credits.get("close", defaults.close_credit)),
            diversity_credit=int(credits.get("diversity", defaults.diversity_credit)),
            quiz_raw_cap=int(quiz.get("raw_cap", defaults.quiz_raw_cap)),
            quiz_high_match_threshold=int(
                quiz.get("high_match_threshold", defaults.quiz_high_match_threshold)
            ),
            slider_close_tolerance=int(
                quiz.get("slider_close_tolerance", defaults.slider_close_tolerance)
            ),
            close_answer_groups=close_groups,
            meme_percent_per_match=int(meme.get("percent_per_match", defaults.meme_percent_per_match)),
            meme_percent_cap=int(meme.get("percent_cap", defaults.meme_percent_cap)),
            meme_engagement_bonus=int(meme.get("engagement_bonus", defaults.meme_engagement_bonus)),
            meme_ids=tuple(config.get("memes") or ()),
            stress_meme_ids=tuple(meme.get("stress_items") or ()),
            dev_dna_weight=float(section(config, "dev_dna").get("weight", defaults.dev_dna_weight)),
            provider_bonus=int(provider.get("bonus", defaults.provider_bonus)),
            provider_rules=rules,
            mmr_lambda=float(section(config, "mmr").get("lambda", defaults.mmr_lambda)),
            buffer_size=int(section(config, "buffer").get("size", defaults.buffer_size)),
            retrieval_page_size=int(
                section(config, "retrieval").get("page_size", defaults.retrieval_page_size)
            ),
            max_retries=int(section(config, "store").get("max_retries", defaults.max_retries)),
            questions=questions,
        )


def load_config(filepath: str) -> Dict[str, Any]:
    """
    Load a raw configuration mapping from a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigError: If the file is empty
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {filepath}")

    logger.info(f"Loading configuration from {filepath}")
    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    if config is None:
        raise ConfigError(f"Configuration file is empty: {filepath}")

    return config


def validate_config(config: WeightConfig) -> List[str]:
    """Return a list of problems with ``config`` (empty when valid)."""
    issues = []

    for qid, weight in config.question_weights.items():
        if not 0 < weight <= 1:
            issues.append(f"Question {qid} weight must be in (0, 1], got {weight}")
    if not 0 < config.default_weight <= 1:
        issues.append(f"default_weight must be in (0, 1], got {config.default_weight}")

    if config.quiz_raw_cap <= 0:
        issues.append(f"quiz raw_cap must be positive, got {config.quiz_raw_cap}")
    if not config.exact_credit >= config.close_credit >= config.diversity_credit >= 0:
        issues.append("quiz credits must satisfy exact >= close >= diversity >= 0")
    if config.slider_close_tolerance < 0:
        issues.append("slider_close_tolerance must not be negative")

    if config.meme_percent_per_match < 0 or config.meme_percent_cap < 0:
        issues.append("meme percentages must not be negative")
    if config.meme_ids:
        unknown = sorted(set(config.stress_meme_ids) - set(config.meme_ids))
        if unknown:
            issues.append(f"meme stress_items not in the meme catalogue: {unknown}")
    if not 0 <= config.dev_dna_weight <= 1:
        issues.append(f"dev_dna weight must be in [0, 1], got {config.dev_dna_weight}")
    if not 0 <= config.mmr_lambda <= 1:
        issues.append(f"mmr lambda must be in [0, 1], got {config.mmr_lambda}")

    if config.buffer_size <= 0:
        issues.append("buffer size must be positive")
    if config.retrieval_page_size <= 0:
        issues.append("retrieval page_size must be positive")
    if config.max_retries < 1:
        issues.append("store max_retries must be at least 1")

    for qid, spec in config.questions.items():
        if spec.type not in QUESTION_TYPES:
            issues.append(f"Question {qid} has unknown type {spec.type!r}")
        elif spec.type == "toggle" and len(spec.options) != 2:
            issues.append(f"Toggle question {qid} needs exactly two options")
        elif spec.type == "cards" and not spec.options:
            issues.append(f"Card question {qid} has no options")
        elif spec.type == "slider" and spec.min >= spec.max:
            issues.append(f"Slider question {qid} has an empty range")

    for rule in config.provider_rules:
        if rule.provider not in ("github", "google", "linkedin"):
            issues.append(f"Provider rule references unknown provider {rule.provider!r}")

    return issues


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


def _apply_env_overrides(config: WeightConfig) -> WeightConfig:
    overrides = {}

    mmr_lambda = _env_float("MMR_LAMBDA")
    if mmr_lambda is not None:
        overrides["mmr_lambda"] = mmr_lambda

    # expressed in percentage points, like the rest of the score
    dna_points = _env_float("DEVDNA_PERCENT_WEIGHT")
    if dna_points is not None:
        overrides["dev_dna_weight"] = dna_points / 100

    if overrides:
        logger.info(f"Applying environment overrides: {sorted(overrides)}")
        config = replace(config, **overrides)
    return config


def load_weight_config(filepath: Optional[str] = None, strict: bool = True) -> WeightConfig:
    """
    Build the engine's ``WeightConfig``.

    The file path comes from ``filepath``, then ``SYNCUP_WEIGHTS_PATH``,
    then the packaged defaults. Environment overrides are applied last.

    Args:
        filepath: Optional path to a YAML weights file
        strict: Raise ``ConfigError`` on validation issues instead of logging them
    """
    load_dotenv()

    path = filepath or os.getenv("SYNCUP_WEIGHTS_PATH") or str(DEFAULT_CONFIG_PATH)
    config = _apply_env_overrides(WeightConfig.from_dict(load_config(path)))

    issues = validate_config(config)
    if issues:
        if strict:
            raise ConfigError("Invalid weight configuration: " + "; ".join(issues))
        for issue in issues:
            logger.warning(f"Config issue: {issue}")

    logger.info(f"Loaded weight config version {config.version}")
    return config
