from typing import Tuple

import numpy as np

from backend.syncup_engine.models.user_profile import DevDna
from backend.syncup_engine.scoring.quiz_similarity import round_half_up


def language_vectors(dna_a: DevDna, dna_b: DevDna) -> Tuple[np.ndarray, np.ndarray]:
    """
    Align two language lists on the union of their language names.

    Languages missing from one side are 0 in that side's vector.
    """
    shares_a = {share.lang: share.value for share in dna_a.top_languages}
    shares_b = {share.lang: share.value for share in dna_b.top_languages}
    langs = sorted(set(shares_a) | set(shares_b))

    vec_a = np.array([shares_a.get(lang, 0.0) for lang in langs], dtype=float)
    vec_b = np.array([shares_b.get(lang, 0.0) for lang in langs], dtype=float)
    return vec_a, vec_b


def cosine_similarity(vec1: np.ndarray, vec2: np.ndarray) -> float:
    """Cosine similarity clamped to [0, 1]; 0 for zero-length or NaN input."""
    norm = np.linalg.norm(vec1) * np.linalg.norm(vec2)
    if norm == 0 or np.isnan(norm):
        return 0.0
    similarity = float(np.dot(vec1, vec2) / norm)
    if np.isnan(similarity):
        return 0.0
    return min(1.0, max(0.0, similarity))


def dev_dna_similarity_percent(dna_a: DevDna, dna_b: DevDna) -> int:
    if not dna_a.top_languages or not dna_b.top_languages:
        return 0
    return round_half_up(cosine_similarity(*language_vectors(dna_a, dna_b)) * 100)
