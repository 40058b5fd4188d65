"""String similarity behind a narrow interface.

Every scorer maps two strings to a float in [0, 1] after case folding and
punctuation stripping. The matcher only sees SimilarityFn, so the algorithm
is swapped through SIMILARITY_ALGORITHM without touching orchestration.
"""
from typing import Callable

from rapidfuzz import fuzz
from rapidfuzz.distance import JaroWinkler
from rapidfuzz.utils import default_process

SimilarityFn = Callable[[str, str], float]


def ratio_similarity(a: str, b: str) -> float:
    """Normalized Indel similarity of the whole strings."""
    return fuzz.ratio(a, b, processor=default_process) / 100.0


def token_sort_similarity(a: str, b: str) -> float:
    """Like ratio_similarity but insensitive to word order ("Doe Jane" == "Jane Doe")."""
    return fuzz.token_sort_ratio(a, b, processor=default_process) / 100.0


def jaro_winkler_similarity(a: str, b: str) -> float:
    return JaroWinkler.normalized_similarity(a, b, processor=default_process)


SIMILARITY_ALGORITHMS: dict[str, SimilarityFn] = {
    "ratio": ratio_similarity,
    "token_sort": token_sort_similarity,
    "jaro_winkler": jaro_winkler_similarity,
}


def get_similarity(name: str) -> SimilarityFn:
    try:
        return SIMILARITY_ALGORITHMS[name]
    except KeyError:
        raise ValueError(
            f"Unknown similarity algorithm {name!r}; "
            f"expected one of {sorted(SIMILARITY_ALGORITHMS)}"
        ) from None
