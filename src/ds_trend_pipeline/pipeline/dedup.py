import logging

from thefuzz import fuzz

from .models import ScoredSignal
from .normalizer import normalize_term
from .scoring import rank_signals

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 90


def _is_near_duplicate(term: str, chosen: list[str]) -> str | None:
    for existing in chosen:
        if fuzz.token_sort_ratio(term, existing) >= MATCH_THRESHOLD:
            return existing
    return None


def derive_query_terms(signals: list[ScoredSignal], top_k: int = 10) -> list[str]:
    """Search terms from the ``top_k`` highest-scoring signals.

    Keys are normalized (``#`` stripped, lower-cased, marketplace names
    removed) and near-duplicates such as "earbuds wireless" vs
    "wireless earbuds" collapse onto the higher-ranked term.
    """
    terms: list[str] = []
    for sig in rank_signals(signals)[: max(top_k, 0)]:
        term = normalize_term(sig.key)
        if not term:
            continue
        match = _is_near_duplicate(term, terms)
        if match:
            logger.debug("Query term '%s' folded into '%s'", term, match)
            continue
        terms.append(term)
    return terms
