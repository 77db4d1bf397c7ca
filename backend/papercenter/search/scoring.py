"""
Fixed-weight scoring and deterministic ranking of search results.

score = base[kind] + field_match_bonus * |matched fields| + phrase_bonus

Results are ordered by score (descending), then case-insensitive document
title, then stable id, which makes the order total.
"""

from typing import Dict, Iterable, List, Optional
import logging

from config.search_config import SCORING_CONFIG
from .models import ResultKind, SearchField, SearchResult

logger = logging.getLogger(__name__)


class KindScorer:
    """Scores candidates by result kind and matched fields."""

    def __init__(
        self,
        base_scores: Optional[Dict[str, int]] = None,
        field_match_bonus: int = SCORING_CONFIG['field_match_bonus'],
        phrase_bonus: int = SCORING_CONFIG['phrase_bonus']
    ):
        """
        Initialize scorer.

        Args:
            base_scores: Base score per result kind value
            field_match_bonus: Bonus per distinct matched field
            phrase_bonus: Bonus when the whole query appears in a matched field
        """
        scores = base_scores or SCORING_CONFIG['base_scores']
        self.base_scores = {ResultKind(kind): score for kind, score in scores.items()}
        self.field_match_bonus = field_match_bonus
        self.phrase_bonus = phrase_bonus

    def score(
        self,
        kind: ResultKind,
        matched_fields: Iterable[SearchField],
        phrase_matched: bool
    ) -> int:
        score = self.base_scores[kind] + len(set(matched_fields)) * self.field_match_bonus
        if phrase_matched:
            score += self.phrase_bonus
        return score


def ranking_key(result: SearchResult):
    return (-result.score, result.doc_title.casefold(), result.stable_id)


def rank_results(results: Iterable[SearchResult], max_results: int) -> List[SearchResult]:
    """
    Sort results and keep the top entries.

    Args:
        results: Scored results
        max_results: Requested limit (values below 1 are treated as 1)

    Returns:
        At most max(max_results, 1) results in ranking order
    """
    ranked = sorted(results, key=ranking_key)
    return ranked[:max(max_results, 1)]
