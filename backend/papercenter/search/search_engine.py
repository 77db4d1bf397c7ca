"""
Core search engine: candidate generation, structured filtering, text matching
and ranking over the live corpus.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional
import logging

from .candidates import Candidate, CandidateBuilder
from .filters import SearchFilters
from .models import SearchOptions, SearchResult
from .query_parser import QueryMatcher, QueryParser
from .scoring import KindScorer, rank_results
from ..corpus.provider import CorpusFetchError, CorpusProvider

logger = logging.getLogger('search')


@dataclass
class SearchOutcome:
    """
    Result of one search call.

    `error` is set only when the corpus could not be fetched, which tells a
    fetch failure apart from a search with zero matches.
    """
    results: List[SearchResult] = field(default_factory=list)
    error: Optional[str] = None
    candidate_count: int = 0
    query_time_ms: int = 0

    @property
    def failed(self) -> bool:
        return self.error is not None


class SearchEngine:
    """
    Stateless search over a corpus provider.

    Every call fetches the full corpus, rebuilds all candidates and runs the
    pipeline:

        tag filter -> variable filter -> text match -> kind filter -> score -> rank

    Nothing is cached between calls. Concurrent calls are safe as long as the
    provider returns a read-stable snapshot for each call.
    """

    def __init__(self, provider: CorpusProvider, scorer: Optional[KindScorer] = None):
        """
        Initialize search engine.

        Args:
            provider: Source of the live corpus
            scorer: Result scorer (defaults to the configured weights)
        """
        self.provider = provider
        self.scorer = scorer or KindScorer()
        self.query_parser = QueryParser()

    def search(self, query: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
        """
        Execute a search.

        Args:
            query: Free text query
            options: Field scope, kinds, filters and limit

        Returns:
            Ranked results. An empty list means no matches, or that the corpus
            could not be fetched; use run() to tell the two apart.
        """
        return self.run(query, options).results

    def run(self, query: str, options: Optional[SearchOptions] = None) -> SearchOutcome:
        """
        Execute a search and report the outcome explicitly.

        Args:
            query: Free text query
            options: Field scope, kinds, filters and limit

        Returns:
            SearchOutcome with results, or with an error if the corpus fetch failed
        """
        options = options or SearchOptions.default()
        start_time = datetime.now()

        parsed_query = self.query_parser.parse(query)

        # Nothing to look for: never browse the whole corpus by accident
        if not parsed_query.has_content() and not options.has_structured_filters:
            logger.debug("Empty query without structured filters")
            return SearchOutcome()

        try:
            corpus = self.provider.fetch_corpus()
        except CorpusFetchError as e:
            logger.error(f"Corpus fetch failed, returning no results: {e}")
            return SearchOutcome(error=str(e))

        builder = CandidateBuilder(corpus, options.include_historical_versions)
        candidates = self._deduplicate(builder.build())

        matcher = QueryMatcher(parsed_query)
        results = []
        for candidate in candidates:
            result = self._evaluate(candidate, builder, matcher, options)
            if result is not None:
                results.append(result)

        ranked = rank_results(results, options.max_results)
        query_time_ms = int((datetime.now() - start_time).total_seconds() * 1000)

        logger.info(
            f"Search completed: query={query!r}, tokens={parsed_query.tokens}, "
            f"{len(candidates)} candidates, {len(results)} matches, "
            f"{len(ranked)} returned, {query_time_ms}ms"
        )

        return SearchOutcome(
            results=ranked,
            candidate_count=len(candidates),
            query_time_ms=query_time_ms,
        )

    def _evaluate(
        self,
        candidate: Candidate,
        builder: CandidateBuilder,
        matcher: QueryMatcher,
        options: SearchOptions
    ) -> Optional[SearchResult]:
        if not SearchFilters.tag_filter_match(candidate.tag_ids, candidate.tag_names, options.tag_filter):
            return None

        if not SearchFilters.variable_filter_match(candidate.variable_values, builder.variable_by_id, options):
            return None

        text_match = matcher.match(candidate.text_by_field, options.field_scope)
        if not text_match.is_match:
            return None

        if candidate.kind not in options.result_kinds:
            return None

        score = self.scorer.score(candidate.kind, text_match.matched_fields, text_match.phrase_matched)

        return SearchResult(
            stable_id=candidate.stable_id,
            kind=candidate.kind,
            matched_fields=text_match.matched_fields,
            score=score,
            doc_id=candidate.doc_id,
            doc_title=candidate.doc_title,
            page_group_id=candidate.page_group_id,
            page_group_title=candidate.page_group_title,
            logical_page_id=candidate.logical_page_id,
            doc_page_number=candidate.doc_page_number,
            page_version_id=candidate.page_version_id,
            note_id=candidate.note_id,
            title=candidate.title,
            subtitle=candidate.subtitle,
            snippet=candidate.snippet,
        )

    def _deduplicate(self, candidates: List[Candidate]) -> List[Candidate]:
        """Keep the first candidate per stable id."""
        seen: Dict[str, Candidate] = {}
        for candidate in candidates:
            if candidate.stable_id in seen:
                logger.debug(f"Duplicate candidate {candidate.stable_id} skipped")
                continue
            seen[candidate.stable_id] = candidate
        return list(seen.values())
