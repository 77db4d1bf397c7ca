"""
Query parsing and text matching.

A query is normalized and split into tokens. A candidate matches when every
token is found (as a substring) in at least one in-scope field: AND across
tokens, OR across fields.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List
import logging

from .models import SearchField
from .text_normalizer import normalize, tokenize

logger = logging.getLogger(__name__)


@dataclass
class ParsedQuery:
    """Parsed query components."""
    raw: str
    normalized: str
    tokens: List[str]

    def has_content(self) -> bool:
        """Check if query has any searchable tokens."""
        return bool(self.tokens)


@dataclass(frozen=True)
class TextMatch:
    """Outcome of matching a query against one candidate."""
    is_match: bool
    matched_fields: FrozenSet[SearchField] = frozenset()
    phrase_matched: bool = False


NO_MATCH = TextMatch(is_match=False)


@dataclass
class QueryMatcher:
    """
    Matches a parsed query against candidate text.

    Normalized field text is cached per source string for the lifetime of
    the matcher, which is one search call.
    """
    query: ParsedQuery
    _normalized_cache: Dict[str, str] = field(default_factory=dict, repr=False)

    def _normalize(self, text: str) -> str:
        cached = self._normalized_cache.get(text)
        if cached is None:
            cached = normalize(text)
            self._normalized_cache[text] = cached
        return cached

    def match(
        self,
        text_by_field: Dict[SearchField, List[str]],
        field_scope: Iterable[SearchField]
    ) -> TextMatch:
        """
        Match the query against a candidate's per-field text.

        Args:
            text_by_field: Raw source strings per field
            field_scope: Fields the query may match

        Returns:
            TextMatch. An empty query matches with no matched fields; a
            non-empty query with an empty scope never matches.
        """
        tokens = self.query.tokens
        if not tokens:
            return TextMatch(is_match=True)

        # Sorted so matching does not depend on set iteration order
        scope = sorted(set(field_scope), key=lambda f: f.value)
        if not scope:
            return NO_MATCH

        normalized_by_field = {
            search_field: [self._normalize(source) for source in text_by_field.get(search_field, [])]
            for search_field in scope
        }

        matched_fields = set()
        for token in tokens:
            token_matched = False
            for search_field in scope:
                if any(token in source for source in normalized_by_field[search_field]):
                    token_matched = True
                    matched_fields.add(search_field)

            if not token_matched:
                return NO_MATCH

        phrase = self.query.normalized
        phrase_matched = bool(phrase) and any(
            phrase in source
            for search_field in matched_fields
            for source in normalized_by_field[search_field]
        )

        return TextMatch(
            is_match=True,
            matched_fields=frozenset(matched_fields),
            phrase_matched=phrase_matched,
        )


class QueryParser:
    """Normalize and tokenize raw query text."""

    def parse(self, query: str) -> ParsedQuery:
        """
        Parse query string into components.

        Args:
            query: Raw query string from user

        Returns:
            ParsedQuery with normalized text and tokens
        """
        if not query or not isinstance(query, str):
            return ParsedQuery(raw=query or "", normalized="", tokens=[])

        normalized = normalize(query)
        tokens = tokenize(normalized)

        logger.debug(f"Parsed query {query!r} into tokens {tokens}")

        return ParsedQuery(raw=query, normalized=normalized, tokens=tokens)


def parse_query(query: str) -> ParsedQuery:
    """
    Convenience function to parse query.

    Args:
        query: Raw query string

    Returns:
        ParsedQuery object
    """
    parser = QueryParser()
    return parser.parse(query)
