"""Tests for search/query_parser.py module.

Covers:
- Query parsing into normalized text and tokens
- Token AND / field OR matching
- Matched field collection and phrase detection
"""

from papercenter.search.models import SearchField
from papercenter.search.query_parser import QueryMatcher, parse_query

OCR = SearchField.OCR_TEXT
DOC = SearchField.DOC_TITLE
TAGS = SearchField.TAG_NAME


def match(query: str, text_by_field: dict, scope=frozenset(SearchField)):
    return QueryMatcher(parse_query(query)).match(text_by_field, scope)


class TestParseQuery:
    """Tests for parse_query()."""

    def test_tokens(self) -> None:
        parsed = parse_query("  Alpha, BETA ")
        assert parsed.raw == "  Alpha, BETA "
        assert parsed.normalized == "alpha, beta"
        assert parsed.tokens == ["alpha", "beta"]
        assert parsed.has_content()

    def test_blank_query(self) -> None:
        parsed = parse_query("   ")
        assert parsed.tokens == []
        assert not parsed.has_content()

    def test_none_query(self) -> None:
        assert parse_query(None).tokens == []


class TestQueryMatcher:
    """Tests for QueryMatcher.match()."""

    def test_all_tokens_required(self) -> None:
        """Every token must be found."""
        fields = {OCR: ["alpha gamma"]}
        assert not match("alpha beta", fields, {OCR}).is_match

    def test_tokens_found_independently(self) -> None:
        """Tokens may appear anywhere, in any order."""
        assert match("alpha beta", {OCR: ["beta then alphabet"]}, {OCR}).is_match

    def test_tokens_across_fields(self) -> None:
        """Each token may come from a different field."""
        result = match("report urgent", {DOC: ["Annual Report"], TAGS: ["Urgent"]})
        assert result.is_match
        assert result.matched_fields == frozenset({DOC, TAGS})

    def test_out_of_scope_field_ignored(self) -> None:
        assert not match("report", {DOC: ["Annual Report"]}, {OCR}).is_match

    def test_empty_scope_never_matches(self) -> None:
        assert not match("report", {DOC: ["Annual Report"]}, frozenset()).is_match

    def test_empty_query_matches_without_fields(self) -> None:
        result = match("", {DOC: ["Annual Report"]}, frozenset())
        assert result.is_match
        assert result.matched_fields == frozenset()
        assert not result.phrase_matched

    def test_matched_fields_cover_every_hit(self) -> None:
        """All in-scope fields containing a token are reported."""
        result = match("alpha", {DOC: ["Alpha"], OCR: ["alpha text"], TAGS: ["Beta"]})
        assert result.matched_fields == frozenset({DOC, OCR})

    def test_phrase_detected(self) -> None:
        result = match("revenue grew", {OCR: ["Revenue grew strongly"]})
        assert result.phrase_matched

    def test_phrase_not_contiguous(self) -> None:
        result = match("grew revenue", {OCR: ["Revenue grew strongly"]})
        assert result.is_match
        assert not result.phrase_matched

    def test_diacritic_insensitive(self) -> None:
        assert match("muller", {SearchField.VARIABLE_VALUE: ["Jane Müller"]}).is_match
