"""Tests for search/text_normalizer.py module.

Covers:
- normalize() folding (case, diacritics, width)
- tokenize() splitting and the separator-only fallback
- make_snippet() selection and truncation
"""

from papercenter.search.text_normalizer import TextNormalizer, is_blank, make_snippet, normalize, tokenize


class TestNormalize:
    """Tests for normalize()."""

    def test_case_folding(self) -> None:
        """Upper and lower case fold together."""
        assert normalize("Annual REPORT") == "annual report"

    def test_diacritics_stripped(self) -> None:
        """Combining marks are removed."""
        assert normalize("Jane Müller") == "jane muller"
        assert normalize("Crème Brûlée") == "creme brulee"

    def test_width_folding(self) -> None:
        """Fullwidth letters and digits become ASCII."""
        assert normalize("ＡＢＣ１２３") == "abc123"

    def test_casefold_expansion(self) -> None:
        """Sharp s folds to ss."""
        assert normalize("Straße") == normalize("STRASSE")

    def test_trimmed(self) -> None:
        """Surrounding whitespace is removed."""
        assert normalize("  hello \n") == "hello"

    def test_empty_and_none(self) -> None:
        """Empty input yields empty output."""
        assert normalize("") == ""
        assert normalize(None) == ""


class TestTokenize:
    """Tests for tokenize()."""

    def test_whitespace_and_punctuation(self) -> None:
        """Splits on whitespace and punctuation, dropping empties."""
        assert tokenize("alpha, beta;  gamma.") == ["alpha", "beta", "gamma"]

    def test_hyphen_splits(self) -> None:
        """Hyphens are punctuation."""
        assert tokenize("state-of-the-art") == ["state", "of", "the", "art"]

    def test_separator_only_input(self) -> None:
        """Input made only of separators becomes one literal token."""
        assert tokenize("...") == ["..."]

    def test_empty(self) -> None:
        """Empty input has no tokens."""
        assert tokenize("") == []

    def test_class_and_module_agree(self) -> None:
        """Module shortcuts delegate to TextNormalizer."""
        normalizer = TextNormalizer()
        assert normalizer.tokenize(normalizer.normalize("Ä b")) == tokenize(normalize("Ä b")) == ["a", "b"]


class TestMakeSnippet:
    """Tests for make_snippet()."""

    def test_first_non_blank(self) -> None:
        """Skips None and blank texts."""
        assert make_snippet([None, "", "   ", "  text  ", "other"]) == "text"

    def test_truncation(self) -> None:
        """Long text is cut at the limit plus an ellipsis."""
        snippet = make_snippet(["a" * 200])
        assert snippet == "a" * 180 + "…"

    def test_exact_limit_not_truncated(self) -> None:
        """Text at exactly the limit is kept whole."""
        assert make_snippet(["b" * 180]) == "b" * 180

    def test_all_blank(self) -> None:
        """No usable text gives an empty snippet."""
        assert make_snippet(["", None]) == ""

    def test_custom_length(self) -> None:
        """max_length is honored."""
        assert make_snippet(["abcdef"], max_length=3) == "abc…"


class TestIsBlank:
    """Tests for is_blank()."""

    def test_values(self) -> None:
        assert is_blank(None)
        assert is_blank(" \t")
        assert not is_blank(" x ")
