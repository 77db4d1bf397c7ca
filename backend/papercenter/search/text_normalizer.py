"""
Text normalization utilities for search matching.
"""

import unicodedata
from typing import Iterable, List, Optional
import logging

from config.search_config import SNIPPET_CONFIG

logger = logging.getLogger(__name__)


class TextNormalizer:
    """Case, diacritic and width insensitive folding plus tokenization."""

    def normalize(self, text: Optional[str]) -> str:
        """
        Fold text for comparison.

        Width variants are folded (fullwidth letters become ASCII), diacritics
        are stripped, and the result is case-folded and trimmed.

        Args:
            text: Raw text

        Returns:
            Normalized text
        """
        if not text:
            return ""

        # Width and compatibility folding
        text = unicodedata.normalize('NFKC', text)

        # Strip diacritics
        decomposed = unicodedata.normalize('NFKD', text)
        text = ''.join(ch for ch in decomposed if not unicodedata.combining(ch))

        text = text.casefold()

        return text.strip()

    def tokenize(self, normalized: str) -> List[str]:
        """
        Split normalized text on whitespace and punctuation.

        Input made only of separators yields the whole normalized string as a
        single token, so pure-symbol queries still match literally.

        Args:
            normalized: Text already passed through normalize()

        Returns:
            List of tokens (empty for empty input)
        """
        if not normalized:
            return []

        tokens = []
        current = []
        for ch in normalized:
            if ch.isspace() or unicodedata.category(ch).startswith('P'):
                if current:
                    tokens.append(''.join(current))
                    current = []
            else:
                current.append(ch)
        if current:
            tokens.append(''.join(current))

        if not tokens:
            return [normalized]
        return tokens

    def make_snippet(
        self,
        texts: Iterable[Optional[str]],
        max_length: int = SNIPPET_CONFIG['max_length']
    ) -> str:
        """
        Build a display snippet from the first non-blank text.

        Args:
            texts: Candidate source texts in priority order
            max_length: Maximum length before truncation

        Returns:
            Snippet, hard-truncated with an ellipsis if too long
        """
        for text in texts:
            if text is None or not text.strip():
                continue

            trimmed = text.strip()
            if len(trimmed) <= max_length:
                return trimmed
            return trimmed[:max_length] + SNIPPET_CONFIG['ellipsis']

        return ""


_normalizer = TextNormalizer()


def normalize(text: Optional[str]) -> str:
    """Module-level shortcut for TextNormalizer.normalize."""
    return _normalizer.normalize(text)


def tokenize(normalized: str) -> List[str]:
    """Module-level shortcut for TextNormalizer.tokenize."""
    return _normalizer.tokenize(normalized)


def make_snippet(texts: Iterable[Optional[str]], max_length: int = SNIPPET_CONFIG['max_length']) -> str:
    return _normalizer.make_snippet(texts, max_length)


def is_blank(text: Optional[str]) -> bool:
    return text is None or not text.strip()
