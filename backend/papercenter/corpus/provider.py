"""
Corpus provider contract.

The search engine fetches the full live corpus once per call through a
provider. Providers wrap any backend failure into CorpusFetchError.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

from .models import Bundle, Document, Note, Tag, Variable

logger = logging.getLogger(__name__)


class CorpusFetchError(Exception):
    """Raised when the corpus (or any part of it) cannot be fetched."""


@dataclass
class Corpus:
    """A complete in-memory corpus."""
    tags: List[Tag] = field(default_factory=list)
    variables: List[Variable] = field(default_factory=list)
    documents: List[Document] = field(default_factory=list)
    bundles: List[Bundle] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)

    def stats(self) -> dict:
        page_groups = [group for doc in self.documents for group in doc.page_groups]
        pages = [page for group in page_groups for page in group.pages]
        return {
            'tags': len(self.tags),
            'variables': len(self.variables),
            'documents': len(self.documents),
            'page_groups': len(page_groups),
            'pages': len(pages),
            'page_versions': sum(len(page.versions) for page in pages),
            'bundles': len(self.bundles),
            'notes': sum(1 for note in self.notes if not note.is_deleted),
        }


class CorpusProvider(ABC):
    """Read access to the live corpus. Every fetch returns the full collection."""

    @abstractmethod
    def fetch_tags(self) -> List[Tag]:
        ...

    @abstractmethod
    def fetch_variables(self) -> List[Variable]:
        ...

    @abstractmethod
    def fetch_documents(self) -> List[Document]:
        ...

    @abstractmethod
    def fetch_bundles(self) -> List[Bundle]:
        ...

    @abstractmethod
    def fetch_notes(self) -> List[Note]:
        """Fetch all notes that are not deleted."""
        ...

    def fetch_corpus(self) -> Corpus:
        """Fetch everything in one go."""
        return Corpus(
            tags=self.fetch_tags(),
            variables=self.fetch_variables(),
            documents=self.fetch_documents(),
            bundles=self.fetch_bundles(),
            notes=self.fetch_notes(),
        )


class InMemoryCorpusProvider(CorpusProvider):
    """Serves a Corpus held in memory."""

    def __init__(self, corpus: Corpus):
        self.corpus = corpus

    def fetch_tags(self) -> List[Tag]:
        return list(self.corpus.tags)

    def fetch_variables(self) -> List[Variable]:
        return list(self.corpus.variables)

    def fetch_documents(self) -> List[Document]:
        return list(self.corpus.documents)

    def fetch_bundles(self) -> List[Bundle]:
        return list(self.corpus.bundles)

    def fetch_notes(self) -> List[Note]:
        return [note for note in self.corpus.notes if not note.is_deleted]
