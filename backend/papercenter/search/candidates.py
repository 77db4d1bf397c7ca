"""
Candidate builder.

Walks the corpus and produces one flat candidate per (entity, kind) pair:
documents, page groups, pages, OCR hits, version metadata hits and note hits.
Each candidate carries its per-field text, tag ids/names and variable values,
which is everything the filter/score pipeline needs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple
import logging

from .models import ResultKind, SearchField
from .text_normalizer import is_blank, make_snippet
from ..common.id_utils import make_stable_id
from ..corpus.models import (
    Bundle,
    Document,
    Note,
    Page,
    PageGroup,
    PageVersion,
    Tag,
    Variable,
    comparable_datetime,
)
from ..corpus.provider import Corpus
from ..corpus.snapshot import (
    AssignedDate,
    AssignedInt,
    AssignedOption,
    AssignedText,
    VariableValues,
    decode_version_snapshot,
    merge_values,
    snapshot_tag_info,
    snapshot_variable_values,
    tag_info,
    variable_values,
)

logger = logging.getLogger(__name__)

TextByField = Dict[SearchField, List[str]]


@dataclass
class Candidate:
    """Ephemeral per-call record the filter and score pipeline operates on."""
    kind: ResultKind
    doc_id: str
    doc_title: str
    page_group_id: Optional[str]
    page_group_title: Optional[str]
    logical_page_id: Optional[str]
    doc_page_number: Optional[int]
    page_version_id: Optional[str]
    note_id: Optional[str]

    title: str
    subtitle: str
    snippet: str
    sort_date: Optional[datetime]

    text_by_field: TextByField = field(default_factory=dict)
    tag_ids: Set[str] = field(default_factory=set)
    tag_names: List[str] = field(default_factory=list)
    variable_values: VariableValues = field(default_factory=dict)

    @property
    def stable_id(self) -> str:
        return make_stable_id(
            self.kind.value,
            self.doc_id,
            self.page_group_id,
            self.logical_page_id,
            self.page_version_id,
            self.note_id,
        )


def filtered_versions(page: Page, include_historical: bool) -> List[PageVersion]:
    """
    Select the versions of a page that take part in a search.

    Args:
        page: Logical page
        include_historical: Whether historical versions are searched

    Returns:
        All versions oldest first when include_historical is set. Otherwise a
        single version: the one matching the page's current bundle and page
        number, else the most recently created one.
    """
    versions = page.versions or []
    if not versions:
        return []

    dated = [version for version in versions if version.created_at is not None]
    # Malformed versions without a creation date sort first
    ordered = [version for version in versions if version.created_at is None]
    ordered += sorted(dated, key=lambda version: comparable_datetime(version.created_at))
    if include_historical:
        return ordered

    for version in ordered:
        if (version.bundle_id == page.current_bundle_id and
                version.page_number == page.current_page_number):
            return [version]

    if dated:
        return [max(dated, key=lambda version: comparable_datetime(version.created_at))]

    return [versions[-1]]


def format_date_value(value: datetime) -> str:
    """Medium date style, e.g. "Jan 5, 2024"."""
    return f"{value:%b} {value.day}, {value.year}"


def _append(text_by_field: TextByField, search_field: SearchField, values: Iterable[Optional[str]]):
    cleaned = [value for value in values if not is_blank(value)]
    if cleaned:
        text_by_field.setdefault(search_field, []).extend(cleaned)


class CandidateBuilder:
    """
    Builds all candidates of a corpus for one search call.

    The builder is created per call and holds only lookup tables derived from
    the corpus it was given.
    """

    def __init__(self, corpus: Corpus, include_historical_versions: bool):
        self.include_historical_versions = include_historical_versions

        self.tag_by_id: Dict[str, Tag] = {tag.id: tag for tag in corpus.tags}
        self.variable_by_id: Dict[str, Variable] = {variable.id: variable for variable in corpus.variables}
        self.bundle_by_id: Dict[str, Bundle] = {bundle.id: bundle for bundle in corpus.bundles}

        self.documents = corpus.documents
        self.notes = corpus.notes

        # Lookups for note resolution, filled while walking documents
        self.doc_by_id: Dict[str, Document] = {}
        self.page_by_id: Dict[str, Page] = {}
        self.page_by_version_id: Dict[str, Page] = {}
        self.group_by_page_id: Dict[str, PageGroup] = {}
        self.doc_by_page_id: Dict[str, Document] = {}
        self.doc_page_number_by_page_id: Dict[str, int] = {}

    def build(self) -> List[Candidate]:
        """
        Build every candidate.

        Returns:
            Candidates in corpus order (documents first, then notes)
        """
        candidates: List[Candidate] = []

        for doc in self.documents:
            candidates.extend(self._build_document_candidates(doc))

        dropped = 0
        for note in self.notes:
            if note.is_deleted:
                continue
            candidate = self.build_note_candidate(note)
            if candidate is None:
                dropped += 1
                continue
            candidates.append(candidate)

        if dropped:
            logger.warning(f"Dropped {dropped} notes whose document could not be resolved")

        logger.debug(f"Built {len(candidates)} candidates")
        return candidates

    def _build_document_candidates(self, doc: Document) -> List[Candidate]:
        self.doc_by_id[doc.id] = doc

        first_page = doc.first_page
        candidates = [
            self.build_doc_candidate(
                doc,
                first_logical_page_id=first_page.id if first_page else None,
                first_doc_page_number=1 if first_page else None,
            )
        ]

        doc_page_counter = 0
        for page_group in doc.page_groups:
            first_number_in_group = doc_page_counter + 1 if page_group.pages else None
            candidates.append(self.build_page_group_candidate(doc, page_group, first_number_in_group))

            for page in page_group.pages:
                doc_page_counter += 1
                self.page_by_id[page.id] = page
                self.group_by_page_id[page.id] = page_group
                self.doc_by_page_id[page.id] = doc
                self.doc_page_number_by_page_id[page.id] = doc_page_counter
                for version in page.versions or []:
                    self.page_by_version_id[version.id] = page

                versions = filtered_versions(page, self.include_historical_versions)
                candidates.append(self.build_page_candidate(doc, page_group, page, doc_page_counter, versions))

                for version in versions:
                    ocr_candidate = self.build_ocr_candidate(doc, page_group, page, doc_page_counter, version)
                    if ocr_candidate is not None:
                        candidates.append(ocr_candidate)

                    metadata_candidate = self.build_version_metadata_candidate(
                        doc, page_group, page, doc_page_counter, version
                    )
                    if metadata_candidate is not None:
                        candidates.append(metadata_candidate)

        return candidates

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def variable_text(self, values_by_variable_id: VariableValues) -> Tuple[List[str], List[str]]:
        """
        Render variable names and values as searchable text.

        Returns:
            (sorted distinct names, sorted distinct values)
        """
        names = set()
        values = set()

        for variable_id, candidate_values in values_by_variable_id.items():
            variable = self.variable_by_id.get(variable_id)
            names.add(variable.name if variable else variable_id)

            for value in candidate_values:
                if isinstance(value, AssignedInt):
                    values.add(str(value.value))
                elif isinstance(value, (AssignedOption, AssignedText)):
                    values.add(value.value)
                elif isinstance(value, AssignedDate):
                    values.add(format_date_value(value.value))

        return sorted(names), sorted(values)

    def _standard_fields(
        self,
        tag_names: List[str],
        variable_names: List[str],
        variable_texts: List[str]
    ) -> TextByField:
        text_by_field: TextByField = {}
        _append(text_by_field, SearchField.TAG_NAME, tag_names)
        _append(text_by_field, SearchField.VARIABLE_NAME, variable_names)
        _append(text_by_field, SearchField.VARIABLE_VALUE, variable_texts)
        return text_by_field

    # ------------------------------------------------------------------
    # Candidate kinds
    # ------------------------------------------------------------------

    def build_doc_candidate(
        self,
        doc: Document,
        first_logical_page_id: Optional[str],
        first_doc_page_number: Optional[int]
    ) -> Candidate:
        tag_ids, tag_names = tag_info(doc.tag_ids, self.tag_by_id)
        values = variable_values(doc.variable_assignments)
        variable_names, variable_texts = self.variable_text(values)

        text_by_field: TextByField = {}
        _append(text_by_field, SearchField.DOC_TITLE, [doc.title])
        text_by_field.update(self._standard_fields(tag_names, variable_names, variable_texts))

        return Candidate(
            kind=ResultKind.DOC,
            doc_id=doc.id,
            doc_title=doc.title,
            page_group_id=None,
            page_group_title=None,
            logical_page_id=first_logical_page_id,
            doc_page_number=first_doc_page_number,
            page_version_id=None,
            note_id=None,
            title=doc.title,
            subtitle="Document",
            snippet=make_snippet([doc.title] + tag_names + variable_texts),
            sort_date=doc.updated_at,
            text_by_field=text_by_field,
            tag_ids=tag_ids,
            tag_names=tag_names,
            variable_values=values,
        )

    def build_page_group_candidate(
        self,
        doc: Document,
        page_group: PageGroup,
        first_doc_page_number: Optional[int]
    ) -> Candidate:
        tag_ids, tag_names = tag_info(page_group.tag_ids, self.tag_by_id)
        values = variable_values(page_group.variable_assignments)
        variable_names, variable_texts = self.variable_text(values)

        text_by_field: TextByField = {}
        _append(text_by_field, SearchField.PAGE_GROUP_TITLE, [page_group.title])
        text_by_field.update(self._standard_fields(tag_names, variable_names, variable_texts))

        return Candidate(
            kind=ResultKind.PAGE_GROUP,
            doc_id=doc.id,
            doc_title=doc.title,
            page_group_id=page_group.id,
            page_group_title=page_group.title,
            logical_page_id=page_group.pages[0].id if page_group.pages else None,
            doc_page_number=first_doc_page_number,
            page_version_id=None,
            note_id=None,
            title=page_group.title,
            subtitle=doc.title,
            snippet=make_snippet(tag_names + variable_texts),
            sort_date=page_group.updated_at,
            text_by_field=text_by_field,
            tag_ids=tag_ids,
            tag_names=tag_names,
            variable_values=values,
        )

    def build_page_candidate(
        self,
        doc: Document,
        page_group: PageGroup,
        page: Page,
        doc_page_number: int,
        versions: List[PageVersion]
    ) -> Candidate:
        """Page candidate; live values are merged with every selected version's snapshot."""
        tag_ids, tag_names = tag_info(page.tag_ids, self.tag_by_id)

        snapshot_values: VariableValues = {}
        for version in versions:
            snapshot = decode_version_snapshot(version)
            snapshot_values = merge_values(snapshot_values, snapshot_variable_values(snapshot))

        values = merge_values(variable_values(page.variable_assignments), snapshot_values)
        variable_names, variable_texts = self.variable_text(values)

        latest = page.latest_version

        return Candidate(
            kind=ResultKind.PAGE,
            doc_id=doc.id,
            doc_title=doc.title,
            page_group_id=page_group.id,
            page_group_title=page_group.title,
            logical_page_id=page.id,
            doc_page_number=doc_page_number,
            page_version_id=latest.id if latest else None,
            note_id=None,
            title=f"Page {doc_page_number}",
            subtitle=f"{doc.title} · {page_group.title}",
            snippet=make_snippet(tag_names + variable_texts),
            sort_date=page.updated_at,
            text_by_field=self._standard_fields(tag_names, variable_names, variable_texts),
            tag_ids=tag_ids,
            tag_names=tag_names,
            variable_values=values,
        )

    def build_ocr_candidate(
        self,
        doc: Document,
        page_group: PageGroup,
        page: Page,
        doc_page_number: int,
        version: PageVersion
    ) -> Optional[Candidate]:
        """OCR hit for one version, or None when its bundle page has no OCR text."""
        bundle = self.bundle_by_id.get(version.bundle_id)
        if bundle is None:
            return None

        ocr_text = bundle.ocr_text_by_page.get(version.page_number)
        if is_blank(ocr_text):
            return None

        current_tag_ids, current_tag_names = tag_info(page.tag_ids, self.tag_by_id)
        snapshot = decode_version_snapshot(version)
        snapshot_tag_ids, snapshot_tag_names = snapshot_tag_info(snapshot, self.tag_by_id)

        tag_ids = current_tag_ids | snapshot_tag_ids
        tag_names = sorted(set(current_tag_names) | set(snapshot_tag_names))
        values = merge_values(variable_values(page.variable_assignments), snapshot_variable_values(snapshot))
        variable_names, variable_texts = self.variable_text(values)

        text_by_field: TextByField = {}
        _append(text_by_field, SearchField.OCR_TEXT, [ocr_text])
        text_by_field.update(self._standard_fields(tag_names, variable_names, variable_texts))

        return Candidate(
            kind=ResultKind.OCR_HIT,
            doc_id=doc.id,
            doc_title=doc.title,
            page_group_id=page_group.id,
            page_group_title=page_group.title,
            logical_page_id=page.id,
            doc_page_number=doc_page_number,
            page_version_id=version.id,
            note_id=None,
            title=f"OCR · Page {doc_page_number}",
            subtitle=f"{doc.title} · {page_group.title}",
            snippet=make_snippet([ocr_text]),
            sort_date=version.created_at,
            text_by_field=text_by_field,
            tag_ids=tag_ids,
            tag_names=tag_names,
            variable_values=values,
        )

    def build_version_metadata_candidate(
        self,
        doc: Document,
        page_group: PageGroup,
        page: Page,
        doc_page_number: int,
        version: PageVersion
    ) -> Optional[Candidate]:
        """Version metadata hit, or None when the version's snapshot is absent or empty."""
        snapshot = decode_version_snapshot(version)
        if snapshot is None:
            return None

        tag_ids, tag_names = snapshot_tag_info(snapshot, self.tag_by_id)
        values = snapshot_variable_values(snapshot)
        if not tag_ids and not values:
            return None

        variable_names, variable_texts = self.variable_text(values)
        metadata_text = tag_names + variable_names + variable_texts

        text_by_field: TextByField = {}
        _append(text_by_field, SearchField.VERSION_SNAPSHOT_METADATA, metadata_text)
        text_by_field.update(self._standard_fields(tag_names, variable_names, variable_texts))

        return Candidate(
            kind=ResultKind.VERSION_METADATA_HIT,
            doc_id=doc.id,
            doc_title=doc.title,
            page_group_id=page_group.id,
            page_group_title=page_group.title,
            logical_page_id=page.id,
            doc_page_number=doc_page_number,
            page_version_id=version.id,
            note_id=None,
            title=f"Version Metadata · Page {doc_page_number}",
            subtitle=f"{doc.title} · {page_group.title}",
            snippet=make_snippet(metadata_text),
            sort_date=version.created_at,
            text_by_field=text_by_field,
            tag_ids=tag_ids,
            tag_names=tag_names,
            variable_values=values,
        )

    def resolve_note_page(self, note: Note) -> Optional[Page]:
        if note.page_id is not None and note.page_id in self.page_by_id:
            return self.page_by_id[note.page_id]
        return self.page_by_version_id.get(note.page_version_id)

    def build_note_candidate(self, note: Note) -> Optional[Candidate]:
        """
        Note hit, or None when the owning document cannot be resolved.

        The document comes from note.doc_id, else from the page found through
        note.page_id, else from the page owning note.page_version_id.
        Must run after the documents have been walked.
        """
        page = self.resolve_note_page(note)
        page_group = self.group_by_page_id.get(page.id) if page else None

        doc_id = note.doc_id
        if doc_id is None and page is not None:
            doc_id = self.doc_by_page_id[page.id].id

        doc = self.doc_by_id.get(doc_id) if doc_id is not None else None
        if doc is None:
            logger.debug(f"Note {note.id} has no resolvable document")
            return None

        tag_ids, tag_names = tag_info(note.tag_ids, self.tag_by_id)
        values = variable_values(note.variable_assignments)
        variable_names, variable_texts = self.variable_text(values)

        text_by_field: TextByField = {}
        _append(text_by_field, SearchField.NOTE_TITLE_BODY, [note.title, note.body])
        text_by_field.update(self._standard_fields(tag_names, variable_names, variable_texts))

        doc_page_number = self.doc_page_number_by_page_id.get(page.id) if page else None
        page_label = f"Page {doc_page_number}" if doc_page_number is not None else "Page"

        return Candidate(
            kind=ResultKind.NOTE_HIT,
            doc_id=doc.id,
            doc_title=doc.title,
            page_group_id=page_group.id if page_group else None,
            page_group_title=page_group.title if page_group else None,
            logical_page_id=page.id if page else None,
            doc_page_number=doc_page_number,
            page_version_id=note.page_version_id,
            note_id=note.id,
            title=note.title if note.title else "Note",
            subtitle=f"{doc.title} · {page_label}",
            snippet=make_snippet([note.body]),
            sort_date=note.updated_at,
            text_by_field=text_by_field,
            tag_ids=tag_ids,
            tag_names=tag_names,
            variable_values=values,
        )
