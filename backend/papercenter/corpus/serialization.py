"""
Corpus JSON format.

A corpus file mirrors the entity model with camelCase keys:

    {
        "tags": [{"id", "name", "color", "scope"}],
        "variables": [{"id", "name", "type", "scope", "listOptions", "color"}],
        "documents": [{
            "id", "title", "updatedAt", "tagIDs", "variableAssignments",
            "pageGroups": [{
                "id", "title", "updatedAt", "tagIDs", "variableAssignments",
                "pages": [{
                    "id", "currentBundleID", "currentPageNumber", "updatedAt",
                    "tagIDs", "variableAssignments",
                    "versions": [{"id", "bundleID", "pageNumber", "createdAt", "metadataSnapshot"}]
                }]
            }]
        }],
        "bundles": [{"id", "name", "ocrTextByPage": {"1": "..."}}],
        "notes": [{
            "id", "pageVersionID", "pageID", "docID", "parentNoteID",
            "title", "body", "isDeleted", "updatedAt", "tagIDs", "variableAssignments"
        }]
    }

Dates are ISO-8601 strings. A version's metadataSnapshot is kept as given
(object or JSON string) and decoded lazily by the search engine.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging

from dateutil import parser as date_parser

from .models import (
    Bundle,
    Document,
    MetadataSnapshot,
    Note,
    Page,
    PageGroup,
    PageVersion,
    PropertyScope,
    Tag,
    Variable,
    VariableAssignment,
    VariableType,
)
from .provider import Corpus
from .snapshot import encode_snapshot

logger = logging.getLogger(__name__)


class CorpusFormatError(ValueError):
    """Raised when a corpus document is malformed."""


# ============================================================================
# Decoding
# ============================================================================

def _date(raw) -> Optional[datetime]:
    if raw is None or raw == '':
        return None
    return date_parser.isoparse(str(raw))


def _string(raw: Dict[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value


def _assignments(data: Dict[str, Any]) -> List[VariableAssignment]:
    return [
        VariableAssignment(
            variable_id=raw.get('variableID'),
            int_value=int(raw['intValue']) if raw.get('intValue') is not None else None,
            list_value=_string(raw, 'listValue'),
            text_value=_string(raw, 'textValue'),
            date_value=_date(raw.get('dateValue')),
        )
        for raw in data.get('variableAssignments') or []
    ]


def _tag_ids(data: Dict[str, Any]) -> List[str]:
    return [str(tag_id) for tag_id in data.get('tagIDs') or []]


def _version_from_dict(data: Dict[str, Any]) -> PageVersion:
    return PageVersion(
        id=str(data['id']),
        bundle_id=str(data['bundleID']),
        page_number=int(data['pageNumber']),
        created_at=_date(data.get('createdAt')),
        metadata_snapshot=data.get('metadataSnapshot'),
    )


def _page_from_dict(data: Dict[str, Any]) -> Page:
    return Page(
        id=str(data['id']),
        current_bundle_id=str(data['currentBundleID']),
        current_page_number=int(data['currentPageNumber']),
        versions=[_version_from_dict(version) for version in data.get('versions') or []],
        updated_at=_date(data.get('updatedAt')),
        tag_ids=_tag_ids(data),
        variable_assignments=_assignments(data),
    )


def _group_from_dict(data: Dict[str, Any]) -> PageGroup:
    return PageGroup(
        id=str(data['id']),
        title=str(data['title']),
        pages=[_page_from_dict(page) for page in data.get('pages') or []],
        updated_at=_date(data.get('updatedAt')),
        tag_ids=_tag_ids(data),
        variable_assignments=_assignments(data),
    )


def _document_from_dict(data: Dict[str, Any]) -> Document:
    return Document(
        id=str(data['id']),
        title=str(data['title']),
        page_groups=[_group_from_dict(group) for group in data.get('pageGroups') or []],
        updated_at=_date(data.get('updatedAt')),
        tag_ids=_tag_ids(data),
        variable_assignments=_assignments(data),
    )


def _note_from_dict(data: Dict[str, Any]) -> Note:
    return Note(
        id=str(data['id']),
        page_version_id=str(data['pageVersionID']),
        body=str(data.get('body') or ''),
        page_id=data.get('pageID'),
        doc_id=data.get('docID'),
        parent_note_id=data.get('parentNoteID'),
        title=data.get('title'),
        is_deleted=bool(data.get('isDeleted', False)),
        updated_at=_date(data.get('updatedAt')),
        tag_ids=_tag_ids(data),
        variable_assignments=_assignments(data),
    )


def corpus_from_dict(data: Dict[str, Any]) -> Corpus:
    """
    Build a Corpus from its JSON representation.

    Args:
        data: Parsed corpus document

    Returns:
        Corpus

    Raises:
        CorpusFormatError: If required keys are missing or values are malformed
    """
    if not isinstance(data, dict):
        raise CorpusFormatError("Corpus document must be a JSON object")

    try:
        tags = [
            Tag(
                id=str(raw['id']),
                name=str(raw['name']),
                color=raw.get('color', '#3B82F6'),
                scope=PropertyScope(raw.get('scope', 'all')),
            )
            for raw in data.get('tags') or []
        ]
        variables = [
            Variable(
                id=str(raw['id']),
                name=str(raw['name']),
                type=VariableType(raw['type']),
                scope=PropertyScope(raw.get('scope', 'all')),
                list_options=raw.get('listOptions'),
                color=raw.get('color', '#8B5CF6'),
            )
            for raw in data.get('variables') or []
        ]
        documents = [_document_from_dict(raw) for raw in data.get('documents') or []]
        bundles = [
            Bundle(
                id=str(raw['id']),
                name=raw.get('name'),
                ocr_text_by_page={
                    int(page_number): str(text)
                    for page_number, text in (raw.get('ocrTextByPage') or {}).items()
                },
            )
            for raw in data.get('bundles') or []
        ]
        notes = [_note_from_dict(raw) for raw in data.get('notes') or []]
    except KeyError as e:
        raise CorpusFormatError(f"Missing required key: {e}") from e
    except (TypeError, ValueError, AttributeError, OverflowError) as e:
        raise CorpusFormatError(f"Malformed corpus document: {e}") from e

    return Corpus(tags=tags, variables=variables, documents=documents, bundles=bundles, notes=notes)


def load_corpus_file(path: Union[str, Path]) -> Corpus:
    """
    Load a corpus from a JSON file.

    Args:
        path: Path to the corpus file

    Returns:
        Corpus

    Raises:
        CorpusFormatError: If the file is not valid JSON or not a valid corpus
        OSError: If the file cannot be read
    """
    path = Path(path)
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise CorpusFormatError(f"{path} is not valid JSON: {e}") from e

    corpus = corpus_from_dict(data)
    logger.info(f"Loaded corpus from {path}: {corpus.stats()}")
    return corpus


# ============================================================================
# Encoding
# ============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _assignments_to_list(assignments: List[VariableAssignment]) -> List[Dict[str, Any]]:
    return [
        {
            'variableID': assignment.variable_id,
            'intValue': assignment.int_value,
            'listValue': assignment.list_value,
            'textValue': assignment.text_value,
            'dateValue': _iso(assignment.date_value),
        }
        for assignment in assignments
    ]


def _snapshot_to_json(snapshot):
    if isinstance(snapshot, MetadataSnapshot):
        return json.loads(encode_snapshot(snapshot))
    if isinstance(snapshot, (bytes, bytearray)):
        return bytes(snapshot).decode('utf-8', errors='replace')
    return snapshot


def corpus_to_dict(corpus: Corpus) -> Dict[str, Any]:
    """Encode a Corpus into its JSON representation."""
    return {
        'tags': [
            {'id': tag.id, 'name': tag.name, 'color': tag.color, 'scope': tag.scope.value}
            for tag in corpus.tags
        ],
        'variables': [
            {
                'id': variable.id,
                'name': variable.name,
                'type': variable.type.value,
                'scope': variable.scope.value,
                'listOptions': variable.list_options,
                'color': variable.color,
            }
            for variable in corpus.variables
        ],
        'documents': [
            {
                'id': doc.id,
                'title': doc.title,
                'updatedAt': _iso(doc.updated_at),
                'tagIDs': list(doc.tag_ids),
                'variableAssignments': _assignments_to_list(doc.variable_assignments),
                'pageGroups': [
                    {
                        'id': group.id,
                        'title': group.title,
                        'updatedAt': _iso(group.updated_at),
                        'tagIDs': list(group.tag_ids),
                        'variableAssignments': _assignments_to_list(group.variable_assignments),
                        'pages': [
                            {
                                'id': page.id,
                                'currentBundleID': page.current_bundle_id,
                                'currentPageNumber': page.current_page_number,
                                'updatedAt': _iso(page.updated_at),
                                'tagIDs': list(page.tag_ids),
                                'variableAssignments': _assignments_to_list(page.variable_assignments),
                                'versions': [
                                    {
                                        'id': version.id,
                                        'bundleID': version.bundle_id,
                                        'pageNumber': version.page_number,
                                        'createdAt': _iso(version.created_at),
                                        'metadataSnapshot': _snapshot_to_json(version.metadata_snapshot),
                                    }
                                    for version in page.versions or []
                                ],
                            }
                            for page in group.pages
                        ],
                    }
                    for group in doc.page_groups
                ],
            }
            for doc in corpus.documents
        ],
        'bundles': [
            {
                'id': bundle.id,
                'name': bundle.name,
                'ocrTextByPage': {str(number): text for number, text in sorted(bundle.ocr_text_by_page.items())},
            }
            for bundle in corpus.bundles
        ],
        'notes': [
            {
                'id': note.id,
                'pageVersionID': note.page_version_id,
                'pageID': note.page_id,
                'docID': note.doc_id,
                'parentNoteID': note.parent_note_id,
                'title': note.title,
                'body': note.body,
                'isDeleted': note.is_deleted,
                'updatedAt': _iso(note.updated_at),
                'tagIDs': list(note.tag_ids),
                'variableAssignments': _assignments_to_list(note.variable_assignments),
            }
            for note in corpus.notes
        ],
    }
