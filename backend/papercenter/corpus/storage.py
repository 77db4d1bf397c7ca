"""
Corpus storage: writes a corpus into the SQLite store and serves it back
through the corpus provider contract.
"""

import json
import sqlite3
from collections import defaultdict
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
import logging

from dateutil import parser as date_parser

from .database import ENTITY_DOC, ENTITY_NOTE, ENTITY_PAGE, ENTITY_PAGE_GROUP
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
from .provider import Corpus, CorpusFetchError, CorpusProvider
from .snapshot import encode_snapshot

logger = logging.getLogger(__name__)

OwnerKey = Tuple[str, str]

# Deleted in child-first order
CORPUS_TABLES = (
    'variable_assignments',
    'entity_tags',
    'notes',
    'bundle_ocr_pages',
    'bundles',
    'page_versions',
    'pages',
    'page_groups',
    'documents',
    'variables',
    'tags',
)


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    return date_parser.isoparse(value)


def _snapshot_column(snapshot) -> Optional[Union[str, bytes]]:
    if snapshot is None:
        return None
    if isinstance(snapshot, MetadataSnapshot):
        return encode_snapshot(snapshot)
    if isinstance(snapshot, dict):
        return json.dumps(snapshot)
    if isinstance(snapshot, bytearray):
        return bytes(snapshot)
    return snapshot


class CorpusStorage:
    """Manages storing a corpus in the SQLite database."""

    def __init__(self, db_connection: sqlite3.Connection):
        """
        Initialize corpus storage.

        Args:
            db_connection: SQLite database connection
        """
        self.db = db_connection

    def save_corpus(self, corpus: Corpus) -> Dict[str, int]:
        """
        Replace the stored corpus.

        Args:
            corpus: Corpus to store

        Returns:
            Dictionary with entity counts of the stored corpus
        """
        try:
            cursor = self.db.cursor()
            for table in CORPUS_TABLES:
                cursor.execute(f"DELETE FROM {table}")

            for index, tag in enumerate(corpus.tags):
                cursor.execute(
                    "INSERT INTO tags (id, name, color, scope, sort_index) VALUES (?, ?, ?, ?, ?)",
                    (tag.id, tag.name, tag.color, tag.scope.value, index)
                )

            for index, variable in enumerate(corpus.variables):
                list_options = json.dumps(variable.list_options) if variable.list_options is not None else None
                cursor.execute("""
                    INSERT INTO variables (id, name, type, scope, list_options_json, color, sort_index)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    variable.id,
                    variable.name,
                    variable.type.value,
                    variable.scope.value,
                    list_options,
                    variable.color,
                    index
                ))

            for index, doc in enumerate(corpus.documents):
                self._save_document(cursor, doc, index)

            for index, bundle in enumerate(corpus.bundles):
                cursor.execute(
                    "INSERT INTO bundles (id, name, sort_index) VALUES (?, ?, ?)",
                    (bundle.id, bundle.name, index)
                )
                cursor.executemany(
                    "INSERT INTO bundle_ocr_pages (bundle_id, page_number, text) VALUES (?, ?, ?)",
                    [(bundle.id, page_number, text) for page_number, text in sorted(bundle.ocr_text_by_page.items())]
                )

            for index, note in enumerate(corpus.notes):
                cursor.execute("""
                    INSERT INTO notes (
                        id, page_version_id, page_id, doc_id, parent_note_id,
                        title, body, is_deleted, updated_at, sort_index
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    note.id,
                    note.page_version_id,
                    note.page_id,
                    note.doc_id,
                    note.parent_note_id,
                    note.title,
                    note.body,
                    int(note.is_deleted),
                    _format_datetime(note.updated_at),
                    index
                ))
                self._save_properties(cursor, ENTITY_NOTE, note.id, note.tag_ids, note.variable_assignments)

            self.db.commit()

        except sqlite3.Error as e:
            logger.error(f"Error saving corpus: {e}")
            self.db.rollback()
            raise

        stats = corpus.stats()
        logger.info(f"Saved corpus: {stats}")
        return stats

    def _save_document(self, cursor: sqlite3.Cursor, doc: Document, index: int):
        cursor.execute(
            "INSERT INTO documents (id, title, updated_at, sort_index) VALUES (?, ?, ?, ?)",
            (doc.id, doc.title, _format_datetime(doc.updated_at), index)
        )
        self._save_properties(cursor, ENTITY_DOC, doc.id, doc.tag_ids, doc.variable_assignments)

        for group_index, group in enumerate(doc.page_groups):
            cursor.execute(
                "INSERT INTO page_groups (id, doc_id, title, updated_at, sort_index) VALUES (?, ?, ?, ?, ?)",
                (group.id, doc.id, group.title, _format_datetime(group.updated_at), group_index)
            )
            self._save_properties(cursor, ENTITY_PAGE_GROUP, group.id, group.tag_ids, group.variable_assignments)

            for page_index, page in enumerate(group.pages):
                cursor.execute("""
                    INSERT INTO pages (
                        id, page_group_id, current_bundle_id, current_page_number, updated_at, sort_index
                    ) VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    page.id,
                    group.id,
                    page.current_bundle_id,
                    page.current_page_number,
                    _format_datetime(page.updated_at),
                    page_index
                ))
                self._save_properties(cursor, ENTITY_PAGE, page.id, page.tag_ids, page.variable_assignments)

                for version_index, version in enumerate(page.versions or []):
                    cursor.execute("""
                        INSERT INTO page_versions (
                            id, page_id, bundle_id, page_number, created_at, metadata_snapshot, sort_index
                        ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """, (
                        version.id,
                        page.id,
                        version.bundle_id,
                        version.page_number,
                        _format_datetime(version.created_at),
                        _snapshot_column(version.metadata_snapshot),
                        version_index
                    ))

    def _save_properties(
        self,
        cursor: sqlite3.Cursor,
        entity_type: str,
        entity_id: str,
        tag_ids: List[str],
        assignments: List[VariableAssignment]
    ):
        # Duplicate tag ids on one entity collapse to a single row
        seen = set()
        for index, tag_id in enumerate(tag_ids or []):
            if tag_id in seen:
                continue
            seen.add(tag_id)
            cursor.execute(
                "INSERT INTO entity_tags (entity_type, entity_id, tag_id, sort_index) VALUES (?, ?, ?, ?)",
                (entity_type, entity_id, tag_id, index)
            )

        for index, assignment in enumerate(assignments or []):
            cursor.execute("""
                INSERT INTO variable_assignments (
                    entity_type, entity_id, variable_id, int_value, list_value, text_value, date_value, sort_index
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                entity_type,
                entity_id,
                assignment.variable_id,
                assignment.int_value,
                assignment.list_value,
                assignment.text_value,
                _format_datetime(assignment.date_value),
                index
            ))


class SqliteCorpusProvider(CorpusProvider):
    """
    Serves the corpus stored in a SQLite database.

    Every fetch opens its own connection, so concurrent searches never share
    a cursor. fetch_corpus reads all tables inside one read transaction.
    """

    def __init__(self, db_path: Union[str, Path]):
        """
        Initialize provider.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)

    def _connect(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            raise CorpusFetchError(f"Corpus database not found: {self.db_path}")
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _read(self, reader):
        try:
            with closing(self._connect()) as conn:
                return reader(conn)
        except (sqlite3.Error, ValueError, OverflowError) as e:
            raise CorpusFetchError(f"Failed to read corpus from {self.db_path}: {e}") from e

    def fetch_tags(self) -> List[Tag]:
        return self._read(self._read_tags)

    def fetch_variables(self) -> List[Variable]:
        return self._read(self._read_variables)

    def fetch_documents(self) -> List[Document]:
        return self._read(self._read_documents)

    def fetch_bundles(self) -> List[Bundle]:
        return self._read(self._read_bundles)

    def fetch_notes(self) -> List[Note]:
        return self._read(self._read_notes)

    def fetch_corpus(self) -> Corpus:
        def read_all(conn: sqlite3.Connection) -> Corpus:
            conn.execute("BEGIN")
            try:
                return Corpus(
                    tags=self._read_tags(conn),
                    variables=self._read_variables(conn),
                    documents=self._read_documents(conn),
                    bundles=self._read_bundles(conn),
                    notes=self._read_notes(conn),
                )
            finally:
                conn.rollback()

        corpus = self._read(read_all)
        logger.debug(f"Fetched corpus from {self.db_path}: {corpus.stats()}")
        return corpus

    # ------------------------------------------------------------------
    # Table readers
    # ------------------------------------------------------------------

    def _read_tags(self, conn: sqlite3.Connection) -> List[Tag]:
        rows = conn.execute("SELECT * FROM tags ORDER BY sort_index, id").fetchall()
        return [
            Tag(id=row['id'], name=row['name'], color=row['color'], scope=PropertyScope(row['scope']))
            for row in rows
        ]

    def _read_variables(self, conn: sqlite3.Connection) -> List[Variable]:
        rows = conn.execute("SELECT * FROM variables ORDER BY sort_index, id").fetchall()
        variables = []
        for row in rows:
            list_options = json.loads(row['list_options_json']) if row['list_options_json'] else None
            variables.append(Variable(
                id=row['id'],
                name=row['name'],
                type=VariableType(row['type']),
                scope=PropertyScope(row['scope']),
                list_options=list_options,
                color=row['color'],
            ))
        return variables

    def _read_properties(
        self,
        conn: sqlite3.Connection,
        entity_type: str
    ) -> Tuple[Dict[str, List[str]], Dict[str, List[VariableAssignment]]]:
        tags_by_entity: Dict[str, List[str]] = defaultdict(list)
        rows = conn.execute(
            "SELECT entity_id, tag_id FROM entity_tags WHERE entity_type = ? ORDER BY entity_id, sort_index",
            (entity_type,)
        ).fetchall()
        for row in rows:
            tags_by_entity[row['entity_id']].append(row['tag_id'])

        assignments_by_entity: Dict[str, List[VariableAssignment]] = defaultdict(list)
        rows = conn.execute(
            "SELECT * FROM variable_assignments WHERE entity_type = ? ORDER BY entity_id, sort_index, id",
            (entity_type,)
        ).fetchall()
        for row in rows:
            assignments_by_entity[row['entity_id']].append(VariableAssignment(
                variable_id=row['variable_id'],
                int_value=row['int_value'],
                list_value=row['list_value'],
                text_value=row['text_value'],
                date_value=_parse_datetime(row['date_value']),
            ))

        return tags_by_entity, assignments_by_entity

    def _read_documents(self, conn: sqlite3.Connection) -> List[Document]:
        doc_tags, doc_assignments = self._read_properties(conn, ENTITY_DOC)
        group_tags, group_assignments = self._read_properties(conn, ENTITY_PAGE_GROUP)
        page_tags, page_assignments = self._read_properties(conn, ENTITY_PAGE)

        versions_by_page: Dict[str, List[PageVersion]] = defaultdict(list)
        for row in conn.execute("SELECT * FROM page_versions ORDER BY page_id, sort_index, id"):
            versions_by_page[row['page_id']].append(PageVersion(
                id=row['id'],
                bundle_id=row['bundle_id'],
                page_number=row['page_number'],
                created_at=_parse_datetime(row['created_at']),
                metadata_snapshot=row['metadata_snapshot'],
            ))

        pages_by_group: Dict[str, List[Page]] = defaultdict(list)
        for row in conn.execute("SELECT * FROM pages ORDER BY page_group_id, sort_index, id"):
            pages_by_group[row['page_group_id']].append(Page(
                id=row['id'],
                current_bundle_id=row['current_bundle_id'],
                current_page_number=row['current_page_number'],
                versions=versions_by_page.get(row['id'], []),
                updated_at=_parse_datetime(row['updated_at']),
                tag_ids=page_tags.get(row['id'], []),
                variable_assignments=page_assignments.get(row['id'], []),
            ))

        groups_by_doc: Dict[str, List[PageGroup]] = defaultdict(list)
        for row in conn.execute("SELECT * FROM page_groups ORDER BY doc_id, sort_index, id"):
            groups_by_doc[row['doc_id']].append(PageGroup(
                id=row['id'],
                title=row['title'],
                pages=pages_by_group.get(row['id'], []),
                updated_at=_parse_datetime(row['updated_at']),
                tag_ids=group_tags.get(row['id'], []),
                variable_assignments=group_assignments.get(row['id'], []),
            ))

        return [
            Document(
                id=row['id'],
                title=row['title'],
                page_groups=groups_by_doc.get(row['id'], []),
                updated_at=_parse_datetime(row['updated_at']),
                tag_ids=doc_tags.get(row['id'], []),
                variable_assignments=doc_assignments.get(row['id'], []),
            )
            for row in conn.execute("SELECT * FROM documents ORDER BY sort_index, id")
        ]

    def _read_bundles(self, conn: sqlite3.Connection) -> List[Bundle]:
        ocr_by_bundle: Dict[str, Dict[int, str]] = defaultdict(dict)
        for row in conn.execute("SELECT bundle_id, page_number, text FROM bundle_ocr_pages"):
            ocr_by_bundle[row['bundle_id']][row['page_number']] = row['text']

        return [
            Bundle(id=row['id'], name=row['name'], ocr_text_by_page=ocr_by_bundle.get(row['id'], {}))
            for row in conn.execute("SELECT * FROM bundles ORDER BY sort_index, id")
        ]

    def _read_notes(self, conn: sqlite3.Connection) -> List[Note]:
        note_tags, note_assignments = self._read_properties(conn, ENTITY_NOTE)
        rows = conn.execute("SELECT * FROM notes WHERE is_deleted = 0 ORDER BY sort_index, id").fetchall()
        return [
            Note(
                id=row['id'],
                page_version_id=row['page_version_id'],
                body=row['body'],
                page_id=row['page_id'],
                doc_id=row['doc_id'],
                parent_note_id=row['parent_note_id'],
                title=row['title'],
                is_deleted=False,
                updated_at=_parse_datetime(row['updated_at']),
                tag_ids=note_tags.get(row['id'], []),
                variable_assignments=note_assignments.get(row['id'], []),
            )
            for row in rows
        ]
