"""
Database initialization and management for the PaperCenter corpus store.
"""

import sqlite3
from pathlib import Path
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Owner types used by entity_tags and variable_assignments
ENTITY_DOC = 'doc'
ENTITY_PAGE_GROUP = 'pageGroup'
ENTITY_PAGE = 'page'
ENTITY_NOTE = 'note'


class Database:
    """Manages SQLite database connections and schema."""

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.connection: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        """
        Create and return a database connection.

        Returns:
            SQLite connection object
        """
        if self.connection is None:
            self.connection = sqlite3.connect(self.db_path, check_same_thread=False)
            self.connection.row_factory = sqlite3.Row
            self.connection.execute("PRAGMA foreign_keys = ON")
        return self.connection

    def initialize_schema(self):
        """Create all database tables and indexes."""
        conn = self.connect()
        cursor = conn.cursor()

        # Tag and variable definitions
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS tags (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                color TEXT NOT NULL DEFAULT '#3B82F6',
                scope TEXT NOT NULL DEFAULT 'all',
                sort_index INTEGER NOT NULL DEFAULT 0
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS variables (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                scope TEXT NOT NULL DEFAULT 'all',
                list_options_json TEXT,
                color TEXT NOT NULL DEFAULT '#8B5CF6',
                sort_index INTEGER NOT NULL DEFAULT 0
            )
        """)

        # Document hierarchy
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                updated_at DATETIME,
                sort_index INTEGER NOT NULL DEFAULT 0
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS page_groups (
                id TEXT PRIMARY KEY,
                doc_id TEXT NOT NULL,
                title TEXT NOT NULL,
                updated_at DATETIME,
                sort_index INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY (doc_id) REFERENCES documents(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS pages (
                id TEXT PRIMARY KEY,
                page_group_id TEXT NOT NULL,
                current_bundle_id TEXT NOT NULL,
                current_page_number INTEGER NOT NULL,
                updated_at DATETIME,
                sort_index INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY (page_group_id) REFERENCES page_groups(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS page_versions (
                id TEXT PRIMARY KEY,
                page_id TEXT NOT NULL,
                bundle_id TEXT NOT NULL,
                page_number INTEGER NOT NULL,
                created_at DATETIME,
                metadata_snapshot BLOB,
                sort_index INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY (page_id) REFERENCES pages(id) ON DELETE CASCADE
            )
        """)

        # PDF bundles and their OCR text
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS bundles (
                id TEXT PRIMARY KEY,
                name TEXT,
                sort_index INTEGER NOT NULL DEFAULT 0
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS bundle_ocr_pages (
                bundle_id TEXT NOT NULL,
                page_number INTEGER NOT NULL,
                text TEXT NOT NULL,
                PRIMARY KEY (bundle_id, page_number),
                FOREIGN KEY (bundle_id) REFERENCES bundles(id) ON DELETE CASCADE
            )
        """)

        # Notes anchored to page versions
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notes (
                id TEXT PRIMARY KEY,
                page_version_id TEXT NOT NULL,
                page_id TEXT,
                doc_id TEXT,
                parent_note_id TEXT,
                title TEXT,
                body TEXT NOT NULL DEFAULT '',
                is_deleted BOOLEAN NOT NULL DEFAULT 0,
                updated_at DATETIME,
                sort_index INTEGER NOT NULL DEFAULT 0
            )
        """)

        # Tag and variable assignments for documents, page groups, pages and notes
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS entity_tags (
                entity_type TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                tag_id TEXT NOT NULL,
                sort_index INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (entity_type, entity_id, tag_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS variable_assignments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entity_type TEXT NOT NULL,
                entity_id TEXT NOT NULL,
                variable_id TEXT,
                int_value INTEGER,
                list_value TEXT,
                text_value TEXT,
                date_value DATETIME,
                sort_index INTEGER NOT NULL DEFAULT 0
            )
        """)

        # Create indexes
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_page_groups_doc ON page_groups(doc_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_pages_group ON pages(page_group_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_versions_page ON page_versions(page_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_notes_deleted ON notes(is_deleted)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_entity_tags_owner ON entity_tags(entity_type, entity_id)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_assignments_owner ON variable_assignments(entity_type, entity_id)"
        )

        conn.commit()
        logger.info("Database schema initialized successfully")

    def close(self):
        """Close database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def init_database(db_path: str) -> Database:
    """
    Initialize database with schema.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Database instance
    """
    db = Database(db_path)
    db.initialize_schema()
    return db
