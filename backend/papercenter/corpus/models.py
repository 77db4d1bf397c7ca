"""
Corpus entity models.

The search engine only reads these. They mirror the document hierarchy:

    Document -> PageGroup -> Page -> PageVersion

with Notes anchored to a PageVersion, and Tags / typed Variables assigned to
documents, page groups, pages and notes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class VariableType(str, Enum):
    """Declared value type of a Variable."""
    INT = "int"
    LIST = "list"
    TEXT = "text"
    DATE = "date"


class PropertyScope(str, Enum):
    """Which entities a tag or variable may be applied to."""
    PDF_BUNDLE = "pdfBundle"
    DOC = "doc"
    PAGE_GROUP = "pageGroup"
    PAGE = "page"
    NOTE_BLOCK = "noteBlock"
    DOC_AND_BELOW = "docAndBelow"
    ALL = "all"


@dataclass
class Tag:
    id: str
    name: str
    color: str = "#3B82F6"
    scope: PropertyScope = PropertyScope.ALL


@dataclass
class Variable:
    id: str
    name: str
    type: VariableType
    scope: PropertyScope = PropertyScope.ALL
    list_options: Optional[List[str]] = None
    color: str = "#8B5CF6"


@dataclass
class VariableAssignment:
    """A live value assigned to an entity. Exactly one value field is normally set."""
    variable_id: Optional[str]
    int_value: Optional[int] = None
    list_value: Optional[str] = None
    text_value: Optional[str] = None
    date_value: Optional[datetime] = None


@dataclass(frozen=True)
class VariableAssignmentSnapshot:
    """Frozen copy of a variable assignment taken when a version was created."""
    variable_id: str
    int_value: Optional[int] = None
    list_value: Optional[str] = None
    text_value: Optional[str] = None
    date_value: Optional[datetime] = None


@dataclass(frozen=True)
class MetadataSnapshot:
    """Immutable tag/variable state of a page as of a version's creation."""
    tag_ids: Tuple[str, ...] = ()
    variable_assignments: Tuple[VariableAssignmentSnapshot, ...] = ()


def comparable_datetime(value: datetime) -> datetime:
    """Aware local-time form of value; naive datetimes are taken as local time."""
    return value.astimezone()


@dataclass
class PageVersion:
    id: str
    bundle_id: str
    page_number: int
    created_at: Optional[datetime]
    # Raw frozen JSON payload (str or bytes), decoded on demand
    metadata_snapshot: Optional[object] = None


@dataclass
class Page:
    id: str
    current_bundle_id: str
    current_page_number: int
    versions: List[PageVersion]
    updated_at: Optional[datetime] = None
    tag_ids: List[str] = field(default_factory=list)
    variable_assignments: List[VariableAssignment] = field(default_factory=list)

    @property
    def latest_version(self) -> Optional[PageVersion]:
        """Most recently created version, or None for a page without history."""
        dated = [version for version in self.versions or [] if version.created_at is not None]
        if not dated:
            return self.versions[-1] if self.versions else None
        return max(dated, key=lambda version: comparable_datetime(version.created_at))


@dataclass
class PageGroup:
    id: str
    title: str
    pages: List[Page] = field(default_factory=list)
    updated_at: Optional[datetime] = None
    tag_ids: List[str] = field(default_factory=list)
    variable_assignments: List[VariableAssignment] = field(default_factory=list)


@dataclass
class Document:
    id: str
    title: str
    page_groups: List[PageGroup] = field(default_factory=list)
    updated_at: Optional[datetime] = None
    tag_ids: List[str] = field(default_factory=list)
    variable_assignments: List[VariableAssignment] = field(default_factory=list)

    @property
    def first_page(self) -> Optional[Page]:
        """First page of the first page group (None when that group is empty)."""
        if not self.page_groups or not self.page_groups[0].pages:
            return None
        return self.page_groups[0].pages[0]


@dataclass
class Bundle:
    """A PDF bundle; only its OCR text is relevant to search."""
    id: str
    name: Optional[str] = None
    ocr_text_by_page: Dict[int, str] = field(default_factory=dict)


@dataclass
class Note:
    id: str
    page_version_id: str
    body: str
    page_id: Optional[str] = None
    doc_id: Optional[str] = None
    parent_note_id: Optional[str] = None
    title: Optional[str] = None
    is_deleted: bool = False
    updated_at: Optional[datetime] = None
    tag_ids: List[str] = field(default_factory=list)
    variable_assignments: List[VariableAssignment] = field(default_factory=list)
