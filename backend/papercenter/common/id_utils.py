"""
Stable identifiers for search results.

Every candidate produced during one search call gets a stable id built from
its kind and all of its navigation ids:

    "{kind}|{doc_id}|{page_group_id}|{page_id}|{version_id}|{note_id}"

Absent ids are written as "-". Ids are unique within a call and serve as the
final tie-break key when ranking.

Usage:
    from papercenter.common.id_utils import make_stable_id, parse_stable_id

    stable_id = make_stable_id("ocrHit", doc_id, group_id, page_id, version_id, None)
    parsed = parse_stable_id(stable_id)
    # ParsedStableId(kind='ocrHit', doc_id=..., note_id=None, ...)
"""

from dataclasses import dataclass
from typing import Optional


SEPARATOR = "|"
ABSENT = "-"


@dataclass
class ParsedStableId:
    """Parsed stable id."""
    kind: str
    doc_id: str
    page_group_id: Optional[str]
    logical_page_id: Optional[str]
    page_version_id: Optional[str]
    note_id: Optional[str]


def make_stable_id(
    kind: str,
    doc_id: str,
    page_group_id: Optional[str] = None,
    logical_page_id: Optional[str] = None,
    page_version_id: Optional[str] = None,
    note_id: Optional[str] = None
) -> str:
    """
    Generate the stable id of a candidate.

    Args:
        kind: Result kind value (e.g. "doc", "ocrHit")
        doc_id: Owning document id
        page_group_id: Page group id, if any
        logical_page_id: Page id, if any
        page_version_id: Page version id, if any
        note_id: Note id, if any

    Returns:
        String id like "page|d1|g1|p1|v2|-"

    Example:
        >>> make_stable_id("doc", "d1")
        'doc|d1|-|-|-|-'
    """
    parts = [kind, doc_id, page_group_id, logical_page_id, page_version_id, note_id]
    return SEPARATOR.join(ABSENT if part is None else str(part) for part in parts)


def parse_stable_id(stable_id: str) -> ParsedStableId:
    """
    Parse a stable id back into its components.

    Args:
        stable_id: Id produced by make_stable_id

    Returns:
        ParsedStableId

    Raises:
        ValueError: If the id does not have six components

    Example:
        >>> parse_stable_id("noteHit|d1|-|p1|v1|n1").note_id
        'n1'
    """
    parts = stable_id.split(SEPARATOR)
    if len(parts) != 6:
        raise ValueError(f"Invalid stable id: {stable_id}")

    kind, doc_id, group_id, page_id, version_id, note_id = (
        None if part == ABSENT else part for part in parts
    )
    if not kind or doc_id is None:
        raise ValueError(f"Invalid stable id: {stable_id}")

    return ParsedStableId(
        kind=kind,
        doc_id=doc_id,
        page_group_id=group_id,
        logical_page_id=page_id,
        page_version_id=version_id,
        note_id=note_id,
    )

