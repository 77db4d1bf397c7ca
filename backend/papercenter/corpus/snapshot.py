"""
Metadata snapshot resolver.

Decodes the frozen tag/variable snapshot attached to a historical page version
and turns live assignments and snapshots into multi-valued variable maps:

    variable_id -> [typed value, ...]

A variable may carry several values once live state and one or more snapshots
are merged; filter operators decide whether "any" or "all" of them must match.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from dateutil import parser as date_parser

from .models import MetadataSnapshot, PageVersion, Tag, VariableAssignmentSnapshot

logger = logging.getLogger(__name__)

# Numeric snapshot dates are seconds since this reference date
SNAPSHOT_REFERENCE_DATE = datetime(2001, 1, 1, tzinfo=timezone.utc)


class SnapshotDecodeError(ValueError):
    """Raised when a snapshot payload cannot be decoded."""


# ============================================================================
# Candidate values
# ============================================================================

@dataclass(frozen=True)
class AssignedInt:
    value: int


@dataclass(frozen=True)
class AssignedOption:
    value: str


@dataclass(frozen=True)
class AssignedText:
    value: str


@dataclass(frozen=True)
class AssignedDate:
    value: datetime


CandidateValue = Union[AssignedInt, AssignedOption, AssignedText, AssignedDate]
VariableValues = Dict[str, List[CandidateValue]]


# ============================================================================
# Decoding
# ============================================================================

def _pick(payload: dict, camel: str, snake: str):
    if camel in payload:
        return payload[camel]
    return payload.get(snake)


def parse_snapshot_date(raw) -> Optional[datetime]:
    """
    Parse a snapshot date value.

    Args:
        raw: ISO-8601 string, or seconds since 2001-01-01 UTC

    Returns:
        Parsed datetime, or None when absent
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, bool):
        raise SnapshotDecodeError(f"Invalid snapshot date: {raw!r}")
    if isinstance(raw, (int, float)):
        return SNAPSHOT_REFERENCE_DATE + timedelta(seconds=raw)
    if isinstance(raw, str):
        try:
            return date_parser.isoparse(raw)
        except ValueError as e:
            raise SnapshotDecodeError(f"Invalid snapshot date: {raw!r}") from e
    raise SnapshotDecodeError(f"Invalid snapshot date: {raw!r}")


def decode_snapshot_payload(payload) -> MetadataSnapshot:
    """
    Decode a snapshot payload into a MetadataSnapshot.

    Args:
        payload: JSON text, UTF-8 bytes, or an already-parsed dictionary

    Returns:
        MetadataSnapshot

    Raises:
        SnapshotDecodeError: If the payload is malformed
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SnapshotDecodeError("Snapshot is not valid UTF-8") from e

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise SnapshotDecodeError(f"Snapshot is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise SnapshotDecodeError("Snapshot must be a JSON object")

    tag_ids = _pick(payload, "tagIDs", "tag_ids")
    raw_assignments = _pick(payload, "variableAssignments", "variable_assignments")
    if not isinstance(tag_ids, list) or not isinstance(raw_assignments, list):
        raise SnapshotDecodeError("Snapshot requires tagIDs and variableAssignments lists")

    assignments = []
    for raw in raw_assignments:
        if not isinstance(raw, dict):
            raise SnapshotDecodeError("Snapshot assignment must be a JSON object")
        variable_id = _pick(raw, "variableID", "variable_id")
        if variable_id is None:
            raise SnapshotDecodeError("Snapshot assignment is missing variableID")

        int_value = _pick(raw, "intValue", "int_value")
        if int_value is not None and (isinstance(int_value, bool) or not isinstance(int_value, int)):
            raise SnapshotDecodeError(f"Invalid intValue: {int_value!r}")
        list_value = _pick(raw, "listValue", "list_value")
        if list_value is not None and not isinstance(list_value, str):
            raise SnapshotDecodeError(f"Invalid listValue: {list_value!r}")
        text_value = _pick(raw, "textValue", "text_value")
        if text_value is not None and not isinstance(text_value, str):
            raise SnapshotDecodeError(f"Invalid textValue: {text_value!r}")

        assignments.append(VariableAssignmentSnapshot(
            variable_id=str(variable_id),
            int_value=int_value,
            list_value=list_value,
            text_value=text_value,
            date_value=parse_snapshot_date(_pick(raw, "dateValue", "date_value")),
        ))

    return MetadataSnapshot(
        tag_ids=tuple(str(tag_id) for tag_id in tag_ids),
        variable_assignments=tuple(assignments),
    )


def decode_version_snapshot(version: PageVersion) -> Optional[MetadataSnapshot]:
    """
    Decode the snapshot attached to a version.

    Undecodable snapshots are logged and treated as absent.
    """
    if version.metadata_snapshot is None:
        return None
    if isinstance(version.metadata_snapshot, MetadataSnapshot):
        return version.metadata_snapshot

    try:
        return decode_snapshot_payload(version.metadata_snapshot)
    except SnapshotDecodeError as e:
        logger.warning(f"Ignoring undecodable snapshot on version {version.id}: {e}")
        return None


def encode_snapshot(snapshot: MetadataSnapshot) -> str:
    """Encode a snapshot using the wire format (ISO-8601 dates)."""
    return json.dumps({
        "tagIDs": list(snapshot.tag_ids),
        "variableAssignments": [
            {
                "variableID": assignment.variable_id,
                "intValue": assignment.int_value,
                "listValue": assignment.list_value,
                "textValue": assignment.text_value,
                "dateValue": assignment.date_value.isoformat() if assignment.date_value else None,
            }
            for assignment in snapshot.variable_assignments
        ],
    })


# ============================================================================
# Value maps
# ============================================================================

def _is_blank(value: Optional[str]) -> bool:
    return not isinstance(value, str) or not value.strip()


def variable_values(assignments: Iterable) -> VariableValues:
    """
    Build a multi-valued variable map from assignments.

    Works for both live VariableAssignment and VariableAssignmentSnapshot.
    Assignments without a variable id are skipped, and blank or non-string
    list/text values are ignored.
    """
    result: VariableValues = {}

    for assignment in assignments or []:
        if assignment.variable_id is None:
            continue
        values = result.setdefault(assignment.variable_id, [])

        if assignment.int_value is not None:
            values.append(AssignedInt(assignment.int_value))
        if not _is_blank(assignment.list_value):
            values.append(AssignedOption(assignment.list_value))
        if not _is_blank(assignment.text_value):
            values.append(AssignedText(assignment.text_value))
        if assignment.date_value is not None:
            values.append(AssignedDate(assignment.date_value))

        if not values:
            del result[assignment.variable_id]

    return result


def snapshot_variable_values(snapshot: Optional[MetadataSnapshot]) -> VariableValues:
    if snapshot is None:
        return {}
    return variable_values(snapshot.variable_assignments)


def merge_values(lhs: VariableValues, rhs: VariableValues) -> VariableValues:
    """Merge two value maps without overwriting; values are appended."""
    merged = {key: list(values) for key, values in lhs.items()}
    for key, values in rhs.items():
        merged.setdefault(key, []).extend(values)
    return merged


def tag_info(tag_ids: Iterable[str], tag_by_id: Dict[str, Tag]) -> Tuple[Set[str], List[str]]:
    """
    Resolve tag ids to names.

    Returns:
        (set of tag ids, sorted distinct names of the known tags)
    """
    ids = set(tag_ids or [])
    names = {tag_by_id[tag_id].name for tag_id in ids if tag_id in tag_by_id}
    return ids, sorted(names)


def snapshot_tag_info(
    snapshot: Optional[MetadataSnapshot],
    tag_by_id: Dict[str, Tag]
) -> Tuple[Set[str], List[str]]:
    if snapshot is None:
        return set(), []
    return tag_info(snapshot.tag_ids, tag_by_id)
