"""Tests for corpus/snapshot.py module.

Covers:
- Snapshot payload decoding (text, bytes, dict, camel and snake keys)
- Snapshot date encodings
- Version snapshot fail-soft decoding
- Variable value maps, merging and tag resolution
"""

import json
from datetime import datetime, timezone

import pytest

from papercenter.corpus.models import MetadataSnapshot, Tag, VariableAssignment, VariableAssignmentSnapshot
from papercenter.corpus.snapshot import (
    AssignedDate,
    AssignedInt,
    AssignedOption,
    AssignedText,
    SnapshotDecodeError,
    decode_snapshot_payload,
    decode_version_snapshot,
    encode_snapshot,
    merge_values,
    parse_snapshot_date,
    snapshot_tag_info,
    tag_info,
    variable_values,
)
from corpus_factory import version


class TestDecodeSnapshotPayload:
    """Tests for decode_snapshot_payload()."""

    def test_json_text(self) -> None:
        """Decodes the camelCase wire format."""
        payload = json.dumps({
            "tagIDs": ["t1", "t2"],
            "variableAssignments": [{"variableID": "v1", "intValue": 5}],
        })
        snapshot = decode_snapshot_payload(payload)
        assert snapshot.tag_ids == ("t1", "t2")
        assert snapshot.variable_assignments == (VariableAssignmentSnapshot(variable_id="v1", int_value=5),)

    def test_bytes(self) -> None:
        """UTF-8 bytes are accepted."""
        snapshot = decode_snapshot_payload(b'{"tagIDs": [], "variableAssignments": []}')
        assert snapshot == MetadataSnapshot()

    def test_snake_case_dict(self) -> None:
        """Already-parsed dicts with snake_case keys are accepted."""
        snapshot = decode_snapshot_payload({
            "tag_ids": ["t1"],
            "variable_assignments": [{"variable_id": "v1", "text_value": "hello"}],
        })
        assert snapshot.tag_ids == ("t1",)
        assert snapshot.variable_assignments[0].text_value == "hello"

    def test_invalid_json(self) -> None:
        """Malformed JSON raises."""
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot_payload("{not json")

    def test_missing_lists(self) -> None:
        """Both lists are required."""
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot_payload({"tagIDs": []})

    def test_non_object(self) -> None:
        """Top-level arrays are rejected."""
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot_payload("[]")

    def test_bad_int_value(self) -> None:
        """Non-integer intValue is rejected."""
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot_payload({"tagIDs": [], "variableAssignments": [{"variableID": "v", "intValue": "5"}]})

    def test_missing_variable_id(self) -> None:
        """Assignments need a variable id."""
        with pytest.raises(SnapshotDecodeError):
            decode_snapshot_payload({"tagIDs": [], "variableAssignments": [{"intValue": 5}]})

    @pytest.mark.parametrize("key", ["listValue", "textValue", "list_value", "text_value"])
    def test_non_string_option_and_text_values(self, key) -> None:
        """List and text values must be strings."""
        with pytest.raises(SnapshotDecodeError, match="Invalid"):
            decode_snapshot_payload({"tagIDs": [], "variableAssignments": [{"variableID": "v", key: 123}]})

    def test_encode_round_trip(self) -> None:
        """encode_snapshot output decodes to the same snapshot."""
        original = MetadataSnapshot(
            tag_ids=("t1",),
            variable_assignments=(
                VariableAssignmentSnapshot(variable_id="v1", date_value=datetime(2024, 1, 5, tzinfo=timezone.utc)),
            ),
        )
        assert decode_snapshot_payload(encode_snapshot(original)) == original


class TestParseSnapshotDate:
    """Tests for parse_snapshot_date()."""

    def test_iso_string(self) -> None:
        assert parse_snapshot_date("2024-01-05") == datetime(2024, 1, 5)

    def test_reference_date_seconds(self) -> None:
        """Numbers are seconds since 2001-01-01 UTC."""
        assert parse_snapshot_date(0) == datetime(2001, 1, 1, tzinfo=timezone.utc)
        assert parse_snapshot_date(86400) == datetime(2001, 1, 2, tzinfo=timezone.utc)

    def test_none(self) -> None:
        assert parse_snapshot_date(None) is None

    def test_invalid(self) -> None:
        with pytest.raises(SnapshotDecodeError):
            parse_snapshot_date("not a date")
        with pytest.raises(SnapshotDecodeError):
            parse_snapshot_date(True)


class TestDecodeVersionSnapshot:
    """Tests for decode_version_snapshot()."""

    def test_absent(self) -> None:
        assert decode_version_snapshot(version("v1")) is None

    def test_undecodable_is_absent(self) -> None:
        """Garbage snapshots behave as absent."""
        assert decode_version_snapshot(version("v1", snapshot="garbage")) is None

    def test_wrong_value_type_is_absent(self) -> None:
        snapshot = {"tagIDs": ["t1"], "variableAssignments": [{"variableID": "v-author", "textValue": 123}]}
        assert decode_version_snapshot(version("v1", snapshot=snapshot)) is None

    def test_decoded_instance_passes_through(self) -> None:
        snapshot = MetadataSnapshot(tag_ids=("t1",))
        assert decode_version_snapshot(version("v1", snapshot=snapshot)) is snapshot


class TestVariableValues:
    """Tests for variable_values() and merge_values()."""

    def test_typed_values(self) -> None:
        """Each value field maps to its typed value."""
        due = datetime(2024, 3, 15)
        values = variable_values([
            VariableAssignment(variable_id="a", int_value=3),
            VariableAssignment(variable_id="b", list_value="Open"),
            VariableAssignment(variable_id="c", text_value="hi"),
            VariableAssignment(variable_id="d", date_value=due),
        ])
        assert values == {
            "a": [AssignedInt(3)],
            "b": [AssignedOption("Open")],
            "c": [AssignedText("hi")],
            "d": [AssignedDate(due)],
        }

    def test_skips_missing_id_and_blank_text(self) -> None:
        """Assignments without ids or with blank text contribute nothing."""
        values = variable_values([
            VariableAssignment(variable_id=None, int_value=3),
            VariableAssignment(variable_id="c", text_value="   "),
            VariableAssignment(variable_id="b", list_value=""),
        ])
        assert values == {}

    def test_non_string_live_values_ignored(self) -> None:
        """Live assignments holding non-string option or text values are skipped."""
        values = variable_values([
            VariableAssignment(variable_id="a", list_value=5),
            VariableAssignment(variable_id="b", text_value=["x"]),
            VariableAssignment(variable_id="c", text_value="kept"),
        ])
        assert values == {"c": [AssignedText("kept")]}

    def test_zero_is_a_value(self) -> None:
        """Zero ints are kept."""
        assert variable_values([VariableAssignment(variable_id="a", int_value=0)]) == {"a": [AssignedInt(0)]}

    def test_merge_appends(self) -> None:
        """Merging never overwrites."""
        merged = merge_values({"a": [AssignedInt(1)]}, {"a": [AssignedInt(2)], "b": [AssignedText("x")]})
        assert merged == {"a": [AssignedInt(1), AssignedInt(2)], "b": [AssignedText("x")]}

    def test_merge_does_not_mutate_inputs(self) -> None:
        lhs = {"a": [AssignedInt(1)]}
        merge_values(lhs, {"a": [AssignedInt(2)]})
        assert lhs == {"a": [AssignedInt(1)]}


class TestTagInfo:
    """Tests for tag_info() and snapshot_tag_info()."""

    def test_names_sorted_unknown_ids_kept(self) -> None:
        """Unknown ids stay in the id set but have no name."""
        tag_by_id = {"t1": Tag(id="t1", name="Zeta"), "t2": Tag(id="t2", name="Alpha")}
        ids, names = tag_info(["t1", "t2", "t9"], tag_by_id)
        assert ids == {"t1", "t2", "t9"}
        assert names == ["Alpha", "Zeta"]

    def test_snapshot_absent(self) -> None:
        assert snapshot_tag_info(None, {}) == (set(), [])
