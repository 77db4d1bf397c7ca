"""Tests for corpus/serialization.py module."""

import json

import pytest

from papercenter.corpus.models import MetadataSnapshot, VariableAssignmentSnapshot, VariableType
from papercenter.corpus.serialization import (
    CorpusFormatError,
    corpus_from_dict,
    corpus_to_dict,
    load_corpus_file,
)
from corpus_factory import sample_corpus


class TestCorpusCodec:
    """Tests for corpus_to_dict() / corpus_from_dict()."""

    def test_sample_corpus_survives_json(self, corpus) -> None:
        data = json.loads(json.dumps(corpus_to_dict(corpus)))
        assert corpus_from_dict(data) == sample_corpus()

    def test_minimal_document(self) -> None:
        corpus = corpus_from_dict({
            "documents": [{
                "id": "d",
                "title": "Doc",
                "pageGroups": [{
                    "id": "g",
                    "title": "Group",
                    "pages": [{
                        "id": "p",
                        "currentBundleID": "b",
                        "currentPageNumber": "3",
                        "versions": [{"id": "v", "bundleID": "b", "pageNumber": 3, "createdAt": "2024-05-01T10:00:00"}],
                    }],
                }],
            }],
            "bundles": [{"id": "b", "ocrTextByPage": {"3": "text"}}],
        })
        page = corpus.documents[0].page_groups[0].pages[0]
        assert page.current_page_number == 3
        assert page.versions[0].created_at.hour == 10
        assert corpus.bundles[0].ocr_text_by_page == {3: "text"}
        assert corpus.notes == []

    def test_variable_types(self) -> None:
        corpus = corpus_from_dict({"variables": [{"id": "v", "name": "Due", "type": "date"}]})
        assert corpus.variables[0].type == VariableType.DATE

    def test_snapshot_object_encoded(self, corpus) -> None:
        """Decoded snapshots are written back as JSON objects."""
        snapshot = MetadataSnapshot(
            tag_ids=("t-alpha",),
            variable_assignments=(VariableAssignmentSnapshot(variable_id="v-score", int_value=5),),
        )
        corpus.documents[1].page_groups[0].pages[0].versions[0].metadata_snapshot = snapshot
        encoded = corpus_to_dict(corpus)["documents"][1]["pageGroups"][0]["pages"][0]["versions"][0]
        assert encoded["metadataSnapshot"]["tagIDs"] == ["t-alpha"]


class TestMalformedCorpus:
    """Malformed documents raise CorpusFormatError."""

    def test_missing_key(self) -> None:
        with pytest.raises(CorpusFormatError, match="Missing required key"):
            corpus_from_dict({"documents": [{"id": "d"}]})

    def test_bad_enum(self) -> None:
        with pytest.raises(CorpusFormatError):
            corpus_from_dict({"variables": [{"id": "v", "name": "x", "type": "float"}]})

    def test_bad_date(self) -> None:
        with pytest.raises(CorpusFormatError):
            corpus_from_dict({"notes": [{"id": "n", "pageVersionID": "v", "updatedAt": "not a date"}]})

    def test_non_string_list_value(self) -> None:
        with pytest.raises(CorpusFormatError, match="listValue"):
            corpus_from_dict({"documents": [{
                "id": "d",
                "title": "Doc",
                "variableAssignments": [{"variableID": "v-status", "listValue": 5}],
            }]})

    def test_not_an_object(self) -> None:
        with pytest.raises(CorpusFormatError):
            corpus_from_dict([])


class TestLoadCorpusFile:
    """Tests for load_corpus_file()."""

    def test_load(self, tmp_path, corpus) -> None:
        path = tmp_path / "corpus.json"
        path.write_text(json.dumps(corpus_to_dict(corpus)), encoding="utf-8")
        assert load_corpus_file(path).stats() == corpus.stats()

    def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "corpus.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(CorpusFormatError):
            load_corpus_file(path)

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(OSError):
            load_corpus_file(tmp_path / "absent.json")
