"""
Unit tests for bulk document shaping.

Tests cover:
- Deletion records from mappings, tagged dataclasses, pydantic models
  and HasIdentity/HasRevision objects
- Missing or mistyped _id/_rev fields
- Unsupported collections and elements
- Document encoding with json tags
"""

from dataclasses import dataclass, field
from typing import Optional

import pytest
from pydantic import BaseModel, Field

from couch_sdk.bulk import (
    DELETED_KEY,
    DocumentKind,
    classify,
    encode_document,
    shape_for_delete,
    shape_for_insert,
)
from couch_sdk.errors import (
    BulkShapeError,
    FieldTypeError,
    MissingFieldError,
    UnsupportedCollectionError,
    UnsupportedDocumentError,
)


@dataclass
class TaggedDoc:
    """Revision declared before identity, with a modifier."""

    rev: str = field(metadata={"json": "_rev,omitempty"})
    title: str = field(default="", metadata={"json": "title"})
    doc_id: str = field(default="", metadata={"json": "_id"})


@dataclass
class NoRevDoc:
    doc_id: str = field(metadata={"json": "_id"})
    title: str = ""


@dataclass
class IntIdDoc:
    doc_id: int = field(metadata={"json": "_id"})
    rev: str = field(default="1-a", metadata={"json": "_rev"})


@dataclass
class ReplicatedDoc:
    """Revision history fields declared after the revision."""

    doc_id: str = field(metadata={"json": "_id"})
    rev: str = field(default="", metadata={"json": "_rev,omitempty"})
    revisions: Optional[dict] = field(default=None, metadata={"json": "_revisions,omitempty"})
    revs_info: Optional[str] = field(default=None, metadata={"json": "_revs_info,omitempty"})


class TaskModel(BaseModel):
    id: str = Field(alias="_id")
    rev: Optional[str] = Field(default=None, alias="_rev")
    title: str = ""


class Ticket:
    """Plain object implementing the identity protocols."""

    def __init__(self, key: str, version: str) -> None:
        self.key = key
        self.version = version

    def document_id(self) -> str:
        return self.key

    def document_rev(self) -> str:
        return self.version


class TestShapeForDelete:
    """Tests for shape_for_delete."""

    def test_mapping_records_are_tagged(self):
        """Each mapping gets _deleted with _id/_rev kept verbatim."""
        docs = [
            {"_id": "a", "_rev": "1-x"},
            {"_id": "b", "_rev": "2-y", "title": "keep"},
        ]

        records = shape_for_delete(docs)

        assert records == [
            {"_id": "a", "_rev": "1-x", DELETED_KEY: True},
            {"_id": "b", "_rev": "2-y", "title": "keep", DELETED_KEY: True},
        ]

    def test_input_mappings_not_mutated(self):
        """Caller's mappings stay untouched."""
        doc = {"_id": "a", "_rev": "1-x"}

        shape_for_delete([doc])

        assert doc == {"_id": "a", "_rev": "1-x"}

    def test_shaping_twice_is_identical(self):
        """Repeated calls produce equal output."""
        docs = [{"_id": "a", "_rev": "1-x"}, TaggedDoc(rev="3-z", doc_id="c")]

        assert shape_for_delete(docs) == shape_for_delete(docs)

    def test_tuple_collection_accepted(self):
        """Any sequence works, not only lists."""
        records = shape_for_delete(({"_id": "a", "_rev": "1-x"},))
        assert len(records) == 1

    def test_empty_collection(self):
        """Empty input gives empty output."""
        assert shape_for_delete([]) == []

    def test_missing_rev_in_mapping(self):
        """Mapping without _rev names the missing key."""
        with pytest.raises(MissingFieldError) as exc_info:
            shape_for_delete([{"_id": "a", "_rev": "1-x"}, {"_id": "b"}])

        assert exc_info.value.field_name == "_rev"
        assert exc_info.value.index == 1
        assert exc_info.value.code == "MISSING_FIELD"

    def test_missing_id_in_mapping(self):
        """Mapping without _id names the missing key."""
        with pytest.raises(MissingFieldError) as exc_info:
            shape_for_delete([{"_rev": "1-x"}])

        assert exc_info.value.field_name == "_id"

    def test_non_string_rev_in_mapping(self):
        """Mistyped revision is a validation error."""
        with pytest.raises(FieldTypeError) as exc_info:
            shape_for_delete([{"_id": "a", "_rev": 1}])

        assert exc_info.value.field_name == "_rev"
        assert "int" in exc_info.value.message

    def test_tagged_dataclass_any_declaration_order(self):
        """Identity and revision found through json tags."""
        records = shape_for_delete([TaggedDoc(rev="3-z", title="ignored", doc_id="c")])

        assert records == [{"_id": "c", "_rev": "3-z", DELETED_KEY: True}]

    def test_revision_history_tags_not_taken_as_revision(self):
        """_revisions and _revs_info share the prefix but are not the revision."""
        doc = ReplicatedDoc(
            doc_id="a",
            rev="2-b",
            revisions={"start": 2, "ids": ["b", "a"]},
            revs_info="1-a",
        )

        records = shape_for_delete([doc])

        assert records == [{"_id": "a", "_rev": "2-b", DELETED_KEY: True}]

    def test_revision_history_without_rev(self):
        """A record tagged only with _revisions still lacks _rev."""

        @dataclass
        class HistoryOnly:
            doc_id: str = field(metadata={"json": "_id"})
            revisions: dict = field(default_factory=dict, metadata={"json": "_revisions"})

        with pytest.raises(MissingFieldError) as exc_info:
            shape_for_delete([HistoryOnly(doc_id="a")])

        assert exc_info.value.field_name == "_rev"

    def test_dataclass_without_rev_tag(self):
        """Record lacking a _rev tag fails."""
        with pytest.raises(MissingFieldError) as exc_info:
            shape_for_delete([NoRevDoc(doc_id="a")])

        assert exc_info.value.field_name == "_rev"
        assert "field or tag" in exc_info.value.message

    def test_dataclass_with_non_string_id(self):
        """Identity field holding an int is reported, not skipped."""
        with pytest.raises(FieldTypeError) as exc_info:
            shape_for_delete([IntIdDoc(doc_id=7)])

        assert exc_info.value.field_name == "_id"
        assert exc_info.value.index == 0

    def test_pydantic_model_aliases(self):
        """Pydantic models use their field aliases as tags."""
        records = shape_for_delete([TaskModel(_id="t1", _rev="1-a", title="x")])

        assert records == [{"_id": "t1", "_rev": "1-a", DELETED_KEY: True}]

    def test_pydantic_model_with_empty_rev(self):
        """A None revision on a model is a type error."""
        with pytest.raises(FieldTypeError):
            shape_for_delete([TaskModel(_id="t1")])

    def test_protocol_objects(self):
        """HasIdentity/HasRevision implementations are supported."""
        records = shape_for_delete([Ticket("k1", "5-e")])

        assert records == [{"_id": "k1", "_rev": "5-e", DELETED_KEY: True}]

    def test_mixed_document_kinds(self):
        """One collection may mix all supported kinds."""
        docs = [
            {"_id": "a", "_rev": "1-x"},
            TaggedDoc(rev="2-y", doc_id="b"),
            TaskModel(_id="c", _rev="3-z"),
            Ticket("d", "4-w"),
        ]

        records = shape_for_delete(docs)

        assert [r["_id"] for r in records] == ["a", "b", "c", "d"]
        assert all(r[DELETED_KEY] is True for r in records)

    @pytest.mark.parametrize("docs", [{"_id": "a", "_rev": "1"}, "abc", b"abc", 42, None, {1, 2}])
    def test_non_sequence_rejected(self, docs):
        """Anything but a sequence is an unsupported collection."""
        with pytest.raises(UnsupportedCollectionError):
            shape_for_delete(docs)

    @pytest.mark.parametrize("element", [42, "a", None, ["_id", "a"], ("a", "1-x")])
    def test_unsupported_element(self, element):
        """Scalars and nested sequences are unsupported documents."""
        with pytest.raises(UnsupportedDocumentError) as exc_info:
            shape_for_delete([{"_id": "a", "_rev": "1-x"}, element])

        assert exc_info.value.index == 1
        assert exc_info.value.type_name == type(element).__name__

    def test_error_kinds_are_distinct(self):
        """Collection and element errors are told apart."""
        assert not issubclass(UnsupportedCollectionError, UnsupportedDocumentError)
        assert not issubclass(UnsupportedDocumentError, UnsupportedCollectionError)
        assert issubclass(UnsupportedDocumentError, BulkShapeError)


class TestClassify:
    """Tests for document classification."""

    def test_kinds(self):
        """Each supported shape maps to one kind."""
        assert classify({"_id": "a"}) is DocumentKind.MAPPING
        assert classify(Ticket("a", "1")) is DocumentKind.PROTOCOL
        assert classify(TaggedDoc(rev="1")) is DocumentKind.RECORD
        assert classify(TaskModel(_id="a")) is DocumentKind.RECORD

    def test_dataclass_type_is_not_a_record(self):
        """A dataclass class object is not a document."""
        assert classify(TaggedDoc) is None


class TestEncodeDocument:
    """Tests for encode_document and shape_for_insert."""

    def test_omitempty_drops_empty_revision(self):
        """Empty _rev with omitempty is left out."""
        encoded = encode_document(TaggedDoc(rev="", title="t", doc_id="a"))

        assert encoded == {"title": "t", "_id": "a"}

    def test_untagged_fields_use_attribute_name(self):
        """Fields without a tag keep their name."""
        assert encode_document(NoRevDoc(doc_id="a", title="t")) == {"_id": "a", "title": "t"}

    def test_dash_tag_skips_field(self):
        """A "-" tag hides the field."""

        @dataclass
        class Secret:
            name: str
            token: str = field(default="x", metadata={"json": "-"})

        assert encode_document(Secret(name="n")) == {"name": "n"}

    def test_pydantic_by_alias_without_none(self):
        """Models dump by alias and drop None values."""
        assert encode_document(TaskModel(_id="t1", title="x")) == {"_id": "t1", "title": "x"}

    def test_nested_records(self):
        """Nested dataclasses are encoded too."""

        @dataclass
        class Outer:
            inner: NoRevDoc
            items: list

        encoded = encode_document(Outer(inner=NoRevDoc(doc_id="i"), items=[NoRevDoc(doc_id="j")]))

        assert encoded == {
            "inner": {"_id": "i", "title": ""},
            "items": [{"_id": "j", "title": ""}],
        }

    def test_unsupported_document(self):
        """Scalars cannot be encoded as documents."""
        with pytest.raises(UnsupportedDocumentError):
            encode_document(3, index=2)

    def test_insert_shape_is_pass_through(self):
        """Insert shaping does not require _id or _rev."""
        docs = [{"title": "a"}, TaggedDoc(rev="", title="b")]

        assert shape_for_insert(docs) == [{"title": "a"}, {"title": "b", "_id": ""}]

    def test_insert_rejects_non_sequence(self):
        """Insert shaping still needs a sequence."""
        with pytest.raises(UnsupportedCollectionError):
            shape_for_insert({"title": "a"})
