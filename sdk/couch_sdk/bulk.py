"""
Bulk document shaping for the CouchDB SDK.

This module turns heterogeneous document collections into the uniform
records accepted by /{db}/_bulk_docs:
- shape_for_delete: locate _id/_rev, tag each record with _deleted
- shape_for_insert: encode documents as JSON objects
- encode_document: mapping / dataclass / pydantic model -> dict

Documents may be:
- Mappings holding "_id" and "_rev" keys
- Objects implementing HasIdentity and HasRevision
- Dataclass instances whose fields carry a "json" tag in their metadata,
  e.g. field(metadata={"json": "_rev,omitempty"})
- Pydantic models whose fields use "_id" / "_rev" aliases

Invariants:
    - Validation finishes before anything is submitted
    - Caller objects are never mutated
    - Shaping the same input twice gives equal output
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator, Mapping, Sequence
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel

from .errors import (
    FieldTypeError,
    MissingFieldError,
    UnsupportedCollectionError,
    UnsupportedDocumentError,
)

ID_KEY = "_id"
REV_KEY = "_rev"
DELETED_KEY = "_deleted"

# dataclass field metadata key holding the wire name and modifiers
TAG_KEY = "json"
OMIT_EMPTY = "omitempty"


@runtime_checkable
class HasIdentity(Protocol):
    """Document that knows its own ID."""

    def document_id(self) -> str: ...


@runtime_checkable
class HasRevision(Protocol):
    """Document that knows its current revision."""

    def document_rev(self) -> str: ...


class DocumentKind(Enum):
    """Supported shapes of a single bulk document."""

    MAPPING = "map"
    PROTOCOL = "protocol"
    RECORD = "record"


def classify(doc: Any) -> DocumentKind | None:
    """Return the kind of a bulk document, or None if unsupported."""
    if isinstance(doc, Mapping):
        return DocumentKind.MAPPING
    if isinstance(doc, HasIdentity) and isinstance(doc, HasRevision):
        return DocumentKind.PROTOCOL
    if isinstance(doc, BaseModel):
        return DocumentKind.RECORD
    if dataclasses.is_dataclass(doc) and not isinstance(doc, type):
        return DocumentKind.RECORD
    return None


def tagged_fields(doc: Any) -> Iterator[tuple[str, Any]]:
    """Yield (tag, value) for every field of a dataclass or pydantic model.

    A dataclass field without a "json" tag uses its attribute name;
    a pydantic field uses its serialization alias, then its alias.
    """
    if isinstance(doc, BaseModel):
        for name, info in type(doc).model_fields.items():
            yield info.serialization_alias or info.alias or name, getattr(doc, name)
        return
    for f in dataclasses.fields(doc):
        yield f.metadata.get(TAG_KEY, f.name), getattr(doc, f.name)


def _split_tag(tag: str) -> tuple[str, list[str]]:
    name, _, modifiers = tag.partition(",")
    return name, [m for m in modifiers.split(",") if m]


def _ensure_sequence(docs: Any) -> Sequence[Any]:
    if isinstance(docs, (str, bytes, bytearray)) or not isinstance(docs, Sequence):
        raise UnsupportedCollectionError(docs)
    return docs


def _identity_from_record(doc: Any) -> dict[str, Any]:
    found: dict[str, Any] = {}
    for tag, value in tagged_fields(doc):
        name, _ = _split_tag(tag)
        if name == ID_KEY:
            found[ID_KEY] = value
        elif name == REV_KEY:
            found[REV_KEY] = value
    return found


def _require_text(record: Mapping[str, Any], key: str, index: int, source: str) -> None:
    if key not in record:
        raise MissingFieldError(key, index, source=source)
    if not isinstance(record[key], str):
        raise FieldTypeError(key, index, record[key])


def shape_for_delete(docs: Any) -> list[dict[str, Any]]:
    """Build deletion records for a bulk request.

    Args:
        docs: Sequence of mappings, HasIdentity/HasRevision objects,
            dataclasses or pydantic models

    Returns:
        One record per input, in order, each with "_deleted": True.
        Mappings keep all their keys; other documents reduce to _id/_rev.

    Raises:
        UnsupportedCollectionError: If docs is not a sequence
        UnsupportedDocumentError: If an element has an unsupported type
        MissingFieldError: If an element lacks _id or _rev
        FieldTypeError: If _id or _rev is not a string
    """
    payload: list[dict[str, Any]] = []
    for index, doc in enumerate(_ensure_sequence(docs)):
        kind = classify(doc)
        if kind is DocumentKind.MAPPING:
            record = dict(doc)
            source = "map"
        elif kind is DocumentKind.PROTOCOL:
            record = {ID_KEY: doc.document_id(), REV_KEY: doc.document_rev()}
            source = "record"
        elif kind is DocumentKind.RECORD:
            record = _identity_from_record(doc)
            source = "record"
        else:
            raise UnsupportedDocumentError(index, doc)

        _require_text(record, ID_KEY, index, source)
        _require_text(record, REV_KEY, index, source)
        record[DELETED_KEY] = True
        payload.append(record)
    return payload


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and value == 0:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value) == 0
    return False


def _encode_value(value: Any) -> Any:
    if isinstance(value, BaseModel) or (
        dataclasses.is_dataclass(value) and not isinstance(value, type)
    ):
        return encode_document(value)
    if isinstance(value, Mapping):
        return {k: _encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode_value(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


def encode_document(doc: Any, index: int = 0) -> dict[str, Any]:
    """Encode one document as a JSON object.

    Pydantic models are dumped by alias without None values. Dataclass
    fields are renamed by their "json" tag; "-" skips the field and
    "omitempty" drops empty values.

    Raises:
        UnsupportedDocumentError: If doc is not a mapping or record
    """
    if isinstance(doc, Mapping):
        return {k: _encode_value(v) for k, v in doc.items()}
    if isinstance(doc, BaseModel):
        return doc.model_dump(mode="json", by_alias=True, exclude_none=True)
    if dataclasses.is_dataclass(doc) and not isinstance(doc, type):
        encoded: dict[str, Any] = {}
        for tag, value in tagged_fields(doc):
            name, modifiers = _split_tag(tag)
            if name == "-":
                continue
            if OMIT_EMPTY in modifiers and _is_empty(value):
                continue
            encoded[name] = _encode_value(value)
        return encoded
    raise UnsupportedDocumentError(index, doc)


def shape_for_insert(docs: Any) -> list[dict[str, Any]]:
    """Encode documents for a bulk insert; no identity checks."""
    return [encode_document(doc, index) for index, doc in enumerate(_ensure_sequence(docs))]
