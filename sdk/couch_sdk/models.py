"""
Wire models for the CouchDB SDK.

This module provides typed views of server payloads:
- DatabaseLifecycleEvent / DocumentChangeEvent: one line of a feed
- DatabaseChanges: one-shot changes response
- ServerInfo, DBInfo, ViewResult, UpdateResult, PurgeResult, ReplicationResult
- AttachmentInfo, Attachment, Destination: client side values

Invariants:
    - Events are immutable once decoded
    - Wire names are kept as aliases; Python names are snake_case
    - Unknown server fields are ignored
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as ModelValidationError

from .errors import CouchError

M = TypeVar("M", bound=BaseModel)


def parse_model(model: type[M], data: Any) -> M:
    """Validate a decoded payload against a model.

    Raises:
        CouchError: If the payload does not match the model
    """
    try:
        return model.model_validate(data)
    except ModelValidationError as e:
        raise CouchError(f"Unexpected {model.__name__} payload: {e}", code="DECODE_ERROR") from e


class EventType(str, Enum):
    """Database lifecycle event types."""

    CREATED = "created"
    DELETED = "deleted"
    UPDATED = "updated"
    DDOC_UPDATED = "ddoc_updated"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DatabaseLifecycleEvent(_WireModel):
    """Server-scope event from /_db_updates.

    Attributes:
        name: Database name
        ok: Server acknowledgement flag
        type: What happened to the database; types without an
            EventType member are kept as plain strings
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(alias="db_name")
    ok: bool = False
    type: EventType | str = Field(union_mode="left_to_right")


class DocumentChangeEvent(_WireModel):
    """Database-scope event from /{db}/_changes.

    Attributes:
        changes: Revision markers, each {"rev": "..."}
        document_id: Changed document ID
        sequence: Update sequence (int on 1.x servers, opaque string on 2.x+)
        deleted: Whether the change is a deletion
        doc: Document body when include_docs=true
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    changes: tuple[dict[str, str], ...] = ()
    document_id: str = Field(alias="id")
    sequence: int | str = Field(default=0, alias="seq")
    deleted: bool = False
    doc: dict[str, Any] | None = None

    @property
    def revisions(self) -> list[str]:
        """Changed revisions in server order."""
        return [c["rev"] for c in self.changes if "rev" in c]


class DatabaseChanges(_WireModel):
    """All changes of a database from a one-shot request."""

    last_sequence: int | str = Field(default=0, alias="last_seq")
    results: list[DocumentChangeEvent] = Field(default_factory=list)
    pending: int | None = None


class ServerInfo(_WireModel):
    """Server welcome message."""

    message: str = Field(default="", alias="couchdb")
    uuid: str = ""
    vendor: Any = None
    version: str = ""


class DBInfo(_WireModel):
    """Database information."""

    name: str = Field(alias="db_name")
    committed_update_seq: int | str | None = None
    compact_running: bool = False
    disk_format_version: int = 0
    data_size: int = 0
    disk_size: int = 0
    doc_count: int = 0
    doc_del_count: int = 0
    instance_start_time: str = ""
    purge_seq: int | str = 0
    update_seq: int | str = 0


class ViewResult(_WireModel):
    """Result of a view request such as _all_docs."""

    offset: int = 0
    rows: list[dict[str, Any]] = Field(default_factory=list)
    total_rows: int = 0
    update_seq: int | str | None = None


class UpdateResult(_WireModel):
    """Per-document result of a bulk request.

    Attributes:
        id: Document ID
        rev: New revision (absent when the document failed)
        ok: Whether the document was stored
        error: Server error code for this document
        reason: Server supplied reason
    """

    id: str = ""
    rev: str = ""
    ok: bool = False
    error: str | None = None
    reason: str | None = None


class PurgeResult(_WireModel):
    """Result of a purge request."""

    purge_seq: int | str | None = None
    purged: dict[str, list[str]] = Field(default_factory=dict)


class ReplicationResult(_WireModel):
    """Result of a replication request."""

    history: list[dict[str, Any]] = Field(default_factory=list)
    ok: bool = False
    replication_id_version: int = 0
    session_id: str = ""
    source_last_seq: int | str = 0


class UserRecord(_WireModel):
    """User document for the _users database."""

    login: str = Field(alias="name")
    type: str = "user"
    roles: list[str] = Field(default_factory=list)
    password: str


@dataclass(frozen=True)
class AttachmentInfo:
    """Attachment metadata taken from a HEAD response.

    Attributes:
        encoding: Content-Encoding
        length: Content-Length
        type: Content-Type
        hash: Content-MD5
    """

    encoding: str
    length: int
    type: str
    hash: str


@dataclass
class Attachment:
    """Attachment to store or fetched from the server."""

    name: str
    content_type: str
    body: bytes


@dataclass
class Destination:
    """Target of a COPY request: document ID plus options (e.g. rev)."""

    id: str
    options: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        if not self.options:
            return self.id
        query = "&".join(f"{k}={v}" for k, v in self.options.items())
        return f"{self.id}?{query}"
