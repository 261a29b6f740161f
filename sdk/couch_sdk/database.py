"""
Database handle for the CouchDB SDK.

This module provides the Database class:
- Document CRUD (insert, get, put, delete_doc, copy, exists)
- Bulk operations (update, insert_many, delete_many and atomic variants)
- Change feeds (get_all_changes, changes_channel)
- Attachments, security and maintenance calls

Example:
    >>> db = await server.must_get_database("tasks")
    >>> doc_id, rev = await db.insert({"title": "My Task"})
    >>> await db.delete_many([{"_id": doc_id, "_rev": rev}])

Invariants:
    - Bulk documents are validated before anything is sent
    - A handle holds no per-call state and is safe to share
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from ._http_client import APP_JSON, HttpTransport
from .bulk import encode_document, shape_for_delete, shape_for_insert
from .errors import ConfigurationError, CouchError
from .feeds import EventChannel, StreamKind, one_shot_options, open_stream
from .models import (
    Attachment,
    AttachmentInfo,
    DatabaseChanges,
    DBInfo,
    Destination,
    DocumentChangeEvent,
    PurgeResult,
    UpdateResult,
    ViewResult,
    parse_model,
)
from .security import DatabaseSecurity, DefaultSecurity

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

FULL_COMMIT_HEADER = "X-Couch-Full-Commit"
SPECIAL_PREFIXES = ("_design/", "_local/")


def _quote_id(doc_id: str) -> str:
    for prefix in SPECIAL_PREFIXES:
        if doc_id.startswith(prefix):
            return prefix + quote(doc_id[len(prefix):], safe="")
    return quote(doc_id, safe="")


class Database:
    """A database on a CouchDB server.

    Auth is inherited from the Server on creation and may be replaced
    at any time through the ``auth`` attribute.

    Attributes:
        name: Database name
        auth: Authenticator used for every request
    """

    def __init__(
        self,
        transport: HttpTransport,
        name: str,
        auth: httpx.Auth | None = None,
    ) -> None:
        self._transport = transport
        self.name = name
        self.auth = auth

    def __repr__(self) -> str:
        return f"Database(name={self.name!r}, url={self._transport.base_url!r})"

    def _path(self, *parts: str) -> str:
        return "/" + "/".join([quote(self.name, safe=""), *parts])

    def _doc_path(self, doc_id: str, *parts: str) -> str:
        return self._path(_quote_id(doc_id), *(quote(p, safe="") for p in parts))

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        return await self._transport.request_json(method, path, auth=self.auth, **kwargs)

    async def _ok(self, method: str, path: str, failure: str, **kwargs: Any) -> dict[str, Any]:
        result = await self._json(method, path, **kwargs)
        if not isinstance(result, dict) or not result.get("ok"):
            raise CouchError(failure, code="OPERATION_FAILED", details={"path": path})
        return result

    # -- database level -------------------------------------------------

    async def info(self) -> DBInfo:
        """Get database information."""
        return parse_model(DBInfo, await self._json("GET", self._path()))

    async def delete(self) -> None:
        """Delete the database from the server."""
        await self._json("DELETE", self._path())
        logger.debug(f"Database {self.name} deleted")

    # -- documents --------------------------------------------------------

    async def insert(
        self,
        doc: Any,
        batch: bool = False,
        full_commit: bool = False,
    ) -> tuple[str, str]:
        """Create a new document.

        Without an "_id" the server generates one.

        Args:
            doc: Mapping, dataclass or pydantic model
            batch: Use batch mode (server acknowledges before writing)
            full_commit: Override the server commit policy

        Returns:
            Tuple of (id, rev); rev is empty in batch mode
        """
        headers = {FULL_COMMIT_HEADER: "true"} if full_commit else None
        params = {"batch": "ok"} if batch else None
        result = await self._json(
            "POST",
            self._path(),
            json=encode_document(doc),
            headers=headers,
            params=params,
        )
        doc_id = result.get("id") if isinstance(result, dict) else None
        rev = result.get("rev") if isinstance(result, dict) else None
        return (
            doc_id if isinstance(doc_id, str) else "",
            rev if isinstance(rev, str) else "",
        )

    async def get(
        self,
        doc_id: str,
        options: Mapping[str, Any] | None = None,
        model: type[M] | None = None,
    ) -> Any:
        """Fetch a single document.

        Args:
            doc_id: Document ID
            options: Query options (rev, revs, attachments, ...)
            model: Optional pydantic model to parse the document into

        Returns:
            Document dict, or a model instance when model is given

        Raises:
            NotFoundError: If the document does not exist
        """
        data = await self._json("GET", self._doc_path(doc_id), params=options)
        return parse_model(model, data) if model is not None else data

    async def put(self, doc_id: str, doc: Any) -> str:
        """Create a document with the given ID, or add a new revision.

        Updating requires the latest "_rev" in doc, otherwise the server
        answers 409 (conflict).

        Returns:
            New revision
        """
        result = await self._ok(
            "PUT",
            self._doc_path(doc_id),
            f"Failed to store document {doc_id}",
            json=encode_document(doc),
        )
        return result["rev"]

    async def delete_doc(self, doc_id: str, rev: str) -> str:
        """Add a deleted revision to a document.

        Returns:
            Revision of the deletion
        """
        result = await self._ok(
            "DELETE",
            self._doc_path(doc_id),
            f"Failed to delete document {doc_id}",
            params={"rev": rev},
        )
        return result["rev"]

    async def copy(
        self,
        doc_id: str,
        destination: Destination | str,
        options: Mapping[str, Any] | None = None,
    ) -> str:
        """Copy a document to a new or existing document.

        Copying onto an existing document needs its latest revision in
        the destination options.

        Returns:
            Revision of the destination document
        """
        result = await self._ok(
            "COPY",
            self._doc_path(doc_id),
            f"Failed to copy document {doc_id}",
            params=options,
            headers={"Destination": str(destination)},
        )
        return result["rev"]

    async def exists(
        self,
        doc_id: str,
        options: Mapping[str, Any] | None = None,
    ) -> tuple[int, str]:
        """Check that a document exists.

        Returns:
            Tuple of (size in bytes, current revision)

        Raises:
            NotFoundError: If the document does not exist
        """
        response = await self._transport.request(
            "HEAD", self._doc_path(doc_id), params=options, auth=self.auth
        )
        await response.aclose()
        try:
            size = int(response.headers.get("Content-Length", "0"))
        except ValueError as e:
            raise CouchError(f"Invalid Content-Length for {doc_id}", code="DECODE_ERROR") from e
        return size, response.headers.get("ETag", "").strip('"')

    async def all_docs(self, options: Mapping[str, Any] | None = None) -> ViewResult:
        """List documents through _all_docs."""
        return parse_model(ViewResult, await self._json("GET", self._path("_all_docs"), params=options))

    async def all_docs_by_ids(
        self,
        keys: Sequence[str],
        options: Mapping[str, Any] | None = None,
    ) -> ViewResult:
        """List the given documents through _all_docs."""
        data = await self._json(
            "POST", self._path("_all_docs"), params=options, json={"keys": list(keys)}
        )
        return parse_model(ViewResult, data)

    # -- bulk -------------------------------------------------------------

    async def update(
        self,
        docs: Sequence[Any],
        atomic: bool = False,
        update_rev: bool = True,
        full_commit: bool = False,
    ) -> list[UpdateResult]:
        """Submit documents to _bulk_docs.

        Low level; prefer insert_many / delete_many. Documents carrying
        an empty "_rev" are rejected by the server, so omit it instead.

        Args:
            docs: Mappings, dataclasses or pydantic models
            atomic: Ask the server to store all documents or none
            update_rev: Let the server assign revisions; False sends
                new_edits=false and keeps the given revisions
            full_commit: Override the server commit policy

        Returns:
            One UpdateResult per document
        """
        request: dict[str, Any] = {"docs": shape_for_insert(docs)}
        if not update_rev:
            request["new_edits"] = False
        if atomic:
            request["all_or_nothing"] = True
        headers = {FULL_COMMIT_HEADER: "true"} if full_commit else None

        data = await self._json("POST", self._path("_bulk_docs"), json=request, headers=headers)
        if not isinstance(data, list):
            raise CouchError("Unexpected _bulk_docs response", code="DECODE_ERROR")
        logger.debug(
            "Bulk update submitted",
            extra={"db": self.name, "docs": len(request["docs"]), "atomic": atomic},
        )
        return [parse_model(UpdateResult, item) for item in data]

    async def insert_many(self, docs: Sequence[Any]) -> list[UpdateResult]:
        """Store many documents; the primary bulk insert."""
        return await self.update(docs, atomic=False, update_rev=True, full_commit=True)

    async def must_insert_many(self, docs: Sequence[Any]) -> list[UpdateResult]:
        """Store many documents atomically."""
        return await self.update(docs, atomic=True, update_rev=True, full_commit=True)

    async def delete_many(self, docs: Any, *, new_edits: bool = False) -> list[UpdateResult]:
        """Delete many documents.

        Each document must provide "_id" and "_rev": as mapping keys, via
        HasIdentity/HasRevision, or as tagged record fields.

        Raises:
            BulkShapeError: If any document is invalid; nothing is sent
        """
        records = shape_for_delete(docs)
        return await self.update(records, atomic=False, update_rev=new_edits, full_commit=True)

    async def must_delete_many(self, docs: Any, *, new_edits: bool = False) -> list[UpdateResult]:
        """Delete many documents atomically."""
        records = shape_for_delete(docs)
        return await self.update(records, atomic=True, update_rev=new_edits, full_commit=True)

    # -- changes ----------------------------------------------------------

    async def get_all_changes(self, options: Mapping[str, Any] | None = None) -> DatabaseChanges:
        """Fetch changes of the database in one request.

        Raises:
            ConfigurationError: If options ask for a continuous feed
        """
        params = one_shot_options(options, "changes_channel")
        return parse_model(DatabaseChanges, await self._json("GET", self._path("_changes"), params=params))

    async def changes_channel(
        self,
        options: Mapping[str, Any] | None = None,
    ) -> EventChannel[DocumentChangeEvent]:
        """Listen to the continuous changes feed.

        The feed runs on its own connection until the returned channel
        is closed.

        Raises:
            ConfigurationError: If options ask for a non-continuous feed
        """
        return await open_stream(
            self._transport,
            StreamKind.DATABASE,
            options,
            database=quote(self.name, safe=""),
            auth=self.auth,
        )

    # -- maintenance ------------------------------------------------------

    async def compact(self) -> None:
        """Start compaction of the database."""
        await self._ok(
            "POST", self._path("_compact"), "Compaction of database failed",
            headers={"Content-Type": APP_JSON},
        )

    async def compact_design(self, design: str) -> None:
        """Compact the view indexes of a design document."""
        await self._ok(
            "POST", self._path("_compact", quote(design, safe="")), "Compaction of database failed",
            headers={"Content-Type": APP_JSON},
        )

    async def ensure_full_commit(self) -> None:
        """Commit recent changes of the database to disk."""
        await self._ok(
            "POST", self._path("_ensure_full_commit"), "Commit failed",
            headers={"Content-Type": APP_JSON},
        )

    async def view_cleanup(self) -> None:
        """Remove view index files no longer needed."""
        await self._json("POST", self._path("_view_cleanup"), headers={"Content-Type": APP_JSON})

    async def purge(self, revs: Mapping[str, Sequence[str]]) -> PurgeResult:
        """Permanently remove references to deleted documents."""
        data = await self._json("POST", self._path("_purge"), json={k: list(v) for k, v in revs.items()})
        return parse_model(PurgeResult, data)

    async def missing_revs(self, revs: Mapping[str, Sequence[str]]) -> dict[str, Any]:
        """Return the revisions that do not exist in the database.

        Example:
            >>> await db.missing_revs({"doc_id": ["1-abc", "2-def"]})
        """
        return await self._json(
            "POST", self._path("_missing_revs"), json={k: list(v) for k, v in revs.items()}
        )

    async def revs_diff(self, revs: Mapping[str, Sequence[str]]) -> dict[str, Any]:
        """Return the subset of revisions not stored in the database."""
        return await self._json(
            "POST", self._path("_revs_diff"), json={k: list(v) for k, v in revs.items()}
        )

    async def revs_limit(self) -> int:
        """Get the revision limit of the database."""
        return int(await self._json("GET", self._path("_revs_limit")))

    async def set_revs_limit(self, count: int) -> None:
        """Set the revision limit of the database."""
        if count < 1:
            raise ConfigurationError("Revision limit must be greater than zero", option="count")
        await self._ok(
            "PUT", self._path("_revs_limit"), "Failed to set revision limit",
            content=str(count), headers={"Content-Type": APP_JSON},
        )

    # -- attachments ------------------------------------------------------

    async def save_attachment(self, doc_id: str, rev: str, attachment: Attachment) -> dict[str, Any]:
        """Upload an attachment to a document."""
        return await self._json(
            "PUT",
            self._doc_path(doc_id, attachment.name),
            params={"rev": rev},
            content=attachment.body,
            headers={"Content-Type": attachment.content_type},
        )

    async def attachment_info(self, doc_id: str, name: str) -> AttachmentInfo:
        """Get attachment metadata without downloading it."""
        response = await self._transport.request(
            "HEAD", self._doc_path(doc_id, name), auth=self.auth
        )
        await response.aclose()
        try:
            length = int(response.headers.get("Content-Length", "0"))
        except ValueError as e:
            raise CouchError(f"Invalid Content-Length for {name}", code="DECODE_ERROR") from e
        return AttachmentInfo(
            encoding=response.headers.get("Content-Encoding", ""),
            length=length,
            type=response.headers.get("Content-Type", ""),
            hash=response.headers.get("Content-MD5", ""),
        )

    async def get_attachment(self, doc_id: str, name: str, rev: str | None = None) -> Attachment:
        """Download an attachment, optionally pinned to a revision."""
        headers = {"If-Match": rev} if rev else None
        response = await self._transport.request(
            "GET", self._doc_path(doc_id, name), headers=headers, auth=self.auth
        )
        try:
            body = await response.aread()
        finally:
            await response.aclose()
        return Attachment(
            name=name,
            content_type=response.headers.get("Content-Type", ""),
            body=body,
        )

    async def delete_attachment(self, doc_id: str, name: str, rev: str) -> None:
        """Delete an attachment of a document.

        Raises:
            ConfigurationError: If rev is empty
        """
        if not rev:
            raise ConfigurationError("Revision can't be empty", option="rev")
        await self._ok(
            "DELETE",
            self._doc_path(doc_id, name),
            f"Can't delete attachment {name}",
            headers={"If-Match": rev},
        )

    # -- security ---------------------------------------------------------

    async def get_security(self) -> DefaultSecurity:
        """Fetch the security object."""
        return parse_model(DefaultSecurity, await self._json("GET", self._path("_security")))

    async def set_security(self, security: DefaultSecurity) -> None:
        """Store the security object."""
        await self._json("PUT", self._path("_security"), json=security.to_wire())

    def security(self) -> DatabaseSecurity:
        """Security helpers bound to this database."""
        return DatabaseSecurity(self)
