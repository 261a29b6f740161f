"""
CouchDB Python SDK - asyncio client library for CouchDB-style servers.

This SDK provides:
- Server / Database handles for the HTTP/JSON API
- Continuous event feeds delivered on an EventChannel
- Bulk insert and delete of mappings, dataclasses and pydantic models
- Basic and cookie session authentication

Example:
    >>> from couch_sdk import BasicAuth, Server
    >>>
    >>> async with Server.connect("localhost", 5984, BasicAuth("admin", "secret")) as srv:
    ...     db = await srv.must_get_database("tasks")
    ...     await db.insert_many([{"_id": "t1", "title": "My Task"}])
    ...     async with await db.changes_channel() as channel:
    ...         event = await channel.receive()

Invariants:
    - Every open feed owns one background task and one connection
    - Closing a channel releases its connection exactly once
    - Bulk documents are validated before anything is sent

Version: 1.0.0
"""

__version__ = "1.0.0"

from .auth import Authenticator, BasicAuth, CookieAuth
from .bulk import HasIdentity, HasRevision, shape_for_delete, shape_for_insert
from .client import Server, Session
from .config import ClientSettings
from .database import Database
from .errors import (
    BulkShapeError,
    ChannelClosedError,
    ConfigurationError,
    ConnectionError,
    CouchError,
    CouchHttpError,
    FieldTypeError,
    MissingFieldError,
    NotFoundError,
    StreamTerminatedError,
    UnsupportedCollectionError,
    UnsupportedDocumentError,
)
from .feeds import EventChannel, StreamKind, open_stream
from .models import (
    Attachment,
    AttachmentInfo,
    DatabaseChanges,
    DatabaseLifecycleEvent,
    DBInfo,
    Destination,
    DocumentChangeEvent,
    EventType,
    PurgeResult,
    ReplicationResult,
    ServerInfo,
    UpdateResult,
    UserRecord,
    ViewResult,
)
from .security import DatabaseSecurity, DefaultSecurity, SecurityGroup

__all__ = [
    # Version
    "__version__",
    # Client
    "Server",
    "Session",
    "Database",
    "ClientSettings",
    # Auth
    "Authenticator",
    "BasicAuth",
    "CookieAuth",
    # Feeds
    "EventChannel",
    "StreamKind",
    "open_stream",
    # Bulk
    "HasIdentity",
    "HasRevision",
    "shape_for_delete",
    "shape_for_insert",
    # Models
    "Attachment",
    "AttachmentInfo",
    "DatabaseChanges",
    "DatabaseLifecycleEvent",
    "DBInfo",
    "Destination",
    "DocumentChangeEvent",
    "EventType",
    "PurgeResult",
    "ReplicationResult",
    "ServerInfo",
    "UpdateResult",
    "UserRecord",
    "ViewResult",
    # Security
    "DatabaseSecurity",
    "DefaultSecurity",
    "SecurityGroup",
    # Errors
    "CouchError",
    "ConfigurationError",
    "ConnectionError",
    "CouchHttpError",
    "NotFoundError",
    "BulkShapeError",
    "MissingFieldError",
    "FieldTypeError",
    "UnsupportedDocumentError",
    "UnsupportedCollectionError",
    "StreamTerminatedError",
    "ChannelClosedError",
]
