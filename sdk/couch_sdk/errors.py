"""
Error types for the CouchDB SDK.

This module defines all exception types raised by the SDK:
- CouchError: Base exception
- ConfigurationError: Invalid arguments or options, raised before any request
- CouchHttpError / NotFoundError: Server answered with a status >= 400
- ConnectionError: Server unreachable or the connection broke
- BulkShapeError and subclasses: Bulk payload could not be built
- StreamTerminatedError / ChannelClosedError: Event channel ended

Invariants:
    - All errors inherit from CouchError
    - Errors include context for debugging
    - Shape errors are raised before any network call
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CouchError(Exception):
    """Base exception for all SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "COUCH_ERROR"
        self.details = details or {}


class ConfigurationError(CouchError):
    """Call was configured incorrectly.

    Raised when:
    - A feed option does not match the call (continuous vs. one-shot)
    - A count argument is out of range
    - A required argument is empty
    """

    def __init__(self, message: str, option: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"option": option},
        )
        self.option = option


class ConnectionError(CouchError):
    """Failed to talk to the server.

    Raised when:
    - Server is unreachable
    - Connection times out
    - Connection drops mid-request
    """

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONNECTION_ERROR",
            details={"address": address},
        )
        self.address = address


class CouchHttpError(CouchError):
    """Server answered with an error status.

    Attributes:
        status_code: HTTP status code
        method: Request method
        url: Request URL
        error: Server error code (e.g. "conflict")
        reason: Server supplied reason
    """

    def __init__(
        self,
        status_code: int,
        method: str,
        url: str,
        error: str = "",
        reason: str = "",
    ) -> None:
        super().__init__(
            f"[Error]:{status_code}: {method} {url} - {error} {reason}".rstrip(),
            code="HTTP_ERROR",
            details={
                "status_code": status_code,
                "method": method,
                "url": url,
                "error": error,
                "reason": reason,
            },
        )
        self.status_code = status_code
        self.method = method
        self.url = url
        self.error = error
        self.reason = reason


class NotFoundError(CouchHttpError):
    """Resource not found (HTTP 404).

    Raised when:
    - Database doesn't exist
    - Document or attachment doesn't exist
    """


class BulkShapeError(CouchError):
    """Bulk payload could not be built from the given documents.

    Attributes:
        index: Position of the offending document, if any
    """

    def __init__(
        self,
        message: str,
        code: str = "SHAPE_ERROR",
        index: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = dict(details or {})
        details["index"] = index
        super().__init__(message, code=code, details=details)
        self.index = index


class MissingFieldError(BulkShapeError):
    """Document lacks an identity or revision field.

    Attributes:
        field_name: The missing key ("_id" or "_rev")
    """

    def __init__(self, field_name: str, index: int, source: str = "map") -> None:
        if source == "map":
            msg = f'Document at index {index} does not contain "{field_name}" key'
        else:
            msg = f'Document at index {index} misses "{field_name}" field or tag'
        super().__init__(
            msg,
            code="MISSING_FIELD",
            index=index,
            details={"field_name": field_name},
        )
        self.field_name = field_name


class FieldTypeError(BulkShapeError):
    """Identity or revision field holds a non-string value."""

    def __init__(self, field_name: str, index: int, value: Any) -> None:
        super().__init__(
            f'Field "{field_name}" of document at index {index} must be a string, '
            f"got {type(value).__name__}",
            code="FIELD_TYPE",
            index=index,
            details={"field_name": field_name, "value_type": type(value).__name__},
        )
        self.field_name = field_name


class UnsupportedDocumentError(BulkShapeError):
    """Element is neither a mapping nor a record with identity fields."""

    def __init__(self, index: int, value: Any) -> None:
        type_name = type(value).__name__
        super().__init__(
            f"Unsupported document type {type_name} at index {index}, "
            "expected a mapping or a record",
            code="UNSUPPORTED_DOCUMENT",
            index=index,
            details={"type_name": type_name},
        )
        self.type_name = type_name


class UnsupportedCollectionError(BulkShapeError):
    """Documents argument is not a sequence."""

    def __init__(self, value: Any) -> None:
        type_name = type(value).__name__
        super().__init__(
            f"Bulk operations expect a sequence of documents, got {type_name}",
            code="UNSUPPORTED_COLLECTION",
            details={"type_name": type_name},
        )
        self.type_name = type_name


class StreamTerminatedError(CouchError):
    """Event stream stopped because of a read, decode or transport failure.

    The original failure is available as ``__cause__``.
    """

    def __init__(self, message: str, kind: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="STREAM_TERMINATED",
            details={"kind": kind},
        )
        self.kind = kind


class ChannelClosedError(CouchError):
    """Receive attempted on a channel that is closed or whose feed ended."""

    def __init__(self, message: str = "Event channel is closed") -> None:
        super().__init__(message, code="CHANNEL_CLOSED")
