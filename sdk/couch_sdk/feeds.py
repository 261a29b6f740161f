"""
Continuous event feeds for the CouchDB SDK.

This module consumes long-lived, line-delimited JSON feeds and hands the
decoded events to the caller through an EventChannel:
- StreamKind.SERVER: /_db_updates, DatabaseLifecycleEvent per line
- StreamKind.DATABASE: /{db}/_changes, DocumentChangeEvent per line

Every channel owns one background task (the pump) and one dedicated
StreamConnection, a copy of the caller's transport with its own client.
Closing the channel is the only way to cancel it.

Invariants:
    - Events reach the receiver in server order, one at a time
    - The pump blocks until the receiver takes each event (no buffering)
    - The StreamConnection is released exactly once, whatever ends the feed
    - Feed failures never escape the pump; they are logged and reported
      to the receiver as StreamTerminatedError
    - No reconnects; open a new channel to resume

Example:
    >>> channel = await db.changes_channel({"since": "now"})
    >>> async with channel:
    ...     async for event in channel:
    ...         print(event.document_id, event.revisions)
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Generic, TypeVar

import httpx

from ._http_client import HttpTransport
from .errors import ChannelClosedError, ConfigurationError, StreamTerminatedError
from .models import DatabaseLifecycleEvent, DocumentChangeEvent

logger = logging.getLogger(__name__)

CONTINUOUS = "continuous"

E = TypeVar("E", DatabaseLifecycleEvent, DocumentChangeEvent)

# marks the end of the feed inside the hand-off queue
_END = object()


class StreamKind(Enum):
    """Which feed a channel subscribes to."""

    SERVER = "server"
    DATABASE = "database"

    def path(self, database: str | None = None) -> str:
        """Endpoint of the feed."""
        if self is StreamKind.SERVER:
            return "/_db_updates"
        if not database:
            raise ConfigurationError("Database feed requires a database name", option="database")
        return f"/{database}/_changes"

    @property
    def event_model(self) -> type[DatabaseLifecycleEvent] | type[DocumentChangeEvent]:
        """Model each feed line decodes into."""
        if self is StreamKind.SERVER:
            return DatabaseLifecycleEvent
        return DocumentChangeEvent


def continuous_options(options: Mapping[str, Any] | None, alternative: str) -> dict[str, Any]:
    """Return query options for a continuous feed.

    Raises:
        ConfigurationError: If options ask for another feed style
    """
    params = dict(options or {})
    feed = params.pop("feed", CONTINUOUS)
    if feed != CONTINUOUS:
        raise ConfigurationError(
            f"This method supports only listening for continuous events, use {alternative} instead",
            option="feed",
        )
    params["feed"] = CONTINUOUS
    return params


def one_shot_options(options: Mapping[str, Any] | None, alternative: str) -> dict[str, Any]:
    """Return query options for a one-shot feed request.

    Raises:
        ConfigurationError: If options ask for a continuous feed
    """
    params = dict(options or {})
    if params.get("feed") == CONTINUOUS:
        raise ConfigurationError(
            f"This method does not support listening for continuous events, use {alternative} instead",
            option="feed",
        )
    return params


def decode_event(kind: StreamKind, line: str) -> Any:
    """Decode one feed line.

    Returns:
        The event, or None for the final {"last_seq": ...} line of a
        changes feed

    Raises:
        ValueError: If the line is not a valid event
    """
    data = json.loads(line)
    if kind is StreamKind.DATABASE and isinstance(data, dict) and "last_seq" in data and "id" not in data:
        return None
    return kind.event_model.model_validate(data)


class StreamConnection:
    """Dedicated connection carrying one feed.

    Owns a copied transport and the streaming response opened on it.
    """

    def __init__(self, transport: HttpTransport, response: httpx.Response) -> None:
        self.transport = transport
        self.response = response
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def lines(self) -> Any:
        """Response body split into lines, read incrementally."""
        return self.response.aiter_lines()

    async def close(self) -> None:
        """Release the response and the client; later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.response.aclose()
        finally:
            await self.transport.close()
        logger.debug("Stream connection released", extra={"url": str(self.response.request.url)})


class EventChannel(Generic[E]):
    """Caller-owned conduit of feed events.

    Single producer (the pump), single consumer (the caller). Use
    ``async for`` or receive(); call close() (or leave ``async with``)
    to stop the feed and release its connection.

    Attributes:
        kind: Feed this channel is attached to
    """

    def __init__(self, kind: StreamKind) -> None:
        self.kind = kind
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)
        self._token = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._error: StreamTerminatedError | None = None
        self._reading = False

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._token.is_set()

    @property
    def done(self) -> bool:
        """Whether the pump has stopped."""
        return self._task is not None and self._task.done()

    @property
    def error(self) -> StreamTerminatedError | None:
        """Failure that ended the feed, if any."""
        return self._error

    def start(self, connection: StreamConnection) -> None:
        """Start the pump on the given connection."""
        if self._task is not None:
            raise RuntimeError("Event channel already started")
        self._task = asyncio.create_task(
            self._pump(connection, self._token),
            name=f"couch-{self.kind.value}-feed",
        )

    async def receive(self) -> E:
        """Wait for the next event.

        Raises:
            ChannelClosedError: If the channel is closed or the feed ended
            StreamTerminatedError: If the feed failed
        """
        if self._token.is_set():
            raise ChannelClosedError()
        item = await self._queue.get()
        self._queue.task_done()
        if item is _END:
            self._queue.put_nowait(_END)
            if self._error is not None:
                raise self._error
            raise ChannelClosedError("Event feed has ended")
        return item

    def __aiter__(self) -> EventChannel[E]:
        return self

    async def __anext__(self) -> E:
        try:
            return await self.receive()
        except ChannelClosedError:
            raise StopAsyncIteration from None

    async def close(self) -> None:
        """Stop the feed and wait until its connection is released."""
        if self._token.is_set():
            return
        self._token.set()
        task = self._task
        if task is None or task.done():
            return
        # only a pending network read ignores the token
        if self._reading:
            task.cancel()
        await asyncio.wait({task})

    async def __aenter__(self) -> EventChannel[E]:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _pump(self, connection: StreamConnection, token: asyncio.Event) -> None:
        url = str(connection.response.request.url)
        lines = connection.lines()
        try:
            while not token.is_set():
                self._reading = True
                try:
                    line = await lines.__anext__()
                except StopAsyncIteration:
                    logger.debug("Feed ended by server", extra={"url": url})
                    break
                except Exception as e:
                    self._fail(e, "Failed to read bytes from connection", url)
                    break
                finally:
                    self._reading = False

                if not line.strip():
                    continue  # heartbeat
                try:
                    event = decode_event(self.kind, line)
                except ValueError as e:
                    self._fail(e, f"Failed to decode line as {self.kind.event_model.__name__}", url)
                    break
                if event is None:
                    break
                if not await self._hand_off(event, token):
                    break
        finally:
            try:
                await connection.close()
            finally:
                self._finish()

    async def _hand_off(self, event: Any, token: asyncio.Event) -> bool:
        """Give one event to the receiver; False if the channel closed first."""
        self._queue.put_nowait(event)
        received = asyncio.ensure_future(self._queue.join())
        cancelled = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({received, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            received.cancel()
            cancelled.cancel()
        return received in done

    def _fail(self, cause: Exception, message: str, url: str) -> None:
        error = StreamTerminatedError(f"{message}: {cause}", kind=self.kind.value)
        error.__cause__ = cause
        self._error = error
        logger.warning(
            f"{self.kind.value} feed terminated: {message}",
            extra={"url": url, "error": str(cause)},
        )

    def _finish(self) -> None:
        # drop an event the closed receiver never took, then mark the end
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        self._queue.put_nowait(_END)


async def open_stream(
    transport: HttpTransport,
    kind: StreamKind,
    options: Mapping[str, Any] | None = None,
    *,
    database: str | None = None,
    auth: httpx.Auth | None = None,
) -> EventChannel[Any]:
    """Open a continuous feed and return the channel carrying its events.

    Args:
        transport: Base transport; a copy is made for the feed
        kind: Feed to subscribe to
        options: Server-side feed options (since, heartbeat, filter, ...)
        database: Database name for StreamKind.DATABASE
        auth: Authenticator for the feed request

    Returns:
        Started EventChannel

    Raises:
        ConfigurationError: If options request a non-continuous feed
        CouchHttpError: If the server rejects the request
        ConnectionError: If the server cannot be reached
    """
    alternative = "get_db_event" if kind is StreamKind.SERVER else "get_all_changes"
    params = continuous_options(options, alternative)
    path = kind.path(database)

    dedicated = transport.copy()
    try:
        response = await dedicated.request(
            "GET",
            path,
            params=params,
            auth=auth,
            stream=True,
            timeout=httpx.Timeout(dedicated.timeout or None, read=None),
        )
    except BaseException:
        await dedicated.close()
        raise

    channel: EventChannel[Any] = EventChannel(kind)
    channel.start(StreamConnection(dedicated, response))
    logger.debug(f"Opened {kind.value} feed", extra={"path": path})
    return channel
