"""
CouchDB client for Python SDK.

This module provides the main client interface:
- Server: Connection to a CouchDB instance
- Session: Cookie authentication bound to a server

Example:
    >>> async with Server.connect("localhost", 5984, BasicAuth("admin", "secret")) as srv:
    ...     db = await srv.must_get_database("tasks")
    ...     channel = await srv.db_updates_channel()
    ...     async for event in channel:
    ...         print(event.name, event.type)

Invariants:
    - Server and Database handles share one transport and hold no per-call state
    - Continuous feeds run on dedicated copies of the transport
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import httpx

from ._http_client import HttpTransport, json_body
from .auth import AUTH_COOKIE, BasicAuth, CookieAuth
from .config import ClientSettings
from .database import Database
from .errors import ConfigurationError, CouchError, CouchHttpError, NotFoundError
from .feeds import EventChannel, StreamKind, one_shot_options, open_stream
from .models import (
    DatabaseLifecycleEvent,
    ReplicationResult,
    ServerInfo,
    UserRecord,
    parse_model,
)

logger = logging.getLogger(__name__)

USERS_DB = "_users"


class Server:
    """A CouchDB instance.

    Provides server level calls and hands out Database handles.
    Use Server.connect() or Server.from_settings() to create one.

    Attributes:
        auth: Default authenticator, inherited by databases
    """

    def __init__(self, transport: HttpTransport, auth: httpx.Auth | None = None) -> None:
        self._transport = transport
        self.auth = auth

    @classmethod
    def connect(
        cls,
        host: str = "localhost",
        port: int = 5984,
        auth: httpx.Auth | None = None,
        timeout: float = 0.0,
        *,
        scheme: str = "http",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> Server:
        """Create a server handle.

        No request is made; use info() to check the server.

        Args:
            host: Server host
            port: Server port
            auth: Default authenticator
            timeout: Default request timeout in seconds, 0 disables it
            scheme: http or https
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        return cls(HttpTransport(f"{scheme}://{host}:{port}", timeout, transport=transport), auth)

    @classmethod
    def from_settings(cls, settings: ClientSettings | None = None) -> Server:
        """Create a server handle from COUCH_* environment settings."""
        settings = settings or ClientSettings()
        auth = None
        if settings.username and settings.password is not None:
            auth = BasicAuth(settings.username, settings.password)
        return cls(HttpTransport(settings.base_url, settings.timeout), auth)

    @property
    def url(self) -> str:
        return self._transport.base_url

    def __repr__(self) -> str:
        return f"Server(url={self.url!r})"

    def copy(self) -> Server:
        """Return a handle with the same settings and auth but its own client."""
        return Server(self._transport.copy(), self.auth)

    async def close(self) -> None:
        """Close the connection pool."""
        await self._transport.close()

    async def __aenter__(self) -> Server:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        kwargs.setdefault("auth", self.auth)
        return await self._transport.request_json(method, path, **kwargs)

    # -- server information -----------------------------------------------

    async def info(self) -> ServerInfo:
        """Server information; also a cheap health check."""
        return parse_model(ServerInfo, await self._json("GET", "/"))

    async def active_tasks(self) -> list[dict[str, Any]]:
        """Tasks currently running on the server."""
        return await self._json("GET", "/_active_tasks")

    async def all_dbs(self) -> list[str]:
        """Names of all databases."""
        return await self._json("GET", "/_all_dbs")

    async def membership(self) -> dict[str, Any]:
        """Cluster and all nodes of the instance.

        Raises:
            CouchError: With code NOT_SUPPORTED on servers without clustering
        """
        try:
            return await self._json("GET", "/_membership")
        except CouchHttpError as e:
            if e.status_code == 400:
                raise CouchError("Not supported by server", code="NOT_SUPPORTED") from e
            raise

    async def log(self, size: int = 0) -> bytes:
        """Tail of the server log, size bytes long when given."""
        params = {"bytes": size} if size > 0 else None
        response = await self._transport.request("GET", "/_log", params=params, auth=self.auth)
        try:
            return await response.aread()
        finally:
            await response.aclose()

    async def stats(self, *path: str) -> dict[str, Any]:
        """Usage statistics, optionally narrowed by section/statistic."""
        return await self._json("GET", "/".join(["/_stats", *path]))

    async def uuids(self, count: int = 1) -> list[str]:
        """UUIDs generated by the server.

        Raises:
            ConfigurationError: If count is lower than one
        """
        if count < 1:
            raise ConfigurationError("Count must be greater than zero", option="count")
        result = await self._json("GET", "/_uuids", params={"count": count})
        return list(result.get("uuids", []))

    async def replicate(
        self,
        source: str,
        target: str,
        options: Mapping[str, Any] | None = None,
    ) -> ReplicationResult:
        """Trigger a replication from source to target."""
        request: dict[str, Any] = {"source": source, "target": target}
        request.update(options or {})
        return parse_model(ReplicationResult, await self._json("POST", "/_replicate", json=request))

    # -- database events --------------------------------------------------

    async def get_db_event(
        self,
        options: Mapping[str, Any] | None = None,
    ) -> DatabaseLifecycleEvent | None:
        """Wait for one database event.

        Options follow /_db_updates; ``timeout`` is in milliseconds.

        Returns:
            The event, or None when the server times out without one

        Raises:
            ConfigurationError: If options ask for a continuous feed
        """
        params = one_shot_options(options, "db_updates_channel")
        response = await self._transport.request("GET", "/_db_updates", params=params, auth=self.auth)
        await response.aread()
        if not response.content.strip():
            await response.aclose()
            return None
        data = await json_body(response)
        if isinstance(data, dict) and "results" in data:
            results = data["results"]
            if not results:
                return None
            data = results[0]
        return parse_model(DatabaseLifecycleEvent, data)

    async def db_updates_channel(
        self,
        options: Mapping[str, Any] | None = None,
    ) -> EventChannel[DatabaseLifecycleEvent]:
        """Listen to database events of the instance.

        Close the returned channel when done to release its connection.

        Raises:
            ConfigurationError: If options ask for a non-continuous feed
        """
        return await open_stream(self._transport, StreamKind.SERVER, options, auth=self.auth)

    # -- databases --------------------------------------------------------

    async def create_db(self, name: str) -> Database:
        """Create a database and return its handle."""
        await self._json("PUT", "/" + quote(name, safe=""))
        logger.debug(f"Database {name} created")
        return Database(self._transport, name, self.auth)

    async def get_database(self, name: str, auth: httpx.Auth | None = None) -> Database:
        """Return a handle for an existing database.

        Args:
            name: Database name
            auth: Authenticator for the database, defaults to the server's

        Raises:
            NotFoundError: If the database does not exist
        """
        use_auth = auth if auth is not None else self.auth
        response = await self._transport.request("HEAD", "/" + quote(name, safe=""), auth=use_auth)
        await response.aclose()
        return Database(self._transport, name, use_auth)

    async def must_get_database(self, name: str, auth: httpx.Auth | None = None) -> Database:
        """Return a handle for a database, creating it when missing."""
        try:
            return await self.get_database(name, auth)
        except NotFoundError:
            db = await self.create_db(name)
            if auth is not None:
                db.auth = auth
            return db

    # -- users and sessions -----------------------------------------------

    async def create_user(self, user: UserRecord) -> str:
        """Store a user record in the _users database.

        Returns:
            Revision of the user document
        """
        db = await self.must_get_database(USERS_DB, self.auth)
        return await db.put(f"org.couchdb.user:{user.login}", user)

    async def new_session(self, user: str, password: str) -> Session:
        """Authenticate and return a cookie session.

        Raises:
            CouchHttpError: If the credentials are rejected
            CouchError: If the server sent no session cookie
        """
        response = await self._transport.request(
            "POST",
            "/_session",
            json={"name": user, "password": password},
            auth=self.auth,
        )
        token = response.cookies.get(AUTH_COOKIE)
        await response.aclose()
        if not token:
            raise CouchError("Server did not return a session cookie", code="AUTH_ERROR")
        logger.debug(f"Session opened for {user}")
        return Session(self, token)


class Session(CookieAuth):
    """Cookie session of one user.

    Pass it as ``auth`` to databases or servers to act as that user.
    """

    def __init__(self, server: Server, token: str) -> None:
        super().__init__(token)
        self._server = server

    async def info(self) -> dict[str, Any]:
        """Information about the current session."""
        return await self._server._json("GET", "/_session", auth=self)

    async def close(self) -> None:
        """Delete the session on the server."""
        await self._server._json("DELETE", "/_session", auth=self)
        self.token = None
