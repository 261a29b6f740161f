"""
Authenticators for the CouchDB SDK.

An authenticator decorates every outgoing request with credentials.
They plug into httpx's auth hook, so the transport hands them over
per request and never inspects the scheme:
- BasicAuth: user:password in the Authorization header
- CookieAuth: AuthSession cookie obtained from /_session

Example:
    >>> server = await Server.connect("localhost", 5984, BasicAuth("admin", "secret"))
"""

from __future__ import annotations

from collections.abc import Generator

import httpx

AUTH_COOKIE = "AuthSession"


class Authenticator(httpx.Auth):
    """Base class for request decorators.

    Subclasses implement decorate(); auth_flow() wires it into httpx.
    """

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        self.decorate(request)
        yield request

    def decorate(self, request: httpx.Request) -> None:
        """Add credentials to the outgoing request."""
        raise NotImplementedError


class BasicAuth(Authenticator):
    """Plain user:password authentication.

    Attributes:
        username: Login name
        password: Password
    """

    def __init__(self, username: str, password: str) -> None:
        self.username = username
        self.password = password

    def decorate(self, request: httpx.Request) -> None:
        # httpx.BasicAuth sets the header before yielding
        next(httpx.BasicAuth(self.username, self.password).auth_flow(request))

    def __repr__(self) -> str:
        return f"BasicAuth(username={self.username!r})"


class CookieAuth(Authenticator):
    """Cookie based authentication with a session token.

    Attributes:
        token: Value of the AuthSession cookie
    """

    def __init__(self, token: str | None) -> None:
        self.token = token

    def decorate(self, request: httpx.Request) -> None:
        if not self.token:
            return
        cookie = f"{AUTH_COOKIE}={self.token}"
        existing = request.headers.get("Cookie")
        request.headers["Cookie"] = f"{existing}; {cookie}" if existing else cookie
