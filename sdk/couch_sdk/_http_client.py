"""
Internal HTTP transport for the CouchDB SDK.

This module provides the low-level HTTP communication layer.
It is internal to the SDK and should not be used directly by users.

Users should use Server and Database instead, which provide a clean Python API.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from .errors import ConnectionError, CouchError, CouchHttpError, NotFoundError

logger = logging.getLogger(__name__)

APP_JSON = "application/json"


def encode_options(options: Mapping[str, Any] | None) -> dict[str, str]:
    """Render request options as query parameters.

    Booleans become "true"/"false", lists and dicts are JSON encoded,
    everything else goes through str().
    """
    params: dict[str, str] = {}
    for key, value in (options or {}).items():
        if isinstance(value, bool):
            params[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple, dict)):
            params[key] = json.dumps(value)
        else:
            params[key] = str(value)
    return params


class HttpTransport:
    """Internal HTTP transport for CouchDB.

    Wraps one httpx.AsyncClient bound to the server base URL. It holds no
    per-call state, so a single instance may serve concurrent requests.
    copy() produces an independent transport with its own client, used for
    long-lived streaming reads.

    This is an internal class - users should use Server instead.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 0.0,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            base_url: Server URL, e.g. http://localhost:5984
            timeout: Default request timeout in seconds, 0 disables it
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        url = httpx.URL(base_url)
        if url.scheme not in ("http", "https") or not url.host:
            raise CouchError(f"Invalid server URL: {base_url}", code="INVALID_URL")
        self.base_url = str(url).rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or None,
            transport=transport,
        )
        logger.debug(f"HTTP transport created for {self.base_url}")

    @property
    def is_closed(self) -> bool:
        """Whether the underlying client has been closed."""
        return self._client.is_closed

    def copy(self) -> HttpTransport:
        """Return a transport with the same settings and its own client."""
        return HttpTransport(self.base_url, self.timeout, transport=self._transport)

    async def close(self) -> None:
        """Close the underlying client and its connections."""
        if not self._client.is_closed:
            await self._client.aclose()
            logger.debug(f"HTTP transport for {self.base_url} closed")

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        content: bytes | str | None = None,
        json: Any = None,
        auth: httpx.Auth | None = None,
        timeout: float | httpx.Timeout | None = None,
        stream: bool = False,
    ) -> httpx.Response:
        """Send a request and return the response.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            params: Query options, rendered with encode_options()
            headers: Extra request headers
            content: Raw request body
            json: JSON request body
            auth: Authenticator decorating the request
            timeout: Per-request timeout overriding the default (seconds or httpx.Timeout)
            stream: Leave the body unread for incremental consumption

        Returns:
            The response; streamed responses must be closed by the caller

        Raises:
            CouchHttpError: If the server answers with status >= 400
            ConnectionError: If the server cannot be reached
        """
        request = self._client.build_request(
            method,
            path,
            params=encode_options(params),
            headers=headers,
            content=content,
            json=json,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        try:
            response = await self._client.send(
                request,
                auth=auth if auth is not None else httpx.USE_CLIENT_DEFAULT,
                stream=stream,
            )
        except httpx.TransportError as e:
            raise ConnectionError(
                f"Failed to {method} {request.url}: {e}",
                address=self.base_url,
            ) from e
        finally:
            # cookies travel only through authenticators
            self._client.cookies.clear()

        if response.status_code >= 400:
            raise await self._parse_error(response)
        return response

    async def _parse_error(self, response: httpx.Response) -> CouchHttpError:
        """Convert an error response into a CouchHttpError."""
        method = response.request.method
        error = reason = ""
        try:
            if method != "HEAD":
                await response.aread()
                try:
                    reply = response.json()
                except ValueError:
                    reason = response.text.strip()
                else:
                    if isinstance(reply, dict):
                        error = str(reply.get("error") or "")
                        reason = str(reply.get("reason") or "")
        finally:
            await response.aclose()

        cls = NotFoundError if response.status_code == 404 else CouchHttpError
        return cls(
            status_code=response.status_code,
            method=method,
            url=str(response.request.url),
            error=error,
            reason=reason,
        )

    async def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and decode its JSON body."""
        response = await self.request(method, path, **kwargs)
        return await json_body(response)


async def json_body(response: httpx.Response) -> Any:
    """Decode a JSON response body and release the response.

    Raises:
        CouchError: If the body is not valid JSON
    """
    try:
        await response.aread()
        return response.json()
    except ValueError as e:
        raise CouchError(
            f"Failed to decode response from {response.request.url}: {e}",
            code="DECODE_ERROR",
        ) from e
    finally:
        await response.aclose()
