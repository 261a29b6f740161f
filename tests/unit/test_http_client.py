"""
Unit tests for the HTTP transport.

Tests cover:
- Query option rendering
- Error status mapping to CouchHttpError / NotFoundError
- Transport failures mapped to ConnectionError
- Cookie isolation between requests
- Transport copies
"""

import httpx
import pytest

from couch_sdk._http_client import HttpTransport, encode_options, json_body
from couch_sdk.errors import ConnectionError, CouchError, CouchHttpError, NotFoundError

from tests.fakes import BASE_URL


class TestEncodeOptions:
    """Tests for encode_options."""

    def test_value_rendering(self):
        """Booleans lower-case, containers as JSON, the rest as str."""
        params = encode_options(
            {"descending": True, "conflicts": False, "limit": 10, "keys": ["a", "b"], "since": "now"}
        )

        assert params == {
            "descending": "true",
            "conflicts": "false",
            "limit": "10",
            "keys": '["a", "b"]',
            "since": "now",
        }

    def test_none(self):
        """No options, no parameters."""
        assert encode_options(None) == {}


class TestHttpTransport:
    """Tests for HttpTransport."""

    @pytest.mark.parametrize("url", ["ftp://host:21", "localhost:5984", "mailto:admin@couch.test"])
    def test_invalid_url(self, url):
        """Only http(s) URLs with a host are accepted."""
        with pytest.raises(CouchError) as exc_info:
            HttpTransport(url)

        assert exc_info.value.code == "INVALID_URL"

    @pytest.mark.asyncio
    async def test_error_body_parsed(self, fake, transport):
        """Server error/reason end up on the exception."""
        fake.route("PUT", "/tasks/a", {"error": "conflict", "reason": "Document update conflict."}, status=409)

        with pytest.raises(CouchHttpError) as exc_info:
            await transport.request("PUT", "/tasks/a", json={})

        error = exc_info.value
        assert error.status_code == 409
        assert error.error == "conflict"
        assert error.reason == "Document update conflict."
        assert error.method == "PUT"
        assert error.message == (
            f"[Error]:409: PUT {BASE_URL}/tasks/a - conflict Document update conflict."
        )

    @pytest.mark.asyncio
    async def test_not_found(self, transport):
        """404 maps to NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            await transport.request("GET", "/missing")

        assert exc_info.value.error == "not_found"

    @pytest.mark.asyncio
    async def test_plain_text_error(self, fake, transport):
        """Non-JSON error bodies become the reason."""
        fake.route("GET", "/_log", status=500, content=b"boom\n")

        with pytest.raises(CouchHttpError) as exc_info:
            await transport.request("GET", "/_log")

        assert exc_info.value.reason == "boom"
        assert exc_info.value.error == ""

    @pytest.mark.asyncio
    async def test_head_error_has_no_body(self, fake, transport):
        """HEAD errors carry only the status."""
        fake.route("HEAD", "/gone", status=404)

        with pytest.raises(NotFoundError) as exc_info:
            await transport.request("HEAD", "/gone")

        assert exc_info.value.reason == ""

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        """Network errors become ConnectionError."""

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        transport = HttpTransport(BASE_URL, transport=httpx.MockTransport(refuse))

        with pytest.raises(ConnectionError) as exc_info:
            await transport.request("GET", "/")

        assert exc_info.value.address == BASE_URL
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_cookies_not_kept(self, fake, transport):
        """Cookies set by the server are not replayed automatically."""
        fake.route("POST", "/_session", {"ok": True}, headers={"Set-Cookie": "AuthSession=abc; Path=/"})
        fake.route("GET", "/", {"couchdb": "Welcome"})

        await transport.request_json("POST", "/_session", json={})
        await transport.request_json("GET", "/")

        assert "Cookie" not in fake.requests[-1].headers

    @pytest.mark.asyncio
    async def test_json_body_decode_error(self, fake, transport):
        """Invalid JSON is a DECODE_ERROR."""
        fake.route("GET", "/", content=b"<html>")

        response = await transport.request("GET", "/")
        with pytest.raises(CouchError) as exc_info:
            await json_body(response)

        assert exc_info.value.code == "DECODE_ERROR"

    @pytest.mark.asyncio
    async def test_copy_is_independent(self, fake, transport):
        """Closing a copy leaves the original usable."""
        fake.route("GET", "/", {"couchdb": "Welcome"})
        copy = transport.copy()

        await copy.close()

        assert copy.is_closed
        assert not transport.is_closed
        assert copy.base_url == transport.base_url
        assert await transport.request_json("GET", "/") == {"couchdb": "Welcome"}

    @pytest.mark.asyncio
    async def test_context_manager(self, fake):
        """async with closes the client."""
        async with HttpTransport(BASE_URL, transport=fake.transport()) as transport:
            pass

        assert transport.is_closed
