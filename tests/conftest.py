"""
Shared fixtures for SDK tests.

All fixtures talk to FakeCouch (tests/fakes.py); nothing leaves the process.
"""

import pytest

from couch_sdk import BasicAuth, Database, Server
from couch_sdk._http_client import HttpTransport

from tests.fakes import BASE_URL, FakeCouch


@pytest.fixture
def fake() -> FakeCouch:
    """Fresh fake server."""
    return FakeCouch()


@pytest.fixture
def transport(fake: FakeCouch) -> HttpTransport:
    """Transport wired to the fake server."""
    return HttpTransport(BASE_URL, transport=fake.transport())


@pytest.fixture
def server(fake: FakeCouch) -> Server:
    """Server handle wired to the fake server."""
    return Server.connect(
        "couch.test", 5984, BasicAuth("admin", "admin"), transport=fake.transport()
    )


@pytest.fixture
def db(transport: HttpTransport) -> Database:
    """Handle of the "tasks" database on the fake server."""
    return Database(transport, "tasks", BasicAuth("admin", "admin"))
