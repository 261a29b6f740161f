"""
E2E test fixtures for the CouchDB SDK.

These tests require a running server, configured through COUCH_* variables
(COUCH_HOST, COUCH_PORT, COUCH_USERNAME, COUCH_PASSWORD).
"""

import os
import socket
import time
import uuid

import pytest

from couch_sdk import ClientSettings

E2E_ENABLED = os.environ.get("COUCH_E2E_TESTS", "0") == "1"


def wait_for_service(host: str, port: int, timeout: int = 60) -> bool:
    """Wait for a service to become available."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1):
                return True
        except OSError:
            time.sleep(1)
    return False


@pytest.fixture(scope="session")
def settings() -> ClientSettings:
    """Settings of the live server."""
    if not E2E_ENABLED:
        pytest.skip("E2E tests disabled. Set COUCH_E2E_TESTS=1 to enable.")
    settings = ClientSettings()
    assert wait_for_service(settings.host, settings.port, timeout=60), "CouchDB not ready"
    return settings


@pytest.fixture
def db_name() -> str:
    """Unique database name for test isolation."""
    return f"e2e_{uuid.uuid4().hex[:8]}"
