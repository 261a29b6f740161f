"""
CouchDB SDK Test Suite.

This package contains:
- unit/: Unit tests (no server, fake transport)
- integration/: Server and Database handles against the fake server
- e2e/: End-to-end tests (live CouchDB server)
"""
