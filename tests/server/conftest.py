"""Server-specific test fixtures."""

from __future__ import annotations

import pytest
from starlette.testclient import TestClient

from murmur.privacy.audit import InMemoryAuditLog, KeyRotationAuditTrail


@pytest.fixture(autouse=True)
def clean_server_settings():
    """Reset server settings between tests."""
    import murmur.server.config as config_module

    config_module._settings = None
    yield
    config_module._settings = None


@pytest.fixture
def audit_trail():
    return KeyRotationAuditTrail(log=InMemoryAuditLog(capacity=100))


@pytest.fixture
def app(gate, audit_trail):
    from murmur.server.app import create_app

    return create_app(gate=gate, audit_trail=audit_trail)


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)
