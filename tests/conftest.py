"""Global test fixtures for the Murmur test suite."""

from __future__ import annotations

import os
import random

import pytest

from murmur.core.config import clear_config_cache
from murmur.privacy.audit import set_audit_trail
from murmur.privacy.gate import PrivacyGate
from murmur.privacy.jitter import JitterScheduler
from murmur.privacy.orgs import InMemoryOrgRegistry


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all MURMUR_ environment variables and reset cached config."""
    for key in list(os.environ.keys()):
        if key.startswith("MURMUR_"):
            monkeypatch.delenv(key, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture(autouse=True)
def reset_config_cache():
    """Each test starts from freshly loaded settings."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture(autouse=True)
def reset_audit_trail():
    """Reset the shared audit trail between tests."""
    set_audit_trail(None)
    yield
    set_audit_trail(None)


@pytest.fixture
def rng():
    """Seeded random source for reproducible noise."""
    return random.Random(1234)


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def scheduler(fake_sleep):
    """Jitter scheduler that never actually waits."""
    return JitterScheduler(min_delay_ms=5000, max_delay_ms=30000, rng=random.Random(7), sleep=fake_sleep)


@pytest.fixture
def registry():
    """Org registry with one provisioned org (k=5) and one without a salt."""
    registry = InMemoryOrgRegistry()
    registry.register("org-1", salt="org-1-salt", k_threshold=5)
    registry.register("org-nosalt", salt=None, k_threshold=5)
    return registry


@pytest.fixture
def gate(registry, scheduler, rng):
    """Privacy gate over in-memory storage with seeded noise."""
    return PrivacyGate(registry, scheduler=scheduler, rng=rng)


@pytest.fixture
def submit_from():
    """Submit one contribution from each of ``count`` distinct people."""

    def _submit(gate: PrivacyGate, count: int, unit_id: str = "thread-1", org_id: str = "org-1", **kwargs):
        submission = None
        for i in range(count):
            submission = gate.ingest(
                org_id, f"U{i:04d}", f"The deploy process keeps breaking, take {i}", unit_id, **kwargs
            )
        return submission

    return _submit
