"""Pytest configuration for Python tests."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone

import pytest

from snapwarden.config import set_config
from snapwarden.events import EventCollector
from snapwarden.logging import clear_context
from snapwarden.providers.memory import InMemoryProvider

FIXED_NOW = datetime(2025, 3, 14, 9, 26, 53, tzinfo=timezone.utc)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "aws: marks tests that exercise the boto3 provider")
    config.addinivalue_line("markers", "azure: marks tests that exercise the Azure provider")


@pytest.fixture(autouse=True)
def isolated_workdir(tmp_path, monkeypatch) -> Iterator[None]:
    """Run every test in its own directory with a fresh global config."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("SNAPWARDEN_CONFIG", raising=False)
    set_config(None)
    yield
    set_config(None)
    clear_context()


@pytest.fixture
def fixed_clock():
    """Clock that always returns FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def provider(fixed_clock) -> InMemoryProvider:
    """
    In-memory provider with a small estate in scope ``rg-prod``:

    - vm-app: root disk-os (/dev/sda1), data disk-d1 (/dev/sdb), disk-d2 (/dev/sdc)
    - vm-solo: root disk-solo-os only
    - disk-standalone: a volume attached to nothing
    """
    p = InMemoryProvider(clock=fixed_clock)
    for volume_id in ("disk-os", "disk-d1", "disk-d2", "disk-solo-os", "disk-standalone"):
        p.add_volume(volume_id, "rg-prod")
    p.add_instance(
        "vm-app",
        "rg-prod",
        root_device="/dev/sda1",
        devices=[("/dev/sda1", "disk-os"), ("/dev/sdb", "disk-d1"), ("/dev/sdc", "disk-d2")],
    )
    p.add_instance(
        "vm-solo",
        "rg-prod",
        root_device="/dev/sda1",
        devices=[("/dev/sda1", "disk-solo-os")],
    )
    return p


@pytest.fixture
def collector() -> EventCollector:
    """Observer that records every lifecycle event."""
    return EventCollector()
