"""
In-memory cloud provider.

Deterministic backend for tests and offline dry runs. Supports failure
injection per volume / snapshot and records every call so tests can assert
exactly which mutating operations were issued.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from snapwarden.exceptions import (
    CreateError,
    DeleteError,
    ProviderCallError,
    ProviderEnvironmentError,
)
from snapwarden.logging import get_logger
from snapwarden.models import DeviceMapping, InstanceInfo, SnapshotRecord, VolumeInfo
from snapwarden.providers.base import CloudProvider, tags_match

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = get_logger(__name__)


@dataclass
class ProviderCall:
    """One recorded provider call."""

    operation: str
    arguments: dict[str, Any] = field(default_factory=dict)


class InMemoryProvider(CloudProvider):
    """
    Mock provider keeping instances, volumes and snapshots in dictionaries.

    Example:
        provider = InMemoryProvider()
        provider.add_volume("disk-1", "rg-prod")
        provider.add_instance("vm-1", "rg-prod", root_device="/dev/sda1",
                              devices=[("/dev/sda1", "disk-1")])
    """

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        authenticated: bool = True,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.authenticated = authenticated
        self.instances: dict[tuple[str, str], InstanceInfo] = {}
        self.volumes: dict[str, VolumeInfo] = {}
        self.snapshots: dict[str, SnapshotRecord] = {}
        self.calls: list[ProviderCall] = []
        self.fail_incremental_for: set[str] = set()
        self.fail_create_for: set[str] = set()
        self.fail_delete_for: set[str] = set()
        self.fail_instance_lookup_for: set[str] = set()
        self.fail_volume_lookup_for: set[str] = set()
        self._counter = 0

    @property
    def name(self) -> str:
        return "memory"

    # -- fixtures -----------------------------------------------------------

    def add_volume(
        self,
        volume_id: str,
        scope: str,
        name: str | None = None,
        sku: str | None = "Standard_LRS",
    ) -> VolumeInfo:
        """Register a volume."""
        volume = VolumeInfo(volume_id=volume_id, scope=scope, name=name or volume_id, sku=sku)
        self.volumes[volume_id] = volume
        return volume

    def add_instance(
        self,
        instance_id: str,
        scope: str,
        root_device: str | None,
        devices: list[tuple[str, str]],
        os_disk_name: str | None = None,
    ) -> InstanceInfo:
        """Register an instance with its (device_name, volume_id) map."""
        instance = InstanceInfo(
            instance_id=instance_id,
            scope=scope,
            root_device_name=root_device,
            devices=[DeviceMapping(device_name=d, volume_id=v) for d, v in devices],
            os_disk_name=os_disk_name,
        )
        self.instances[(scope, instance_id)] = instance
        return instance

    def add_snapshot(self, record: SnapshotRecord) -> SnapshotRecord:
        """Register a pre-existing snapshot."""
        self.snapshots[record.snapshot_id] = record
        return record

    def calls_to(self, operation: str) -> list[ProviderCall]:
        """Return the recorded calls of one operation."""
        return [c for c in self.calls if c.operation == operation]

    def _check_lookup(self, operation: str, identifier: str, failing: set[str]) -> None:
        if identifier in failing:
            raise ProviderCallError.call_failed("memory", operation, f"injected failure for {identifier}")

    # -- CloudProvider ------------------------------------------------------

    def check_environment(self) -> None:
        self.calls.append(ProviderCall("check_environment"))
        if not self.authenticated:
            raise ProviderEnvironmentError.credentials_missing("memory", "not authenticated")

    def find_instance(self, identifier: str, scope: str) -> InstanceInfo | None:
        self.calls.append(ProviderCall("find_instance", {"identifier": identifier, "scope": scope}))
        self._check_lookup("find_instance", identifier, self.fail_instance_lookup_for)
        return self.instances.get((scope, identifier))

    def find_volume(self, identifier: str, scope: str) -> VolumeInfo | None:
        self.calls.append(ProviderCall("find_volume", {"identifier": identifier, "scope": scope}))
        self._check_lookup("find_volume", identifier, self.fail_volume_lookup_for)
        for volume in self.volumes.values():
            if volume.scope != scope:
                continue
            if identifier in (volume.volume_id, volume.name):
                return volume
        return None

    def create_snapshot(
        self,
        source_volume_id: str,
        name: str,
        tags: Mapping[str, str],
        incremental: bool,
        sku: str | None = None,
        scope: str | None = None,
        description: str = "",
    ) -> str:
        self.calls.append(
            ProviderCall(
                "create_snapshot",
                {
                    "source_volume_id": source_volume_id,
                    "name": name,
                    "tags": dict(tags),
                    "incremental": incremental,
                    "sku": sku,
                    "scope": scope,
                    "description": description,
                },
            )
        )

        if source_volume_id in self.fail_create_for or (
            incremental and source_volume_id in self.fail_incremental_for
        ):
            raise CreateError.create_failed(
                source_volume_id, name, incremental, "injected failure"
            )

        self._counter += 1
        snapshot_id = f"snap-{self._counter:04d}"
        volume = self.volumes.get(source_volume_id)
        self.snapshots[snapshot_id] = SnapshotRecord(
            snapshot_id=snapshot_id,
            name=name,
            source_volume_id=source_volume_id,
            incremental=incremental,
            sku=sku or (volume.sku if volume else None),
            created_at=self._clock(),
            tags=dict(tags),
            scope=scope,
        )
        logger.debug("memory_snapshot_created", snapshot_id=snapshot_id, name=name)
        return snapshot_id

    def list_snapshots(self, tag_filter: Mapping[str, str]) -> list[SnapshotRecord]:
        self.calls.append(ProviderCall("list_snapshots", {"tag_filter": dict(tag_filter)}))
        return [s for s in self.snapshots.values() if tags_match(s.tags, tag_filter)]

    def delete_snapshot(self, snapshot_id: str, scope: str | None = None) -> None:
        self.calls.append(ProviderCall("delete_snapshot", {"snapshot_id": snapshot_id, "scope": scope}))
        if snapshot_id in self.fail_delete_for:
            raise DeleteError.delete_failed(snapshot_id, "injected failure")
        if snapshot_id not in self.snapshots:
            raise DeleteError.delete_failed(snapshot_id, "snapshot not found")
        del self.snapshots[snapshot_id]
