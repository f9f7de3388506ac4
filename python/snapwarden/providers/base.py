"""
Cloud provider interface.

The lifecycle engine never talks to a cloud SDK directly; it goes through a
CloudProvider, which makes the engine testable against an in-memory backend
and lets Azure and AWS plug in behind the same operations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from snapwarden.models import InstanceInfo, SnapshotRecord, VolumeInfo


class CloudProvider(ABC):
    """
    Abstract base class for cloud provider backends.

    Lookups return None for "not found"; mutating calls raise
    ``CreateError`` / ``DeleteError``; a missing SDK or credential raises
    ``ProviderEnvironmentError``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the provider name."""
        ...

    @abstractmethod
    def check_environment(self) -> None:
        """
        Verify the provider is reachable and authenticated.

        Raises:
            ProviderEnvironmentError: If the SDK or credentials are unusable.
        """
        ...

    @abstractmethod
    def find_instance(self, identifier: str, scope: str) -> InstanceInfo | None:
        """Look up a compute instance by id or name within a scope."""
        ...

    @abstractmethod
    def find_volume(self, identifier: str, scope: str) -> VolumeInfo | None:
        """Look up a volume / managed disk by id or name within a scope."""
        ...

    @abstractmethod
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
        """
        Create a snapshot of a volume.

        Args:
            source_volume_id: Volume to snapshot.
            name: Snapshot name.
            tags: Full metadata tag mapping.
            incremental: Request an incremental snapshot.
            sku: Storage SKU to request, if known.
            scope: Resource group or region for the snapshot.
            description: Free-text description.

        Returns:
            Provider identifier of the new snapshot.

        Raises:
            CreateError: If the provider rejects the call.
        """
        ...

    @abstractmethod
    def list_snapshots(self, tag_filter: Mapping[str, str]) -> list[SnapshotRecord]:
        """List snapshots whose tags contain every key/value in ``tag_filter``."""
        ...

    @abstractmethod
    def delete_snapshot(self, snapshot_id: str, scope: str | None = None) -> None:
        """
        Delete a snapshot.

        Raises:
            DeleteError: If the provider rejects the call.
        """
        ...


def tags_match(tags: Mapping[str, str] | None, tag_filter: Mapping[str, str]) -> bool:
    """Check that ``tags`` contains every key/value pair of ``tag_filter``."""
    if not tag_filter:
        return True
    if not tags:
        return False
    return all(tags.get(key) == value for key, value in tag_filter.items())
