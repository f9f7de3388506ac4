"""
Target resolution.

Turns a free-form identifier plus a resource scope into a typed target:
an instance lookup is tried first, then a volume lookup. Instance disks are
partitioned by comparing each device name with the root device name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from snapwarden.exceptions import ProviderCallError, ResolutionError
from snapwarden.logging import get_logger
from snapwarden.models import (
    ComputeInstance,
    DiskRef,
    DiskRole,
    ScopeSelector,
    StandaloneVolume,
    Target,
)

if TYPE_CHECKING:
    from snapwarden.models import InstanceInfo
    from snapwarden.providers.base import CloudProvider

logger = get_logger(__name__)


class TargetResolver:
    """Resolves identifiers into ComputeInstance or StandaloneVolume targets."""

    def __init__(self, provider: CloudProvider) -> None:
        self._provider = provider

    def resolve(self, identifier: str, scope: str) -> Target:
        """
        Classify an identifier and enumerate its disks.

        A failed instance lookup is treated like "not an instance" and the
        volume lookup still runs.

        Args:
            identifier: Instance or volume id / name.
            scope: Resource group or region.

        Returns:
            The resolved target.

        Raises:
            ResolutionError: If the target is neither an instance nor a volume,
                or an instance's root volume cannot be determined.
            ProviderCallError: If the instance lookup failed and no volume
                matched, or the volume lookup itself failed.
        """
        lookup_error: ProviderCallError | None = None
        try:
            instance = self._provider.find_instance(identifier, scope)
        except ProviderCallError as e:
            logger.warning("instance_lookup_failed", target=identifier, scope=scope, error=e)
            lookup_error, instance = e, None

        if instance is not None:
            target: Target = self._from_instance(identifier, scope, instance)
            logger.debug(
                "target_classified",
                target=identifier,
                kind="instance",
                data_disks=len(target.disks) - 1,
            )
            return target

        volume = self._provider.find_volume(identifier, scope)
        if volume is not None:
            logger.debug("target_classified", target=identifier, kind="volume")
            return StandaloneVolume(
                identifier=identifier,
                scope=scope,
                disk=DiskRef(volume_id=volume.volume_id, role=DiskRole.ROOT, index=1),
            )

        if lookup_error is not None:
            raise lookup_error
        raise ResolutionError.target_not_found(identifier, scope)

    def _from_instance(
        self, identifier: str, scope: str, instance: InstanceInfo
    ) -> ComputeInstance:
        root_volume_id: str | None = None
        data: list[DiskRef] = []

        for mapping in instance.devices:
            if not mapping.device_name or not mapping.volume_id:
                continue
            if instance.root_device_name and mapping.device_name == instance.root_device_name:
                root_volume_id = mapping.volume_id
            else:
                data.append(
                    DiskRef(volume_id=mapping.volume_id, role=DiskRole.DATA, index=len(data) + 1)
                )

        if root_volume_id is None and instance.os_disk_name:
            os_disk = self._provider.find_volume(instance.os_disk_name, scope)
            if os_disk is not None:
                root_volume_id = os_disk.volume_id
                logger.debug(
                    "root_volume_found_by_os_disk_name",
                    target=identifier,
                    os_disk_name=instance.os_disk_name,
                )

        if root_volume_id is None:
            raise ResolutionError.root_volume_unknown(identifier, scope)

        return ComputeInstance(
            identifier=identifier,
            scope=scope,
            root=DiskRef(volume_id=root_volume_id, role=DiskRole.ROOT, index=1),
            data=data,
        )


def select_disks(target: Target, selector: ScopeSelector) -> list[DiskRef]:
    """
    Select the disks a request applies to, in snapshot order.

    A standalone volume ignores the selector.

    Raises:
        ResolutionError: If the selection is empty.
    """
    if isinstance(target, StandaloneVolume):
        return [target.disk]

    disks: list[DiskRef] = []
    if isinstance(target, ComputeInstance):
        if selector in (ScopeSelector.OS, ScopeSelector.BOTH):
            disks.append(target.root)
        if selector in (ScopeSelector.DATA, ScopeSelector.BOTH):
            disks.extend(target.data)

    if not disks:
        raise ResolutionError.no_eligible_disks(target.identifier, selector.value)
    return disks
