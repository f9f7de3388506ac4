"""
Azure managed-disk provider.

The scope of an entry is a resource group. A VM's OS disk is reported as
device ``os`` and its data disks as ``lun<N>``, so the resolver's root
partitioning works unchanged; an OS disk without a managed disk id is
resolved by the resolver through its disk name.

Snapshots are ``Copy`` snapshots of the source disk, created in the
resource group of the entry and the location of the disk.
"""

from __future__ import annotations

import os
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
    from collections.abc import Mapping

logger = get_logger(__name__)

MANAGEMENT_SCOPE = "https://management.azure.com/.default"
OS_DEVICE_NAME = "os"


def parse_resource_id(resource_id: str) -> tuple[str | None, str]:
    """
    Extract (resource_group, name) from an ARM resource id.

    A plain name yields ``(None, name)``.
    """
    parts = [p for p in resource_id.split("/") if p]
    resource_group = None
    for i, part in enumerate(parts[:-1]):
        if part.lower() == "resourcegroups":
            resource_group = parts[i + 1]
            break
    return resource_group, parts[-1] if parts else resource_id


def _core_errors() -> Any:
    try:
        from azure.core import exceptions
    except ImportError as e:
        raise ProviderEnvironmentError.sdk_missing("azure", "azure-identity") from e
    return exceptions


class AzureProvider(CloudProvider):
    """
    Azure provider backed by azure-mgmt-compute.

    Args:
        subscription_id: Subscription to operate in; falls back to
            ``AZURE_SUBSCRIPTION_ID``.
        credential: Token credential; DefaultAzureCredential when omitted.
        client: Pre-built ComputeManagementClient (mainly for tests).
    """

    def __init__(
        self,
        subscription_id: str | None = None,
        credential: Any = None,
        client: Any = None,
    ) -> None:
        self._subscription_id = subscription_id or os.getenv("AZURE_SUBSCRIPTION_ID")
        self._credential = credential
        self._client = client

        logger.info("azure_provider_initialized", subscription_id=self._subscription_id)

    @property
    def name(self) -> str:
        return "azure"

    def _get_credential(self) -> Any:
        if self._credential is None:
            try:
                from azure.identity import DefaultAzureCredential
            except ImportError as e:
                raise ProviderEnvironmentError.sdk_missing("azure", "azure-identity") from e
            self._credential = DefaultAzureCredential()
        return self._credential

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                from azure.mgmt.compute import ComputeManagementClient
            except ImportError as e:
                raise ProviderEnvironmentError.sdk_missing("azure", "azure-mgmt-compute") from e
            if not self._subscription_id:
                raise ProviderEnvironmentError.credentials_missing(
                    "azure", "no subscription id configured"
                )
            self._client = ComputeManagementClient(self._get_credential(), self._subscription_id)
        return self._client

    def check_environment(self) -> None:
        errors = _core_errors()
        try:
            self._get_credential().get_token(MANAGEMENT_SCOPE)
        except errors.ClientAuthenticationError as e:
            raise ProviderEnvironmentError.credentials_missing("azure", str(e), cause=e) from e
        self._get_client()
        logger.info("azure_credentials_verified", subscription_id=self._subscription_id)

    def find_instance(self, identifier: str, scope: str) -> InstanceInfo | None:
        vm = self._get("virtual_machines", scope, identifier)
        if vm is None:
            return None

        storage = vm.storage_profile
        devices: list[DeviceMapping] = []
        os_disk = storage.os_disk
        if os_disk.managed_disk is not None and os_disk.managed_disk.id:
            devices.append(
                DeviceMapping(device_name=OS_DEVICE_NAME, volume_id=os_disk.managed_disk.id)
            )
        for disk in storage.data_disks or []:
            if disk.managed_disk is not None and disk.managed_disk.id:
                devices.append(
                    DeviceMapping(device_name=f"lun{disk.lun}", volume_id=disk.managed_disk.id)
                )

        return InstanceInfo(
            instance_id=vm.id,
            scope=scope,
            root_device_name=OS_DEVICE_NAME,
            devices=devices,
            os_disk_name=os_disk.name,
        )

    def find_volume(self, identifier: str, scope: str) -> VolumeInfo | None:
        resource_group, disk_name = parse_resource_id(identifier)
        disk = self._get("disks", resource_group or scope, disk_name)
        if disk is None:
            return None
        return VolumeInfo(
            volume_id=disk.id,
            scope=scope,
            name=disk.name,
            sku=disk.sku.name if disk.sku else None,
            location=disk.location,
        )

    def _get(self, collection: str, resource_group: str, name: str) -> Any:
        errors = _core_errors()
        operations = getattr(self._get_client(), collection)
        try:
            return operations.get(resource_group, name)
        except errors.ResourceNotFoundError:
            return None
        except errors.HttpResponseError as e:
            raise ProviderCallError.call_failed("azure", f"{collection}.get", str(e)) from e

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
        try:
            from azure.mgmt.compute.models import CreationData, Snapshot, SnapshotSku
        except ImportError as e:
            raise ProviderEnvironmentError.sdk_missing("azure", "azure-mgmt-compute") from e

        errors = _core_errors()
        source_group, _ = parse_resource_id(source_volume_id)
        resource_group = scope or source_group
        source = self.find_volume(source_volume_id, resource_group or "")
        if source is None or not resource_group:
            raise CreateError.create_failed(
                source_volume_id, name, incremental, "source disk not found"
            )

        snapshot = Snapshot(
            location=source.location,
            creation_data=CreationData(create_option="Copy", source_resource_id=source.volume_id),
            incremental=incremental,
            sku=SnapshotSku(name=sku) if sku else None,
            tags=dict(tags),
        )
        try:
            poller = self._get_client().snapshots.begin_create_or_update(
                resource_group, name, snapshot
            )
            result = poller.result()
        except errors.AzureError as e:
            raise CreateError.create_failed(
                source_volume_id, name, incremental, str(e), cause=e
            ) from e

        logger.info(
            "azure_snapshot_created",
            snapshot_id=result.id,
            name=name,
            incremental=incremental,
            sku=sku,
        )
        return result.id

    def list_snapshots(self, tag_filter: Mapping[str, str]) -> list[SnapshotRecord]:
        errors = _core_errors()
        records: list[SnapshotRecord] = []
        try:
            for snap in self._get_client().snapshots.list():
                tags = dict(snap.tags or {})
                if not tags_match(tags, tag_filter):
                    continue
                resource_group, _ = parse_resource_id(snap.id)
                records.append(
                    SnapshotRecord(
                        snapshot_id=snap.id,
                        name=snap.name,
                        source_volume_id=(
                            snap.creation_data.source_resource_id if snap.creation_data else None
                        ),
                        incremental=bool(snap.incremental),
                        sku=snap.sku.name if snap.sku else None,
                        created_at=snap.time_created,
                        tags=tags,
                        scope=resource_group,
                    )
                )
        except errors.AzureError as e:
            raise ProviderCallError.call_failed("azure", "snapshots.list", str(e)) from e

        logger.debug("azure_snapshots_listed", count=len(records), tag_filter=dict(tag_filter))
        return records

    def delete_snapshot(self, snapshot_id: str, scope: str | None = None) -> None:
        errors = _core_errors()
        resource_group, name = parse_resource_id(snapshot_id)
        resource_group = resource_group or scope
        if not resource_group:
            raise DeleteError.delete_failed(snapshot_id, "resource group unknown")

        try:
            self._get_client().snapshots.begin_delete(resource_group, name).result()
        except errors.AzureError as e:
            raise DeleteError.delete_failed(snapshot_id, str(e), cause=e) from e
        logger.info("azure_snapshot_deleted", snapshot_id=snapshot_id)
