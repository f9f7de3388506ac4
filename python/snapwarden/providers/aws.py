"""
AWS EC2 / EBS provider.

Instances are looked up by instance id (``i-...``) or ``Name`` tag, volumes
by volume id (``vol-...``) or ``Name`` tag. EBS has no snapshot name field,
so the generated name travels in the ``Name`` tag; EBS snapshots are always
incremental, so the requested strategy and SKU are not sent and the
strategy is read back from the ``BackupType`` tag.

Clients are created lazily and cached per region.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from snapwarden.exceptions import (
    CreateError,
    DeleteError,
    ProviderCallError,
    ProviderEnvironmentError,
)
from snapwarden.logging import get_logger
from snapwarden.metadata import TAG_BACKUP_TYPE, TAG_NAME, parse_backup_type
from snapwarden.models import (
    BackupType,
    DeviceMapping,
    InstanceInfo,
    SnapshotRecord,
    VolumeInfo,
)
from snapwarden.providers.base import CloudProvider

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = get_logger(__name__)

_NOT_FOUND_CODES = frozenset(
    {
        "InvalidInstanceID.NotFound",
        "InvalidInstanceID.Malformed",
        "InvalidVolume.NotFound",
        "InvalidVolumeID.Malformed",
    }
)


def tag_list_to_dict(tags: list[dict[str, str]] | None) -> dict[str, str]:
    """Convert an AWS ``[{"Key": ..., "Value": ...}]`` list to a mapping."""
    return {t["Key"]: t.get("Value", "") for t in tags or [] if "Key" in t}


def tag_filters(tag_filter: Mapping[str, str]) -> list[dict[str, Any]]:
    """Build ``tag:Key`` filters for describe calls."""
    return [{"Name": f"tag:{key}", "Values": [value]} for key, value in tag_filter.items()]


def _sdk_errors() -> tuple[type[Exception], ...]:
    try:
        from botocore.exceptions import BotoCoreError, ClientError
    except ImportError as e:
        raise ProviderEnvironmentError.sdk_missing("aws", "boto3") from e
    return (ClientError, BotoCoreError)


def _error_code(error: Exception) -> str:
    response = getattr(error, "response", None) or {}
    return str(response.get("Error", {}).get("Code", ""))


class AwsProvider(CloudProvider):
    """
    EC2 provider backed by boto3.

    Args:
        region: Default region; per-call scopes override it.
        profile: Named credentials profile.
        session: Pre-built boto3 session (mainly for tests).
    """

    def __init__(
        self,
        region: str | None = None,
        profile: str | None = None,
        session: Any = None,
    ) -> None:
        self._region = region
        self._profile = profile
        self._session = session
        self._clients: dict[str | None, Any] = {}

        logger.info("aws_provider_initialized", region=region, profile=profile)

    @property
    def name(self) -> str:
        return "aws"

    def _get_session(self) -> Any:
        if self._session is None:
            try:
                import boto3
            except ImportError as e:
                raise ProviderEnvironmentError.sdk_missing("aws", "boto3") from e
            self._session = boto3.Session(profile_name=self._profile)
        return self._session

    def _client(self, region: str | None = None) -> Any:
        region = region or self._region
        if region not in self._clients:
            kwargs = {"region_name": region} if region else {}
            self._clients[region] = self._get_session().client("ec2", **kwargs)
        return self._clients[region]

    def check_environment(self) -> None:
        kwargs = {"region_name": self._region} if self._region else {}
        try:
            sts = self._get_session().client("sts", **kwargs)
            identity = sts.get_caller_identity()
        except ProviderEnvironmentError:
            raise
        except Exception as e:
            raise ProviderEnvironmentError.credentials_missing("aws", str(e), cause=e) from e
        logger.info("aws_identity_verified", account=identity.get("Account"))

    def find_instance(self, identifier: str, scope: str) -> InstanceInfo | None:
        if identifier.startswith("i-"):
            kwargs: dict[str, Any] = {"InstanceIds": [identifier]}
        else:
            kwargs = {"Filters": tag_filters({TAG_NAME: identifier})}

        response = self._describe("describe_instances", scope, **kwargs)
        instances = [
            inst
            for reservation in (response or {}).get("Reservations", [])
            for inst in reservation.get("Instances", [])
        ]
        if not instances:
            return None

        inst = instances[0]
        devices = [
            DeviceMapping(device_name=b["DeviceName"], volume_id=b["Ebs"]["VolumeId"])
            for b in inst.get("BlockDeviceMappings", [])
            if b.get("DeviceName") and b.get("Ebs", {}).get("VolumeId")
        ]
        return InstanceInfo(
            instance_id=inst["InstanceId"],
            scope=scope,
            root_device_name=inst.get("RootDeviceName"),
            devices=devices,
        )

    def find_volume(self, identifier: str, scope: str) -> VolumeInfo | None:
        if identifier.startswith("vol-"):
            kwargs: dict[str, Any] = {"VolumeIds": [identifier]}
        else:
            kwargs = {"Filters": tag_filters({TAG_NAME: identifier})}

        response = self._describe("describe_volumes", scope, **kwargs)
        volumes = (response or {}).get("Volumes", [])
        if not volumes:
            return None

        volume = volumes[0]
        tags = tag_list_to_dict(volume.get("Tags"))
        return VolumeInfo(
            volume_id=volume["VolumeId"],
            scope=scope,
            name=tags.get(TAG_NAME),
            sku=volume.get("VolumeType"),
            location=volume.get("AvailabilityZone"),
        )

    def _describe(self, operation: str, region: str, **kwargs: Any) -> dict[str, Any] | None:
        try:
            return getattr(self._client(region), operation)(**kwargs)
        except _sdk_errors() as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return None
            raise ProviderCallError.call_failed("aws", operation, str(e)) from e

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
        all_tags = {TAG_NAME: name, **dict(tags)}
        try:
            response = self._client(scope).create_snapshot(
                VolumeId=source_volume_id,
                Description=description,
                TagSpecifications=[
                    {
                        "ResourceType": "snapshot",
                        "Tags": [{"Key": k, "Value": v} for k, v in all_tags.items()],
                    }
                ],
            )
        except _sdk_errors() as e:
            raise CreateError.create_failed(
                source_volume_id, name, incremental, str(e), cause=e
            ) from e

        snapshot_id = response["SnapshotId"]
        logger.info(
            "aws_snapshot_created",
            snapshot_id=snapshot_id,
            volume_id=source_volume_id,
            name=name,
        )
        return snapshot_id

    def list_snapshots(self, tag_filter: Mapping[str, str]) -> list[SnapshotRecord]:
        records: list[SnapshotRecord] = []
        try:
            paginator = self._client().get_paginator("describe_snapshots")
            for page in paginator.paginate(OwnerIds=["self"], Filters=tag_filters(tag_filter)):
                for snap in page.get("Snapshots", []):
                    tags = tag_list_to_dict(snap.get("Tags"))
                    records.append(
                        SnapshotRecord(
                            snapshot_id=snap["SnapshotId"],
                            name=tags.get(TAG_NAME),
                            source_volume_id=snap.get("VolumeId"),
                            incremental=(
                                parse_backup_type(tags.get(TAG_BACKUP_TYPE))
                                == BackupType.INCREMENTAL
                            ),
                            created_at=snap.get("StartTime"),
                            tags=tags,
                            scope=self._region,
                        )
                    )
        except _sdk_errors() as e:
            raise ProviderCallError.call_failed("aws", "describe_snapshots", str(e)) from e

        logger.debug("aws_snapshots_listed", count=len(records), tag_filter=dict(tag_filter))
        return records

    def delete_snapshot(self, snapshot_id: str, scope: str | None = None) -> None:
        try:
            self._client(scope).delete_snapshot(SnapshotId=snapshot_id)
        except _sdk_errors() as e:
            raise DeleteError.delete_failed(snapshot_id, str(e), cause=e) from e
        logger.info("aws_snapshot_deleted", snapshot_id=snapshot_id)
