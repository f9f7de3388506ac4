"""
Core data models for the snapshot lifecycle engine.

Targets, disks and requests are immutable value objects; snapshot records
are read-only views of provider-side state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class BackupType(str, Enum):
    """Snapshot strategy requested by an entry or actually used by a create call."""

    INCREMENTAL = "incremental"
    FULL = "full"


class ScopeSelector(str, Enum):
    """Which subset of a target's disks a request applies to."""

    OS = "os"
    DATA = "data"
    BOTH = "both"


class DiskRole(str, Enum):
    """Role of a disk within its target."""

    ROOT = "root"
    DATA = "data"


class DiskRef(BaseModel):
    """A single volume to snapshot, with its role and 1-based ordinal within that role."""

    model_config = ConfigDict(frozen=True)

    volume_id: str = Field(..., description="Provider volume identifier")
    role: DiskRole = Field(..., description="root or data")
    index: int = Field(default=1, ge=1, description="Ordinal within the role")


class Target(BaseModel, ABC):
    """A resolved snapshot target. Always one of the concrete subclasses."""

    model_config = ConfigDict(frozen=True)

    identifier: str = Field(..., description="Identifier the entry referred to")
    scope: str = Field(..., description="Resource group or region")

    @property
    @abstractmethod
    def disks(self) -> list[DiskRef]:
        """All disks of the target in snapshot order."""


class ComputeInstance(Target):
    """A VM / EC2 instance with one root volume and zero or more data volumes."""

    kind: Literal["instance"] = "instance"
    root: DiskRef
    data: list[DiskRef] = Field(default_factory=list)

    @property
    def disks(self) -> list[DiskRef]:
        return [self.root, *self.data]


class StandaloneVolume(Target):
    """A single managed disk / EBS volume referenced directly."""

    kind: Literal["volume"] = "volume"
    disk: DiskRef

    @property
    def disks(self) -> list[DiskRef]:
        return [self.disk]


class RetentionRequest(BaseModel):
    """A validated request to snapshot one target."""

    model_config = ConfigDict(frozen=True)

    target: str = Field(..., min_length=1, description="Target identifier or name")
    scope: str = Field(..., min_length=1, description="Resource group or region")
    backup_type: BackupType = Field(default=BackupType.INCREMENTAL)
    retention_days: int = Field(..., ge=0, description="Days to keep the snapshot")
    selector: ScopeSelector = Field(default=ScopeSelector.BOTH)
    reason: str = Field(default="", description="Free-text reason recorded in tags")


class DeviceMapping(BaseModel):
    """One entry of an instance's block-device map."""

    model_config = ConfigDict(frozen=True)

    device_name: str
    volume_id: str


class InstanceInfo(BaseModel):
    """What a provider reports about a compute instance."""

    instance_id: str
    scope: str
    root_device_name: str | None = None
    devices: list[DeviceMapping] = Field(default_factory=list)
    os_disk_name: str | None = Field(
        default=None,
        description="Name of the OS disk, used when the root device has no volume id",
    )


class VolumeInfo(BaseModel):
    """What a provider reports about a volume / managed disk."""

    volume_id: str
    scope: str
    name: str | None = None
    sku: str | None = None
    location: str | None = None


class SnapshotRecord(BaseModel):
    """Provider-side snapshot as read back by list calls."""

    model_config = ConfigDict(frozen=True)

    snapshot_id: str
    name: str | None = None
    source_volume_id: str | None = None
    incremental: bool = False
    sku: str | None = None
    created_at: datetime | None = None
    tags: dict[str, str] = Field(default_factory=dict)
    scope: str | None = None
