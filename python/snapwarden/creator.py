"""
Snapshot creation with incremental-to-full fallback.

For each selected disk the creator walks an attempt chain:

    incremental request:  [Attempt(incremental, sku), Attempt(full)]
    full request:         [Attempt(full)]

The first attempt that succeeds ends the chain; a full attempt is always the
last link, so a failed incremental is always followed by a full attempt and a
full attempt is never followed by anything. The BackupType tag records the
attempt that succeeded.

Any failure of the incremental call triggers the fallback, not only an SKU
mismatch, so unrelated transient errors (throttling, quota) are also masked
by a full snapshot. Each fallback event carries the original error.

Preview and apply share ``plan()``; only apply issues create calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from snapwarden.events import EventEmitter, EventType, LifecycleEvent
from snapwarden.exceptions import ProviderCallError, ProviderEnvironmentError
from snapwarden.logging import get_logger
from snapwarden.metadata import (
    AUTOMATED_VALUE,
    TAG_AUTOMATED,
    TAG_TARGET,
    build_tags,
    is_automated,
    normalize_timestamp,
)
from snapwarden.models import BackupType, DiskRole, StandaloneVolume

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from snapwarden.models import DiskRef, RetentionRequest, SnapshotRecord, Target
    from snapwarden.providers.base import CloudProvider

logger = get_logger(__name__)

DEFAULT_NAME_SUFFIX = "automated-backup"
NAME_DATE_FORMAT = "%d-%m-%Y"
NAME_TIME_FORMAT = "%H-%M-%S"


@dataclass(frozen=True)
class Attempt:
    """One link of the creation chain."""

    backup_type: BackupType
    sku: str | None = None

    @property
    def incremental(self) -> bool:
        return self.backup_type == BackupType.INCREMENTAL


def plan_attempts(backup_type: BackupType, sku: str | None = None) -> tuple[Attempt, ...]:
    """Build the attempt chain for a requested backup type."""
    if backup_type == BackupType.INCREMENTAL:
        return (Attempt(BackupType.INCREMENTAL, sku), Attempt(BackupType.FULL))
    return (Attempt(BackupType.FULL),)


def latest_incremental_sku(
    records: Sequence[SnapshotRecord], source_volume_id: str | None = None
) -> str | None:
    """
    Pick the SKU of the most recent automated incremental snapshot.

    Snapshots of ``source_volume_id`` are preferred; otherwise any snapshot
    in ``records`` qualifies.
    """
    candidates = [
        r for r in records if r.incremental and r.sku and is_automated(r.tags)
    ]
    if not candidates:
        return None

    def _newest(items: list[SnapshotRecord]) -> SnapshotRecord:
        floor = datetime.min.replace(tzinfo=timezone.utc)
        return max(items, key=lambda r: normalize_timestamp(r.created_at) or floor)

    if source_volume_id:
        same_disk = [r for r in candidates if r.source_volume_id == source_volume_id]
        if same_disk:
            return _newest(same_disk).sku
    return _newest(candidates).sku


def list_target_snapshots(provider: CloudProvider, target: str) -> list[SnapshotRecord]:
    """
    List the automated snapshots tagged with a target.

    A failed listing yields an empty list: the incremental attempt then runs
    without an SKU rather than the disk being skipped.
    """
    try:
        return provider.list_snapshots({TAG_AUTOMATED: AUTOMATED_VALUE, TAG_TARGET: target})
    except ProviderCallError as e:
        logger.warning("sku_lookup_failed", target=target, error=str(e))
        return []


def find_existing_incremental_sku(
    provider: CloudProvider, target: str, source_volume_id: str | None = None
) -> str | None:
    """Query the provider for the last known incremental SKU of a target."""
    return latest_incremental_sku(list_target_snapshots(provider, target), source_volume_id)


def disk_kind(target: Target, disk: DiskRef) -> str:
    """Human-facing disk kind recorded in the Scope tag and preview rows."""
    if isinstance(target, StandaloneVolume):
        return "DISK"
    return "OS" if disk.role == DiskRole.ROOT else "DATA"


def snapshot_name(
    target: Target,
    disk: DiskRef,
    run_time: datetime,
    suffix: str = DEFAULT_NAME_SUFFIX,
) -> str:
    """
    Generate a deterministic snapshot name.

    Standalone volumes get ``{target}-{date}-{time}-{suffix}``; instance
    disks append ``-{role}-{index}`` so names never collide within a run.
    """
    base = (
        f"{target.identifier}-{run_time.strftime(NAME_DATE_FORMAT)}"
        f"-{run_time.strftime(NAME_TIME_FORMAT)}-{suffix}"
    )
    if isinstance(target, StandaloneVolume):
        return base
    return f"{base}-{disk.role.value}-{disk.index}"


@dataclass(frozen=True)
class PlannedSnapshot:
    """A snapshot the creator would create (preview) or will create (apply)."""

    target: str
    scope: str
    disk: DiskRef
    kind: str
    name: str

    def to_row(self, request: RetentionRequest) -> dict[str, Any]:
        """Convert to a preview table row."""
        return {
            "target": self.target,
            "scope": self.scope,
            "selector": request.selector.value.upper(),
            "type": request.backup_type.value,
            "retention": request.retention_days,
            "kind": self.kind,
            "volume": self.disk.volume_id,
            "name": self.name,
            "reason": request.reason,
        }


@dataclass
class AttemptResult:
    """Outcome of a single create call."""

    attempt: Attempt
    success: bool
    snapshot_id: str | None = None
    error: str | None = None


@dataclass
class DiskOutcome:
    """Final outcome of snapshotting one disk."""

    planned: PlannedSnapshot
    attempts: list[AttemptResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return any(a.success for a in self.attempts)

    @property
    def backup_type_used(self) -> BackupType | None:
        for result in self.attempts:
            if result.success:
                return result.attempt.backup_type
        return None

    @property
    def snapshot_id(self) -> str | None:
        for result in self.attempts:
            if result.success:
                return result.snapshot_id
        return None

    @property
    def fell_back(self) -> bool:
        return len(self.attempts) > 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and JSON output."""
        return {
            "target": self.planned.target,
            "volume_id": self.planned.disk.volume_id,
            "kind": self.planned.kind,
            "name": self.planned.name,
            "success": self.success,
            "snapshot_id": self.snapshot_id,
            "backup_type": self.backup_type_used.value if self.backup_type_used else None,
            "fell_back": self.fell_back,
            "errors": [a.error for a in self.attempts if a.error],
        }


class SnapshotCreator:
    """Plans and issues snapshot create calls for resolved targets."""

    def __init__(
        self,
        provider: CloudProvider,
        emitter: EventEmitter | None = None,
        name_suffix: str = DEFAULT_NAME_SUFFIX,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._provider = provider
        self._emitter = emitter or EventEmitter()
        self._name_suffix = name_suffix
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        """Current time from the creator's clock."""
        return self._clock()

    def plan(
        self, target: Target, disks: Sequence[DiskRef], run_time: datetime
    ) -> list[PlannedSnapshot]:
        """Name every selected disk. Shared by preview and apply."""
        return [
            PlannedSnapshot(
                target=target.identifier,
                scope=target.scope,
                disk=disk,
                kind=disk_kind(target, disk),
                name=snapshot_name(target, disk, run_time, self._name_suffix),
            )
            for disk in disks
        ]

    def preview(
        self,
        request: RetentionRequest,
        target: Target,
        disks: Sequence[DiskRef],
        run_time: datetime | None = None,
    ) -> list[PlannedSnapshot]:
        """Return what ``create`` would create, without calling the provider."""
        run_time = run_time or self.now()
        planned = self.plan(target, disks, run_time)
        for item in planned:
            self._emitter.emit(
                LifecycleEvent(
                    event_type=EventType.SNAPSHOT_PREVIEWED,
                    target=item.target,
                    volume_id=item.disk.volume_id,
                    snapshot_name=item.name,
                    details=item.to_row(request),
                )
            )
        return planned

    def create(
        self,
        request: RetentionRequest,
        target: Target,
        disks: Sequence[DiskRef],
        run_time: datetime | None = None,
    ) -> list[DiskOutcome]:
        """
        Snapshot every selected disk, one at a time.

        A disk failing (after its own fallback) does not stop the others.

        Raises:
            ProviderEnvironmentError: If the provider becomes unusable.
        """
        run_time = run_time or self.now()
        planned = self.plan(target, disks, run_time)

        # One listing per target serves the SKU lookup of all its disks
        existing: list[SnapshotRecord] = []
        if request.backup_type == BackupType.INCREMENTAL:
            existing = list_target_snapshots(self._provider, request.target)

        outcomes: list[DiskOutcome] = []
        for item in planned:
            sku = None
            if request.backup_type == BackupType.INCREMENTAL:
                sku = latest_incremental_sku(existing, item.disk.volume_id)
                if sku:
                    self._emitter.emit(
                        LifecycleEvent(
                            event_type=EventType.SKU_DETECTED,
                            target=item.target,
                            volume_id=item.disk.volume_id,
                            message=f"Existing incremental SKU: {sku}",
                            details={"sku": sku},
                        )
                    )
            outcomes.append(self._create_disk(request, item, run_time, sku))
        return outcomes

    def _create_disk(
        self,
        request: RetentionRequest,
        item: PlannedSnapshot,
        run_time: datetime,
        sku: str | None,
    ) -> DiskOutcome:
        outcome = DiskOutcome(planned=item)
        chain = plan_attempts(request.backup_type, sku)

        for position, attempt in enumerate(chain):
            if position > 0:
                self._emitter.emit(
                    LifecycleEvent(
                        event_type=EventType.FALLBACK_TO_FULL,
                        target=item.target,
                        volume_id=item.disk.volume_id,
                        snapshot_name=item.name,
                        message=f"Incremental failed for {item.name}; creating FULL instead",
                        error=outcome.attempts[-1].error,
                    )
                )

            tags = build_tags(request, attempt.backup_type, run_time, name=item.name, kind=item.kind)
            try:
                snapshot_id = self._provider.create_snapshot(
                    source_volume_id=item.disk.volume_id,
                    name=item.name,
                    tags=tags,
                    incremental=attempt.incremental,
                    sku=attempt.sku,
                    scope=item.scope,
                    description=request.reason,
                )
            except ProviderEnvironmentError:
                raise
            except Exception as e:
                outcome.attempts.append(AttemptResult(attempt=attempt, success=False, error=str(e)))
                self._emitter.emit(
                    LifecycleEvent(
                        event_type=EventType.ATTEMPT_FAILED,
                        target=item.target,
                        volume_id=item.disk.volume_id,
                        snapshot_name=item.name,
                        error=str(e),
                        details={"backup_type": attempt.backup_type.value, "sku": attempt.sku},
                    )
                )
                continue

            outcome.attempts.append(
                AttemptResult(attempt=attempt, success=True, snapshot_id=snapshot_id)
            )
            self._emitter.emit(
                LifecycleEvent(
                    event_type=EventType.SNAPSHOT_CREATED,
                    target=item.target,
                    volume_id=item.disk.volume_id,
                    snapshot_name=item.name,
                    snapshot_id=snapshot_id,
                    details={"backup_type": attempt.backup_type.value, "tags": tags},
                )
            )
            return outcome

        self._emitter.emit(
            LifecycleEvent(
                event_type=EventType.DISK_FAILED,
                target=item.target,
                volume_id=item.disk.volume_id,
                snapshot_name=item.name,
                message="All create attempts failed",
                error=outcome.attempts[-1].error if outcome.attempts else None,
            )
        )
        return outcome
