"""
Retention evaluation and cleanup of automated snapshots.

Cleanup needs no resolver: it scans the provider for snapshots tagged
AutomatedBackup=true, reads each one's RetentionDays tag through the
metadata parser, and deletes those whose whole-day age has reached the
retention window.

Eligibility is decided once per scan; it is not re-checked between the scan
and each delete call, so a tag edited concurrently by someone else is not
observed until the next run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from snapwarden.events import EventEmitter, EventType, LifecycleEvent
from snapwarden.exceptions import ProviderEnvironmentError
from snapwarden.logging import get_logger
from snapwarden.metadata import (
    AUTOMATED_VALUE,
    DEFAULT_RETENTION_DAYS,
    TAG_AUTOMATED,
    TAG_TARGET,
    normalize_timestamp,
    parse_metadata,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from snapwarden.models import SnapshotRecord
    from snapwarden.providers.base import CloudProvider

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400


def age_in_days(created_at: datetime, now: datetime) -> int:
    """Whole days elapsed between ``created_at`` and ``now`` (floored)."""
    return int((now - created_at).total_seconds() // SECONDS_PER_DAY)


def is_eligible(age_days: int, retention_days: int) -> bool:
    """A snapshot is eligible once its age reaches the retention window."""
    return age_days >= retention_days


@dataclass(frozen=True)
class RetentionDecision:
    """Eviction decision for one scanned snapshot."""

    record: SnapshotRecord
    retention_days: int
    created_at: datetime
    age_days: int
    eligible: bool
    retention_defaulted: bool = False

    @property
    def snapshot_id(self) -> str:
        return self.record.snapshot_id

    def to_row(self) -> dict[str, Any]:
        """Convert to a cleanup report row."""
        return {
            "snapshot_id": self.record.snapshot_id,
            "retention": self.retention_days,
            "start": self.created_at.date().isoformat(),
            "age": self.age_days,
            "eligible": "YES" if self.eligible else "NO",
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and JSON output."""
        return {
            "snapshot_id": self.record.snapshot_id,
            "name": self.record.name,
            "target": self.record.tags.get(TAG_TARGET),
            "retention_days": self.retention_days,
            "retention_defaulted": self.retention_defaulted,
            "created_at": self.created_at.isoformat(),
            "age_days": self.age_days,
            "eligible": self.eligible,
        }


@dataclass
class CleanupResult:
    """Result of a cleanup run."""

    dry_run: bool = True
    scanned: int = 0
    eligible: int = 0
    deleted: int = 0
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    decisions: list[RetentionDecision] = field(default_factory=list)
    duration_seconds: float = 0.0
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: datetime | None = None

    @property
    def success(self) -> bool:
        """Check if cleanup completed without delete errors."""
        return len(self.failed) == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "dry_run": self.dry_run,
            "scanned": self.scanned,
            "eligible": self.eligible,
            "deleted": self.deleted,
            "failed": self.failed,
            "failed_count": len(self.failed),
            "skipped": self.skipped,
            "duration_seconds": round(self.duration_seconds, 3),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "success": self.success,
        }


class RetentionEvaluator:
    """
    Scans automated snapshots and evicts the ones past retention.

    Usage:
        evaluator = RetentionEvaluator(provider)
        rows = [d.to_row() for d in evaluator.preview()]
        result = evaluator.apply()
        print(result.deleted)
    """

    def __init__(
        self,
        provider: CloudProvider,
        emitter: EventEmitter | None = None,
        default_retention_days: int = DEFAULT_RETENTION_DAYS,
        filter_tag: Mapping[str, str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._provider = provider
        self._emitter = emitter or EventEmitter()
        self._default_retention_days = default_retention_days
        self._filter_tag = dict(filter_tag) if filter_tag else {TAG_AUTOMATED: AUTOMATED_VALUE}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        logger.debug(
            "retention_evaluator_initialized",
            provider=provider.name,
            default_retention_days=default_retention_days,
            filter_tag=self._filter_tag,
        )

    def scan(self) -> list[SnapshotRecord]:
        """List tagged snapshots, keeping only those the metadata marks automated."""
        records = self._provider.list_snapshots(self._filter_tag)
        automated = [r for r in records if parse_metadata(r.tags, r.created_at).automated]
        logger.info(
            "retention_scan_completed",
            listed=len(records),
            automated=len(automated),
        )
        return automated

    def evaluate(
        self,
        records: Sequence[SnapshotRecord],
        now: datetime | None = None,
        skipped: list[str] | None = None,
    ) -> list[RetentionDecision]:
        """
        Decide eligibility for each record.

        Records without a creation timestamp cannot be aged; they are
        reported and left alone.
        """
        now = normalize_timestamp(now or self._clock())
        decisions: list[RetentionDecision] = []

        for record in records:
            meta = parse_metadata(record.tags, record.created_at, self._default_retention_days)
            if meta.created_at is None:
                logger.warning("retention_no_creation_time", snapshot_id=record.snapshot_id)
                if skipped is not None:
                    skipped.append(record.snapshot_id)
                continue

            age = age_in_days(meta.created_at, now)
            decision = RetentionDecision(
                record=record,
                retention_days=meta.retention_days,
                created_at=meta.created_at,
                age_days=age,
                eligible=is_eligible(age, meta.retention_days),
                retention_defaulted=meta.retention_defaulted,
            )
            decisions.append(decision)
            self._emitter.emit(
                LifecycleEvent(
                    event_type=EventType.EVICTION_EVALUATED,
                    target=record.tags.get(TAG_TARGET),
                    snapshot_id=record.snapshot_id,
                    snapshot_name=record.name,
                    details=decision.to_dict(),
                )
            )

        return decisions

    def preview(self, now: datetime | None = None) -> list[RetentionDecision]:
        """Evaluate every scanned snapshot without deleting anything."""
        return self.evaluate(self.scan(), now)

    def apply(self, now: datetime | None = None, dry_run: bool = False) -> CleanupResult:
        """
        Delete every eligible snapshot.

        Each deletion is independent: a failed delete is recorded and the
        remaining candidates are still processed.

        Raises:
            ProviderEnvironmentError: If the provider becomes unusable.
        """
        start = time.perf_counter()
        result = CleanupResult(dry_run=dry_run)

        logger.info("retention_started", dry_run=dry_run, filter_tag=self._filter_tag)

        records = self.scan()
        result.scanned = len(records)
        result.decisions = self.evaluate(records, now, skipped=result.skipped)
        candidates = [d for d in result.decisions if d.eligible]
        result.eligible = len(candidates)

        if not dry_run:
            for decision in candidates:
                self._delete(decision, result)

        result.end_time = datetime.now(timezone.utc)
        result.duration_seconds = time.perf_counter() - start

        logger.info("retention_completed", result=result.to_dict())
        return result

    def _delete(self, decision: RetentionDecision, result: CleanupResult) -> None:
        record = decision.record
        try:
            self._provider.delete_snapshot(record.snapshot_id, scope=record.scope)
        except ProviderEnvironmentError:
            raise
        except Exception as e:
            result.failed.append(record.snapshot_id)
            self._emitter.emit(
                LifecycleEvent(
                    event_type=EventType.DELETE_FAILED,
                    target=record.tags.get(TAG_TARGET),
                    snapshot_id=record.snapshot_id,
                    error=str(e),
                )
            )
            return

        result.deleted += 1
        self._emitter.emit(
            LifecycleEvent(
                event_type=EventType.SNAPSHOT_DELETED,
                target=record.tags.get(TAG_TARGET),
                snapshot_id=record.snapshot_id,
                message=(
                    f"DELETE: {record.snapshot_id} "
                    f"(age {decision.age_days} >= {decision.retention_days})"
                ),
            )
        )
