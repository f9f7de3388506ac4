"""
Snapshot tag schema.

Every snapshot carries a fixed tag mapping that makes it self-describing;
the mapping is the only persistent state, so cleanup and SKU lookups
reconstruct everything they need from it. Reading is schema-on-read:
unknown keys are ignored and missing optional keys get defaults.

This module performs no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from snapwarden.models import BackupType

if TYPE_CHECKING:
    from collections.abc import Mapping

    from snapwarden.models import RetentionRequest

TAG_TARGET = "Target"
TAG_REASON = "Reason"
TAG_BACKUP_TYPE = "BackupType"
TAG_DATE = "Date"
TAG_TIME = "Time"
TAG_AUTOMATED = "AutomatedBackup"
TAG_RETENTION_DAYS = "RetentionDays"
TAG_NAME = "Name"
TAG_SCOPE = "Scope"

AUTOMATED_VALUE = "true"
DEFAULT_RETENTION_DAYS = 14

DATE_FORMAT = "%d-%m-%Y"
TIME_FORMAT = "%H:%M:%S"


@dataclass(frozen=True)
class ParsedMetadata:
    """Retention-relevant view of a snapshot's tags."""

    automated: bool
    retention_days: int
    created_at: datetime | None
    retention_defaulted: bool = False
    target: str | None = None
    backup_type: BackupType | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "automated": self.automated,
            "retention_days": self.retention_days,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "retention_defaulted": self.retention_defaulted,
            "target": self.target,
            "backup_type": self.backup_type.value if self.backup_type else None,
        }


def build_tags(
    request: RetentionRequest,
    backup_type: BackupType,
    run_time: datetime,
    name: str | None = None,
    kind: str | None = None,
) -> dict[str, str]:
    """
    Build the tag mapping attached to a snapshot at creation.

    Args:
        request: The entry being snapshotted.
        backup_type: The strategy of the create call being issued, which may
            differ from ``request.backup_type`` after a fallback.
        run_time: Start time of the run; shared by every snapshot of the run.
        name: Optional snapshot name, recorded as ``Name`` (EBS has no name field).
        kind: Optional disk kind (OS, DATA, DISK), recorded as ``Scope``.

    Returns:
        Tag mapping with string keys and values.
    """
    tags = {
        TAG_TARGET: request.target,
        TAG_REASON: request.reason,
        TAG_BACKUP_TYPE: backup_type.value,
        TAG_DATE: run_time.strftime(DATE_FORMAT),
        TAG_TIME: run_time.strftime(TIME_FORMAT),
        TAG_AUTOMATED: AUTOMATED_VALUE,
        TAG_RETENTION_DAYS: str(request.retention_days),
    }
    if name:
        tags[TAG_NAME] = name
    if kind:
        tags[TAG_SCOPE] = kind
    return tags


def is_automated(tags: Mapping[str, str] | None) -> bool:
    """
    Check whether the tags mark a snapshot as created by this system.

    Only ``AutomatedBackup=true`` counts (case-insensitive); snapshots tagged
    any other way stay invisible to SKU lookups and cleanup.
    """
    if not tags:
        return False
    return str(tags.get(TAG_AUTOMATED, "")).strip().lower() == AUTOMATED_VALUE


def parse_retention_days(
    value: Any, default: int = DEFAULT_RETENTION_DAYS
) -> tuple[int, bool]:
    """
    Parse a RetentionDays tag value.

    Returns:
        Tuple of (retention_days, defaulted). Missing, non-numeric and
        negative values yield ``(default, True)``.
    """
    if value is None:
        return default, True
    try:
        days = int(str(value).strip())
    except ValueError:
        return default, True
    if days < 0:
        return default, True
    return days, False


def parse_backup_type(value: Any) -> BackupType | None:
    """Parse a BackupType tag, accepting the short forms older snapshots carry."""
    if value is None:
        return None
    normalized = str(value).strip().lower()
    if normalized in ("inc", "incr", "incremental", "i"):
        return BackupType.INCREMENTAL
    if normalized in ("full", "f"):
        return BackupType.FULL
    return None


def normalize_timestamp(value: datetime | str | None) -> datetime | None:
    """Coerce a provider timestamp to an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_metadata(
    tags: Mapping[str, str] | None,
    created_at: datetime | str | None,
    default_retention_days: int = DEFAULT_RETENTION_DAYS,
) -> ParsedMetadata:
    """
    Parse a snapshot's tags into ``(automated, retention_days, created_at)``.

    Never raises: a garbage RetentionDays value falls back to
    ``default_retention_days`` and is flagged as defaulted.
    """
    tags = tags or {}
    retention_days, defaulted = parse_retention_days(
        tags.get(TAG_RETENTION_DAYS), default_retention_days
    )
    return ParsedMetadata(
        automated=is_automated(tags),
        retention_days=retention_days,
        created_at=normalize_timestamp(created_at),
        retention_defaulted=defaulted,
        target=tags.get(TAG_TARGET),
        backup_type=parse_backup_type(tags.get(TAG_BACKUP_TYPE)),
    )
