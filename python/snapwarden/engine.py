"""
Batch engine for snapshot creation.

Processes server-list entries strictly one at a time, in the order given:
resolve, select disks, then preview or create. Configuration errors and
failed lookups invalidate only their own entry; a provider environment error
aborts the whole run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from snapwarden.creator import DiskOutcome, PlannedSnapshot, SnapshotCreator
from snapwarden.events import EventEmitter, EventType, LifecycleEvent
from snapwarden.exceptions import (
    ConfigurationError,
    ProviderCallError,
    ResolutionError,
    SnapwardenError,
)
from snapwarden.logging import get_logger, with_context
from snapwarden.resolver import TargetResolver, select_disks
from snapwarden.serverlist import ServerlistEntry

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from snapwarden.events import LifecycleObserver
    from snapwarden.models import RetentionRequest, Target
    from snapwarden.providers.base import CloudProvider

logger = get_logger(__name__)


@dataclass
class EntryOutcome:
    """Result of processing one entry."""

    line_number: int | None
    target: str | None
    request: RetentionRequest | None = None
    resolved: Target | None = None
    error: SnapwardenError | None = None
    planned: list[PlannedSnapshot] = field(default_factory=list)
    disks: list[DiskOutcome] = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.error is not None

    @property
    def success(self) -> bool:
        return self.error is None and all(d.success for d in self.disks)

    def preview_rows(self) -> list[dict[str, Any]]:
        if self.request is None:
            return []
        return [p.to_row(self.request) for p in self.planned]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and JSON output."""
        return {
            "line_number": self.line_number,
            "target": self.target,
            "kind": getattr(self.resolved, "kind", None),
            "skipped": self.skipped,
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
            "planned": [p.name for p in self.planned],
            "disks": [d.to_dict() for d in self.disks],
        }


@dataclass
class BatchResult:
    """Aggregate result of a batch run."""

    dry_run: bool
    run_time: datetime
    entries: list[EntryOutcome] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def disks_succeeded(self) -> int:
        return sum(1 for e in self.entries for d in e.disks if d.success)

    @property
    def disks_failed(self) -> int:
        return sum(1 for e in self.entries for d in e.disks if not d.success)

    @property
    def entries_skipped(self) -> int:
        return sum(1 for e in self.entries if e.skipped)

    @property
    def success(self) -> bool:
        return all(e.success for e in self.entries)

    def preview_rows(self) -> list[dict[str, Any]]:
        return [row for e in self.entries for row in e.preview_rows()]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and JSON output."""
        return {
            "dry_run": self.dry_run,
            "run_time": self.run_time.isoformat(),
            "entries": len(self.entries),
            "entries_skipped": self.entries_skipped,
            "disks_succeeded": self.disks_succeeded,
            "disks_failed": self.disks_failed,
            "success": self.success,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class SnapshotEngine:
    """
    Runs a batch of snapshot requests against one provider.

    Usage:
        engine = SnapshotEngine.for_provider(provider)
        result = engine.run(parse_serverlist("serverlist.txt"), dry_run=True)
    """

    def __init__(
        self,
        provider: CloudProvider,
        resolver: TargetResolver,
        creator: SnapshotCreator,
        emitter: EventEmitter,
    ) -> None:
        self._provider = provider
        self._resolver = resolver
        self._creator = creator
        self._emitter = emitter

    @classmethod
    def for_provider(
        cls,
        provider: CloudProvider,
        observers: Sequence[LifecycleObserver] | None = None,
        name_suffix: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> SnapshotEngine:
        """Wire a resolver and creator around a provider."""
        emitter = EventEmitter(observers)
        kwargs: dict[str, Any] = {"emitter": emitter, "clock": clock}
        if name_suffix:
            kwargs["name_suffix"] = name_suffix
        return cls(
            provider=provider,
            resolver=TargetResolver(provider),
            creator=SnapshotCreator(provider, **kwargs),
            emitter=emitter,
        )

    def run(
        self,
        entries: Sequence[ServerlistEntry | RetentionRequest],
        dry_run: bool = True,
    ) -> BatchResult:
        """
        Process every entry sequentially.

        Args:
            entries: Parsed server-list entries or already-validated requests.
            dry_run: Preview only; no create calls are issued.

        Returns:
            Per-entry outcomes.

        Raises:
            ProviderEnvironmentError: If the provider is unusable.
        """
        start = time.perf_counter()
        self._provider.check_environment()

        run_time = self._creator.now()
        result = BatchResult(dry_run=dry_run, run_time=run_time)

        self._emitter.emit(
            LifecycleEvent(
                event_type=EventType.RUN_STARTED,
                message=f"Mode: {'dry-run' if dry_run else 'run'}",
                details={"provider": self._provider.name, "entries": len(entries)},
            )
        )

        for position, entry in enumerate(entries, start=1):
            if isinstance(entry, ServerlistEntry):
                line_number, request, error = entry.line_number, entry.request, entry.error
            else:
                line_number, request, error = position, entry, None

            target_id = request.target if request else None
            with with_context(entry=line_number, target=target_id):
                logger.debug("entry_processing", position=position, dry_run=dry_run)
                result.entries.append(
                    self._process(line_number, request, error, run_time, dry_run, entry)
                )

        result.duration_seconds = time.perf_counter() - start
        self._emitter.emit(
            LifecycleEvent(
                event_type=EventType.RUN_COMPLETED,
                message=f"Mode: {'dry-run' if dry_run else 'run'}",
                details=result.to_dict(),
            )
        )
        return result

    def _process(
        self,
        line_number: int | None,
        request: RetentionRequest | None,
        error: ConfigurationError | None,
        run_time: datetime,
        dry_run: bool,
        entry: ServerlistEntry | RetentionRequest,
    ) -> EntryOutcome:
        if request is None:
            error = error or ConfigurationError(message="Entry has no request")
            self._emitter.emit(
                LifecycleEvent(
                    event_type=EventType.ENTRY_REJECTED,
                    message=f"Skipping invalid line {line_number}",
                    error=str(error),
                    details={"raw": getattr(entry, "raw", None)},
                )
            )
            return EntryOutcome(line_number=line_number, target=None, error=error)

        outcome = EntryOutcome(line_number=line_number, target=request.target, request=request)

        try:
            target = self._resolver.resolve(request.target, request.scope)
            outcome.resolved = target
            disks = select_disks(target, request.selector)
        except (ResolutionError, ProviderCallError) as e:
            outcome.error = e
            self._emitter.emit(
                LifecycleEvent(
                    event_type=EventType.RESOLUTION_FAILED,
                    target=request.target,
                    message=e.message,
                    error=str(e),
                    details={"scope": request.scope, "selector": request.selector.value},
                )
            )
            return outcome

        self._emitter.emit(
            LifecycleEvent(
                event_type=EventType.TARGET_RESOLVED,
                target=request.target,
                details={
                    "kind": getattr(target, "kind", None),
                    "scope": request.scope,
                    "selector": request.selector.value,
                    "backup_type": request.backup_type.value,
                    "retention_days": request.retention_days,
                    "disks": [d.volume_id for d in disks],
                },
            )
        )

        if dry_run:
            outcome.planned = self._creator.preview(request, target, disks, run_time)
        else:
            outcome.disks = self._creator.create(request, target, disks, run_time)
            outcome.planned = [d.planned for d in outcome.disks]
        return outcome
