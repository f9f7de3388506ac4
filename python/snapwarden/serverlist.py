"""
Server-list parsing.

A server list is a plain text file with one semicolon-delimited entry per
line. Two layouts are understood:

    azure:  target;resource_group;type;retention_days;scope;reason
    aws:    target;region;retention_days;scope;reason

Fields are whitespace-trimmed, blank lines and ``#`` comments are skipped,
and the reason keeps any further semicolons. A malformed line becomes an
entry carrying a ConfigurationError instead of aborting the parse, so the
batch can report it and move on.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from snapwarden.exceptions import ConfigurationError
from snapwarden.logging import get_logger
from snapwarden.models import BackupType, RetentionRequest, ScopeSelector

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = get_logger(__name__)

_RETENTION_PATTERN = re.compile(r"^[0-9]+$")

_BACKUP_TYPE_SYNONYMS = {
    "inc": BackupType.INCREMENTAL,
    "incr": BackupType.INCREMENTAL,
    "incremental": BackupType.INCREMENTAL,
    "i": BackupType.INCREMENTAL,
    "full": BackupType.FULL,
    "f": BackupType.FULL,
}

_SCOPE_SYNONYMS = {
    "os": ScopeSelector.OS,
    "root": ScopeSelector.OS,
    "data": ScopeSelector.DATA,
    "both": ScopeSelector.BOTH,
}


class ServerlistLayout(str, Enum):
    """Column layout of a server list."""

    AZURE = "azure"
    AWS = "aws"


@dataclass(frozen=True)
class ServerlistEntry:
    """One non-blank, non-comment line of a server list."""

    line_number: int
    raw: str
    request: RetentionRequest | None = None
    error: ConfigurationError | None = None

    @property
    def valid(self) -> bool:
        return self.request is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "line_number": self.line_number,
            "raw": self.raw,
            "valid": self.valid,
            "target": self.request.target if self.request else None,
            "error": self.error.to_dict() if self.error else None,
        }


def normalize_backup_type(
    value: str, default: BackupType = BackupType.INCREMENTAL
) -> BackupType:
    """Map a backup type synonym to a BackupType; unknown values use ``default``."""
    return _BACKUP_TYPE_SYNONYMS.get(value.strip().lower(), default)


def normalize_scope(value: str, target: str = "") -> ScopeSelector:
    """
    Map a scope synonym to a ScopeSelector.

    Raises:
        ConfigurationError: If the value is not OS|Root|Data|Both.
    """
    selector = _SCOPE_SYNONYMS.get(value.strip().lower())
    if selector is None:
        raise ConfigurationError.invalid_scope(value, target)
    return selector


def parse_retention_days(value: str, target: str = "") -> int:
    """
    Parse a retention value that must be a non-negative integer.

    Raises:
        ConfigurationError: If the value is not all digits.
    """
    value = value.strip()
    if not _RETENTION_PATTERN.match(value):
        raise ConfigurationError.invalid_retention_days(value, target)
    return int(value)


def parse_line(
    line: str,
    line_number: int,
    layout: ServerlistLayout = ServerlistLayout.AZURE,
    default_backup_type: BackupType = BackupType.INCREMENTAL,
) -> RetentionRequest:
    """
    Parse a single server-list line into a request.

    Raises:
        ConfigurationError: If required fields are missing or invalid.
    """
    if layout == ServerlistLayout.AZURE:
        fields = [f.strip() for f in line.split(";", 5)]
        fields += [""] * (6 - len(fields))
        target, scope, type_raw, retention_raw, selector_raw, reason = fields
        required = [target, scope, type_raw, retention_raw, selector_raw]
    else:
        fields = [f.strip() for f in line.split(";", 4)]
        fields += [""] * (5 - len(fields))
        target, scope, retention_raw, selector_raw, reason = fields
        type_raw = ""
        required = [target, scope, retention_raw, selector_raw]

    if not all(required):
        raise ConfigurationError.incomplete_entry(line, line_number)

    retention_days = parse_retention_days(retention_raw, target)
    selector = normalize_scope(selector_raw, target)
    backup_type = (
        normalize_backup_type(type_raw, default_backup_type) if type_raw else default_backup_type
    )

    try:
        return RetentionRequest(
            target=target,
            scope=scope,
            backup_type=backup_type,
            retention_days=retention_days,
            selector=selector,
            reason=reason,
        )
    except ValidationError as e:
        raise ConfigurationError.validation_failed("entry", line, str(e)) from e


def parse_serverlist(
    source: str | Path | Iterable[str],
    layout: ServerlistLayout | str = ServerlistLayout.AZURE,
    default_backup_type: BackupType = BackupType.INCREMENTAL,
) -> list[ServerlistEntry]:
    """
    Parse a server list file (or an iterable of lines).

    Args:
        source: Path to the file, or the lines themselves.
        layout: Column layout.
        default_backup_type: Type used when the layout has no type column.

    Returns:
        One entry per meaningful line, valid or not, in file order.

    Raises:
        ConfigurationError: If the file does not exist.
    """
    layout = ServerlistLayout(layout)

    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise ConfigurationError.missing_file(str(path))
        lines: Iterable[str] = path.read_text(encoding="utf-8").splitlines()
    else:
        lines = source

    entries: list[ServerlistEntry] = []
    for line_number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        try:
            request = parse_line(line, line_number, layout, default_backup_type)
        except ConfigurationError as e:
            entries.append(ServerlistEntry(line_number=line_number, raw=raw, error=e))
            continue
        entries.append(ServerlistEntry(line_number=line_number, raw=raw, request=request))

    logger.info(
        "serverlist_parsed",
        layout=layout.value,
        entries=len(entries),
        invalid=sum(1 for e in entries if not e.valid),
    )
    return entries
