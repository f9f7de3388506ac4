"""
Structured logging for snapwarden.

Each CLI run gets its own JSONL file under ``snapshot_logs/``, named after the
command and the run start time, so every create or cleanup run leaves an
auditable trail. The same events are rendered on stderr, plain or as JSON,
leaving stdout to the report tables.

Exceptions passed as ``error=`` or ``exception=`` are expanded into
structured fields; snapwarden errors keep their error code and context.
"""

from __future__ import annotations

import logging
import socket
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from snapwarden.config import get_config
from snapwarden.exceptions import SnapwardenError

if TYPE_CHECKING:
    from datetime import datetime

    from structlog.types import Processor

DEFAULT_LOG_DIR = "snapshot_logs"
DEFAULT_LOG_FILE = "snapwarden.jsonl"
RUN_LOG_TIME_FORMAT = "%d-%m-%Y-%H-%M-%S"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

# SDK loggers that are chatty at INFO
_QUIET_LOGGERS = ("urllib3", "botocore", "boto3", "s3transfer", "azure", "msal")

_HOSTNAME = socket.gethostname()


def run_log_filename(command: str, run_time: datetime) -> str:
    """Name of the log file for one run, e.g. ``create-14-03-2025-09-26-53.jsonl``."""
    return f"{command}-{run_time.strftime(RUN_LOG_TIME_FORMAT)}.jsonl"


def get_log_file_path(log_dir: str | None = None, log_file: str | None = None) -> Path:
    """Resolve the path a log file is written to."""
    return Path(log_dir or DEFAULT_LOG_DIR) / (log_file or DEFAULT_LOG_FILE)


class RunLogHandler(RotatingFileHandler):
    """JSONL file handler that creates its directory on first use."""

    def __init__(
        self,
        path: Path,
        max_bytes: int = MAX_LOG_BYTES,
        backup_count: int = LOG_BACKUPS,
    ):
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(
            filename=str(path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )


def _add_origin(
    _logger: logging.Logger, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", "snapwarden")
    event_dict.setdefault("host", _HOSTNAME)
    return event_dict


def _render_errors(
    _logger: logging.Logger, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace exception objects with dictionaries the JSON renderer can emit."""
    for key in ("error", "exception"):
        value = event_dict.get(key)
        if isinstance(value, SnapwardenError):
            event_dict[key] = value.to_dict()
        elif isinstance(value, BaseException):
            event_dict[key] = {"type": type(value).__name__, "message": str(value)}
    return event_dict


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _add_origin,
        structlog.stdlib.PositionalArgumentsFormatter(),
        _render_errors,
        structlog.processors.UnicodeDecoder(),
    ]


def _handler(handler: logging.Handler, renderer: Processor, level: int) -> logging.Handler:
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    handler.setLevel(level)
    return handler


def setup_logging(
    level: str | None = None,
    format: str | None = None,
    log_dir: str | None = None,
    log_file: str | None = None,
    enable_console: bool = True,
    enable_file: bool = True,
) -> None:
    """
    Configure structured logging for a run.

    Unset arguments fall back to the ``logging`` section of the active
    configuration. Calling this again replaces the previous handlers, so a
    second run in the same process writes to its own file.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format: Console format, ``plain`` or ``json``. The file is always JSONL.
        log_dir: Directory for log files.
        log_file: File name inside ``log_dir``.
        enable_console: Render events on stderr.
        enable_file: Append events to the JSONL file.
    """
    settings = get_config().logging
    log_level = getattr(logging, (level or settings.level).upper(), logging.INFO)
    console_format = (format or settings.format).lower()

    structlog.configure(
        processors=[*_pre_chain(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = []
    if enable_file:
        path = get_log_file_path(log_dir or settings.log_dir, log_file or settings.file)
        handlers.append(
            _handler(RunLogHandler(path), structlog.processors.JSONRenderer(), log_level)
        )
    if enable_console:
        renderer: Processor
        if console_format == "json":
            renderer = structlog.processors.JSONRenderer()
        else:
            renderer = structlog.dev.ConsoleRenderer(
                colors=False, exception_formatter=structlog.dev.plain_traceback
            )
        handlers.append(_handler(logging.StreamHandler(sys.stderr), renderer, log_level))

    root = logging.getLogger()
    for old in root.handlers:
        if isinstance(old, RunLogHandler):
            old.close()
    root.handlers = handlers
    root.setLevel(log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> Any:
    """
    Get a structured logger.

    Example:
        logger = get_logger(__name__)
        logger.info("snapshot_created", snapshot_id="snap-123")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind values to every subsequent log line in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def with_context(**kwargs: Any) -> Iterator[None]:
    """
    Bind values for the duration of a block.

    Example:
        with with_context(entry=3, target="vm-app-01"):
            logger.info("entry_started")
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
