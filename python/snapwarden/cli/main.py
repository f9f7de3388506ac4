"""
Command-line entry point.

    snapwarden create serverlist.txt --dry-run
    snapwarden create serverlist.txt --run --provider aws --layout aws
    snapwarden cleanup --region eu-west-1
    snapwarden cleanup --run --output json

Exit codes: 0 success, 1 one or more entry/disk/delete failures or a failed
provider call, 2 provider environment error, 64 usage error.
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, NoReturn

from snapwarden import __version__
from snapwarden.cli.formatters import CLEANUP_COLUMNS, CREATE_PREVIEW_COLUMNS, get_formatter
from snapwarden.config import Config, set_config
from snapwarden.engine import SnapshotEngine
from snapwarden.events import EventEmitter
from snapwarden.exceptions import (
    ConfigurationError,
    ProviderCallError,
    ProviderEnvironmentError,
)
from snapwarden.logging import get_log_file_path, get_logger, run_log_filename, setup_logging
from snapwarden.providers import create_provider
from snapwarden.retention import RetentionEvaluator
from snapwarden.serverlist import ServerlistLayout, normalize_backup_type, parse_serverlist

if TYPE_CHECKING:
    from collections.abc import Sequence

    from snapwarden.engine import BatchResult
    from snapwarden.retention import CleanupResult

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_ENVIRONMENT = 2
EXIT_USAGE = 64


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with EXIT_USAGE."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with the create and cleanup subcommands."""
    parser = _ArgumentParser(
        prog="snapwarden",
        description="Create and expire tagged block-storage snapshots.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to a YAML configuration file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the configured log level",
    )
    parser.add_argument("--log", dest="log_file", help="Log file name under the log directory")

    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser("create", help="Snapshot the targets of a server list")
    create_parser.add_argument("serverlist", help="Path to the server list")
    mode = create_parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--dry-run", action="store_true", help="Preview only, create nothing")
    mode.add_argument("--run", action="store_true", help="Create the snapshots")
    create_parser.add_argument(
        "--layout",
        choices=[layout.value for layout in ServerlistLayout],
        help="Server-list column layout (defaults to the provider's)",
    )
    _add_provider_arguments(create_parser)

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete automated snapshots past retention")
    cleanup_parser.add_argument(
        "--run", action="store_true", help="Delete eligible snapshots (default: dry run)"
    )
    _add_provider_arguments(cleanup_parser)

    return parser


def _add_provider_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--provider", choices=["azure", "aws", "memory"], help="Provider backend")
    parser.add_argument("--region", help="Region (AWS)")
    parser.add_argument("--profile", help="Credentials profile (AWS)")
    parser.add_argument("--output", choices=["table", "json"], default="table")


def _load_config(args: argparse.Namespace) -> Config:
    config = Config.load(args.config)
    overrides: dict[str, Any] = {}
    if args.provider:
        overrides["name"] = args.provider
    if args.region:
        overrides["region"] = args.region
    if args.profile:
        overrides["profile"] = args.profile
    if overrides:
        config.provider = config.provider.model_copy(update=overrides)
    return config


def _setup_logging(args: argparse.Namespace, config: Config, now: datetime) -> None:
    log_file = args.log_file or config.logging.file
    if log_file is None:
        log_file = run_log_filename(args.command, now)
    setup_logging(
        level=args.log_level or config.logging.level,
        format=config.logging.format,
        log_dir=config.logging.log_dir,
        log_file=log_file,
    )
    logger.info(
        "cli_started",
        command=args.command,
        log_file=str(get_log_file_path(config.logging.log_dir, log_file)),
    )


def _emit(text: str) -> None:
    sys.stdout.write(text + "\n")


def run_create(args: argparse.Namespace, config: Config) -> int:
    """Execute the create subcommand."""
    provider_name = config.provider.name.strip().lower()
    layout = args.layout or ("aws" if provider_name == "aws" else "azure")
    default_type = normalize_backup_type(config.creation.default_backup_type)

    entries = parse_serverlist(args.serverlist, layout, default_backup_type=default_type)
    provider = create_provider(config.provider)
    engine = SnapshotEngine.for_provider(provider, name_suffix=config.creation.name_suffix)
    result = engine.run(entries, dry_run=args.dry_run)

    _render_create(result, args.output)
    return EXIT_OK if result.success else EXIT_FAILURES


def _render_create(result: BatchResult, output: str) -> None:
    if output == "json":
        payload = result.to_dict()
        payload["outcomes"] = [e.to_dict() for e in result.entries]
        _emit(get_formatter("json").format(payload))
        return

    if result.dry_run:
        _emit(get_formatter("table", CREATE_PREVIEW_COLUMNS).format(result.preview_rows()))
        _emit("")
        _emit(f"Dry run: {len(result.preview_rows())} snapshot(s) would be created.")
    else:
        _emit(
            f"Created {result.disks_succeeded} snapshot(s), "
            f"{result.disks_failed} disk failure(s)."
        )
    if result.entries_skipped:
        _emit(f"Skipped {result.entries_skipped} entr{'y' if result.entries_skipped == 1 else 'ies'}:")
        for entry in result.entries:
            if entry.error is not None:
                _emit(f"  line {entry.line_number}: {entry.error.message}")


def run_cleanup(args: argparse.Namespace, config: Config) -> int:
    """Execute the cleanup subcommand."""
    provider = create_provider(config.provider)
    provider.check_environment()

    evaluator = RetentionEvaluator(
        provider,
        emitter=EventEmitter(),
        default_retention_days=config.cleanup.default_retention_days,
        filter_tag=config.cleanup.filter_tag,
    )
    result = evaluator.apply(dry_run=not args.run)

    _render_cleanup(result, args.output)
    return EXIT_OK if result.success else EXIT_FAILURES


def _render_cleanup(result: CleanupResult, output: str) -> None:
    if output == "json":
        payload = result.to_dict()
        payload["decisions"] = [d.to_dict() for d in result.decisions]
        _emit(get_formatter("json").format(payload))
        return

    _emit(get_formatter("table", CLEANUP_COLUMNS).format([d.to_row() for d in result.decisions]))
    _emit("")
    if result.dry_run:
        _emit(f"Dry run: {result.eligible} of {result.scanned} snapshot(s) eligible for deletion.")
    else:
        _emit(f"Deleted {result.deleted} snapshot(s), {len(result.failed)} failure(s).")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the snapwarden CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = _load_config(args)
    except (ValueError, ConfigurationError) as e:
        sys.stderr.write(f"snapwarden: invalid configuration: {e}\n")
        return EXIT_USAGE

    set_config(config)
    _setup_logging(args, config, datetime.now(timezone.utc))
    commands = {"create": run_create, "cleanup": run_cleanup}

    try:
        exit_code = commands[args.command](args, config)
    except ConfigurationError as e:
        logger.error("cli_usage_error", **e.to_dict())
        sys.stderr.write(f"snapwarden: {e.message}\n")
        return EXIT_USAGE
    except ProviderEnvironmentError as e:
        logger.error("cli_environment_error", **e.to_dict())
        sys.stderr.write(f"snapwarden: {e.message}\n")
        return EXIT_ENVIRONMENT
    except ProviderCallError as e:
        logger.error("cli_provider_call_failed", **e.to_dict())
        sys.stderr.write(f"snapwarden: {e.message}\n")
        return EXIT_FAILURES

    logger.info("cli_completed", command=args.command, exit_code=exit_code)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
