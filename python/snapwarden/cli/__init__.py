"""
CLI module for snapwarden.

Usage:
    snapwarden create serverlist.txt --dry-run
    snapwarden cleanup --run
"""

from snapwarden.cli.formatters import (
    CLEANUP_COLUMNS,
    CREATE_PREVIEW_COLUMNS,
    FormatOptions,
    Formatter,
    JSONFormatter,
    TableColumn,
    TableData,
    TableFormatter,
    get_formatter,
)

__all__ = [
    "CLEANUP_COLUMNS",
    "CREATE_PREVIEW_COLUMNS",
    "FormatOptions",
    "Formatter",
    "JSONFormatter",
    "TableColumn",
    "TableData",
    "TableFormatter",
    "get_formatter",
]
