"""
Formatters for CLI output.

Preview and cleanup reports are rendered either as fixed-width text tables
or as JSON. Each formatter implements the same ``format`` interface.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class FormattableRecord(Protocol):
    """Protocol for objects that can be formatted."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        ...


@dataclass
class FormatOptions:
    """
    Options for formatting output.

    Attributes:
        max_width: Maximum cell width before truncation (0 = no truncation).
        separator: String placed between columns.
    """

    max_width: int = 60
    separator: str = "  "


class Formatter(ABC):
    """Abstract base class for output formatters."""

    def __init__(self, options: FormatOptions | None = None) -> None:
        self.options = options or FormatOptions()

    @abstractmethod
    def format(self, data: Any) -> str:
        """Render rows, records or a TableData as text."""
        ...

    def _truncate(self, text: str, max_length: int | None = None) -> str:
        """Truncate text to max length."""
        max_len = max_length if max_length is not None else self.options.max_width
        if max_len <= 0 or len(text) <= max_len:
            return text
        return text[: max_len - 3] + "..."


class JSONFormatter(Formatter):
    """JSON output formatter, for piping into other tools."""

    def __init__(self, options: FormatOptions | None = None, pretty: bool = True) -> None:
        super().__init__(options)
        self.pretty = pretty

    def format(self, data: Any) -> str:
        if isinstance(data, FormattableRecord):
            data = data.to_dict()
        elif isinstance(data, list):
            data = [item.to_dict() if isinstance(item, FormattableRecord) else item for item in data]

        return json.dumps(
            data,
            indent=2 if self.pretty else None,
            default=str,
            ensure_ascii=False,
        )


@dataclass
class TableColumn:
    """Definition of a table column."""

    key: str
    header: str
    width: int | None = None
    align: str = "left"  # left, right


@dataclass
class TableData:
    """Data structure for table rendering."""

    columns: list[TableColumn]
    rows: list[dict[str, Any]]
    title: str | None = None
    footer: str | None = None


class TableFormatter(Formatter):
    """Plain-text table formatter with a header row and a dashed separator."""

    def __init__(
        self,
        options: FormatOptions | None = None,
        columns: list[TableColumn] | None = None,
        title: str | None = None,
    ) -> None:
        super().__init__(options)
        self.columns = columns or []
        self.title = title

    def format(self, data: list[dict[str, Any]] | TableData) -> str:
        """
        Format data as a table.

        Args:
            data: List of row dictionaries or TableData.

        Returns:
            Table text.
        """
        if isinstance(data, TableData):
            table_data = data
        else:
            table_data = TableData(columns=self.columns, rows=data, title=self.title)

        return self._build_table(table_data)

    def _build_table(self, table_data: TableData) -> str:
        lines: list[str] = []
        sep = self.options.separator
        col_widths = self._calculate_widths(table_data)

        if table_data.title:
            lines.append(table_data.title)
            lines.append("")

        lines.append(
            sep.join(
                self._align(col.header, col_widths[col.key], col.align)
                for col in table_data.columns
            ).rstrip()
        )
        lines.append(sep.join("-" * col_widths[col.key] for col in table_data.columns))

        for row in table_data.rows:
            cells = []
            for col in table_data.columns:
                width = col_widths[col.key]
                value = self._truncate(self._cell(row.get(col.key)), width)
                cells.append(self._align(value, width, col.align))
            lines.append(sep.join(cells).rstrip())

        if table_data.footer:
            lines.append("")
            lines.append(table_data.footer)

        return "\n".join(lines)

    @staticmethod
    def _cell(value: Any) -> str:
        if value is None or value == "":
            return "-"
        return str(value)

    @staticmethod
    def _align(text: str, width: int, align: str) -> str:
        return text.rjust(width) if align == "right" else text.ljust(width)

    def _calculate_widths(self, table_data: TableData) -> dict[str, int]:
        """Calculate column widths based on content."""
        widths: dict[str, int] = {}
        for col in table_data.columns:
            if col.width:
                widths[col.key] = col.width
                continue
            content = max(
                [len(col.header)] + [len(self._cell(row.get(col.key))) for row in table_data.rows]
            )
            if self.options.max_width > 0:
                content = min(content, self.options.max_width)
            widths[col.key] = content
        return widths


CREATE_PREVIEW_COLUMNS = [
    TableColumn("target", "TARGET"),
    TableColumn("scope", "SCOPE"),
    TableColumn("selector", "SELECTOR"),
    TableColumn("type", "TYPE"),
    TableColumn("retention", "RET(D)", align="right"),
    TableColumn("kind", "KIND"),
    TableColumn("volume", "VOLUME"),
    TableColumn("name", "SNAPSHOT NAME"),
    TableColumn("reason", "REASON"),
]

CLEANUP_COLUMNS = [
    TableColumn("snapshot_id", "SNAPSHOT_ID"),
    TableColumn("retention", "RETENTION", align="right"),
    TableColumn("start", "START"),
    TableColumn("age", "AGE", align="right"),
    TableColumn("eligible", "DEL?"),
]


def get_formatter(output: str, columns: list[TableColumn] | None = None) -> Formatter:
    """Return the formatter for an ``--output`` value."""
    if output == "json":
        return JSONFormatter()
    return TableFormatter(columns=columns)
