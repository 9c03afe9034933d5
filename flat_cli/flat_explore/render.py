"""Output rendering helpers for flat-explore."""

from __future__ import annotations

import csv
import json
import sys
from datetime import date, datetime
from typing import IO, Any, Mapping, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from flat_cli.shared.logging import Logger

from .messages import json_default
from .renderer import GridColumn, grid_columns
from .types import ColumnDescriptor

Record = Mapping[str, Any]

PLACEHOLDER_TEXT = "No Results"


def render_page(
    columns: Sequence[ColumnDescriptor],
    rows: Sequence[Record],
    *,
    output_format: str,
    logger: Logger,
    offset: int = 0,
    more_available: bool = False,
    stream=None,
) -> None:
    """Render one window of a query result to the desired format."""
    output_stream = stream or sys.stdout
    fmt = (output_format or "table").lower()

    if fmt == "table":
        console = Console(file=output_stream, highlight=False, force_terminal=False)
        console.print(build_table(grid_columns(columns), rows, start_index=offset))
        if not rows:
            logger.info("Query returned zero rows.")
    elif fmt == "csv":
        _render_delimited(columns, rows, stream=output_stream, delimiter=",")
    elif fmt == "tsv":
        _render_delimited(columns, rows, stream=output_stream, delimiter="\t")
    elif fmt == "json":
        json.dump([dict(row) for row in rows], output_stream, indent=2, default=json_default)
        output_stream.write("\n")
    else:  # pragma: no cover - Click validation should prevent this
        raise ValueError(f"Unsupported output format '{output_format}'.")

    if more_available:
        logger.warning(
            f"Showing rows {offset + 1}-{offset + len(rows)}; more may exist. "
            f"Re-run with --offset {offset + len(rows)} to continue."
        )


def render_columns(
    columns: Sequence[ColumnDescriptor],
    *,
    output_format: str,
    stream=None,
) -> None:
    """Render column names and declared types."""
    output_stream = stream or sys.stdout
    if (output_format or "table").lower() == "json":
        payload = [{"column_name": column.name, "column_type": column.type} for column in columns]
        json.dump(payload, output_stream, indent=2)
        output_stream.write("\n")
        return

    console = Console(file=output_stream, highlight=False, force_terminal=False)
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    table.add_column("Column")
    table.add_column("Type")
    for column in columns:
        table.add_row(column.name, column.type)
    console.print(table)


def build_table(
    columns: Sequence[GridColumn],
    rows: Sequence[Record],
    *,
    start_index: int = 0,
    show_header: bool = True,
) -> Table:
    """Build a Rich table for grid columns, numbering rows from ``start_index + 1``."""
    table = Table(
        box=box.SIMPLE_HEAVY,
        show_header=show_header,
        header_style="bold",
        caption=None if rows or not show_header else PLACEHOLDER_TEXT,
    )
    for column in columns:
        if column.row_number:
            table.add_column(Text(column.title), justify="right", style="dim", no_wrap=True)
            continue
        header = Text(column.title)
        if column.tooltip:
            header.append(f"\n{column.tooltip}", style="dim")
        table.add_column(header)

    for position, row in enumerate(rows, start=start_index + 1):
        cells: list[Text] = []
        for column in columns:
            if column.row_number:
                cells.append(Text(str(position)))
            else:
                cells.append(Text(format_cell(row.get(column.field or ""), column.formatter)))
        table.add_row(*cells)
    return table


def format_cell(value: object, formatter: str | None = None) -> str:
    if value is None:
        return ""
    if formatter == "date":
        if isinstance(value, (datetime, date)):
            return value.strftime("%Y-%m-%d")
        return str(value)[:10]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class ConsoleGridView:
    """Grid surface that prints to a terminal.

    Pages are printed as they arrive, so "appending" continues the row numbering
    below the rows already on screen.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False)
        self.columns: list[GridColumn] = []
        self.loading = False
        self.input_enabled = True
        self.visible = False

    def set_loading(self, loading: bool) -> None:
        self.loading = loading
        if loading:
            self.console.print("Loading…", style="dim")

    def set_input_enabled(self, enabled: bool) -> None:
        self.input_enabled = enabled

    def show_grid(self, columns: Sequence[GridColumn], rows: Sequence[Record]) -> None:
        self.columns = list(columns)
        self.visible = True
        self.console.print(build_table(self.columns, rows))

    def append_rows(self, rows: Sequence[Record], start_index: int) -> None:
        if not self.columns:
            return
        self.console.print(build_table(self.columns, rows, start_index=start_index, show_header=False))

    def clear_grid(self) -> None:
        self.columns = []

    def hide_grid(self) -> None:
        self.visible = False

    def show_error(self, message: str) -> None:
        self.console.print(Panel(Text(message), title="Error", border_style="red", expand=False))

    def hide_error(self) -> None:
        pass


def _render_delimited(
    columns: Sequence[ColumnDescriptor],
    rows: Sequence[Record],
    *,
    stream: IO[str],
    delimiter: str,
) -> None:
    writer = csv.writer(stream, delimiter=delimiter)
    names = [column.name for column in columns]
    writer.writerow(names)
    for row in rows:
        writer.writerow(format_cell(row.get(name)) for name in names)
