"""Windowed execution of user queries against the backing view."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

from flat_cli.shared.database import QueryEngine, Row

from .types import ColumnDescriptor, Page, QueryRequest

STATEMENT_TERMINATOR = ";"

# Largest integer a double (the wire's number type) represents exactly.
MAX_SAFE_INTEGER = 2**53 - 1

_NON_FINITE_TEXT = {"nan": "NaN", "inf": "Infinity", "-inf": "-Infinity"}


def strip_terminator(sql: str) -> str:
    """Remove the first statement terminator from ``sql``.

    Only the first occurrence goes; a query such as ``SELECT ';' AS x;`` keeps its
    trailing terminator and fails inside the wrapper.
    """
    return sql.replace(STATEMENT_TERMINATOR, "", 1)


def wrap(sql: str, limit: int, offset: int) -> str:
    """Embed ``sql`` as a subquery with LIMIT/OFFSET applied on the outside."""
    return f"SELECT * FROM (\n{strip_terminator(sql)}\n) LIMIT {int(limit)} OFFSET {int(offset)}"


def describe_statement(sql: str) -> str:
    """Schema introspection for the un-windowed query."""
    return f"DESCRIBE ({strip_terminator(sql)});"


def describe(engine: QueryEngine, sql: str) -> list[ColumnDescriptor]:
    """Return the column names and declared types ``sql`` would produce."""
    pairs = engine.describe(describe_statement(sql))
    return [ColumnDescriptor(name=name, type=column_type) for name, column_type in pairs]


def fetch_page(engine: QueryEngine, request: QueryRequest) -> Page:
    """Run one window of ``request.sql`` and return its rows as records."""
    columns, rows = engine.execute(wrap(request.sql, request.limit, request.offset))
    return Page(
        rows=_to_records(columns, rows),
        offset=request.offset,
        limit=request.limit,
        columns=tuple(columns),
    )


def label_columns(
    described: Sequence[ColumnDescriptor], names: Sequence[str]
) -> list[ColumnDescriptor]:
    """Name described columns after the keys the windowed rows carry.

    The wrapper deduplicates repeated names (a self-join yields ``id`` and ``id_1``)
    while DESCRIBE keeps them as written; types are matched by position.
    """
    if len(described) != len(names):
        return list(described)
    return [
        ColumnDescriptor(name=name, type=column.type) for name, column in zip(names, described)
    ]


def more_available(row_count: int, chunk_size: int) -> bool:
    """A full chunk means another page may exist."""
    return row_count >= chunk_size


def clean_value(value: Any) -> Any:
    """Coerce values into something the JSON wire can carry.

    HUGEINT and UBIGINT values past 2**53 lose precision here; that is accepted
    for display purposes. Non-finite doubles become the strings ``"NaN"``,
    ``"Infinity"`` and ``"-Infinity"``. LIST and STRUCT values are cleaned
    element by element.
    """
    if isinstance(value, float):
        return value if math.isfinite(value) else _NON_FINITE_TEXT[repr(value)]
    if isinstance(value, (list, tuple)):
        return [clean_value(item) for item in value]
    if isinstance(value, dict):
        return {key: clean_value(item) for key, item in value.items()}
    if isinstance(value, bool) or not isinstance(value, int):
        return value
    if -MAX_SAFE_INTEGER <= value <= MAX_SAFE_INTEGER:
        return value
    return float(value)


# ---------------------------------------------------------------------------
# Internal helpers


def _to_records(columns: Sequence[str], rows: Sequence[Row]) -> list[dict[str, Any]]:
    return [{column: clean_value(value) for column, value in zip(columns, row)} for row in rows]
