"""Data structures shared across flat-explore modules."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Sequence

from flat_cli.shared.config import AppConfig, render_default_query

_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# DuckDB keywords that cannot name a relation unquoted (the "reserved" and
# "type_function" categories of duckdb_keywords()).
RESERVED_KEYWORDS = frozenset(
    """
    all analyse analyze and any array as asc asymmetric both case cast check
    collate column constraint create default deferrable desc describe distinct
    do else end except false fetch for foreign from grant group having in
    initially intersect into lateral leading limit not null offset on only or
    order pivot pivot_longer pivot_wider placing primary qualify references
    returning select show some summarize symmetric table then to trailing true
    union unique unpivot using variadic when where window with
    anti asof authorization binary collation concurrently cross freeze full
    generated glob ilike inner is isnull join left like map natural notnull
    outer overlaps positional right semi similar struct tablesample try_cast
    verbose
    """.split()
)


def sql_identifier(name: str) -> str:
    """Return ``name`` bare when it is a plain, non-reserved identifier, double-quoted otherwise."""
    if _PLAIN_IDENTIFIER.match(name) and name.lower() not in RESERVED_KEYWORDS:
        return name
    escaped = name.replace('"', '""')
    return f'"{escaped}"'


class SourceFormat(str, enum.Enum):
    """Format family of an opened file, detected from its extension."""

    DELIMITED = "delimited"
    COLUMNAR = "columnar"


@dataclass(frozen=True, slots=True)
class SourceDescriptor:
    """The file a session was opened on. Immutable for the session's lifetime."""

    path: Path
    format: SourceFormat

    @property
    def base_name(self) -> str:
        return self.path.stem


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """Name and declared engine type of a result column."""

    name: str
    type: str


@dataclass(frozen=True, slots=True)
class QueryRequest:
    """A windowed read of a user query."""

    sql: str
    limit: int
    offset: int = 0

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError("limit must be positive")
        if self.offset < 0:
            raise ValueError("offset must be non-negative")


@dataclass(frozen=True, slots=True)
class PaginationCursor:
    """Renderer-owned position in the current result set.

    ``more_available`` is None until the first page of a query has arrived.
    """

    sql: str | None = None
    offset: int = 0
    more_available: bool | None = None

    @classmethod
    def fresh(cls, sql: str) -> PaginationCursor:
        return cls(sql=sql, offset=0, more_available=None)

    def advance(self, chunk_size: int) -> PaginationCursor:
        return replace(self, offset=self.offset + chunk_size)

    def after_fetch(self, row_count: int, chunk_size: int) -> PaginationCursor:
        return replace(self, more_available=row_count >= chunk_size)


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Settings fixed when a file is opened; only ``auto_query`` may change later."""

    chunk_size: int
    auto_query: bool
    table_name: str
    use_file_name_as_table_name: bool
    default_query_template: str

    @classmethod
    def from_app_config(cls, config: AppConfig) -> SessionConfig:
        explorer = config.explorer
        return cls(
            chunk_size=explorer.chunk_size,
            auto_query=explorer.auto_query,
            table_name=explorer.table_name,
            use_file_name_as_table_name=explorer.use_file_name_as_table_name,
            default_query_template=explorer.default_query,
        )

    def table_name_for(self, source: SourceDescriptor) -> str:
        if self.use_file_name_as_table_name:
            return source.base_name
        return self.table_name

    def default_query_for(self, source: SourceDescriptor) -> str:
        return render_default_query(
            self.default_query_template, sql_identifier(self.table_name_for(source))
        )


@dataclass(frozen=True, slots=True)
class Page:
    """One window of rows returned by the pagination engine."""

    rows: Sequence[Mapping[str, Any]]
    offset: int
    limit: int
    columns: Sequence[str] = ()

    @property
    def more_available(self) -> bool:
        return len(self.rows) >= self.limit
