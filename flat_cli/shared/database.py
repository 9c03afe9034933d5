"""DuckDB engine wrapper used by every explorer session."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Iterator

import duckdb

from .exceptions import QueryError

IN_MEMORY_DATABASE = ":memory:"

Row = tuple[Any, ...]


def _open_connection(database: str = IN_MEMORY_DATABASE) -> duckdb.DuckDBPyConnection:
    return duckdb.connect(database)


class QueryEngine:
    """A single DuckDB connection owned by one open document.

    Statements run one at a time: a view rebuild triggered from a watcher thread
    waits for an in-flight query to finish and vice versa.
    """

    def __init__(self, database: str = IN_MEMORY_DATABASE) -> None:
        self._connection = _open_connection(database)
        self._lock = threading.RLock()
        self._closed = False

    def run(self, statement: str) -> None:
        """Execute a statement whose result is not needed (DDL)."""
        with self._lock:
            try:
                self._connection.execute(statement)
            except duckdb.Error as exc:
                raise QueryError(str(exc)) from exc

    def execute(self, statement: str) -> tuple[tuple[str, ...], list[Row]]:
        """Execute ``statement`` and return ``(column names, rows)``."""
        with self._lock:
            try:
                cursor = self._connection.execute(statement)
                rows = cursor.fetchall()
                description = cursor.description or ()
            except duckdb.Error as exc:
                raise QueryError(str(exc)) from exc
        columns = tuple(str(col[0]) for col in description)
        return columns, [tuple(row) for row in rows]

    def describe(self, statement: str) -> list[tuple[str, str]]:
        """Run a ``DESCRIBE`` statement and return ``(column_name, column_type)`` pairs."""
        columns, rows = self.execute(statement)
        try:
            name_idx = columns.index("column_name")
            type_idx = columns.index("column_type")
        except ValueError as exc:
            raise QueryError(f"Unexpected DESCRIBE output columns: {', '.join(columns)}") from exc
        return [(str(row[name_idx]), str(row[type_idx])) for row in rows]

    def close(self) -> None:
        with self._lock:
            if not self._closed:
                self._connection.close()
                self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed


@contextmanager
def connect(database: str = IN_MEMORY_DATABASE) -> Iterator[QueryEngine]:
    """Yield a QueryEngine and close it afterwards."""
    engine = QueryEngine(database)
    try:
        yield engine
    finally:
        engine.close()
