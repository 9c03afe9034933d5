"""Backing view over an opened file."""

from __future__ import annotations

import threading
from pathlib import Path

from flat_cli.shared.database import QueryEngine
from flat_cli.shared.exceptions import UnsupportedSourceError

from .types import SessionConfig, SourceDescriptor, SourceFormat, sql_identifier

DELIMITED_EXTENSIONS = (".csv", ".tsv")
COLUMNAR_EXTENSIONS = (".pq", ".parq", ".parquet")

READER_FUNCTIONS = {
    SourceFormat.DELIMITED: "read_csv",
    SourceFormat.COLUMNAR: "read_parquet",
}


def detect_source(path: str | Path) -> SourceDescriptor:
    """Classify ``path`` by extension.

    Callers are expected to route only supported files here, so an unknown
    extension is a configuration error rather than a user-facing query error.
    """
    resolved = Path(path).expanduser()
    extension = resolved.suffix.lower()
    if extension in DELIMITED_EXTENSIONS:
        return SourceDescriptor(path=resolved, format=SourceFormat.DELIMITED)
    if extension in COLUMNAR_EXTENSIONS:
        return SourceDescriptor(path=resolved, format=SourceFormat.COLUMNAR)
    supported = ", ".join(DELIMITED_EXTENSIONS + COLUMNAR_EXTENSIONS)
    raise UnsupportedSourceError(
        f"Unsupported file type '{extension or resolved.name}'. Supported extensions: {supported}."
    )


def build_create_statement(source: SourceDescriptor, table_name: str) -> str:
    """Return the single-line statement that (re)creates the backing view."""
    reader = READER_FUNCTIONS[source.format]
    literal_path = str(source.path).replace("'", "''")
    return (
        f"CREATE OR REPLACE VIEW {sql_identifier(table_name)} AS "
        f"SELECT * FROM {reader}('{literal_path}');"
    )


class ViewManager:
    """Owns the one backing view of a session.

    The view is never altered in place; every rebuild re-runs the same create
    statement and bumps ``generation``.
    """

    def __init__(self, engine: QueryEngine, source: SourceDescriptor, config: SessionConfig) -> None:
        self.engine = engine
        self.source = source
        self.table_name = config.table_name_for(source)
        self._create_statement = build_create_statement(source, self.table_name)
        self.generation = 0
        self._lock = threading.Lock()

    @property
    def create_statement(self) -> str:
        return self._create_statement

    def create_view(self) -> str:
        """Build the view for the first time and return the statement used."""
        self.reload_view()
        return self._create_statement

    def reload_view(self) -> int:
        """Re-run the create statement, replacing the view. Returns the new generation."""
        with self._lock:
            self.engine.run(self._create_statement)
            self.generation += 1
            return self.generation
