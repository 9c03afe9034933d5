from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from flat_cli.shared import paths
from flat_cli.shared.database import QueryEngine, connect
from flat_cli.flat_explore.types import SessionConfig
from flat_cli.flat_explore.view import ViewManager, detect_source

PEOPLE_CSV = "id,name\n1,alice\n2,bob\n3,carol\n"


class RecordingLogger:
    """Logger stand-in that keeps every message with its level."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []
        self.verbose = True

    def for_session(self, label: str) -> RecordingLogger:
        return self

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def debug(self, message: str) -> None:
        self.messages.append(("debug", message))

    def at(self, level: str) -> list[str]:
        return [message for recorded, message in self.messages if recorded == level]


class RecordingGridView:
    """Grid surface that records every call made by the renderer."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, object]] = []
        self.rows: list[dict] = []
        self.error: str | None = None

    def set_loading(self, loading: bool) -> None:
        self.calls.append(("set_loading", loading))

    def set_input_enabled(self, enabled: bool) -> None:
        self.calls.append(("set_input_enabled", enabled))

    def show_grid(self, columns, rows) -> None:
        self.calls.append(("show_grid", [column.title for column in columns]))
        self.rows = list(rows)

    def append_rows(self, rows, start_index: int) -> None:
        self.calls.append(("append_rows", start_index))
        self.rows.extend(rows)

    def clear_grid(self) -> None:
        self.calls.append(("clear_grid", None))
        self.rows = []

    def hide_grid(self) -> None:
        self.calls.append(("hide_grid", None))

    def show_error(self, message: str) -> None:
        self.calls.append(("show_error", message))
        self.error = message

    def hide_error(self) -> None:
        self.calls.append(("hide_error", None))
        self.error = None


def make_session_config(**overrides: object) -> SessionConfig:
    values: dict[str, object] = {
        "chunk_size": 2,
        "auto_query": True,
        "table_name": "data",
        "use_file_name_as_table_name": False,
        "default_query_template": "SELECT * FROM ${tableName}",
    }
    values.update(overrides)
    return SessionConfig(**values)  # type: ignore[arg-type]


@pytest.fixture
def session_config() -> SessionConfig:
    return make_session_config()


@pytest.fixture
def people_csv(tmp_path: Path) -> Path:
    path = tmp_path / "people.csv"
    path.write_text(PEOPLE_CSV, encoding="utf-8")
    return path


@pytest.fixture
def engine() -> Iterator[QueryEngine]:
    with connect() as engine:
        yield engine


@pytest.fixture
def view(engine: QueryEngine, people_csv: Path, session_config: SessionConfig) -> ViewManager:
    manager = ViewManager(engine, detect_source(people_csv), session_config)
    manager.create_view()
    return manager


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def grid() -> RecordingGridView:
    return RecordingGridView()


@pytest.fixture
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point config and state files into ``tmp_path`` and clear explorer overrides."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv(paths.CONFIG_DIR_ENV, str(home))
    monkeypatch.setenv(paths.CONFIG_FILE_ENV, str(home / "config.yaml"))
    monkeypatch.setenv(paths.STATE_FILE_ENV, str(home / "state.json"))
    for name in (
        "FLATEXPLORE_TABLE_NAME",
        "FLATEXPLORE_USE_FILE_NAME",
        "FLATEXPLORE_CHUNK_SIZE",
        "FLATEXPLORE_AUTO_QUERY",
        "FLATEXPLORE_DEFAULT_QUERY",
    ):
        monkeypatch.delenv(name, raising=False)
    return home


def write_parquet(engine: QueryEngine, path: Path, rows: int) -> Path:
    engine.run(f"COPY (SELECT range AS n FROM range({rows})) TO '{path}' (FORMAT PARQUET)")
    return path


@pytest.fixture
def config_factory():
    return make_session_config


@pytest.fixture
def parquet_writer(engine: QueryEngine):
    def _write(path: Path, rows: int) -> Path:
        return write_parquet(engine, path, rows)

    return _write
