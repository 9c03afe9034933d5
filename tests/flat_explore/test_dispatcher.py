from __future__ import annotations

from pathlib import Path

import pytest

from flat_cli.shared.exceptions import ClipboardError, ProtocolError
from flat_cli.flat_explore.clipboard import MemoryClipboard
from flat_cli.flat_explore.dispatcher import Dispatcher, DispatcherState, full_query_text
from flat_cli.flat_explore.messages import (
    ConfigCommand,
    ConfigNotice,
    CopyCommand,
    MoreCommand,
    MoreResult,
    QueryCommand,
    QueryResult,
    ReloadBaseViewCommand,
    ReloadBaseViewNotice,
)
from flat_cli.flat_explore.types import ColumnDescriptor
from flat_cli.flat_explore.watcher import FileEvent


class FailingClipboard:
    def write_text(self, text: str) -> None:
        raise ClipboardError("no clipboard utility found on PATH")


@pytest.fixture
def posted() -> list:
    return []


@pytest.fixture
def clipboard() -> MemoryClipboard:
    return MemoryClipboard()


@pytest.fixture
def dispatcher(view, session_config, posted, clipboard, recording_logger) -> Dispatcher:
    return Dispatcher(
        view, session_config, post=posted.append, clipboard=clipboard, logger=recording_logger
    )


def test_start_announces_auto_query(dispatcher: Dispatcher, posted: list) -> None:
    dispatcher.start()
    assert posted == [ConfigNotice(auto_query=True)]


def test_query_returns_first_window_and_columns(dispatcher: Dispatcher, posted: list) -> None:
    dispatcher.handle(QueryCommand(sql="SELECT * FROM data", limit=2, request_id=4))

    assert len(posted) == 1
    result = posted[0]
    assert isinstance(result, QueryResult)
    assert result.success is True
    assert result.request_id == 4
    assert result.results == [{"id": 1, "name": "alice"}, {"id": 2, "name": "bob"}]
    assert result.describe == [
        ColumnDescriptor(name="id", type="BIGINT"),
        ColumnDescriptor(name="name", type="VARCHAR"),
    ]
    assert dispatcher.state is DispatcherState.IDLE


def test_query_failure_carries_engine_message(dispatcher: Dispatcher) -> None:
    result = dispatcher.run_query(QueryCommand(sql="SELECT * FROM nonexistent", limit=2))

    assert result.success is False
    assert result.results is None
    assert result.describe is None
    assert "nonexistent" in (result.message or "")
    assert dispatcher.state is DispatcherState.IDLE


def test_more_returns_requested_window(dispatcher: Dispatcher, posted: list) -> None:
    dispatcher.handle(MoreCommand(sql="SELECT * FROM data", limit=2, offset=2, request_id=5))

    assert posted == [MoreResult(success=True, results=[{"id": 3, "name": "carol"}], request_id=5)]


def test_more_failure_is_reported(dispatcher: Dispatcher) -> None:
    result = dispatcher.fetch_more(MoreCommand(sql="SELECT nope FROM data", limit=2, offset=2))
    assert result.success is False
    assert result.message


def test_handle_payload_decodes_wire_dicts(dispatcher: Dispatcher, posted: list) -> None:
    dispatcher.handle_payload({"type": "query", "sql": "SELECT count(*) AS n FROM data", "limit": 5})
    assert posted[0].results == [{"n": 3}]

    with pytest.raises(ProtocolError):
        dispatcher.handle_payload({"type": "query"})


def test_renderer_config_and_reload_messages_are_ignored(
    dispatcher: Dispatcher, posted: list, recording_logger
) -> None:
    dispatcher.handle(ConfigCommand(auto_query=False))
    dispatcher.handle(ReloadBaseViewCommand())

    assert posted == []
    assert len(recording_logger.at("debug")) == 2


def test_full_query_text_appends_terminator() -> None:
    create = "CREATE OR REPLACE VIEW data AS SELECT * FROM read_csv('/x.csv');"
    assert full_query_text(create, "SELECT * FROM data") == f"{create}\n\nSELECT * FROM data;\n"
    assert full_query_text(create, "SELECT 1;\n") == f"{create}\n\nSELECT 1;\n"


def test_copy_writes_full_script_to_clipboard(
    dispatcher: Dispatcher, clipboard: MemoryClipboard, recording_logger, people_csv: Path
) -> None:
    dispatcher.handle(CopyCommand(sql="SELECT * FROM data"))

    expected = (
        f"CREATE OR REPLACE VIEW data AS SELECT * FROM read_csv('{people_csv}');"
        "\n\nSELECT * FROM data;\n"
    )
    assert clipboard.last == expected
    assert recording_logger.at("success") == ["Full query copied to clipboard"]


def test_copy_reports_clipboard_failure(view, session_config, posted, recording_logger) -> None:
    dispatcher = Dispatcher(
        view, session_config, post=posted.append, clipboard=FailingClipboard(), logger=recording_logger
    )

    text = dispatcher.copy_full_query("SELECT 1")

    assert text.endswith("SELECT 1;\n")
    assert recording_logger.at("error") == ["no clipboard utility found on PATH"]
    assert posted == []


def test_file_change_rebuilds_view_and_notifies(
    dispatcher: Dispatcher, posted: list, people_csv: Path
) -> None:
    people_csv.write_text("id,name\n9,zed\n", encoding="utf-8")

    dispatcher.on_file_changed(FileEvent.MODIFIED)

    assert posted == [ReloadBaseViewNotice()]
    assert dispatcher.view.generation == 2
    result = dispatcher.run_query(QueryCommand(sql="SELECT * FROM data", limit=2))
    assert result.results == [{"id": 9, "name": "zed"}]


def test_file_deletion_still_notifies(
    dispatcher: Dispatcher, posted: list, people_csv: Path, recording_logger
) -> None:
    people_csv.unlink()

    dispatcher.on_file_changed(FileEvent.DELETED)

    assert posted == [ReloadBaseViewNotice()]
    assert any("Could not rebuild view" in message for message in recording_logger.at("warning"))
    result = dispatcher.run_query(QueryCommand(sql="SELECT * FROM data", limit=2))
    assert result.success is False


def test_duplicate_column_names_match_row_keys(dispatcher: Dispatcher, posted: list) -> None:
    sql = "SELECT x.id, y.id FROM data x JOIN data y ON y.id = x.id + 1 ORDER BY x.id"
    dispatcher.handle(QueryCommand(sql=sql, limit=5, request_id=1))

    result = posted[0]
    assert result.success is True
    names = [column.name for column in result.describe]
    assert names[0] == "id"
    assert len(set(names)) == 2
    assert [column.type for column in result.describe] == ["BIGINT", "BIGINT"]
    for row in result.results:
        assert list(row) == names
    assert [[row[name] for name in names] for row in result.results] == [[1, 2], [2, 3]]


def test_full_query_text_collapses_repeated_terminators() -> None:
    create = "CREATE OR REPLACE VIEW data AS SELECT * FROM read_csv('/x.csv');"
    assert full_query_text(create, "SELECT 1;;") == f"{create}\n\nSELECT 1;\n"
    assert full_query_text(create, "SELECT 1; ;\n") == f"{create}\n\nSELECT 1;\n"
