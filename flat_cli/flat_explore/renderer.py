"""Renderer state machine for an explorer session.

The renderer owns everything the user sees: the query text, the grid, the
loading and error indicators, and the pagination cursor. It talks to the
backend only through messages and never blocks; a response simply drives the
next transition.

Phases::

    EMPTY -> LOADING -> LOADED -> LOADING_MORE -> LOADED
               |                      |
               +------> ERROR <-------+

At most one request is in flight: submissions are refused while input is
disabled and scroll fetches are refused while anything is loading.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from flat_cli.shared.state import StateStore

from .messages import (
    BackendMessage,
    ConfigCommand,
    ConfigNotice,
    CopyCommand,
    FrontendMessage,
    MoreCommand,
    MoreResult,
    QueryCommand,
    QueryResult,
    ReloadBaseViewNotice,
)
from .types import ColumnDescriptor, PaginationCursor

Record = Mapping[str, Any]
Send = Callable[[FrontendMessage], None]

ROW_NUMBER_TITLE = "#"


class RendererPhase(str, enum.Enum):
    EMPTY = "empty"
    LOADING = "loading"
    LOADED = "loaded"
    LOADING_MORE = "loading_more"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class GridColumn:
    """Display definition for one grid column."""

    title: str
    field: str | None = None
    tooltip: str | None = None
    formatter: str | None = None
    row_number: bool = False


def formatter_for(column_type: str) -> str | None:
    if column_type.upper() == "DATE":
        return "date"
    return None


def grid_columns(describe: Sequence[ColumnDescriptor]) -> list[GridColumn]:
    """Leading row-number column followed by one column per described field."""
    columns = [GridColumn(title=ROW_NUMBER_TITLE, row_number=True)]
    for column in describe:
        columns.append(
            GridColumn(
                title=column.name,
                field=column.name,
                tooltip=column.type,
                formatter=formatter_for(column.type),
            )
        )
    return columns


class GridView(Protocol):
    """What the state machine needs from a display surface."""

    def set_loading(self, loading: bool) -> None: ...

    def set_input_enabled(self, enabled: bool) -> None: ...

    def show_grid(self, columns: Sequence[GridColumn], rows: Sequence[Record]) -> None: ...

    def append_rows(self, rows: Sequence[Record], start_index: int) -> None: ...

    def clear_grid(self) -> None: ...

    def hide_grid(self) -> None: ...

    def show_error(self, message: str) -> None: ...

    def hide_error(self) -> None: ...


class NullGridView:
    """Display surface that draws nothing."""

    def set_loading(self, loading: bool) -> None:
        pass

    def set_input_enabled(self, enabled: bool) -> None:
        pass

    def show_grid(self, columns: Sequence[GridColumn], rows: Sequence[Record]) -> None:
        pass

    def append_rows(self, rows: Sequence[Record], start_index: int) -> None:
        pass

    def clear_grid(self) -> None:
        pass

    def hide_grid(self) -> None:
        pass

    def show_error(self, message: str) -> None:
        pass

    def hide_error(self) -> None:
        pass


@dataclass(slots=True)
class RendererState:
    """Everything the renderer knows; mutated only by ``Renderer`` transitions."""

    chunk_size: int
    auto_query: bool = True
    phase: RendererPhase = RendererPhase.EMPTY
    query_text: str = ""
    last_submitted: str | None = None
    cursor: PaginationCursor = field(default_factory=PaginationCursor)
    loading: bool = False
    input_enabled: bool = True
    grid_visible: bool = False
    error_message: str | None = None
    columns: list[GridColumn] = field(default_factory=list)
    rows: list[Record] = field(default_factory=list)
    next_request_id: int = 1
    in_flight_id: int | None = None
    requery_pending: bool = False

    @property
    def more_available(self) -> bool:
        return bool(self.cursor.more_available)


class Renderer:
    """Transition functions over ``RendererState``."""

    def __init__(
        self,
        chunk_size: int,
        *,
        send: Send,
        view: GridView | None = None,
        auto_query: bool = True,
        store: StateStore | None = None,
        session_key: str | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.state = RendererState(chunk_size=chunk_size, auto_query=auto_query)
        self.send = send
        self.view: GridView = view or NullGridView()
        self.store = store
        self.session_key = session_key

    # ------------------------------------------------------------------
    # User-driven transitions

    def initialize(self, default_query: str = "") -> bool:
        """Restore the persisted query text, falling back to ``default_query``.

        A restored query is submitted straight away; the default one only when
        auto-query is on. Returns True if a request was sent.
        """
        restored = self._restore_query()
        self.state.query_text = restored if restored else default_query
        if restored or (self.state.auto_query and self.state.query_text.strip()):
            return self.submit()
        return False

    def edit(self, text: str) -> None:
        """Record new editor contents without submitting them."""
        self.state.query_text = text
        self._persist_query(text)

    def blur(self) -> bool:
        """Editor lost focus after a change: submit only when auto-query is on."""
        if not self.state.auto_query:
            return False
        return self.submit()

    def change(self, text: str) -> bool:
        """Edit followed by loss of focus."""
        self.edit(text)
        return self.blur()

    def execute(self) -> bool:
        """Explicit run request (button or keyboard shortcut)."""
        return self.submit()

    def submit(self) -> bool:
        """Start a fresh query for the current text.

        Refused while input is disabled and when the text equals the last
        submitted text, since one user action can raise both a change and an
        execute event.
        """
        return self._submit(self.state.query_text)

    def _submit(self, sql: str) -> bool:
        state = self.state
        if not state.input_enabled or sql == state.last_submitted:
            return False

        state.last_submitted = sql
        state.cursor = PaginationCursor.fresh(sql)
        state.phase = RendererPhase.LOADING
        state.columns = []
        state.rows = []
        state.grid_visible = False
        state.error_message = None
        self._begin_loading()
        self.view.clear_grid()
        self.view.hide_grid()
        self.view.hide_error()

        request_id = self._issue_request_id()
        self.send(QueryCommand(sql=sql, limit=state.chunk_size, request_id=request_id))
        return True

    def scrolled_to_bottom(self) -> bool:
        """Grid reached its bottom threshold: fetch the next window if one may exist."""
        state = self.state
        if state.loading or not state.more_available or state.cursor.sql is None:
            return False

        state.cursor = state.cursor.advance(state.chunk_size)
        state.phase = RendererPhase.LOADING_MORE
        self._begin_loading()

        request_id = self._issue_request_id()
        self.send(
            MoreCommand(
                sql=state.cursor.sql,
                limit=state.chunk_size,
                offset=state.cursor.offset,
                request_id=request_id,
            )
        )
        return True

    def on_scroll(self, top: float, scroll_height: float, viewport_height: float) -> bool:
        """Translate a scroll position into ``scrolled_to_bottom`` when at the end."""
        if top >= scroll_height - viewport_height:
            return self.scrolled_to_bottom()
        return False

    def copy(self) -> None:
        """Ask the backend to put the full runnable script on the clipboard."""
        self.send(CopyCommand(sql=self.state.query_text))

    def set_auto_query(self, enabled: bool) -> None:
        self.state.auto_query = enabled
        self.send(ConfigCommand(auto_query=enabled))

    # ------------------------------------------------------------------
    # Backend-driven transitions

    def receive(self, message: BackendMessage) -> bool:
        """Apply a backend message. Returns False if it was ignored as stale."""
        if isinstance(message, QueryResult):
            if not self._is_current(message.request_id):
                return False
            self._on_query_result(message)
        elif isinstance(message, MoreResult):
            if not self._is_current(message.request_id):
                return False
            self._on_more_result(message)
        elif isinstance(message, ConfigNotice):
            if message.auto_query is not None:
                self.state.auto_query = message.auto_query
        elif isinstance(message, ReloadBaseViewNotice):
            self._on_reload_base_view()
        else:  # pragma: no cover - exhaustive over BackendMessage
            raise TypeError(f"Unhandled message {message!r}")
        return True

    def _on_query_result(self, message: QueryResult) -> None:
        state = self.state
        self._end_loading()

        if message.results is not None and message.describe is not None:
            rows = list(message.results)
            state.columns = grid_columns(message.describe)
            state.rows = rows
            state.cursor = state.cursor.after_fetch(len(rows), state.chunk_size)
            state.grid_visible = True
            state.error_message = None
            state.phase = RendererPhase.LOADED
            self.view.show_grid(state.columns, rows)
        elif message.message is not None:
            self._show_failure(message.message, hide_grid=True)
        else:
            state.cursor = state.cursor.after_fetch(0, state.chunk_size)
            state.phase = RendererPhase.LOADED

        self._run_pending_requery()

    def _on_more_result(self, message: MoreResult) -> None:
        state = self.state
        self._end_loading()

        if not message.success:
            # Step back so the same window is requested again on the next scroll.
            state.cursor = state.cursor.advance(-state.chunk_size)
            self._show_failure(message.message or "Failed to load more rows.", hide_grid=False)
            self._run_pending_requery()
            return

        rows = list(message.results or [])
        if len(rows) < state.chunk_size:
            state.cursor = state.cursor.after_fetch(len(rows), state.chunk_size)
        if rows:
            start_index = len(state.rows)
            state.rows.extend(rows)
            self.view.append_rows(rows, start_index)
        state.phase = RendererPhase.LOADED
        self._run_pending_requery()

    def _on_reload_base_view(self) -> None:
        """The backend rebuilt its view; our cursor is still valid.

        Forgetting the last submitted text lets the same query be run again
        against the new data. With auto-query on it is re-run right away, or as
        soon as the request currently in flight completes.
        """
        state = self.state
        state.last_submitted = None
        if not state.auto_query or state.cursor.sql is None:
            return
        if state.loading:
            state.requery_pending = True
            return
        self._submit(state.cursor.sql)

    # ------------------------------------------------------------------
    # Internal helpers

    def _begin_loading(self) -> None:
        self.state.loading = True
        self.state.input_enabled = False
        self.view.set_loading(True)
        self.view.set_input_enabled(False)

    def _end_loading(self) -> None:
        self.state.loading = False
        self.state.input_enabled = True
        self.state.in_flight_id = None
        self.view.set_loading(False)
        self.view.set_input_enabled(True)

    def _show_failure(self, message: str, *, hide_grid: bool) -> None:
        state = self.state
        state.error_message = message
        state.phase = RendererPhase.ERROR
        if hide_grid:
            state.grid_visible = False
            self.view.hide_grid()
        self.view.show_error(message)

    def _run_pending_requery(self) -> None:
        state = self.state
        if not state.requery_pending:
            return
        state.requery_pending = False
        if state.auto_query and state.cursor.sql is not None:
            state.last_submitted = None
            self._submit(state.cursor.sql)

    def _issue_request_id(self) -> int:
        request_id = self.state.next_request_id
        self.state.next_request_id += 1
        self.state.in_flight_id = request_id
        return request_id

    def _is_current(self, request_id: int | None) -> bool:
        # Peers that do not tag responses are trusted as-is.
        if request_id is None:
            return True
        return request_id == self.state.in_flight_id

    def _restore_query(self) -> str | None:
        if self.store is None or self.session_key is None:
            return None
        saved = self.store.get(self.session_key)
        if not saved:
            return None
        sql = saved.get("sql")
        return sql if isinstance(sql, str) and sql else None

    def _persist_query(self, text: str) -> None:
        if self.store is None or self.session_key is None:
            return
        self.store.set(self.session_key, {"sql": text})
