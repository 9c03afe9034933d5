"""Backend side of an explorer session.

The dispatcher turns renderer messages into engine calls and answers with
envelopes. It keeps no cursor of its own: every ``more`` request names the
offset it wants, so the renderer is the single owner of pagination state.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from typing import Any, Callable

from flat_cli.shared.exceptions import ClipboardError, QueryError
from flat_cli.shared.logging import Logger, get_logger

from . import pagination
from .clipboard import ClipboardSink
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
    ReloadBaseViewCommand,
    ReloadBaseViewNotice,
    parse_frontend_message,
)
from .types import QueryRequest, SessionConfig
from .view import ViewManager
from .watcher import FileEvent

Post = Callable[[BackendMessage], None]


class DispatcherState(str, enum.Enum):
    IDLE = "idle"
    DESCRIBING = "describing"
    WINDOWING = "windowing"
    FETCHING = "fetching"


def full_query_text(create_statement: str, sql: str) -> str:
    """Join the view statement and the user query into one runnable script.

    The query ends with exactly one terminator however many it was typed with.
    """
    body = sql.strip()
    while body.endswith(pagination.STATEMENT_TERMINATOR):
        body = body[: -len(pagination.STATEMENT_TERMINATOR)].rstrip()
    return f"{create_statement}\n\n{body}{pagination.STATEMENT_TERMINATOR}\n"


class Dispatcher:
    """Routes protocol messages for one open document."""

    def __init__(
        self,
        view: ViewManager,
        config: SessionConfig,
        *,
        post: Post,
        clipboard: ClipboardSink,
        logger: Logger | None = None,
    ) -> None:
        self.view = view
        self.config = config
        self.post = post
        self.clipboard = clipboard
        self.logger = logger or get_logger()
        self.state = DispatcherState.IDLE

    def start(self) -> None:
        """Announce session settings to the renderer."""
        self.post(ConfigNotice(auto_query=self.config.auto_query))

    def handle_payload(self, payload: Mapping[str, Any]) -> None:
        self.handle(parse_frontend_message(payload))

    def handle(self, message: FrontendMessage) -> None:
        if isinstance(message, QueryCommand):
            self.post(self.run_query(message))
        elif isinstance(message, MoreCommand):
            self.post(self.fetch_more(message))
        elif isinstance(message, CopyCommand):
            self.copy_full_query(message.sql)
        elif isinstance(message, (ConfigCommand, ReloadBaseViewCommand)):
            # Renderer-originated config/reload messages carry nothing to act on.
            self.logger.debug(f"Ignoring renderer '{message.type}' message.")
        else:  # pragma: no cover - exhaustive over FrontendMessage
            raise TypeError(f"Unhandled message {message!r}")

    def run_query(self, command: QueryCommand) -> QueryResult:
        """Describe then fetch the first window of a fresh query."""
        self.logger.debug(f"query (limit={command.limit}): {command.sql.strip()}")
        try:
            self.state = DispatcherState.DESCRIBING
            described = pagination.describe(self.view.engine, command.sql)
            self.state = DispatcherState.WINDOWING
            page = pagination.fetch_page(
                self.view.engine, QueryRequest(sql=command.sql, limit=command.limit, offset=0)
            )
            columns = pagination.label_columns(described, page.columns)
        except (QueryError, ValueError) as exc:
            self.logger.debug(f"query failed: {exc}")
            return QueryResult.failed(str(exc), request_id=command.request_id)
        finally:
            self.state = DispatcherState.IDLE
        return QueryResult.ok(page.rows, columns, request_id=command.request_id)

    def fetch_more(self, command: MoreCommand) -> MoreResult:
        """Fetch the window at the offset the renderer asked for."""
        self.logger.debug(f"more (limit={command.limit}, offset={command.offset})")
        try:
            self.state = DispatcherState.FETCHING
            page = pagination.fetch_page(
                self.view.engine,
                QueryRequest(sql=command.sql, limit=command.limit, offset=command.offset),
            )
        except (QueryError, ValueError) as exc:
            self.logger.debug(f"more failed: {exc}")
            return MoreResult.failed(str(exc), request_id=command.request_id)
        finally:
            self.state = DispatcherState.IDLE
        return MoreResult.ok(page.rows, request_id=command.request_id)

    def on_file_changed(self, event: FileEvent) -> None:
        """Rebuild the view and tell the renderer; does not wait on any query."""
        self.logger.debug(f"{self.view.source.path.name} {event.value}; rebuilding view.")
        try:
            generation = self.view.reload_view()
        except QueryError as exc:
            # A deleted or half-written file fails here; the next query reports it.
            self.logger.warning(f"Could not rebuild view after file {event.value}: {exc}")
        else:
            self.logger.debug(f"View rebuilt (generation {generation}).")
        self.post(ReloadBaseViewNotice())

    def copy_full_query(self, sql: str) -> str:
        text = full_query_text(self.view.create_statement, sql)
        try:
            self.clipboard.write_text(text)
        except ClipboardError as exc:
            self.logger.error(str(exc))
        else:
            self.logger.success("Full query copied to clipboard")
        return text
