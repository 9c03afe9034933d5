"""In-process wiring of one document's backend and renderer."""

from __future__ import annotations

import queue
from pathlib import Path

from flat_cli.shared.database import QueryEngine
from flat_cli.shared.logging import Logger, get_logger
from flat_cli.shared.state import StateStore, session_key

from .clipboard import ClipboardSink, MemoryClipboard
from .dispatcher import Dispatcher
from .messages import BackendMessage, FrontendMessage
from .renderer import GridView, Renderer
from .types import SessionConfig
from .view import ViewManager, detect_source
from .watcher import DEFAULT_POLL_INTERVAL, FileWatcher


class ExplorerSession:
    """One open file: engine, view, dispatcher, renderer, and watcher.

    Renderer requests are handled synchronously; backend messages are queued
    and applied by ``pump()`` on the caller's thread, so watcher notifications
    raised on the polling thread never touch renderer state directly.
    """

    def __init__(
        self,
        path: str | Path,
        config: SessionConfig,
        *,
        grid: GridView | None = None,
        clipboard: ClipboardSink | None = None,
        store: StateStore | None = None,
        logger: Logger | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.source = detect_source(path)
        self.config = config
        self.logger = (logger or get_logger()).for_session(self.source.path.name)
        self._outbox: queue.SimpleQueue[BackendMessage] = queue.SimpleQueue()

        self.engine = QueryEngine()
        try:
            self.view = ViewManager(self.engine, self.source, config)
            self.view.create_view()
        except Exception:
            self.engine.close()
            raise

        self.dispatcher = Dispatcher(
            self.view,
            config,
            post=self._outbox.put,
            clipboard=clipboard or MemoryClipboard(),
            logger=self.logger,
        )
        self.renderer = Renderer(
            config.chunk_size,
            send=self._send,
            view=grid,
            auto_query=config.auto_query,
            store=store,
            session_key=session_key(self.source.path),
        )
        self.watcher = FileWatcher(
            self.source.path, self.dispatcher.on_file_changed, interval=poll_interval
        )

    @property
    def default_query(self) -> str:
        return self.config.default_query_for(self.source)

    def open(self, *, watch: bool = True) -> None:
        """Announce config, restore the renderer, and start watching the file."""
        self.dispatcher.start()
        self.pump()
        self.renderer.initialize(self.default_query)
        self.pump()
        if watch:
            self.watcher.start()

    def pump(self) -> int:
        """Apply queued backend messages to the renderer; returns how many ran."""
        handled = 0
        while True:
            try:
                message = self._outbox.get_nowait()
            except queue.Empty:
                return handled
            self.renderer.receive(message)
            handled += 1

    def close(self) -> None:
        self.watcher.stop()
        self.engine.close()

    def __enter__(self) -> ExplorerSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _send(self, message: FrontendMessage) -> None:
        self.dispatcher.handle(message)
