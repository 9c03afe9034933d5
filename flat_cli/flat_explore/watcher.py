"""Polling watcher for the single file an explorer session is open on."""

from __future__ import annotations

import enum
import os
import threading
from pathlib import Path
from typing import Callable

DEFAULT_POLL_INTERVAL = 1.0


class FileEvent(str, enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


# (mtime_ns, size) of the file, or None while it does not exist.
Signature = tuple[int, int] | None


def _signature(path: Path) -> Signature:
    try:
        stat = os.stat(path)
    except FileNotFoundError:
        return None
    return stat.st_mtime_ns, stat.st_size


class FileWatcher:
    """Reports create/modify/delete events for exactly one path.

    ``poll()`` compares the current stat signature with the last one seen and
    fires ``callback`` at most once per call. ``start()`` runs it on a daemon
    thread every ``interval`` seconds.
    """

    def __init__(
        self,
        path: str | Path,
        callback: Callable[[FileEvent], None],
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.path = Path(path)
        self.callback = callback
        self.interval = interval
        self._last = _signature(self.path)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def poll(self) -> FileEvent | None:
        current = _signature(self.path)
        previous, self._last = self._last, current
        if current == previous:
            return None
        if previous is None:
            event = FileEvent.CREATED
        elif current is None:
            event = FileEvent.DELETED
        else:
            event = FileEvent.MODIFIED
        self.callback(event)
        return event

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"watch:{self.path.name}", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval * 2)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.poll()

    def __enter__(self) -> FileWatcher:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
