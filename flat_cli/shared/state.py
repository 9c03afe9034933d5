"""Per-session key-value state with safe file handling.

Holds small UI values that must survive the interactive view being torn down and
recreated, such as the last query typed against a file. Values are stored in
~/.flatexplore/state.json with atomic writes.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from . import paths

logger = logging.getLogger(__name__)

# Current schema version - increment when breaking changes occur
STATE_VERSION = 1


def session_key(source_path: str | Path) -> str:
    """Return the key identifying a session: the resolved path of the opened file."""
    return str(Path(source_path).expanduser().resolve())


class StateStore:
    """JSON-file backed mapping of session key to a small state dict."""

    def __init__(
        self,
        path: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.path = Path(path) if path else paths.default_state_path(env)
        self._sessions: dict[str, dict[str, Any]] = self._load()

    def get(self, key: str) -> dict[str, Any] | None:
        """Return the stored state for ``key``, or None if nothing was saved."""
        value = self._sessions.get(key)
        return dict(value) if value is not None else None

    def set(self, key: str, value: Mapping[str, Any]) -> None:
        """Replace the state for ``key`` and flush it to disk."""
        self._sessions[key] = dict(value)
        self._save()

    def _load(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read session state from %s: %s; starting empty.", self.path, exc)
            return {}

        sessions = data.get("sessions") if isinstance(data, dict) else None
        if not isinstance(sessions, dict):
            logger.warning("Session state at %s has no 'sessions' mapping; starting empty.", self.path)
            return {}
        return {str(key): dict(value) for key, value in sessions.items() if isinstance(value, dict)}

    def _save(self) -> None:
        parent = self.path.parent
        if not parent.exists():
            parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            logger.info("Created state directory: %s", parent)

        payload = {"version": STATE_VERSION, "sessions": self._sessions}
        json_content = json.dumps(payload, indent=2, sort_keys=True)

        # Temp file in the same directory so os.replace stays atomic.
        fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix=".state_", dir=parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(json_content)
                handle.write("\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, self.path)
        except OSError as exc:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            logger.error("Failed to save session state to %s: %s", self.path, exc)
            raise
        logger.debug("Saved session state to %s", self.path)
