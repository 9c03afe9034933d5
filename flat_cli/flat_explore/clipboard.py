"""Clipboard sinks for the "copy full query" feature."""

from __future__ import annotations

import shutil
import subprocess
from typing import Protocol, Sequence

from flat_cli.shared.exceptions import ClipboardError

# Tried in order; the first one present on PATH that exits cleanly wins.
CLIPBOARD_COMMANDS: tuple[tuple[str, ...], ...] = (
    ("pbcopy",),
    ("wl-copy",),
    ("xclip", "-selection", "clipboard"),
    ("xsel", "--clipboard", "--input"),
    ("clip",),
)


class ClipboardSink(Protocol):
    def write_text(self, text: str) -> None: ...


class MemoryClipboard:
    """Keeps copied text in memory; used by tests and headless sessions."""

    def __init__(self) -> None:
        self.contents: list[str] = []

    def write_text(self, text: str) -> None:
        self.contents.append(text)

    @property
    def last(self) -> str | None:
        return self.contents[-1] if self.contents else None


class SystemClipboard:
    """Pipes text into the platform clipboard utility."""

    def __init__(self, commands: Sequence[Sequence[str]] = CLIPBOARD_COMMANDS) -> None:
        self.commands = [tuple(command) for command in commands]

    def write_text(self, text: str) -> None:
        failures: list[str] = []
        for command in self.commands:
            executable = shutil.which(command[0])
            if executable is None:
                continue
            try:
                subprocess.run(
                    [executable, *command[1:]],
                    input=text.encode("utf-8"),
                    check=True,
                    capture_output=True,
                    timeout=5,
                )
            except (OSError, subprocess.SubprocessError) as exc:
                failures.append(f"{command[0]}: {exc}")
                continue
            return
        detail = "; ".join(failures) if failures else "no clipboard utility found on PATH"
        raise ClipboardError(f"Could not copy to clipboard ({detail}).")
