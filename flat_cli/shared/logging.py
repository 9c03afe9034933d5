"""Rich-based logging helpers shared across the explorer commands."""

from __future__ import annotations

from dataclasses import dataclass, replace

from rich.console import Console
from rich.theme import Theme
from rich.traceback import install

install(show_locals=False)

_THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "debug": "dim",
    }
)

# Grids, JSON payloads and copied SQL go to stdout; everything else goes to stderr.
# Highlighting stays off so SQL fragments and file paths are printed verbatim.
_stdout_console = Console(theme=_THEME, highlight=False)
_stderr_console = Console(stderr=True, theme=_THEME, highlight=False)


@dataclass(slots=True)
class Logger:
    """Lightweight logger facade backed by Rich consoles.

    ``label`` names the open document so interleaved output from a watcher thread
    and the interactive loop can be told apart.
    """

    verbose: bool = False
    label: str | None = None

    @property
    def console(self) -> Console:
        return _stdout_console

    def for_session(self, label: str) -> Logger:
        """Return a copy whose messages are prefixed with ``label``."""
        return replace(self, label=label)

    def info(self, message: str) -> None:
        _stderr_console.print(self._format(message), style="info", markup=False)

    def success(self, message: str) -> None:
        _stderr_console.print(self._format(message), style="success", markup=False)

    def warning(self, message: str) -> None:
        _stderr_console.print(self._format(message), style="warning", markup=False)

    def error(self, message: str) -> None:
        _stderr_console.print(self._format(message), style="error", markup=False)

    def debug(self, message: str) -> None:
        if self.verbose:
            _stderr_console.print(self._format(message), style="debug", markup=False)

    def _format(self, message: str) -> str:
        if self.label:
            return f"[{self.label}] {message}"
        return message


def get_logger(verbose: bool = False) -> Logger:
    """Return a configured Logger instance."""
    return Logger(verbose=verbose)
