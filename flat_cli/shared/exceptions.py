"""Project-wide custom exceptions."""

from __future__ import annotations


class FlatExploreError(Exception):
    """Base exception for the flat-file explorer."""


class ConfigurationError(FlatExploreError):
    """Raised when configuration loading or validation fails."""


class UnsupportedSourceError(ConfigurationError):
    """Raised when a file extension maps to neither supported format family."""


class DatabaseError(FlatExploreError):
    """Raised for query-engine issues."""


class QueryError(DatabaseError):
    """Raised when a statement fails inside the query engine.

    The message is the engine's own text so it can be shown to the user verbatim.
    """


class ProtocolError(FlatExploreError):
    """Raised when a renderer/backend message cannot be decoded."""


class ClipboardError(FlatExploreError):
    """Raised when no clipboard sink accepts the text."""
