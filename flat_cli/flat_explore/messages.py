"""Renderer <-> backend message protocol.

Every message is a frozen dataclass carrying a ``type`` tag. ``FrontendMessage``
covers what the renderer sends, ``BackendMessage`` what the dispatcher sends back.
``to_payload()`` yields the camelCase wire dict; the ``parse_*`` helpers invert it.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, ClassVar, Mapping, Sequence, Union
from uuid import UUID

from flat_cli.shared.exceptions import ProtocolError

from .types import ColumnDescriptor

Record = Mapping[str, Any]


# ---------------------------------------------------------------------------
# Frontend -> backend


@dataclass(frozen=True, slots=True)
class QueryCommand:
    type: ClassVar[str] = "query"

    sql: str
    limit: int
    request_id: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = {"type": self.type, "sql": self.sql, "limit": self.limit}
        return _with_request_id(payload, self.request_id)


@dataclass(frozen=True, slots=True)
class MoreCommand:
    type: ClassVar[str] = "more"

    sql: str
    limit: int
    offset: int
    request_id: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = {"type": self.type, "sql": self.sql, "limit": self.limit, "offset": self.offset}
        return _with_request_id(payload, self.request_id)


@dataclass(frozen=True, slots=True)
class ConfigCommand:
    type: ClassVar[str] = "config"

    auto_query: bool

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "autoQuery": self.auto_query}


@dataclass(frozen=True, slots=True)
class ReloadBaseViewCommand:
    type: ClassVar[str] = "reloadBaseView"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type}


@dataclass(frozen=True, slots=True)
class CopyCommand:
    type: ClassVar[str] = "copy"

    sql: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "sql": self.sql}


FrontendMessage = Union[QueryCommand, MoreCommand, ConfigCommand, ReloadBaseViewCommand, CopyCommand]


# ---------------------------------------------------------------------------
# Backend -> frontend


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Envelope for the first page of a query; only this one carries columns."""

    type: ClassVar[str] = "query"

    success: bool
    results: Sequence[Record] | None = None
    describe: Sequence[ColumnDescriptor] | None = None
    message: str | None = None
    request_id: int | None = None

    @classmethod
    def ok(
        cls,
        results: Sequence[Record],
        describe: Sequence[ColumnDescriptor],
        request_id: int | None = None,
    ) -> QueryResult:
        return cls(success=True, results=list(results), describe=list(describe), request_id=request_id)

    @classmethod
    def failed(cls, message: str, request_id: int | None = None) -> QueryResult:
        return cls(success=False, message=message, request_id=request_id)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "success": self.success}
        if self.results is not None:
            payload["results"] = [dict(row) for row in self.results]
        if self.describe is not None:
            payload["describe"] = [
                {"column_name": column.name, "column_type": column.type} for column in self.describe
            ]
        if self.message is not None:
            payload["message"] = self.message
        return _with_request_id(payload, self.request_id)


@dataclass(frozen=True, slots=True)
class MoreResult:
    """Envelope for a follow-up page: rows only."""

    type: ClassVar[str] = "more"

    success: bool
    results: Sequence[Record] | None = None
    message: str | None = None
    request_id: int | None = None

    @classmethod
    def ok(cls, results: Sequence[Record], request_id: int | None = None) -> MoreResult:
        return cls(success=True, results=list(results), request_id=request_id)

    @classmethod
    def failed(cls, message: str, request_id: int | None = None) -> MoreResult:
        return cls(success=False, message=message, request_id=request_id)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "success": self.success}
        if self.results is not None:
            payload["results"] = [dict(row) for row in self.results]
        if self.message is not None:
            payload["message"] = self.message
        return _with_request_id(payload, self.request_id)


@dataclass(frozen=True, slots=True)
class ConfigNotice:
    type: ClassVar[str] = "config"

    auto_query: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        if self.auto_query is not None:
            payload["autoQuery"] = self.auto_query
        return payload


@dataclass(frozen=True, slots=True)
class ReloadBaseViewNotice:
    type: ClassVar[str] = "reloadBaseView"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type}


BackendMessage = Union[QueryResult, MoreResult, ConfigNotice, ReloadBaseViewNotice]


# ---------------------------------------------------------------------------
# Decoding


def parse_frontend_message(payload: Mapping[str, Any]) -> FrontendMessage:
    """Decode a renderer payload into its message type."""
    kind = _message_type(payload)
    if kind == QueryCommand.type:
        return QueryCommand(
            sql=_require(payload, "sql", str),
            limit=_require(payload, "limit", int),
            request_id=_optional(payload, "requestId", int),
        )
    if kind == MoreCommand.type:
        return MoreCommand(
            sql=_require(payload, "sql", str),
            limit=_require(payload, "limit", int),
            offset=_require(payload, "offset", int),
            request_id=_optional(payload, "requestId", int),
        )
    if kind == ConfigCommand.type:
        return ConfigCommand(auto_query=_require(payload, "autoQuery", bool))
    if kind == ReloadBaseViewCommand.type:
        return ReloadBaseViewCommand()
    if kind == CopyCommand.type:
        return CopyCommand(sql=_require(payload, "sql", str))
    raise ProtocolError(f"Unknown frontend message type '{kind}'.")


def parse_backend_message(payload: Mapping[str, Any]) -> BackendMessage:
    """Decode a dispatcher payload into its message type."""
    kind = _message_type(payload)
    if kind == QueryResult.type:
        describe = _optional(payload, "describe", list)
        return QueryResult(
            success=_require(payload, "success", bool),
            results=_optional(payload, "results", list),
            describe=None if describe is None else [_parse_column(entry) for entry in describe],
            message=_optional(payload, "message", str),
            request_id=_optional(payload, "requestId", int),
        )
    if kind == MoreResult.type:
        return MoreResult(
            success=_require(payload, "success", bool),
            results=_optional(payload, "results", list),
            message=_optional(payload, "message", str),
            request_id=_optional(payload, "requestId", int),
        )
    if kind == ConfigNotice.type:
        return ConfigNotice(auto_query=_optional(payload, "autoQuery", bool))
    if kind == ReloadBaseViewNotice.type:
        return ReloadBaseViewNotice()
    raise ProtocolError(f"Unknown backend message type '{kind}'.")


def encode_message(message: FrontendMessage | BackendMessage) -> str:
    """Serialise a message to its JSON wire form."""
    return json.dumps(message.to_payload(), default=json_default)


def decode_frontend_message(raw: str) -> FrontendMessage:
    return parse_frontend_message(_loads(raw))


def decode_backend_message(raw: str) -> BackendMessage:
    return parse_backend_message(_loads(raw))


# ---------------------------------------------------------------------------
# Internal helpers


def _with_request_id(payload: dict[str, Any], request_id: int | None) -> dict[str, Any]:
    if request_id is not None:
        payload["requestId"] = request_id
    return payload


def _message_type(payload: Mapping[str, Any]) -> str:
    if not isinstance(payload, Mapping):
        raise ProtocolError("Messages must be JSON objects.")
    kind = payload.get("type")
    if not isinstance(kind, str):
        raise ProtocolError("Message is missing its 'type' tag.")
    return kind


def _require(payload: Mapping[str, Any], key: str, expected: type) -> Any:
    if key not in payload:
        raise ProtocolError(f"'{payload.get('type')}' message is missing field '{key}'.")
    value = payload[key]
    if not _matches(value, expected):
        raise ProtocolError(
            f"Field '{key}' of '{payload.get('type')}' message must be {expected.__name__}."
        )
    return value


def _optional(payload: Mapping[str, Any], key: str, expected: type) -> Any:
    if payload.get(key) is None:
        return None
    return _require(payload, key, expected)


def _matches(value: Any, expected: type) -> bool:
    # bool is an int subclass; keep the two apart on the wire.
    if expected is int:
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, expected)


def _parse_column(entry: Any) -> ColumnDescriptor:
    if not isinstance(entry, Mapping) or "column_name" not in entry or "column_type" not in entry:
        raise ProtocolError("Describe entries need 'column_name' and 'column_type'.")
    return ColumnDescriptor(name=str(entry["column_name"]), type=str(entry["column_type"]))


def _loads(raw: str) -> Mapping[str, Any]:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"Message is not valid JSON: {exc}") from exc


def json_default(value: object) -> object:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, timedelta):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        data = bytes(value)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(data).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
