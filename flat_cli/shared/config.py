"""Configuration loading utilities for the flat-file explorer."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import yaml

from . import paths
from .exceptions import ConfigurationError

_PLACEHOLDER_PATTERN = re.compile(r"\$\{[^{]+\}")


@dataclass(frozen=True, slots=True)
class ExplorerSettings:
    """Session defaults read once when a file is opened."""

    table_name: str
    use_file_name_as_table_name: bool
    chunk_size: int
    auto_query: bool
    default_query: str


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Top-level application configuration."""

    source_path: Path
    explorer: ExplorerSettings

    def with_overrides(
        self,
        *,
        chunk_size: int | None = None,
        auto_query: bool | None = None,
    ) -> AppConfig:
        """Return a copy with CLI-level explorer overrides applied."""
        changes: dict[str, Any] = {}
        if chunk_size is not None:
            if chunk_size <= 0:
                raise ConfigurationError("Chunk size must be a positive integer.")
            changes["chunk_size"] = chunk_size
        if auto_query is not None:
            changes["auto_query"] = auto_query
        if not changes:
            return self
        return replace(self, explorer=replace(self.explorer, **changes))


def render_default_query(template: str, table_name: str) -> str:
    """Substitute ``${tableName}`` in ``template``; unknown placeholders become empty."""

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(0)[2:-1].strip()
        return table_name if name == "tableName" else ""

    return _PLACEHOLDER_PATTERN.sub(_substitute, template)


def _default_config() -> dict[str, Any]:
    return {
        "explorer": {
            "table_name": "data",
            "use_file_name_as_table_name": False,
            "chunk_size": 1000,
            "auto_query": True,
            "default_query": "SELECT * FROM ${tableName}",
        },
    }


ENV_OVERRIDE_SPEC: dict[str, tuple[str, type]] = {
    "explorer.table_name": ("FLATEXPLORE_TABLE_NAME", str),
    "explorer.use_file_name_as_table_name": ("FLATEXPLORE_USE_FILE_NAME", bool),
    "explorer.chunk_size": ("FLATEXPLORE_CHUNK_SIZE", int),
    "explorer.auto_query": ("FLATEXPLORE_AUTO_QUERY", bool),
    "explorer.default_query": ("FLATEXPLORE_DEFAULT_QUERY", str),
}


def load_config(
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load configuration from defaults, YAML file, and env overrides."""
    env = dict(env or os.environ)
    resolved_config_path = _resolve_config_path(config_path, env)
    file_data = _load_yaml(resolved_config_path)
    defaults = _default_config()
    merged: dict[str, Any] = _deep_merge(defaults, file_data)
    merged = _apply_env_overrides(merged, env)
    return _build_config(merged, resolved_config_path)


def _resolve_config_path(config_path: str | Path | None, env: Mapping[str, str]) -> Path:
    if config_path:
        return paths.resolve_path(config_path)
    return paths.default_config_path(env=env)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Config file at {path} is not valid YAML: {exc}") from exc
        if not isinstance(data, MutableMapping):
            raise ConfigurationError(f"Config file at {path} must define a mapping root object.")
        return dict(data)


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    config_copy = _deep_merge(config, {})  # shallow copy via merge
    for dotted_key, (env_key, expected_type) in ENV_OVERRIDE_SPEC.items():
        if env_key not in env:
            continue
        raw_value = env[env_key]
        try:
            value = _coerce_env_value(raw_value, expected_type)
        except ValueError as exc:
            raise ConfigurationError(
                f"Environment override {env_key} has invalid value '{raw_value}': {exc}"
            ) from exc
        _assign_nested(config_copy, dotted_key.split("."), value)
    return config_copy


def _coerce_env_value(raw: str, expected_type: type) -> Any:
    cleaned = raw.strip()
    if expected_type is bool:
        lowered = cleaned.lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ValueError("expected boolean (true/false)")
    if expected_type is int:
        return int(cleaned)
    # Default query templates may carry meaningful surrounding whitespace.
    return raw


def _assign_nested(target: MutableMapping[str, Any], keys: list[str], value: Any) -> None:
    current = target
    for key in keys[:-1]:
        if key not in current or not isinstance(current[key], MutableMapping):
            current[key] = {}
        current = current[key]  # type: ignore[assignment]
    current[keys[-1]] = value


def _build_config(data: Mapping[str, Any], source_path: Path) -> AppConfig:
    try:
        explorer_cfg = data["explorer"]
        explorer = ExplorerSettings(
            table_name=str(explorer_cfg["table_name"]).strip(),
            use_file_name_as_table_name=bool(explorer_cfg["use_file_name_as_table_name"]),
            chunk_size=int(explorer_cfg["chunk_size"]),
            auto_query=bool(explorer_cfg["auto_query"]),
            default_query=str(explorer_cfg["default_query"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration structure: {exc}") from exc

    if explorer.chunk_size <= 0:
        raise ConfigurationError("explorer.chunk_size must be a positive integer.")
    if not explorer.table_name:
        raise ConfigurationError("explorer.table_name must not be empty.")

    return AppConfig(source_path=source_path, explorer=explorer)
