from __future__ import annotations

from pathlib import Path

import pytest

from flat_cli.shared import paths
from flat_cli.shared.config import AppConfig, load_config, render_default_query
from flat_cli.shared.exceptions import ConfigurationError


def test_load_config_defaults(tmp_path: Path) -> None:
    env = {paths.CONFIG_DIR_ENV: str(tmp_path / "config")}
    cfg = load_config(env=env)
    assert isinstance(cfg, AppConfig)
    assert cfg.source_path == tmp_path / "config" / "config.yaml"
    assert cfg.explorer.table_name == "data"
    assert cfg.explorer.use_file_name_as_table_name is False
    assert cfg.explorer.chunk_size == 1000
    assert cfg.explorer.auto_query is True
    assert cfg.explorer.default_query == "SELECT * FROM ${tableName}"


def test_load_config_from_yaml(tmp_path: Path) -> None:
    cfg_dir = tmp_path / "config"
    cfg_dir.mkdir()
    cfg_file = cfg_dir / "config.yaml"
    cfg_file.write_text(
        """
        explorer:
          table_name: rows
          chunk_size: 250
          auto_query: false
        """,
        encoding="utf-8",
    )
    cfg = load_config(config_path=cfg_file, env={paths.CONFIG_DIR_ENV: str(cfg_dir)})
    assert cfg.explorer.table_name == "rows"
    assert cfg.explorer.chunk_size == 250
    assert cfg.explorer.auto_query is False
    assert cfg.explorer.default_query == "SELECT * FROM ${tableName}"


def test_load_config_env_overrides(tmp_path: Path) -> None:
    env = {
        paths.CONFIG_DIR_ENV: str(tmp_path),
        "FLATEXPLORE_TABLE_NAME": "t",
        "FLATEXPLORE_USE_FILE_NAME": "yes",
        "FLATEXPLORE_CHUNK_SIZE": "50",
        "FLATEXPLORE_AUTO_QUERY": "off",
        "FLATEXPLORE_DEFAULT_QUERY": "SELECT count(*) FROM ${tableName}",
    }
    cfg = load_config(env=env)
    assert cfg.explorer.table_name == "t"
    assert cfg.explorer.use_file_name_as_table_name is True
    assert cfg.explorer.chunk_size == 50
    assert cfg.explorer.auto_query is False
    assert cfg.explorer.default_query == "SELECT count(*) FROM ${tableName}"


def test_config_path_env_override(tmp_path: Path) -> None:
    cfg_file = tmp_path / "elsewhere.yaml"
    cfg_file.write_text("explorer:\n  chunk_size: 7\n", encoding="utf-8")
    cfg = load_config(env={paths.CONFIG_FILE_ENV: str(cfg_file)})
    assert cfg.source_path == cfg_file
    assert cfg.explorer.chunk_size == 7


@pytest.mark.parametrize(
    "env_key, raw",
    [("FLATEXPLORE_CHUNK_SIZE", "many"), ("FLATEXPLORE_AUTO_QUERY", "maybe")],
)
def test_invalid_env_override_raises(tmp_path: Path, env_key: str, raw: str) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        load_config(env={paths.CONFIG_DIR_ENV: str(tmp_path), env_key: raw})
    assert env_key in str(excinfo.value)


@pytest.mark.parametrize(
    "contents, message",
    [
        ("explorer: [unclosed", "not valid YAML"),
        ("- just\n- a list\n", "mapping root"),
        ("explorer:\n  chunk_size: 0\n", "chunk_size"),
        ("explorer:\n  table_name: '  '\n", "table_name"),
        ("explorer:\n  chunk_size: lots\n", "Invalid configuration"),
    ],
)
def test_invalid_config_file_raises(tmp_path: Path, contents: str, message: str) -> None:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(contents, encoding="utf-8")
    with pytest.raises(ConfigurationError) as excinfo:
        load_config(config_path=cfg_file, env={paths.CONFIG_DIR_ENV: str(tmp_path)})
    assert message in str(excinfo.value)


def test_with_overrides_replaces_explorer_settings(tmp_path: Path) -> None:
    cfg = load_config(env={paths.CONFIG_DIR_ENV: str(tmp_path)})

    updated = cfg.with_overrides(chunk_size=5, auto_query=False)

    assert updated.explorer.chunk_size == 5
    assert updated.explorer.auto_query is False
    assert cfg.explorer.chunk_size == 1000
    assert cfg.with_overrides() is cfg
    with pytest.raises(ConfigurationError):
        cfg.with_overrides(chunk_size=0)


def test_render_default_query_substitutes_table_name() -> None:
    assert render_default_query("SELECT * FROM ${tableName}", "data") == "SELECT * FROM data"
    assert render_default_query("SELECT * FROM ${ tableName }", "t") == "SELECT * FROM t"
    assert render_default_query("SELECT ${other} FROM ${tableName}", "t") == "SELECT  FROM t"
    assert render_default_query("SELECT 1", "t") == "SELECT 1"
