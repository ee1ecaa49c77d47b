from __future__ import annotations

import json
from pathlib import Path

import pytest

from toolhost import config
from toolhost.config import ServerConfig, load_server_configs, merge_env


def test_from_dict_fills_defaults() -> None:
    server = ServerConfig.from_dict("docker", {"command": "python", "args": ["-m", "docker_mcp"]})
    assert server.argv == ["python", "-m", "docker_mcp"]
    assert server.env == {}
    assert server.ready_method is None
    assert server.grace_period == config.DEFAULT_GRACE_PERIOD


def test_from_dict_requires_command() -> None:
    with pytest.raises(ValueError, match="no command"):
        ServerConfig.from_dict("broken", {"args": []})


def test_from_dict_rejects_string_args() -> None:
    with pytest.raises(ValueError, match="args must be a list"):
        ServerConfig.from_dict("broken", {"command": "x", "args": "-m thing"})


def test_load_resolves_relative_cwd(tmp_path: Path) -> None:
    path = tmp_path / "servers.json"
    path.write_text(json.dumps({
        "servers": {
            "docker": {"command": "python", "cwd": "docker-mcp", "env": {"PORT": 8080}},
            "github": {"command": "docker", "args": ["run", "-i"], "ready_method": "initialize"},
        }
    }))
    configs = load_server_configs(path)
    assert set(configs) == {"docker", "github"}
    assert configs["docker"].cwd == str((tmp_path / "docker-mcp").resolve())
    assert configs["docker"].env == {"PORT": "8080"}
    assert configs["github"].ready_method == "initialize"
    assert configs["github"].cwd is None


def test_load_rejects_non_object(tmp_path: Path) -> None:
    path = tmp_path / "servers.json"
    path.write_text("[]")
    with pytest.raises(ValueError):
        load_server_configs(path)


def test_merge_env_overlays_ambient(monkeypatch) -> None:
    monkeypatch.setenv("TOOLHOST_AMBIENT", "a")
    monkeypatch.setenv("TOOLHOST_TEST_VAR", "old")
    env = merge_env({"TOOLHOST_TEST_VAR": "new"})
    assert env["TOOLHOST_AMBIENT"] == "a"
    assert env["TOOLHOST_TEST_VAR"] == "new"


def test_env_float_parsing(monkeypatch) -> None:
    monkeypatch.setenv("TOOLHOST_X", "1.5")
    assert config._env_float("TOOLHOST_X", 9.0) == 1.5
    monkeypatch.setenv("TOOLHOST_X", "soon")
    assert config._env_float("TOOLHOST_X", 9.0) == 9.0
    monkeypatch.delenv("TOOLHOST_X")
    assert config._env_float("TOOLHOST_X", 9.0) == 9.0
