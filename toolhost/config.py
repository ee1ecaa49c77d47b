"""
Server launch configuration.

A config file lists the tool servers to launch:

    {
        "servers": {
            "github": {
                "command": "docker",
                "args": ["run", "-i", "--rm", "-e", "GITHUB_PERSONAL_ACCESS_TOKEN",
                         "ghcr.io/github/github-mcp-server"],
                "env": {"GITHUB_PERSONAL_ACCESS_TOKEN": "..."},
                "ready_method": "initialize"
            },
            "docker": {
                "command": "python",
                "args": ["-m", "docker_mcp"],
                "cwd": "../docker-mcp"
            }
        }
    }

Timeout defaults can be overridden with TOOLHOST_* environment variables.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


DEFAULT_CALL_TIMEOUT = _env_float("TOOLHOST_CALL_TIMEOUT", 30.0)
DEFAULT_LIST_TIMEOUT = _env_float("TOOLHOST_LIST_TIMEOUT", 5.0)
DEFAULT_GRACE_PERIOD = _env_float("TOOLHOST_GRACE_PERIOD", 2.0)
DEFAULT_STOP_TIMEOUT = _env_float("TOOLHOST_STOP_TIMEOUT", 5.0)


def merge_env(extra: dict[str, str] | None) -> dict[str, str]:
    """Overlay per-server variables on the ambient environment."""
    env = dict(os.environ)
    if extra:
        env.update({k: str(v) for k, v in extra.items()})
    return env


@dataclass
class ServerConfig:
    """How to launch one named tool server."""
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    # Readiness: send ready_method until it answers, else sleep grace_period
    ready_method: str | None = None
    ready_params: dict[str, Any] = field(default_factory=dict)
    grace_period: float = DEFAULT_GRACE_PERIOD
    startup_timeout: float = 10.0

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> "ServerConfig":
        if "command" not in data:
            raise ValueError(f"Server config '{name}' has no command")
        args = data.get("args", [])
        if not isinstance(args, list):
            raise ValueError(f"Server config '{name}': args must be a list")
        return cls(
            name=name,
            command=str(data["command"]),
            args=[str(a) for a in args],
            cwd=data.get("cwd"),
            env={k: str(v) for k, v in (data.get("env") or {}).items()},
            ready_method=data.get("ready_method"),
            ready_params=data.get("ready_params") or {},
            grace_period=float(data.get("grace_period", DEFAULT_GRACE_PERIOD)),
            startup_timeout=float(data.get("startup_timeout", 10.0)),
        )


def load_server_configs(path: str | Path) -> dict[str, ServerConfig]:
    """
    Read server definitions from a JSON file.

    Relative `cwd` entries are resolved against the file's directory.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data = json.load(f)

    servers = data.get("servers", data) if isinstance(data, dict) else None
    if not isinstance(servers, dict):
        raise ValueError(f"{path}: expected an object of server definitions")

    configs = {}
    for name, entry in servers.items():
        config = ServerConfig.from_dict(name, entry)
        if config.cwd and not os.path.isabs(config.cwd):
            config.cwd = str((path.parent / config.cwd).resolve())
        configs[name] = config

    logger.info(f"Loaded {len(configs)} server configs from {path}")
    return configs
