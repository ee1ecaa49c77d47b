from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from toolhost.cli import main


@pytest.fixture
def config_file(tmp_path: Path) -> str:
    path = tmp_path / "servers.json"
    path.write_text(json.dumps({
        "servers": {
            "echo": {
                "command": sys.executable,
                "args": ["-m", "toolhost.servers.echo"],
                "ready_method": "ping",
                "grace_period": 0,
            }
        }
    }))
    return str(path)


def test_status(config_file, capsys) -> None:
    assert main(["--config", config_file, "status"]) == 0
    assert json.loads(capsys.readouterr().out) == {"echo": True}


def test_call(config_file, capsys) -> None:
    params = json.dumps({"name": "echo", "arguments": {"message": "cli"}})
    assert main(["--config", config_file, "call", "echo", "tools/call", "--params", params]) == 0
    assert json.loads(capsys.readouterr().out) == {"ok": True, "arguments": {"message": "cli"}}


def test_tools(config_file, capsys) -> None:
    assert main(["--config", config_file, "tools", "echo"]) == 0
    tools = json.loads(capsys.readouterr().out)
    assert [t["name"] for t in tools] == ["echo", "sleep", "reject"]


def test_call_error_exit_code(config_file) -> None:
    assert main(["--config", config_file, "call", "echo", "no/such/method"]) == 1


def test_bad_params(config_file) -> None:
    assert main(["--config", config_file, "call", "echo", "ping", "--params", "[1]"]) == 2
