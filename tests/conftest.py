from __future__ import annotations

import sys
import textwrap
import time
from pathlib import Path

import pytest

from toolhost.config import ServerConfig
from toolhost.manager import ToolServerManager
from toolhost.registry import ProcessRegistry

# Child-process scripts. Each reads one JSON-RPC line at a time from stdin.

_LOOP = """
import json, os, sys, time

def reply(req, **fields):
    sys.stdout.write(json.dumps({"jsonrpc": "2.0", "id": req.get("id"), **fields}) + "\\n")
    sys.stdout.flush()

for line in sys.stdin:
    if not line.strip():
        continue
    req = json.loads(line)
    if "id" not in req:
        continue
{body}
"""

SCRIPTS = {
    "ok": "    reply(req, result={'ok': True})",
    "echo_params": (
        "    time.sleep(float(os.environ.get('DELAY', '0')))\n"
        "    reply(req, result={'method': req['method'], 'params': req['params']})"
    ),
    "slow": (
        "    time.sleep(float(os.environ.get('DELAY', '5')))\n"
        "    reply(req, result={'ok': True})"
    ),
    "silent": "    pass",
    "garbage": "    sys.stdout.write('not json\\n'); sys.stdout.flush()",
    "error": "    reply(req, error={'code': -32000, 'message': 'boom', 'data': {'why': 'test'}})",
    "wrong_id": "    reply(req, id=999, result={'ok': True})",
    "die_on_request": "    sys.exit(1)",
    "env": (
        "    reply(req, result={'var': os.environ.get('TOOLHOST_TEST_VAR'),"
        " 'ambient': os.environ.get('TOOLHOST_AMBIENT'), 'cwd': os.getcwd()})"
    ),
    "stderr": (
        "    sys.stderr.write('diagnostic: got ' + req['method'] + '\\n'); sys.stderr.flush()\n"
        "    reply(req, result={'ok': True})"
    ),
}

CRASH = """
import sys
sys.stderr.write("fatal: bad config\\n")
sys.exit(3)
"""

# Ignores SIGTERM and keeps running after stdin closes; only kill stops it
STUBBORN = """
import signal
signal.signal(signal.SIGTERM, signal.SIG_IGN)
"""

# Prints a human-readable line on stdout before speaking JSON-RPC
BANNER = """
print("example-server v1.2 listening on stdio", flush=True)
"""


@pytest.fixture
def script(tmp_path: Path):
    """Write a fixture server script and return its path."""

    def _make(kind: str) -> str:
        if kind == "crash":
            source = CRASH
        elif kind == "stubborn":
            source = STUBBORN + _LOOP.replace("{body}", SCRIPTS["ok"]) + "time.sleep(30)\n"
        elif kind == "banner":
            source = BANNER + _LOOP.replace("{body}", SCRIPTS["ok"])
        else:
            source = _LOOP.replace("{body}", SCRIPTS[kind])
        path = tmp_path / f"{kind}_server.py"
        path.write_text(textwrap.dedent(source))
        return str(path)

    return _make


@pytest.fixture
def config_for(script):
    """ServerConfig running a fixture script, with no startup delay."""

    def _make(name: str, kind: str, **kwargs) -> ServerConfig:
        kwargs.setdefault("grace_period", 0)
        return ServerConfig(name=name, command=sys.executable, args=[script(kind)], **kwargs)

    return _make


@pytest.fixture
def echo_config():
    """The packaged reference echo server, ready once it answers ping."""
    return ServerConfig(
        name="echo",
        command=sys.executable,
        args=["-m", "toolhost.servers.echo"],
        ready_method="ping",
        grace_period=0,
    )


@pytest.fixture
def registry():
    reg = ProcessRegistry(stop_timeout=2.0)
    yield reg
    reg.stop_all()


@pytest.fixture
def manager(registry):
    mgr = ToolServerManager(registry=registry, call_timeout=5.0, list_timeout=2.0)
    yield mgr
    mgr.stop_all()


@pytest.fixture
def wait_until():
    """Poll `predicate` until it holds or `timeout` seconds pass."""
    return _wait_until


def _wait_until(predicate, timeout: float = 3.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
