from __future__ import annotations

import io
import json

import pytest

from toolhost.server import StdioToolServer, ToolHandler
from toolhost.servers.echo import EchoTool


class FailingTool(ToolHandler):
    name = "fail"
    description = "Always raises"

    def handle(self, params: dict) -> dict:
        raise RuntimeError("tool broke")


@pytest.fixture
def server() -> StdioToolServer:
    srv = StdioToolServer("test")
    srv.register(EchoTool())
    srv.register(FailingTool())
    return srv


def request(method: str, params: dict | None = None, id: int | None = 1) -> str:
    message = {"jsonrpc": "2.0", "method": method, "params": params or {}}
    if id is not None:
        message["id"] = id
    return json.dumps(message)


def test_ping(server) -> None:
    response = server.handle_line(request("ping"))
    assert response["result"]["status"] == "ok"
    assert response["id"] == 1


def test_tools_list_uses_mcp_shape(server) -> None:
    tools = server.handle_line(request("tools/list"))["result"]["tools"]
    assert [t["name"] for t in tools] == ["echo", "fail"]
    assert tools[0]["inputSchema"]["properties"]["message"]["type"] == "string"


def test_tools_call_dispatches(server) -> None:
    response = server.handle_line(request("tools/call", {"name": "echo", "arguments": {"message": "yo"}}, id=5))
    assert response == {"jsonrpc": "2.0", "id": 5, "result": {"ok": True, "arguments": {"message": "yo"}}}


def test_handler_exception_is_internal_error(server) -> None:
    response = server.handle_line(request("tools/call", {"name": "fail"}))
    assert response["error"]["code"] == -32603
    assert "tool broke" in response["error"]["message"]


def test_unknown_method(server) -> None:
    assert server.handle_line(request("nope"))["error"]["code"] == -32601


def test_parse_error(server) -> None:
    response = server.handle_line("{not json")
    assert response["error"]["code"] == -32700
    assert response["id"] is None


def test_notifications_get_no_response(server) -> None:
    assert server.handle_line(request("notifications/initialized", id=None)) is None
    assert server.handle_line(request("nope", id=None)) is None
    assert server.handle_line("   ") is None


def test_initialize_reports_server_info(server) -> None:
    result = server.handle_line(request("initialize", {"protocolVersion": "2025-03-26"}))["result"]
    assert result["protocolVersion"] == "2025-03-26"
    assert result["serverInfo"]["name"] == "test"


def test_run_writes_one_line_per_request(server) -> None:
    stdin = io.StringIO("\n".join([
        request("ping", id=1),
        request("notifications/initialized", id=None),
        request("tools/list", id=2),
    ]) + "\n")
    stdout = io.StringIO()
    server.run(stdin=stdin, stdout=stdout)
    lines = stdout.getvalue().splitlines()
    assert [json.loads(line)["id"] for line in lines] == [1, 2]


def test_register_requires_name() -> None:
    class Nameless(ToolHandler):
        def handle(self, params):
            return None

    with pytest.raises(ValueError):
        StdioToolServer().register(Nameless())
