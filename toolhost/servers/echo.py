"""
Echo tool server — a well-behaved server for exercising the host side.

Tools:
    echo    answers {"ok": true, "arguments": <what it was sent>}
    sleep   waits `seconds` before answering (slow-server behavior)
    reject  answers with a JSON-RPC error carrying `reason`

Launch:
    python -m toolhost.servers.echo

Test:
    echo '{"jsonrpc":"2.0","method":"tools/call","params":{"name":"echo","arguments":{}},"id":1}' \
        | python -m toolhost.servers.echo
"""

import logging
import sys
import time

from toolhost.server import StdioToolServer, ToolHandler, ToolServerError

APPLICATION_ERROR = -32000


class EchoTool(ToolHandler):
    name = "echo"
    description = "Returns its arguments unchanged."
    parameters = {
        "message": {"type": "string", "description": "Any text; other keys are echoed too"},
    }

    def handle(self, params: dict) -> dict:
        return {"ok": True, "arguments": params}


class SleepTool(ToolHandler):
    name = "sleep"
    description = "Waits before answering."
    parameters = {
        "seconds": {"type": "number", "description": "How long to wait"},
    }

    def handle(self, params: dict) -> dict:
        seconds = float(params.get("seconds", 0))
        time.sleep(seconds)
        return {"ok": True, "slept": seconds}


class RejectTool(ToolHandler):
    name = "reject"
    description = "Always fails with the given reason."
    parameters = {
        "reason": {"type": "string", "description": "Error message to return"},
    }

    def handle(self, params: dict) -> dict:
        raise ToolServerError(APPLICATION_ERROR, params.get("reason", "rejected"))


def main() -> None:
    # stdout carries the protocol; diagnostics go to stderr
    logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(levelname)s: %(message)s")
    server = StdioToolServer("echo")
    for handler in (EchoTool(), SleepTool(), RejectTool()):
        server.register(handler)
    server.run()


if __name__ == "__main__":
    main()
