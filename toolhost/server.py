"""
Tool server base class — the child side of the stdio protocol.

A tool server is a standalone process that:
1. Reads JSON-RPC requests from stdin, one per line
2. Dispatches to registered ToolHandlers
3. Writes one JSON-RPC response line per request to stdout

Anything else the server wants to say goes to stderr, which the host
forwards to its log.

To create a tool server:

    from toolhost.server import StdioToolServer, ToolHandler

    class MyTool(ToolHandler):
        name = "my_tool"
        description = "Does something useful"
        parameters = {
            "input": {"type": "string", "description": "The input"},
        }

        def handle(self, params: dict) -> dict:
            return {"result": f"processed: {params['input']}"}

    if __name__ == "__main__":
        server = StdioToolServer("my-server")
        server.register(MyTool())
        server.run()
"""

from __future__ import annotations

import json
import logging
import sys
from abc import ABC, abstractmethod
from typing import IO, Any

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class ToolServerError(Exception):
    """Raised inside dispatch to answer with a specific JSON-RPC error code."""

    def __init__(self, code: int, message: str):
        self.code = code
        super().__init__(message)


class ToolHandler(ABC):
    """
    Base class for a tool implementation.

    Subclasses define what a tool does. The server handles transport.
    """

    # Subclasses must set these
    name: str = ""
    description: str = ""
    parameters: dict[str, dict] = {}

    @abstractmethod
    def handle(self, params: dict[str, Any]) -> Any:
        """
        Execute the tool with the given parameters.

        Returns:
            The tool result (will be JSON-serialized in the response)
        """
        ...

    def get_schema(self) -> dict:
        """Return the tool schema for discovery."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": self.parameters,
            },
        }


class StdioToolServer:
    """
    JSON-RPC tool server that communicates via stdin/stdout.

    Protocol:
    - One JSON-RPC message per line
    - Supports methods:
        - "initialize" → server info and capabilities
        - "ping"       → health check
        - "tools/list" → {"tools": [schema, ...]}
        - "tools/call" → calls a tool by name with arguments
    - Messages without an id are notifications and get no response
    """

    def __init__(self, name: str = "toolhost-server", version: str = "0.1.0"):
        self.name = name
        self.version = version
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, handler: ToolHandler) -> None:
        """Register a tool handler."""
        if not handler.name:
            raise ValueError(f"ToolHandler {handler.__class__.__name__} has no name")
        self._handlers[handler.name] = handler
        logger.info(f"Registered tool: {handler.name}")

    def run(self, stdin: IO[str] | None = None, stdout: IO[str] | None = None) -> None:
        """
        Main loop: read requests from stdin, dispatch, write responses to stdout.

        This blocks until stdin is closed (parent process terminates).
        """
        stdin = stdin or sys.stdin
        self._out = stdout or sys.stdout
        logger.info(f"Tool server {self.name} starting with {len(self._handlers)} tools: "
                    f"{list(self._handlers.keys())}")

        for line in stdin:
            response = self.handle_line(line)
            if response is not None:
                self._out.write(json.dumps(response) + "\n")
                self._out.flush()

    def handle_line(self, line: str) -> dict | None:
        """Process one input line; returns the response object, if any."""
        line = line.strip()
        if not line:
            return None

        try:
            request = json.loads(line)
        except json.JSONDecodeError as e:
            return self._error(None, PARSE_ERROR, f"Parse error: {e}")
        if not isinstance(request, dict) or "method" not in request:
            return self._error(None, INVALID_REQUEST, "Invalid request")

        is_notification = "id" not in request
        request_id = request.get("id")
        method = request["method"]
        params = request.get("params") or {}

        try:
            result = self._dispatch(method, params)
        except ToolServerError as e:
            return None if is_notification else self._error(request_id, e.code, str(e))
        except Exception as e:
            logger.exception(f"{method} failed")
            return None if is_notification else self._error(request_id, INTERNAL_ERROR, str(e))

        if is_notification:
            return None
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    def _dispatch(self, method: str, params: dict) -> Any:
        """Route a method call to the appropriate handler."""

        if method == "initialize":
            return {
                "protocolVersion": params.get("protocolVersion", "2024-11-05"),
                "capabilities": {"tools": {}},
                "serverInfo": {"name": self.name, "version": self.version},
            }

        if method == "ping":
            return {"status": "ok", "tools": list(self._handlers.keys())}

        if method.startswith("notifications/"):
            return None

        if method == "tools/list":
            return {"tools": [h.get_schema() for h in self._handlers.values()]}

        if method == "tools/call":
            tool_name = params.get("name", "")
            tool_params = params.get("arguments") or {}

            handler = self._handlers.get(tool_name)
            if not handler:
                raise ToolServerError(
                    INVALID_PARAMS,
                    f"Unknown tool: '{tool_name}'. "
                    f"Available: {list(self._handlers.keys())}",
                )

            return handler.handle(tool_params)

        raise ToolServerError(METHOD_NOT_FOUND, f"Unknown method: '{method}'")

    @staticmethod
    def _error(request_id: Any, code: int, message: str) -> dict:
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": {"code": code, "message": message},
        }
