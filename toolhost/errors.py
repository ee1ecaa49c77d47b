"""
Exception hierarchy for tool server management.

    ToolHostError
    ├── SpawnFailure        process could not be created / died during startup
    ├── TransportError      pipe failure, malformed payload, unknown or dead server
    │   ├── ServerNotRunning    no live entry under that name
    │   └── ServerExited        the process is gone (carries returncode)
    ├── RpcError            the tool server answered with an "error" object
    └── CallTimeout         no response in time (also a builtin TimeoutError)

Callers pick a remedy by type: reconfigure (SpawnFailure),
restart (ServerExited), wait (CallTimeout), fix input (RpcError).
"""

from __future__ import annotations

from typing import Any


class ToolHostError(Exception):
    """Base class for every error raised by toolhost."""


class SpawnFailure(ToolHostError):
    def __init__(self, name: str, reason: str, stderr: str = ""):
        self.name = name
        self.reason = reason
        self.stderr = stderr
        message = f"Failed to start {name} tool server: {reason}"
        if stderr:
            message += f" (stderr: {stderr[-500:]})"
        super().__init__(message)


class TransportError(ToolHostError):
    """
    The exchange with a server failed below the protocol level.

    `raw` holds the offending line when the server wrote something that
    is not a JSON-RPC document.
    """

    def __init__(self, server: str, message: str, raw: str | None = None):
        self.server = server
        self.raw = raw
        super().__init__(f"{server}: {message}")


class ServerNotRunning(TransportError):
    def __init__(self, server: str):
        super().__init__(server, "tool server is not running")


class ServerExited(TransportError):
    def __init__(self, server: str, returncode: int | None):
        self.returncode = returncode
        super().__init__(server, f"tool server exited (code {returncode})")


class RpcError(ToolHostError):
    """The tool server reported an application-level error."""

    def __init__(
        self,
        server: str,
        method: str,
        message: str,
        code: int | None = None,
        data: Any = None,
    ):
        self.server = server
        self.method = method
        self.code = code
        self.data = data
        self.message = message
        super().__init__(f"{server}/{method} failed: {message}")

    @classmethod
    def from_error(cls, server: str, method: str, error: Any) -> "RpcError":
        """Build from the raw `error` member of a response."""
        if isinstance(error, dict):
            return cls(
                server,
                method,
                str(error.get("message", error)),
                code=error.get("code"),
                data=error.get("data"),
            )
        return cls(server, method, str(error))


class CallTimeout(ToolHostError, TimeoutError):
    """
    No response arrived within the timeout.

    The request was written; the server may still act on it.
    """

    def __init__(self, server: str, method: str, timeout: float):
        self.server = server
        self.method = method
        self.timeout = timeout
        super().__init__(f"Tool call timeout for {server}/{method} after {timeout:.3f}s")
