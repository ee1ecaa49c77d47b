"""
Tool Server Manager — launches tool server processes and calls into them.

The manager is what the UI/business layer talks to. It pairs a
ProcessRegistry (who is running) with the stdio transports (how to talk
to them), and adds startup readiness and tool discovery.

Usage:
    manager = ToolServerManager()

    # Start a server (forced restart if the name is already running)
    manager.start(ServerConfig("echo", sys.executable, ["-m", "toolhost.servers.echo"],
                               ready_method="ping"))

    # Raw JSON-RPC call
    manager.call("echo", "ping", {}, timeout=1.0)

    # MCP-style tool call (tools/call envelope)
    manager.call_tool("echo", "echo", {"message": "hi"})

    # Discovery never raises
    manager.list_tools("echo")

    # Stop everything
    manager.stop_all()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from toolhost.config import DEFAULT_CALL_TIMEOUT, DEFAULT_LIST_TIMEOUT, ServerConfig
from toolhost.errors import (
    CallTimeout,
    RpcError,
    ServerExited,
    ServerNotRunning,
    SpawnFailure,
    ToolHostError,
    TransportError,
)
from toolhost.registry import ProcessRegistry, ServerEntry, ServerStatus
from toolhost.transport import JsonRpcRequest

logger = logging.getLogger(__name__)

INITIALIZE = "initialize"
INITIALIZED_NOTIFICATION = "notifications/initialized"
TOOLS_LIST = "tools/list"
TOOLS_CALL = "tools/call"


@dataclass
class ToolDescriptor:
    """One tool advertised by a server's tools/list."""
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolDescriptor":
        # MCP servers send inputSchema; older servers send parameters
        schema = data.get("inputSchema") or data.get("parameters") or {}
        return cls(
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            input_schema=schema if isinstance(schema, dict) else {},
        )

    @property
    def properties(self) -> dict[str, dict]:
        return self.input_schema.get("properties", {})


class ToolServerManager:
    """
    Manages the lifecycle of tool server processes and routes calls to them.

    Responsibilities:
    - Launch tool servers as subprocesses and wait until they are usable
    - Route JSON-RPC calls to the correct server, with a timeout
    - Discover tools (best effort)
    - Graceful shutdown
    """

    def __init__(
        self,
        registry: ProcessRegistry | None = None,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        list_timeout: float = DEFAULT_LIST_TIMEOUT,
    ):
        self.registry = registry if registry is not None else ProcessRegistry()
        self.call_timeout = call_timeout
        self.list_timeout = list_timeout
        self._configs: dict[str, ServerConfig] = {}
        self._tools: dict[str, list[ToolDescriptor]] = {}

    def __enter__(self) -> "ToolServerManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop_all()

    # ── lifecycle ─────────────────────────────────────────

    def register_server(self, config: ServerConfig) -> None:
        """Remember a server config without starting it."""
        self._configs[config.name] = config
        logger.info(f"Registered server: {config.name} ({' '.join(config.argv)})")

    @property
    def configs(self) -> dict[str, ServerConfig]:
        return dict(self._configs)

    def start(self, config: ServerConfig | str) -> ServerEntry:
        """
        Start (or restart) a tool server and wait until it is ready.

        Args:
            config: A ServerConfig, or the name of one passed to register_server().

        Raises:
            SpawnFailure: the process could not be created, or exited
                before it became ready.
        """
        if isinstance(config, str):
            if config not in self._configs:
                raise ValueError(f"Unknown server: {config}")
            config = self._configs[config]
        else:
            self._configs[config.name] = config

        self._tools.pop(config.name, None)
        entry = self.registry.start(
            config.name,
            config.command,
            config.args,
            cwd=config.cwd,
            env=config.env,
        )

        try:
            if config.ready_method:
                self._handshake(config, entry)
            else:
                self._grace_period(config, entry)
        except SpawnFailure:
            self.registry.stop(config.name)
            raise

        logger.info(f"Started {config.name} (pid {entry.pid})")
        return entry

    def start_all(self) -> dict[str, bool]:
        """Start all registered servers. Returns {name: started}."""
        results = {}
        for name in list(self._configs):
            try:
                self.start(name)
                results[name] = True
            except SpawnFailure as e:
                logger.error(str(e))
                results[name] = False
        return results

    def stop(self, name: str) -> None:
        """Stop a tool server."""
        self._tools.pop(name, None)
        self.registry.stop(name)

    def stop_all(self) -> None:
        """Stop all running servers."""
        self._tools.clear()
        self.registry.stop_all()

    def _grace_period(self, config: ServerConfig, entry: ServerEntry) -> None:
        deadline = time.monotonic() + config.grace_period
        while time.monotonic() < deadline:
            if not entry.alive:
                break
            time.sleep(min(0.05, max(0.0, deadline - time.monotonic())))
        if not entry.alive and config.grace_period > 0:
            raise SpawnFailure(
                config.name,
                f"exited during startup (code {entry.transport.returncode})",
                stderr=entry.transport.stderr_tail,
            )

    def _handshake(self, config: ServerConfig, entry: ServerEntry) -> None:
        """Send ready_method until the server answers or startup_timeout passes."""
        transport = entry.transport
        deadline = time.monotonic() + config.startup_timeout
        attempt = 0

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(
                    f"{config.name} did not answer {config.ready_method} within "
                    f"{config.startup_timeout}s; keeping it registered"
                )
                return
            attempt += 1
            request = JsonRpcRequest(
                method=config.ready_method,
                params=dict(config.ready_params),
                id=transport.next_id(),
            )
            try:
                response = transport.send(request, timeout=min(1.0, remaining))
            except CallTimeout:
                continue
            except (ServerExited, ServerNotRunning) as e:
                raise SpawnFailure(
                    config.name,
                    f"exited during startup ({e})",
                    stderr=transport.stderr_tail,
                ) from e
            except TransportError as e:
                # e.g. a startup banner printed on stdout
                logger.debug(f"{config.name} handshake attempt {attempt} unreadable: {e}")
                continue

            # An error reply still proves the server is reading requests
            if response.is_error:
                logger.info(f"{config.name} rejected {config.ready_method}: {response.error}")
            logger.debug(f"{config.name} ready after {attempt} handshake attempt(s)")
            break

        if config.ready_method == INITIALIZE and not response.is_error:
            transport.notify(INITIALIZED_NOTIFICATION)

    # ── calls ─────────────────────────────────────────────

    def call(
        self,
        name: str,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """
        Send one JSON-RPC request and return its `result`.

        Raises:
            ServerNotRunning / ServerExited: no live process; nothing was sent
            TransportError: pipe failure or malformed response
            RpcError: the server answered with an error
            CallTimeout: no answer within `timeout` (default call_timeout)
        """
        transport = self.registry.transport(name)
        timeout = self.call_timeout if timeout is None else timeout

        request = JsonRpcRequest(
            method=method,
            params=params if params is not None else {},
            id=transport.next_id(),
        )
        response = transport.send(request, timeout=timeout)

        if response.is_error:
            raise RpcError.from_error(name, method, response.error)
        return response.result

    def call_tool(
        self,
        name: str,
        tool_name: str,
        arguments: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Call a tool through the MCP `tools/call` envelope."""
        logger.debug(f"Calling {name}/{tool_name}")
        return self.call(
            name,
            TOOLS_CALL,
            {"name": tool_name, "arguments": arguments or {}},
            timeout=timeout,
        )

    def list_tools(self, name: str, timeout: float | None = None) -> list[ToolDescriptor]:
        """
        Ask a server for its tools. Returns [] on any failure.
        """
        timeout = self.list_timeout if timeout is None else timeout
        try:
            result = self.call(name, TOOLS_LIST, {}, timeout=timeout)
        except ToolHostError as e:
            logger.warning(f"Tool discovery failed for {name}: {e}")
            return []

        if isinstance(result, dict):
            result = result.get("tools")
        if not isinstance(result, list):
            logger.warning(f"Tool discovery for {name} returned no tool list")
            return []

        tools = []
        for item in result:
            if isinstance(item, dict) and item.get("name"):
                tools.append(ToolDescriptor.from_dict(item))
            else:
                logger.debug(f"Skipping malformed tool entry from {name}: {item!r}")
        self._tools[name] = tools
        logger.info(f"{name} tools: {[t.name for t in tools]}")
        return tools

    def tools(self, name: str) -> list[ToolDescriptor]:
        """Tools found by the last successful list_tools() for `name`."""
        return list(self._tools.get(name, []))

    # ── status ────────────────────────────────────────────

    def status(self) -> ServerStatus:
        """All registered servers and their running status."""
        return self.registry.snapshot()

    def is_running(self, name: str) -> bool:
        """Check if a specific server is running."""
        return self.registry.is_alive(name)

    def require(self, name: str) -> None:
        """
        Raise unless `name` is running.

        ServerNotRunning means it was never started (or was stopped);
        ServerExited means it crashed and needs a restart.
        """
        self.registry.transport(name)

    def describe(self, name: str) -> str:
        """Human-readable state: not started / running / exited."""
        try:
            self.require(name)
        except ServerExited as e:
            return f"exited (code {e.returncode})"
        except TransportError:
            return "not started"
        return "running"
