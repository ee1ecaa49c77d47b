"""
Tool facade — maps caller-facing tool identifiers to a server's wire names.

Callers keep stable identifiers ("mcp_github_create_issue") while each
server uses its own ("create_issue"). The table is supplied by the caller;
identifiers missing from it pass through unchanged.

    github = ToolFacade(manager, "github", {
        "mcp_github_search_repositories": "search_repositories",
        "mcp_github_create_issue": "create_issue",
    })
    github.call("mcp_github_create_issue", {"owner": "o", "repo": "r", "title": "t"})
"""

from __future__ import annotations

import logging
from typing import Any

from toolhost.manager import ToolDescriptor, ToolServerManager

logger = logging.getLogger(__name__)


class ToolFacade:
    """
    Named access to the tools of one server.

    Args:
        manager: The ToolServerManager running the server
        server: Server name
        method_map: {tool identifier: wire name}
        timeout: Per-call timeout override (None → manager default)
        envelope: True sends calls as MCP tools/call; False sends the
                  wire name as the JSON-RPC method itself
    """

    def __init__(
        self,
        manager: ToolServerManager,
        server: str,
        method_map: dict[str, str] | None = None,
        timeout: float | None = None,
        envelope: bool = True,
    ):
        self.manager = manager
        self.server = server
        self.method_map = dict(method_map or {})
        self.timeout = timeout
        self.envelope = envelope

    def resolve(self, tool_id: str) -> str:
        wire_name = self.method_map.get(tool_id, tool_id)
        if wire_name != tool_id:
            logger.debug(f"[{self.server}] Tool mapping: {tool_id} -> {wire_name}")
        return wire_name

    def call(
        self,
        tool_id: str,
        arguments: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Call a tool by identifier. Errors propagate unchanged."""
        wire_name = self.resolve(tool_id)
        timeout = self.timeout if timeout is None else timeout
        if self.envelope:
            return self.manager.call_tool(self.server, wire_name, arguments, timeout=timeout)
        return self.manager.call(self.server, wire_name, arguments, timeout=timeout)

    def list_tools(self, timeout: float | None = None) -> list[ToolDescriptor]:
        return self.manager.list_tools(self.server, timeout=timeout)

    def available(self) -> bool:
        return self.manager.is_running(self.server)

    def identifier_for(self, wire_name: str) -> str:
        """Reverse lookup: the caller-facing identifier for a wire name."""
        for tool_id, mapped in self.method_map.items():
            if mapped == wire_name:
                return tool_id
        return wire_name
