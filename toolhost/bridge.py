"""
Bridge between tool servers and LangChain agents.

Turns the tools a server advertises into LangChain StructuredTools, so an
agent runtime can call them like any other tool.

Usage:
    from toolhost.bridge import facade_to_langchain_tool, register_server_tools

    # Single tool
    lc_tool = facade_to_langchain_tool(github, "mcp_github_create_issue")

    # Every tool a server advertises
    lc_tools = register_server_tools(manager, "github", method_map=GITHUB_TOOLS)
"""

from __future__ import annotations

import json
from typing import Any

from langchain_core.tools import StructuredTool

from toolhost.errors import ToolHostError
from toolhost.facade import ToolFacade
from toolhost.manager import ToolDescriptor, ToolServerManager


def facade_to_langchain_tool(
    facade: ToolFacade,
    tool_id: str,
    descriptor: ToolDescriptor | None = None,
    description_override: str | None = None,
) -> StructuredTool:
    """
    Create a LangChain StructuredTool that proxies to `facade.call(tool_id)`.

    Tool errors are returned to the agent as text instead of raised, so the
    model can read them and adjust its input.
    """
    if descriptor is None:
        wire_name = facade.resolve(tool_id)
        descriptor = next(
            (t for t in facade.manager.tools(facade.server) if t.name == wire_name),
            None,
        )

    if descriptor:
        description = description_override or descriptor.description or tool_id
    else:
        description = description_override or f"Tool: {facade.server}/{tool_id}"

    def _call_tool(**kwargs: Any) -> str:
        """Proxy call to the tool server."""
        try:
            result = facade.call(tool_id, kwargs)
        except ToolHostError as e:
            return f"Error calling {facade.server}/{tool_id}: {e}"
        if isinstance(result, str):
            return result
        return json.dumps(result, indent=2)

    kwargs: dict[str, Any] = {}
    if descriptor and descriptor.properties:
        kwargs["args_schema"] = {"type": "object", **descriptor.input_schema}

    return StructuredTool.from_function(
        func=_call_tool,
        name=tool_id,
        description=description,
        **kwargs,
    )


def register_server_tools(
    manager: ToolServerManager,
    server: str,
    method_map: dict[str, str] | None = None,
    timeout: float | None = None,
) -> list[StructuredTool]:
    """
    Discover a running server's tools and wrap each as a LangChain tool.

    Returns [] if the server is down or discovery fails.
    """
    facade = ToolFacade(manager, server, method_map, timeout=timeout)
    return [
        facade_to_langchain_tool(facade, facade.identifier_for(d.name), descriptor=d)
        for d in manager.list_tools(server)
    ]


def describe_tool(descriptor: ToolDescriptor) -> str:
    """Generate prompt instructions from a tool descriptor."""
    lines = [f"## Tool: {descriptor.name}", descriptor.description, ""]
    if descriptor.properties:
        lines.append("Parameters:")
        for pname, pinfo in descriptor.properties.items():
            ptype = pinfo.get("type", "any")
            pdesc = pinfo.get("description", "")
            lines.append(f"  - {pname} ({ptype}): {pdesc}")

    return "\n".join(lines)
