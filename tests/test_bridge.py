from __future__ import annotations

import json

from toolhost.bridge import describe_tool, facade_to_langchain_tool, register_server_tools
from toolhost.facade import ToolFacade
from toolhost.manager import ToolDescriptor


def test_register_server_tools_wraps_each_tool(manager, echo_config) -> None:
    manager.start(echo_config)
    tools = {t.name: t for t in register_server_tools(manager, "echo", method_map={"say": "echo"})}
    assert sorted(tools) == ["reject", "say", "sleep"]
    assert tools["say"].description == "Returns its arguments unchanged."

    output = tools["say"].invoke({"message": "hello"})
    assert json.loads(output) == {"ok": True, "arguments": {"message": "hello"}}


def test_rejected_call_is_returned_as_text(manager, echo_config) -> None:
    manager.start(echo_config)
    tools = {t.name: t for t in register_server_tools(manager, "echo")}
    output = tools["reject"].invoke({"reason": "quota exceeded"})
    assert output.startswith("Error calling echo/reject:")
    assert "quota exceeded" in output


def test_tool_errors_are_returned_as_text(manager) -> None:
    facade = ToolFacade(manager, "echo")
    tool = facade_to_langchain_tool(facade, "echo", description_override="Echo")
    output = tool.func(message="hi")
    assert output.startswith("Error calling echo/echo:")


def test_register_on_stopped_server_is_empty(manager) -> None:
    assert register_server_tools(manager, "echo") == []


def test_describe_tool_lists_parameters() -> None:
    descriptor = ToolDescriptor(
        name="create_issue",
        description="Open an issue",
        input_schema={"type": "object", "properties": {"title": {"type": "string", "description": "Title"}}},
    )
    text = describe_tool(descriptor)
    assert text.startswith("## Tool: create_issue")
    assert "  - title (string): Title" in text
