"""
toolhost — launch stdio tool servers and call them over JSON-RPC.

Architecture:
    ┌──────────────┐     stdio      ┌──────────────┐
    │  UI / caller │ ──────────── │  Tool Server  │
    │  (facade)    │  JSON-RPC    │  (subprocess) │
    └──────────────┘     pipes     └──────────────┘

Each tool server is a standalone process that communicates via
stdin/stdout using newline-delimited JSON-RPC 2.0 messages.

ProcessRegistry owns the processes (start, stop, liveness).
StdioTransport owns one process's pipes and runs one call at a time.
ToolServerManager is the interface callers use: start, call,
list_tools, status. ToolFacade maps caller tool names to wire names.

The LangChain bridge is imported lazily so the core has no
agent-runtime dependency at import time.
"""

from toolhost.config import ServerConfig, load_server_configs
from toolhost.errors import (
    CallTimeout,
    RpcError,
    ServerExited,
    ServerNotRunning,
    SpawnFailure,
    ToolHostError,
    TransportError,
)
from toolhost.facade import ToolFacade
from toolhost.manager import ToolDescriptor, ToolServerManager
from toolhost.registry import ProcessRegistry, ServerEntry, ServerStatus
from toolhost.server import StdioToolServer, ToolHandler
from toolhost.transport import JsonRpcRequest, JsonRpcResponse, PendingCall, StdioTransport

__version__ = "0.1.0"


# Bridge requires langchain — lazy import to keep the core standalone
def facade_to_langchain_tool(*args, **kwargs):
    from toolhost.bridge import facade_to_langchain_tool as _impl
    return _impl(*args, **kwargs)


def register_server_tools(*args, **kwargs):
    from toolhost.bridge import register_server_tools as _impl
    return _impl(*args, **kwargs)


__all__ = [
    "CallTimeout",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "PendingCall",
    "ProcessRegistry",
    "RpcError",
    "ServerConfig",
    "ServerEntry",
    "ServerExited",
    "ServerNotRunning",
    "ServerStatus",
    "SpawnFailure",
    "StdioToolServer",
    "StdioTransport",
    "ToolDescriptor",
    "ToolFacade",
    "ToolHandler",
    "ToolHostError",
    "ToolServerManager",
    "TransportError",
    "facade_to_langchain_tool",
    "load_server_configs",
    "register_server_tools",
]
