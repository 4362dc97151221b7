"""MCP protocol — stdio JSON-RPC server side."""

from siyuan_mcp.protocols.mcp.models import (
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    MCPToolDef,
    TextContent,
    ToolCallResult,
)
from siyuan_mcp.protocols.mcp.server import MCPServer
from siyuan_mcp.protocols.mcp.transport import LineWriter, StdioServerTransport, open_stdio

__all__ = [
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "LineWriter",
    "MCPServer",
    "MCPToolDef",
    "StdioServerTransport",
    "TextContent",
    "ToolCallResult",
    "open_stdio",
]
