"""Protocol layer — MCP server, tool dispatcher and protocol errors."""

from siyuan_mcp.protocols.dispatcher import ToolDescriptor, ToolDispatcher
from siyuan_mcp.protocols.errors import (
    MissingArgumentError,
    ProtocolError,
    ToolInputError,
    ToolNotFoundError,
    UnknownOperationError,
)

__all__ = [
    "MissingArgumentError",
    "ProtocolError",
    "ToolDescriptor",
    "ToolDispatcher",
    "ToolInputError",
    "ToolNotFoundError",
    "UnknownOperationError",
]
