"""Tool table — every tool the bridge advertises, in ``tools/list`` order."""

from __future__ import annotations

from siyuan_mcp.protocols.dispatcher import ToolDescriptor, ToolDispatcher
from siyuan_mcp.protocols.mcp.server import MCPServer
from siyuan_mcp.tools.context import ToolContext
from siyuan_mcp.tools.database import DATABASE_TOOL
from siyuan_mcp.tools.media import MEDIA_TOOLS
from siyuan_mcp.tools.notes import NOTE_TOOLS


def build_tools() -> tuple[ToolDescriptor, ...]:
    return (*NOTE_TOOLS, DATABASE_TOOL, *MEDIA_TOOLS)


def build_server(ctx: ToolContext) -> MCPServer:
    """Wire the full tool table to *ctx* behind an :class:`MCPServer`."""
    return MCPServer(ToolDispatcher(build_tools(), ctx))


__all__ = ["ToolContext", "build_server", "build_tools"]
