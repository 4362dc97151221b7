"""siyuan-mcp — MCP stdio bridge between agent processes and the SiYuan note backend."""

from __future__ import annotations

__version__ = "0.1.0"
