"""MCP models — JSON-RPC 2.0 messages and tool payloads.

Implements the server side of the Model Context Protocol message format for
tool discovery (``tools/list``) and execution (``tools/call``).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

DEFAULT_PROTOCOL_VERSION = "2024-11-05"

INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request; ``id=None`` marks a notification."""

    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    id: int | str | None = None
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_notification(self) -> bool:
        return self.id is None


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message (exactly one of ``result``/``error``)."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None

    @classmethod
    def failure(cls, request_id: int | str | None, code: int, message: str) -> JsonRpcResponse:
        return cls(id=request_id, error=JsonRpcError(code=code, message=message))

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump(exclude_none=True)
        else:
            payload["result"] = self.result if self.result is not None else {}
        return payload


# ---------------------------------------------------------------------------
# MCP-specific payloads
# ---------------------------------------------------------------------------


class MCPToolDef(BaseModel):
    """A tool definition as returned by ``tools/list``."""

    model_config = {"populate_by_name": True}

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""


class ToolCallResult(BaseModel):
    """``tools/call`` result: text content plus ``isError`` on failure."""

    model_config = {"populate_by_name": True}

    content: list[TextContent] = Field(default_factory=list)
    is_error: bool | None = Field(default=None, alias="isError")

    @classmethod
    def ok(cls, text: str) -> ToolCallResult:
        return cls(content=[TextContent(text=text)])

    @classmethod
    def error(cls, text: str) -> ToolCallResult:
        return cls(content=[TextContent(text=text)], is_error=True)

    @property
    def text(self) -> str:
        return "\n".join(part.text for part in self.content)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
