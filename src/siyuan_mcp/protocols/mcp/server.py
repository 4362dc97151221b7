"""MCPServer — top-level JSON-RPC method routing.

Usage::

    server = MCPServer(dispatcher)
    response = await server.handle({"jsonrpc": "2.0", "id": 1, "method": "ping"})
    # {"jsonrpc": "2.0", "id": 1, "result": {}}

Notifications, non-2.0 messages and messages without ``method`` yield
``None`` (nothing is written).  Every other request gets exactly one response,
including ``-32603`` when routing itself fails.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from siyuan_mcp import __version__
from siyuan_mcp.protocols.mcp.models import (
    DEFAULT_PROTOCOL_VERSION,
    INTERNAL_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    JsonRpcRequest,
    JsonRpcResponse,
)
from siyuan_mcp.utils.telemetry import ATTR_RPC_METHOD, get_tracer

if TYPE_CHECKING:
    from siyuan_mcp.protocols.dispatcher import ToolDispatcher

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

SERVER_NAME = "siyuan-mcp"

MethodHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class MCPServer:
    """Routes ``initialize``, ``ping``, ``tools/*`` and the empty list methods."""

    def __init__(self, dispatcher: ToolDispatcher, *, version: str = __version__) -> None:
        self._dispatcher = dispatcher
        self._version = version
        self._methods: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "resources/list": self._resources_list,
            "prompts/list": self._prompts_list,
        }

    async def handle(self, message: Any) -> dict[str, Any] | None:
        """Handle one decoded message; returns the response or ``None``."""
        if not isinstance(message, dict):
            return None
        if message.get("jsonrpc") != "2.0" or not message.get("method"):
            return None
        if message.get("id") is None:
            logger.debug("Ignoring notification %s", message.get("method"))
            return None

        try:
            request = JsonRpcRequest.model_validate(message)
        except ValidationError as exc:
            raw_id = message.get("id")
            request_id = raw_id if isinstance(raw_id, (int, str)) else None
            return JsonRpcResponse.failure(
                request_id, INVALID_REQUEST, f"Invalid Request: {exc.error_count()} error(s)"
            ).to_wire()

        return (await self.dispatch(request)).to_wire()

    async def dispatch(self, request: JsonRpcRequest) -> JsonRpcResponse:
        handler = self._methods.get(request.method)
        if handler is None:
            return JsonRpcResponse.failure(
                request.id, METHOD_NOT_FOUND, f"Method not found: {request.method}"
            )

        with _tracer.start_as_current_span("mcp.request") as span:
            span.set_attribute(ATTR_RPC_METHOD, request.method)
            try:
                result = await handler(request.params)
            except Exception as exc:
                logger.exception("Internal error while handling %s", request.method)
                detail = str(exc) or type(exc).__name__
                return JsonRpcResponse.failure(
                    request.id, INTERNAL_ERROR, f"Internal error: {detail}"
                )
        return JsonRpcResponse(id=request.id, result=result)

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        return {
            "protocolVersion": params.get("protocolVersion") or DEFAULT_PROTOCOL_VERSION,
            "serverInfo": {"name": SERVER_NAME, "version": self._version},
            "capabilities": {"tools": {}},
        }

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _tools_list(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": self._dispatcher.list_tools()}

    async def _tools_call(self, params: dict[str, Any]) -> dict[str, Any]:
        result = await self._dispatcher.call_tool(params.get("name"), params.get("arguments"))
        return result.to_wire()

    async def _resources_list(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"resources": []}

    async def _prompts_list(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"prompts": []}
