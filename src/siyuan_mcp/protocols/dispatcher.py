"""ToolDispatcher — routes ``tools/call`` to registered tool handlers.

Every tool is a frozen :class:`ToolDescriptor`.  ``input_schema`` is only
advertised through ``tools/list``; the hard check is the descriptor's pydantic
``args_model``, validated right before the handler runs.  A descriptor may also
carry a ``write_check`` that sees the raw arguments first, so a refused write is
reported ahead of any argument error.

Usage::

    dispatcher = ToolDispatcher(build_tools(), context)

    dispatcher.list_tools()                                   # tools/list payload
    result = await dispatcher.call_tool("siyuan_sql_query", {"sql": "select 1"})
    result.is_error  # None on success, True on any failure
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from opentelemetry.trace import Status, StatusCode
from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from siyuan_mcp.protocols.errors import ToolNotFoundError
from siyuan_mcp.protocols.mcp.models import MCPToolDef, ToolCallResult
from siyuan_mcp.utils.telemetry import ATTR_TOOL_ERROR, ATTR_TOOL_NAME, get_tracer

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

ToolHandler = Callable[[Any, Any], Awaitable[Any]]
WriteCheck = Callable[[Any, Mapping[str, Any]], None]


@dataclass(frozen=True)
class ToolDescriptor:
    """One tool: advertised schema plus the typed handler behind it."""

    name: str
    description: str
    handler: ToolHandler
    args_model: type[BaseModel]
    input_schema: Mapping[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    write_check: WriteCheck | None = None

    def definition(self) -> MCPToolDef:
        return MCPToolDef(
            name=self.name,
            description=self.description,
            input_schema=dict(self.input_schema),
        )


class ToolDispatcher:
    """Holds the ordered tool table and the shared handler context."""

    def __init__(self, tools: Sequence[ToolDescriptor], context: Any) -> None:
        self._tools = tuple(tools)
        self._by_name: dict[str, ToolDescriptor] = {}
        for tool in self._tools:
            if tool.name in self._by_name:
                msg = f"Duplicate tool name: {tool.name}"
                raise ValueError(msg)
            self._by_name[tool.name] = tool
        self._context = context

    @property
    def tools(self) -> tuple[ToolDescriptor, ...]:
        return self._tools

    def list_tools(self) -> list[dict[str, Any]]:
        """Tool definitions in registration order, as sent by ``tools/list``."""
        return [tool.definition().model_dump(by_alias=True) for tool in self._tools]

    def get(self, name: object) -> ToolDescriptor:
        tool = self._by_name.get(name) if isinstance(name, str) else None
        if tool is None:
            raise ToolNotFoundError(str(name))
        return tool

    async def call_tool(self, name: object, arguments: object = None) -> ToolCallResult:
        """Run one tool; every failure becomes an ``isError`` result."""
        with _tracer.start_as_current_span("mcp.tools.call") as span:
            span.set_attribute(ATTR_TOOL_NAME, str(name))
            try:
                tool = self.get(name)
                if tool.write_check is not None:
                    raw = arguments if isinstance(arguments, Mapping) else {}
                    tool.write_check(self._context, raw)
                args = tool.args_model.model_validate(arguments or {})
                payload = await tool.handler(self._context, args)
            except ValidationError as exc:
                text = format_validation_error(exc)
            except Exception as exc:
                text = str(exc) or type(exc).__name__
                logger.debug("Tool %s raised", name, exc_info=True)
            else:
                return ToolCallResult.ok(render_payload(payload))

            logger.warning("Tool %s failed: %s", name, text)
            span.set_attribute(ATTR_TOOL_ERROR, True)
            span.set_status(Status(StatusCode.ERROR, text))
            return ToolCallResult.error(text)


def render_payload(payload: Any) -> str:
    """Pretty JSON for the agent; models are dumped with their camelCase aliases."""
    data = to_jsonable_python(payload, by_alias=True, fallback=str)
    return json.dumps(data, ensure_ascii=False, indent=2)


def format_validation_error(exc: ValidationError) -> str:
    """Name each offending argument, keeping custom messages verbatim."""
    parts: list[str] = []
    for error in exc.errors(include_url=False):
        loc = ".".join(str(p) for p in error.get("loc", ())) or "arguments"
        kind = error.get("type", "")
        if kind == "missing":
            parts.append(f"缺少参数 {loc}")
        elif kind == "tool_argument":
            parts.append(str(error.get("msg", "")))
        else:
            parts.append(f"参数 {loc} 无效: {error.get('msg', '')}")
    return "; ".join(dict.fromkeys(parts))
