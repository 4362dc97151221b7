"""Fixtures wiring the full tool table to the fake backend."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest

from siyuan_mcp.config import BridgeSettings
from siyuan_mcp.media.capture import LocalCaptureRunner
from siyuan_mcp.protocols.dispatcher import ToolDispatcher
from siyuan_mcp.protocols.mcp.models import ToolCallResult
from siyuan_mcp.tools import ToolContext, build_tools
from tests.conftest import FakeSiYuan, image_transport

DispatcherFactory = Callable[..., ToolDispatcher]


@pytest.fixture
async def make_dispatcher(backend: FakeSiYuan) -> AsyncIterator[DispatcherFactory]:
    """Build dispatchers over *backend*; contexts are closed after the test."""
    contexts: list[ToolContext] = []

    def factory(
        settings: BridgeSettings,
        *,
        internet: httpx.MockTransport | None = None,
        runner: LocalCaptureRunner | None = None,
    ) -> ToolDispatcher:
        ctx = ToolContext.from_settings(
            settings,
            backend_transport=backend.transport(),
            fetch_transport=internet or image_transport({}),
            capture_runner=runner,
        )
        contexts.append(ctx)
        return ToolDispatcher(build_tools(), ctx)

    yield factory
    for ctx in contexts:
        await ctx.aclose()


@pytest.fixture
def dispatcher(make_dispatcher: DispatcherFactory, settings: BridgeSettings) -> ToolDispatcher:
    return make_dispatcher(settings)


async def call_ok(dispatcher: ToolDispatcher, name: str, arguments: dict[str, Any]) -> Any:
    """Call *name* and decode its JSON text, failing on ``isError``."""
    result = await dispatcher.call_tool(name, arguments)
    assert result.is_error is None, result.text
    return json.loads(result.text)


async def call_error(
    dispatcher: ToolDispatcher, name: str, arguments: dict[str, Any]
) -> ToolCallResult:
    result = await dispatcher.call_tool(name, arguments)
    assert result.is_error is True, result.text
    return result
