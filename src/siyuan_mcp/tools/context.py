"""ToolContext — the shared collaborators every tool handler receives."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from siyuan_mcp.backend.client import SiYuanClient
from siyuan_mcp.media.importer import ImageImporter
from siyuan_mcp.media.screenshot import ScreenshotService
from siyuan_mcp.net.fetch import ResilientFetcher
from siyuan_mcp.notes.insertion import NoteInserter
from siyuan_mcp.runtime.guard import ReadOnlyGuard
from siyuan_mcp.tools.models import raw_flag

if TYPE_CHECKING:
    import httpx

    from siyuan_mcp.config import BridgeSettings
    from siyuan_mcp.media.capture import LocalCaptureRunner
    from siyuan_mcp.protocols.dispatcher import WriteCheck


@dataclass
class ToolContext:
    """Long-lived clients and services, built once per server process.

    Usage::

        async with ToolContext.from_settings(settings) as ctx:
            dispatcher = ToolDispatcher(build_tools(), ctx)
    """

    settings: BridgeSettings
    client: SiYuanClient
    fetcher: ResilientFetcher
    guard: ReadOnlyGuard
    importer: ImageImporter
    screenshots: ScreenshotService
    inserter: NoteInserter

    @classmethod
    def from_settings(
        cls,
        settings: BridgeSettings,
        *,
        backend_transport: httpx.AsyncBaseTransport | None = None,
        fetch_transport: httpx.AsyncBaseTransport | None = None,
        capture_runner: LocalCaptureRunner | None = None,
    ) -> ToolContext:
        client = SiYuanClient(
            settings.api_url,
            token=settings.api_token,
            timeout=settings.backend_timeout,
            transport=backend_transport,
        )
        fetcher = ResilientFetcher(user_agent=settings.user_agent, transport=fetch_transport)
        importer = ImageImporter(client, fetcher, settings)
        return cls(
            settings=settings,
            client=client,
            fetcher=fetcher,
            guard=ReadOnlyGuard(settings.read_only),
            importer=importer,
            screenshots=ScreenshotService(importer, settings, runner=capture_runner),
            inserter=NoteInserter(client),
        )

    async def __aenter__(self) -> ToolContext:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        try:
            await self.fetcher.aclose()
        finally:
            await self.client.aclose()


def guarded_write(
    tool_name: str, *, dry_run: bool = False, when: str | None = None
) -> WriteCheck:
    """Read-only check for *tool_name*, run on the raw arguments.

    With ``dry_run=True`` a truthy ``dryRun`` argument lets the call through;
    with *when*, the call only counts as a write if that argument is truthy.
    """

    def check(ctx: ToolContext, arguments: Mapping[str, Any]) -> None:
        if when is not None and not raw_flag(arguments, when):
            return
        ctx.guard.require_write(tool_name, dry_run=dry_run and raw_flag(arguments, "dryRun"))

    return check
