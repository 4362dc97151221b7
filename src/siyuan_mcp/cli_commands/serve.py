"""``siyuan-mcp serve`` — run the stdio MCP server until stdin closes."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from siyuan_mcp.cli_commands._output import err_console, setup_logging

if TYPE_CHECKING:
    from siyuan_mcp.config import BridgeSettings

logger = logging.getLogger(__name__)


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file overriding SIYUAN_* environment settings.",
)
@click.option(
    "--read-only/--read-write",
    "read_only",
    default=None,
    help="Override SIYUAN_MCP_READ_ONLY.",
)
@click.option("--log-level", default=None, help="Override SIYUAN_MCP_LOG_LEVEL.")
@click.option("--otlp-endpoint", default=None, help="Export spans via OTLP/gRPC.")
def serve(
    config_path: Path | None,
    read_only: bool | None,
    log_level: str | None,
    otlp_endpoint: str | None,
) -> None:
    """Serve SiYuan tools over stdin/stdout (JSON-RPC, one message per line)."""
    from siyuan_mcp.config import ConfigError, load_settings

    try:
        settings = load_settings(config_path)
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(2)

    overrides: dict[str, object] = {}
    if read_only is not None:
        overrides["read_only"] = read_only
    if log_level:
        overrides["log_level"] = log_level.upper()
    if overrides:
        settings = settings.model_copy(update=overrides)

    setup_logging(settings.log_level)

    if otlp_endpoint:
        from siyuan_mcp.utils.telemetry import configure_telemetry

        try:
            configure_telemetry(otlp_endpoint=otlp_endpoint)
        except ImportError as exc:
            err_console.print(f"[red]Telemetry error:[/red] {exc}")
            sys.exit(2)

    logger.info(
        "siyuan-mcp serving %s (read_only=%s)", settings.api_url, settings.read_only
    )
    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")


async def run_server(settings: BridgeSettings) -> None:
    """Build the context and serve stdio until EOF."""
    from siyuan_mcp.protocols.mcp.transport import StdioServerTransport, open_stdio
    from siyuan_mcp.tools import ToolContext, build_server

    async with ToolContext.from_settings(settings) as ctx:
        server = build_server(ctx)
        reader, writer = await open_stdio()
        await StdioServerTransport(reader, writer).serve_forever(server.handle)
