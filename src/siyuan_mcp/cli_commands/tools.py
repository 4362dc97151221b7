"""``siyuan-mcp tools`` — list the tool table or invoke one tool directly."""

from __future__ import annotations

import asyncio
import json
import sys

import click
from rich.markup import escape

from siyuan_mcp.cli_commands._output import console, print_tools_table, setup_logging


@click.group()
def tools() -> None:
    """List and invoke bridge tools."""


@tools.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print tools/list JSON.")
def list_tools(as_json: bool) -> None:
    """Show every tool the server advertises."""
    from siyuan_mcp.config import BridgeSettings
    from siyuan_mcp.protocols.dispatcher import ToolDispatcher
    from siyuan_mcp.tools import build_tools

    definitions = ToolDispatcher(build_tools(), None).list_tools()
    if as_json:
        console.print_json(json.dumps({"tools": definitions}, ensure_ascii=False))
        return

    print_tools_table(definitions, read_only=BridgeSettings.from_env().read_only)


@tools.command("call")
@click.argument("name")
@click.option("--args", "raw_args", default="{}", help="Tool arguments as a JSON object.")
@click.option("--log-level", default="WARNING", help="Log level for this call.")
def call_tool(name: str, raw_args: str, log_level: str) -> None:
    """Invoke tool NAME once with settings from the environment."""
    from siyuan_mcp.config import BridgeSettings
    from siyuan_mcp.protocols.dispatcher import ToolDispatcher
    from siyuan_mcp.tools import ToolContext, build_tools

    try:
        arguments = json.loads(raw_args)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid --args JSON:[/red] {escape(str(exc))}")
        sys.exit(2)
    if not isinstance(arguments, dict):
        console.print("[red]--args must be a JSON object[/red]")
        sys.exit(2)

    setup_logging(log_level)
    settings = BridgeSettings.from_env()

    async def _call() -> tuple[str, bool]:
        async with ToolContext.from_settings(settings) as ctx:
            result = await ToolDispatcher(build_tools(), ctx).call_tool(name, arguments)
        return result.text, bool(result.is_error)

    text, failed = asyncio.run(_call())
    if failed:
        console.print(f"[red]Tool error:[/red] {escape(text)}", highlight=False)
        sys.exit(1)
    click.echo(text)
