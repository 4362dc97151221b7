"""siyuan-mcp CLI entrypoint."""

from __future__ import annotations

import click

from siyuan_mcp import __version__


@click.group()
@click.version_option(version=__version__, prog_name="siyuan-mcp")
def main() -> None:
    """siyuan-mcp — SiYuan notes as MCP tools over stdio."""


# Register subcommands
from siyuan_mcp.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
