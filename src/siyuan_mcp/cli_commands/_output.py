"""Shared CLI output formatters.

``console`` writes to stdout for interactive commands; ``err_console`` is the
only console ``serve`` may use, because stdout carries protocol lines there.
"""

from __future__ import annotations

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


def setup_logging(level: str) -> None:
    """Route the package loggers to stderr through rich."""
    handler = RichHandler(console=err_console, show_path=False, rich_tracebacks=True)
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


def print_tools_table(tools: list[dict[str, Any]], *, read_only: bool | None = None) -> None:
    """Pretty-print ``tools/list`` definitions as a table."""
    title = "SiYuan MCP Tools"
    if read_only is not None:
        title += " (read-only)" if read_only else " (read-write)"
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Required")
    table.add_column("Description")

    for tool in tools:
        schema = tool.get("inputSchema", {})
        table.add_row(
            tool.get("name", "?"),
            ", ".join(schema.get("required", [])) or "-",
            _truncate(tool.get("description", "")),
        )

    console.print(table)


def _truncate(text: str, max_len: int = 80) -> str:
    text = " ".join(text.split())
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
