"""Smoke test to verify the project scaffolding works."""

from __future__ import annotations


def test_import() -> None:
    import siyuan_mcp

    assert siyuan_mcp.__version__ == "0.1.0"


def test_cli_entrypoint() -> None:
    from siyuan_mcp.cli import main

    assert callable(main)


def test_tool_table_imports() -> None:
    from siyuan_mcp.tools import build_tools

    names = [tool.name for tool in build_tools()]
    assert names[0] == "siyuan_sql_query"
    assert "siyuan_database" in names
    assert names[-1] == "siyuan_insert_images_to_note"
    assert len(names) == len(set(names)) == 17
