"""Tests for SQL and block-id helpers."""

from __future__ import annotations

import re
from datetime import datetime

import pytest

from siyuan_mcp.backend.sql import (
    clamp_limit_sql,
    generate_node_id,
    is_block_id,
    quote_sql_literal,
)


class TestClampLimitSql:
    def test_appends_limit(self) -> None:
        assert clamp_limit_sql("  select * from blocks ") == "select * from blocks LIMIT 1000"

    @pytest.mark.parametrize("sql", ["select * from blocks limit 5", "SELECT 1 LIMIT 10 OFFSET 2"])
    def test_keeps_existing_limit(self, sql: str) -> None:
        assert clamp_limit_sql(sql) == sql

    def test_limit_inside_word_does_not_count(self) -> None:
        assert clamp_limit_sql("select unlimited from t").endswith("LIMIT 1000")

    @pytest.mark.parametrize("sql", ["", "   ", None, 42])
    def test_blank_or_non_string(self, sql: object) -> None:
        assert clamp_limit_sql(sql) == ""


class TestBlockIds:
    def test_is_block_id(self) -> None:
        assert is_block_id("20240101120000-abc1234")
        assert not is_block_id("20240101120000-ABC1234")
        assert not is_block_id("2024-abc1234")
        assert not is_block_id("")

    def test_generate_node_id(self) -> None:
        node_id = generate_node_id(datetime(2024, 5, 6, 7, 8, 9))
        assert node_id.startswith("20240506070809-")
        assert is_block_id(node_id)
        assert re.fullmatch(r"\d{14}-[0-9a-z]{7}", generate_node_id())

    def test_quote_sql_literal(self) -> None:
        assert quote_sql_literal("it's") == "'it''s'"
