"""Helpers for the backend's SQL endpoint and block identifiers."""

from __future__ import annotations

import random
import re
import string
from datetime import datetime

_LIMIT_RE = re.compile(r"\blimit\b", re.IGNORECASE)
_BLOCK_ID_RE = re.compile(r"^\d{14}-[0-9a-z]{7}$")
_ID_ALPHABET = string.ascii_lowercase + string.digits

DEFAULT_SQL_LIMIT = 1000


def clamp_limit_sql(sql: object) -> str:
    """Append ``LIMIT 1000`` unless the statement already carries a limit."""
    if not isinstance(sql, str):
        return ""
    trimmed = sql.strip()
    if not trimmed:
        return ""
    if _LIMIT_RE.search(trimmed):
        return trimmed
    return f"{trimmed} LIMIT {DEFAULT_SQL_LIMIT}"


def is_block_id(value: str) -> bool:
    return bool(_BLOCK_ID_RE.match(value or ""))


def quote_sql_literal(value: str) -> str:
    """Single-quote *value* for SQLite, doubling embedded quotes."""
    return "'" + value.replace("'", "''") + "'"


def generate_node_id(now: datetime | None = None) -> str:
    """Create a SiYuan-style node id: ``YYYYMMDDhhmmss-xxxxxxx``."""
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(7))
    return f"{stamp}-{suffix}"
