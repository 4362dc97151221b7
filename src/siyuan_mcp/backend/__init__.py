"""SiYuan backend layer — JSON envelope client, multipart builder, SQL helpers."""

from siyuan_mcp.backend.client import SiYuanClient
from siyuan_mcp.backend.errors import (
    BackendAPIError,
    BackendConnectionError,
    BackendError,
    BackendHTTPError,
    BackendResponseError,
)
from siyuan_mcp.backend.multipart import FilePart, build_multipart
from siyuan_mcp.backend.sql import clamp_limit_sql, generate_node_id, is_block_id

__all__ = [
    "BackendAPIError",
    "BackendConnectionError",
    "BackendError",
    "BackendHTTPError",
    "BackendResponseError",
    "FilePart",
    "SiYuanClient",
    "build_multipart",
    "clamp_limit_sql",
    "generate_node_id",
    "is_block_id",
]
