"""ReadOnlyGuard — rejects writes before any network call is made.

The flag is fixed when the server is constructed; there is no runtime toggle,
so the guard needs no locking.

Usage::

    guard = ReadOnlyGuard(settings.read_only)
    guard.require_write("siyuan_update_block")               # raises when read-only
    guard.require_write("siyuan_update_block", dry_run=True)  # always allowed
"""

from __future__ import annotations

import logging

from siyuan_mcp.runtime.errors import ReadOnlyError

logger = logging.getLogger(__name__)


class ReadOnlyGuard:
    """Immutable read-only policy shared by every mutating tool handler."""

    __slots__ = ("_read_only",)

    def __init__(self, read_only: bool) -> None:
        self._read_only = read_only

    @property
    def read_only(self) -> bool:
        return self._read_only

    def require_write(self, tool_name: str, *, dry_run: bool = False) -> None:
        """Raise :class:`ReadOnlyError` unless writes are allowed or this is a dry run."""
        if not self._read_only or dry_run:
            return
        logger.info("Blocked write in read-only mode: %s", tool_name)
        raise ReadOnlyError(tool_name)
