"""Runtime safety layer — the read-only write guard."""

from siyuan_mcp.runtime.errors import ReadOnlyError, RuntimeSafetyError
from siyuan_mcp.runtime.guard import ReadOnlyGuard

__all__ = [
    "ReadOnlyError",
    "ReadOnlyGuard",
    "RuntimeSafetyError",
]
