"""Note-insertion protocol — document resolution, snapshots and dry-run records."""

from siyuan_mcp.notes.errors import (
    AnchorMismatchError,
    BlockNotFoundError,
    InvalidBlockIdError,
    NoteError,
)
from siyuan_mcp.notes.insertion import NoteInserter, render_assets_markdown
from siyuan_mcp.notes.models import INSERT_MODES, DocInfo, InsertMode, Operation

__all__ = [
    "INSERT_MODES",
    "AnchorMismatchError",
    "BlockNotFoundError",
    "DocInfo",
    "InsertMode",
    "InvalidBlockIdError",
    "NoteError",
    "NoteInserter",
    "Operation",
    "render_assets_markdown",
]
