"""Data models for document resolution and mutation records."""

from __future__ import annotations

from typing import Literal

from siyuan_mcp.media.models import CamelModel

InsertMode = Literal["append", "prepend", "after", "before"]
INSERT_MODES: tuple[str, ...] = ("append", "prepend", "after", "before")


class DocInfo(CamelModel):
    """The document owning a block; ``doc_id`` is the root block id."""

    doc_id: str
    box: str = ""
    path: str = ""
    hpath: str = ""
    title: str = ""


class Operation(CamelModel):
    """Audit record of a single mutation, used by callers to render a diff.

    ``old_*`` fields stay empty for ``pending`` (dry-run) records; an ``applied``
    record carries the document snapshot taken before and after the write.
    """

    kind: str
    operation_type: Literal["insert", "update"]
    block_id: str
    position: str | None = None
    doc_id: str | None = None
    old_content: str = ""
    old_content_for_display: str = ""
    new_content: str = ""
    new_content_for_display: str = ""
    status: Literal["pending", "applied"] = "pending"
