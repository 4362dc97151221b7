"""NoteInserter — resolves documents, snapshots them and records mutations.

Usage::

    inserter = NoteInserter(client)
    op = await inserter.insert_assets_to_note(
        "20240101120000-abcdefg", assets, mode="after",
        anchor_block_id="20240101120001-hijklmn",
    )
    op.status  # "applied"; "pending" with dry_run=True (no backend write)

Every applied :class:`Operation` carries the document content before and after
the write (kramdown plus exported markdown) so the caller can render a diff.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from siyuan_mcp.backend.sql import is_block_id, quote_sql_literal
from siyuan_mcp.media.models import ImageAsset
from siyuan_mcp.notes.errors import (
    AnchorMismatchError,
    BlockNotFoundError,
    InvalidBlockIdError,
    NoteError,
)
from siyuan_mcp.notes.models import INSERT_MODES, DocInfo, Operation
from siyuan_mcp.utils.telemetry import ATTR_DRY_RUN, ATTR_INSERT_MODE, get_tracer

if TYPE_CHECKING:
    from siyuan_mcp.backend.client import SiYuanClient

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

_BLOCK_COLUMNS = "id, root_id, box, path, hpath, content, type"
_POSITION_REQUIRED = "必须至少指定一个位置参数：parentID、appendParentID、previousID 或 nextID"


def render_assets_markdown(assets: Sequence[ImageAsset | str], alt_prefix: str = "image") -> str:
    """One ``![alt](path)`` line per asset; dry-run assets fall back to their source URL."""
    prefix = _escape_alt(alt_prefix.strip() or "image")
    lines: list[str] = []
    for index, asset in enumerate(assets, start=1):
        path = asset if isinstance(asset, str) else (asset.asset_path or asset.source_url)
        alt = prefix if len(assets) == 1 else f"{prefix} {index}"
        lines.append(f"![{alt}]({_escape_link(path)})")
    return "\n".join(lines)


class NoteInserter:
    """Inserts rendered content into notes and produces :class:`Operation` records."""

    def __init__(self, client: SiYuanClient) -> None:
        self._client = client

    async def resolve_doc(self, block_id: str) -> DocInfo:
        """Find the document (root block) owning *block_id*.

        Raises:
            InvalidBlockIdError: *block_id* is not ``YYYYMMDDhhmmss-xxxxxxx``.
            BlockNotFoundError: No such block (or its document is gone).
        """
        block_id = block_id.strip()
        if not is_block_id(block_id):
            raise InvalidBlockIdError(block_id)

        row = await self._block_row(block_id)
        if row is None:
            raise BlockNotFoundError(block_id)
        if row.get("type") != "d":
            root_id = str(row.get("root_id") or "")
            root = await self._block_row(root_id) if is_block_id(root_id) else None
            if root is None:
                raise BlockNotFoundError(root_id or block_id)
            row = root

        return DocInfo(
            doc_id=str(row.get("id") or ""),
            box=str(row.get("box") or ""),
            path=str(row.get("path") or ""),
            hpath=str(row.get("hpath") or ""),
            title=str(row.get("content") or ""),
        )

    async def snapshot(self, block_id: str) -> tuple[str, str]:
        """Return ``(kramdown, exported markdown)`` for *block_id*."""
        kramdown = await self._client.get_block_kramdown(block_id)
        markdown = await self._client.export_md_content(block_id)
        return kramdown, markdown

    async def insert_assets_to_note(
        self,
        note_block_id: str,
        assets: Sequence[ImageAsset | str],
        *,
        mode: str = "append",
        anchor_block_id: str | None = None,
        dry_run: bool = False,
        alt_prefix: str = "image",
    ) -> Operation:
        """Render *assets* as markdown images and insert them into the note's document.

        ``append``/``prepend`` target the document root; ``after``/``before``
        insert next to *anchor_block_id*, which must belong to the same document.

        Raises:
            NoteError: Bad mode, missing or foreign anchor, unknown block.
            BackendError: The backend rejected a read or the write.
        """
        if mode not in INSERT_MODES:
            raise NoteError(f"Unsupported mode: {mode} (expected one of {', '.join(INSERT_MODES)})")
        if not assets:
            raise NoteError("No assets to insert")

        with _tracer.start_as_current_span("notes.insert_assets") as span:
            span.set_attribute(ATTR_INSERT_MODE, mode)
            span.set_attribute(ATTR_DRY_RUN, dry_run)

            doc = await self.resolve_doc(note_block_id)
            target = doc.doc_id
            if mode in ("after", "before"):
                anchor = (anchor_block_id or "").strip()
                if not anchor:
                    raise NoteError(f"mode={mode} requires anchorBlockId")
                anchor_doc = await self.resolve_doc(anchor)
                if anchor_doc.doc_id != doc.doc_id:
                    raise AnchorMismatchError(anchor, doc.doc_id, anchor_doc.doc_id)
                target = anchor

            markdown = render_assets_markdown(assets, alt_prefix)
            if dry_run:
                return _pending("insert_assets", "insert", target, mode, doc.doc_id, markdown)

            old_kramdown, old_markdown = await self.snapshot(doc.doc_id)
            path, body = _insert_call(mode, markdown, doc.doc_id, target)
            await self._client.post(path, body)
            new_kramdown, new_markdown = await self.snapshot(doc.doc_id)
            logger.info("Inserted %d asset(s) into %s (%s)", len(assets), doc.doc_id, mode)

            return Operation(
                kind="insert_assets",
                operation_type="insert",
                block_id=target,
                position=mode,
                doc_id=doc.doc_id,
                old_content=old_kramdown,
                old_content_for_display=old_markdown,
                new_content=new_kramdown,
                new_content_for_display=new_markdown,
                status="applied",
            )

    async def update_block_with_operation(
        self,
        block_id: str,
        data: str,
        *,
        data_type: str = "markdown",
        dry_run: bool = False,
    ) -> tuple[Operation, Any]:
        """``updateBlock`` with a before/after snapshot of the block itself."""
        if dry_run:
            return _pending("update_block", "update", block_id, None, None, data), None

        old_kramdown, old_markdown = await self.snapshot(block_id)
        result = await self._client.post(
            "/api/block/updateBlock", {"dataType": data_type, "data": data, "id": block_id}
        )
        new_kramdown, new_markdown = await self.snapshot(block_id)
        operation = Operation(
            kind="update_block",
            operation_type="update",
            block_id=block_id,
            old_content=old_kramdown,
            old_content_for_display=old_markdown,
            new_content=new_kramdown,
            new_content_for_display=new_markdown,
            status="applied",
        )
        return operation, result

    async def insert_block_with_operation(
        self,
        data: str,
        *,
        data_type: str = "markdown",
        parent_id: str | None = None,
        append_parent_id: str | None = None,
        previous_id: str | None = None,
        next_id: str | None = None,
        dry_run: bool = False,
    ) -> tuple[Operation, Any]:
        """``appendBlock`` (when *append_parent_id* is set) or ``insertBlock``.

        The owning document is snapshotted around the write.
        """
        if append_parent_id:
            anchor, position = append_parent_id, "append"
            path = "/api/block/appendBlock"
            body: dict[str, Any] = {"dataType": data_type, "data": data, "parentID": anchor}
        elif previous_id or next_id or parent_id:
            anchor = previous_id or next_id or parent_id or ""
            position = "after" if previous_id else "before" if next_id else "prepend"
            path = "/api/block/insertBlock"
            body = {
                "dataType": data_type,
                "data": data,
                "parentID": parent_id,
                "previousID": previous_id,
                "nextID": next_id,
            }
        else:
            raise NoteError(_POSITION_REQUIRED)

        if dry_run:
            return _pending("insert_block", "insert", anchor, position, None, data), None

        doc = await self.resolve_doc(anchor)
        old_kramdown, old_markdown = await self.snapshot(doc.doc_id)
        result = await self._client.post(path, {k: v for k, v in body.items() if v is not None})
        new_kramdown, new_markdown = await self.snapshot(doc.doc_id)
        operation = Operation(
            kind="insert_block",
            operation_type="insert",
            block_id=anchor,
            position=position,
            doc_id=doc.doc_id,
            old_content=old_kramdown,
            old_content_for_display=old_markdown,
            new_content=new_kramdown,
            new_content_for_display=new_markdown,
            status="applied",
        )
        return operation, result

    async def _block_row(self, block_id: str) -> dict[str, Any] | None:
        stmt = (
            f"SELECT {_BLOCK_COLUMNS} FROM blocks "
            f"WHERE id = {quote_sql_literal(block_id)} LIMIT 1"
        )
        rows = await self._client.query_sql(stmt)
        return rows[0] if rows and isinstance(rows[0], dict) else None


def _insert_call(mode: str, markdown: str, doc_id: str, anchor: str) -> tuple[str, dict[str, Any]]:
    body: dict[str, Any] = {"dataType": "markdown", "data": markdown}
    if mode == "append":
        return "/api/block/appendBlock", {**body, "parentID": doc_id}
    if mode == "prepend":
        return "/api/block/prependBlock", {**body, "parentID": doc_id}
    if mode == "after":
        return "/api/block/insertBlock", {**body, "previousID": anchor}
    return "/api/block/insertBlock", {**body, "nextID": anchor}


def _pending(
    kind: str,
    operation_type: str,
    block_id: str,
    position: str | None,
    doc_id: str | None,
    content: str,
) -> Operation:
    return Operation(
        kind=kind,
        operation_type=operation_type,  # type: ignore[arg-type]
        block_id=block_id,
        position=position,
        doc_id=doc_id,
        new_content=content,
        new_content_for_display=content,
        status="pending",
    )


def _escape_alt(text: str) -> str:
    return text.replace("\\", "\\\\").replace("[", "\\[").replace("]", "\\]")


def _escape_link(path: str) -> str:
    return path.replace(" ", "%20").replace("(", "%28").replace(")", "%29")
