"""Note read/write tools: SQL, blocks, documents, notebooks, attributes."""

from __future__ import annotations

from typing import Any

from siyuan_mcp.backend.sql import clamp_limit_sql
from siyuan_mcp.protocols.dispatcher import ToolDescriptor
from siyuan_mcp.protocols.errors import MissingArgumentError, ToolInputError
from siyuan_mcp.tools.context import ToolContext, guarded_write
from siyuan_mcp.tools.models import (
    BlockContentArgs,
    BlockIdArgs,
    CreateDocumentArgs,
    CreateNotebookArgs,
    DocTreeArgs,
    InsertBlockArgs,
    MoveDocumentsArgs,
    NoArgs,
    RenameDocumentArgs,
    SetBlockAttrsArgs,
    SqlQueryArgs,
    UpdateBlockArgs,
)

MAX_TREE_LIST = 10000


async def sql_query(ctx: ToolContext, args: SqlQueryArgs) -> Any:
    sql = clamp_limit_sql(args.sql)
    if not sql:
        raise MissingArgumentError("sql")
    return await ctx.client.post("/api/query/sql", {"stmt": sql})


async def get_block_content(ctx: ToolContext, args: BlockContentArgs) -> str:
    block_id = args.id.strip()
    if args.format == "kramdown":
        return await ctx.client.get_block_kramdown(block_id)
    return await ctx.client.export_md_content(block_id)


async def insert_block(ctx: ToolContext, args: InsertBlockArgs) -> Any:
    operation, result = await ctx.inserter.insert_block_with_operation(
        args.data,
        data_type=args.data_type or "markdown",
        parent_id=args.parent_id.strip() or None,
        append_parent_id=args.append_parent_id.strip() or None,
        previous_id=args.previous_id.strip() or None,
        next_id=args.next_id.strip() or None,
        dry_run=args.dry_run,
    )
    return {"dryRun": args.dry_run, "result": result, "operation": operation}


async def update_block(ctx: ToolContext, args: UpdateBlockArgs) -> Any:
    operation, result = await ctx.inserter.update_block_with_operation(
        args.id.strip(),
        args.data,
        data_type=args.data_type or "markdown",
        dry_run=args.dry_run,
    )
    return {"dryRun": args.dry_run, "result": result, "operation": operation}


async def create_document(ctx: ToolContext, args: CreateDocumentArgs) -> Any:
    return await ctx.client.post(
        "/api/filetree/createDocWithMd",
        {"notebook": args.notebook.strip(), "path": args.path.strip(), "markdown": args.markdown},
    )


async def list_notebooks(ctx: ToolContext, args: NoArgs) -> Any:
    return await ctx.client.post("/api/notebook/lsNotebooks", {})


async def create_notebook(ctx: ToolContext, args: CreateNotebookArgs) -> Any:
    return await ctx.client.post("/api/notebook/createNotebook", {"name": args.name.strip()})


async def get_doc_tree(ctx: ToolContext, args: DocTreeArgs) -> list[dict[str, Any]]:
    """Walk the notebook from ``path`` depth-first, one listing per folder."""
    notebook = args.notebook.strip()

    async def walk(path: str) -> list[dict[str, Any]]:
        listing = await ctx.client.post(
            "/api/filetree/listDocsByPath",
            {
                "notebook": notebook,
                "path": path,
                "sort": args.sort_mode,
                "showHidden": False,
                "maxListCount": MAX_TREE_LIST,
            },
        )
        files = listing.get("files") if isinstance(listing, dict) else None
        nodes: list[dict[str, Any]] = []
        for entry in files or []:
            node = dict(entry)
            if (entry.get("subFileCount") or 0) > 0 and entry.get("path"):
                node["children"] = await walk(str(entry["path"]))
            nodes.append(node)
        return nodes

    return await walk(args.path or "/")


async def rename_document(ctx: ToolContext, args: RenameDocumentArgs) -> Any:
    return await ctx.client.post(
        "/api/filetree/renameDocByID", {"id": args.id.strip(), "title": args.title.strip()}
    )


async def move_documents(ctx: ToolContext, args: MoveDocumentsArgs) -> Any:
    return await ctx.client.post(
        "/api/filetree/moveDocsByID", {"fromIDs": args.from_ids, "toID": args.to_id.strip()}
    )


async def get_block_attrs(ctx: ToolContext, args: BlockIdArgs) -> Any:
    return await ctx.client.post("/api/attr/getBlockAttrs", {"id": args.id.strip()})


async def set_block_attrs(ctx: ToolContext, args: SetBlockAttrsArgs) -> Any:
    if not args.attrs:
        raise ToolInputError("缺少参数 attrs")
    return await ctx.client.post(
        "/api/attr/setBlockAttrs", {"id": args.id.strip(), "attrs": args.attrs}
    )


def _schema(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


_STR = {"type": "string"}
_DATA_TYPE = {"type": "string", "enum": ["markdown", "dom"]}
_DRY_RUN = {"type": "boolean", "description": "Preview the operation without writing."}

NOTE_TOOLS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        name="siyuan_sql_query",
        description="执行思源笔记 SQLite SQL 查询（建议带 LIMIT）。参数：{ sql }",
        handler=sql_query,
        args_model=SqlQueryArgs,
        input_schema=_schema({"sql": _STR}, ["sql"]),
    ),
    ToolDescriptor(
        name="siyuan_get_block_content",
        description='获取块内容。参数：{ id, format: "markdown"|"kramdown" }',
        handler=get_block_content,
        args_model=BlockContentArgs,
        input_schema=_schema(
            {"id": _STR, "format": {"type": "string", "enum": ["markdown", "kramdown"]}},
            ["id"],
        ),
    ),
    ToolDescriptor(
        name="siyuan_insert_block",
        description=(
            "插入块，返回操作记录（dryRun 时不写入）。"
            "参数：{ dataType, data, parentID?, appendParentID?, previousID?, nextID?, dryRun? }"
        ),
        handler=insert_block,
        args_model=InsertBlockArgs,
        input_schema=_schema(
            {
                "dataType": _DATA_TYPE,
                "data": _STR,
                "parentID": _STR,
                "appendParentID": _STR,
                "previousID": _STR,
                "nextID": _STR,
                "dryRun": _DRY_RUN,
            },
            ["data"],
        ),
        write_check=guarded_write("siyuan_insert_block", dry_run=True),
    ),
    ToolDescriptor(
        name="siyuan_update_block",
        description="更新块内容，返回操作记录（dryRun 时不写入）。参数：{ dataType, data, id, dryRun? }",
        handler=update_block,
        args_model=UpdateBlockArgs,
        input_schema=_schema(
            {"dataType": _DATA_TYPE, "data": _STR, "id": _STR, "dryRun": _DRY_RUN},
            ["id", "data"],
        ),
        write_check=guarded_write("siyuan_update_block", dry_run=True),
    ),
    ToolDescriptor(
        name="siyuan_create_document",
        description="创建文档。参数：{ notebook, path, markdown }",
        handler=create_document,
        args_model=CreateDocumentArgs,
        input_schema=_schema(
            {"notebook": _STR, "path": _STR, "markdown": _STR}, ["notebook", "path", "markdown"]
        ),
        write_check=guarded_write("siyuan_create_document"),
    ),
    ToolDescriptor(
        name="siyuan_list_notebooks",
        description="列出笔记本",
        handler=list_notebooks,
        args_model=NoArgs,
        input_schema=_schema({}),
    ),
    ToolDescriptor(
        name="siyuan_create_notebook",
        description="创建笔记本。参数：{ name }",
        handler=create_notebook,
        args_model=CreateNotebookArgs,
        input_schema=_schema({"name": _STR}, ["name"]),
        write_check=guarded_write("siyuan_create_notebook"),
    ),
    ToolDescriptor(
        name="siyuan_get_doc_tree",
        description="获取文档树。参数：{ notebook, path?, sortMode? }",
        handler=get_doc_tree,
        args_model=DocTreeArgs,
        input_schema=_schema(
            {"notebook": _STR, "path": _STR, "sortMode": {"type": "number"}}, ["notebook"]
        ),
    ),
    ToolDescriptor(
        name="siyuan_rename_document",
        description="重命名文档。参数：{ id, title }",
        handler=rename_document,
        args_model=RenameDocumentArgs,
        input_schema=_schema({"id": _STR, "title": _STR}, ["id", "title"]),
        write_check=guarded_write("siyuan_rename_document"),
    ),
    ToolDescriptor(
        name="siyuan_move_documents",
        description="移动文档。参数：{ fromIDs: string[], toID: string }",
        handler=move_documents,
        args_model=MoveDocumentsArgs,
        input_schema=_schema(
            {"fromIDs": {"type": "array", "items": _STR}, "toID": _STR}, ["fromIDs", "toID"]
        ),
        write_check=guarded_write("siyuan_move_documents"),
    ),
    ToolDescriptor(
        name="siyuan_get_block_attrs",
        description="获取块属性。参数：{ id }",
        handler=get_block_attrs,
        args_model=BlockIdArgs,
        input_schema=_schema({"id": _STR}, ["id"]),
    ),
    ToolDescriptor(
        name="siyuan_set_block_attrs",
        description="设置块属性。参数：{ id, attrs }",
        handler=set_block_attrs,
        args_model=SetBlockAttrsArgs,
        input_schema=_schema({"id": _STR, "attrs": {"type": "object"}}, ["id", "attrs"]),
        write_check=guarded_write("siyuan_set_block_attrs"),
    ),
)
