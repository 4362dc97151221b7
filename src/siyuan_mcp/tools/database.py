"""``siyuan_database`` — attribute-view (database) operations keyed by ``operation``.

Write operations pass the read-only guard as ``siyuan_database.<operation>``
before any backend call.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, get_args

from siyuan_mcp.backend.sql import generate_node_id
from siyuan_mcp.protocols.dispatcher import ToolDescriptor
from siyuan_mcp.protocols.errors import ToolInputError, UnknownOperationError
from siyuan_mcp.tools.context import ToolContext
from siyuan_mcp.tools.models import DatabaseArgs, DatabaseOperation

TOOL_NAME = "siyuan_database"

DatabaseHandler = Callable[[ToolContext, DatabaseArgs], Awaitable[Any]]

WRITE_OPERATIONS = frozenset(
    {
        "addDetachedRows",
        "addBoundBlocks",
        "setAttribute",
        "batchSetAttributes",
        "addColumn",
        "removeColumn",
        "removeRows",
    }
)


def _need(condition: object, message: str) -> None:
    if not condition:
        raise ToolInputError(message)


async def _search_database(ctx: ToolContext, args: DatabaseArgs) -> Any:
    keyword, av_id = args.keyword.strip(), args.av_id.strip()
    _need(keyword, "keyword参数是必需的")
    payload = {"keyword": keyword, "avID": av_id} if av_id else {"keyword": keyword}
    return await ctx.client.post("/api/av/searchAttributeView", payload)


async def _get_columns(ctx: ToolContext, args: DatabaseArgs) -> Any:
    av_id = args.av_id.strip()
    _need(av_id, "avID参数是必需的")
    return await ctx.client.post("/api/av/getAttributeViewKeysByAvID", {"avID": av_id})


async def _render_database(ctx: ToolContext, args: DatabaseArgs) -> Any:
    av_id, view_id = args.av_id.strip(), args.view_id.strip()
    _need(av_id and view_id, "avID和viewID参数是必需的")
    return await ctx.client.post(
        "/api/av/renderAttributeView",
        {"id": av_id, "viewID": view_id, "pageSize": args.page_size, "page": args.page},
    )


async def _add_detached_rows(ctx: ToolContext, args: DatabaseArgs) -> Any:
    av_id = args.av_id.strip()
    _need(av_id and args.blocks_values, "avID和blocksValues参数是必需的")
    return await ctx.client.post(
        "/api/av/appendAttributeViewDetachedBlocksWithValues",
        {"avID": av_id, "blocksValues": args.blocks_values},
    )


async def _add_bound_blocks(ctx: ToolContext, args: DatabaseArgs) -> Any:
    av_id = args.av_id.strip()
    _need(av_id and args.block_ids, "avID和blockIDs参数是必需的")
    srcs = [
        {
            "id": block_id,
            "isDetached": False,
            "itemID": args.item_ids[i] if i < len(args.item_ids) and args.item_ids[i] else block_id,
        }
        for i, block_id in enumerate(args.block_ids)
    ]
    return await ctx.client.post("/api/av/addAttributeViewBlocks", {"avID": av_id, "srcs": srcs})


async def _set_attribute(ctx: ToolContext, args: DatabaseArgs) -> Any:
    av_id, key_id, item_id = args.av_id.strip(), args.key_id.strip(), args.item_id.strip()
    _need(av_id and key_id and item_id and args.value, "avID、keyID、itemID和value参数是必需的")
    return await ctx.client.post(
        "/api/av/setAttributeViewBlockAttr",
        {"avID": av_id, "keyID": key_id, "itemID": item_id, "value": args.value},
    )


async def _batch_set_attributes(ctx: ToolContext, args: DatabaseArgs) -> Any:
    av_id = args.av_id.strip()
    _need(av_id and args.values, "avID和values参数是必需的")
    return await ctx.client.post(
        "/api/av/batchSetAttributeViewBlockAttrs", {"avID": av_id, "values": args.values}
    )


async def _get_databases_for_block(ctx: ToolContext, args: DatabaseArgs) -> Any:
    block_id = args.block_id.strip()
    _need(block_id, "blockID参数是必需的")
    return await ctx.client.post("/api/av/getAttributeViewKeys", {"id": block_id})


async def _get_item_ids(ctx: ToolContext, args: DatabaseArgs) -> Any:
    av_id = args.av_id.strip()
    _need(av_id and args.block_ids, "avID和blockIDs参数是必需的")
    return await ctx.client.post(
        "/api/av/getAttributeViewItemIDsByBoundIDs", {"avID": av_id, "blockIDs": args.block_ids}
    )


async def _get_block_ids(ctx: ToolContext, args: DatabaseArgs) -> Any:
    av_id = args.av_id.strip()
    _need(av_id and args.item_ids, "avID和itemIDs参数是必需的")
    return await ctx.client.post(
        "/api/av/getAttributeViewBoundBlockIDsByItemIDs", {"avID": av_id, "itemIDs": args.item_ids}
    )


async def _add_column(ctx: ToolContext, args: DatabaseArgs) -> Any:
    av_id, key_name = args.av_id.strip(), args.key_name.strip()
    key_type, previous_key_id = args.key_type.strip(), args.previous_key_id.strip()
    _need(
        av_id and key_name and key_type and previous_key_id,
        "avID、keyName、keyType和previousKeyID参数是必需的",
    )
    return await ctx.client.post(
        "/api/av/addAttributeViewKey",
        {
            "avID": av_id,
            "keyID": args.key_id.strip() or generate_node_id(),
            "keyName": key_name,
            "keyType": key_type,
            "keyIcon": args.key_icon,
            "previousKeyID": previous_key_id,
        },
    )


async def _remove_column(ctx: ToolContext, args: DatabaseArgs) -> Any:
    av_id, key_id = args.av_id.strip(), args.key_id.strip()
    _need(av_id and key_id, "avID和keyID参数是必需的")
    return await ctx.client.post("/api/av/removeAttributeViewKey", {"avID": av_id, "keyID": key_id})


async def _remove_rows(ctx: ToolContext, args: DatabaseArgs) -> Any:
    av_id = args.av_id.strip()
    _need(av_id and args.src_ids, "avID和srcIDs参数是必需的")
    return await ctx.client.post(
        "/api/av/removeAttributeViewBlocks", {"avID": av_id, "srcIDs": args.src_ids}
    )


OPERATIONS: dict[str, DatabaseHandler] = {
    "searchDatabase": _search_database,
    "getColumns": _get_columns,
    "renderDatabase": _render_database,
    "addDetachedRows": _add_detached_rows,
    "addBoundBlocks": _add_bound_blocks,
    "setAttribute": _set_attribute,
    "batchSetAttributes": _batch_set_attributes,
    "getDatabasesForBlock": _get_databases_for_block,
    "getItemIDsByBlockIDs": _get_item_ids,
    "getBlockIDsByItemIDs": _get_block_ids,
    "addColumn": _add_column,
    "removeColumn": _remove_column,
    "removeRows": _remove_rows,
}


async def database(ctx: ToolContext, args: DatabaseArgs) -> Any:
    operation = args.operation.strip()
    handler = OPERATIONS.get(operation)
    if handler is None:
        raise UnknownOperationError(operation)
    return await handler(ctx, args)


def _check_write(ctx: ToolContext, arguments: Mapping[str, Any]) -> None:
    operation = arguments.get("operation")
    if isinstance(operation, str) and operation.strip() in WRITE_OPERATIONS:
        ctx.guard.require_write(f"{TOOL_NAME}.{operation.strip()}")


_STR = {"type": "string"}
_STR_LIST = {"type": "array", "items": _STR}

DATABASE_TOOL = ToolDescriptor(
    name=TOOL_NAME,
    description=(
        "思源数据库操作。参数：{ operation, ... }，支持 " + "/".join(get_args(DatabaseOperation))
    ),
    handler=database,
    args_model=DatabaseArgs,
    input_schema={
        "type": "object",
        "properties": {
            "operation": {"type": "string", "enum": list(get_args(DatabaseOperation))},
            "keyword": _STR,
            "avID": _STR,
            "viewID": _STR,
            "pageSize": {"type": "number"},
            "page": {"type": "number"},
            "blocksValues": {"type": "array"},
            "blockIDs": _STR_LIST,
            "itemIDs": _STR_LIST,
            "keyID": _STR,
            "itemID": _STR,
            "value": {"type": "object"},
            "values": {"type": "array"},
            "blockID": _STR,
            "keyName": _STR,
            "keyType": _STR,
            "keyIcon": _STR,
            "previousKeyID": _STR,
            "srcIDs": _STR_LIST,
        },
        "required": ["operation"],
    },
    write_check=_check_write,
)
