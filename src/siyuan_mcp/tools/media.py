"""Media tools: import images, scrape pages, capture screenshots, insert into notes.

Each tool can optionally drop its images into a note (``noteBlockId`` plus
``mode``/``anchorBlockId``).  With ``dryRun`` nothing is uploaded or written;
the returned ``operation`` is a pending preview.
"""

from __future__ import annotations

import logging
from typing import Any

from siyuan_mcp.backend.errors import BackendError
from siyuan_mcp.media.errors import MediaError
from siyuan_mcp.media.models import ImageAsset, ImportFailure
from siyuan_mcp.media.scraper import extract_image_urls_from_html, fetch_page_html
from siyuan_mcp.net.errors import FetchError
from siyuan_mcp.notes.models import Operation
from siyuan_mcp.protocols.dispatcher import ToolDescriptor
from siyuan_mcp.protocols.errors import ToolInputError
from siyuan_mcp.tools.context import ToolContext, guarded_write
from siyuan_mcp.tools.models import (
    MODE_ENUM,
    CaptureScreenshotArgs,
    ExtractPageImagesArgs,
    ImportImageUrlsArgs,
    InsertImagesToNoteArgs,
    NoteTargetArgs,
)

logger = logging.getLogger(__name__)

ASSET_PREFIXES = ("assets/", "/assets/")


async def _import_many(
    ctx: ToolContext,
    urls: list[str],
    file_names: list[str],
    *,
    upload: bool,
) -> tuple[list[ImageAsset], list[ImportFailure]]:
    assets: list[ImageAsset] = []
    failed: list[ImportFailure] = []
    for i, url in enumerate(urls):
        name = file_names[i] if i < len(file_names) and file_names[i].strip() else None
        try:
            asset = await ctx.importer.import_image_from_url(url, file_name=name, upload=upload)
        except (FetchError, MediaError, BackendError) as exc:
            logger.info("Import of %s failed: %s", url, exc)
            failed.append(ImportFailure(url=url, error=str(exc) or type(exc).__name__))
            continue
        assets.append(asset)
    return assets, failed


async def _maybe_insert(
    ctx: ToolContext,
    args: NoteTargetArgs,
    assets: list[ImageAsset] | list[str],
) -> Operation | None:
    note_block_id = args.note_block_id.strip()
    if not note_block_id or not assets:
        return None
    return await ctx.inserter.insert_assets_to_note(
        note_block_id,
        assets,
        mode=args.mode,
        anchor_block_id=args.anchor_block_id.strip() or None,
        dry_run=args.dry_run,
        alt_prefix=args.alt_prefix or "image",
    )


def _failure_summary(failed: list[ImportFailure]) -> str:
    return "; ".join(f"{f.url}: {f.error}" for f in failed)


async def import_image_urls(ctx: ToolContext, args: ImportImageUrlsArgs) -> dict[str, Any]:
    assets, failed = await _import_many(
        ctx, args.urls, args.file_names, upload=not args.dry_run
    )
    if not assets:
        raise MediaError(f"没有成功导入的图片: {_failure_summary(failed)}")

    operation = await _maybe_insert(ctx, args, assets)
    return {
        "ok": True,
        "dryRun": args.dry_run,
        "assets": assets,
        "failed": failed,
        "operation": operation,
    }


async def extract_page_images(ctx: ToolContext, args: ExtractPageImagesArgs) -> dict[str, Any]:
    page = await fetch_page_html(ctx.fetcher, args.url, ctx.settings)
    image_urls = extract_image_urls_from_html(page.url, page.html, args.limit)
    payload: dict[str, Any] = {
        "ok": True,
        "url": page.url,
        "viaMirror": page.via_mirror,
        "imageUrls": image_urls,
        "count": len(image_urls),
    }
    if not args.import_images:
        return payload

    assets, failed = await _import_many(ctx, image_urls, [], upload=not args.dry_run)
    payload.update(
        {
            "dryRun": args.dry_run,
            "assets": assets,
            "failed": failed,
            "operation": await _maybe_insert(ctx, args, assets),
        }
    )
    return payload


async def capture_webpage_screenshot(
    ctx: ToolContext, args: CaptureScreenshotArgs
) -> dict[str, Any]:
    result = await ctx.screenshots.capture_webpage_screenshot(
        args.url,
        width=args.width,
        height=args.height or ctx.settings.local_screenshot_height,
        full_page=args.full_page,
        file_name=args.file_name.strip() or None,
        upload=not args.dry_run,
    )
    operation = await _maybe_insert(ctx, args, [result.asset])
    return {
        **result.model_dump(mode="json", by_alias=True),
        "dryRun": args.dry_run,
        "operation": operation,
    }


async def insert_images_to_note(ctx: ToolContext, args: InsertImagesToNoteArgs) -> dict[str, Any]:
    paths = [p.strip() for p in args.asset_paths if p.strip()]
    for item in args.assets:
        path = item.get("assetPath") if isinstance(item, dict) else None
        if isinstance(path, str) and path.strip():
            paths.append(path.strip())
    if not paths:
        raise ToolInputError("缺少参数 assetPaths")
    bad = [p for p in paths if not p.startswith(ASSET_PREFIXES)]
    if bad:
        raise ToolInputError(f"assetPaths 必须以 assets/ 开头: {', '.join(bad)}")

    operation = await _maybe_insert(ctx, args, paths)
    return {"ok": True, "dryRun": args.dry_run, "assetPaths": paths, "operation": operation}


_STR = {"type": "string"}
_STR_LIST = {"type": "array", "items": _STR}

NOTE_TARGET_PROPERTIES: dict[str, Any] = {
    "noteBlockId": {"type": "string", "description": "Note (or any block in it) to insert into."},
    "mode": {"type": "string", "enum": MODE_ENUM, "default": "append"},
    "anchorBlockId": {
        "type": "string",
        "description": "Required for mode=after/before; must belong to the same document.",
    },
    "dryRun": {"type": "boolean", "description": "Preview without uploading or writing."},
    "altPrefix": {"type": "string", "default": "image"},
}


def _media_schema(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {**properties, **NOTE_TARGET_PROPERTIES},
        "required": required,
    }


MEDIA_TOOLS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        name="siyuan_import_image_urls",
        description=(
            "下载图片 URL 并上传为思源资源（校验类型与大小），可选插入到笔记。"
            "参数：{ urls, fileNames?, noteBlockId?, mode?, anchorBlockId?, dryRun?, altPrefix? }"
        ),
        handler=import_image_urls,
        args_model=ImportImageUrlsArgs,
        input_schema=_media_schema({"urls": _STR_LIST, "fileNames": _STR_LIST}, ["urls"]),
        write_check=guarded_write("siyuan_import_image_urls", dry_run=True),
    ),
    ToolDescriptor(
        name="siyuan_extract_page_images",
        description=(
            "抓取网页并提取图片 URL（失败时经镜像重试），可选导入并插入到笔记。"
            "参数：{ url, limit?, importImages?, noteBlockId?, mode?, anchorBlockId?, dryRun? }"
        ),
        handler=extract_page_images,
        args_model=ExtractPageImagesArgs,
        input_schema=_media_schema(
            {
                "url": _STR,
                "limit": {"type": "number", "minimum": 1, "maximum": 100, "default": 20},
                "importImages": {"type": "boolean"},
            },
            ["url"],
        ),
        write_check=guarded_write(
            "siyuan_extract_page_images", dry_run=True, when="importImages"
        ),
    ),
    ToolDescriptor(
        name="siyuan_capture_webpage_screenshot",
        description=(
            "网页截图并上传为资源：依次尝试远程截图服务，全部失败时使用本地浏览器 fallback"
            "（Chrome/Chromium/Edge、wkhtmltoimage、playwright）。"
            "参数：{ url, width?, height?, fullPage?, fileName?, noteBlockId?, mode?, "
            "anchorBlockId?, dryRun? }"
        ),
        handler=capture_webpage_screenshot,
        args_model=CaptureScreenshotArgs,
        input_schema=_media_schema(
            {
                "url": _STR,
                "width": {"type": "number", "minimum": 100, "maximum": 4096, "default": 1280},
                "height": {"type": "number", "minimum": 100, "maximum": 16384},
                "fullPage": {"type": "boolean"},
                "fileName": _STR,
            },
            ["url"],
        ),
        write_check=guarded_write("siyuan_capture_webpage_screenshot", dry_run=True),
    ),
    ToolDescriptor(
        name="siyuan_insert_images_to_note",
        description=(
            "把已上传的资源插入到笔记（append/prepend/after/before），返回操作记录。"
            "参数：{ noteBlockId, assetPaths?, assets?, mode?, anchorBlockId?, dryRun?, altPrefix? }"
        ),
        handler=insert_images_to_note,
        args_model=InsertImagesToNoteArgs,
        input_schema=_media_schema(
            {
                "assetPaths": _STR_LIST,
                "assets": {"type": "array", "items": {"type": "object"}},
            },
            ["noteBlockId"],
        ),
        write_check=guarded_write("siyuan_insert_images_to_note", dry_run=True),
    ),
)
