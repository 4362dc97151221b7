"""Tests for the media tools: image import, page scraping, screenshots, insertion."""

from __future__ import annotations

import sys
from pathlib import Path

import httpx
import pytest

from siyuan_mcp.config import BridgeSettings
from siyuan_mcp.protocols.dispatcher import ToolDispatcher
from tests.conftest import (
    BLOCK_ID,
    DOC_ID,
    JPEG_BYTES,
    OTHER_BLOCK_ID,
    PNG_BYTES,
    FakeSiYuan,
    image_transport,
)
from tests.media.test_capture import WRITE_PNG, write_fake_browser
from tests.tools.conftest import DispatcherFactory, call_error, call_ok

A_PNG = "https://example.com/a.png"
B_PNG = "https://example.com/b.png"
STORED_A = "assets/a-20240101120000-abcdefg.png"

PAGE = """
<html><head>
<meta property="og:image" content="https://cdn.example.com/cover.jpg">
</head><body>
<img src="/img/a.png" alt="a">
<img src="data:image/png;base64,AAAA">
</body></html>
"""


def _png() -> httpx.Response:
    return httpx.Response(200, content=PNG_BYTES, headers={"Content-Type": "image/png"})


def _jpeg() -> httpx.Response:
    return httpx.Response(200, content=JPEG_BYTES, headers={"Content-Type": "image/jpeg"})


def _screenshot_internet(ok_hosts: set[str], seen: list[str]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        if request.url.host in ok_hosts:
            return _png()
        return httpx.Response(500, text="upstream error")

    return httpx.MockTransport(handler)


def _inserted(backend: FakeSiYuan) -> list[tuple[str, dict]]:
    writes = ("/api/block/appendBlock", "/api/block/prependBlock", "/api/block/insertBlock")
    return [(path, body) for path, body in backend.calls if path in writes]


class TestImportImageUrls:
    async def test_partial_failure(
        self, make_dispatcher: DispatcherFactory, settings: BridgeSettings
    ) -> None:
        dispatcher = make_dispatcher(settings, internet=image_transport({A_PNG: _png()}))

        payload = await call_ok(dispatcher, "siyuan_import_image_urls", {"urls": [A_PNG, B_PNG]})

        assert payload["ok"] is True
        assert payload["operation"] is None
        assert [a["assetPath"] for a in payload["assets"]] == [STORED_A]
        assert payload["assets"][0]["mimeType"] == "image/png"
        assert payload["failed"][0]["url"] == B_PNG
        assert "HTTP 404" in payload["failed"][0]["error"]

    async def test_every_url_fails(
        self, make_dispatcher: DispatcherFactory, settings: BridgeSettings, backend: FakeSiYuan
    ) -> None:
        dispatcher = make_dispatcher(settings)
        result = await call_error(
            dispatcher, "siyuan_import_image_urls", {"urls": [B_PNG, "http://127.0.0.1/x.png"]}
        )
        assert result.text.startswith("没有成功导入的图片: https://example.com/b.png: ")
        assert "Blocked URL http://127.0.0.1" in result.text
        assert backend.calls == []

    async def test_file_names_and_insertion(
        self, make_dispatcher: DispatcherFactory, settings: BridgeSettings, backend: FakeSiYuan
    ) -> None:
        dispatcher = make_dispatcher(
            settings, internet=image_transport({A_PNG: _png(), B_PNG: _jpeg()})
        )

        payload = await call_ok(
            dispatcher,
            "siyuan_import_image_urls",
            {
                "urls": [A_PNG, B_PNG],
                "fileNames": ["cover", ""],
                "noteBlockId": BLOCK_ID,
                "altPrefix": "fig",
            },
        )

        paths = [a["assetPath"] for a in payload["assets"]]
        assert paths == [
            "assets/cover-20240101120000-abcdefg.png",
            "assets/b-20240101120000-abcdefg.jpg",
        ]
        assert _inserted(backend) == [
            (
                "/api/block/appendBlock",
                {
                    "dataType": "markdown",
                    "data": f"![fig 1]({paths[0]})\n![fig 2]({paths[1]})",
                    "parentID": DOC_ID,
                },
            )
        ]
        operation = payload["operation"]
        assert operation["status"] == "applied"
        assert operation["docId"] == DOC_ID
        assert operation["oldContent"] == "# A"
        assert operation["newContent"].endswith(f"![fig 2]({paths[1]})")

    async def test_anchor_from_another_document(
        self, make_dispatcher: DispatcherFactory, settings: BridgeSettings, backend: FakeSiYuan
    ) -> None:
        dispatcher = make_dispatcher(settings, internet=image_transport({A_PNG: _png()}))
        result = await call_error(
            dispatcher,
            "siyuan_import_image_urls",
            {
                "urls": [A_PNG],
                "noteBlockId": DOC_ID,
                "mode": "after",
                "anchorBlockId": OTHER_BLOCK_ID,
            },
        )
        assert f"anchorBlockId {OTHER_BLOCK_ID} belongs to document" in result.text
        assert _inserted(backend) == []

    async def test_dry_run_uploads_nothing(
        self, make_dispatcher: DispatcherFactory, settings: BridgeSettings, backend: FakeSiYuan
    ) -> None:
        dispatcher = make_dispatcher(settings, internet=image_transport({A_PNG: _png()}))

        payload = await call_ok(
            dispatcher,
            "siyuan_import_image_urls",
            {"urls": [A_PNG], "noteBlockId": DOC_ID, "mode": "prepend", "dryRun": True},
        )

        assert payload["dryRun"] is True
        assert payload["assets"][0]["assetPath"] is None
        assert payload["operation"]["status"] == "pending"
        assert payload["operation"]["newContent"] == f"![image]({A_PNG})"
        assert "/api/asset/upload" not in backend.paths
        assert _inserted(backend) == []

    async def test_invalid_mode(self, dispatcher: ToolDispatcher) -> None:
        result = await call_error(
            dispatcher, "siyuan_import_image_urls", {"urls": [A_PNG], "mode": "sideways"}
        )
        assert result.text.startswith("参数 mode 无效")


class TestExtractPageImages:
    async def test_lists_urls_without_importing(
        self, make_dispatcher: DispatcherFactory, settings: BridgeSettings, backend: FakeSiYuan
    ) -> None:
        page = httpx.Response(200, text=PAGE, headers={"Content-Type": "text/html"})
        dispatcher = make_dispatcher(
            settings, internet=image_transport({"https://example.com/post": page})
        )

        payload = await call_ok(
            dispatcher, "siyuan_extract_page_images", {"url": "https://example.com/post"}
        )

        assert payload == {
            "ok": True,
            "url": "https://example.com/post",
            "viaMirror": False,
            "imageUrls": ["https://cdn.example.com/cover.jpg", "https://example.com/img/a.png"],
            "count": 2,
        }
        assert backend.calls == []

    async def test_import_images(
        self, make_dispatcher: DispatcherFactory, settings: BridgeSettings
    ) -> None:
        routes = {
            "https://example.com/post": httpx.Response(200, text=PAGE),
            "https://cdn.example.com/cover.jpg": _jpeg(),
            "https://example.com/img/a.png": _png(),
        }
        dispatcher = make_dispatcher(settings, internet=image_transport(routes))

        payload = await call_ok(
            dispatcher,
            "siyuan_extract_page_images",
            {"url": "https://example.com/post", "importImages": True, "limit": 1},
        )

        assert payload["imageUrls"] == ["https://cdn.example.com/cover.jpg"]
        assert [a["assetPath"] for a in payload["assets"]] == [
            "assets/cover-20240101120000-abcdefg.jpg"
        ]
        assert payload["failed"] == []
        assert payload["dryRun"] is False

    async def test_mirror_fallback(
        self, make_dispatcher: DispatcherFactory, settings: BridgeSettings
    ) -> None:
        seen: list[str] = []
        mirror = "https://r.jina.ai/https://example.com/post"
        routes = {
            "https://example.com/post": httpx.Response(503),
            mirror: httpx.Response(200, text="Title\n\n![shot](https://example.com/m.webp)\n"),
        }
        dispatcher = make_dispatcher(
            settings.model_copy(update={"page_mirror_prefix": "https://r.jina.ai/"}),
            internet=image_transport(routes, seen),
        )

        payload = await call_ok(
            dispatcher, "siyuan_extract_page_images", {"url": "https://example.com/post"}
        )

        assert payload["viaMirror"] is True
        assert payload["imageUrls"] == ["https://example.com/m.webp"]
        assert seen == ["https://example.com/post", mirror]

    async def test_private_page_is_blocked(self, dispatcher: ToolDispatcher) -> None:
        result = await call_error(
            dispatcher, "siyuan_extract_page_images", {"url": "http://localhost:6806/"}
        )
        assert result.text.startswith("Blocked URL http://localhost:6806/")


class TestCaptureWebpageScreenshot:
    def test_schema(self, dispatcher: ToolDispatcher) -> None:
        tool = dispatcher.get("siyuan_capture_webpage_screenshot")
        properties = tool.input_schema["properties"]
        assert properties["mode"]["enum"] == ["append", "prepend", "after", "before"]
        assert "anchorBlockId" in properties
        assert "dryRun" in properties
        assert tool.input_schema["required"] == ["url"]
        assert "fallback" in tool.description

    async def test_remote_capture_into_note(
        self, make_dispatcher: DispatcherFactory, settings: BridgeSettings, backend: FakeSiYuan
    ) -> None:
        seen: list[str] = []
        dispatcher = make_dispatcher(
            settings, internet=_screenshot_internet({"image.thum.io"}, seen)
        )

        payload = await call_ok(
            dispatcher,
            "siyuan_capture_webpage_screenshot",
            {"url": "https://example.com/", "fileName": "shot.png", "noteBlockId": DOC_ID},
        )

        assert payload["provider"] == "thum.io"
        assert payload["localFallbackUsed"] is False
        assert "/crop/900/" in seen[0]
        stored = "assets/shot-20240101120000-abcdefg.png"
        assert payload["asset"]["assetPath"] == stored
        assert _inserted(backend)[0][1]["data"] == f"![image]({stored})"
        assert payload["operation"]["status"] == "applied"

    @pytest.mark.skipif(sys.platform == "win32", reason="uses a shebang script")
    async def test_local_fallback_after_remote_failures(
        self,
        make_dispatcher: DispatcherFactory,
        settings: BridgeSettings,
        tmp_path: Path,
    ) -> None:
        browser = write_fake_browser(tmp_path, WRITE_PNG)
        settings = settings.model_copy(
            update={"local_screenshot_fallback": True, "chrome_bin": str(browser)}
        )
        dispatcher = make_dispatcher(settings, internet=_screenshot_internet(set(), []))

        payload = await call_ok(
            dispatcher,
            "siyuan_capture_webpage_screenshot",
            {"url": "https://example.com/", "fileName": "shot.png", "height": 600},
        )

        assert payload["ok"] is True
        assert payload["localFallbackUsed"] is True
        asset = payload["asset"]
        assert asset["assetPath"] == asset["uploadedRaw"]["succMap"]["shot.png"]
        assert "local" in asset["captureProviderUrl"]
        assert isinstance(payload["warnings"], list)
        assert len(payload["warnings"]) == 3
        assert payload["operation"] is None

    async def test_every_provider_fails(
        self, make_dispatcher: DispatcherFactory, settings: BridgeSettings
    ) -> None:
        dispatcher = make_dispatcher(settings, internet=_screenshot_internet(set(), []))
        result = await call_error(
            dispatcher, "siyuan_capture_webpage_screenshot", {"url": "https://example.com/"}
        )
        assert result.text.startswith("Screenshot of https://example.com/ failed: thum.io")

    async def test_width_out_of_range(self, dispatcher: ToolDispatcher) -> None:
        result = await call_error(
            dispatcher, "siyuan_capture_webpage_screenshot", {"url": "https://e.com/", "width": 5}
        )
        assert result.text.startswith("参数 width 无效")


class TestInsertImagesToNote:
    async def test_inserts_paths_and_assets(
        self, dispatcher: ToolDispatcher, backend: FakeSiYuan
    ) -> None:
        payload = await call_ok(
            dispatcher,
            "siyuan_insert_images_to_note",
            {
                "noteBlockId": DOC_ID,
                "assetPaths": ["assets/a.png"],
                "assets": [{"assetPath": "/assets/b.png"}, {"sourceUrl": "ignored"}],
                "mode": "prepend",
            },
        )

        assert payload["assetPaths"] == ["assets/a.png", "/assets/b.png"]
        assert _inserted(backend) == [
            (
                "/api/block/prependBlock",
                {
                    "dataType": "markdown",
                    "data": "![image 1](assets/a.png)\n![image 2](/assets/b.png)",
                    "parentID": DOC_ID,
                },
            )
        ]
        assert "/api/asset/upload" not in backend.paths

    async def test_before_anchor(self, dispatcher: ToolDispatcher, backend: FakeSiYuan) -> None:
        await call_ok(
            dispatcher,
            "siyuan_insert_images_to_note",
            {
                "noteBlockId": DOC_ID,
                "assetPaths": "assets/a.png",
                "mode": "before",
                "anchorBlockId": BLOCK_ID,
            },
        )
        assert _inserted(backend)[0][1]["nextID"] == BLOCK_ID

    async def test_rejects_non_asset_paths(
        self, dispatcher: ToolDispatcher, backend: FakeSiYuan
    ) -> None:
        result = await call_error(
            dispatcher,
            "siyuan_insert_images_to_note",
            {"noteBlockId": DOC_ID, "assetPaths": ["assets/ok.png", "https://x.com/a.png"]},
        )
        assert result.text == "assetPaths 必须以 assets/ 开头: https://x.com/a.png"
        assert backend.calls == []

    async def test_requires_some_path(self, dispatcher: ToolDispatcher) -> None:
        result = await call_error(
            dispatcher, "siyuan_insert_images_to_note", {"noteBlockId": DOC_ID}
        )
        assert result.text == "缺少参数 assetPaths"

    async def test_requires_note(self, dispatcher: ToolDispatcher) -> None:
        result = await call_error(
            dispatcher, "siyuan_insert_images_to_note", {"assetPaths": ["assets/a.png"]}
        )
        assert result.text == "缺少参数 noteBlockId"
