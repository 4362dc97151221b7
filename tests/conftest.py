"""Shared fakes: an in-memory SiYuan backend and tiny image payloads."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from siyuan_mcp.config import BridgeSettings

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 17
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32

DOC_ID = "20240101120000-doc0001"
BLOCK_ID = "20240101120001-blk0001"
OTHER_DOC_ID = "20240101120002-doc0002"
OTHER_BLOCK_ID = "20240101120003-blk0002"

_FILENAME_RE = re.compile(rb'filename="([^"]+)"')
_SQL_ID_RE = re.compile(r"id = '([^']+)'")


class FakeSiYuan:
    """Minimal SiYuan API for ``httpx.MockTransport``.

    Documents are plain strings; every write appends to the owning document so
    before/after snapshots differ.  ``calls`` records ``(path, body)`` pairs.
    ``responses`` overrides a path with fixed data (or a callable taking the
    body).  ``stored_suffix`` makes the next upload come back with that extension.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.blocks: dict[str, dict[str, Any]] = {
            DOC_ID: _row(DOC_ID, DOC_ID, "/a.sy", "A", "d"),
            BLOCK_ID: _row(BLOCK_ID, DOC_ID, "/a.sy", "para", "p"),
            OTHER_DOC_ID: _row(OTHER_DOC_ID, OTHER_DOC_ID, "/b.sy", "B", "d"),
            OTHER_BLOCK_ID: _row(OTHER_BLOCK_ID, OTHER_DOC_ID, "/b.sy", "para", "p"),
        }
        self.docs: dict[str, str] = {DOC_ID: "# A", OTHER_DOC_ID: "# B"}
        self.responses: dict[str, Any] = {}
        self.stored_suffix: str | None = None

    @property
    def paths(self) -> list[str]:
        return [path for path, _ in self.calls]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/asset/upload":
            self.calls.append((path, request.content))
            if path in self.responses:
                value = self.responses[path]
                return _ok(value(request.content) if callable(value) else value)
            return _ok(self._upload(request.content))

        body = json.loads(request.content or b"{}")
        self.calls.append((path, body))
        if path in self.responses:
            value = self.responses[path]
            return _ok(value(body) if callable(value) else value)
        if path == "/api/query/sql":
            match = _SQL_ID_RE.search(body.get("stmt", ""))
            row = self.blocks.get(match.group(1)) if match else None
            return _ok([row] if row else [])
        if path == "/api/block/getBlockKramdown":
            return _ok({"id": body["id"], "kramdown": self.docs.get(body["id"], "")})
        if path == "/api/export/exportMdContent":
            return _ok({"hPath": "/", "content": self.docs.get(body["id"], "")})
        if path in ("/api/block/appendBlock", "/api/block/prependBlock"):
            self.docs[body["parentID"]] += "\n" + body["data"]
            return _ok([{"doOperations": [{"action": "insert"}]}])
        if path in ("/api/block/insertBlock", "/api/block/updateBlock"):
            anchor = body.get("previousID") or body.get("nextID") or body.get("id") or ""
            owner = self.blocks.get(anchor, {}).get("root_id", DOC_ID)
            self.docs[owner] = self.docs.get(owner, "") + "\n" + body["data"]
            return _ok([{"doOperations": [{"action": "insert"}]}])
        return _ok(None)

    def _upload(self, content: bytes) -> dict[str, Any]:
        names = [m.decode() for m in _FILENAME_RE.findall(content)]
        succ: dict[str, str] = {}
        for name in names:
            stem, _, ext = name.rpartition(".")
            if self.stored_suffix is not None:
                ext, self.stored_suffix = self.stored_suffix, None
            succ[name] = f"assets/{stem or ext}-20240101120000-abcdefg.{ext}"
        return {"errFiles": [], "succMap": succ}


def _row(block_id: str, root_id: str, path: str, content: str, kind: str) -> dict[str, Any]:
    hpath = "/" + path.strip("/").removesuffix(".sy").upper()
    return {
        "id": block_id,
        "root_id": root_id,
        "box": "box1",
        "path": path,
        "hpath": hpath,
        "content": content,
        "type": kind,
    }


def _ok(data: Any) -> httpx.Response:
    return httpx.Response(200, json={"code": 0, "msg": "", "data": data})


def image_transport(
    routes: dict[str, httpx.Response | Callable[[httpx.Request], httpx.Response]],
    seen: list[str] | None = None,
) -> httpx.MockTransport:
    """Outbound internet fake keyed by full URL; unknown URLs answer 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if seen is not None:
            seen.append(url)
        route = routes.get(url)
        if route is None:
            return httpx.Response(404, text="not found")
        return route(request) if callable(route) else route

    return httpx.MockTransport(handler)


@pytest.fixture
def backend() -> FakeSiYuan:
    return FakeSiYuan()


@pytest.fixture
def settings() -> BridgeSettings:
    return BridgeSettings(
        read_only=False,
        remote_max_retries=0,
        remote_retry_backoff=0,
        page_mirror_prefix="",
        local_screenshot_fallback=False,
    )
