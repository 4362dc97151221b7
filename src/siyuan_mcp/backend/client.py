"""SiYuanClient — typed wrapper over the note backend's JSON envelope.

Every endpoint is a ``POST`` with a JSON body answered by ``{code, msg, data}``.
``code != 0`` is an application failure even on HTTP 200; a non-2xx status is
a transport failure.  See :mod:`siyuan_mcp.backend.errors`.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from siyuan_mcp.backend.errors import (
    BackendAPIError,
    BackendConnectionError,
    BackendHTTPError,
    BackendResponseError,
)
from siyuan_mcp.backend.multipart import FilePart, build_multipart

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/api/asset/upload"
DEFAULT_ASSETS_DIR = "/assets/"


class SiYuanClient:
    """Async context manager for the SiYuan HTTP API.

    Usage::

        async with SiYuanClient("http://127.0.0.1:6806", token="…") as client:
            notebooks = await client.post("/api/notebook/lsNotebooks", {})
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Token {token}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> SiYuanClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def post(self, path: str, body: dict[str, Any] | None = None) -> Any:
        """POST a JSON body and return the envelope's ``data``."""
        payload = json.dumps(body or {}, ensure_ascii=False).encode("utf-8")
        return await self._request(path, payload, "application/json")

    async def upload_asset(
        self,
        file_name: str,
        data: bytes,
        mime_type: str,
        *,
        assets_dir: str = DEFAULT_ASSETS_DIR,
    ) -> dict[str, Any]:
        """Upload one file to the asset store; returns ``{errFiles, succMap}``."""
        body, content_type = build_multipart(
            fields=[("assetsDirPath", assets_dir)],
            files=[FilePart("file[]", file_name, mime_type, data)],
        )
        result = await self._request(UPLOAD_PATH, body, content_type)
        return result if isinstance(result, dict) else {}

    # -- typed helpers used by the insertion protocol -----------------------

    async def query_sql(self, stmt: str) -> list[dict[str, Any]]:
        rows = await self.post("/api/query/sql", {"stmt": stmt})
        return rows if isinstance(rows, list) else []

    async def get_block_kramdown(self, block_id: str) -> str:
        data = await self.post("/api/block/getBlockKramdown", {"id": block_id, "mode": "textmark"})
        return str(data.get("kramdown") or "") if isinstance(data, dict) else ""

    async def export_md_content(self, block_id: str) -> str:
        data = await self.post(
            "/api/export/exportMdContent",
            {"id": block_id, "yfm": False, "assets": False, "merge": 2, "ref": 0, "pdf": False},
        )
        return str(data.get("content") or "") if isinstance(data, dict) else ""

    async def _request(self, path: str, content: bytes, content_type: str) -> Any:
        try:
            response = await self._client.post(
                path,
                content=content,
                headers={"Content-Type": content_type},
            )
        except httpx.HTTPError as exc:
            raise BackendConnectionError(path, str(exc) or type(exc).__name__) from exc

        if not 200 <= response.status_code < 300:
            raise BackendHTTPError(path, response.status_code, response.reason_phrase)

        try:
            envelope = response.json()
        except ValueError as exc:
            raise BackendResponseError(path) from exc
        if not isinstance(envelope, dict):
            raise BackendResponseError(path)

        code = envelope.get("code")
        if code != 0:
            logger.debug("SiYuan %s rejected: code=%s msg=%s", path, code, envelope.get("msg"))
            raise BackendAPIError(path, code, str(envelope.get("msg") or ""))
        return envelope.get("data")
