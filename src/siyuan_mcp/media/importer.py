"""ImageImporter — fetch → validate → hash → upload for remote and local images.

Usage::

    importer = ImageImporter(client, fetcher, settings)
    asset = await importer.import_image_from_url("https://example.com/cat.png")
    print(asset.asset_path)  # "assets/cat-20240101120000-abcdefg.png"

``upload=False`` runs every step except the upload and returns an asset with
``asset_path=None``; dry-run previews rely on it.
"""

from __future__ import annotations

import hashlib
import logging
import re
import time
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote, urlsplit

from siyuan_mcp.backend.errors import BackendError
from siyuan_mcp.media.errors import UploadError
from siyuan_mcp.media.models import ImageAsset, ValidatedImage
from siyuan_mcp.media.validator import mime_for_extension, validate_image_payload
from siyuan_mcp.net.fetch import FetchOptions
from siyuan_mcp.net.guard import validate_public_url
from siyuan_mcp.utils.telemetry import ATTR_ASSET_MIME, ATTR_ASSET_SIZE, ATTR_URL, get_tracer

if TYPE_CHECKING:
    from siyuan_mcp.backend.client import SiYuanClient
    from siyuan_mcp.config import BridgeSettings
    from siyuan_mcp.net.fetch import ResilientFetcher

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

IMAGE_ACCEPT = "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8"
MAX_STEM_LENGTH = 80

_UNSAFE_NAME_RE = re.compile(r"[^\w.\-]+", re.UNICODE)
_EQUIVALENT_EXTS = {"jpeg": "jpg", "jpe": "jpg", "tif": "tiff"}


class ImageImporter:
    """Turns an image URL (or locally produced bytes) into a stored asset."""

    def __init__(
        self,
        client: SiYuanClient,
        fetcher: ResilientFetcher,
        settings: BridgeSettings,
    ) -> None:
        self._client = client
        self._fetcher = fetcher
        self._settings = settings

    def image_fetch_options(self, max_bytes: int | None = None) -> FetchOptions:
        return FetchOptions(
            timeout=self._settings.remote_timeout,
            max_retries=self._settings.remote_max_retries,
            retry_backoff=self._settings.remote_retry_backoff,
            max_bytes=max_bytes or self._settings.max_image_bytes,
            url_guard=validate_public_url,
        )

    async def import_image_from_url(
        self,
        url: str,
        *,
        file_name: str | None = None,
        upload: bool = True,
        max_bytes: int | None = None,
    ) -> ImageAsset:
        """Download, validate and (unless *upload* is false) store one image.

        Raises:
            BlockedURLError: The URL (or a redirect hop) is not public.
            FetchError: The download failed after retries.
            ContentValidationError: The bytes are not an acceptable image.
            UploadError / BackendError: The backend did not store the file.
        """
        safe_url = validate_public_url(url.strip())
        limit = max_bytes or self._settings.max_image_bytes

        with _tracer.start_as_current_span("media.import_image") as span:
            span.set_attribute(ATTR_URL, safe_url)
            result = await self._fetcher.fetch(
                safe_url,
                headers={"Accept": IMAGE_ACCEPT},
                options=self.image_fetch_options(limit),
            )
            image = validate_image_payload(result.headers, result.body, max_bytes=limit)
            span.set_attribute(ATTR_ASSET_SIZE, image.size)
            span.set_attribute(ATTR_ASSET_MIME, image.detected_mime)

            name = derive_file_name(file_name, result.url or safe_url, image.detected_ext)
            return await self._store(image, source_url=safe_url, file_name=name, upload=upload)

    async def import_image_bytes(
        self,
        body: bytes,
        *,
        declared_type: str,
        source_url: str,
        file_name: str | None = None,
        upload: bool = True,
    ) -> ImageAsset:
        """Validate and store bytes produced locally (e.g. a local screenshot)."""
        image = validate_image_payload(
            {"content-type": declared_type},
            body,
            max_bytes=self._settings.max_image_bytes,
            check_content_length=False,
        )
        name = derive_file_name(file_name, source_url, image.detected_ext)
        return await self._store(image, source_url=source_url, file_name=name, upload=upload)

    async def _store(
        self,
        image: ValidatedImage,
        *,
        source_url: str,
        file_name: str,
        upload: bool,
    ) -> ImageAsset:
        digest = hashlib.sha256(image.body).hexdigest()
        asset = ImageAsset(
            source_url=source_url,
            file_name=file_name,
            mime_type=image.content_type,
            size=image.size,
            sha256=digest,
        )
        if not upload:
            return asset

        raw = await self._client.upload_asset(file_name, image.body, image.content_type)
        asset_path = stored_asset_path(raw, file_name)

        if not same_extension(PurePosixPath(asset_path).suffix, image.detected_ext):
            asset_path, raw = await self._reupload(image, file_name, digest, asset_path, raw)

        return asset.model_copy(update={"asset_path": asset_path, "uploaded_raw": raw})

    async def _reupload(
        self,
        image: ValidatedImage,
        file_name: str,
        digest: str,
        first_path: str,
        first_raw: dict[str, Any],
    ) -> tuple[str, dict[str, Any]]:
        """Retry once under ``<stem>-<sha8>.<ext>``; keep the first upload on failure."""
        stem = PurePosixPath(file_name).stem or "image"
        corrected = f"{stem}-{digest[:8]}.{image.detected_ext}"
        logger.info(
            "Backend stored %s as %s; re-uploading as %s", file_name, first_path, corrected
        )
        try:
            raw = await self._client.upload_asset(corrected, image.body, image.content_type)
            asset_path = stored_asset_path(raw, corrected)
        except (BackendError, UploadError) as exc:
            logger.warning("Re-upload of %s failed, keeping %s: %s", corrected, first_path, exc)
            return first_path, first_raw

        if not same_extension(PurePosixPath(asset_path).suffix, image.detected_ext):
            logger.warning(
                "Re-upload of %s still stored as %s, keeping %s", corrected, asset_path, first_path
            )
            return first_path, first_raw
        return asset_path, raw


def stored_asset_path(raw: dict[str, Any], file_name: str) -> str:
    """Pick the stored path for *file_name* out of an upload ``{errFiles, succMap}``.

    Raises:
        UploadError: The file is listed in ``errFiles`` or ``succMap`` is empty.
    """
    err_files = raw.get("errFiles") or []
    if isinstance(err_files, list) and file_name in err_files:
        raise UploadError(f"SiYuan rejected upload of {file_name}")

    succ_map = raw.get("succMap")
    if isinstance(succ_map, dict) and succ_map:
        path = succ_map.get(file_name) or next(iter(succ_map.values()))
        if isinstance(path, str) and path:
            return path
    raise UploadError(f"SiYuan upload returned no stored path for {file_name}")


def derive_file_name(override: str | None, url: str, ext: str) -> str:
    """Choose a safe file name whose extension matches the validated type.

    Candidates: explicit *override*, the URL path basename, ``image-<timestamp>``.
    """
    candidate = (override or "").strip()
    if not candidate:
        try:
            candidate = unquote(PurePosixPath(urlsplit(url).path).name)
        except ValueError:
            candidate = ""
    name = sanitize_file_name(candidate) or f"image-{int(time.time() * 1000)}"

    path = PurePosixPath(name)
    stem, suffix = path.stem, path.suffix
    if suffix and mime_for_extension(suffix) is None:
        # not an image extension ("page.html", "example.com"); keep it in the stem
        stem, suffix = name, ""
    if suffix and same_extension(suffix, ext):
        return f"{stem[:MAX_STEM_LENGTH]}{suffix}"
    return f"{(stem or 'image')[:MAX_STEM_LENGTH]}.{ext}"


def sanitize_file_name(name: str) -> str:
    cleaned = _UNSAFE_NAME_RE.sub("-", name.replace("\\", "/").rsplit("/", 1)[-1])
    return cleaned.strip("-.")


def same_extension(suffix: str, ext: str) -> bool:
    def norm(value: str) -> str:
        value = value.lower().lstrip(".")
        return _EQUIVALENT_EXTS.get(value, value)

    return bool(suffix) and norm(suffix) == norm(ext)
