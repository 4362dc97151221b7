"""ScreenshotService — remote screenshot services first, local browsers second.

Usage::

    service = ScreenshotService(importer, settings)
    result = await service.capture_webpage_screenshot("https://example.com")
    result.asset.asset_path        # uploaded PNG
    result.local_fallback_used     # True when every remote provider failed
    result.warnings                # one entry per failed attempt

Remote providers are plain image URLs fed through
:meth:`ImageImporter.import_image_from_url`, so they inherit the fetch
budget, SSRF guard and binary validation.  Local candidates run in a private
temp directory that is removed whatever the outcome.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import quote, urlsplit

from siyuan_mcp.media.capture import LocalCaptureRunner, build_local_candidates
from siyuan_mcp.media.errors import ContentValidationError, ScreenshotError
from siyuan_mcp.media.models import CaptureAttempt, ImageAsset, ScreenshotResult
from siyuan_mcp.net.errors import FetchError
from siyuan_mcp.net.guard import validate_public_url
from siyuan_mcp.utils.telemetry import (
    ATTR_CAPTURE_LOCAL,
    ATTR_CAPTURE_PROVIDER,
    ATTR_URL,
    get_tracer,
)

if TYPE_CHECKING:
    from siyuan_mcp.config import BridgeSettings
    from siyuan_mcp.media.importer import ImageImporter

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

DEFAULT_WIDTH = 1280
DEFAULT_HEIGHT = 800


@dataclass(frozen=True)
class RemoteProvider:
    name: str
    url: str


def remote_providers(url: str, width: int, height: int, full_page: bool) -> list[RemoteProvider]:
    """Screenshot-as-a-URL services in the order they are tried."""
    encoded = quote(url, safe="")
    thum = f"https://image.thum.io/get/png/width/{width}/"
    thum += "fullpage/" if full_page else f"crop/{height}/"
    microlink = (
        f"https://api.microlink.io/?url={encoded}&screenshot=true&meta=false"
        f"&embed=screenshot.url&viewport.width={width}&viewport.height={height}"
    )
    if full_page:
        microlink += "&screenshot.fullPage=true"
    return [
        RemoteProvider("thum.io", thum + url),
        RemoteProvider(
            "wordpress-mshots", f"https://s0.wp.com/mshots/v1/{encoded}?w={width}&h={height}"
        ),
        RemoteProvider("microlink", microlink),
    ]


class ScreenshotService:
    """Captures a webpage as a PNG asset through the fallback chain."""

    def __init__(
        self,
        importer: ImageImporter,
        settings: BridgeSettings,
        *,
        runner: LocalCaptureRunner | None = None,
    ) -> None:
        self._importer = importer
        self._settings = settings
        self._runner = runner or LocalCaptureRunner()

    async def capture_webpage_screenshot(
        self,
        url: str,
        *,
        width: int = DEFAULT_WIDTH,
        height: int | None = None,
        full_page: bool = False,
        file_name: str | None = None,
        upload: bool = True,
    ) -> ScreenshotResult:
        """Capture *url*; raises :class:`ScreenshotError` when every candidate fails."""
        page_url = validate_public_url(url.strip())
        height = height or DEFAULT_HEIGHT
        name = file_name or default_screenshot_name(page_url)
        attempts: list[CaptureAttempt] = []

        with _tracer.start_as_current_span("media.capture_webpage") as span:
            span.set_attribute(ATTR_URL, page_url)

            for provider in remote_providers(page_url, width, height, full_page):
                try:
                    asset = await self._importer.import_image_from_url(
                        provider.url, file_name=name, upload=upload
                    )
                except (FetchError, ContentValidationError) as exc:
                    reason = str(exc) or type(exc).__name__
                    logger.info("Remote screenshot via %s failed: %s", provider.name, reason)
                    attempts.append(CaptureAttempt(provider=provider.name, ok=False, reason=reason))
                    continue

                attempts.append(CaptureAttempt(provider=provider.name, ok=True))
                span.set_attribute(ATTR_CAPTURE_PROVIDER, provider.name)
                return _result(
                    page_url,
                    asset.model_copy(update={"capture_provider_url": provider.url}),
                    provider.name,
                    attempts,
                    local=False,
                )

            if not self._settings.local_screenshot_fallback:
                raise ScreenshotError(page_url, _reasons(attempts))

            span.set_attribute(ATTR_CAPTURE_LOCAL, True)
            found = await self._capture_locally(
                page_url, width, height, full_page, name, upload, attempts
            )
            if found is None:
                raise ScreenshotError(page_url, _reasons(attempts))

            asset, provider_name = found
            span.set_attribute(ATTR_CAPTURE_PROVIDER, provider_name)
            return _result(page_url, asset, provider_name, attempts, local=True)

    async def _capture_locally(
        self,
        url: str,
        width: int,
        height: int,
        full_page: bool,
        file_name: str,
        upload: bool,
        attempts: list[CaptureAttempt],
    ) -> tuple[ImageAsset, str] | None:
        workdir = Path(tempfile.mkdtemp(prefix="siyuan-mcp-shot-"))
        try:
            output = workdir / "capture.png"
            candidates = build_local_candidates(
                self._settings, url, output, width, height, full_page
            )
            for candidate in candidates:
                attempt = await self._runner.run(
                    candidate, output, self._settings.local_screenshot_timeout
                )
                if not attempt.ok:
                    attempts.append(attempt)
                    continue

                try:
                    asset = await self._importer.import_image_bytes(
                        output.read_bytes(),
                        declared_type="image/png",
                        source_url=url,
                        file_name=file_name,
                        upload=upload,
                    )
                except ContentValidationError as exc:
                    attempts.append(
                        CaptureAttempt(provider=attempt.provider, ok=False, reason=str(exc))
                    )
                    continue

                attempts.append(attempt)
                asset = asset.model_copy(update={"capture_provider_url": attempt.provider})
                return asset, attempt.provider
            return None
        finally:
            shutil.rmtree(workdir, ignore_errors=True)


def default_screenshot_name(url: str) -> str:
    host = urlsplit(url).hostname or "page"
    return f"screenshot-{host}-{int(time.time() * 1000)}.png"


def _reasons(attempts: list[CaptureAttempt]) -> list[str]:
    return [f"{a.provider}: {a.reason}" for a in attempts if not a.ok]


def _result(
    url: str,
    asset: ImageAsset,
    provider: str,
    attempts: list[CaptureAttempt],
    *,
    local: bool,
) -> ScreenshotResult:
    warnings = _reasons(attempts)
    if warnings:
        logger.warning(
            "Screenshot of %s succeeded via %s after: %s", url, provider, "; ".join(warnings)
        )
    return ScreenshotResult(
        url=url,
        asset=asset,
        provider=provider,
        local_fallback_used=local,
        warnings=warnings,
        attempts=attempts,
    )
