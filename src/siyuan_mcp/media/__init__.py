"""Media pipeline — image validation, import, page scraping and screenshots."""

from siyuan_mcp.media.errors import (
    ContentValidationError,
    MediaError,
    ScreenshotError,
    UploadError,
)
from siyuan_mcp.media.importer import ImageImporter
from siyuan_mcp.media.models import ImageAsset, ScreenshotResult, ValidatedImage
from siyuan_mcp.media.scraper import extract_image_urls_from_html, fetch_page_html
from siyuan_mcp.media.screenshot import ScreenshotService
from siyuan_mcp.media.validator import validate_image_payload

__all__ = [
    "ContentValidationError",
    "ImageAsset",
    "ImageImporter",
    "MediaError",
    "ScreenshotError",
    "ScreenshotResult",
    "ScreenshotService",
    "UploadError",
    "ValidatedImage",
    "extract_image_urls_from_html",
    "fetch_page_html",
    "validate_image_payload",
]
