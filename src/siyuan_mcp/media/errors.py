"""Error types for the media pipeline."""


class MediaError(Exception):
    """Base error for image import and screenshot failures."""


class ContentValidationError(MediaError):
    """Downloaded bytes are not an acceptable image (type, size, integrity)."""


class UploadError(MediaError):
    """The backend accepted the upload request but did not store the file."""


class ScreenshotError(MediaError):
    """Every remote and local screenshot candidate failed."""

    def __init__(self, url: str, reasons: list[str]) -> None:
        self.url = url
        self.reasons = list(reasons)
        detail = "; ".join(self.reasons) if self.reasons else "no candidates available"
        super().__init__(f"Screenshot of {url} failed: {detail}")
