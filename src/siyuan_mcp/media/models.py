"""Data models for the media pipeline.

Payload models serialize with camelCase aliases (``model_dump(by_alias=True)``)
because they are returned verbatim to the calling agent.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for payloads that are serialized back to the agent."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ValidatedImage(BaseModel):
    """Image bytes that passed :func:`~siyuan_mcp.media.validator.validate_image_payload`.

    ``content_type`` is the corrected type: the sniffed type overrides a missing,
    generic or mismatched declared type.
    """

    body: bytes
    content_type: str
    detected_mime: str
    detected_ext: str

    @property
    def size(self) -> int:
        return len(self.body)


class ImageAsset(CamelModel):
    """A successfully imported image.

    ``asset_path`` is ``None`` only for dry-run previews where nothing was uploaded.
    """

    source_url: str
    file_name: str
    mime_type: str
    size: int
    sha256: str
    asset_path: str | None = None
    uploaded_raw: dict[str, Any] = Field(default_factory=dict)
    capture_provider_url: str | None = None


class ImportFailure(CamelModel):
    """One URL that could not be imported (multi-image tools keep going)."""

    url: str
    error: str


class ScreenshotCandidate(BaseModel):
    """One local capture attempt: ``cmd`` is run with ``args``."""

    provider: str
    cmd: str
    args: list[str] = Field(default_factory=list)


class CaptureAttempt(CamelModel):
    """Outcome of one remote or local screenshot attempt."""

    provider: str
    ok: bool
    reason: str = ""


class ScreenshotResult(CamelModel):
    """Outcome of a webpage capture, including every failed alternative."""

    ok: bool = True
    url: str
    asset: ImageAsset
    provider: str
    local_fallback_used: bool = False
    warnings: list[str] = Field(default_factory=list)
    attempts: list[CaptureAttempt] = Field(default_factory=list)
