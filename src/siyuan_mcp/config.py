"""Bridge configuration — read once from the environment at process start.

:class:`BridgeSettings` is immutable after construction; every component that
needs a knob (read-only flag, fetch budgets, screenshot fallback) receives the
same instance.  An optional YAML file can override individual values::

    settings = load_settings(Path("siyuan-mcp.yaml"))
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from siyuan_mcp import __version__

logger = logging.getLogger(__name__)

_TRUTHY = frozenset({"1", "true", "yes", "on"})

DEFAULT_API_URL = "http://127.0.0.1:6806"
DEFAULT_USER_AGENT = f"siyuan-mcp/{__version__} (+https://b3log.org/siyuan)"


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or validated."""


class BridgeSettings(BaseModel):
    """Process-wide configuration for the bridge."""

    model_config = ConfigDict(frozen=True)

    api_url: str = Field(default=DEFAULT_API_URL, description="SiYuan backend base URL.")
    api_token: str = Field(default="", description="Token sent as 'Authorization: Token …'.")
    read_only: bool = Field(default=True, description="Reject every mutating tool call.")
    backend_timeout: float = Field(default=30.0, description="Backend request timeout (s).")
    max_image_bytes: int = Field(
        default=15 * 1024 * 1024,
        description="Maximum image size, enforced before and after decompression.",
    )
    remote_timeout: float = Field(default=15.0, description="Outbound fetch timeout (s).")
    remote_max_retries: int = Field(default=2, description="Retries for transient failures.")
    remote_retry_backoff: float = Field(default=0.4, description="Linear backoff base (s).")
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    page_mirror_prefix: str = Field(
        default="https://r.jina.ai/",
        description="Prefix used to re-fetch a page through a reader mirror; empty disables.",
    )
    local_screenshot_fallback: bool = Field(default=True)
    local_screenshot_timeout: float = Field(default=45.0, description="Per-candidate timeout (s).")
    local_screenshot_height: int = Field(default=900)
    chrome_bin: str | None = Field(default=None, description="Explicit browser binary override.")
    log_level: str = Field(default="WARNING")

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/") or DEFAULT_API_URL

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper() or "WARNING"

    @property
    def page_fetch_timeout(self) -> float:
        """Short budget for HTML page fetches (the mirror is the fallback)."""
        return min(self.remote_timeout, 10.0)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BridgeSettings:
        """Build settings from ``SIYUAN_*`` environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            api_url=env.get("SIYUAN_API_URL") or DEFAULT_API_URL,
            api_token=env.get("SIYUAN_API_TOKEN", ""),
            read_only=_env_flag(env, "SIYUAN_MCP_READ_ONLY", default=True),
            backend_timeout=_env_millis(env, "SIYUAN_MCP_BACKEND_TIMEOUT_MS", 30_000),
            max_image_bytes=_env_int(
                env, "SIYUAN_MCP_MAX_IMAGE_BYTES", 15 * 1024 * 1024, minimum=1
            ),
            remote_timeout=_env_millis(env, "SIYUAN_MCP_REMOTE_TIMEOUT_MS", 15_000),
            remote_max_retries=_env_int(env, "SIYUAN_MCP_REMOTE_MAX_RETRIES", 2),
            remote_retry_backoff=_env_millis(
                env, "SIYUAN_MCP_REMOTE_RETRY_BACKOFF_MS", 400, minimum=0
            ),
            user_agent=env.get("SIYUAN_MCP_USER_AGENT") or DEFAULT_USER_AGENT,
            page_mirror_prefix=env.get(
                "SIYUAN_MCP_PAGE_MIRROR_PREFIX", "https://r.jina.ai/"
            ).strip(),
            local_screenshot_fallback=_env_flag(
                env, "SIYUAN_MCP_LOCAL_SCREENSHOT_FALLBACK", default=True
            ),
            local_screenshot_timeout=_env_millis(
                env, "SIYUAN_MCP_LOCAL_SCREENSHOT_TIMEOUT_MS", 45_000
            ),
            local_screenshot_height=_env_int(
                env, "SIYUAN_MCP_LOCAL_SCREENSHOT_HEIGHT", 900, minimum=1
            ),
            chrome_bin=(env.get("SIYUAN_MCP_CHROME_BIN") or "").strip() or None,
            log_level=env.get("SIYUAN_MCP_LOG_LEVEL", "WARNING"),
        )


def load_settings(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BridgeSettings:
    """Read environment settings and overlay an optional YAML file.

    Environment variables in the form ``${VAR}`` inside the file are expanded
    with :func:`os.path.expandvars` before parsing.

    Raises:
        ConfigError: On unreadable files, YAML errors or invalid values.
    """
    base = BridgeSettings.from_env(environ)
    if path is None:
        return base

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc

    try:
        data: Any = yaml.safe_load(os.path.expandvars(raw))
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML parse error: {exc}") from exc

    if data is None:
        return base
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must be a mapping")

    unknown = sorted(set(data) - set(BridgeSettings.model_fields))
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    try:
        return BridgeSettings.model_validate({**base.model_dump(), **data})
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def _env_flag(env: Mapping[str, str], name: str, *, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %d", name, raw, default)
        return default
    if value < minimum:
        logger.warning("Ignoring out-of-range %s=%r, using %d", name, raw, default)
        return default
    return value


def _env_millis(
    env: Mapping[str, str], name: str, default_ms: int, *, minimum: int = 1
) -> float:
    return _env_int(env, name, default_ms, minimum=minimum) / 1000.0
