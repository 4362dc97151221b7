"""Local screenshot capture through headless-browser subprocesses.

:func:`build_local_candidates` produces the ordered candidate list (configured
browser, common Chromium/Chrome/Edge names, platform app bundles,
``wkhtmltoimage``, Playwright via ``npx``).  :class:`LocalCaptureRunner` runs
one candidate and reports a :class:`CaptureAttempt` instead of raising, so the
caller can accumulate every failure reason.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from siyuan_mcp.media.models import CaptureAttempt, ScreenshotCandidate
from siyuan_mcp.utils.telemetry import ATTR_CAPTURE_PROVIDER, get_tracer

if TYPE_CHECKING:
    from siyuan_mcp.config import BridgeSettings

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

STDERR_TAIL_CHARS = 300

CHROMIUM_BINARIES = (
    "chromium",
    "chromium-browser",
    "google-chrome",
    "google-chrome-stable",
    "microsoft-edge",
    "msedge",
)

_APP_PATHS = {
    "darwin": (
        ("chrome-app", "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"),
        ("chromium-app", "/Applications/Chromium.app/Contents/MacOS/Chromium"),
        ("edge-app", "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge"),
    ),
    "win32": (
        ("chrome-app", r"C:\Program Files\Google\Chrome\Application\chrome.exe"),
        ("chrome-app-x86", r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe"),
        ("edge-app", r"C:\Program Files (x86)\Microsoft\Edge\Application\msedge.exe"),
    ),
}


def build_local_candidates(
    settings: BridgeSettings,
    url: str,
    output: Path,
    width: int,
    height: int | None = None,
    full_page: bool = False,
    *,
    platform: str = sys.platform,
) -> list[ScreenshotCandidate]:
    """Return local capture commands in priority order (duplicates removed)."""
    window_height = height or settings.local_screenshot_height
    chrome_args = [
        "--headless=new",
        "--disable-gpu",
        "--hide-scrollbars",
        "--no-sandbox",
        f"--window-size={width},{window_height}",
        f"--screenshot={output}",
        url,
    ]

    candidates: list[ScreenshotCandidate] = []
    seen: set[str] = set()

    def add_browser(provider: str, cmd: str) -> None:
        if cmd in seen:
            return
        seen.add(cmd)
        candidates.append(ScreenshotCandidate(provider=provider, cmd=cmd, args=list(chrome_args)))

    if settings.chrome_bin:
        add_browser("configured-browser", settings.chrome_bin)
    for binary in CHROMIUM_BINARIES:
        add_browser(binary, binary)
    for provider, app in _APP_PATHS.get(platform, ()):
        add_browser(provider, app)

    wk_args = ["--quiet", "--format", "png", "--width", str(width)]
    if not full_page:
        wk_args += ["--height", str(window_height)]
    candidates.append(
        ScreenshotCandidate(
            provider="wkhtmltoimage", cmd="wkhtmltoimage", args=[*wk_args, url, str(output)]
        )
    )

    pw_args = ["--yes", "playwright", "screenshot", f"--viewport-size={width},{window_height}"]
    if full_page:
        pw_args.append("--full-page")
    candidates.append(
        ScreenshotCandidate(provider="playwright", cmd="npx", args=[*pw_args, url, str(output)])
    )
    return candidates


class LocalCaptureRunner:
    """Runs one :class:`ScreenshotCandidate` as a subprocess with a hard timeout.

    Success means exit code 0 *and* a non-empty output file.
    """

    async def run(
        self,
        candidate: ScreenshotCandidate,
        output: Path,
        timeout: float,
    ) -> CaptureAttempt:
        provider = f"local:{candidate.provider}"
        output.unlink(missing_ok=True)

        with _tracer.start_as_current_span("media.capture.local") as span:
            span.set_attribute(ATTR_CAPTURE_PROVIDER, provider)
            logger.debug("Capturing with %s %s", candidate.cmd, candidate.args)

            try:
                proc = await asyncio.create_subprocess_exec(
                    candidate.cmd,
                    *candidate.args,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as exc:
                return _failed(provider, f"spawn failed: {exc}")

            try:
                _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
            except TimeoutError:
                return _failed(provider, f"timed out after {timeout:g}s")
            finally:
                if proc.returncode is None:
                    with contextlib.suppress(ProcessLookupError):
                        proc.kill()
                    await proc.wait()

            if proc.returncode != 0:
                tail = stderr_tail(stderr)
                detail = f"exit code {proc.returncode}"
                return _failed(provider, f"{detail}: {tail}" if tail else detail)

            if not output.is_file():
                return _failed(provider, "exit code 0 but no screenshot file was written")
            if output.stat().st_size == 0:
                return _failed(provider, "exit code 0 but the screenshot file is empty")

        return CaptureAttempt(provider=provider, ok=True)


def stderr_tail(stderr: bytes | None, limit: int = STDERR_TAIL_CHARS) -> str:
    text = (stderr or b"").decode(errors="replace").strip()
    if len(text) > limit:
        text = "…" + text[-limit:]
    return " ".join(text.split())


def _failed(provider: str, reason: str) -> CaptureAttempt:
    logger.info("%s failed: %s", provider, reason)
    return CaptureAttempt(provider=provider, ok=False, reason=reason)
