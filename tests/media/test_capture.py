"""Tests for local screenshot candidates and the subprocess runner."""

from __future__ import annotations

import asyncio
import os
import stat
import sys
from pathlib import Path

import pytest

from siyuan_mcp.config import BridgeSettings
from siyuan_mcp.media.capture import (
    CHROMIUM_BINARIES,
    LocalCaptureRunner,
    build_local_candidates,
    stderr_tail,
)
from siyuan_mcp.media.models import ScreenshotCandidate
from tests.conftest import PNG_BYTES

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses a shebang script")


def write_fake_browser(directory: Path, body: str) -> Path:
    """Create an executable Python script standing in for a browser binary."""
    script = directory / "fake-browser"
    script.write_text(f"#!{sys.executable}\nimport sys, time\n{body}\n")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


WRITE_PNG = f"""
out = next(a.split("=", 1)[1] for a in sys.argv if a.startswith("--screenshot="))
with open(out, "wb") as fh:
    fh.write({PNG_BYTES!r})
"""


class TestBuildCandidates:
    def test_order_on_linux(self, tmp_path: Path) -> None:
        settings = BridgeSettings(chrome_bin="/opt/chrome/chrome")
        out = tmp_path / "shot.png"
        candidates = build_local_candidates(
            settings, "https://example.com/", out, 1024, 700, platform="linux"
        )

        providers = [c.provider for c in candidates]
        assert providers == [
            "configured-browser",
            *CHROMIUM_BINARIES,
            "wkhtmltoimage",
            "playwright",
        ]
        chrome = candidates[0]
        assert chrome.cmd == "/opt/chrome/chrome"
        assert chrome.args == [
            "--headless=new",
            "--disable-gpu",
            "--hide-scrollbars",
            "--no-sandbox",
            "--window-size=1024,700",
            f"--screenshot={out}",
            "https://example.com/",
        ]
        assert candidates[-2].args == [
            "--quiet", "--format", "png", "--width", "1024", "--height", "700",
            "https://example.com/", str(out),
        ]
        assert candidates[-1].cmd == "npx"

    def test_full_page_and_platform_apps(self, tmp_path: Path) -> None:
        settings = BridgeSettings(chrome_bin="chromium", local_screenshot_height=900)
        candidates = build_local_candidates(
            settings, "https://example.com/", tmp_path / "o.png", 800, full_page=True,
            platform="darwin",
        )
        providers = [c.provider for c in candidates]
        assert providers.count("configured-browser") == 1
        assert "chromium" not in providers
        assert "chrome-app" in providers
        assert "--window-size=800,900" in candidates[0].args
        assert "--height" not in candidates[-2].args
        assert "--full-page" in candidates[-1].args


@posix_only
class TestRunner:
    async def test_success(self, tmp_path: Path) -> None:
        browser = write_fake_browser(tmp_path, WRITE_PNG)
        out = tmp_path / "shot.png"
        candidate = ScreenshotCandidate(
            provider="configured-browser", cmd=str(browser), args=[f"--screenshot={out}", "u"]
        )
        attempt = await LocalCaptureRunner().run(candidate, out, timeout=20)
        assert attempt.ok is True
        assert attempt.provider == "local:configured-browser"
        assert out.read_bytes() == PNG_BYTES

    async def test_non_zero_exit_reports_stderr(self, tmp_path: Path) -> None:
        browser = write_fake_browser(tmp_path, "sys.stderr.write('no display'); sys.exit(3)")
        candidate = ScreenshotCandidate(provider="x", cmd=str(browser))
        attempt = await LocalCaptureRunner().run(candidate, tmp_path / "o.png", timeout=20)
        assert attempt.ok is False
        assert attempt.reason == "exit code 3: no display"

    async def test_missing_output(self, tmp_path: Path) -> None:
        browser = write_fake_browser(tmp_path, "pass")
        candidate = ScreenshotCandidate(provider="x", cmd=str(browser))
        attempt = await LocalCaptureRunner().run(candidate, tmp_path / "o.png", timeout=20)
        assert attempt.ok is False
        assert "no screenshot file" in attempt.reason

    async def test_stale_output_is_removed_first(self, tmp_path: Path) -> None:
        out = tmp_path / "o.png"
        out.write_bytes(PNG_BYTES)
        browser = write_fake_browser(tmp_path, "pass")
        candidate = ScreenshotCandidate(provider="x", cmd=str(browser))
        attempt = await LocalCaptureRunner().run(candidate, out, timeout=20)
        assert attempt.ok is False

    async def test_timeout(self, tmp_path: Path) -> None:
        browser = write_fake_browser(tmp_path, "time.sleep(30)")
        candidate = ScreenshotCandidate(provider="x", cmd=str(browser))
        attempt = await LocalCaptureRunner().run(candidate, tmp_path / "o.png", timeout=0.3)
        assert attempt.ok is False
        assert attempt.reason.startswith("timed out after")

    async def test_cancel_kills_the_browser(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "pid"
        browser = write_fake_browser(
            tmp_path, "import os\nopen(sys.argv[1], 'w').write(str(os.getpid()))\ntime.sleep(30)"
        )
        candidate = ScreenshotCandidate(provider="x", cmd=str(browser), args=[str(pid_file)])
        task = asyncio.create_task(
            LocalCaptureRunner().run(candidate, tmp_path / "o.png", timeout=30)
        )
        for _ in range(200):
            if pid_file.exists() and pid_file.read_text():
                break
            await asyncio.sleep(0.05)
        pid = int(pid_file.read_text())

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)

    async def test_spawn_failure(self, tmp_path: Path) -> None:
        candidate = ScreenshotCandidate(provider="x", cmd=str(tmp_path / "does-not-exist"))
        attempt = await LocalCaptureRunner().run(candidate, tmp_path / "o.png", timeout=5)
        assert attempt.ok is False
        assert attempt.reason.startswith("spawn failed")


class TestStderrTail:
    def test_keeps_the_end(self) -> None:
        tail = stderr_tail(b"x" * 1000 + b"\nfinal error", limit=20)
        assert tail.startswith("…")
        assert tail.endswith("final error")

    def test_empty(self) -> None:
        assert stderr_tail(None) == ""
