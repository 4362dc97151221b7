"""Tests for BridgeSettings and the YAML overlay."""

from __future__ import annotations

from pathlib import Path

import pytest

from siyuan_mcp.config import DEFAULT_USER_AGENT, BridgeSettings, ConfigError, load_settings


class TestFromEnv:
    def test_defaults(self) -> None:
        settings = BridgeSettings.from_env({})
        assert settings.api_url == "http://127.0.0.1:6806"
        assert settings.api_token == ""
        assert settings.read_only is True
        assert settings.max_image_bytes == 15 * 1024 * 1024
        assert settings.remote_timeout == 15.0
        assert settings.remote_max_retries == 2
        assert settings.remote_retry_backoff == pytest.approx(0.4)
        assert settings.user_agent == DEFAULT_USER_AGENT
        assert settings.page_mirror_prefix == "https://r.jina.ai/"
        assert settings.local_screenshot_fallback is True
        assert settings.local_screenshot_timeout == 45.0
        assert settings.chrome_bin is None

    def test_overrides(self) -> None:
        settings = BridgeSettings.from_env(
            {
                "SIYUAN_API_URL": "http://notes:6806/",
                "SIYUAN_API_TOKEN": "secret",
                "SIYUAN_MCP_READ_ONLY": "off",
                "SIYUAN_MCP_REMOTE_TIMEOUT_MS": "200",
                "SIYUAN_MCP_REMOTE_MAX_RETRIES": "0",
                "SIYUAN_MCP_LOCAL_SCREENSHOT_FALLBACK": "1",
                "SIYUAN_MCP_CHROME_BIN": " /opt/chrome ",
                "SIYUAN_MCP_PAGE_MIRROR_PREFIX": "",
            }
        )
        assert settings.api_url == "http://notes:6806"
        assert settings.api_token == "secret"
        assert settings.read_only is False
        assert settings.remote_timeout == pytest.approx(0.2)
        assert settings.remote_max_retries == 0
        assert settings.chrome_bin == "/opt/chrome"
        assert settings.page_mirror_prefix == ""

    @pytest.mark.parametrize("value", ["1", "true", "YES", "on"])
    def test_truthy_flags(self, value: str) -> None:
        assert BridgeSettings.from_env({"SIYUAN_MCP_READ_ONLY": value}).read_only is True

    def test_invalid_number_falls_back(self) -> None:
        settings = BridgeSettings.from_env({"SIYUAN_MCP_MAX_IMAGE_BYTES": "lots"})
        assert settings.max_image_bytes == 15 * 1024 * 1024

    def test_settings_are_frozen(self) -> None:
        settings = BridgeSettings.from_env({})
        with pytest.raises(ValueError):
            settings.read_only = False  # type: ignore[misc]


class TestLoadSettings:
    def test_no_file_uses_env(self) -> None:
        settings = load_settings(None, {"SIYUAN_API_TOKEN": "t"})
        assert settings.api_token == "t"

    def test_yaml_overrides_env(self, tmp_path: Path) -> None:
        path = tmp_path / "bridge.yaml"
        path.write_text("read_only: false\nremote_max_retries: 5\n")
        settings = load_settings(path, {"SIYUAN_MCP_READ_ONLY": "1"})
        assert settings.read_only is False
        assert settings.remote_max_retries == 5

    def test_unknown_key(self, tmp_path: Path) -> None:
        path = tmp_path / "bridge.yaml"
        path.write_text("nope: 1\n")
        with pytest.raises(ConfigError, match="Unknown config keys: nope"):
            load_settings(path, {})

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "bridge.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path, {})

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bridge.yaml"
        path.write_text("read_only: [unclosed\n")
        with pytest.raises(ConfigError, match="YAML parse error"):
            load_settings(path, {})

    def test_invalid_value(self, tmp_path: Path) -> None:
        path = tmp_path / "bridge.yaml"
        path.write_text("max_image_bytes: huge\n")
        with pytest.raises(ConfigError):
            load_settings(path, {})
