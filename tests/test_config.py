"""
Tests for configuration module.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from regmirror.config import Settings, clear_settings_cache, get_settings
from regmirror.exceptions import ConfigurationError


class TestSettingsValidation:
    """Tests for Settings validation."""

    def test_settings_loads_from_env(self, mock_env_vars: dict[str, str]) -> None:
        """Test that settings correctly loads from environment variables."""
        settings = get_settings()

        assert settings.REG_EXECUTABLE == "reg-test"
        assert settings.REG_DEFAULT_VIEW == "64"
        assert settings.REG_MULTI_SZ_SEPARATOR == ","
        assert settings.REG_MAX_CONCURRENT_COMMANDS == 2
        assert settings.LOG_LEVEL == "DEBUG"

    def test_defaults_without_env(self) -> None:
        """Test that every setting has a usable default."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.REG_EXECUTABLE is None
        assert settings.REG_DEFAULT_VIEW == "64"
        assert settings.REG_MULTI_SZ_SEPARATOR == ","
        assert settings.REG_MAX_CONCURRENT_COMMANDS == 4
        assert settings.LOG_LEVEL == "INFO"
        assert settings.LOG_FILE is None

    def test_view_must_be_32_or_64(self) -> None:
        """Test that REG_DEFAULT_VIEW only accepts the two views."""
        with patch.dict(os.environ, {"REG_DEFAULT_VIEW": "16"}, clear=False):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_view_32_accepted(self) -> None:
        with patch.dict(os.environ, {"REG_DEFAULT_VIEW": "32"}, clear=False):
            assert Settings(_env_file=None).REG_DEFAULT_VIEW == "32"

    def test_separator_must_be_single_character(self) -> None:
        """Test that a multi-character separator is rejected."""
        with patch.dict(os.environ, {"REG_MULTI_SZ_SEPARATOR": ";;"}, clear=False):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

        assert "single character" in str(exc_info.value)

    def test_max_concurrent_commands_bounds(self) -> None:
        """Test that the process limit must be positive."""
        with patch.dict(os.environ, {"REG_MAX_CONCURRENT_COMMANDS": "0"}, clear=False):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_invalid_log_level(self) -> None:
        with patch.dict(os.environ, {"LOG_LEVEL": "VERBOSE"}, clear=False):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)


class TestResolvedValues:
    """Tests for derived settings."""

    def test_explicit_executable_wins(self, mock_settings: Settings) -> None:
        assert mock_settings.resolved_executable() == "reg-test"

    def test_default_executable(self) -> None:
        with patch.dict(os.environ, {"windir": "C:\\Windows"}, clear=True):
            settings = Settings(_env_file=None)
            executable = settings.resolved_executable()

        if sys.platform == "win32":
            assert executable == os.path.join("C:\\Windows", "system32", "reg.exe")
        else:
            assert executable == "REG"

    def test_explicit_encoding(self, mock_settings: Settings) -> None:
        assert mock_settings.resolved_encoding() == "utf-8"

    def test_log_file_is_path(self, tmp_path: Path) -> None:
        log_file = tmp_path / "regmirror.jsonl"
        with patch.dict(os.environ, {"LOG_FILE": str(log_file)}, clear=False):
            settings = Settings(_env_file=None)

        assert settings.LOG_FILE == log_file

    def test_redacted_display(self, mock_settings: Settings) -> None:
        display = mock_settings.redacted_display()

        assert display["REG_EXECUTABLE"] == "reg-test"
        assert display["REG_MAX_CONCURRENT_COMMANDS"] == 2
        assert display["LOG_FILE"] is None

    def test_unknown_encoding_raises(self) -> None:
        with patch.dict(os.environ, {"REG_OUTPUT_ENCODING": "no-such-codec"}, clear=False):
            settings = Settings(_env_file=None)

        with pytest.raises(ConfigurationError) as exc_info:
            settings.resolved_encoding()
        assert exc_info.value.context["field"] == "REG_OUTPUT_ENCODING"

    def test_missing_windir_raises_on_windows(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)
            monkeypatch.setattr(sys, "platform", "win32")
            with pytest.raises(ConfigurationError):
                settings.resolved_executable()


class TestSettingsCache:
    """Tests for the settings singleton."""

    def test_get_settings_is_cached(self, mock_env_vars: dict[str, str]) -> None:
        assert get_settings() is get_settings()

    def test_clear_settings_cache(self, mock_env_vars: dict[str, str]) -> None:
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first
