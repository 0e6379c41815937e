"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

import codecs
import locale
import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from regmirror.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        REG_EXECUTABLE: Path to the registry command line tool
        REG_DEFAULT_VIEW: View (32 or 64) used when a caller gives none
        REG_MULTI_SZ_SEPARATOR: Field separator passed with REG_MULTI_SZ data
        REG_OUTPUT_ENCODING: Encoding of the tool's console output
        REG_MAX_CONCURRENT_COMMANDS: Maximum concurrently running tool processes
        LOG_LEVEL: Logging level
        LOG_FILE: Optional JSON lines log file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # External tool
    REG_EXECUTABLE: str | None = Field(
        default=None,
        description="Registry tool executable (defaults to system32\\reg.exe)",
    )
    REG_OUTPUT_ENCODING: str | None = Field(
        default=None,
        description="Encoding of tool output (defaults to the locale encoding)",
    )
    REG_MAX_CONCURRENT_COMMANDS: int = Field(
        default=4, ge=1, le=64, description="Maximum concurrent tool processes"
    )

    # Cache behaviour
    REG_DEFAULT_VIEW: Literal["32", "64"] = Field(
        default="64", description="Default registry view"
    )
    REG_MULTI_SZ_SEPARATOR: str = Field(
        default=",", description="Separator for REG_MULTI_SZ data on the command line"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON log file")

    @field_validator("REG_MULTI_SZ_SEPARATOR")
    @classmethod
    def validate_separator(cls, v: str) -> str:
        """The tool only accepts a single separator character."""
        if len(v) != 1:
            raise ValueError("REG_MULTI_SZ_SEPARATOR must be a single character")
        return v

    def resolved_executable(self) -> str:
        """Get the registry tool to launch.

        Raises:
            ConfigurationError: On Windows, if %windir% is unset and no
                REG_EXECUTABLE is configured.
        """
        if self.REG_EXECUTABLE:
            return self.REG_EXECUTABLE
        if sys.platform == "win32":
            windir = os.environ.get("windir")
            if not windir:
                raise ConfigurationError(
                    "Cannot locate reg.exe: %windir% is not set",
                    context={"field": "REG_EXECUTABLE"},
                )
            return os.path.join(windir, "system32", "reg.exe")
        return "REG"

    def resolved_encoding(self) -> str:
        """Get the encoding used to decode tool output.

        Raises:
            ConfigurationError: If REG_OUTPUT_ENCODING names an unknown codec.
        """
        encoding = self.REG_OUTPUT_ENCODING or locale.getpreferredencoding(False)
        try:
            codecs.lookup(encoding)
        except LookupError as e:
            raise ConfigurationError(
                "Unknown output encoding",
                context={"field": "REG_OUTPUT_ENCODING", "value": encoding},
            ) from e
        return encoding

    def redacted_display(self) -> dict[str, str | int | None]:
        """Return settings for display."""
        return {
            "REG_EXECUTABLE": self.resolved_executable(),
            "REG_OUTPUT_ENCODING": self.resolved_encoding(),
            "REG_MAX_CONCURRENT_COMMANDS": self.REG_MAX_CONCURRENT_COMMANDS,
            "REG_DEFAULT_VIEW": self.REG_DEFAULT_VIEW,
            "REG_MULTI_SZ_SEPARATOR": self.REG_MULTI_SZ_SEPARATOR,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
