"""
Core enums shared by the namespace and the key cache.
"""

from __future__ import annotations

from enum import Enum

HIVES_SHORT: tuple[str, ...] = ("HKLM", "HKU", "HKCU", "HKCR", "HKCC")
HIVES: tuple[str, ...] = (
    "HKEY_LOCAL_MACHINE",
    "HKEY_USERS",
    "HKEY_CURRENT_USER",
    "HKEY_CLASSES_ROOT",
    "HKEY_CURRENT_CONFIG",
)
# Only these hives can be opened on another machine
REMOTE_HIVES: tuple[str, ...] = HIVES[:2]


class View(str, Enum):
    """Registry view a key is addressed through (WOW64 redirection)."""

    BIT32 = "32"
    BIT64 = "64"

    @property
    def flag(self) -> str:
        """Tool argument selecting this view."""
        return f"/reg:{self.value}"


class Existence(str, Enum):
    """What the cache knows about whether a key exists in the store."""

    UNKNOWN = "unknown"
    CONFIRMED = "confirmed"
    ABSENT = "absent"
