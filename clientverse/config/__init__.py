"""Configuration package."""

from clientverse.config.settings import (
    AppSettings,
    FirestoreSettings,
    GeminiSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "FirestoreSettings",
    "GeminiSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
