"""Configuration module for TheSet."""

from .settings import (
    DatabaseSettings,
    Settings,
    SetlistFmSettings,
    SpotifySettings,
    SyncSettings,
    TicketmasterSettings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "Settings",
    "SetlistFmSettings",
    "SpotifySettings",
    "SyncSettings",
    "TicketmasterSettings",
    "get_settings",
]
