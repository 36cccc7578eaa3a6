"""Configuration module for the care-team service."""

from .database import DatabaseSettings, get_database_settings
from .settings import ResilienceSettings, Settings, get_settings

__all__ = [
    "DatabaseSettings",
    "get_database_settings",
    "ResilienceSettings",
    "Settings",
    "get_settings",
]
