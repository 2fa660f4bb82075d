"""Core configuration, logging and database setup."""

from .config import Settings, get_settings, settings
from .database import create_session_factory
from .logging import configure_logging

__all__ = [
    "Settings",
    "get_settings",
    "settings",
    "configure_logging",
    "create_session_factory",
]
