"""Core utilities for configuration, logging, and domain models."""

from .config import AppSettings, SmtpSettings, StorageSettings, load_app_settings
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "SmtpSettings",
    "StorageSettings",
    "configure_logging",
    "load_app_settings",
]
