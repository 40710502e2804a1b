"""Scheduled and on-demand email notifications over SMTP."""

from .context import AppContext

__version__ = "0.1.0"

__all__ = ["AppContext", "__version__"]
