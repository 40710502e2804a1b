"""Web application entry point for the mail scheduler."""

from .app import create_app

app = create_app()

__all__ = ["create_app", "app"]
