"""SheetLens web application."""

from webapp.app import create_app

__all__ = ["create_app"]
