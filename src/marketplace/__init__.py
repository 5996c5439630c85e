"""Service marketplace backend: accounts, vendor approval and orders."""

from .api import app

__all__ = ["app"]
