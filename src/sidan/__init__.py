"""Sidan backend authentication and authorization core."""

from sidan.version import __version__

__all__ = ["__version__"]
