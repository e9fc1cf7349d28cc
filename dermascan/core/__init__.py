"""
Core package for the skin assessment client.

This package contains configuration and the static data
that are used throughout the application.
"""

from .config import settings  # noqa: F401

__all__ = ['settings']
