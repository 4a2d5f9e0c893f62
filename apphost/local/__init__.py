"""
Local package for the AppHost launcher.

This package provides the effective configuration, bundled resource lookup
and the application shell that runs the bundled helper.
"""

from .config import effective_settings

__all__ = ["effective_settings"]
