"""
Logging module for the application.
This module provides the root logger setup shared by the launcher and its helper output.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
