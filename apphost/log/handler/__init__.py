"""
Logging handlers for the application.
This module provides the handlers that forward log records to the system log
and to a Grafana Loki instance.
"""

from .loki import LokiHandler
from .syslog import HelperSysLogHandler

__all__ = ["HelperSysLogHandler", "LokiHandler"]
