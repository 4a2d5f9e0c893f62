import logging
import sys

from apphost.local.config import effective_settings as config
from apphost.log.handler import HelperSysLogHandler, LokiHandler


class SubprocessLogFilter(logging.Filter):
    """
    This filter identifies logs coming from the helper's output loggers
    so handlers can opt out of them.
    """
    def filter(self, record):
        # The 'proc.' prefix is used by LoggingSink in apphost.supervisor.sinks
        return not record.name.startswith('proc.')


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw helper output."""

    LAUNCHER_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'

    def __init__(self) -> None:
        super().__init__(self.LAUNCHER_FORMAT)

    def format(self, record):
        # Helper output is printed exactly as the helper wrote it.
        if record.name.startswith('proc.'):
            return record.getMessage()
        return super().format(record)


def setup_logging(console_level: int = logging.INFO, echo_helper_output: bool = True) -> None:
    """
    Configures the root logger for the application.
    This sets up handlers for the console and, when enabled, the system log
    and Loki, clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param echo_helper_output: If False, helper output only reaches the system log and Loki.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    if root_logger.hasHandlers():
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    if not echo_helper_output:
        console_handler.addFilter(SubprocessLogFilter())
    root_logger.addHandler(console_handler)

    # --- System Log Handler (conditional) ---
    if config.SYSLOG_ENABLED:
        try:
            syslog_handler = HelperSysLogHandler(address=config.SYSLOG_ADDRESS)
            syslog_handler.setLevel(logging.INFO)
            root_logger.addHandler(syslog_handler)
        except OSError as e:
            root_logger.error(f"Failed to initialize system log handler: {e}. Logging to syslog will be disabled.")

    # --- Loki Handler (conditional) ---
    if config.LOKI_ENABLED:
        try:
            loki_handler = LokiHandler(url=config.LOKI_URL, org_id=config.LOKI_ORG_ID)
            loki_handler.setLevel(logging.INFO)
            root_logger.addHandler(loki_handler)
            root_logger.info(f"Grafana Loki logging handler initialized for {config.LOKI_URL}.")
        except Exception as e:
            root_logger.error(f"Failed to initialize Grafana Loki logging handler: {e}")
