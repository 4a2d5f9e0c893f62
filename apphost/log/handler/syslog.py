import os
import logging
import logging.handlers
from typing import Tuple, Union

# Unix domain sockets used by the local syslog daemon on Linux and macOS.
_SYSLOG_SOCKETS = ("/dev/log", "/var/run/syslog")


def resolve_syslog_address(address: str = "") -> Union[str, Tuple[str, int]]:
    """
    Turns the SYSLOG_ADDRESS setting into an address for SysLogHandler.

    An empty value picks the first local syslog socket that exists and falls
    back to UDP on localhost. 'host:port' selects a remote daemon, anything
    else is treated as a socket path.
    """
    if not address:
        for path in _SYSLOG_SOCKETS:
            if os.path.exists(path):
                return path
        return ("localhost", logging.handlers.SYSLOG_UDP_PORT)

    host, sep, port = address.rpartition(":")
    if sep and host and port.isdigit():
        return (host, int(port))
    return address


class HelperSysLogHandler(logging.handlers.SysLogHandler):
    """
    Writes log records to the system log under the 'apphost' ident.

    Helper output lines are tagged with the helper's name instead of the
    full 'proc.<name>' logger path.
    """

    def __init__(self, address: str = "") -> None:
        super().__init__(address=resolve_syslog_address(address))
        self.ident = "apphost: "
        self.setFormatter(logging.Formatter("[%(name)s] %(message)s"))

    def format(self, record: logging.LogRecord) -> str:
        if record.name.startswith("proc."):
            return f"[{record.name[len('proc.'):]}] {record.getMessage()}"
        return super().format(record)
