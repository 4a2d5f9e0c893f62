import logging
import threading

import psutil

from apphost.supervisor.errors import AlreadyReaped, TerminateError
from apphost.supervisor.models import TerminateResult

log = logging.getLogger(__name__)


def _describe(proc: psutil.Process) -> str:
    try:
        return f"{proc.name()} (PID {proc.pid})"
    except psutil.Error:
        return f"PID {proc.pid}"


def send_terminate(proc: psutil.Process) -> None:
    """
    Sends SIGTERM (TerminateProcess on Windows) to the process.

    :raises AlreadyReaped: If the process no longer exists.
    :raises TerminateError: If the signal could not be delivered.
    """
    try:
        log.debug(f"Sending SIGTERM to {_describe(proc)}")
        proc.terminate()
    except psutil.NoSuchProcess as e:
        raise AlreadyReaped(f"Process {proc.pid} no longer exists") from e
    except psutil.AccessDenied as e:
        raise TerminateError(f"Not allowed to terminate process {proc.pid}: {e}") from e


def forceful_kill(proc: psutil.Process) -> None:
    """
    Forcefully kills a process that did not terminate gracefully.

    :raises AlreadyReaped: If the process exited in the meantime.
    :raises TerminateError: If the kill signal could not be delivered.
    """
    try:
        log.warning(f"Killing stubborn process {_describe(proc)}.")
        proc.kill()
    except psutil.NoSuchProcess as e:
        raise AlreadyReaped(f"Process {proc.pid} no longer exists") from e
    except psutil.AccessDenied as e:
        raise TerminateError(f"Not allowed to kill process {proc.pid}: {e}") from e


def graceful_shutdown(proc: psutil.Process, exited: threading.Event, grace_period: float) -> TerminateResult:
    """
    Runs the graceful shutdown sequence for a single child.

    `exited` is set by the thread that collects the child's exit status, so
    waiting on it blocks until the OS reports the exit instead of polling.

    :param proc: The psutil handle of the child.
    :param exited: Event set once the child has exited.
    :param grace_period: Seconds to wait after SIGTERM before killing.
    :return TerminateResult: TERMINATED or KILLED.
    :raises AlreadyReaped: If the process disappeared before it could be signalled.
    """
    send_terminate(proc)
    if exited.wait(max(grace_period, 0)):
        log.info(f"Process {proc.pid} exited after SIGTERM.")
        return TerminateResult.TERMINATED

    log.warning(f"Process {proc.pid} did not exit within {grace_period:.2f}s. Forcing shutdown...")
    try:
        forceful_kill(proc)
    except AlreadyReaped:
        # Exited between the timeout and the kill.
        return TerminateResult.TERMINATED
    exited.wait()
    return TerminateResult.KILLED
