"""
The application shell: locates the bundled helper, runs it with its
environment override, forwards everything it prints to the log and waits for
it to finish.
"""

import signal
import logging
import threading
from typing import Optional, Sequence

import setproctitle

from apphost.local.bundle import resolve_bundled_executable
from apphost.local.config import effective_settings as config
from apphost.supervisor import (
    ChildProcessSupervisor,
    ExitReport,
    LaunchError,
    LaunchSpec,
    LoggingSink,
    RunningProcess,
    TerminateError,
)

log = logging.getLogger(__name__)


def _stop_helper(running: RunningProcess, grace_period: float) -> None:
    """Terminates the helper, logging instead of raising if that is refused."""
    try:
        running.terminate(grace_period)
    except TerminateError as e:
        log.error(f"Could not stop helper (PID {running.pid}): {e}")


def _install_signal_forwarding(running: RunningProcess) -> dict:
    """
    Routes SIGINT/SIGTERM received by the launcher to the child.

    Only possible from the main thread; elsewhere nothing is installed.

    :return dict: The previous handlers, keyed by signal number.
    """
    if threading.current_thread() is not threading.main_thread():
        return {}

    def _forward(signum, _frame):
        log.warning(f"Received {signal.Signals(signum).name}, stopping helper (PID {running.pid})...")
        # terminate() blocks for up to the grace period; keep the handler short.
        threading.Thread(
            target=_stop_helper,
            args=(running, config.GRACEFUL_SHUTDOWN_TIMEOUT),
            daemon=True,
            name="HelperShutdownThread",
        ).start()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _forward)
    return previous


def _restore_signal_handlers(previous: dict) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def run_helper(
    name: Optional[str] = None,
    arguments: Sequence[str] = (),
    supervisor: Optional[ChildProcessSupervisor] = None,
) -> ExitReport:
    """
    Runs the bundled helper to completion.

    :param name: Logical name of the bundled helper. Defaults to HELPER_NAME.
    :param arguments: Extra command-line arguments for the helper.
    :param supervisor: Supervisor to launch with; a default one is created if omitted.
    :return ExitReport: The helper's exit report.
    :raises LaunchError: If the helper cannot be found or started.
    """
    name = name or config.HELPER_NAME
    supervisor = supervisor or ChildProcessSupervisor()

    try:
        executable = resolve_bundled_executable(name)
        spec = LaunchSpec(
            executable_path=str(executable),
            environment=config.HELPER_ENVIRONMENT,
            arguments=tuple(arguments),
        )
        running = supervisor.launch(spec, LoggingSink(name))
    except LaunchError as e:
        log.error(f"Could not launch bundled helper '{name}': {e}")
        raise

    original_title = setproctitle.getproctitle()
    previous_handlers = {}
    try:
        setproctitle.setproctitle(f"{config.PROCESS_TITLE} ({name})")
        previous_handlers = _install_signal_forwarding(running)
        report = running.wait()
    except BaseException:
        # Never leave the helper behind, e.g. on Ctrl-C before forwarding is installed.
        _stop_helper(running, config.GRACEFUL_SHUTDOWN_TIMEOUT)
        raise
    finally:
        _restore_signal_handlers(previous_handlers)
        setproctitle.setproctitle(original_title)

    if report.signaled:
        log.warning(f"Helper '{name}' was terminated by signal {report.term_signal} after {report.duration.total_seconds():.2f}s.")
    elif report.exit_code != 0:
        log.error(f"Helper '{name}' exited with code {report.exit_code} after {report.duration.total_seconds():.2f}s.")
    else:
        log.info(f"Helper '{name}' finished successfully in {report.duration.total_seconds():.2f}s.")
    return report
