import os
import sys
import time
import psutil
import logging
import threading
import subprocess
from datetime import timedelta
from typing import Callable, List, Optional

from apphost.local.config import effective_settings as config
from apphost.supervisor import process_utils, shutdown
from apphost.supervisor.errors import AlreadyReaped, SpawnFailed
from apphost.supervisor.models import ExitReport, LaunchSpec, ProcessState, StreamKind, TerminateResult
from apphost.supervisor.process_utils import DrainResult
from apphost.supervisor.sinks import OutputSink

log = logging.getLogger(__name__)


class RunningProcess:
    """
    Handle on a launched child process. Created by ChildProcessSupervisor.launch().

    Three daemon threads work for each instance: two drain the stdout and
    stderr pipes, and a lifecycle thread blocks on the OS exit status, then
    joins both drains before publishing the ExitReport. `wait()` therefore
    never returns before every byte the child wrote has reached the sink.
    """

    def __init__(self, spec: LaunchSpec, popen: subprocess.Popen, sink: OutputSink, chunk_size: int, strict: bool) -> None:
        self.spec = spec
        self.pid: int = popen.pid
        self._popen = popen
        self._sink = sink
        self._chunk_size = chunk_size
        self._strict = strict
        self._started_at = time.monotonic()

        try:
            self._proc: Optional[psutil.Process] = psutil.Process(popen.pid)
        except psutil.NoSuchProcess:
            self._proc = None

        self._stdout = DrainResult(StreamKind.STDOUT)
        self._stderr = DrainResult(StreamKind.STDERR)
        self._drain_threads: List[threading.Thread] = []
        self._exited = threading.Event()
        self._reaped = threading.Event()
        self._report: Optional[ExitReport] = None
        self._running = False

    def _start(self) -> None:
        """Starts the drain threads and the lifecycle thread. Called once, by launch()."""
        for pipe, result in ((self._popen.stdout, self._stdout), (self._popen.stderr, self._stderr)):
            self._drain_threads.append(
                process_utils.start_drain_thread(pipe, result, self._sink, self._chunk_size, self._strict, self.pid)
            )
        self._running = True
        threading.Thread(target=self._supervise, daemon=True, name=f"Lifecycle-{self.pid}").start()

    def _supervise(self) -> None:
        """Lifecycle thread: collect the exit status, wait for both streams, publish the report."""
        returncode = self._popen.wait()
        duration = timedelta(seconds=time.monotonic() - self._started_at)
        self._exited.set()
        log.debug(f"Process {self.pid} exited with code {returncode}.")

        if not (self._stdout.done.is_set() and self._stderr.done.is_set()):
            log.info(
                f"Process {self.pid} exited but its output pipes are still open "
                "(inherited by a descendant?). Waiting for end-of-stream."
            )
        for thread in self._drain_threads:
            thread.join()

        self._report = self._build_report(returncode, duration)
        self._reaped.set()

    def _build_report(self, returncode: int, duration: timedelta) -> ExitReport:
        signaled = sys.platform != "win32" and returncode < 0
        partial = self._stdout.partial or self._stderr.partial
        failures = self._stdout.delivery_failures + self._stderr.delivery_failures
        if partial:
            dropped = self._stdout.bytes_dropped + self._stderr.bytes_dropped
            log.warning(f"Output of process {self.pid} was only partially delivered ({dropped} bytes dropped).")
        return ExitReport(
            exit_code=returncode,
            signaled=signaled,
            duration=duration,
            term_signal=-returncode if signaled else None,
            partial_delivery=partial,
            delivery_failures=failures,
        )

    @property
    def state(self) -> ProcessState:
        if self._reaped.is_set():
            return ProcessState.REAPED
        if self._exited.is_set():
            return ProcessState.EXITED
        stdout_done = self._stdout.done.is_set()
        stderr_done = self._stderr.done.is_set()
        if stdout_done and stderr_done:
            return ProcessState.DRAINED
        if stdout_done:
            return ProcessState.STDOUT_DONE
        if stderr_done:
            return ProcessState.STDERR_DONE
        return ProcessState.RUNNING if self._running else ProcessState.SPAWNED

    @property
    def has_exited(self) -> bool:
        return self._exited.is_set()

    def wait(self, timeout: Optional[float] = None) -> ExitReport:
        """
        Blocks until the child has exited and both output streams are fully delivered.

        :param timeout: Optional number of seconds to wait.
        :return ExitReport: The same report on every call.
        :raises subprocess.TimeoutExpired: If `timeout` elapses first. The child keeps running.
        """
        if not self._reaped.wait(timeout):
            raise subprocess.TimeoutExpired(list(self.spec.argv), timeout)
        return self._report

    def terminate(self, grace_period: Optional[float] = None) -> TerminateResult:
        """
        Asks the child to stop, killing it if it is still alive after `grace_period` seconds.

        Idempotent: on a process that already exited this does nothing and
        reports ALREADY_EXITED or ALREADY_REAPED.

        :param grace_period: Seconds between SIGTERM and SIGKILL. Defaults to GRACEFUL_SHUTDOWN_TIMEOUT.
        :raises TerminateError: If the process could not be signalled.
        """
        if grace_period is None:
            grace_period = config.GRACEFUL_SHUTDOWN_TIMEOUT

        if self._reaped.is_set():
            log.debug(f"terminate() ignored: {AlreadyReaped(f'process {self.pid} already reaped')}")
            return TerminateResult.ALREADY_REAPED
        if self._exited.is_set() or self._proc is None:
            log.debug(f"terminate() ignored: process {self.pid} already exited.")
            return TerminateResult.ALREADY_EXITED

        try:
            return shutdown.graceful_shutdown(self._proc, self._exited, grace_period)
        except AlreadyReaped as e:
            log.debug(f"terminate() raced with process exit: {e}")
            return TerminateResult.ALREADY_REAPED if self._reaped.is_set() else TerminateResult.ALREADY_EXITED

    def __repr__(self) -> str:
        return f"<RunningProcess pid={self.pid} state={self.state.value}>"


class ChildProcessSupervisor:
    """
    Launches a single child process and owns it until its exit is collected.

    :param chunk_size: Maximum bytes per read on each pipe. Defaults to READ_CHUNK_SIZE.
    :param strict_delivery: Stop delivering a stream after the first sink failure. Defaults to STRICT_DELIVERY.
    :param popen_factory: Callable with the `subprocess.Popen` signature, replaceable in tests.
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        strict_delivery: Optional[bool] = None,
        popen_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self.chunk_size = chunk_size or config.READ_CHUNK_SIZE
        self.strict_delivery = config.STRICT_DELIVERY if strict_delivery is None else strict_delivery
        self._popen_factory = popen_factory

    def launch(self, spec: LaunchSpec, sink: OutputSink) -> RunningProcess:
        """
        Spawns the process described by `spec` and starts draining its output into `sink`.

        :raises ExecutableNotFound: If the executable does not exist or cannot be executed.
        :raises SpawnFailed: If the OS refuses to create the process.
        """
        process_utils.check_executable(spec.executable_path)
        # Relative paths would otherwise be resolved against the child's cwd on POSIX.
        executable = os.path.abspath(spec.executable_path)
        env = process_utils.build_environment(spec.environment)

        log.info(f"Starting process: {executable}...")
        try:
            popen = self._popen_factory(
                [executable, *spec.arguments],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=spec.working_directory,
                env=env,
                **process_utils.get_popen_creation_flags(),
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            log.error(f"Failed to start process '{executable}': {e}")
            raise SpawnFailed(str(e)) from e

        running = RunningProcess(spec, popen, sink, self.chunk_size, self.strict_delivery)
        running._start()
        log.info(f"{os.path.basename(executable)} started successfully with PID: {running.pid}")
        return running
