"""
Exceptions raised by the child process supervisor.

Launch errors are raised synchronously from `ChildProcessSupervisor.launch()`.
Errors that happen while the child runs (sink failures) are logged and
recorded on the ExitReport, never raised to the caller.
"""

from typing import Optional


class SupervisorError(Exception):
    """Base class for every supervisor error."""


class LaunchError(SupervisorError):
    """The child process could not be started."""


class ExecutableNotFound(LaunchError):
    def __init__(self, path: str, detail: Optional[str] = None) -> None:
        self.path = path
        message = f"Executable not found or not executable: '{path}'"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SpawnFailed(LaunchError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to spawn child process: {reason}")


class SinkDeliveryFailed(SupervisorError):
    """The output sink raised while receiving a chunk."""

    def __init__(self, chunk, cause: BaseException) -> None:
        self.chunk = chunk
        self.cause = cause
        super().__init__(
            f"Sink rejected {chunk.stream.value} chunk #{chunk.sequence_number} "
            f"({len(chunk.data)} bytes): {cause}"
        )


class TerminateError(SupervisorError):
    """Signalling the child process failed."""


class AlreadyReaped(TerminateError):
    """terminate() found the process already collected. Never surfaced to callers."""
