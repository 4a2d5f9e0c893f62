"""
Value types shared by the supervisor, its drain threads and output sinks.
"""

from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional, Tuple


class StreamKind(Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


class ProcessState(Enum):
    """
    Lifecycle states of a RunningProcess.

    SPAWNED -> RUNNING -> {STDOUT_DONE, STDERR_DONE, DRAINED} -> EXITED -> REAPED.
    EXITED may be reached while a stream is still open, e.g. when a grandchild
    inherited the pipes. REAPED is terminal.
    """
    SPAWNED = "spawned"
    RUNNING = "running"
    STDOUT_DONE = "stdout_done"
    STDERR_DONE = "stderr_done"
    DRAINED = "drained"
    EXITED = "exited"
    REAPED = "reaped"


class TerminateResult(Enum):
    TERMINATED = "terminated"
    KILLED = "killed"
    ALREADY_EXITED = "already_exited"
    ALREADY_REAPED = "already_reaped"


class OutputChunk(NamedTuple):
    """A single non-empty read from one of the child's output pipes."""
    stream: StreamKind
    data: bytes
    sequence_number: int


class ExitReport(NamedTuple):
    """
    Final outcome of a child process, produced once both output streams are
    drained and the exit status has been collected.

    `exit_code` is the return code as reported by `subprocess`, i.e. the
    negated signal number when the child was killed by a signal.
    """
    exit_code: int
    signaled: bool
    duration: timedelta
    term_signal: Optional[int] = None
    partial_delivery: bool = False
    delivery_failures: int = 0


class LaunchSpec:
    """
    Describes what to launch. Instances are immutable once created.

    :param executable_path: Path to an existing, executable file.
    :param environment: Variables merged onto the parent's environment for the child.
    :param working_directory: Optional working directory for the child.
    :param arguments: Extra command-line arguments passed after the executable.
    """
    __slots__ = ("_executable_path", "_environment", "_working_directory", "_arguments")

    def __init__(
        self,
        executable_path: str,
        environment: Optional[Mapping[str, str]] = None,
        working_directory: Optional[str] = None,
        arguments: Tuple[str, ...] = (),
    ) -> None:
        env = dict(environment or {})
        for key, value in env.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise TypeError(f"Environment entries must be str -> str, got {key!r}: {value!r}")
        object.__setattr__(self, "_executable_path", str(executable_path))
        object.__setattr__(self, "_environment", MappingProxyType(env))
        object.__setattr__(self, "_working_directory", str(working_directory) if working_directory is not None else None)
        object.__setattr__(self, "_arguments", tuple(str(a) for a in arguments))

    def __setattr__(self, name, value):
        raise AttributeError(f"'{self.__class__.__name__}' object is immutable")

    def __delattr__(self, name):
        raise AttributeError(f"'{self.__class__.__name__}' object is immutable")

    @property
    def executable_path(self) -> str:
        return self._executable_path

    @property
    def environment(self) -> Mapping[str, str]:
        return self._environment

    @property
    def working_directory(self) -> Optional[str]:
        return self._working_directory

    @property
    def arguments(self) -> Tuple[str, ...]:
        return self._arguments

    @property
    def argv(self) -> Tuple[str, ...]:
        """The full command line: executable followed by its arguments."""
        return (self._executable_path,) + self._arguments

    def __repr__(self) -> str:
        return (
            f"LaunchSpec(executable_path={self._executable_path!r}, "
            f"environment={dict(self._environment)!r}, "
            f"working_directory={self._working_directory!r}, arguments={self._arguments!r})"
        )
