"""
The Supervisor package.
Manages the lifecycle of a single child process.

This package contains the ChildProcessSupervisor class and its helper modules,
which together handle spawning the child, draining its output pipes into a
sink, terminating it and collecting its exit status.
"""
from .errors import (
    AlreadyReaped,
    ExecutableNotFound,
    LaunchError,
    SinkDeliveryFailed,
    SpawnFailed,
    SupervisorError,
    TerminateError,
)
from .models import ExitReport, LaunchSpec, OutputChunk, ProcessState, StreamKind, TerminateResult
from .sinks import CollectingSink, LoggingSink, OutputSink, SerializedSink
from .supervisor import ChildProcessSupervisor, RunningProcess

__all__ = [
    'ChildProcessSupervisor', 'RunningProcess',
    'LaunchSpec', 'OutputChunk', 'ExitReport', 'StreamKind', 'ProcessState', 'TerminateResult',
    'OutputSink', 'LoggingSink', 'CollectingSink', 'SerializedSink',
    'SupervisorError', 'LaunchError', 'ExecutableNotFound', 'SpawnFailed',
    'SinkDeliveryFailed', 'TerminateError', 'AlreadyReaped',
]
