import os
import sys
import logging
import threading
import subprocess
from pathlib import Path
from typing import IO, Any, Dict, Mapping, Optional, TYPE_CHECKING

from apphost.supervisor.errors import ExecutableNotFound, SinkDeliveryFailed
from apphost.supervisor.models import OutputChunk, StreamKind

if TYPE_CHECKING:
    from apphost.supervisor.sinks import OutputSink

log = logging.getLogger(__name__)


#* --- Executable & Environment ---
def get_executable_path(base_path: Path) -> Path:
    """Returns the platform-specific full path for an executable."""
    return base_path.with_suffix(".exe") if sys.platform == "win32" else base_path

def check_executable(path: str) -> None:
    """
    Verifies that `path` names an existing file the current user may execute.

    :raises ExecutableNotFound: If the file is missing, is a directory or lacks execute permission.
    """
    if not path:
        raise ExecutableNotFound(path, "empty path")
    if not os.path.exists(path):
        raise ExecutableNotFound(path)
    if not os.path.isfile(path):
        raise ExecutableNotFound(path, "not a regular file")
    if not os.access(path, os.X_OK):
        raise ExecutableNotFound(path, "missing execute permission")

def build_environment(overrides: Mapping[str, str], base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Merges `overrides` onto a copy of the inherited environment.

    Keys in `overrides` take precedence. The parent environment is never
    replaced wholesale, so variables such as PATH stay visible to the child.

    :param overrides: Variables to set for the child.
    :param base: Environment to start from; defaults to `os.environ`.
    :return dict: A new dictionary suitable for `subprocess.Popen(env=...)`.
    """
    env = dict(os.environ if base is None else base)
    env.update(overrides)
    return env

def get_popen_creation_flags() -> Dict[str, Any]:
    """
    Returns platform-specific keyword arguments for subprocess.Popen.

    On Windows the child runs without a console window. Elsewhere it is put
    in its own session so terminal signals are forwarded by the launcher only.
    """
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {"start_new_session": True}


#* --- Output Draining ---
class DrainResult:
    """
    Per-stream drain bookkeeping. Written only by the drain thread that owns
    it; other threads read it after `done` is set.
    """

    def __init__(self, stream: StreamKind) -> None:
        self.stream = stream
        self.next_sequence = 0
        self.bytes_read = 0
        self.bytes_dropped = 0
        self.delivery_failures = 0
        self.partial = False
        self.done = threading.Event()

def _deliver(sink: "OutputSink", chunk: OutputChunk, result: DrainResult, strict: bool) -> None:
    """Hands one chunk to the sink, applying the failure policy."""
    try:
        sink.deliver(chunk)
    except Exception as e:
        result.delivery_failures += 1
        failure = SinkDeliveryFailed(chunk, e)
        if strict:
            result.partial = True
            log.error(f"{failure}. Strict delivery is on, discarding the rest of {result.stream.value}.")
        else:
            log.warning(f"{failure}. Continuing.")

def _end_of_stream(sink: "OutputSink", result: DrainResult) -> None:
    """Tells sinks that buffer partial output that the stream is closed."""
    end_of_stream = getattr(sink, "end_of_stream", None)
    if end_of_stream is None:
        return
    try:
        end_of_stream(result.stream)
    except Exception as e:
        result.delivery_failures += 1
        log.warning(f"Sink failed to finish the {result.stream.value} stream: {e}")

def drain_pipe(pipe: IO[bytes], result: DrainResult, sink: "OutputSink", chunk_size: int, strict: bool = False) -> None:
    """
    Target function for drain threads. Reads `pipe` until end-of-stream and
    forwards every non-empty read to `sink` as an OutputChunk. Sinks with an
    `end_of_stream(stream)` method are notified before the stream is marked done.

    Once strict delivery has given up on a stream, reading continues so the
    child never blocks on a full pipe, but the bytes are dropped.
    """
    try:
        for data in iter(lambda: pipe.read1(chunk_size), b""):
            result.bytes_read += len(data)
            if result.partial:
                result.bytes_dropped += len(data)
                continue
            chunk = OutputChunk(result.stream, data, result.next_sequence)
            result.next_sequence += 1
            _deliver(sink, chunk, result, strict)
    except (OSError, ValueError) as e:
        result.partial = True
        log.warning(f"Pipe reader for {result.stream.value} stream exited early: {e}")
    finally:
        pipe.close()
        _end_of_stream(sink, result)
        result.done.set()

def start_drain_thread(pipe: IO[bytes], result: DrainResult, sink: "OutputSink", chunk_size: int, strict: bool, pid: int) -> threading.Thread:
    """Starts a daemon thread draining one output pipe."""
    thread = threading.Thread(
        target=drain_pipe,
        args=(pipe, result, sink, chunk_size, strict),
        daemon=True,
        name=f"Drain-{result.stream.value}-{pid}",
    )
    thread.start()
    return thread
