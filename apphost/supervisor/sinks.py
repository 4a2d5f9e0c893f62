"""
Output sinks receive the chunks read from a child's stdout and stderr.

A sink may be called from two drain threads at once, one per stream. Sinks
that cannot cope with that can be wrapped in a SerializedSink.

Sinks that buffer partial output may also define `end_of_stream(stream)`;
the drain thread calls it once that stream's pipe has closed.
"""

import codecs
import logging
import threading
from typing import Dict, List, Protocol

from apphost.supervisor.models import OutputChunk, StreamKind


class OutputSink(Protocol):
    def deliver(self, chunk: OutputChunk) -> None:
        ...


class LoggingSink:
    """
    Forwards child output to the `proc.<name>` logger, one record per
    non-empty line: stdout at INFO, stderr at ERROR.

    Each stream keeps its own incremental decoder and pending partial line,
    so lines and multi-byte characters split across reads are logged whole.
    The trailing line without a newline is logged by `end_of_stream()`.
    """

    def __init__(self, process_name: str, encoding: str = "utf-8") -> None:
        self.process_name = process_name
        self.encoding = encoding
        self.logger = logging.getLogger(f"proc.{process_name}")
        # One decoder and buffer per stream; each is only touched by that stream's drain thread.
        self._decoders = {kind: codecs.getincrementaldecoder(encoding)(errors="replace") for kind in StreamKind}
        self._pending: Dict[StreamKind, str] = {kind: "" for kind in StreamKind}

    def _log_line(self, stream: StreamKind, line: str) -> None:
        line = line.strip()
        if line:
            level = logging.INFO if stream is StreamKind.STDOUT else logging.ERROR
            self.logger.log(level, line)

    def deliver(self, chunk: OutputChunk) -> None:
        text = self._pending[chunk.stream] + self._decoders[chunk.stream].decode(chunk.data)
        lines = text.splitlines(keepends=True)
        if lines and not lines[-1].endswith(("\n", "\r")):
            self._pending[chunk.stream] = lines.pop()
        else:
            self._pending[chunk.stream] = ""
        for line in lines:
            self._log_line(chunk.stream, line)

    def end_of_stream(self, stream: StreamKind) -> None:
        """Logs whatever is left of `stream` once its pipe has closed."""
        rest = self._pending[stream] + self._decoders[stream].decode(b"", final=True)
        self._pending[stream] = ""
        for line in rest.splitlines():
            self._log_line(stream, line)


class CollectingSink:
    """Keeps every chunk in memory, grouped by stream."""

    def __init__(self) -> None:
        self._chunks: Dict[StreamKind, List[OutputChunk]] = {kind: [] for kind in StreamKind}

    def deliver(self, chunk: OutputChunk) -> None:
        # Each stream's list is only appended to by that stream's drain thread.
        self._chunks[chunk.stream].append(chunk)

    def chunks(self, stream: StreamKind) -> List[OutputChunk]:
        return list(self._chunks[stream])

    def data(self, stream: StreamKind) -> bytes:
        """Concatenated bytes received on `stream`, in delivery order."""
        return b"".join(chunk.data for chunk in self._chunks[stream])

    def text(self, stream: StreamKind, encoding: str = "utf-8") -> str:
        return self.data(stream).decode(encoding, errors="replace")


class SerializedSink:
    """
    Wraps a sink so only one chunk is delivered at a time.

    The lock is re-entrant, so a wrapped sink that ends up delivering through
    the same wrapper again does not deadlock.
    """

    def __init__(self, inner: OutputSink) -> None:
        self.inner = inner
        self._lock = threading.RLock()

    def deliver(self, chunk: OutputChunk) -> None:
        with self._lock:
            self.inner.deliver(chunk)

    def end_of_stream(self, stream: StreamKind) -> None:
        end_of_stream = getattr(self.inner, "end_of_stream", None)
        if end_of_stream is not None:
            with self._lock:
                end_of_stream(stream)
