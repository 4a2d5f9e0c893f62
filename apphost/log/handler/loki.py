import os
import sys
import socket
import logging
import requests
import threading
from typing import Optional
from collections import deque
from typing import Deque, Dict, Any
from apphost.local.config import effective_settings as config


class LokiHandler(logging.Handler):
    """
    A custom logging handler that sends logs to a Grafana Loki instance
    in batches using a background thread.
    """
    def __init__(self, url: str, org_id: Optional[str] = None, flush_interval: Optional[float] = None, batch_size: Optional[int] = None):
        """
        Initializes the Loki handler.

        :param url: The base URL of the Loki instance.
        :param org_id: The tenant ID for Loki (e.g., 'X-Scope-OrgID').
        :param flush_interval: Seconds between periodic flushes. Defaults to LOG_BUFFER_FLUSH_INTERVAL.
        :param batch_size: Number of buffered entries that triggers an immediate flush. Defaults to LOG_BATCH_SIZE.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.org_id = org_id
        self.log_buffer: Deque[Dict[str, Any]] = deque()
        self.buffer_lock = threading.Lock()
        self.flush_interval = flush_interval if flush_interval is not None else config.LOG_BUFFER_FLUSH_INTERVAL
        self.batch_size = batch_size or config.LOG_BATCH_SIZE
        self.hostname = os.getenv('COMPUTERNAME') or os.getenv('HOSTNAME') or socket.gethostname()

        self.stop_event = threading.Event()
        self.flush_thread = threading.Thread(target=self._periodic_flush, daemon=True)
        self.flush_thread.name = "LokiFlushThread"
        self.flush_thread.start()

    def _periodic_flush(self) -> None:
        """
        Periodically flushes the log buffer. This runs in a background thread.
        The final flush is called when the handler is closed.
        """
        while not self.stop_event.wait(self.flush_interval):
            self.flush()
        self.flush()

    def emit(self, record: logging.LogRecord) -> None:
        """
        Formats a log record and adds it to the internal buffer.
        If the buffer exceeds the batch size, it triggers a flush.

        :param record: The log record to be processed.
        """
        try:
            # Helper output arrives already as a full line.
            if record.name.startswith('proc.'):
                msg = record.getMessage()
                logger_name = record.name.split('.', 1)[-1]
                job = "helper"
            else:
                msg = self.format(record)
                logger_name = record.name
                job = "apphost"

            log_entry = {
                "stream": {
                    "job": job,
                    "level": record.levelname.lower(),
                    "hostname": self.hostname,
                    "logger": logger_name,
                },
                "values": [
                    [str(int(record.created * 1e9)), msg]
                ]
            }
            with self.buffer_lock:
                self.log_buffer.append(log_entry)
                if len(self.log_buffer) >= self.batch_size:
                    self._flush_locked()
        except Exception:
            self.handleError(record)

    def _flush_locked(self) -> None:
        """
        Sends the buffered logs to Loki. This method assumes the buffer lock is already held.
        """
        if not self.log_buffer:
            return

        logs_to_send = list(self.log_buffer)
        self.log_buffer.clear()

        # Release the lock before making a blocking network call
        self.buffer_lock.release()
        try:
            payload = {"streams": logs_to_send}
            headers = {'Content-Type': 'application/json'}
            if self.org_id:
                headers['X-Scope-OrgID'] = self.org_id

            response = requests.post(self.url, json=payload, headers=headers, timeout=5)
            # 204 No Content is the success status for Loki push
            if response.status_code != 204:
                print(
                    f"ERROR: Loki returned non-204 status: {response.status_code} - {response.text}",
                    file=sys.stderr,
                )
        except requests.RequestException as e:
            print(f"CRITICAL: Failed to send {len(logs_to_send)} logs to Loki: {e}", file=sys.stderr)
        finally:
            self.buffer_lock.acquire()

    def flush(self) -> None:
        """
        Public method to trigger a manual flush of the log buffer in a thread-safe manner.
        """
        with self.buffer_lock:
            self._flush_locked()

    def close(self) -> None:
        """
        Shuts down the handler, ensuring all buffered logs are flushed and threads are joined.
        """
        self.stop_event.set()
        if self.flush_thread.is_alive():
            self.flush_thread.join(timeout=self.flush_interval + 2)
        super().close()
