import logging
import logging.handlers

import pytest

from apphost.local.config import effective_settings
from apphost.log.handler import HelperSysLogHandler, LokiHandler
from apphost.log.handler.syslog import resolve_syslog_address
from apphost.log.setup import MainFormatter, SubprocessLogFilter, setup_logging


def _record(name, msg, level=logging.INFO):
    return logging.LogRecord(name, level, __file__, 1, msg, None, None)


@pytest.fixture
def isolated_root_logger():
    """setup_logging() replaces the root handlers; put the originals back afterwards."""
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


def test_main_formatter_passes_helper_output_through():
    formatter = MainFormatter()
    assert formatter.format(_record("proc.helper", "raw helper line")) == "raw helper line"
    formatted = formatter.format(_record("apphost.supervisor", "launcher message", logging.WARNING))
    assert "WARNING" in formatted
    assert "[apphost.supervisor] - launcher message" in formatted


def test_subprocess_filter():
    log_filter = SubprocessLogFilter()
    assert log_filter.filter(_record("proc.helper", "x")) is False
    assert log_filter.filter(_record("apphost.main", "x")) is True


def test_setup_logging_console_only(isolated_root_logger, monkeypatch):
    monkeypatch.setattr(effective_settings, "SYSLOG_ENABLED", False)
    monkeypatch.setattr(effective_settings, "LOKI_ENABLED", False)

    setup_logging(logging.WARNING, echo_helper_output=False)

    handlers = isolated_root_logger.handlers
    assert len(handlers) == 1
    assert handlers[0].level == logging.WARNING
    assert isinstance(handlers[0].formatter, MainFormatter)
    assert any(isinstance(f, SubprocessLogFilter) for f in handlers[0].filters)


def test_setup_logging_adds_syslog_handler(isolated_root_logger, monkeypatch):
    monkeypatch.setattr(effective_settings, "SYSLOG_ENABLED", True)
    monkeypatch.setattr(effective_settings, "SYSLOG_ADDRESS", "127.0.0.1:5514")
    monkeypatch.setattr(effective_settings, "LOKI_ENABLED", False)

    setup_logging()

    syslog_handlers = [h for h in isolated_root_logger.handlers if isinstance(h, HelperSysLogHandler)]
    assert len(syslog_handlers) == 1
    assert syslog_handlers[0].address == ("127.0.0.1", 5514)


def test_syslog_handler_tags_helper_output():
    handler = HelperSysLogHandler(address="127.0.0.1:5514")
    try:
        assert handler.format(_record("proc.helper", "hello")) == "[helper] hello"
        assert handler.format(_record("apphost.main", "hi")) == "[apphost.main] hi"
    finally:
        handler.close()


@pytest.mark.parametrize("address, expected", [
    ("logs.example.com:514", ("logs.example.com", 514)),
    ("/tmp/custom.sock", "/tmp/custom.sock"),
])
def test_resolve_syslog_address(address, expected):
    assert resolve_syslog_address(address) == expected


def test_resolve_syslog_address_auto_detect_falls_back_to_udp(monkeypatch):
    monkeypatch.setattr("apphost.log.handler.syslog.os.path.exists", lambda path: False)
    assert resolve_syslog_address("") == ("localhost", logging.handlers.SYSLOG_UDP_PORT)


def test_loki_handler_batches_and_labels(monkeypatch):
    posted = []

    class FakeResponse:
        status_code = 204
        text = ""

    def fake_post(url, json, headers, timeout):
        posted.append((url, json, headers))
        return FakeResponse()

    monkeypatch.setattr("apphost.log.handler.loki.requests.post", fake_post)
    handler = LokiHandler("http://loki:3100/", org_id="tenant", flush_interval=3600, batch_size=2)
    try:
        handler.emit(_record("proc.helper", "from helper"))
        assert posted == []
        handler.emit(_record("apphost.main", "from launcher"))
    finally:
        handler.close()

    assert len(posted) == 1
    url, payload, headers = posted[0]
    assert url == "http://loki:3100/loki/api/v1/push"
    assert headers["X-Scope-OrgID"] == "tenant"
    helper_stream, launcher_stream = payload["streams"]
    assert helper_stream["stream"]["job"] == "helper"
    assert helper_stream["stream"]["logger"] == "helper"
    assert helper_stream["values"][0][1] == "from helper"
    assert launcher_stream["stream"]["job"] == "apphost"
    assert launcher_stream["stream"]["logger"] == "apphost.main"
