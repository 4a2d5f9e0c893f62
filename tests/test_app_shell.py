import logging
import os
import signal
import threading
import time

import psutil
import pytest
import setproctitle

from apphost.local import app_shell
from apphost.local.app_shell import run_helper
from apphost.local.config import effective_settings
from apphost.supervisor import ChildProcessSupervisor, ExecutableNotFound, TerminateError

from conftest import make_script, posix_only

pytestmark = posix_only


def test_runs_helper_with_backtraces_enabled(bundle_dir, caplog):
    make_script(bundle_dir / "helper", """
        import os, sys
        print("RUST_BACKTRACE=" + os.environ.get("RUST_BACKTRACE", ""))
        print("args=" + ",".join(sys.argv[1:]))
        print("oops", file=sys.stderr)
    """)

    with caplog.at_level(logging.INFO):
        report = run_helper("helper", ["--port", "9000"])

    assert report.exit_code == 0
    helper_lines = [(r.levelno, r.getMessage()) for r in caplog.records if r.name == "proc.helper"]
    assert (logging.INFO, "RUST_BACKTRACE=1") in helper_lines
    assert (logging.INFO, "args=--port,9000") in helper_lines
    assert (logging.ERROR, "oops") in helper_lines
    assert "finished successfully" in caplog.text


def test_uses_configured_helper_name(bundle_dir, monkeypatch):
    monkeypatch.setattr(effective_settings, "HELPER_NAME", "custom")
    make_script(bundle_dir / "custom", "import sys; sys.exit(4)\n")

    report = run_helper(supervisor=ChildProcessSupervisor())

    assert report.exit_code == 4


def test_missing_helper_is_logged_and_raised(bundle_dir, caplog):
    with pytest.raises(ExecutableNotFound):
        run_helper("absent")
    assert "Could not launch bundled helper 'absent'" in caplog.text


def test_restores_signal_handlers_and_title(bundle_dir):
    make_script(bundle_dir / "helper", "pass\n")
    handler_before = signal.getsignal(signal.SIGTERM)
    title_before = setproctitle.getproctitle()

    run_helper("helper")

    assert signal.getsignal(signal.SIGTERM) == handler_before
    assert setproctitle.getproctitle() == title_before


def test_sigterm_to_launcher_stops_the_helper(bundle_dir, monkeypatch):
    monkeypatch.setattr(effective_settings, "GRACEFUL_SHUTDOWN_TIMEOUT", 1.0)
    make_script(bundle_dir / "helper", "import time; time.sleep(30)\n")
    original_handler = signal.getsignal(signal.SIGTERM)

    def send_sigterm_once_forwarding_is_installed():
        deadline = time.monotonic() + 10
        while time.monotonic() < deadline:
            if psutil.Process().children() and signal.getsignal(signal.SIGTERM) is not original_handler:
                os.kill(os.getpid(), signal.SIGTERM)
                return
            time.sleep(0.01)

    sender = threading.Thread(target=send_sigterm_once_forwarding_is_installed, daemon=True)
    sender.start()
    report = run_helper("helper")
    sender.join(timeout=5)

    assert report.signaled is True
    assert report.term_signal == signal.SIGTERM


def test_refused_stop_is_logged_not_raised(caplog):
    class StubbornHelper:
        pid = 4242

        def terminate(self, grace_period=None):
            raise TerminateError("access denied")

    with caplog.at_level(logging.ERROR, logger="apphost.local.app_shell"):
        app_shell._stop_helper(StubbornHelper(), 1.0)

    assert "Could not stop helper (PID 4242): access denied" in caplog.text


class RecordingSupervisor(ChildProcessSupervisor):
    def __init__(self):
        super().__init__()
        self.last = None

    def launch(self, spec, sink):
        self.last = super().launch(spec, sink)
        return self.last


def test_interrupt_before_forwarding_stops_the_helper(bundle_dir, monkeypatch):
    monkeypatch.setattr(effective_settings, "GRACEFUL_SHUTDOWN_TIMEOUT", 1.0)
    make_script(bundle_dir / "helper", "import time; time.sleep(30)\n")

    def interrupted(running):
        raise KeyboardInterrupt

    monkeypatch.setattr(app_shell, "_install_signal_forwarding", interrupted)
    supervisor = RecordingSupervisor()
    title_before = setproctitle.getproctitle()

    with pytest.raises(KeyboardInterrupt):
        run_helper("helper", supervisor=supervisor)

    report = supervisor.last.wait(timeout=10)
    assert report.signaled is True
    assert setproctitle.getproctitle() == title_before
