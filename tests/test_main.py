import json
import logging

import pytest

from apphost import main as console
from apphost.local.config import MergedSettings, effective_settings

from conftest import make_script, posix_only


@pytest.fixture
def logging_calls(monkeypatch):
    calls = []
    monkeypatch.setattr(console, "setup_logging", lambda level, echo_helper_output=True: calls.append((level, echo_helper_output)))
    return calls


def test_help(logging_calls, capsys):
    assert console.main(["help"]) == 0
    assert "Usage: python -m apphost" in capsys.readouterr().out
    assert logging_calls == [(logging.INFO, True)]


def test_unknown_command(logging_calls, caplog):
    with caplog.at_level(logging.INFO, logger="console"):
        assert console.main(["frobnicate"]) == 2
    assert "Unknown command: 'frobnicate'" in caplog.text


def test_flags_are_stripped(logging_calls, capsys):
    assert console.main(["--verbose", "HELP", "--quiet"]) == 0
    assert logging_calls == [(logging.DEBUG, False)]


def test_run_missing_helper_returns_127(logging_calls, bundle_dir):
    assert console.main(["run", "absent"]) == 127


@posix_only
def test_run_mirrors_helper_exit_code(logging_calls, bundle_dir):
    make_script(bundle_dir / "helper", "import sys; sys.exit(int(sys.argv[1]))\n")
    assert console.main(["run", "helper", "--", "5"]) == 5


@posix_only
def test_helper_arguments_after_separator_are_not_flags(logging_calls, bundle_dir):
    make_script(bundle_dir / "helper", "import sys; sys.exit(0 if sys.argv[1:] == ['--verbose'] else 1)\n")
    assert console.main(["run", "helper", "--", "--verbose"]) == 0
    assert logging_calls == [(logging.INFO, True)]


@posix_only
def test_no_command_runs_default_helper(logging_calls, bundle_dir, monkeypatch):
    monkeypatch.setattr(effective_settings, "HELPER_NAME", "default-helper")
    make_script(bundle_dir / "default-helper", "import sys; sys.exit(7)\n")
    assert console.main([]) == 7


@posix_only
def test_check_config(logging_calls, bundle_dir, capsys):
    assert console.main(["check-config"]) == 1
    assert "cannot be launched" in capsys.readouterr().out

    make_script(bundle_dir / effective_settings.HELPER_NAME, "pass\n")
    assert console.main(["check-config"]) == 0
    out = capsys.readouterr().out
    assert "* HELPER_NAME" in out
    assert "resolves to" in out


@pytest.fixture
def scratch_config(tmp_path, monkeypatch):
    """A console bound to settings that save to a temporary overrides file."""
    settings = MergedSettings(overrides_path=tmp_path / "overrides.json")
    monkeypatch.setattr(console, "config", settings)
    return settings


def test_config_set_saves_overrides(logging_calls, scratch_config):
    assert console.main(["config", "set", "graceful_shutdown_timeout", "2.5"]) == 0
    assert console.main(["config", "set", "STRICT_DELIVERY", "yes"]) == 0

    saved = json.loads(scratch_config.OVERRIDES_JSON_PATH.read_text())
    assert saved["GRACEFUL_SHUTDOWN_TIMEOUT"] == 2.5
    assert saved["STRICT_DELIVERY"] is True
    assert set(saved) == scratch_config.MODIFIABLE_SETTINGS
    assert scratch_config.GRACEFUL_SHUTDOWN_TIMEOUT == 2.5

    reloaded = MergedSettings(overrides_path=scratch_config.OVERRIDES_JSON_PATH)
    assert reloaded.GRACEFUL_SHUTDOWN_TIMEOUT == 2.5
    assert reloaded.STRICT_DELIVERY is True


def test_config_set_rejects_unmodifiable_key(logging_calls, scratch_config):
    assert console.main(["config", "set", "PROCESS_TITLE", "x"]) == 1
    assert not scratch_config.OVERRIDES_JSON_PATH.exists()


def test_config_set_rejects_unconvertible_value(logging_calls, scratch_config, caplog):
    with caplog.at_level(logging.ERROR, logger="console"):
        assert console.main(["config", "set", "GRACEFUL_SHUTDOWN_TIMEOUT", "soon"]) == 1
    assert "Could not convert value 'soon'" in caplog.text
    assert not scratch_config.OVERRIDES_JSON_PATH.exists()


def test_config_show_lists_modifiable_settings(logging_calls, scratch_config, capsys):
    assert console.main(["config"]) == 0
    out = capsys.readouterr().out
    assert "GRACEFUL_SHUTDOWN_TIMEOUT = " in out
    assert "PROCESS_TITLE" not in out
