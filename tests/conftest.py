import sys
import textwrap

import pytest

from apphost.local.config import effective_settings
from apphost.supervisor import LaunchSpec

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="relies on POSIX signals and permissions")


def python_spec(code: str, environment=None, **kwargs) -> LaunchSpec:
    """A LaunchSpec running `code` with the current interpreter."""
    return LaunchSpec(
        executable_path=sys.executable,
        environment=environment or {},
        arguments=("-c", textwrap.dedent(code)),
        **kwargs,
    )


def make_script(path, code: str):
    """Writes an executable Python script with a shebang for the current interpreter."""
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(code))
    path.chmod(0o755)
    return path


@pytest.fixture
def bundle_dir(tmp_path, monkeypatch):
    """Points BUNDLE_DIR at an empty temporary directory."""
    directory = tmp_path / "bundle"
    directory.mkdir()
    monkeypatch.setattr(effective_settings, "BUNDLE_DIR", directory)
    return directory
