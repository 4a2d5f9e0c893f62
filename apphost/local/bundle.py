import logging
from pathlib import Path
from typing import Optional

from apphost.local.config import effective_settings as config
from apphost.supervisor.errors import ExecutableNotFound
from apphost.supervisor.process_utils import check_executable, get_executable_path

log = logging.getLogger(__name__)


def resolve_bundled_executable(name: str, bundle_dir: Optional[Path] = None) -> Path:
    """
    Resolves a logical resource name to the on-disk path of a bundled executable.

    The name is looked up directly inside the bundle directory; on Windows the
    `.exe` suffix is appended.

    :param name: The logical resource name (e.g. 'helper').
    :param bundle_dir: Directory holding bundled resources. Defaults to BUNDLE_DIR.
    :return pathlib.Path: The absolute path to the executable.
    :raises ExecutableNotFound: If the resource is missing or not executable.
    """
    if not name or Path(name).name != name:
        raise ExecutableNotFound(str(name), "resource names must be a bare file name")

    base_dir = Path(bundle_dir) if bundle_dir is not None else Path(config.BUNDLE_DIR)
    candidate = get_executable_path(base_dir / name).resolve()
    check_executable(str(candidate))
    log.debug(f"Resolved bundled resource '{name}' to {candidate}")
    return candidate
