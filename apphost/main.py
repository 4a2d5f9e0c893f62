import sys
import logging
from pathlib import Path
from typing import Any, List, Optional

from apphost.local.app_shell import run_helper
from apphost.local.bundle import resolve_bundled_executable
from apphost.local.config import effective_settings as config
from apphost.log.setup import setup_logging
from apphost.supervisor import LaunchError

log = logging.getLogger("console")

HELP_TEXT = """
Usage: python -m apphost <command> [args] [--verbose] [--quiet]

Commands:
  run [name] [-- args...]  Launch the bundled helper (default: HELPER_NAME) and wait for it.
  check-config             Show the effective configuration and whether the helper resolves.
  config show              List the settings that can be overridden.
  config set KEY VALUE     Change one of them and save it to overrides.json.
  help                     Show this message.

Flags:
  --verbose                Log at DEBUG level on the console.
  --quiet                  Keep helper output off the console (system log and Loki still get it).
"""


def print_help() -> int:
    print(HELP_TEXT)
    return 0


def check_configuration() -> int:
    """Prints the effective settings and reports whether the helper can be resolved."""
    print("\n--- Current Launcher Configuration ---")
    settings = config.get_all_settings()
    for key in sorted(settings):
        if key == "MODIFIABLE_SETTINGS":
            continue
        marker = "*" if key in config.MODIFIABLE_SETTINGS else " "
        print(f" {marker} {key} = {settings[key]}")
    print("(* = can be overridden in overrides.json)")

    try:
        path = resolve_bundled_executable(config.HELPER_NAME)
        print(f"Helper '{config.HELPER_NAME}' resolves to {path}")
        return 0
    except LaunchError as e:
        print(f"Helper '{config.HELPER_NAME}' cannot be launched: {e}")
        return 1


def _config_show() -> int:
    """Prints the settings that `config set` may change."""
    print("\n--- Modifiable Settings ---")
    for key in sorted(config.MODIFIABLE_SETTINGS):
        print(f"  {key} = {config.get(key)}")
    print(f"Overrides file: {config.OVERRIDES_JSON_PATH}")
    return 0


def _coerce_setting(key: str, value: str) -> Any:
    """Converts a command-line string to the type of the setting's current value."""
    original_value = config.get(key)
    if isinstance(original_value, bool):
        return value.lower() in ('true', '1', 't', 'yes', 'y')
    if isinstance(original_value, Path):
        return Path(value)
    if original_value is not None:
        return type(original_value)(value)
    return value


def _config_set(args: List[str]) -> int:
    """
    Changes one modifiable setting and persists every modifiable setting to overrides.json.

    :param args: `KEY VALUE`.
    :return int: 0 on success, 1 when the key is not modifiable or the value does not convert.
    """
    if len(args) != 2:
        print("Usage: config set KEY VALUE")
        return 1
    key, raw_value = args[0].upper(), args[1]
    if key not in config.MODIFIABLE_SETTINGS:
        log.warning(f"Rejected config update: setting '{key}' is not modifiable.")
        return 1

    try:
        new_value = _coerce_setting(key, raw_value)
    except (ValueError, TypeError) as e:
        log.error(f"Could not convert value '{raw_value}' for key '{key}': {e}")
        return 1

    overrides = {name: config.get(name) for name in config.MODIFIABLE_SETTINGS}
    overrides[key] = new_value
    setattr(config, key, new_value)
    config.save_overrides(overrides)
    log.info(f"Setting '{key}' updated to '{new_value}'. It applies from the next run.")
    return 0


def config_command(args: List[str]) -> int:
    """
    Handles the sub-commands of 'config'.

    :param args: The arguments following 'config'; defaults to 'show'.
    """
    sub_command = args[0].lower() if args else "show"
    if sub_command == "show":
        return _config_show()
    if sub_command == "set":
        return _config_set(args[1:])
    print(f"Unknown config sub-command: '{sub_command}'. Use 'config show' or 'config set KEY VALUE'.")
    return 2


def run_command(args: List[str]) -> int:
    """
    Runs the helper and mirrors its exit status.

    :param args: Optional helper name, then helper arguments after '--'.
    :return int: The helper's exit code, 128 + signal when it was signalled, 127 when it could not start.
    """
    helper_args: List[str] = []
    if "--" in args:
        split = args.index("--")
        args, helper_args = args[:split], args[split + 1:]
    name = args[0] if args else None

    try:
        report = run_helper(name, helper_args)
    except LaunchError:
        return 127
    if report.signaled:
        return 128 + report.term_signal
    return report.exit_code


def execute_command(command: str, args: List[str]) -> int:
    """
    Executes a single command from the user.

    :param command: The main command string (e.g., 'run', 'check-config').
    :param args: A list of arguments for the command.
    :return int: The process exit status.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "run": lambda: run_command(args),
        "check-config": check_configuration,
        "config": lambda: config_command(args),
        "help": print_help,
    }

    if command in command_map:
        return command_map[command]()

    log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
    return 2


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the launcher."""
    args = list(sys.argv[1:] if argv is None else argv)

    # Launcher flags come before '--'; everything after belongs to the helper.
    launcher_args = args[:args.index("--")] if "--" in args else args
    verbose = "--verbose" in launcher_args
    quiet = "--quiet" in launcher_args
    for flag in ("--verbose", "--quiet"):
        if flag in launcher_args:
            args.remove(flag)

    setup_logging(logging.DEBUG if verbose else logging.INFO, echo_helper_output=not quiet)

    if not args:
        command, rest = "run", []
    else:
        command, rest = args[0].lower(), args[1:]
    return execute_command(command, rest)


if __name__ == "__main__":
    sys.exit(main())
