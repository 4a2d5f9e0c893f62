import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional

import apphost.settings as default_settings

log = logging.getLogger(__name__)


class MergedSettings:
    """
    A singleton class that merges default settings with JSON overrides.

    This class provides a unified, attribute-based access point for all
    launcher configuration. It follows a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from `.env` file (handled by `python-dotenv` in settings.py).
    3. Overrides from `overrides.json` for settings in `MODIFIABLE_SETTINGS`.
    """

    def __init__(self, overrides_path: Optional[Path] = None) -> None:
        """
        Initializes the settings object by loading defaults and overrides.

        :param overrides_path: Alternate overrides file; defaults to `OVERRIDES_JSON_PATH`.
        """
        self._load_defaults()
        if overrides_path is not None:
            self.OVERRIDES_JSON_PATH = Path(overrides_path)
        self._load_overrides()

    def _load_defaults(self) -> None:
        """
        Loads all uppercase attributes from the settings.py module as defaults.
        """
        for key in dir(default_settings):
            if key.isupper():
                value = getattr(default_settings, key)
                # Copy mutable containers so instances never share state with the module.
                if isinstance(value, (dict, set)):
                    value = value.copy()
                setattr(self, key, value)

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the `overrides.json` file.

        It will only apply overrides for keys that are explicitly listed in
        the `MODIFIABLE_SETTINGS` set in `settings.py`.
        """
        if not self.OVERRIDES_JSON_PATH.exists():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)

            log.info(f"Loading runtime configuration overrides from {self.OVERRIDES_JSON_PATH}")
            for key, value in overrides.items():
                if hasattr(self, key):
                    if key not in self.MODIFIABLE_SETTINGS:
                        log.warning(
                            f"Attempted to override non-modifiable setting '{key}'. Ignoring."
                        )
                        continue

                    # Coerce path strings back to Path objects if necessary
                    original_value = getattr(self, key)
                    if isinstance(original_value, Path):
                        setattr(self, key, Path(value))
                    else:
                        setattr(self, key, value)
                    log.debug(f"Overridden setting: {key} = {value}")
                else:
                    log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
        except (json.JSONDecodeError, IOError) as e:
            log.error(
                f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}"
            )

    def get(self, item: str, default: Any = None) -> Any:
        """Provides dictionary-like access to settings with a default value."""
        return getattr(self, item, default)

    def get_all_settings(self) -> Dict[str, Any]:
        """Returns every upper-case setting as a dictionary."""
        return {key: getattr(self, key) for key in dir(self) if key.isupper()}

    def save_overrides(self, overrides_to_save: Dict[str, Any]) -> None:
        """
        Saves the provided dictionary of settings to the overrides JSON file.

        Only keys present in `MODIFIABLE_SETTINGS` are persisted.

        :param overrides_to_save: A dictionary of settings to persist.
        """
        filtered_overrides = {
            key: str(value) if isinstance(value, Path) else value
            for key, value in overrides_to_save.items()
            if key in self.MODIFIABLE_SETTINGS
        }

        if not filtered_overrides:
            log.warning("No modifiable settings provided to save.")
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('w') as f:
                json.dump(filtered_overrides, f, indent=4)
            log.info(
                f"Configuration overrides saved to {self.OVERRIDES_JSON_PATH}"
            )
        except IOError as e:
            log.error(
                f"Failed to write to overrides file '{self.OVERRIDES_JSON_PATH}': {e}"
            )

# Create a singleton instance to be imported by other modules
effective_settings = MergedSettings()
