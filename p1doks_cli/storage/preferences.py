"""
Manages loading and saving of the JSON preferences file that remembers the
account between runs.
"""

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from p1doks_cli.models.config import Preferences

log = logging.getLogger(__name__)

APP_DIR_NAME = "p1doks-cli"
PREFERENCES_FILE_NAME = "preferences.json"


def get_config_dir() -> Path:
    """Returns the per-user directory holding preferences and mappings."""
    if os.name == "nt":
        base_dir = Path(
            os.getenv("LOCALAPPDATA") or os.getenv("APPDATA", "~\\AppData\\Local")
        )
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / APP_DIR_NAME


class PreferencesStore:
    """Handles all operations related to the preferences file."""

    def __init__(self, preferences_path: Path):
        self.preferences_path = preferences_path
        self.preferences: Preferences | None = None

    def load(self) -> Preferences | None:
        """
        Loads the preferences file.

        Returns:
            The saved preferences, or None if there are none or they are
            unreadable.
        """
        if not self.preferences_path.is_file():
            return None

        try:
            with open(self.preferences_path, encoding="utf-8") as f:
                self.preferences = Preferences(**json.load(f))
        except (OSError, json.JSONDecodeError, TypeError, ValidationError) as e:
            log.warning(f"[yellow]Could not load preferences: {e}[/yellow]")
            self.preferences = None
        return self.preferences

    def save_credentials(
        self, username: str, refresh_token: str, setups_path: str
    ) -> bool:
        """
        Saves the account and the latest refresh token. Never the password.

        Returns:
            True if the file was written.
        """
        preferences = Preferences(
            username=username, refresh_token=refresh_token, setups_path=setups_path
        )
        try:
            self.preferences_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.preferences_path, "w", encoding="utf-8") as f:
                json.dump(preferences.model_dump(), f, indent=2)
        except OSError as e:
            log.warning(f"[yellow]Could not save credentials: {e}[/yellow]")
            return False

        self.preferences = preferences
        log.debug(f"Credentials saved to {self.preferences_path}")
        return True

    def clear_credentials(self) -> None:
        """Removes the preferences file if present."""
        self.preferences = None
        try:
            self.preferences_path.unlink(missing_ok=True)
        except OSError as e:
            log.warning(f"[yellow]Could not remove preferences: {e}[/yellow]")

    def get_credentials(self) -> Preferences | None:
        return self.preferences

    def has_credentials(self) -> bool:
        return self.preferences is not None and self.preferences.is_complete
