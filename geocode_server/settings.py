import dataclasses
import json
from typing import Optional

from .dataset import DEFAULT_DATASET_PATH


@dataclasses.dataclass
class Settings:
    """A data class representing the server settings."""

    dataset_path: str = DEFAULT_DATASET_PATH
    host: str = "127.0.0.1"
    port: int = 3000
    max_distance: Optional[float] = None
    sort_keys: bool = False

    def __post_init__(self):
        if self.max_distance is not None and self.max_distance < 0:
            raise ValueError(f"max_distance must not be negative, got {self.max_distance}")


class SettingsManager:
    """A class to manage the server settings."""

    def __init__(self, path: Optional[str] = None):
        """
        Initializes the SettingsManager.

        Args:
            path: The path to the settings file. None means defaults only.
        """
        self.path = path
        self.settings = self._read_settings()

    def _read_settings(self) -> Settings:
        """
        Reads the settings from the settings file.

        If there is no file, it returns the default settings.

        Returns:
            A Settings object.
        """
        if not self.path:
            return Settings()
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            return Settings(**data)
        except FileNotFoundError:
            return Settings()

    def get(self) -> Settings:
        """
        Returns the current settings.

        Returns:
            A Settings object.
        """
        return self.settings

    def apply_overrides(self, **overrides) -> Settings:
        """
        Replaces individual settings, ignoring overrides that are None.

        Returns:
            The updated Settings object.
        """
        changes = {key: value for key, value in overrides.items() if value is not None}
        self.settings = dataclasses.replace(self.settings, **changes)
        return self.settings

    def write_settings(self, settings: Settings):
        """
        Writes the settings to the settings file.

        Args:
            settings: A Settings object.
        """
        self.settings = settings
        with open(self.path, "w") as f:
            json.dump(dataclasses.asdict(settings), f, indent=4)
