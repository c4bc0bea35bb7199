"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from dataset_watcher.exceptions import ConfigurationError
from dataset_watcher.models.config import WatcherConfig

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(
        self, cli_options: dict[str, Any] | None = None, require_file: bool = False
    ) -> WatcherConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.
            require_file: Raise instead of falling back to defaults when the file
                does not exist.

        Returns:
            A validated WatcherConfig object.

        Raises:
            ConfigurationError: If the config file is missing (and required),
            invalid, or validation fails.
        """
        config_from_file: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(
                    f"Error parsing configuration file: {e}"
                ) from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            config_from_file = self._get_config_as_dict()
        elif require_file:
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'dataset-watcher init' first."
            )
        else:
            log.debug(
                f"No configuration file at '{self.config_file_path}', using defaults."
            )

        # Override with CLI options
        if cli_options:
            config_from_file.update(cli_options)

        try:
            config_dir = self.config_file_path.parent
            return WatcherConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save. Missing keys get defaults.
        """
        try:
            merged = WatcherConfig(**settings)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}
        for key in sorted(WatcherConfig.get_ini_keys()):
            config["DEFAULT"][key] = self._to_ini_value(getattr(merged, key))

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    @staticmethod
    def _to_ini_value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = WatcherConfig()
        try:
            return {
                "base_url": section.get("base_url", defaults.base_url),
                "user_agent": section.get("user_agent", defaults.user_agent),
                "probe_timeout": section.getfloat(
                    "probe_timeout", defaults.probe_timeout
                ),
                "download_dir": section.get("download_dir", defaults.download_dir),
                "download_timeout": section.getfloat(
                    "download_timeout", defaults.download_timeout
                ),
                "default_index": section.getint(
                    "default_index", defaults.default_index
                ),
                "notifications": section.getboolean(
                    "notifications", defaults.notifications
                ),
                "event_log": section.getboolean("event_log", defaults.event_log),
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = WatcherConfig()
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in sorted(WatcherConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = self._to_ini_value(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
