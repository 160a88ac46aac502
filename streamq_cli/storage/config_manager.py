"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from streamq_cli.exceptions import ConfigurationError
from streamq_cli.models.config import DownloadSettings

log = logging.getLogger(__name__)

SECTION = "downloads"


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser()

    def load_settings(self, cli_options: dict[str, Any] | None = None) -> DownloadSettings:
        """
        Loads settings from the INI file, applies CLI overrides, and validates them.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated DownloadSettings object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'streamq-cli init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        try:
            settings_from_file = self.get_settings_as_dict()
        except (configparser.Error, ValueError) as e:
            raise ConfigurationError(f"Error reading configuration file: {e}") from e

        if cli_options:
            settings_from_file.update(cli_options)

        try:
            return DownloadSettings(**settings_from_file)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save; missing keys use defaults.
        """
        try:
            validated = DownloadSettings(**settings)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

        config = configparser.ConfigParser()
        config[SECTION] = self._to_ini_values(validated)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def get_settings_as_dict(self) -> dict[str, Any]:
        """Reads the `[downloads]` section of the INI file into a dictionary."""
        if not self._parser.has_section(SECTION):
            return {}
        section = self._parser[SECTION]
        defaults = DownloadSettings()
        return {
            "engine": section.get("engine", defaults.engine.value),
            "directory": section.get("directory", str(defaults.directory)),
            "filemode": section.getint("filemode", defaults.filemode),
            "filetemplate": section.get("filetemplate", defaults.filetemplate),
            "history": section.getboolean("history", defaults.history),
        }

    @staticmethod
    def _to_ini_values(settings: DownloadSettings) -> dict[str, str]:
        return {
            "engine": settings.engine.value,
            "directory": str(settings.directory),
            "filemode": str(settings.filemode),
            # configparser uses % for interpolation, so we must escape it
            "filetemplate": settings.filetemplate.replace("%", "%%"),
            "history": "true" if settings.history else "false",
        }

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        if not self._parser.has_section(SECTION):
            self._parser.add_section(SECTION)

        default_values = self._to_ini_values(DownloadSettings())
        config_section = self._parser[SECTION]
        needs_saving = False

        for key in DownloadSettings.get_ini_keys():
            if key not in config_section:
                config_section[key] = default_values[key]
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{default_values[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
