"""
Manages loading, validation, migration and token persistence of the INI
configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from gplaymusic_provider.exceptions import ConfigurationError
from gplaymusic_provider.models.config import ProviderConfig

log = logging.getLogger(__name__)


class ConfigManager:
    """Handles all operations related to the provider's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> ProviderConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated ProviderConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        self._read()

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        config_from_file = self._get_config_as_dict()
        if cli_options:
            config_from_file.update(cli_options)

        try:
            return ProviderConfig(**config_from_file)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save. Missing keys get defaults.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}

        defaults = ProviderConfig.model_construct()
        for key in sorted(ProviderConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if value is not None:
                config["DEFAULT"][key] = str(value)

        self._write(config)
        self._parser = config

    def load_token(self) -> Optional[str]:
        """Returns the stored auth token, or None if there is none."""
        if not self.config_file_path.is_file():
            return None
        self._read()
        return self._parser["DEFAULT"].get("token", "").strip() or None

    def save_token(self, token: str) -> None:
        """Persists an auth token so the next start can reuse it."""
        self._set_value("token", token)
        log.debug("Stored new auth token in configuration.")

    def clear_token(self) -> None:
        """Forgets the stored auth token."""
        self._set_value("token", "")
        log.debug("Cleared stored auth token.")

    def _set_value(self, key: str, value: str) -> None:
        if self.config_file_path.is_file():
            self._read()
        self._parser["DEFAULT"][key] = value
        self._write(self._parser)

    def _read(self) -> None:
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'gplaymusic-provider init' first."
            )
        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

    def _write(self, config: configparser.ConfigParser) -> None:
        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = ProviderConfig.model_construct()
        try:
            return {
                "username": section.get("username", ""),
                "password": section.get("password", ""),
                "android_id": section.get("android_id", ""),
                "token": section.get("token", ""),
                "song_dir": section.get("song_dir", defaults.song_dir),
                "stream_quality": section.get("stream_quality", defaults.stream_quality),
                "search_limit": section.getint("search_limit", defaults.search_limit),
                "cache_time": section.getint("cache_time", defaults.cache_time),
                "cache_initial_capacity": section.getint(
                    "cache_initial_capacity", defaults.cache_initial_capacity
                ),
                "cache_maximum_size": section.getint(
                    "cache_maximum_size", defaults.cache_maximum_size
                ),
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = ProviderConfig.model_construct()
        config_section = self._parser["DEFAULT"]
        needs_saving = False

        for key in sorted(ProviderConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = str(getattr(defaults, key))
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
