"""
Configuration management for archsync.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import (
    CONFIG_DIR_PERMISSIONS, CONFIG_FILE_PERMISSIONS, DEFAULT_AUR_BASE_URL,
    get_default_config_path, get_default_log_dir, get_default_manifest_path,
)
from .exceptions import ConfigurationError
from .models import AppConfig, AurConfig, ConflictPolicy
from .utils.logger import get_logger
from .utils.validators import (
    sanitize_config_json, validate_config_json, validate_config_path, validate_rpc_url,
)

logger = get_logger(__name__)

MAX_CONFIG_FILE_SIZE = 1024 * 1024


class Config:
    """Loads, clamps and saves the archsync configuration file."""

    def __init__(self, config_file: Optional[str] = None) -> None:
        """
        Initialize configuration.

        Args:
            config_file: Path to configuration file

        Raises:
            ConfigurationError: If an explicit path is unsafe
        """
        if config_file:
            try:
                validate_config_path(config_file)
            except ValueError as e:
                raise ConfigurationError(f"Invalid config file path: {e}") from e
            self.config_file = str(Path(config_file).expanduser())
        else:
            self.config_file = str(get_default_config_path())

        self._app_config = self._load_config()

    @property
    def app_config(self) -> AppConfig:
        """The loaded configuration."""
        return self._app_config

    def _load_config(self) -> AppConfig:
        """
        Load configuration from file, falling back to defaults.

        Returns:
            AppConfig instance
        """
        if not os.path.exists(self.config_file):
            logger.debug(f"No configuration file at {self.config_file}, using defaults")
            return AppConfig()

        try:
            file_size = os.path.getsize(self.config_file)
            if file_size > MAX_CONFIG_FILE_SIZE:
                raise ValueError(f"Config file too large: {file_size} bytes")

            with open(self.config_file, "r", encoding="utf-8") as f:
                data = json.load(f)

            validate_config_json(data)
            app_config = AppConfig.from_dict(sanitize_config_json(data))
            logger.info(f"Loaded configuration from {self.config_file}")
            return app_config

        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in config file {self.config_file}: {e}")
        except PermissionError as e:
            logger.error(f"Permission denied reading config file {self.config_file}: {e}")
        except OSError as e:
            logger.error(f"Error reading config file {self.config_file}: {e}")
        except ValueError as e:
            logger.error(f"Invalid configuration structure: {e}")

        logger.warning("Using default configuration")
        return AppConfig()

    def get_aur_config(self) -> AurConfig:
        """Get the AUR client settings with out-of-range values clamped."""
        aur = self._app_config.aur

        base_url = aur.base_url
        if not validate_rpc_url(base_url):
            logger.warning(f"Invalid AUR base URL {base_url}, using default {DEFAULT_AUR_BASE_URL}")
            base_url = DEFAULT_AUR_BASE_URL

        return AurConfig(
            base_url=base_url,
            timeout=self._at_least("aur.timeout", aur.timeout, 1),
            max_args=self._at_least("aur.max_args", aur.max_args, 1),
            max_retries=self._at_least("aur.max_retries", aur.max_retries, 1),
            max_parallel_requests=self._at_least(
                "aur.max_parallel_requests", aur.max_parallel_requests, 1),
            max_kib_per_sec=self._at_least("aur.max_kib_per_sec", aur.max_kib_per_sec, 0),
            probe_sizes=bool(aur.probe_sizes),
        )

    @staticmethod
    def _at_least(key: str, value: int, floor: int) -> int:
        if value < floor:
            logger.warning(f"{key} {value} is below {floor}, using {floor}")
            return floor
        return value

    def get_manifest_path(self) -> Path:
        """Get the manifest output path."""
        if self._app_config.manifest_path:
            return Path(self._app_config.manifest_path).expanduser()
        return get_default_manifest_path()

    def get_log_dir(self) -> Path:
        """Get the directory for run logs."""
        if self._app_config.log_dir:
            return Path(self._app_config.log_dir).expanduser()
        return get_default_log_dir()

    def get_conflict_policy(self) -> ConflictPolicy:
        """Get the conflict policy, falling back to ``newest`` for unknown values."""
        value = self._app_config.conflict_policy
        try:
            return ConflictPolicy(value)
        except ValueError:
            logger.warning(f"Unknown conflict policy {value!r}, using {ConflictPolicy.NEWEST.value}")
            return ConflictPolicy.NEWEST

    def is_verbose(self) -> bool:
        """Whether verbose logging is enabled in the file."""
        return bool(self._app_config.verbose_logging)

    def to_dict(self) -> Dict[str, Any]:
        """Get all settings as a dictionary."""
        return self._app_config.to_dict()

    def save_config(self) -> None:
        """
        Save current configuration to file.

        Raises:
            ConfigurationError: If saving fails
        """
        try:
            config_dir = Path(self.config_file).parent
            config_dir.mkdir(parents=True, exist_ok=True)

            try:
                os.chmod(config_dir, CONFIG_DIR_PERMISSIONS)
            except OSError as e:
                logger.warning(f"Failed to set permissions on config directory: {e}")

            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

            try:
                os.chmod(self.config_file, CONFIG_FILE_PERMISSIONS)
            except OSError as e:
                logger.warning(f"Failed to set permissions on config file: {e}")

            logger.info(f"Saved configuration to {self.config_file}")

        except PermissionError as e:
            raise ConfigurationError(f"Permission denied saving config: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to save config: {e}") from e

    def init_config(self) -> bool:
        """
        Create the configuration file with defaults if it does not exist.

        Returns:
            True if a file was created
        """
        if os.path.exists(self.config_file):
            logger.info(f"Configuration file already exists: {self.config_file}")
            return False

        self.save_config()
        logger.info(f"Created configuration file: {self.config_file}")
        return True
