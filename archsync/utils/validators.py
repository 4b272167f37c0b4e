"""
Input validation utilities.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

import re
from pathlib import Path
from typing import Any, Dict, Tuple, Union
from urllib.parse import urlparse

from ..constants import PACKAGE_NAME_PATTERN
from ..utils.logger import get_logger

logger = get_logger(__name__)

MAX_PACKAGE_NAME_LENGTH = 255
MAX_URL_LENGTH = 2048

# Allowed configuration keys and their types
CONFIG_SCHEMA: Dict[str, Union[type, Tuple[type, ...]]] = {
    'aur': dict,
    'manifest_path': (str, type(None)),
    'log_dir': (str, type(None)),
    'conflict_policy': str,
    'verbose_logging': bool,
}

AUR_CONFIG_SCHEMA: Dict[str, Union[type, Tuple[type, ...]]] = {
    'base_url': str,
    'timeout': int,
    'max_args': int,
    'max_retries': int,
    'max_parallel_requests': int,
    'max_kib_per_sec': int,
    'probe_sizes': bool,
}


def validate_package_name(name: str) -> bool:
    """
    Validate a package name before it is passed to pacman.

    Args:
        name: Package name to validate

    Returns:
        True if package name is valid and safe
    """
    if not name or not isinstance(name, str):
        return False

    if len(name) > MAX_PACKAGE_NAME_LENGTH:
        logger.warning(f"Package name too long: {len(name)} chars")
        return False

    if '\x00' in name:
        logger.warning("Package name contains null bytes")
        return False

    if not re.match(PACKAGE_NAME_PATTERN, name):
        logger.warning(f"Invalid package name format: {name}")
        return False

    if '..' in name:
        logger.warning(f"Suspicious character sequence in package name: {name}")
        return False

    return True


def validate_rpc_url(url: str) -> bool:
    """
    Validate the AUR RPC endpoint URL.

    Args:
        url: URL to validate

    Returns:
        True if the URL is an absolute http(s) URL with a host
    """
    if not url or len(url) > MAX_URL_LENGTH:
        return False

    try:
        parsed = urlparse(url)
    except ValueError:
        return False

    if parsed.scheme not in ('http', 'https'):
        return False
    if not parsed.netloc:
        return False
    if parsed.query or parsed.fragment:
        return False
    return True


def validate_config_path(path: str) -> bool:
    """
    Validate a configuration file path.

    Args:
        path: Path to validate

    Returns:
        True if path is valid

    Raises:
        ValueError: If path is unsafe
    """
    if not path:
        raise ValueError("Empty path not allowed")

    if '..' in Path(path).parts:
        raise ValueError(f"Path traversal detected: {path}")

    resolved_path = Path(path).expanduser().resolve()
    if resolved_path.suffix.lower() != '.json':
        raise ValueError(f"Invalid config file extension: {resolved_path.suffix}")

    if resolved_path.exists() and not resolved_path.is_file():
        raise ValueError(f"Path is not a regular file: {path}")

    return True


def _check_type(key: str, value: Any, expected_type: Union[type, Tuple[type, ...]]) -> None:
    # bool is an int subclass; integer settings must not accept true/false
    if expected_type is int and isinstance(value, bool):
        raise ValueError(f"Invalid type for '{key}': expected int, got bool")
    if not isinstance(value, expected_type):
        expected_name = getattr(expected_type, '__name__', str(expected_type))
        raise ValueError(
            f"Invalid type for '{key}': expected {expected_name}, got {type(value).__name__}")


def validate_config_json(data: Dict[str, Any]) -> bool:
    """
    Validate configuration JSON structure.

    Value ranges are not checked here; out-of-range numbers are clamped when
    the configuration is read.

    Args:
        data: Parsed JSON data to validate

    Returns:
        True if data is valid

    Raises:
        ValueError: If data structure is invalid
    """
    if not isinstance(data, dict):
        raise ValueError("Configuration must be a JSON object")

    for key in data.keys():
        if key not in CONFIG_SCHEMA:
            logger.warning(f"Unknown configuration key ignored: {key}")

    for key, expected_type in CONFIG_SCHEMA.items():
        if key in data:
            _check_type(key, data[key], expected_type)

    aur = data.get('aur', {})
    for key in aur.keys():
        if key not in AUR_CONFIG_SCHEMA:
            logger.warning(f"Unknown configuration key ignored: aur.{key}")

    for key, expected_type in AUR_CONFIG_SCHEMA.items():
        if key in aur:
            _check_type(f"aur.{key}", aur[key], expected_type)

    if 'base_url' in aur and not validate_rpc_url(aur['base_url']):
        raise ValueError(f"Invalid AUR base URL: {aur['base_url']}")

    logger.debug("Configuration JSON validation passed")
    return True


def sanitize_config_json(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep only known configuration keys.

    Args:
        data: Validated configuration data

    Returns:
        Sanitized configuration data
    """
    if not isinstance(data, dict):
        raise ValueError("Configuration must be a JSON object")

    sanitized: Dict[str, Any] = {key: data[key] for key in CONFIG_SCHEMA if key in data}
    if 'aur' in sanitized:
        sanitized['aur'] = {key: sanitized['aur'][key]
                            for key in AUR_CONFIG_SCHEMA if key in sanitized['aur']}
    return sanitized
