"""
Application constants for archsync.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

from pathlib import Path

# Application info
APP_NAME = "archsync"
APP_VERSION = "0.13.0"
APP_USER_AGENT = f"{APP_NAME}/{APP_VERSION} (linux)"
MANIFEST_GENERATOR = "archsync_core"

# File permissions (octal)
CONFIG_DIR_PERMISSIONS = 0o700  # rwx------
CONFIG_FILE_PERMISSIONS = 0o600  # rw-------

# AUR RPC defaults
DEFAULT_AUR_BASE_URL = "https://aur.archlinux.org/rpc"
AUR_RPC_VERSION = 5
DEFAULT_AUR_TIMEOUT = 30  # seconds
DEFAULT_AUR_MAX_ARGS = 100
DEFAULT_AUR_MAX_RETRIES = 3
DEFAULT_AUR_MAX_PARALLEL_REQUESTS = 4
DEFAULT_AUR_MAX_KIB_PER_SEC = 0  # 0 disables throttling

# Retry backoff (milliseconds)
RETRY_BASE_DELAY_MS = 200
RETRY_MAX_EXPONENT = 8

# pacman -Si is invoked with at most this many names
PACMAN_QUERY_CHUNK_SIZE = 64

# Command timeouts (seconds)
PACMAN_QUERY_TIMEOUT = 60
VERCMP_TIMEOUT = 5

# Manifest byte totals saturate at the unsigned 64-bit maximum
SIZE_TOTAL_LIMIT = 2 ** 64 - 1

# Package name validation
PACKAGE_NAME_PATTERN = r'^[a-zA-Z0-9@_+][a-zA-Z0-9@._+-]*$'

# Source repository value pacman reports for foreign packages
LOCAL_REPOSITORY = "local"

# Conflict policies
CONFLICT_POLICY_NEWEST = "newest"
CONFLICT_POLICY_PREFER_REPO = "prefer-repo"
DEFAULT_CONFLICT_POLICY = CONFLICT_POLICY_NEWEST


# Paths
def get_config_dir() -> Path:
    """Get the configuration directory path."""
    return Path.home() / ".config" / "archsync"


def get_cache_dir() -> Path:
    """Get the cache directory path."""
    return Path.home() / ".cache" / "archsync"


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    return get_config_dir() / "config.json"


def get_default_manifest_path() -> Path:
    """Get the default manifest file path."""
    return get_cache_dir() / "manifest.json"


def get_default_log_dir() -> Path:
    """Get the default log directory path."""
    return get_cache_dir() / "logs"
