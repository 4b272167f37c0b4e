"""
Package management functionality for Arch Linux systems.

Wraps ``pacman -Qi``, ``pacman -Si`` and ``vercmp``; everything here is
synchronous and runs outside the event loop.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

from __future__ import annotations

import math
import subprocess
from typing import Dict, Iterable, List, Optional

from .constants import (
    LOCAL_REPOSITORY, PACMAN_QUERY_CHUNK_SIZE, PACMAN_QUERY_TIMEOUT, VERCMP_TIMEOUT,
)
from .exceptions import (
    CommandFailedError, CommandNotFoundError, ComparisonError, PackageManagerError,
)
from .models import InstalledPackage, VersionRecord
from .reconcile import Ordering
from .utils.logger import get_logger
from .utils.subprocess_wrapper import SecureSubprocess

logger = get_logger(__name__)

SIZE_UNITS = {
    'B': 1,
    'KiB': 1024,
    'MiB': 1024 ** 2,
    'GiB': 1024 ** 3,
    'TiB': 1024 ** 4,
}


def parse_size(value: str) -> Optional[int]:
    """
    Parse a pacman size field such as ``"1,234.5 KiB"`` into bytes.

    Args:
        value: Size string from pacman output

    Returns:
        Size in bytes rounded to the nearest byte, or None if unparsable
    """
    parts = value.split()
    if not parts:
        return None

    number = parts[0].replace(',', '')
    unit = parts[1] if len(parts) > 1 else 'B'
    try:
        magnitude = float(number)
    except ValueError:
        return None

    # Unknown units are taken as bytes
    size = magnitude * SIZE_UNITS.get(unit, 1)
    if not math.isfinite(size) or size < 0:
        return None
    return int(round(size))


def _split_field(line: str):
    if ':' not in line:
        return None, None
    key, value = line.split(':', 1)
    return key.strip(), value.strip()


def parse_installed_output(output: str) -> List[InstalledPackage]:
    """Parse ``pacman -Qi`` output into installed packages sorted by name."""
    packages = []
    for block in output.split('\n\n'):
        fields: Dict[str, str] = {}
        for line in block.splitlines():
            key, value = _split_field(line)
            if key in ('Name', 'Version', 'Repository'):
                fields[key] = value

        if 'Name' not in fields or 'Version' not in fields:
            continue

        repository = fields.get('Repository')
        if repository == 'None':
            repository = LOCAL_REPOSITORY
        packages.append(InstalledPackage(fields['Name'], fields['Version'], repository))

    packages.sort(key=lambda pkg: pkg.name)
    return packages


def parse_sync_output(output: str) -> Dict[str, VersionRecord]:
    """Parse ``pacman -Si`` output into version records keyed by name."""
    records: Dict[str, VersionRecord] = {}
    name: Optional[str] = None
    version: Optional[str] = None
    download_size: Optional[int] = None
    installed_size: Optional[int] = None

    def flush() -> None:
        if name and version:
            records[name] = VersionRecord(version, download_size, installed_size)

    for line in output.splitlines():
        if not line.strip():
            flush()
            name = version = download_size = installed_size = None
            continue

        key, value = _split_field(line)
        if key == 'Name':
            name, version, download_size, installed_size = value, None, None, None
        elif key == 'Version':
            version = value
        elif key == 'Download Size':
            download_size = parse_size(value)
        elif key == 'Installed Size':
            installed_size = parse_size(value)

    flush()
    return records


class PackageManager:
    """Queries the local pacman database and the sync repositories."""

    def __init__(self, timeout: int = PACMAN_QUERY_TIMEOUT) -> None:
        """Initialize the package manager."""
        self.timeout = timeout
        logger.debug("Initialized PackageManager")

    def _run_pacman(self, args: List[str]) -> str:
        description = f"pacman {' '.join(args[:4])}{' ...' if len(args) > 4 else ''}"
        try:
            result = SecureSubprocess.run_pacman(args, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise PackageManagerError(f"{description} timed out after {self.timeout}s") from e
        except ValueError as e:
            raise PackageManagerError(f"Refusing to run {description}: {e}") from e

        if result.returncode != 0:
            raise CommandFailedError(description, result.returncode, (result.stderr or '').strip())
        return result.stdout

    def enumerate_installed_packages(self) -> List[InstalledPackage]:
        """
        Get every installed package.

        Returns:
            Installed packages sorted by name

        Raises:
            CommandNotFoundError: If pacman is not installed
            PackageManagerError: If pacman fails
        """
        packages = parse_installed_output(self._run_pacman(['-Qi']))
        logger.info(f"Found {len(packages)} installed packages")
        return packages

    def query_repo_versions(self, names: Iterable[str]) -> Dict[str, VersionRecord]:
        """
        Look up sync repository versions and sizes for the given packages.

        Args:
            names: Package names to query

        Returns:
            Mapping of package name to repository record

        Raises:
            CommandNotFoundError: If pacman is not installed
            PackageManagerError: If pacman fails
        """
        names = list(names)
        if not names:
            return {}

        versions: Dict[str, VersionRecord] = {}
        for start in range(0, len(names), PACMAN_QUERY_CHUNK_SIZE):
            chunk = names[start:start + PACMAN_QUERY_CHUNK_SIZE]
            versions.update(parse_sync_output(self._run_pacman(['-Si'] + chunk)))

        logger.info(f"Repository reports {len(versions)} of {len(names)} queried packages")
        return versions


def vercmp(left: str, right: str) -> Ordering:
    """
    Compare two package versions with pacman's ``vercmp``.

    Args:
        left: First version
        right: Second version

    Returns:
        Ordering of ``left`` relative to ``right``

    Raises:
        ComparisonError: If vercmp is missing, fails or prints garbage
    """
    try:
        result = SecureSubprocess.run(['vercmp', left, right], timeout=VERCMP_TIMEOUT)
    except CommandNotFoundError as e:
        raise ComparisonError(str(e), left=left, right=right) from e
    except subprocess.TimeoutExpired as e:
        raise ComparisonError(f"vercmp timed out comparing '{left}' and '{right}'",
                              left=left, right=right) from e

    if result.returncode != 0:
        raise ComparisonError(
            f"vercmp failed comparing '{left}' and '{right}': {(result.stderr or '').strip()}",
            left=left, right=right)

    verdict = result.stdout.strip()
    try:
        return Ordering.of(int(verdict))
    except ValueError as e:
        raise ComparisonError(f"Failed to parse vercmp output '{verdict}'",
                              left=left, right=right) from e
