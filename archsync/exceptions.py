"""
Custom exceptions for archsync.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

from typing import Optional


class ArchSyncError(Exception):
    """Base exception for all archsync errors."""

    exit_code = 50


class NetworkError(ArchSyncError):
    """Raised when a remote request fails or the remote service reports an error."""

    exit_code = 30

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None) -> None:
        """Initialize the error."""
        super().__init__(message)
        self.url = url
        self.status = status


class SerializationError(ArchSyncError):
    """Raised when a response or command output cannot be decoded."""

    exit_code = 31


class ComparisonError(ArchSyncError):
    """Raised when two version strings cannot be ordered."""

    exit_code = 32

    def __init__(self, message: str, left: Optional[str] = None, right: Optional[str] = None) -> None:
        """Initialize the error."""
        super().__init__(message)
        self.left = left
        self.right = right


class ConfigurationError(ArchSyncError):
    """Raised when configuration is invalid."""

    exit_code = 20


class PackageManagerError(ArchSyncError):
    """Raised when package manager operations fail."""

    exit_code = 11


class CommandNotFoundError(PackageManagerError):
    """Raised when a required command is not installed."""

    exit_code = 10

    def __init__(self, command: str) -> None:
        """Initialize the error."""
        super().__init__(f"Required command `{command}` not found in PATH")
        self.command = command


class CommandFailedError(PackageManagerError):
    """Raised when a command exits with a non-zero status."""

    def __init__(self, command: str, returncode: int, stderr: str = "") -> None:
        """Initialize the error."""
        super().__init__(f"Command `{command}` failed with status {returncode}: {stderr}")
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class ManifestError(ArchSyncError):
    """Raised when the manifest cannot be written or read."""

    exit_code = 40
