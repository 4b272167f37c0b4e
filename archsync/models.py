"""
Data models for archsync.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional
from enum import Enum

from .constants import (
    DEFAULT_AUR_BASE_URL, DEFAULT_AUR_TIMEOUT, DEFAULT_AUR_MAX_ARGS,
    DEFAULT_AUR_MAX_RETRIES, DEFAULT_AUR_MAX_PARALLEL_REQUESTS,
    DEFAULT_AUR_MAX_KIB_PER_SEC, DEFAULT_CONFLICT_POLICY,
    CONFLICT_POLICY_NEWEST, CONFLICT_POLICY_PREFER_REPO, LOCAL_REPOSITORY,
)


class PackageSource(Enum):
    """Upstream source chosen for a package."""
    PACMAN = "PACMAN"
    AUR = "AUR"
    LOCAL = "LOCAL"
    UNKNOWN = "UNKNOWN"


class ConflictPolicy(Enum):
    """How to choose when both the repositories and the AUR know a package."""
    NEWEST = CONFLICT_POLICY_NEWEST
    PREFER_REPO = CONFLICT_POLICY_PREFER_REPO


@dataclass(frozen=True)
class VersionRecord:
    """Version and size metadata reported by one source."""

    version: str
    download_size: Optional[int] = None  # bytes
    installed_size: Optional[int] = None  # bytes

    def __post_init__(self) -> None:
        """Validate version record data."""
        if not self.version:
            raise ValueError("Version cannot be empty")
        for label, size in (("download_size", self.download_size),
                            ("installed_size", self.installed_size)):
            if size is not None and size < 0:
                raise ValueError(f"{label} cannot be negative: {size}")


@dataclass(frozen=True)
class InstalledPackage:
    """A package currently installed on the system."""

    name: str
    version: str
    repository: Optional[str] = None

    @property
    def is_local(self) -> bool:
        """Whether the package was built or side-loaded without an upstream source."""
        return self.repository == LOCAL_REPOSITORY

    def __str__(self) -> str:
        """String representation."""
        return f"{self.name} {self.version}"


@dataclass(frozen=True)
class ResolvedEntry:
    """Per-package verdict combining installed, repository and AUR data."""

    name: str
    installed_version: str
    target_version: str
    source: PackageSource
    update_available: bool
    repo_version: Optional[str] = None
    aur_version: Optional[str] = None
    notes: Optional[str] = None
    download_size_repo: Optional[int] = None
    installed_size_repo: Optional[int] = None
    download_size_aur: Optional[int] = None
    installed_size_aur: Optional[int] = None
    download_size_selected: Optional[int] = None
    installed_size_selected: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the manifest entry layout."""
        return {
            "installed_version": self.installed_version,
            "version_repo": self.repo_version,
            "version_aur": self.aur_version,
            "newer_version": self.target_version,
            "source": self.source.value,
            "update_available": self.update_available,
            "notes": self.notes,
            "download_size_repo": self.download_size_repo,
            "installed_size_repo": self.installed_size_repo,
            "download_size_aur": self.download_size_aur,
            "installed_size_aur": self.installed_size_aur,
            "download_size_selected": self.download_size_selected,
            "installed_size_selected": self.installed_size_selected,
        }

    def __str__(self) -> str:
        """String representation."""
        return f"{self.name} {self.installed_version} -> {self.target_version} ({self.source.value})"


@dataclass
class ManifestMetadata:
    """Run-level counters describing a manifest."""
    generated_at: str
    generated_by: str
    total_packages: int = 0
    repo_candidates: int = 0
    aur_candidates: int = 0
    updates_available: int = 0
    download_size_total: int = 0
    install_size_total: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "generated_at": self.generated_at,
            "generated_by": self.generated_by,
            "total_packages": self.total_packages,
            "repo_candidates": self.repo_candidates,
            "aur_candidates": self.aur_candidates,
            "updates_available": self.updates_available,
            "download_size_total": self.download_size_total,
            "install_size_total": self.install_size_total,
        }


@dataclass
class ManifestDocument:
    """The full manifest: metadata plus one entry per package."""
    metadata: ManifestMetadata
    packages: Dict[str, ResolvedEntry] = field(default_factory=dict)

    @property
    def updates(self) -> List[ResolvedEntry]:
        """Entries with an update available, in name order."""
        return [self.packages[name] for name in sorted(self.packages)
                if self.packages[name].update_available]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "metadata": self.metadata.to_dict(),
            "packages": {name: self.packages[name].to_dict() for name in sorted(self.packages)},
        }


@dataclass
class AurConfig:
    """Configuration for the AUR RPC client."""
    base_url: str = DEFAULT_AUR_BASE_URL
    timeout: int = DEFAULT_AUR_TIMEOUT
    max_args: int = DEFAULT_AUR_MAX_ARGS
    max_retries: int = DEFAULT_AUR_MAX_RETRIES
    max_parallel_requests: int = DEFAULT_AUR_MAX_PARALLEL_REQUESTS
    max_kib_per_sec: int = DEFAULT_AUR_MAX_KIB_PER_SEC
    probe_sizes: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "base_url": self.base_url,
            "timeout": self.timeout,
            "max_args": self.max_args,
            "max_retries": self.max_retries,
            "max_parallel_requests": self.max_parallel_requests,
            "max_kib_per_sec": self.max_kib_per_sec,
            "probe_sizes": self.probe_sizes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AurConfig':
        """Create from dictionary."""
        return cls(
            base_url=data.get("base_url", DEFAULT_AUR_BASE_URL),
            timeout=data.get("timeout", DEFAULT_AUR_TIMEOUT),
            max_args=data.get("max_args", DEFAULT_AUR_MAX_ARGS),
            max_retries=data.get("max_retries", DEFAULT_AUR_MAX_RETRIES),
            max_parallel_requests=data.get("max_parallel_requests", DEFAULT_AUR_MAX_PARALLEL_REQUESTS),
            max_kib_per_sec=data.get("max_kib_per_sec", DEFAULT_AUR_MAX_KIB_PER_SEC),
            probe_sizes=data.get("probe_sizes", True),
        )


@dataclass
class AppConfig:
    """Application configuration."""
    aur: AurConfig = field(default_factory=AurConfig)
    manifest_path: Optional[str] = None
    log_dir: Optional[str] = None
    conflict_policy: str = DEFAULT_CONFLICT_POLICY
    verbose_logging: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "aur": self.aur.to_dict(),
            "manifest_path": self.manifest_path,
            "log_dir": self.log_dir,
            "conflict_policy": self.conflict_policy,
            "verbose_logging": self.verbose_logging,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppConfig':
        """Create from dictionary."""
        return cls(
            aur=AurConfig.from_dict(data.get("aur", {})),
            manifest_path=data.get("manifest_path"),
            log_dir=data.get("log_dir"),
            conflict_policy=data.get("conflict_policy", DEFAULT_CONFLICT_POLICY),
            verbose_logging=data.get("verbose_logging", False),
        )
