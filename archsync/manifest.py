"""
Manifest assembly and persistence.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from .constants import MANIFEST_GENERATOR, SIZE_TOTAL_LIMIT
from .exceptions import ManifestError
from .models import (
    ConflictPolicy, InstalledPackage, ManifestDocument, ManifestMetadata, VersionRecord,
)
from .reconcile import Comparator, resolve
from .utils.logger import get_logger

logger = get_logger(__name__)


def saturating_add(total: int, value: Optional[int]) -> int:
    """Add ``value`` to ``total`` without exceeding the unsigned 64-bit maximum."""
    if value is None:
        return total
    return min(total + value, SIZE_TOTAL_LIMIT)


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as RFC 3339 UTC with second precision."""
    return moment.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def format_size(size_bytes: Optional[int]) -> str:
    """Human readable size using binary units."""
    if size_bytes is None:
        return "unknown"
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 ** 2:
        return f"{size_bytes / 1024:.1f} KiB"
    elif size_bytes < 1024 ** 3:
        return f"{size_bytes / 1024 ** 2:.1f} MiB"
    return f"{size_bytes / 1024 ** 3:.2f} GiB"


def build_manifest(packages: Sequence[InstalledPackage],
                   repo_versions: Mapping[str, VersionRecord],
                   aur_versions: Mapping[str, VersionRecord],
                   compare: Comparator,
                   policy: ConflictPolicy = ConflictPolicy.NEWEST,
                   generated_at: Optional[datetime] = None) -> ManifestDocument:
    """
    Resolve every package and collect the run totals.

    Byte totals only count update-available entries and saturate at
    2**64 - 1.

    Args:
        packages: Installed packages to include
        repo_versions: Repository records by name
        aur_versions: AUR records by name
        compare: Version comparator
        policy: Conflict policy for packages known to both sources
        generated_at: Timestamp to record, defaults to now

    Returns:
        The assembled manifest

    Raises:
        ComparisonError: If a version comparison fails
    """
    metadata = ManifestMetadata(
        generated_at=format_timestamp(generated_at or datetime.now(timezone.utc)),
        generated_by=MANIFEST_GENERATOR,
        total_packages=len(packages),
    )
    document = ManifestDocument(metadata=metadata)

    for package in sorted(packages, key=lambda pkg: pkg.name):
        repo = repo_versions.get(package.name)
        aur = aur_versions.get(package.name)
        if repo is not None:
            metadata.repo_candidates += 1
        if aur is not None:
            metadata.aur_candidates += 1

        entry = resolve(package, repo, aur, compare, policy)
        if entry.update_available:
            metadata.updates_available += 1
            metadata.download_size_total = saturating_add(
                metadata.download_size_total, entry.download_size_selected)
            metadata.install_size_total = saturating_add(
                metadata.install_size_total, entry.installed_size_selected)

        logger.debug(f"{package.name} -> {entry.target_version} via {entry.source.value}")
        document.packages[package.name] = entry

    return document


def write_manifest(document: ManifestDocument, path: Union[str, Path]) -> Path:
    """
    Write the manifest as JSON, replacing any previous file atomically.

    Args:
        document: Manifest to write
        path: Destination file

    Returns:
        The destination path

    Raises:
        ManifestError: If the file cannot be written
    """
    path = Path(path).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ManifestError(f"Failed to create manifest directory {path.parent}: {e}") from e

    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=path.parent,
                                         prefix=f".{path.name}.", suffix='.tmp',
                                         delete=False) as handle:
            tmp_name = handle.name
            json.dump(document.to_dict(), handle, indent=2)
            handle.write('\n')
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise ManifestError(f"Failed to write manifest {path}: {e}") from e

    logger.info(f"Manifest written to {path}")
    return path


def load_manifest(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a previously written manifest.

    Raises:
        ManifestError: If the file is missing, unreadable or not a manifest
    """
    path = Path(path).expanduser()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise ManifestError(f"Failed to read manifest {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ManifestError(f"Manifest {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get('metadata'), dict) \
            or not isinstance(data.get('packages'), dict):
        raise ManifestError(f"Manifest {path} is missing metadata or packages")
    return data


def format_summary(metadata: Union[ManifestDocument, ManifestMetadata, Mapping[str, Any]]) -> str:
    """One-line summary of a manifest's totals."""
    if isinstance(metadata, ManifestDocument):
        metadata = metadata.metadata
    if isinstance(metadata, ManifestMetadata):
        metadata = metadata.to_dict()

    return (
        f"{metadata.get('total_packages', 0)} packages, "
        f"{metadata.get('repo_candidates', 0)} repository candidates, "
        f"{metadata.get('aur_candidates', 0)} AUR candidates, "
        f"{metadata.get('updates_available', 0)} updates available "
        f"(download {format_size(metadata.get('download_size_total', 0))}, "
        f"installed {format_size(metadata.get('install_size_total', 0))})"
    )
