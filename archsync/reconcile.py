"""
Reconciliation of installed versions against repository and AUR candidates.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, Optional, Tuple, Union

from .exceptions import ComparisonError
from .models import (
    ConflictPolicy, InstalledPackage, PackageSource, ResolvedEntry, VersionRecord,
)

AUR_AHEAD_NOTE = "AUR ahead of repository, but repository chosen per policy"


class Ordering(IntEnum):
    """Result of comparing two version strings."""
    LESS = -1
    EQUAL = 0
    GREATER = 1

    @classmethod
    def of(cls, value: Union['Ordering', int]) -> 'Ordering':
        """Map a vercmp-style integer (only its sign matters) to an Ordering."""
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Comparator returned {type(value).__name__}, expected int")
        if value < 0:
            return cls.LESS
        if value > 0:
            return cls.GREATER
        return cls.EQUAL


Comparator = Callable[[str, str], Union[Ordering, int]]


@dataclass(frozen=True)
class _Choice:
    source: PackageSource
    target_version: str
    update_available: bool
    notes: Optional[str] = None


def _compare(compare: Comparator, left: str, right: str, package: str) -> Ordering:
    try:
        return Ordering.of(compare(left, right))
    except ComparisonError:
        raise
    except (TypeError, ValueError) as e:
        raise ComparisonError(
            f"Cannot compare versions '{left}' and '{right}' for {package}: {e}",
            left=left, right=right,
        ) from e


def _newer_than_installed(installed: InstalledPackage, candidate: VersionRecord,
                          compare: Comparator) -> bool:
    return _compare(compare, installed.version, candidate.version, installed.name) is Ordering.LESS


def _choose_repo(installed, repo, aur, compare, policy) -> _Choice:
    return _Choice(PackageSource.PACMAN, repo.version,
                   _newer_than_installed(installed, repo, compare))


def _choose_aur(installed, repo, aur, compare, policy) -> _Choice:
    return _Choice(PackageSource.AUR, aur.version,
                   _newer_than_installed(installed, aur, compare))


def _choose_contested(installed, repo, aur, compare, policy) -> _Choice:
    repo_vs_aur = _compare(compare, repo.version, aur.version, installed.name)

    if repo_vs_aur is not Ordering.LESS:
        # Ties go to the repositories
        return _choose_repo(installed, repo, aur, compare, policy)

    if policy is ConflictPolicy.PREFER_REPO:
        choice = _choose_repo(installed, repo, aur, compare, policy)
        return _Choice(choice.source, choice.target_version, choice.update_available, AUR_AHEAD_NOTE)

    return _choose_aur(installed, repo, aur, compare, policy)


def _choose_fallback(installed, repo, aur, compare, policy) -> _Choice:
    source = PackageSource.LOCAL if installed.is_local else PackageSource.UNKNOWN
    return _Choice(source, installed.version, False)


# Keyed on (repository record present, AUR record present)
DECISION_TABLE: Dict[Tuple[bool, bool], Callable[..., _Choice]] = {
    (True, False): _choose_repo,
    (False, True): _choose_aur,
    (True, True): _choose_contested,
    (False, False): _choose_fallback,
}


def resolve(installed: InstalledPackage,
            repo: Optional[VersionRecord],
            aur: Optional[VersionRecord],
            compare: Comparator,
            policy: ConflictPolicy = ConflictPolicy.NEWEST) -> ResolvedEntry:
    """
    Decide the upstream source, target version and update flag for a package.

    The update flag compares the installed version against the chosen source
    only. Per-source size fields are copied from whichever records exist; the
    selected sizes mirror the chosen source and stay empty for LOCAL and
    UNKNOWN packages.

    Args:
        installed: The installed package
        repo: Record from the sync repositories, if any
        aur: Record from the AUR, if any
        compare: Version comparator (vercmp semantics)
        policy: Rule applied when both sources have a record

    Returns:
        ResolvedEntry for the package

    Raises:
        ComparisonError: If the comparator cannot order two versions
    """
    decide = DECISION_TABLE[(repo is not None, aur is not None)]
    choice = decide(installed, repo, aur, compare, policy)

    download_repo = repo.download_size if repo else None
    installed_repo = repo.installed_size if repo else None
    download_aur = aur.download_size if aur else None
    installed_aur = aur.installed_size if aur else None

    if choice.source is PackageSource.PACMAN:
        selected = (download_repo, installed_repo)
    elif choice.source is PackageSource.AUR:
        selected = (download_aur, installed_aur)
    else:
        selected = (None, None)

    return ResolvedEntry(
        name=installed.name,
        installed_version=installed.version,
        target_version=choice.target_version,
        source=choice.source,
        update_available=choice.update_available,
        repo_version=repo.version if repo else None,
        aur_version=aur.version if aur else None,
        notes=choice.notes,
        download_size_repo=download_repo,
        installed_size_repo=installed_repo,
        download_size_aur=download_aur,
        installed_size_aur=installed_aur,
        download_size_selected=selected[0],
        installed_size_selected=selected[1],
    )
