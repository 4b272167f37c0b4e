"""
Run orchestration: installed inventory, source queries, reconciliation.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

import asyncio
from typing import Callable, Dict, Iterable, List, Optional

from .aur_client import AurClient
from .config import Config
from .exceptions import ConfigurationError
from .manifest import build_manifest, format_summary
from .models import AurConfig, InstalledPackage, ManifestDocument, VersionRecord
from .package_manager import PackageManager, vercmp
from .reconcile import Comparator
from .utils.logger import get_logger
from .utils.validators import validate_package_name

logger = get_logger(__name__)

AurClientFactory = Callable[[AurConfig], AurClient]


class ManifestChecker:
    """Builds a manifest of available updates for installed packages."""

    def __init__(self, config: Config,
                 package_manager: Optional[PackageManager] = None,
                 aur_client_factory: Optional[AurClientFactory] = None,
                 compare: Optional[Comparator] = None) -> None:
        """
        Initialize the checker.

        Args:
            config: Configuration instance
            package_manager: pacman collaborator, created when omitted
            aur_client_factory: Builds the AUR client from its settings
            compare: Version comparator, ``vercmp`` when omitted
        """
        self.config = config
        self.package_manager = package_manager or PackageManager()
        self.aur_client_factory = aur_client_factory or AurClient
        self.compare = compare or vercmp
        logger.debug("Initialized ManifestChecker")

    def run(self, requested: Iterable[str] = (), use_repo: bool = True,
            use_aur: bool = True) -> Optional[ManifestDocument]:
        """
        Query both sources and assemble the manifest.

        Args:
            requested: Restrict the run to these package names
            use_repo: Query the sync repositories
            use_aur: Query the AUR

        Returns:
            The manifest, or None when no installed package was selected

        Raises:
            ConfigurationError: If both sources are disabled
            ArchSyncError: If any stage fails
        """
        if not use_repo and not use_aur:
            raise ConfigurationError("At least one of the repositories or the AUR must be queried")

        logger.info("Starting manifest run...")
        installed = self.package_manager.enumerate_installed_packages()
        selected = self._select(installed, list(requested))
        if not selected:
            logger.warning("No installed packages selected, nothing to do")
            return None

        repo_versions: Dict[str, VersionRecord] = {}
        if use_repo:
            # pacman -Qi prints no Repository field, so packages parsed from it
            # carry none and everything falls through to the AUR query below
            repo_names = [pkg.name for pkg in selected if pkg.repository and not pkg.is_local]
            logger.info(f"Querying repositories for {len(repo_names)} packages")
            repo_versions = self.package_manager.query_repo_versions(repo_names)

        aur_versions: Dict[str, VersionRecord] = {}
        if use_aur:
            aur_names = [pkg.name for pkg in selected if pkg.name not in repo_versions]
            logger.info(f"Querying AUR for {len(aur_names)} packages")
            aur_versions = asyncio.run(self._fetch_aur(aur_names))

        document = build_manifest(selected, repo_versions, aur_versions, self.compare,
                                  self.config.get_conflict_policy())
        logger.info(f"Manifest run complete: {format_summary(document)}")
        return document

    async def _fetch_aur(self, names: List[str]) -> Dict[str, VersionRecord]:
        if not names:
            return {}
        async with self.aur_client_factory(self.config.get_aur_config()) as client:
            return await client.fetch_versions(names)

    @staticmethod
    def _select(installed: List[InstalledPackage], requested: List[str]) -> List[InstalledPackage]:
        if not requested:
            return installed

        wanted = set()
        for name in requested:
            if validate_package_name(name):
                wanted.add(name)
            else:
                logger.warning(f"Ignoring invalid package name: {name}")

        selected = [pkg for pkg in installed if pkg.name in wanted]
        missing = wanted - {pkg.name for pkg in selected}
        for name in sorted(missing):
            logger.warning(f"Requested package is not installed: {name}")
        return selected
