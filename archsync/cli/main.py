"""
Main entry point for the archsync command-line tool.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .. import __version__
from ..checker import ManifestChecker
from ..config import Config
from ..exceptions import ArchSyncError, ConfigurationError, ManifestError
from ..manifest import format_summary, load_manifest, write_manifest
from ..utils.logger import (
    configure_logging, finalize_log, get_current_log_file, get_logger, sanitize_log_message,
)
from .output import OutputFormatter

logger = get_logger(__name__)


class ArchSyncCLI:
    """Main CLI application class."""

    def __init__(self, config_path: Optional[str] = None,
                 checker: Optional[ManifestChecker] = None):
        """Initialize CLI with configuration."""
        self.config = Config(config_path)
        self._checker = checker
        self.formatter = OutputFormatter()

    @property
    def checker(self) -> ManifestChecker:
        if self._checker is None:
            self._checker = ManifestChecker(self.config)
        return self._checker

    def run(self, args: argparse.Namespace) -> int:
        """
        Run the CLI with given arguments.

        Args:
            args: Parsed command line arguments

        Returns:
            Exit code
        """
        self.formatter = OutputFormatter(
            use_color=not args.no_color,
            json_output=args.json
        )

        if args.init_config:
            return self.cmd_init_config(args)
        if args.show:
            return self.cmd_show(args)
        return self.cmd_sync(args)

    def _log_path(self, args: argparse.Namespace) -> Path:
        if args.log:
            return Path(args.log).expanduser()
        stamp = datetime.now(timezone.utc).strftime('%Y-%m-%d_%H-%M-%S')
        return self.config.get_log_dir() / f"core_{stamp}.log"

    def _manifest_path(self, args: argparse.Namespace) -> Path:
        if args.manifest:
            return Path(args.manifest).expanduser()
        return self.config.get_manifest_path()

    def cmd_sync(self, args: argparse.Namespace) -> int:
        """Build the manifest and write it, or print a summary on dry runs."""
        log_path = self._log_path(args)
        try:
            configure_logging(str(log_path), args.verbose or self.config.is_verbose())
        except OSError as e:
            raise ManifestError(f"Cannot open log file {log_path}: {e}") from e
        logger.info(f"archsync {__version__} starting, logging to {get_current_log_file()}")

        try:
            exit_code = self._sync(args)
        except BaseException:
            self._seal_log(strict=False)
            raise
        self._seal_log(strict=True)
        return exit_code

    def _seal_log(self, strict: bool) -> None:
        """Write the log digest; failures only raise when nothing else is in flight."""
        try:
            finalize_log()
        except OSError as e:
            if strict:
                raise ManifestError(f"Cannot write log digest: {e}") from e
            logger.error(f"Cannot write log digest: {e}")

    def _sync(self, args: argparse.Namespace) -> int:
        document = self.checker.run(
            requested=args.packages,
            use_repo=not args.no_repo,
            use_aur=not args.no_aur,
        )

        if document is None:
            self.formatter.warning("No packages selected for manifest generation")
            return 0

        if args.json:
            self.formatter.output_json(document.to_dict())
        else:
            self.formatter.header("Available updates")
            print(self.formatter.format_updates_table(document.updates))
            print()

        if args.dry_run:
            self.formatter.info(f"Manifest dry-run: {format_summary(document)}")
        else:
            path = write_manifest(document, self._manifest_path(args))
            self.formatter.success(f"Manifest written to {path}")
            self.formatter.info(format_summary(document))

        logger.info(f"packages={document.metadata.total_packages} "
                    f"updates={document.metadata.updates_available}")
        return 0

    def cmd_show(self, args: argparse.Namespace) -> int:
        """Print the summary of the last written manifest."""
        data = load_manifest(self._manifest_path(args))

        if args.json:
            self.formatter.output_json(data)
            return 0

        metadata = data['metadata']
        self.formatter.header(f"Manifest generated {metadata.get('generated_at', 'unknown')}")
        print(f"  {format_summary(metadata)}")

        updates = sorted(name for name, entry in data['packages'].items()
                         if isinstance(entry, dict) and entry.get('update_available'))
        for name in updates:
            entry = data['packages'][name]
            print(f"  {name} {entry.get('installed_version')} -> "
                  f"{entry.get('newer_version')} ({entry.get('source')})")
        return 0

    def cmd_init_config(self, args: argparse.Namespace) -> int:
        """Create the configuration file with defaults."""
        if self.config.init_config():
            self.formatter.success(f"Created configuration file: {self.config.config_file}")
        else:
            self.formatter.info(f"Configuration file already exists: {self.config.config_file}")
        return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog='archsync',
        description='Build an update manifest for installed packages from the '
                    'sync repositories and the AUR',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--config',
        metavar='PATH',
        help='Alternative config file path'
    )
    parser.add_argument(
        '--manifest',
        metavar='PATH',
        help='Manifest output path'
    )
    parser.add_argument(
        '--log',
        metavar='PATH',
        help='Log file path (default: core_<timestamp>.log in the log directory)'
    )
    parser.add_argument(
        '--package',
        dest='packages',
        metavar='PKG',
        action='append',
        default=[],
        help='Only consider this installed package (repeatable)'
    )
    parser.add_argument(
        '--no-aur',
        action='store_true',
        help='Do not query the AUR'
    )
    parser.add_argument(
        '--no-repo',
        action='store_true',
        help='Do not query the sync repositories'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Print a summary instead of writing the manifest'
    )
    parser.add_argument(
        '--json',
        action='store_true',
        help='Output in JSON format'
    )
    parser.add_argument(
        '--no-color',
        action='store_true',
        help='Disable ANSI colors'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Show info and debug logging on stderr'
    )
    parser.add_argument(
        '--init-config',
        action='store_true',
        help='Create the configuration file with defaults and exit'
    )
    parser.add_argument(
        '--show',
        action='store_true',
        help='Show the summary of the last written manifest and exit'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    formatter = OutputFormatter(use_color=not args.no_color, json_output=args.json)

    try:
        if args.no_aur and args.no_repo:
            raise ConfigurationError("Cannot disable both repository and AUR resolution")
        cli = ArchSyncCLI(args.config)
        exit_code = cli.run(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)
    except ArchSyncError as e:
        logger.debug(sanitize_log_message(f"{type(e).__name__}: {e}"))
        formatter.error(str(e))
        sys.exit(e.exit_code)
    except Exception as e:
        print(f"Fatal error: {str(e)}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
