"""
Output formatting utilities for the CLI.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

import json
import sys
from typing import Any, List

from colorama import init, Fore, Style

from ..manifest import format_size
from ..models import ResolvedEntry

# Initialize colorama for cross-platform color support
init(autoreset=True)


class OutputFormatter:
    """Handles output formatting for the CLI."""

    def __init__(self, use_color: bool = True, json_output: bool = False):
        """
        Initialize output formatter.

        Args:
            use_color: Whether to use ANSI colors
            json_output: Whether to output JSON
        """
        self.use_color = use_color
        self.json_output = json_output

        # Color shortcuts
        self.green = Fore.GREEN if use_color else ''
        self.yellow = Fore.YELLOW if use_color else ''
        self.red = Fore.RED if use_color else ''
        self.cyan = Fore.CYAN if use_color else ''
        self.white = Fore.WHITE if use_color else ''
        self.reset = Style.RESET_ALL if use_color else ''
        self.bright = Style.BRIGHT if use_color else ''

    def success(self, message: str) -> None:
        """Print success message."""
        if not self.json_output:
            print(f"{self.green}✅ {message}{self.reset}")

    def warning(self, message: str) -> None:
        """Print warning message."""
        if not self.json_output:
            print(f"{self.yellow}⚠️  {message}{self.reset}")

    def error(self, message: str) -> None:
        """Print error message. Errors go to stderr even in JSON mode."""
        print(f"{self.red}❌ {message}{self.reset}", file=sys.stderr)

    def info(self, message: str) -> None:
        """Print info message."""
        if not self.json_output:
            print(f"{self.cyan}ℹ️  {message}{self.reset}")

    def header(self, message: str) -> None:
        """Print header message."""
        if not self.json_output:
            print(f"\n{self.cyan}{self.bright}{message}{self.reset}")
            print(f"{self.cyan}{'─' * len(message)}{self.reset}")

    def format_updates_table(self, updates: List[ResolvedEntry]) -> str:
        """
        Format update-available entries as a table.

        Args:
            updates: Entries with an update available

        Returns:
            Formatted table string
        """
        if not updates:
            return "No updates available"

        max_name = max(max(len(u.name) for u in updates), 10)
        max_current = max(max(len(u.installed_version) for u in updates), 15)
        max_new = max(max(len(u.target_version) for u in updates), 15)
        max_source = 6

        lines = []

        header = (f"  {'Package':<{max_name}}  {'Current':<{max_current}}  "
                  f"{'New':<{max_new}}  {'Source':<{max_source}}  Download")
        lines.append(header)
        lines.append(f"  {'─' * max_name}  {'─' * max_current}  {'─' * max_new}  "
                     f"{'─' * max_source}  {'─' * 10}")

        for update in updates:
            source = update.source.value
            size = format_size(update.download_size_selected)
            if self.use_color:
                row = (f"  {self.white}{update.name:<{max_name}}{self.reset}  "
                       f"{update.installed_version:<{max_current}}  "
                       f"{self.green}{update.target_version:<{max_new}}{self.reset}  "
                       f"{self.cyan}{source:<{max_source}}{self.reset}  {size}")
            else:
                row = (f"  {update.name:<{max_name}}  {update.installed_version:<{max_current}}  "
                       f"{update.target_version:<{max_new}}  {source:<{max_source}}  {size}")
            lines.append(row)

            if update.notes:
                lines.append(f"    {self.yellow}{update.notes}{self.reset}")

        return '\n'.join(lines)

    def output_json(self, data: Any) -> None:
        """
        Output data as JSON.

        Args:
            data: Data to output
        """
        print(json.dumps(data, indent=2, default=str))
