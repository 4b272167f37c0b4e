"""
Secure subprocess wrapper to prevent command injection and handle errors properly.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

from __future__ import annotations

import os
import re
import subprocess
import threading
from typing import List, Optional, Dict, Any

from ..exceptions import CommandNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class SecureSubprocess:
    """Secure wrapper for the package-management commands archsync runs."""

    # Commands archsync is allowed to execute
    ALLOWED_COMMANDS: Dict[str, Dict[str, Any]] = {
        'pacman': {
            'description': 'Package manager',
            'search_paths': ['/usr/bin', '/bin', '/usr/local/bin'],
        },
        'vercmp': {
            'description': 'Package version comparison',
            'search_paths': ['/usr/bin', '/bin', '/usr/local/bin'],
        },
    }

    _command_path_cache: Dict[str, str] = {}
    _validation_lock = threading.Lock()

    @classmethod
    def _find_command_path(cls, command: str) -> Optional[str]:
        """
        Find the absolute path of an allowed command.

        Args:
            command: Command name to find

        Returns:
            Absolute path if found, None otherwise
        """
        with cls._validation_lock:
            cached_path = cls._command_path_cache.get(command)
            if cached_path and os.access(cached_path, os.X_OK):
                return cached_path

            path_env = os.environ.get('PATH', '')
            paths = [p.strip() for p in path_env.split(os.pathsep) if p.strip()]
            for std_path in cls.ALLOWED_COMMANDS.get(command, {}).get('search_paths', []):
                if std_path not in paths:
                    paths.append(std_path)

            for path_dir in paths:
                full_path = os.path.join(path_dir, command)
                if os.path.isfile(full_path) and os.access(full_path, os.X_OK):
                    cls._command_path_cache[command] = full_path
                    logger.debug(f"Found command {command} at {full_path}")
                    return full_path

            logger.warning(f"Command {command} not found in system PATH")
            return None

    @classmethod
    def validate_command(cls, cmd: List[str]) -> bool:
        """
        Validate that a command is allowed and resolve it to an absolute path.

        Args:
            cmd: Command as list of arguments; cmd[0] is replaced in place

        Returns:
            True if command is valid

        Raises:
            ValueError: If command is not allowed
            CommandNotFoundError: If the command is not installed
        """
        if not cmd:
            raise ValueError("Empty command")

        cmd_name = os.path.basename(cmd[0])
        if cmd_name not in cls.ALLOWED_COMMANDS:
            raise ValueError(f"Command '{cmd[0]}' not in allowed list")

        secure_path = cls._find_command_path(cmd_name)
        if not secure_path:
            raise CommandNotFoundError(cmd_name)

        cmd[0] = secure_path
        return True

    @staticmethod
    def sanitize_package_name(name: str) -> str:
        """
        Sanitize a package name to prevent injection.

        Args:
            name: Package name to sanitize

        Returns:
            Sanitized package name

        Raises:
            ValueError: If package name is invalid
        """
        if name.startswith('-') or not re.match(r'^[a-zA-Z0-9@\-_+.]+$', name):
            raise ValueError(f"Invalid package name: {name}")

        if len(name) > 255:
            raise ValueError(f"Package name too long: {name}")

        return name

    @classmethod
    def run(
        cls,
        cmd: List[str],
        timeout: Optional[int] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run a command securely with validation.

        Output is always captured and decoded as text. ``shell=True`` is never
        used.

        Args:
            cmd: Command to run
            timeout: Timeout in seconds
            env: Environment variables

        Returns:
            CompletedProcess instance

        Raises:
            CommandNotFoundError: If the command is not installed
            subprocess.TimeoutExpired: If the command exceeds the timeout
        """
        cmd = list(cmd)
        cls.validate_command(cmd)

        logger.debug(f"Running command: {' '.join(cmd[:6])}{' ...' if len(cmd) > 6 else ''}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout,
                env=env,
            )
        except FileNotFoundError:
            raise CommandNotFoundError(os.path.basename(cmd[0]))
        except subprocess.TimeoutExpired:
            logger.error(f"Command timed out after {timeout}s: {os.path.basename(cmd[0])}")
            raise

        if result.returncode != 0:
            logger.debug(f"Command returned non-zero: {result.returncode}")

        return result

    @classmethod
    def run_pacman(cls, args: List[str], timeout: int = 30) -> subprocess.CompletedProcess:
        """
        Run pacman with a fixed locale so its output can be parsed.

        Args:
            args: Pacman arguments; non-flag arguments must be package names
            timeout: Command timeout

        Returns:
            CompletedProcess instance
        """
        cmd = ['pacman']
        names_started = False
        for arg in args:
            if arg.startswith('-') and not names_started:
                cmd.append(arg)
            else:
                # Everything after the first package name is a package name
                names_started = True
                cmd.append(cls.sanitize_package_name(arg))

        env = os.environ.copy()
        env['LC_ALL'] = 'C'
        env['LC_TIME'] = 'C'

        return cls.run(cmd, timeout=timeout, env=env)
