"""
Logging configuration for archsync.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

from __future__ import annotations

import copy
import hashlib
import logging
import os
import re
import sys
import threading
from pathlib import Path
from typing import Optional, Dict


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for terminal output."""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'      # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        log_color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset_color = self.COLORS['RESET']

        # Other handlers share the record
        record = copy.copy(record)
        record.levelname = f"{log_color}{record.levelname}{reset_color}"

        return super().format(record)


FILE_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
CONSOLE_LOG_FORMAT = '%(levelname)s - %(name)s - %(message)s'

# Global logging state, guarded by _global_state_lock
_console_level = logging.WARNING
_log_file_path: Optional[str] = None
_file_handler: Optional[logging.FileHandler] = None
_logger_instances: Dict[str, logging.Logger] = {}
_global_state_lock = threading.RLock()


def _build_console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(_console_level)
    handler.setFormatter(ColoredFormatter(CONSOLE_LOG_FORMAT))
    return handler


def get_logger(name: str) -> logging.Logger:
    """
    Get or create a logger instance with thread safety.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    with _global_state_lock:
        if name in _logger_instances:
            return _logger_instances[name]

        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        logger.handlers.clear()
        logger.addHandler(_build_console_handler())
        if _file_handler is not None:
            logger.addHandler(_file_handler)

        # Prevent propagation to avoid duplicate messages
        logger.propagate = False

        _logger_instances[name] = logger
        return logger


def configure_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """
    Configure console verbosity and optional file logging for all loggers.

    Warnings and errors always reach stderr; info and debug messages only
    when verbose. The log file, when given, receives every level.

    Args:
        log_file: Optional log file path
        verbose: Enable info/debug output on stderr
    """
    global _console_level, _log_file_path, _file_handler
    with _global_state_lock:
        new_handler: Optional[logging.FileHandler] = None
        if log_file:
            log_dir = Path(log_file).parent
            log_dir.mkdir(parents=True, exist_ok=True)
            try:
                os.chmod(log_dir, 0o700)
            except OSError:
                pass

            new_handler = logging.FileHandler(log_file, encoding='utf-8')
            new_handler.setLevel(logging.DEBUG)
            new_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))

        _console_level = logging.DEBUG if verbose else logging.WARNING
        old_handler = _file_handler
        _file_handler = new_handler
        _log_file_path = str(log_file) if new_handler is not None else None

        for logger in _logger_instances.values():
            for handler in list(logger.handlers):
                if handler is old_handler:
                    logger.removeHandler(handler)
                elif isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                    handler.setLevel(_console_level)
            if _file_handler is not None:
                logger.addHandler(_file_handler)

        if old_handler is not None:
            old_handler.close()


def get_current_log_file() -> Optional[str]:
    """Get the current log file path if file logging is active."""
    with _global_state_lock:
        return _log_file_path


def finalize_log(log_file: Optional[str] = None) -> Optional[Path]:
    """
    Flush the log file and write its SHA-256 digest next to it.

    The digest file is named ``<log>.hash`` and uses the ``sha256sum``
    layout so it can be verified with ``sha256sum -c``.

    Args:
        log_file: Log file to seal, defaults to the active log file

    Returns:
        Path of the digest file, or None when there is no log file
    """
    with _global_state_lock:
        path_str = log_file or _log_file_path
        if _file_handler is not None:
            _file_handler.flush()

    if not path_str:
        return None

    path = Path(path_str)
    digest = hashlib.sha256(path.read_bytes()).hexdigest()
    hash_path = path.with_name(path.name + '.hash')
    hash_path.write_text(f"{digest}  {path.name}\n", encoding='utf-8')
    return hash_path


def sanitize_log_message(message: str) -> str:
    """
    Redact user-identifying paths and credentials from a log message.

    Args:
        message: Original log message

    Returns:
        Sanitized log message
    """
    if not isinstance(message, str):
        return str(message)

    patterns = [
        (r'/home/[^/\s]+', '/home/[USER]'),
        (r'https?://[^:/\s]+:[^@\s]+@', 'https://[CREDENTIALS]@'),
        (r'(?i)(password|token|secret)=[^&\s]+', r'\1=[REDACTED]'),
    ]
    for pattern, replacement in patterns:
        message = re.sub(pattern, replacement, message)
    return message
