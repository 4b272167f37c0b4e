"""
Utils package for archsync.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

from .logger import get_logger, configure_logging, finalize_log
from .validators import (
    validate_package_name,
    validate_rpc_url,
)
from .subprocess_wrapper import SecureSubprocess

__all__ = [
    "get_logger",
    "configure_logging",
    "finalize_log",
    "validate_package_name",
    "validate_rpc_url",
    "SecureSubprocess",
]
