"""
archsync - Arch package manifest builder

Reconciles installed pacman packages against the sync repositories and the
Arch User Repository and records, for every package, whether a newer version
is available, from which source, and at what download/install cost.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

__version__ = "0.13.0"
__author__ = "NeatCode Labs"
__email__ = "neatcodelabs@gmail.com"
