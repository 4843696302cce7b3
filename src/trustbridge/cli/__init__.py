# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Trustbridge CLI - trust-network inspection, discovery and the backchannel server."""

from .main import app, main

__all__ = ["main", "app"]
