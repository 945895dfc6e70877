"""Shared utilities: logging setup."""

from __future__ import annotations

from coldstart.utilities.logger import bind_profile, clear_profile, get_logger, setup_logging

__all__ = ["bind_profile", "clear_profile", "get_logger", "setup_logging"]
