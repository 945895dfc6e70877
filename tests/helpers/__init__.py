"""Shared test helpers for the coldstart test suite."""

from __future__ import annotations

from tests.helpers.events import cold_start_capture

__all__ = ["cold_start_capture"]
