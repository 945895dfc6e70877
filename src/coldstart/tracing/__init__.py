"""Tracing package -- decoded trace events and their correlation.

Submodules
~~~~~~~~~~
- :mod:`coldstart.tracing.types` -- provider names, event kinds and the
  :class:`TraceEvent` dataclass.
- :mod:`coldstart.tracing.payload` -- typed access to event payload fields.
- :mod:`coldstart.tracing.feed` -- JSON-lines event feeds.
- :mod:`coldstart.tracing.analysis` -- cold-start correlation and reporting.
"""

from __future__ import annotations

# --- types ----------------------------------------------------------------
from coldstart.tracing.types import (
    EVENT_KINDS,
    EventKind,
    TraceEvent,
    classify_event,
)

# --- payload --------------------------------------------------------------
from coldstart.tracing.payload import FieldResult

# --- feed -----------------------------------------------------------------
from coldstart.tracing.feed import (
    EventFeed,
    FeedStats,
    iter_event_feed,
    load_event_feed,
    write_event_feed,
)

__all__ = [
    # types
    "EVENT_KINDS",
    "EventKind",
    "TraceEvent",
    "classify_event",
    # payload
    "FieldResult",
    # feed
    "EventFeed",
    "FeedStats",
    "iter_event_feed",
    "load_event_feed",
    "write_event_feed",
]
