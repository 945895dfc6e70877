"""Event feed loading.

The binary trace decoder is an external tool; it hands the analyzer a
JSON-lines feed with one decoded event per line, already ordered by
timestamp.  :class:`EventFeed` makes any event source safe to iterate twice,
which the correlator needs when it has to replay the capture.
"""

from __future__ import annotations

import gzip
import json
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any

from coldstart.tracing.types import TraceEvent

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FeedStats:
    """Counters from loading one feed file."""

    lines: int = 0
    events: int = 0
    skipped: int = 0


class EventFeed:
    """A finite, re-iterable sequence of :class:`TraceEvent`.

    Lists and tuples are iterated directly.  Any other iterable is assumed
    to be one-shot and is buffered while the first iteration runs, so a
    second iteration replays exactly the same events.
    """

    def __init__(self, source: Iterable[TraceEvent]) -> None:
        if isinstance(source, (list, tuple)):
            self._buffer: list[TraceEvent] | tuple[TraceEvent, ...] | None = source
            self._source: Iterable[TraceEvent] | None = None
        else:
            self._buffer = None
            self._source = source

    def __iter__(self) -> Iterator[TraceEvent]:
        if self._buffer is not None:
            return iter(self._buffer)
        return self._buffering_iter()

    def _buffering_iter(self) -> Iterator[TraceEvent]:
        source, self._source = self._source, None
        if source is None:
            raise RuntimeError("event source is already being consumed")
        buffer: list[TraceEvent] = []
        for event in source:
            buffer.append(event)
            yield event
        self._buffer = buffer

    def __len__(self) -> int:
        if self._buffer is None:
            raise TypeError("length of an unconsumed event source is unknown")
        return len(self._buffer)


def _open_binary(path: Path) -> IO[bytes]:
    if path.suffix == ".gz":
        return gzip.open(path, "rb")
    return open(path, "rb")


def iter_event_feed(path: str | Path, stats: FeedStats | None = None) -> Iterator[TraceEvent]:
    """Yield events from a JSON-lines feed, skipping unusable lines."""
    path = Path(path)
    stats = stats if stats is not None else FeedStats()

    with _open_binary(path) as fh:
        for line_no, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            stats.lines += 1
            try:
                raw: Any = json.loads(line.decode("utf-8"))
                if not isinstance(raw, dict):
                    raise ValueError("record is not an object")
                event = TraceEvent.from_dict(raw)
            except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                stats.skipped += 1
                logger.debug("Skipping feed line %d of %s: %s", line_no, path, exc)
                continue
            stats.events += 1
            yield event


def load_event_feed(path: str | Path) -> EventFeed:
    """Load a whole JSON-lines feed (``.jsonl`` or ``.jsonl.gz``) into memory.

    Args:
        path: Path to the decoded event feed.

    Returns:
        An :class:`EventFeed` over the parsed events, in file order.
    """
    stats = FeedStats()
    events = list(iter_event_feed(path, stats))
    if stats.skipped:
        logger.warning("Skipped %d of %d feed lines in %s", stats.skipped, stats.lines, path)
    logger.debug("Loaded %d events from %s", stats.events, path)
    return EventFeed(events)


def write_event_feed(path: str | Path, events: Iterable[TraceEvent]) -> int:
    """Write events as a JSON-lines feed and return how many were written."""
    path = Path(path)
    count = 0
    with open(path, "w", encoding="utf-8") as fh:
        for event in events:
            fh.write(json.dumps(event.to_dict(), default=str) + "\n")
            count += 1
    return count
