"""Open/close span matching keyed by an arbitrary key.

One abstraction covers JIT compilation (method id), garbage collections
(collection count), assembly loads (assembly name or path) and type loads
(type-load id).  A start event opens a key, the matching stop event closes
it and the elapsed time is charged to a running total and, when a name is
known, to a per-name ledger entry.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass


@dataclass(slots=True)
class LedgerEntry:
    """Accumulated duration and occurrence count for one name."""

    duration: float = 0.0
    count: int = 0


class IntervalLedger:
    """Matches open/close pairs by key and accumulates their durations.

    * A second ``open`` for a key that is still open overwrites the first;
      only the most recent start is honored.
    * ``close`` for a key that is not open is a no-op returning ``0.0``.
      The start was outside the window or never observed.
    * ``close`` consumes the key, so a repeated close is also a no-op.
    """

    __slots__ = ("_open", "_entries", "_total")

    def __init__(self) -> None:
        self._open: dict[Hashable, tuple[float, str | None]] = {}
        self._entries: dict[str, LedgerEntry] = {}
        self._total = 0.0

    def open(self, key: Hashable, name: str | None, timestamp: float) -> None:
        """Record (or overwrite) the start of the span identified by *key*."""
        self._open[key] = (timestamp, name)

    def close(self, key: Hashable, name: str | None, timestamp: float) -> float:
        """Close the span for *key* and return its duration.

        *name* labels the ledger entry; ``None`` falls back to the name given
        when the span was opened.  When neither end carries a name only the
        total is updated.
        """
        opened = self._open.pop(key, None)
        if opened is None:
            return 0.0

        started, open_name = opened
        duration = timestamp - started
        self._total += duration

        label = name or open_name
        if label:
            entry = self._entries.get(label)
            if entry is None:
                entry = self._entries[label] = LedgerEntry()
            entry.duration += duration
            entry.count += 1
        return duration

    def is_open(self, key: Hashable) -> bool:
        return key in self._open

    @property
    def total(self) -> float:
        """Sum of every closed span, named or not."""
        return self._total

    @property
    def entries(self) -> dict[str, LedgerEntry]:
        return self._entries

    @property
    def count(self) -> int:
        """Number of distinct names in the ledger."""
        return len(self._entries)

    def duration_of(self, name: str) -> float:
        entry = self._entries.get(name)
        return entry.duration if entry else 0.0

    def ranked(self) -> list[tuple[str, LedgerEntry]]:
        """Ledger entries ordered by descending duration (stable for ties)."""
        return sorted(self._entries.items(), key=lambda item: item[1].duration, reverse=True)

    def clear(self) -> None:
        self._open.clear()
        self._entries.clear()
        self._total = 0.0

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"IntervalLedger(total={self._total!r}, names={len(self._entries)}, open={len(self._open)})"
