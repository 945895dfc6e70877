"""Typed access to loosely-typed event payloads.

Decoded payload values arrive as whatever the decoder produced: strings,
integers, floats, GUIDs, booleans, lists.  Every accessor returns a
:class:`FieldResult` so callers decide explicitly what a missing or mistyped
field means; :meth:`FieldResult.unwrap` turns a failure into a
:class:`~coldstart.errors.MalformedEventError`, which the correlator treats
as "skip this event".
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from coldstart.errors import MalformedEventError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class FieldResult(Generic[T]):
    """Outcome of reading one payload field."""

    name: str
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise :class:`MalformedEventError`."""
        if self.error is not None:
            raise MalformedEventError(self.error, field_name=self.name)
        return self.value  # type: ignore[return-value]

    def or_default(self, default: T) -> T:
        if self.error is not None:
            return default
        return self.value  # type: ignore[return-value]


def _missing(name: str) -> FieldResult[Any]:
    return FieldResult(name, error=f"payload field {name!r} is missing")


def _mistyped(name: str, raw: Any, expected: str) -> FieldResult[Any]:
    return FieldResult(name, error=f"payload field {name!r} is not {expected}: {raw!r}")


def read_text(payload: Mapping[str, Any], name: str) -> FieldResult[str]:
    raw = payload.get(name)
    if raw is None:
        return _missing(name)
    return FieldResult(name, str(raw))


def read_integer(payload: Mapping[str, Any], name: str) -> FieldResult[int]:
    raw = payload.get(name)
    if raw is None:
        return _missing(name)
    if isinstance(raw, bool):
        return _mistyped(name, raw, "an integer")
    if isinstance(raw, int):
        return FieldResult(name, raw)
    if isinstance(raw, float):
        if raw.is_integer():
            return FieldResult(name, int(raw))
        return _mistyped(name, raw, "an integer")
    if isinstance(raw, str):
        try:
            return FieldResult(name, int(raw.strip()))
        except ValueError:
            return _mistyped(name, raw, "an integer")
    return _mistyped(name, raw, "an integer")


def read_number(payload: Mapping[str, Any], name: str) -> FieldResult[float]:
    raw = payload.get(name)
    if raw is None:
        return _missing(name)
    if isinstance(raw, bool):
        return _mistyped(name, raw, "a number")
    if isinstance(raw, (int, float)):
        return FieldResult(name, float(raw))
    if isinstance(raw, str):
        try:
            return FieldResult(name, float(raw.strip()))
        except ValueError:
            return _mistyped(name, raw, "a number")
    return _mistyped(name, raw, "a number")


def read_identifier(payload: Mapping[str, Any], name: str) -> FieldResult[str]:
    """Read a GUID-like identifier, normalised for equality comparison."""
    raw = payload.get(name)
    if raw is None:
        return _missing(name)
    if isinstance(raw, uuid.UUID):
        return FieldResult(name, str(raw))
    if isinstance(raw, str):
        text = raw.strip().strip("{}").lower()
        if not text:
            return _mistyped(name, raw, "an identifier")
        return FieldResult(name, text)
    return _mistyped(name, raw, "an identifier")


def read_sequence(payload: Mapping[str, Any], name: str) -> FieldResult[tuple[Any, ...]]:
    raw = payload.get(name)
    if raw is None:
        return _missing(name)
    if isinstance(raw, (list, tuple)):
        return FieldResult(name, tuple(raw))
    if isinstance(raw, Mapping):
        return FieldResult(name, tuple(raw.values()))
    return _mistyped(name, raw, "a sequence")


def flatten_arguments(items: tuple[Any, ...]) -> Iterator[str]:
    """Yield every scalar in a (possibly nested) argument list as text.

    Diagnostic-source arguments are lists of key/value pairs; decoders emit
    them as ``{"Key": ..., "Value": ...}`` dicts, plain dicts, or nested lists.
    """
    for item in items:
        if item is None:
            continue
        if isinstance(item, Mapping):
            yield from flatten_arguments(tuple(item.values()))
        elif isinstance(item, (list, tuple)):
            yield from flatten_arguments(tuple(item))
        else:
            yield str(item)
