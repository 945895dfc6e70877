"""Reading ``.coldstart`` documents back and comparing them.

A rendered report lists each ledger as ``name : value`` lines under a
fixed header.  These helpers scrape one ledger per document so that two
captures (say, before and after a runtime change) can be compared method
by method.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
from pathlib import Path

from rich.table import Table

from coldstart.errors import ReportFormatError
from coldstart.tracing.analysis.report import (
    HOST_JIT_HEADER,
    WORKER_ASSEMBLY_LOADER_HEADER,
    WORKER_JIT_HEADER,
)

DELIMITER = " : "
COLDSTART_SUFFIX = ".coldstart"

LedgerRow = tuple[str, str]
JitSummary = tuple[str, str, str]

JIT_SUMMARY_MARKER = "JIT time during specialization"


class LedgerMetric(StrEnum):
    """Ledgers that can be tabulated or compared."""

    JIT = "jit"
    WORKER_JIT = "worker-jit"
    WORKER_ASSEMBLY_LOADER = "worker-asm-loader"

    @property
    def header(self) -> str:
        return _HEADERS[self]

    @property
    def is_assembly(self) -> bool:
        return self is LedgerMetric.WORKER_ASSEMBLY_LOADER

    @property
    def item_label(self) -> str:
        """Plural noun for the rows of this ledger."""
        return "Assemblies" if self.is_assembly else "Jitted Methods"


_HEADERS = {
    LedgerMetric.JIT: HOST_JIT_HEADER,
    LedgerMetric.WORKER_JIT: WORKER_JIT_HEADER,
    LedgerMetric.WORKER_ASSEMBLY_LOADER: WORKER_ASSEMBLY_LOADER_HEADER,
}


def read_ledger_section(text: str, metric: LedgerMetric, *, source: str | None = None) -> list[LedgerRow]:
    """Return the ``(name, value)`` rows listed under *metric*'s header.

    Blank lines right after the header are skipped; the section ends at the
    next blank line or the end of the document.

    Raises:
        ReportFormatError: the header is missing or a row has no delimiter.
    """
    lines = text.splitlines()
    try:
        index = lines.index(metric.header) + 1
    except ValueError:
        raise ReportFormatError(f"Section {metric.header!r} not found", path=source) from None

    while index < len(lines) and not lines[index].strip():
        index += 1

    rows: list[LedgerRow] = []
    while index < len(lines) and lines[index].strip():
        name, sep, value = lines[index].rpartition(DELIMITER)
        if not sep:
            raise ReportFormatError(f"Malformed ledger line {lines[index]!r}", path=source)
        rows.append((name, value.strip()))
        index += 1
    return rows


def _read_document(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ReportFormatError(f"Cannot read {path}: {exc}", path=str(path)) from exc


def load_ledger(path: str | Path, metric: LedgerMetric) -> list[LedgerRow]:
    """Read one ledger from a ``.coldstart`` file."""
    path = Path(path)
    return read_ledger_section(_read_document(path), metric, source=str(path))


def read_jit_summaries(text: str, *, source: str | None = None) -> list[JitSummary]:
    """Return ``(process, msec, count)`` for every per-process JIT summary line.

    Summary lines read ``<process> JIT time during specialization msec: X (count:N)``;
    the process label is every word before ``JIT``.

    Raises:
        ReportFormatError: no summary line exists, or one does not end in a count.
    """
    summaries: list[JitSummary] = []
    for line in text.splitlines():
        if JIT_SUMMARY_MARKER not in line:
            continue
        words = line.split()
        if "JIT" not in words or len(words) < 2 or not words[-1].startswith("(count:"):
            raise ReportFormatError(f"Malformed JIT summary line {line!r}", path=source)
        process = " ".join(words[: words.index("JIT")])
        count = words[-1].split(":")[-1].rstrip(")")
        summaries.append((process, words[-2], count))
    if not summaries:
        raise ReportFormatError(f"No lines matching {JIT_SUMMARY_MARKER!r} found", path=source)
    return summaries


def load_jit_summaries(path: str | Path) -> list[JitSummary]:
    """Read the per-process JIT summary lines of a ``.coldstart`` file."""
    path = Path(path)
    return read_jit_summaries(_read_document(path), source=str(path))


def shared_names(first: Sequence[LedgerRow], second: Sequence[LedgerRow]) -> list[str]:
    """Names present in both ledgers, in the order of *first*."""
    other = {name for name, _ in second}
    return [name for name, _ in first if name in other]


def diff_names(first: Sequence[LedgerRow], second: Sequence[LedgerRow]) -> list[tuple[str, str]]:
    """Side-by-side rows of names unique to each ledger.

    The shorter column is padded with empty strings.
    """
    first_names = {name for name, _ in first}
    second_names = {name for name, _ in second}
    only_first = [name for name, _ in first if name not in second_names]
    only_second = [name for name, _ in second if name not in first_names]

    length = max(len(only_first), len(only_second))
    only_first += [""] * (length - len(only_first))
    only_second += [""] * (length - len(only_second))
    return list(zip(only_first, only_second))


def method_times(first: Sequence[LedgerRow], second: Sequence[LedgerRow]) -> list[tuple[str, str, str | None]]:
    """Every name of *first* with its value in both ledgers (None when absent from *second*)."""
    other = dict(second)
    return [(name, value, other.get(name)) for name, value in first]


def ledger_table(metric: LedgerMetric, rows: Sequence[LedgerRow]) -> Table:
    """Table of one ledger."""
    if metric.is_assembly:
        title, headings = "Loaded Assemblies", ("Assembly Name", "Time (ms)")
    else:
        title, headings = "Jitted Methods", ("Method Name", "Time (ms)")
    return render_table(rows, title, headings)


def render_table(
    rows: Sequence[Sequence[str | None]],
    title: str,
    headings: Sequence[str],
) -> Table:
    """Build a rich table; long names wrap instead of being cut."""
    table = Table(title=title, show_header=True, header_style="bold", show_lines=True)
    for heading in headings:
        table.add_column(heading, overflow="fold", max_width=80)
    for row in rows:
        table.add_row(*("" if cell is None else str(cell) for cell in row))
    return table


def jit_summary_table(rows: Sequence[JitSummary], title: str = "JIT Time and Count") -> Table:
    """Table of per-process JIT time and jitted method count."""
    return render_table(rows, title, ("Process", "JIT Time (ms)", "JIT Count"))
