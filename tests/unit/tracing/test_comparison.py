"""Tests for reading .coldstart documents back and comparing them."""

from __future__ import annotations

from pathlib import Path

import pytest
from rich.console import Console

from coldstart.config import AnalyzerConfig
from coldstart.errors import ReportFormatError
from coldstart.tracing.analysis.comparison import (
    LedgerMetric,
    diff_names,
    jit_summary_table,
    ledger_table,
    load_jit_summaries,
    load_ledger,
    method_times,
    read_jit_summaries,
    read_ledger_section,
    render_table,
    shared_names,
)
from coldstart.tracing.analysis.correlator import Correlator
from coldstart.tracing.analysis.report import render_text

from tests.helpers.events import cold_start_capture

DOCUMENT = """
--pid 1 --exclude-events-before 0 --exclude-events-after 10

Detailed JIT Times:


A::One : 4
B::Two : 2.5
Name : with : colons : 1

Detailed DWAS JIT Times:

D::Dwas : 1
"""


class TestLedgerMetric:
    def test_headers(self) -> None:
        assert LedgerMetric.JIT.header == "Detailed JIT Times:"
        assert LedgerMetric.WORKER_JIT.header == "Detailed Language Worker JIT Times:"
        assert LedgerMetric("worker-asm-loader").header == "Detailed Language Worker Assembly Loader Times:"

    def test_labels(self) -> None:
        assert LedgerMetric.WORKER_ASSEMBLY_LOADER.item_label == "Assemblies"
        assert LedgerMetric.JIT.item_label == "Jitted Methods"


class TestReadLedgerSection:
    def test_reads_until_blank_line(self) -> None:
        rows = read_ledger_section(DOCUMENT, LedgerMetric.JIT)
        assert rows == [("A::One", "4"), ("B::Two", "2.5"), ("Name : with : colons", "1")]

    def test_missing_header(self) -> None:
        with pytest.raises(ReportFormatError):
            read_ledger_section(DOCUMENT, LedgerMetric.WORKER_JIT, source="x.coldstart")

    def test_section_at_end_of_document(self) -> None:
        text = "Detailed JIT Times:\n\nA::One : 4"
        assert read_ledger_section(text, LedgerMetric.JIT) == [("A::One", "4")]

    def test_empty_section(self) -> None:
        assert read_ledger_section("Detailed JIT Times:\n\n", LedgerMetric.JIT) == []

    def test_line_without_delimiter(self) -> None:
        with pytest.raises(ReportFormatError):
            read_ledger_section("Detailed JIT Times:\n\nbroken line\n", LedgerMetric.JIT)

    def test_reads_rendered_report(self) -> None:
        text = render_text(Correlator(AnalyzerConfig()).run(cold_start_capture()))
        assert read_ledger_section(text, LedgerMetric.JIT) == [("Host.Startup::Run", "4")]
        assert read_ledger_section(text, LedgerMetric.WORKER_JIT) == [("Worker::Main", "2")]
        assert read_ledger_section(text, LedgerMetric.WORKER_ASSEMBLY_LOADER) == [("System.Text.Json", "3")]

    def test_load_ledger_file(self, tmp_path: Path) -> None:
        path = tmp_path / "a.coldstart"
        path.write_text(DOCUMENT, encoding="utf-8")
        assert len(load_ledger(path, LedgerMetric.JIT)) == 3

    def test_load_ledger_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ReportFormatError):
            load_ledger(tmp_path / "missing.coldstart", LedgerMetric.JIT)


class TestJitSummaries:
    def test_reads_rendered_report(self) -> None:
        text = render_text(Correlator(AnalyzerConfig()).run(cold_start_capture()))
        assert read_jit_summaries(text) == [
            ("Functions WebHost", "4", "1"),
            ("DWAS", "1", "1"),
            ("Language Worker", "2", "1"),
        ]

    def test_no_summary_lines(self) -> None:
        with pytest.raises(ReportFormatError):
            read_jit_summaries(DOCUMENT, source="x.coldstart")

    def test_line_without_count(self) -> None:
        with pytest.raises(ReportFormatError):
            read_jit_summaries("Host JIT time during specialization msec: 4\n")

    def test_load_file(self, tmp_path: Path) -> None:
        path = tmp_path / "a.coldstart"
        path.write_text("\nDWAS JIT time during specialization msec: 1.5  (count:3)\n", encoding="utf-8")
        assert load_jit_summaries(path) == [("DWAS", "1.5", "3")]

    def test_table(self) -> None:
        table = jit_summary_table([("DWAS", "1", "1")])
        assert table.row_count == 1
        assert table.title == "JIT Time and Count"


class TestComparisons:
    first = [("A", "1"), ("B", "2"), ("C", "3")]
    second = [("B", "5"), ("D", "6")]

    def test_shared_names(self) -> None:
        assert shared_names(self.first, self.second) == ["B"]

    def test_diff_names_padded(self) -> None:
        assert diff_names(self.first, self.second) == [("A", "D"), ("C", "")]

    def test_diff_names_identical(self) -> None:
        assert diff_names(self.first, self.first) == []

    def test_method_times(self) -> None:
        assert method_times(self.first, self.second) == [("A", "1", None), ("B", "2", "5"), ("C", "3", None)]


class TestTables:
    def _render(self, table) -> str:
        console = Console(width=200, record=True)
        console.print(table)
        return console.export_text()

    def test_render_table(self) -> None:
        table = render_table([("A", "1", None)], "Jitted Method Times", ("Method Name", "a", "b"))
        assert table.row_count == 1
        output = self._render(table)
        assert "Jitted Method Times" in output
        assert "Method Name" in output

    def test_ledger_table_assemblies(self) -> None:
        table = ledger_table(LedgerMetric.WORKER_ASSEMBLY_LOADER, [("System.Text.Json", "3")])
        output = self._render(table)
        assert "Loaded Assemblies" in output
        assert "Assembly Name" in output
        assert "System.Text.Json" in output
