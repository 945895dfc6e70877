"""CLI entry point using Click."""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any

import click
from rich.console import Console

from coldstart import __version__
from coldstart.config import AnalyzerConfig, load_config
from coldstart.errors import ConfigurationError, NoWindowFoundError, ReportFormatError
from coldstart.telemetry import emit_cold_start_analysis, emit_window_not_found
from coldstart.tracing.analysis.comparison import (
    COLDSTART_SUFFIX,
    LedgerMetric,
    diff_names,
    jit_summary_table,
    ledger_table,
    load_jit_summaries,
    load_ledger,
    method_times,
    read_ledger_section,
    render_table,
    shared_names,
)
from coldstart.tracing.analysis.correlator import Correlator
from coldstart.tracing.analysis.report import render_text, telemetry_record
from coldstart.tracing.analysis.views import ColdStartReport
from coldstart.tracing.feed import load_event_feed
from coldstart.utilities.logger import bind_profile, clear_profile, setup_logging

logger = logging.getLogger(__name__)

console = Console()

PROFILE_MARKER = "Profile"

_METRIC_CHOICE = click.Choice([m.value for m in LedgerMetric])


def default_output_path(feed_path: str | Path) -> Path:
    """Where the report of *feed_path* goes when no output is given.

    ``<dir>/<name>.coldstart``; when the file name contains ``Profile``
    after its first character, only the part before the character that
    precedes ``Profile`` is kept (``app-Profile-1.jsonl`` -> ``app.coldstart``).
    """
    path = Path(feed_path)
    name = path.name
    index = name.find(PROFILE_MARKER)
    if index > 0:
        return path.with_name(name[: index - 1] + COLDSTART_SUFFIX)
    return path.with_name(name + COLDSTART_SUFFIX)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit structured logs as JSON lines")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Also append log records to this file")
@click.version_option(__version__, prog_name="coldstart")
@click.pass_context
def main(ctx: click.Context, debug: bool, json_logs: bool, log_file: str | None) -> None:
    """Coldstart - cold-start trace correlation for serverless function hosts."""
    cli_args: dict[str, Any] = {}
    if debug:
        cli_args["debug"] = True
    if json_logs:
        cli_args["json_logs"] = True
    if log_file:
        cli_args["log_file"] = log_file

    try:
        config = load_config(cli_args=cli_args)
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc

    setup_logging(debug=config.debug, json_output=config.json_logs, log_file=config.log_file or None)
    ctx.obj = config


def _analyze_feed(config: AnalyzerConfig, feed_path: Path) -> ColdStartReport:
    try:
        feed = load_event_feed(feed_path)
    except OSError as exc:
        raise click.ClickException(f"Cannot read event feed {feed_path}: {exc}") from exc
    return Correlator(config).run(feed)


def _write_report(text: str, output: Path) -> bool:
    try:
        output.write_text(text, encoding="utf-8")
    except OSError as exc:
        click.echo(f"Failed to write to output file {output}: {exc}", err=True)
        return False
    return True


@main.command("analyze")
@click.argument("feed", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("url_pattern", required=False, default=None)
@click.argument("output", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON instead of text")
@click.pass_obj
def analyze_command(
    config: AnalyzerConfig,
    feed: Path,
    url_pattern: str | None,
    output: Path | None,
    as_json: bool,
) -> None:
    """Analyze one decoded trace FEED and write its .coldstart report."""
    if url_pattern:
        config = dataclasses.replace(config, url_pattern=url_pattern)
    elif not config.url_pattern:
        click.echo("urlpattern is missing, will look for SLA sites with /api/ urls")

    if output is None:
        output = Path(config.output_path) if config.output_path else default_output_path(feed)

    bind_profile(feed.name)
    try:
        try:
            report = _analyze_feed(config, feed)
        except NoWindowFoundError as exc:
            click.echo(str(exc), err=True)
            emit_window_not_found(str(feed), str(exc))
            raise SystemExit(1) from exc

        text = render_text(report)
        if as_json:
            click.echo(json.dumps(report.to_dict(), indent=2))
        else:
            click.echo(text)
        click.echo(f"Writing output to: {output}")

        emit_cold_start_analysis(
            telemetry_record(report, str(feed), config.telemetry_field_max_length)
        )
        _write_report(text, output)
        logger.info(
            "Analyzed %s in %d pass(es), %d event(s) skipped",
            feed, report.passes, report.skipped_events,
        )
    finally:
        clear_profile()


@main.command("table")
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--metric", type=_METRIC_CHOICE, default=LedgerMetric.JIT.value, show_default=True)
def table_command(files: tuple[Path, ...], metric: str) -> None:
    """Show one ledger of each .coldstart FILE as a table."""
    ledger_metric = LedgerMetric(metric)
    for path in files:
        try:
            rows = load_ledger(path, ledger_metric)
        except ReportFormatError as exc:
            raise click.ClickException(str(exc)) from exc
        console.print(ledger_table(ledger_metric, rows))


@main.command("summary")
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
def summary_command(files: tuple[Path, ...]) -> None:
    """Show the per-process JIT time and count of each .coldstart FILE."""
    for path in files:
        try:
            rows = load_jit_summaries(path)
        except ReportFormatError as exc:
            raise click.ClickException(str(exc)) from exc
        console.print(jit_summary_table(rows, title=f"JIT Time and Count: {path.name}"))


def _coldstart_text(config: AnalyzerConfig, path: Path) -> str:
    """The .coldstart document for *path*, analyzing it first if it is a feed."""
    if path.suffix == COLDSTART_SUFFIX:
        return path.read_text(encoding="utf-8")

    click.echo(f"{path} is a trace feed. Running the analyzer to generate its coldstart file.")
    try:
        report = _analyze_feed(config, path)
    except NoWindowFoundError as exc:
        raise click.ClickException(f"{path}: {exc}") from exc
    text = render_text(report)
    _write_report(text, default_output_path(path))
    return text


@main.command("compare")
@click.argument("first", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("second", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--metric", type=_METRIC_CHOICE, default=LedgerMetric.JIT.value, show_default=True)
@click.option(
    "--mode",
    type=click.Choice(["diff", "equal", "method-times"]),
    default="diff",
    show_default=True,
    help="Names unique to each trace, names shared by both, or per-name times side by side",
)
@click.pass_obj
def compare_command(config: AnalyzerConfig, first: Path, second: Path, metric: str, mode: str) -> None:
    """Compare one ledger between two traces (.coldstart files or feeds)."""
    ledger_metric = LedgerMetric(metric)
    try:
        first_rows = read_ledger_section(_coldstart_text(config, first), ledger_metric, source=str(first))
        second_rows = read_ledger_section(_coldstart_text(config, second), ledger_metric, source=str(second))
    except ReportFormatError as exc:
        raise click.ClickException(str(exc)) from exc

    names = (first.name, second.name)
    if mode == "equal":
        click.echo(
            f"\nTraces '{names[0]}' and '{names[1]}' share the following {ledger_metric.item_label}:\n"
        )
        for name in shared_names(first_rows, second_rows):
            click.echo(f"- {name}")
    elif mode == "diff":
        title = "Different Assemblies" if ledger_metric.is_assembly else "Different Jitted Methods"
        console.print(render_table(diff_names(first_rows, second_rows), title, names))
    else:
        headings = ("Assembly Name" if ledger_metric.is_assembly else "Method Name", *names)
        console.print(render_table(method_times(first_rows, second_rows), "Jitted Method Times", headings))


if __name__ == "__main__":
    main()
