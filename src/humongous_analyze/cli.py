#!/usr/bin/env python3
"""Humongous Allocation Analyzer - G1 region size sizing from GC logs.

Reads one JVM GC log and reports:
- Discovered G1 heap region size
- Histogram of humongous allocations by the region size that would hold them
- Nearest-rank allocation size percentiles (min, p50, p75, p90, p99, max)
- Rich terminal output with tables and panels
- Optional Markdown export
"""

from __future__ import annotations

import cProfile
import pstats
import sys
from datetime import datetime
from enum import Enum
from io import StringIO
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from humongous_analyze.analysis import analyze_file
from humongous_analyze.models import (
    MIN_G1_REGION_SIZE_BYTES,
    AnalyzerSettings,
    Bucket,
    HumongousReport,
    format_region_size,
)
from humongous_analyze.parsing import parse_jvm_size_to_bytes

__version__ = "1.0.0"

NO_ALLOCATIONS_MESSAGE = "No humongous allocations were identified in the provided data set."

# ============================================================
# RICH RENDERING
# ============================================================

HUMONGOUS_ANALYZE_THEME = Theme(
    {
        "critical": "bold red",
        "warning": "bold yellow",
        "success": "bold green",
        "info": "cyan",
        "metric": "white",
        "label": "dim white",
        "header": "bold magenta",
    }
)

console = Console(theme=HUMONGOUS_ANALYZE_THEME)


def create_key_value_table(title: str, rows: list[tuple[str, str]]) -> Table:
    """Create a simple two-column key/value table."""
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="label")
    table.add_column("Value", style="metric")
    for label, value in rows:
        table.add_row(label, value)
    return table


def render_warning_banner(warnings: list[str]) -> Panel:
    """Render report warnings in a banner."""
    if not warnings:
        return Panel(
            Text(" No warnings", style="success"), title="Status", border_style="green"
        )

    warning_text = Text()
    for index, warning in enumerate(warnings):
        line_ending = "\n" if index < len(warnings) - 1 else ""
        warning_text.append(" ", style="warning")
        warning_text.append(warning.removeprefix("WARNING: ") + line_ending, style="warning")

    return Panel(
        warning_text, title="[warning]Warnings[/warning]", border_style="yellow", expand=True
    )


def format_max_allocation(bucket: Bucket) -> str:
    if bucket.is_overflow:
        return "unbounded"
    return str(bucket.max_allocation_bytes)


def build_bucket_rows(report: HumongousReport) -> list[tuple[str, str, str]]:
    """Rows of the region bucket table: label, 50% threshold, count."""
    return [
        (bucket.label, format_max_allocation(bucket), str(bucket.count))
        for bucket in report.buckets
    ]


def build_percentile_rows(report: HumongousReport) -> list[tuple[str, str]]:
    if report.percentiles is None:
        return []
    return [(label, str(value)) for label, value in report.percentiles.as_rows()]


def build_overview_rows(report: HumongousReport) -> list[tuple[str, str]]:
    rows = [
        ("Log File", report.source),
        ("Region Size", report.region_size_label),
        ("Humongous Allocations", str(report.allocation_count)),
        ("Lines Read", str(report.lines_read)),
    ]
    if report.region_size_changes:
        rows.append(("Region Size Changes", str(report.region_size_changes)))
    return rows


def create_bucket_table(report: HumongousReport) -> Table:
    """Boxed region size histogram."""
    table = Table(title="Humongous Allocations by G1 Region Size", title_style="header")
    table.add_column("Region Size", justify="right", style="label")
    table.add_column("Max Allocation Size (50%)", justify="right", style="metric")
    table.add_column("Number of Allocations", justify="right", style="metric")
    for row in build_bucket_rows(report):
        table.add_row(*row)
    return table


def render_rich_output(report: HumongousReport) -> None:
    """Render the analysis using Rich components."""
    console.print()
    console.print(
        Panel(
            f"Region Size: {report.region_size_label} - {report.source}",
            style="header",
            expand=True,
        )
    )
    console.print()

    console.print(create_key_value_table("Overview", build_overview_rows(report)))
    console.print()

    if not report.has_allocations:
        console.print(f"[info]{NO_ALLOCATIONS_MESSAGE}[/info]")
        console.print()
    else:
        if report.buckets:
            console.print(create_bucket_table(report))
            console.print()
        console.print(
            create_key_value_table("Allocation Size Percentiles", build_percentile_rows(report))
        )
        console.print()

    console.print(render_warning_banner(report.warnings))


# ============================================================
# MARKDOWN EXPORT
# ============================================================


def export_markdown_report(report: HumongousReport, output_path: Path) -> None:
    """Export the analysis report to Markdown format."""
    md_content: list[str] = []

    md_content.append("# Humongous Allocation Report\n\n")
    md_content.append(f"**Generated:** {datetime.now().isoformat()}\n\n")

    md_content.append("## Overview\n\n")
    for label, value in build_overview_rows(report):
        md_content.append(f"- **{label}:** {value}\n")
    md_content.append("\n")

    if not report.has_allocations:
        md_content.append(f"{NO_ALLOCATIONS_MESSAGE}\n\n")
    else:
        if report.buckets:
            md_content.append("## Allocations by Region Size\n\n")
            md_content.append(
                "| Region Size | Max Allocation Size (50%) | Number of Allocations |\n"
            )
            md_content.append("|---:|---:|---:|\n")
            for label, max_size, count in build_bucket_rows(report):
                md_content.append(f"| {label} | {max_size} | {count} |\n")
            md_content.append("\n")

        md_content.append("## Allocation Size Percentiles\n\n")
        for label, value in build_percentile_rows(report):
            md_content.append(f"- **{label}:** {value}\n")
        md_content.append("\n")

    if report.warnings:
        md_content.append("## Warnings\n\n")
        for warning in report.warnings:
            md_content.append(f"- {warning.removeprefix('WARNING: ')}\n")
        md_content.append("\n")

    output_path.write_text("".join(md_content), encoding="utf-8")


# ============================================================
# TYPER CLI INTERFACE
# ============================================================


class ClassifierEngine(str, Enum):
    manual = "manual"
    regex = "regex"


def parse_region_size_option(value: str | int) -> int:
    """Parse --min-region-size ('1M', '2m', '4194304') into a power-of-two byte count."""
    try:
        size_bytes = parse_jvm_size_to_bytes(str(value))
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    if size_bytes <= 0 or size_bytes & (size_bytes - 1):
        raise typer.BadParameter(f"{value} is not a positive power-of-two size")
    return size_bytes


app = typer.Typer(
    name="humongous-analyze",
    help="Summarize G1 humongous allocations from a JVM GC log",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.command()
def analyze(
    log_file: Annotated[
        Path,
        typer.Argument(
            help="Path to GC log file to analyze",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Export analysis report to Markdown file (e.g., report.md)",
            file_okay=True,
            dir_okay=False,
        ),
    ] = None,
    engine: Annotated[
        ClassifierEngine,
        typer.Option(
            "--engine",
            help="Line classifier: 'manual' substring scanning or the slower 'regex' fallback",
            case_sensitive=False,
        ),
    ] = ClassifierEngine.manual,
    min_region_size: Annotated[
        int,
        typer.Option(
            "--min-region-size",
            help="Smallest region size in the bucket table, JVM notation (default: 1M)",
            parser=parse_region_size_option,
        ),
    ] = MIN_G1_REGION_SIZE_BYTES,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output with detailed parsing information",
        ),
    ] = False,
    profile: Annotated[
        bool,
        typer.Option(
            "--profile",
            help="Enable performance profiling and display timing statistics",
        ),
    ] = False,
    profile_output: Annotated[
        Path | None,
        typer.Option(
            "--profile-output",
            help="Save detailed profiling data to file (e.g., profile.prof)",
            file_okay=True,
            dir_okay=False,
        ),
    ] = None,
) -> None:
    """Analyze humongous allocations in a JVM G1 GC log file.

    Exit codes: 0 = report printed, 1 = the log could not be read or analyzed.
    """
    profiler = None
    if profile:
        profiler = cProfile.Profile()
        profiler.enable()

    try:
        settings = AnalyzerSettings(
            min_region_size_bytes=min_region_size, engine=engine.value
        )

        if verbose:
            console.print(f"[info]Classifier engine: {settings.engine}[/info]")
            console.print(
                "[info]Minimum region size: "
                f"{format_region_size(settings.min_region_size_bytes)}[/info]"
            )

        with Progress(
            SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console
        ) as progress:
            parse_task = progress.add_task(f"[cyan]Scanning {log_file.name}...", total=None)
            report = analyze_file(log_file, settings)
            progress.update(parse_task, completed=100)

        if verbose:
            console.print(f"[info]Read {report.lines_read} lines from {log_file}[/info]")
            console.print(f"[info]Region size: {report.region_size_label}[/info]")
            console.print(
                f"[info]Found {report.allocation_count} humongous allocations[/info]"
            )

        render_rich_output(report)

        if output:
            export_markdown_report(report, output)
            console.print(f"\n[success] Report exported to {output}[/success]")

        if profiler:
            profiler.disable()

            if profile_output:
                profiler.dump_stats(str(profile_output))
                console.print(f"\n[info]Profiling data saved to {profile_output}[/info]")

            console.print(
                "\n[bold cyan] Performance Profile (Top 20 Functions) [/bold cyan]\n"
            )
            stats_stream = StringIO()
            stats = pstats.Stats(profiler, stream=stats_stream)
            stats.strip_dirs()
            stats.sort_stats("cumulative")
            stats.print_stats(20)

            console.print(stats_stream.getvalue())

    except (OSError, ValueError) as e:
        console.print(f"[critical]ERROR: {e}[/critical]")
        if verbose:
            console.print_exception()
        sys.exit(1)


@app.command()
def version() -> None:
    """Display version."""
    console.print(f"humongous-analyze {__version__}")


if __name__ == "__main__":
    app()
