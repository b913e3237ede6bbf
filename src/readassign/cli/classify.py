"""
Classify command: assign every read of an archive under each scheme.
"""

from __future__ import annotations

import logging
import signal
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import polars as pl
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from readassign.cli.utils import (
    QuietConsole,
    RichProgressListener,
    configure_logging,
    parse_scheme_option,
)
from readassign.core.archive import TabularReadArchive
from readassign.core.classification.driver import CancellationToken
from readassign.core.classification.pipeline import classify_archive
from readassign.core.exceptions import ReadAssignError
from readassign.core.hierarchy import ClassificationScheme
from readassign.core.persistence import TableSink
from readassign.models.config import ClassifierConfig
from readassign.models.summary import RunStatus, RunSummary

logger = logging.getLogger(__name__)

console = Console()

# Exit code for a run stopped with Ctrl-C
EXIT_CANCELLED = 130


def classify(
    matches: Path = typer.Option(
        ...,
        "--matches",
        "-m",
        help="Matches table (TSV, CSV or Parquet), grouped by ascending read_uid",
    ),
    reads: Path | None = typer.Option(
        None,
        "--reads",
        "-r",
        help="Reads table with uid, weight, complexity and mate_uid columns",
    ),
    scheme: list[str] = typer.Option(
        ...,
        "--scheme",
        "-s",
        help="Classification scheme as NAME=HIERARCHY_TABLE, or NAME for a flat scheme (repeatable)",
    ),
    output_dir: Path = typer.Option(
        ...,
        "--output-dir",
        "-o",
        help="Directory for the assignment tables and run metadata",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file; command-line options take precedence",
    ),
    output_format: str = typer.Option(
        "csv",
        "--format",
        "-f",
        help="Output format: 'csv' or 'parquet'",
    ),
    min_score: float | None = typer.Option(None, "--min-score", help="Minimum bit score"),
    max_expected: float | None = typer.Option(None, "--max-expected", help="Maximum expected value"),
    min_percent_identity: float | None = typer.Option(
        None, "--min-percent-identity", help="Minimum percent identity (0 = off)"
    ),
    top_percent: float | None = typer.Option(
        None, "--top-percent", help="Keep alignments within this percent of the best bit score"
    ),
    min_support_percent: float | None = typer.Option(
        None, "--min-support-percent", help="Min support as percent of assigned reads (0 = use --min-support)"
    ),
    min_support: int | None = typer.Option(
        None, "--min-support", help="Minimum read weight per class"
    ),
    min_complexity: float | None = typer.Option(
        None, "--min-complexity", help="Reads below this complexity are flagged low complexity"
    ),
    paired: bool | None = typer.Option(
        None, "--paired/--no-paired", help="Use mates to refine taxonomic assignment"
    ),
    long_read_lca: bool | None = typer.Option(
        None, "--long-read-lca/--no-long-read-lca", help="Interval-aware LCA for long reads"
    ),
    weighted_lca: bool | None = typer.Option(
        None, "--weighted-lca/--no-weighted-lca", help="Bit-score weighted LCA for taxonomy"
    ),
    identity_filter: bool | None = typer.Option(
        None, "--identity-filter/--no-identity-filter", help="Lift assignments by percent identity"
    ),
    chunk_size: int = typer.Option(
        1_000_000,
        "--chunk-size",
        help="Rows per streamed batch",
    ),
    summary: Path | None = typer.Option(
        None,
        "--summary",
        help="Write the run summary as JSON",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Show the run summary log and debug messages",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress progress output (for scripting)",
    ),
) -> None:
    """
    Assign reads to classes using their alignments.

    Example:

        readassign classify \\
            --matches matches.parquet \\
            --reads reads.parquet \\
            --scheme Taxonomy=taxonomy.tsv \\
            --scheme EC=ec.tsv \\
            --output-dir results/

        # Paired reads, weighted LCA, Parquet output:
        readassign classify -m matches.parquet -r reads.parquet \\
            -s Taxonomy=taxonomy.tsv --paired --weighted-lca \\
            -o results/ --format parquet
    """
    out = QuietConsole(console, quiet=quiet)
    configure_logging(verbose, console)

    out.print("\n[bold blue]Readassign Classification[/bold blue]\n")

    output_format = output_format.lower()
    if output_format not in ("csv", "parquet"):
        console.print(
            f"[red]Error: Invalid format '{output_format}'. Use 'csv' or 'parquet'.[/red]"
        )
        raise typer.Exit(code=1) from None

    overrides = {
        "min_score": min_score,
        "max_expected": max_expected,
        "min_percent_identity": min_percent_identity,
        "top_percent": top_percent,
        "min_support_percent": min_support_percent,
        "min_support": min_support,
        "min_complexity": min_complexity,
        "paired_reads": paired,
        "use_long_read_lca": long_read_lca,
        "use_weighted_lca": weighted_lca,
        "use_identity_filter": identity_filter,
    }
    try:
        config = build_config(config_file, overrides)
        scheme_specs = [parse_scheme_option(value) for value in scheme]
    except typer.BadParameter as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red]\n{e}")
        raise typer.Exit(code=1) from None
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1) from None

    try:
        archive = TabularReadArchive(
            matches,
            reads_path=reads,
            schemes=[name for name, _ in scheme_specs],
            chunk_size=chunk_size,
        )
        schemes = [load_scheme(archive, name, path) for name, path in scheme_specs]
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None
    except ReadAssignError as e:
        console.print(f"[red]Error: {e.full_message}[/red]")
        raise typer.Exit(code=1) from None
    except pl.exceptions.PolarsError as e:
        console.print(f"[red]Data processing error: {e}[/red]")
        raise typer.Exit(code=1) from None

    for loaded in schemes:
        kind = config.algorithm_for(loaded.name)
        out.print(f"[dim]{loaded.name}: {len(loaded):,} classes, {kind.value}[/dim]")

    sink = TableSink(output_dir, output_format=output_format, parameters=config.parameter_string())
    token = CancellationToken()
    with _cancel_on_interrupt(token), RichProgressListener(console, quiet=quiet) as listener:
        try:
            result = classify_archive(archive, schemes, config, sink, progress=listener, token=token)
        except ReadAssignError as e:
            console.print(f"[red]Error: {e.full_message}[/red]")
            raise typer.Exit(code=1) from None

    if summary:
        summary.parent.mkdir(parents=True, exist_ok=True)
        result.to_json(summary)

    if result.status is RunStatus.CANCELLED:
        console.print(f"[yellow]{result.message}. Nothing was written.[/yellow]")
        raise typer.Exit(code=EXIT_CANCELLED)
    if result.status is RunStatus.FAILED:
        console.print(f"[red]Classification failed: {result.message}[/red]")
        raise typer.Exit(code=1)

    if not quiet:
        _display_summary_table(result)
    out.print(f"[green]Assignments written to {sink.assignments_path}[/green]\n")


def build_config(config_file: Path | None, overrides: dict[str, Any]) -> ClassifierConfig:
    """Merge a YAML configuration with command-line overrides (None = not given)."""
    if config_file is not None:
        if not config_file.exists():
            msg = f"Config file not found: {config_file}"
            raise FileNotFoundError(msg)
        base = ClassifierConfig.from_yaml(config_file)
    else:
        base = ClassifierConfig()
    given = {key: value for key, value in overrides.items() if value is not None}
    if not given:
        return base
    return ClassifierConfig(**{**base.model_dump(), **given})


def load_scheme(archive: TabularReadArchive, name: str, path: Path | None) -> ClassificationScheme:
    """Load a scheme from its hierarchy table, or build a flat one from the matches."""
    if path is not None:
        return ClassificationScheme.from_table(name, path)
    return ClassificationScheme.flat(name, archive.class_ids(name))


@contextmanager
def _cancel_on_interrupt(token: CancellationToken) -> Generator[None, None, None]:
    """Turn Ctrl-C into a cooperative cancellation for the duration of the block."""

    def handler(signum: int, frame: object) -> None:
        token.cancel()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _display_summary_table(summary: RunSummary) -> None:
    """Display run statistics as a Rich table."""
    table = Table(title="Classification Summary", show_header=True)

    table.add_column("Scheme", style="cyan", no_wrap=True)
    table.add_column("Algorithm")
    table.add_column("Assigned", justify="right", style="magenta")
    table.add_column("Unassigned", justify="right", style="dim")
    table.add_column("Classes", justify="right", style="green")

    for scheme in summary.schemes:
        table.add_row(
            scheme.name,
            scheme.algorithm,
            f"{scheme.assigned:,}",
            f"{scheme.unassigned:,}",
            f"{scheme.classification_size:,}",
        )

    console.print()
    console.print(table)
    console.print()

    console.print(f"Total reads: {summary.reads_found:,}")
    if summary.low_complexity_reads:
        console.print(f"Low complexity: {summary.low_complexity_reads:,}")
    console.print(f"With hits: {summary.reads_with_hits:,} ({summary.with_hits_pct:.1f}%)")
    console.print(f"Alignments: {summary.matches_found:,}")
    if summary.assigned_via_mate:
        console.print(f"Assigned via mate: {summary.assigned_via_mate:,}")
    console.print(f"Min support: {summary.min_support:,}")
    console.print()
