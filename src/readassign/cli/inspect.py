"""
Inspect command: summarize an archive and its classification schemes
without classifying.
"""

from __future__ import annotations

from pathlib import Path

import polars as pl
import typer
from rich.console import Console
from rich.table import Table

from readassign.cli.utils import parse_scheme_option, spinner_progress
from readassign.core.archive import TabularReadArchive
from readassign.core.exceptions import ReadAssignError
from readassign.core.hierarchy import ClassificationScheme

console = Console()


def inspect(
    matches: Path = typer.Option(
        ...,
        "--matches",
        "-m",
        help="Matches table (TSV, CSV or Parquet)",
    ),
    reads: Path | None = typer.Option(
        None,
        "--reads",
        "-r",
        help="Reads table",
    ),
    scheme: list[str] = typer.Option(
        [],
        "--scheme",
        "-s",
        help="Scheme as NAME=HIERARCHY_TABLE or NAME (repeatable)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress the spinner",
    ),
) -> None:
    """
    Show read, alignment and scheme statistics of an archive.

    Example:

        readassign inspect -m matches.parquet -r reads.parquet -s Taxonomy=taxonomy.tsv
    """
    try:
        specs = [parse_scheme_option(value) for value in scheme]
        archive = TabularReadArchive(matches, reads_path=reads, schemes=[n for n, _ in specs])
        with spinner_progress("Scanning archive...", console, quiet):
            num_reads = archive.count_reads()
            num_matches = archive.count_matches()
            rows = []
            for name, path in specs:
                ids = archive.class_ids(name)
                if path is None:
                    rows.append((name, "flat", "-", f"{len(ids):,}", "-"))
                    continue
                hierarchy = ClassificationScheme.from_table(name, path)
                unknown = sum(1 for class_id in ids if class_id not in hierarchy)
                rows.append(
                    (
                        name,
                        hierarchy.label(hierarchy.root_id),
                        f"{len(hierarchy):,}",
                        f"{len(ids):,}",
                        f"{unknown:,}",
                    )
                )
    except typer.BadParameter as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from None
    except ReadAssignError as e:
        console.print(f"[red]Error: {e.full_message}[/red]")
        raise typer.Exit(code=1) from None
    except pl.exceptions.PolarsError as e:
        console.print(f"[red]Data processing error: {e}[/red]")
        raise typer.Exit(code=1) from None

    console.print(f"\n[bold]Archive:[/bold] {archive.source}")
    console.print(f"  Reads: {num_reads:,}")
    console.print(f"  Alignments: {num_matches:,}")
    console.print(f"  Random access (mates): {'yes' if archive.supports_random_access else 'no'}")

    if rows:
        table = Table(title="Classification Schemes", show_header=True)
        table.add_column("Scheme", style="cyan", no_wrap=True)
        table.add_column("Root")
        table.add_column("Nodes", justify="right")
        table.add_column("Ids in matches", justify="right", style="magenta")
        table.add_column("Not in hierarchy", justify="right", style="yellow")
        for row in rows:
            table.add_row(*row)
        console.print()
        console.print(table)
    console.print()
