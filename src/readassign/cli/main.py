"""
Main CLI entry point for readassign.

Provides subcommands:
- classify: Assign reads to classes and write the assignment tables
- inspect: Summarize an archive and its classification schemes
"""

from __future__ import annotations

import typer
from rich import print as rprint

from readassign import __version__

app = typer.Typer(
    name="readassign",
    help="Assign sequencing reads to taxonomic and functional classes",
    add_completion=False,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        rprint(f"readassign version {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    Readassign: assign sequencing reads to classification hierarchies.

    Reads are assigned from their alignments with best-hit or LCA-family
    algorithms, optionally refined by their mates and a min-support filter.
    """


# Import subcommands
from readassign.cli import classify, inspect as inspect_cmd  # noqa: E402

# Register subcommands
app.command(name="classify")(classify.classify)
app.command(name="inspect")(inspect_cmd.inspect)


if __name__ == "__main__":
    app()
