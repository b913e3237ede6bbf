"""
E2E test fixtures for readassign CLI testing.

Provides fixtures that combine the archive factory with CLI invocation
helpers for end-to-end testing.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from readassign.cli.main import app
from tests.factories import ArchiveDataFactory, ArchiveFiles

if TYPE_CHECKING:
    from click.testing import Result


# =============================================================================
# Core Fixtures
# =============================================================================


@pytest.fixture
def e2e_runner() -> CliRunner:
    """Provide a CLI runner for E2E tests."""
    return CliRunner()


@pytest.fixture
def archive_factory(tmp_path: Path) -> ArchiveDataFactory:
    """Provide a seeded archive generator."""
    return ArchiveDataFactory(tmp_path / "archive", seed=42)


# =============================================================================
# Standard Archive Fixtures
# =============================================================================


@pytest.fixture
def standard_archive(archive_factory: ArchiveDataFactory) -> ArchiveFiles:
    """
    Mixed archive of 40 reads:
    20 species, 8 genus, 6 family, 4 unassigned and 2 low complexity reads.
    """
    archive_factory.add_species_reads(12, species=562)
    archive_factory.add_species_reads(8, species=590)
    archive_factory.add_genus_reads(8)
    archive_factory.add_family_reads(6)
    archive_factory.add_unassigned_reads(4)
    archive_factory.add_low_complexity_reads(2)
    return archive_factory.write()


# =============================================================================
# CLI Invocation Helpers
# =============================================================================


@pytest.fixture
def run_classify(e2e_runner: CliRunner, tmp_path: Path) -> Callable[..., Result]:
    """
    Fixture that returns a function to run the classify command.

    Usage:
        result = run_classify(files, output_dir_name="out", extra_args=["--paired"])
    """

    def _run(
        files: ArchiveFiles,
        output_dir_name: str = "results",
        output_format: str = "csv",
        with_reads: bool = True,
        with_ec: bool = True,
        summary_name: str | None = "summary.json",
        extra_args: list[str] | None = None,
    ) -> Result:
        args = [
            "classify",
            "--matches", str(files.matches),
            "--scheme", f"Taxonomy={files.taxonomy}",
            "--output-dir", str(tmp_path / output_dir_name),
            "--format", output_format,
            "--min-support-percent", "0",
            "--min-complexity", "0.3",
            "--quiet",
        ]
        if with_reads:
            args.extend(["--reads", str(files.reads)])
        if with_ec:
            args.extend(["--scheme", f"EC={files.ec}"])
        if summary_name:
            args.extend(["--summary", str(tmp_path / summary_name)])
        if extra_args:
            args.extend(extra_args)
        return e2e_runner.invoke(app, args)

    return _run
