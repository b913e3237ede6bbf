"""
I/O utilities for DataFrame serialization.

Provides consistent handling of table formats (CSV/TSV/Parquet) across the
codebase, and atomic replacement of committed output files.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Generator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Literal

import polars as pl

OutputFormat = Literal["csv", "parquet"]


def write_dataframe(
    df: pl.DataFrame,
    path: Path,
    output_format: OutputFormat = "csv",
) -> None:
    """
    Write DataFrame to file in specified format.

    For Parquet output, uses zstd compression for optimal size/speed tradeoff.
    CSV output is tab-separated when the path ends in .tsv.

    Args:
        df: Polars DataFrame to write.
        path: Output file path.
        output_format: Output format - 'csv' or 'parquet'.
    """
    if output_format == "parquet":
        df.write_parquet(path, compression="zstd")
    else:
        separator = "\t" if path.name.lower().endswith(".tsv") else ","
        df.write_csv(path, separator=separator)


@contextmanager
def atomic_path(path: Path) -> Generator[Path, None, None]:
    """
    Yield a temporary path that replaces path when the block succeeds.

    On error the temporary file is removed and path is left untouched.

    Example:
        >>> with atomic_path(Path("summary.json")) as tmp:
        ...     tmp.write_text("{}")
    """
    with atomic_paths([path]) as (tmp_path,):
        yield tmp_path


@contextmanager
def atomic_paths(paths: Sequence[Path]) -> Generator[list[Path], None, None]:
    """
    Yield one temporary path per target; all replace their targets together.

    Nothing is moved into place until the block has written every file, so
    a failure in any write leaves all targets untouched.

    Example:
        >>> with atomic_paths([Path("a.csv"), Path("b.csv")]) as (tmp_a, tmp_b):
        ...     tmp_a.write_text("x")
        ...     tmp_b.write_text("y")
    """
    tmp_paths: list[Path] = []
    try:
        for path in paths:
            fd, name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            os.close(fd)
            tmp_paths.append(Path(name))
        yield tmp_paths
        for tmp_path, path in zip(tmp_paths, paths, strict=True):
            os.replace(tmp_path, path)
    finally:
        for tmp_path in tmp_paths:
            if tmp_path.exists():
                tmp_path.unlink()


def read_dataframe(path: Path) -> pl.DataFrame:
    """
    Read DataFrame from file, auto-detecting format from extension.

    Supports: .csv, .tsv, .parquet, .csv.gz, .tsv.gz

    Args:
        path: Input file path.

    Returns:
        Polars DataFrame.

    Raises:
        ValueError: If file extension is not recognized.
    """
    suffix = path.suffix.lower()
    name = path.name.lower()

    if suffix == ".parquet":
        return pl.read_parquet(path)
    if suffix == ".csv" or name.endswith(".csv.gz"):
        return pl.read_csv(path)
    if suffix == ".tsv" or name.endswith(".tsv.gz"):
        return pl.read_csv(path, separator="\t")
    msg = f"Unrecognized file format: {path}"
    raise ValueError(msg)


def scan_dataframe(path: Path) -> pl.LazyFrame:
    """
    Lazily scan a table, auto-detecting format from extension.

    Compressed CSV/TSV files cannot be scanned lazily and are read eagerly.

    Raises:
        ValueError: If file extension is not recognized.
    """
    suffix = path.suffix.lower()
    name = path.name.lower()

    if suffix == ".parquet":
        return pl.scan_parquet(path)
    if name.endswith((".csv.gz", ".tsv.gz")):
        return read_dataframe(path).lazy()
    if suffix == ".csv":
        return pl.scan_csv(path)
    if suffix == ".tsv":
        return pl.scan_csv(path, separator="\t")
    msg = f"Unrecognized file format: {path}"
    raise ValueError(msg)


def output_format_for(path: Path) -> OutputFormat:
    """Output format implied by a file extension."""
    return "parquet" if path.suffix.lower() == ".parquet" else "csv"
