"""
Shared CLI utilities for readassign commands.

Provides common functionality used across CLI modules.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)


@contextmanager
def spinner_progress(
    description: str,
    console: Console | None = None,
    quiet: bool = False,
) -> Generator[Progress, None, None]:
    """Context manager for spinner-style progress display.

    The spinner is suppressed when quiet mode is enabled.

    Args:
        description: Task description to display.
        console: Rich Console instance.
        quiet: If True, suppress the progress display entirely.

    Yields:
        Progress instance (even when quiet, for API consistency).
    """
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        disable=quiet,
    ) as progress:
        progress.add_task(description=description, total=None)
        yield progress


class RichProgressListener:
    """Progress listener rendering driver progress as a Rich progress bar.

    Example:
        >>> with RichProgressListener(console) as listener:
        ...     classify_archive(archive, schemes, config, sink, progress=listener)
    """

    def __init__(self, console: Console | None = None, quiet: bool = False):
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
            disable=quiet,
            refresh_per_second=4,
        )
        self._task: TaskID | None = None

    def __enter__(self) -> RichProgressListener:
        self._progress.start()
        self._task = self._progress.add_task("Starting...", total=None)
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._progress.stop()

    def set_subtask(self, description: str) -> None:
        if self._task is not None:
            self._progress.update(self._task, description=description)

    def set_maximum(self, maximum: int) -> None:
        if self._task is not None:
            self._progress.update(self._task, total=maximum or None, completed=0)

    def set_progress(self, progress: int) -> None:
        if self._task is not None:
            self._progress.update(self._task, completed=progress)


def configure_logging(verbose: bool, console: Console | None = None) -> None:
    """Route library log records through Rich.

    Warnings are always shown; INFO (the run summary lines) and DEBUG are
    shown with --verbose.
    """
    handler = RichHandler(console=console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger("readassign")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.propagate = False


def parse_scheme_option(value: str) -> tuple[str, Path | None]:
    """Parse a --scheme value of the form NAME=PATH or NAME.

    A bare NAME declares a flat scheme whose ids are taken from the
    matches table.

    Example:
        >>> parse_scheme_option("Taxonomy=tax.tsv")
        ('Taxonomy', PosixPath('tax.tsv'))
        >>> parse_scheme_option("EC")
        ('EC', None)
    """
    name, sep, path = value.partition("=")
    name = name.strip()
    if not name:
        msg = f"Invalid scheme '{value}'. Use NAME=PATH or NAME."
        raise typer.BadParameter(msg)
    if sep and not path.strip():
        msg = f"Missing hierarchy path for scheme '{name}'"
        raise typer.BadParameter(msg)
    return name, Path(path.strip()) if sep else None


class QuietConsole:
    """Console wrapper that suppresses output in quiet mode.

    Wraps a Rich Console instance and drops print output when quiet mode
    is enabled. All other console methods are delegated to the wrapped
    instance.
    """

    def __init__(self, console: Console, quiet: bool = False):
        self._console = console
        self._quiet = quiet

    def print(self, *args: Any, **kwargs: Any) -> None:
        if not self._quiet:
            self._console.print(*args, **kwargs)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._console, name)
