"""
Persistence of classification results.

The pipeline hands the finished UpdateBuffer to a PersistenceSink. The
table sink writes three files into an output directory:

    assignments.<ext>   read_uid, weight and one class-id column per scheme
    class_sizes.<ext>   scheme, class_id, weight
    run.json            CommitMetadata (schemes, read count, parameters)

All three files are written to temporary siblings first and only moved
into place once every write has succeeded, so a failed commit leaves the
previous one untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import polars as pl

from readassign.core.exceptions import PersistenceError
from readassign.core.io_utils import OutputFormat, atomic_path, atomic_paths, write_dataframe
from readassign.models.summary import CommitMetadata

if TYPE_CHECKING:
    from readassign.core.classification.assignments import UpdateBuffer
    from readassign.core.classification.driver import ProgressListener

logger = logging.getLogger(__name__)

ASSIGNMENTS_STEM = "assignments"
CLASS_SIZES_STEM = "class_sizes"
METADATA_FILE = "run.json"


class PersistenceSink(Protocol):
    """Destination of committed assignments."""

    def commit_assignments(
        self,
        scheme_names: Sequence[str],
        buffer: UpdateBuffer,
        progress: ProgressListener,
    ) -> None: ...

    def set_number_of_reads(self, number_of_reads: int) -> None: ...

    def classification_size(self, scheme: str) -> int: ...


class TableSink:
    """
    Write assignments as CSV/TSV or Parquet tables.

    Example:
        sink = TableSink(Path("results"), output_format="parquet")
        sink.commit_assignments(["Taxonomy"], buffer, NullProgress())
        sink.classification_size("Taxonomy")
    """

    def __init__(
        self,
        output_dir: Path,
        output_format: OutputFormat = "csv",
        parameters: str = "",
    ) -> None:
        self.output_dir = output_dir
        self.output_format = output_format
        self.parameters = parameters
        self._metadata: CommitMetadata | None = None
        self._number_of_reads = 0

    @property
    def extension(self) -> str:
        return ".parquet" if self.output_format == "parquet" else ".csv"

    @property
    def assignments_path(self) -> Path:
        return self.output_dir / f"{ASSIGNMENTS_STEM}{self.extension}"

    @property
    def class_sizes_path(self) -> Path:
        return self.output_dir / f"{CLASS_SIZES_STEM}{self.extension}"

    @property
    def metadata_path(self) -> Path:
        return self.output_dir / METADATA_FILE

    def commit_assignments(
        self,
        scheme_names: Sequence[str],
        buffer: UpdateBuffer,
        progress: ProgressListener,
    ) -> None:
        """
        Write the assignment and class-size tables and the run metadata.

        Raises:
            PersistenceError: If a file cannot be written; files already in
                place from an earlier commit are left unchanged
        """
        missing = [name for name in scheme_names if name not in buffer.scheme_names]
        if missing:
            msg = f"Schemes not in assignment buffer: {', '.join(missing)}"
            raise ValueError(msg)

        progress.set_subtask("Writing classification tables")
        assignments = buffer.to_dataframe().select(["read_uid", "weight", *scheme_names])
        class_sizes = _class_size_frame(scheme_names, buffer)
        sizes = {
            name: sum(
                1
                for class_id, weight in buffer.class_counts(name).items()
                if class_id > 0 and weight > 0
            )
            for name in scheme_names
        }
        metadata = CommitMetadata(
            schemes=list(scheme_names),
            number_of_reads=self._number_of_reads,
            parameters=self.parameters,
            classification_sizes=sizes,
        )

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            targets = [self.assignments_path, self.class_sizes_path, self.metadata_path]
            with atomic_paths(targets) as (assignments_tmp, sizes_tmp, metadata_tmp):
                write_dataframe(assignments, assignments_tmp, self.output_format)
                write_dataframe(class_sizes, sizes_tmp, self.output_format)
                metadata_tmp.write_text(metadata.model_dump_json(indent=2) + "\n")
        except (OSError, pl.exceptions.PolarsError) as e:
            raise PersistenceError(str(self.output_dir), str(e)) from e

        self._metadata = metadata
        logger.info(
            "Wrote %d assignments for %d schemes to %s",
            assignments.height,
            len(scheme_names),
            self.assignments_path,
        )

    def set_number_of_reads(self, number_of_reads: int) -> None:
        """Record the total read count; updates run.json if already committed."""
        self._number_of_reads = number_of_reads
        if self._metadata is not None:
            metadata = self._metadata.model_copy(update={"number_of_reads": number_of_reads})
            try:
                self._write_metadata(metadata)
            except OSError as e:
                raise PersistenceError(str(self.metadata_path), str(e)) from e
            self._metadata = metadata

    def classification_size(self, scheme: str) -> int:
        """Number of real classes holding reads in the last commit (0 before commit)."""
        if self._metadata is None:
            return 0
        return self._metadata.classification_sizes.get(scheme, 0)

    def _write_metadata(self, metadata: CommitMetadata) -> None:
        with atomic_path(self.metadata_path) as tmp_path:
            tmp_path.write_text(metadata.model_dump_json(indent=2) + "\n")


def _class_size_frame(scheme_names: Sequence[str], buffer: UpdateBuffer) -> pl.DataFrame:
    rows = [
        (name, class_id, weight)
        for name in scheme_names
        for class_id, weight in sorted(buffer.class_counts(name).items())
        if weight > 0
    ]
    return pl.DataFrame(
        rows,
        schema={"scheme": pl.Utf8, "class_id": pl.Int64, "weight": pl.Int64},
        orient="row",
    )
