"""
Read archives: the source of reads and their alignments.

The classification driver only depends on the ReadArchive protocol: a
forward-only, progress-reporting iterator over all reads, plus an optional
second handle that fetches a read by uid (used to look up mates).

Two implementations are provided:

- TabularReadArchive streams a reads table and a matches table with Polars
  in bounded-size batches, suitable for 100M+ alignment records.
- InMemoryReadArchive serves a sequence of ReadRecord objects, for small
  inputs and programmatic use.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path
from types import TracebackType
from typing import Any, ClassVar, Protocol, Self

import numpy as np
import polars as pl

from readassign.core.exceptions import (
    ArchiveIOError,
    InvalidThresholdError,
    MateNotFoundError,
)
from readassign.core.io_utils import scan_dataframe
from readassign.models.reads import MatchRecord, ReadRecord

logger = logging.getLogger(__name__)

# Pre-filter used when streaming: keeps every alignment a scoring filter could accept
STREAM_MIN_SCORE = 0.0
STREAM_MAX_EXPECTED = 10.0


class MateReader(Protocol):
    """Random-access handle returning a read by uid."""

    def read_mate(self, mate_uid: int) -> ReadRecord: ...

    def close(self) -> None: ...

    def __enter__(self) -> Self: ...

    def __exit__(self, *exc_info: object) -> None: ...


class ReadArchive(Protocol):
    """Contract between the classification driver and an archive."""

    source: str

    @property
    def supports_random_access(self) -> bool: ...

    def iterate_all_reads(
        self,
        min_score: float = STREAM_MIN_SCORE,
        max_expected: float = STREAM_MAX_EXPECTED,
        want_matches: bool = True,
        want_targets: bool = True,
    ) -> ReadStream: ...

    def open_mate_reader(self) -> MateReader: ...


class ReadStream:
    """
    Forward-only, closeable iterator over reads with progress reporting.

    maximum_progress is the total number of reads when the archive knows
    it (0 otherwise); progress is the number of reads yielded so far.
    The stream cannot be restarted.
    """

    def __init__(self, reads: Iterator[ReadRecord], maximum_progress: int = 0) -> None:
        self._reads = reads
        self.maximum_progress = maximum_progress
        self._progress = 0
        self._started = False
        self.closed = False

    @property
    def progress(self) -> int:
        return self._progress

    def __iter__(self) -> Iterator[ReadRecord]:
        if self._started:
            msg = "ReadStream is forward-only and cannot be restarted"
            raise RuntimeError(msg)
        self._started = True
        for read in self._reads:
            self._progress += 1
            yield read

    def close(self) -> None:
        if not self.closed:
            close = getattr(self._reads, "close", None)
            if close is not None:
                close()
            self.closed = True

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def _filter_matches(
    matches: Iterable[MatchRecord],
    min_score: float,
    max_expected: float,
) -> tuple[MatchRecord, ...]:
    return tuple(
        m for m in matches if m.bit_score >= min_score and m.expected <= max_expected
    )


def _strip_targets(matches: Iterable[MatchRecord]) -> tuple[MatchRecord, ...]:
    return tuple(m._replace(class_ids={}) for m in matches)


# =============================================================================
# In-memory archive
# =============================================================================


class InMemoryReadArchive:
    """
    Archive backed by a sequence of ReadRecord objects.

    Example:
        >>> archive = InMemoryReadArchive([ReadRecord(uid=1)])
        >>> with archive.iterate_all_reads() as reads:
        ...     [r.uid for r in reads]
        [1]
    """

    def __init__(
        self,
        reads: Sequence[ReadRecord],
        source: str = "memory",
        random_access: bool = True,
    ) -> None:
        self.reads = list(reads)
        self.source = source
        self._random_access = random_access

    @property
    def supports_random_access(self) -> bool:
        return self._random_access

    def iterate_all_reads(
        self,
        min_score: float = STREAM_MIN_SCORE,
        max_expected: float = STREAM_MAX_EXPECTED,
        want_matches: bool = True,
        want_targets: bool = True,
    ) -> ReadStream:
        def generate() -> Iterator[ReadRecord]:
            for read in self.reads:
                yield _prepare(read, min_score, max_expected, want_matches, want_targets)

        return ReadStream(generate(), maximum_progress=len(self.reads))

    def open_mate_reader(self) -> _InMemoryMateReader:
        if not self._random_access:
            raise ArchiveIOError(self.source, "archive does not support random access")
        return _InMemoryMateReader(self.source, {read.uid: read for read in self.reads})


class _InMemoryMateReader:
    def __init__(self, source: str, index: dict[int, ReadRecord]) -> None:
        self.source = source
        self._index: dict[int, ReadRecord] | None = index

    def read_mate(self, mate_uid: int) -> ReadRecord:
        if self._index is None:
            raise ArchiveIOError(self.source, "mate reader is closed")
        read = self._index.get(mate_uid)
        if read is None:
            raise MateNotFoundError(self.source, mate_uid)
        return read

    def close(self) -> None:
        self._index = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _prepare(
    read: ReadRecord,
    min_score: float,
    max_expected: float,
    want_matches: bool,
    want_targets: bool,
) -> ReadRecord:
    if not want_matches:
        return read._replace(matches=())
    matches = _filter_matches(read.matches, min_score, max_expected)
    if not want_targets:
        matches = _strip_targets(matches)
    return read._replace(matches=matches)


# =============================================================================
# Tabular archive (Polars)
# =============================================================================


class TabularReadArchive:
    """
    Archive stored as a reads table and a matches table.

    Reads table columns: uid (required), name, weight, complexity,
    mate_uid, length. Matches table columns: read_uid, bit_score,
    percent_identity, expected (required), reference, query_start,
    query_end (optional), and one integer column per classification
    scheme holding the target id of the aligned reference.

    Both tables must be ordered by ascending read uid; the archive merges
    them in a single forward pass and never holds more than one batch of
    each in memory. Without a reads table, reads are derived from the
    matches table with weight 1 and no mate information.

    Example:
        archive = TabularReadArchive(
            Path("matches.parquet"),
            reads_path=Path("reads.parquet"),
            schemes=["Taxonomy", "EC"],
        )
        with archive.iterate_all_reads() as reads:
            for read in reads:
                print(read.uid, read.num_matches)
    """

    REQUIRED_MATCH_COLUMNS: ClassVar[tuple[str, ...]] = (
        "read_uid",
        "bit_score",
        "percent_identity",
        "expected",
    )
    OPTIONAL_MATCH_COLUMNS: ClassVar[tuple[str, ...]] = (
        "reference",
        "query_start",
        "query_end",
    )
    READ_COLUMNS: ClassVar[dict[str, Any]] = {
        "name": "",
        "weight": 1,
        "complexity": 0.0,
        "mate_uid": 0,
        "length": 0,
    }

    MIN_CHUNK_SIZE = 100
    MAX_CHUNK_SIZE = 100_000_000

    def __init__(
        self,
        matches_path: Path,
        reads_path: Path | None = None,
        schemes: Sequence[str] = (),
        chunk_size: int = 1_000_000,
    ) -> None:
        """
        Initialize tabular archive.

        Args:
            matches_path: Matches table (TSV, CSV or Parquet)
            reads_path: Optional reads table
            schemes: Scheme names whose target-id columns should be loaded
            chunk_size: Number of rows per streamed batch

        Raises:
            InvalidThresholdError: If chunk_size is outside the valid range
            FileNotFoundError: If a table does not exist
            ArchiveIOError: If required columns are missing
        """
        if not self.MIN_CHUNK_SIZE <= chunk_size <= self.MAX_CHUNK_SIZE:
            raise InvalidThresholdError(
                "chunk_size", chunk_size, self.MIN_CHUNK_SIZE, self.MAX_CHUNK_SIZE
            )

        self.matches_path = matches_path
        self.reads_path = reads_path
        self.chunk_size = chunk_size
        self.source = str(reads_path or matches_path)
        self._validate_paths()

        match_columns = self._columns(matches_path)
        missing = [c for c in self.REQUIRED_MATCH_COLUMNS if c not in match_columns]
        if missing:
            raise ArchiveIOError(str(matches_path), f"missing columns: {', '.join(missing)}")

        self.scheme_columns = [s for s in schemes if s in match_columns]
        for scheme in schemes:
            if scheme not in match_columns:
                logger.warning(
                    "Matches table %s has no column for scheme %s; all its reads will be unassigned",
                    matches_path,
                    scheme,
                )
        self._match_columns = [
            *self.REQUIRED_MATCH_COLUMNS,
            *(c for c in self.OPTIONAL_MATCH_COLUMNS if c in match_columns),
            *self.scheme_columns,
        ]

        self._read_columns: list[str] = []
        if reads_path is not None:
            read_columns = self._columns(reads_path)
            if "uid" not in read_columns:
                raise ArchiveIOError(str(reads_path), "missing column: uid")
            self._read_columns = ["uid", *(c for c in self.READ_COLUMNS if c in read_columns)]

    def _validate_paths(self) -> None:
        for path in (self.matches_path, self.reads_path):
            if path is not None and not path.exists():
                msg = f"Archive table not found: {path}"
                raise FileNotFoundError(msg)

    def _columns(self, path: Path) -> list[str]:
        try:
            return scan_dataframe(path).collect_schema().names()
        except (OSError, pl.exceptions.PolarsError) as e:
            raise ArchiveIOError(str(path), str(e)) from e

    @property
    def supports_random_access(self) -> bool:
        return self.reads_path is not None

    def count_reads(self) -> int:
        """Number of reads in the archive."""
        if self.reads_path is not None:
            lf = scan_dataframe(self.reads_path)
            return int(lf.select(pl.len()).collect().item())
        lf = scan_dataframe(self.matches_path)
        return int(lf.select(pl.col("read_uid").n_unique()).collect().item())

    def count_matches(self) -> int:
        """Number of alignment rows in the matches table."""
        return int(scan_dataframe(self.matches_path).select(pl.len()).collect().item())

    def class_ids(self, scheme: str) -> list[int]:
        """Distinct positive target ids of a scheme column, ascending."""
        if scheme not in self.scheme_columns:
            return []
        df = (
            scan_dataframe(self.matches_path)
            .select(pl.col(scheme).cast(pl.Int64))
            .filter(pl.col(scheme) > 0)
            .unique()
            .sort(scheme)
            .collect()
        )
        return df[scheme].to_list()

    def iterate_all_reads(
        self,
        min_score: float = STREAM_MIN_SCORE,
        max_expected: float = STREAM_MAX_EXPECTED,
        want_matches: bool = True,
        want_targets: bool = True,
    ) -> ReadStream:
        try:
            total = self.count_reads()
        except (OSError, pl.exceptions.PolarsError) as e:
            raise ArchiveIOError(self.source, str(e)) from e
        return ReadStream(
            self._generate_reads(min_score, max_expected, want_matches, want_targets),
            maximum_progress=total,
        )

    def open_mate_reader(self) -> TabularMateReader:
        if self.reads_path is None:
            raise ArchiveIOError(self.source, "archive has no reads table for random access")
        return TabularMateReader(self, self.reads_path, self.matches_path)

    def _generate_reads(
        self,
        min_score: float,
        max_expected: float,
        want_matches: bool,
        want_targets: bool,
    ) -> Iterator[ReadRecord]:
        try:
            groups = self._iter_match_groups(want_targets) if want_matches else iter(())
            if self.reads_path is None:
                for uid, matches in groups:
                    yield ReadRecord(
                        uid=uid,
                        matches=_filter_matches(matches, min_score, max_expected),
                    )
                return

            pending = next(groups, None)
            previous_uid: int | None = None
            for row in self._iter_read_rows():
                uid = row["uid"]
                if previous_uid is not None and uid <= previous_uid:
                    raise ArchiveIOError(
                        str(self.reads_path), f"reads not sorted by uid at uid {uid}"
                    )
                previous_uid = uid

                while pending is not None and pending[0] < uid:
                    logger.warning("Skipping matches of read %d absent from reads table", pending[0])
                    pending = next(groups, None)

                matches: tuple[MatchRecord, ...] = ()
                if pending is not None and pending[0] == uid:
                    matches = _filter_matches(pending[1], min_score, max_expected)
                    pending = next(groups, None)

                yield self._read_from_row(row, matches)
        except (OSError, pl.exceptions.PolarsError) as e:
            raise ArchiveIOError(self.source, str(e)) from e

    def _iter_read_rows(self) -> Iterator[dict[str, Any]]:
        assert self.reads_path is not None
        batches = (
            scan_dataframe(self.reads_path)
            .select(self._read_columns)
            .collect_batches(chunk_size=self.chunk_size)
        )
        for chunk_df in batches:
            yield from chunk_df.iter_rows(named=True)

    def _iter_match_groups(self, want_targets: bool) -> Iterator[tuple[int, list[MatchRecord]]]:
        """
        Group consecutive match rows by read uid.

        Groups are yielded once the next uid appears, so a read whose
        matches straddle two batches is still emitted as one group.
        """
        batches = (
            scan_dataframe(self.matches_path)
            .select(self._match_columns)
            .collect_batches(chunk_size=self.chunk_size)
        )
        scheme_columns = self.scheme_columns if want_targets else []

        pending_uid: int | None = None
        pending: list[MatchRecord] = []
        for chunk_df in batches:
            if chunk_df.is_empty():
                continue
            for row in chunk_df.iter_rows(named=True):
                uid = row["read_uid"]
                if uid != pending_uid:
                    if pending_uid is not None:
                        if uid < pending_uid:
                            raise ArchiveIOError(
                                str(self.matches_path),
                                f"matches not grouped by ascending read uid at uid {uid}",
                            )
                        yield pending_uid, pending
                    pending_uid, pending = uid, []
                pending.append(_match_from_row(row, scheme_columns))

        if pending_uid is not None:
            yield pending_uid, pending

    def _read_from_row(self, row: dict[str, Any], matches: tuple[MatchRecord, ...]) -> ReadRecord:
        values = {
            key: default if row.get(key) is None else row[key]
            for key, default in self.READ_COLUMNS.items()
        }
        return ReadRecord(
            uid=row["uid"],
            name=str(values["name"]),
            weight=int(values["weight"]),
            complexity=float(values["complexity"]),
            mate_uid=int(values["mate_uid"]),
            length=int(values["length"]),
            matches=matches,
        )


def _match_from_row(row: dict[str, Any], scheme_columns: Sequence[str]) -> MatchRecord:
    return MatchRecord(
        bit_score=float(row["bit_score"]),
        percent_identity=float(row["percent_identity"]),
        expected=float(row["expected"]),
        class_ids={s: int(row[s]) for s in scheme_columns if row[s] is not None},
        query_start=row.get("query_start"),
        query_end=row.get("query_end"),
        reference=row.get("reference") or "",
    )


class TabularMateReader:
    """
    Second, read-only handle on a tabular archive for mate lookups.

    Opening the reader builds a uid index of both tables once: the sorted
    read uids, and the first row and row count of each read's matches.
    A lookup then slices the needed rows only. CSV/TSV tables are first
    streamed into temporary Parquet copies so that a slice reads just the
    row groups holding it; the copies are removed on close.
    """

    def __init__(self, archive: TabularReadArchive, reads_path: Path, matches_path: Path) -> None:
        self._archive = archive
        self.source = str(reads_path)
        self._tmp_dir: Path | None = None
        try:
            reads = self._parquet_scan(reads_path, archive._read_columns, "reads")
            matches = self._parquet_scan(matches_path, archive._match_columns, "matches")
            self._read_uids = self._read_index(reads)
            self._match_uids, self._match_offsets, self._match_counts = self._match_index(matches)
        except (OSError, pl.exceptions.PolarsError) as e:
            self._remove_tmp_dir()
            raise ArchiveIOError(self.source, str(e)) from e
        except ArchiveIOError:
            self._remove_tmp_dir()
            raise
        self._reads: pl.LazyFrame | None = reads
        self._matches: pl.LazyFrame | None = matches
        logger.debug("Indexed %d reads for mate lookups", len(self._read_uids))

    def _parquet_scan(self, path: Path, columns: list[str], label: str) -> pl.LazyFrame:
        lf = scan_dataframe(path).select(columns)
        if path.suffix.lower() == ".parquet":
            return lf
        if self._tmp_dir is None:
            self._tmp_dir = Path(tempfile.mkdtemp(prefix="readassign-mates-"))
        copy = self._tmp_dir / f"{label}.parquet"
        lf.sink_parquet(copy)
        return pl.scan_parquet(copy)

    def _read_index(self, reads: pl.LazyFrame) -> np.ndarray:
        uids = reads.select(pl.col("uid").cast(pl.Int64)).collect()["uid"].to_numpy()
        if len(uids) > 1 and not bool(np.all(uids[1:] > uids[:-1])):
            raise ArchiveIOError(self.source, "reads not sorted by uid; mate lookups need sorted reads")
        return uids

    def _match_index(self, matches: pl.LazyFrame) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        index = (
            matches.select(pl.col("read_uid").cast(pl.Int64))
            .with_row_index("row")
            .group_by("read_uid")
            .agg(
                pl.col("row").min().alias("offset"),
                pl.col("row").max().alias("last"),
                pl.len().alias("count"),
            )
            .sort("read_uid")
            .collect()
        )
        offsets = index["offset"].to_numpy().astype(np.int64)
        counts = index["count"].to_numpy().astype(np.int64)
        if not bool(np.all(index["last"].to_numpy() - offsets + 1 == counts)):
            raise ArchiveIOError(
                str(self._archive.matches_path), "matches not grouped by read uid"
            )
        return index["read_uid"].to_numpy(), offsets, counts

    def read_mate(self, mate_uid: int) -> ReadRecord:
        if self._reads is None or self._matches is None:
            raise ArchiveIOError(self.source, "mate reader is closed")

        row = _find(self._read_uids, mate_uid)
        if row is None:
            raise MateNotFoundError(self.source, mate_uid)
        try:
            read_df = self._reads.slice(row, 1).collect()
            match_df = None
            group = _find(self._match_uids, mate_uid)
            if group is not None:
                offset = int(self._match_offsets[group])
                count = int(self._match_counts[group])
                match_df = self._matches.slice(offset, count).collect()
        except (OSError, pl.exceptions.PolarsError) as e:
            raise ArchiveIOError(self.source, str(e)) from e

        matches: tuple[MatchRecord, ...] = ()
        if match_df is not None:
            matches = tuple(
                _match_from_row(match_row, self._archive.scheme_columns)
                for match_row in match_df.iter_rows(named=True)
            )
        return self._archive._read_from_row(read_df.row(0, named=True), matches)

    def close(self) -> None:
        self._reads = None
        self._matches = None
        self._remove_tmp_dir()

    def _remove_tmp_dir(self) -> None:
        if self._tmp_dir is not None:
            shutil.rmtree(self._tmp_dir, ignore_errors=True)
            self._tmp_dir = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _find(sorted_uids: np.ndarray, uid: int) -> int | None:
    """Position of uid in a sorted uid array, or None."""
    pos = int(np.searchsorted(sorted_uids, uid))
    if pos < len(sorted_uids) and sorted_uids[pos] == uid:
        return pos
    return None
