"""
Streaming classification driver.

Runs one sequential pass over a read archive and assigns every read a
class id under each classification scheme. The driver owns all mutable
state of the pass: the per-scheme SchemeState records, the raw counters
and the UpdateBuffer of assignments.

State machine:
    INIT -> STREAMING -> COMPLETED | CANCELLED

FAILED is entered when the archive or the mate reader raises; the error
propagates to the caller.
"""

from __future__ import annotations

import logging
import threading
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from readassign.core.classification.active_matches import ActiveSet, active_matches
from readassign.core.classification.algorithms import (
    AssignmentAlgorithm,
    create_assignment_algorithm,
)
from readassign.core.classification.assignments import UpdateBuffer
from readassign.core.classification.mate_pairs import resolve_mate_pair
from readassign.core.constants import LOW_COMPLEXITY_ID, NO_ID, UNASSIGNED_ID
from readassign.core.exceptions import (
    ArchiveIOError,
    ClassificationCancelled,
    ConfigurationError,
    MatePairsUnsupportedError,
)
from readassign.models.config import AlgorithmKind

if TYPE_CHECKING:
    from collections.abc import Sequence

    from readassign.core.archive import MateReader, ReadArchive
    from readassign.core.hierarchy import ClassificationScheme
    from readassign.models.config import ClassifierConfig
    from readassign.models.reads import ReadRecord

logger = logging.getLogger(__name__)

# Reads between two progress updates
PROGRESS_INTERVAL = 1000


class DriverState(str, Enum):
    """Lifecycle of a classification pass."""

    INIT = "init"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CancellationToken:
    """
    Cooperative cancellation flag, safe to set from another thread or a
    signal handler. The driver polls it once per read.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ProgressListener(Protocol):
    """Receiver of progress reports from long-running steps."""

    def set_subtask(self, description: str) -> None: ...

    def set_maximum(self, maximum: int) -> None: ...

    def set_progress(self, progress: int) -> None: ...


class NullProgress:
    """ProgressListener that discards all reports."""

    def set_subtask(self, description: str) -> None:
        pass

    def set_maximum(self, maximum: int) -> None:
        pass

    def set_progress(self, progress: int) -> None:
        pass


@dataclass
class SchemeState:
    """Per-scheme state carried through the streaming pass."""

    scheme: ClassificationScheme
    kind: AlgorithmKind
    algorithm: AssignmentAlgorithm
    top_percent: float
    known_ids: frozenset[int]

    # Counters (assigned and unassigned sum read weights)
    assigned: int = 0
    unassigned: int = 0
    coerced_unknown: int = 0

    @property
    def name(self) -> str:
        return self.scheme.name


@dataclass
class DriverCounters:
    """Raw counters of a streaming pass."""

    reads_found: int = 0
    matches_found: int = 0
    low_complexity_reads: int = 0
    reads_with_hits: int = 0
    assigned_via_mate: int = 0
    min_support: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "reads_found": self.reads_found,
            "matches_found": self.matches_found,
            "low_complexity_reads": self.low_complexity_reads,
            "reads_with_hits": self.reads_with_hits,
            "assigned_via_mate": self.assigned_via_mate,
            "min_support": self.min_support,
        }


@dataclass
class DriverResult:
    """Outcome of a completed streaming pass."""

    buffer: UpdateBuffer
    counters: DriverCounters
    schemes: list[SchemeState] = field(default_factory=list)


class ClassificationDriver:
    """
    Assign every read of an archive under each classification scheme.

    The taxonomy scheme (config.taxonomy_scheme) is the only one that takes
    part in mate-pair resolution; every other scheme is assigned from the
    read's own matches.

    Example:
        driver = ClassificationDriver(archive, [taxonomy, ec], config)
        result = driver.run()
        print(result.counters.reads_found, len(result.buffer))
    """

    def __init__(
        self,
        archive: ReadArchive,
        schemes: Sequence[ClassificationScheme],
        config: ClassifierConfig,
        progress: ProgressListener | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        if not schemes:
            msg = "At least one classification scheme is required"
            raise ConfigurationError(msg)
        names = [scheme.name for scheme in schemes]
        if len(set(names)) != len(names):
            msg = f"Duplicate classification scheme names: {', '.join(names)}"
            raise ConfigurationError(msg)

        self.archive = archive
        self.schemes = list(schemes)
        self.config = config
        self.progress = progress or NullProgress()
        self.token = token or CancellationToken()

        self.state = DriverState.INIT
        self.counters = DriverCounters()
        self.scheme_states: list[SchemeState] = []
        self.buffer = UpdateBuffer(names)
        self._taxonomy: SchemeState | None = None
        self._use_mates = False

    def run(self) -> DriverResult:
        """
        Run the streaming pass.

        Returns:
            DriverResult with the assignment buffer and counters

        Raises:
            ConfigurationError: If the configuration cannot be served by the
                archive or the schemes (raised before streaming)
            ArchiveIOError: If reading the archive or a mate fails
            ClassificationCancelled: If the token was cancelled mid-stream;
                the counters then reflect only the reads processed before
        """
        if self.state is not DriverState.INIT:
            msg = f"Driver already ran (state: {self.state.value})"
            raise RuntimeError(msg)
        self._initialize()

        self.state = DriverState.STREAMING
        try:
            self._stream()
        except ClassificationCancelled:
            self.state = DriverState.CANCELLED
            logger.info("Classification cancelled after %d reads", self.counters.reads_found)
            raise
        except ArchiveIOError:
            self.state = DriverState.FAILED
            raise
        except OSError as e:
            self.state = DriverState.FAILED
            raise ArchiveIOError(self.archive.source, str(e)) from e

        self._complete()
        self.state = DriverState.COMPLETED
        return DriverResult(self.buffer, self.counters, self.scheme_states)

    def _initialize(self) -> None:
        config = self.config
        if config.paired_reads and not self.archive.supports_random_access:
            raise MatePairsUnsupportedError(self.archive.source)

        for scheme in self.schemes:
            kind = config.algorithm_for(scheme.name)
            state = SchemeState(
                scheme=scheme,
                kind=kind,
                algorithm=create_assignment_algorithm(kind, scheme, config),
                top_percent=config.top_percent_for(scheme.name),
                known_ids=scheme.known_ids,
            )
            self.scheme_states.append(state)
            if scheme.name == config.taxonomy_scheme:
                self._taxonomy = state
            logger.debug("Scheme %s: %s assignment", scheme.name, kind.value)

        self._use_mates = config.paired_reads and self._taxonomy is not None
        if config.paired_reads and self._taxonomy is None:
            logger.warning(
                "Paired reads requested but no %s scheme is loaded; ignoring mates",
                config.taxonomy_scheme,
            )
        if self._use_mates:
            logger.info("Using paired reads in taxonomic assignment")
        if config.use_identity_filter:
            logger.info("Using min percent-identity values for taxonomic assignment")

    def _stream(self) -> None:
        self.progress.set_subtask("Processing alignments")
        with ExitStack() as stack:
            reads = stack.enter_context(self.archive.iterate_all_reads())
            mate_reader: MateReader | None = None
            if self._use_mates:
                mate_reader = stack.enter_context(self.archive.open_mate_reader())

            self.progress.set_maximum(reads.maximum_progress)
            self.progress.set_progress(0)

            for read in reads:
                if self.token.cancelled:
                    raise ClassificationCancelled(self.counters.reads_found)
                self._process_read(read, mate_reader)
                if reads.progress % PROGRESS_INTERVAL == 0:
                    self.progress.set_progress(reads.progress)
            if self.token.cancelled:
                raise ClassificationCancelled(self.counters.reads_found)

            self.progress.set_progress(reads.progress)

    def _process_read(self, read: ReadRecord, mate_reader: MateReader | None) -> None:
        counters = self.counters
        weight = read.effective_weight
        counters.reads_found += weight
        counters.matches_found += read.num_matches

        low_complexity = read.is_low_complexity(self.config.min_complexity)
        if low_complexity:
            counters.low_complexity_reads += weight

        hit_state = self._taxonomy or self.scheme_states[0]
        active_by_scheme = {state.name: self._active(state, read) for state in self.scheme_states}
        if active_by_scheme[hit_state.name]:
            counters.reads_with_hits += weight

        class_ids: list[int] = []
        for state in self.scheme_states:
            if low_complexity:
                class_id = LOW_COMPLEXITY_ID
            else:
                active = active_by_scheme[state.name]
                class_id = state.algorithm.compute_id(active, read)
                if state is self._taxonomy and mate_reader is not None and read.mate_uid > 0:
                    class_id = self._resolve_with_mate(state, class_id, read, mate_reader)

            if class_id not in state.known_ids:
                if class_id != NO_ID:
                    state.coerced_unknown += 1
                class_id = UNASSIGNED_ID

            if class_id == UNASSIGNED_ID:
                state.unassigned += weight
            elif class_id > 0:
                state.assigned += weight
            class_ids.append(class_id)

        self.buffer.add(read.uid, weight, class_ids)

    def _active(self, state: SchemeState, read: ReadRecord) -> ActiveSet:
        config = self.config
        return active_matches(
            read,
            state.name,
            config.min_score,
            state.top_percent,
            config.max_expected,
            config.min_percent_identity,
        )

    def _resolve_with_mate(
        self,
        state: SchemeState,
        class_id: int,
        read: ReadRecord,
        mate_reader: MateReader,
    ) -> int:
        mate = mate_reader.read_mate(read.mate_uid)
        mate_id = state.algorithm.compute_id(self._active(state, mate), mate)
        resolution = resolve_mate_pair(class_id, mate_id, state.algorithm.lca)
        if resolution.via_mate:
            self.counters.assigned_via_mate += 1
        return resolution.class_id

    def _complete(self) -> None:
        counters = self.counters
        config = self.config

        logger.info("Total reads:   %15s", f"{counters.reads_found:,}")
        if counters.low_complexity_reads > 0:
            logger.info("Low complexity:%15s", f"{counters.low_complexity_reads:,}")
        logger.info("With hits:     %15s", f"{counters.reads_with_hits:,}")
        logger.info("Alignments:    %15s", f"{counters.matches_found:,}")
        for state in self.scheme_states:
            logger.info("%-19s%11s", f"Assig. {state.name}:", f"{state.assigned:,}")
            if state.coerced_unknown:
                logger.warning(
                    "%s: %d reads assigned to ids outside the hierarchy were set unassigned",
                    state.name,
                    state.coerced_unknown,
                )
        if counters.assigned_via_mate > 0:
            logger.info("Tax. ass. by mate:%12s", f"{counters.assigned_via_mate:,}")

        if config.min_support_percent > 0:
            supported = counters.reads_with_hits + counters.assigned_via_mate
            counters.min_support = max(1, int(config.min_support_percent / 100.0 * supported))
            logger.info("MinSupport set to: %d", counters.min_support)
        else:
            counters.min_support = config.min_support
