"""
End-to-end classification run: stream, filter, commit.

classify_archive() is the single entry point used by the CLI. It never
raises for run-level failures; the outcome is reported through the
returned RunSummary.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from readassign.core.classification.driver import (
    CancellationToken,
    ClassificationDriver,
    DriverResult,
    NullProgress,
    ProgressListener,
)
from readassign.core.classification.min_support import MinSupportFilter
from readassign.core.exceptions import ClassificationCancelled, ReadAssignError
from readassign.models.summary import RunStatus, RunSummary, SchemeSummary

if TYPE_CHECKING:
    from readassign.core.archive import ReadArchive
    from readassign.core.hierarchy import ClassificationScheme
    from readassign.core.persistence import PersistenceSink
    from readassign.models.config import ClassifierConfig

logger = logging.getLogger(__name__)


def apply_min_support(result: DriverResult, config: ClassifierConfig) -> dict[str, int]:
    """
    Run the min-support and disabled-id filter on every hierarchical scheme.

    Best-hit schemes are skipped. The buffer in result is rewritten in place.

    Returns:
        Number of class ids remapped, per scheme name.
    """
    changes: dict[str, int] = {}
    min_support = result.counters.min_support
    for state in result.schemes:
        disabled = config.disabled_ids(state.name)
        if not state.kind.is_hierarchical or (min_support <= 0 and not disabled):
            continue
        counts = result.buffer.class_counts(state.name)
        remap = MinSupportFilter(state.scheme, counts, min_support, disabled).apply()
        result.buffer.apply_remap(state.name, remap)
        changes[state.name] = len(remap)
        logger.info("Min-supp. changes:%12s", f"{len(remap):,}")
    return changes


def classify_archive(
    archive: ReadArchive,
    schemes: Sequence[ClassificationScheme],
    config: ClassifierConfig,
    sink: PersistenceSink,
    progress: ProgressListener | None = None,
    token: CancellationToken | None = None,
) -> RunSummary:
    """
    Classify all reads of an archive and commit the assignments.

    Args:
        archive: Source of reads and alignments
        schemes: Classification schemes to assign under
        config: Run configuration
        sink: Destination of the committed tables
        progress: Optional progress receiver
        token: Optional cancellation token, polled once per read

    Returns:
        RunSummary with status COMPLETED, CANCELLED (nothing committed) or
        FAILED (nothing committed, message set)

    Raises:
        ConfigurationError: If schemes is empty or has duplicate names
    """
    progress = progress or NullProgress()
    driver = ClassificationDriver(archive, schemes, config, progress=progress, token=token)

    try:
        result = driver.run()
    except ClassificationCancelled as e:
        return _summary(driver, RunStatus.CANCELLED, config, message=e.message)
    except ReadAssignError as e:
        logger.exception("Classification of %s failed", archive.source)
        return _summary(driver, RunStatus.FAILED, config, message=e.message)

    if driver.token.cancelled:
        cancelled = ClassificationCancelled(result.counters.reads_found)
        return _summary(driver, RunStatus.CANCELLED, config, message=cancelled.message)

    changes = apply_min_support(result, config)

    names = [state.name for state in result.schemes]
    try:
        sink.set_number_of_reads(result.counters.reads_found)
        sink.commit_assignments(names, result.buffer, progress)
    except ReadAssignError as e:
        logger.exception("Committing classification of %s failed", archive.source)
        return _summary(driver, RunStatus.FAILED, config, message=e.message)

    sizes = {name: sink.classification_size(name) for name in names}
    for name, size in sizes.items():
        logger.info("Class. %-13s%10s", f"{name}:", f"{size:,}")

    return _summary(driver, RunStatus.COMPLETED, config, changes=changes, sizes=sizes)


def _summary(
    driver: ClassificationDriver,
    status: RunStatus,
    config: ClassifierConfig,
    message: str | None = None,
    changes: dict[str, int] | None = None,
    sizes: dict[str, int] | None = None,
) -> RunSummary:
    changes = changes or {}
    sizes = sizes or {}
    counters = driver.counters
    return RunSummary(
        status=status,
        message=message,
        source=driver.archive.source,
        reads_found=counters.reads_found,
        matches_found=counters.matches_found,
        low_complexity_reads=counters.low_complexity_reads,
        reads_with_hits=counters.reads_with_hits,
        assigned_via_mate=counters.assigned_via_mate,
        min_support=counters.min_support,
        parameters=config.parameter_string(),
        schemes=[
            SchemeSummary(
                name=state.name,
                algorithm=state.kind.value,
                assigned=state.assigned,
                unassigned=state.unassigned,
                coerced_unknown=state.coerced_unknown,
                min_support_changes=changes.get(state.name, 0),
                classification_size=sizes.get(state.name, 0),
            )
            for state in driver.scheme_states
        ],
    )
