"""Unit tests for the streaming classification driver."""

from __future__ import annotations

import logging

import pytest

from readassign.core.archive import InMemoryReadArchive, ReadStream
from readassign.core.classification.driver import (
    CancellationToken,
    ClassificationDriver,
    DriverState,
)
from readassign.core.constants import LOW_COMPLEXITY_ID, UNASSIGNED_ID
from readassign.core.exceptions import (
    ArchiveIOError,
    ClassificationCancelled,
    ConfigurationError,
    MatePairsUnsupportedError,
)
from readassign.core.hierarchy import ClassificationScheme
from readassign.models.config import ClassifierConfig
from tests.factories import make_match, make_read


class RecordingArchive(InMemoryReadArchive):
    """In-memory archive that keeps the handles it hands out."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.streams: list[ReadStream] = []
        self.mate_readers = []

    def iterate_all_reads(self, *args, **kwargs):
        stream = super().iterate_all_reads(*args, **kwargs)
        self.streams.append(stream)
        return stream

    def open_mate_reader(self):
        reader = super().open_mate_reader()
        self.mate_readers.append(reader)
        return reader


class CountdownToken(CancellationToken):
    """Token that reports cancellation after a number of polls."""

    def __init__(self, polls: int):
        super().__init__()
        self._remaining = polls

    @property
    def cancelled(self) -> bool:
        if self._remaining <= 0:
            return True
        self._remaining -= 1
        return False


class RecordingProgress:
    def __init__(self):
        self.subtasks: list[str] = []
        self.maximum = None
        self.progress: list[int] = []

    def set_subtask(self, description):
        self.subtasks.append(description)

    def set_maximum(self, maximum):
        self.maximum = maximum

    def set_progress(self, progress):
        self.progress.append(progress)


def _run(reads, schemes, config, **kwargs):
    driver = ClassificationDriver(InMemoryReadArchive(reads), schemes, config, **kwargs)
    return driver, driver.run()


class TestAssignment:
    """Tests for per-read assignment and counters."""

    def test_read_without_active_matches_is_unassigned(self, taxonomy, default_config):
        _, result = _run([make_read(1, make_match(562, bit_score=10.0))], [taxonomy], default_config)
        assert result.buffer.class_ids("Taxonomy") == [UNASSIGNED_ID]
        assert result.schemes[0].unassigned == 1
        assert result.schemes[0].assigned == 0
        assert result.counters.reads_with_hits == 0

    def test_assigned_read_counts_weight(self, taxonomy, default_config):
        _, result = _run([make_read(1, make_match(562), weight=3)], [taxonomy], default_config)
        assert result.buffer.class_ids("Taxonomy") == [562]
        assert result.schemes[0].assigned == 3
        assert result.counters.reads_found == 3
        assert result.counters.reads_with_hits == 3

    def test_single_known_target(self, default_config):
        scheme = ClassificationScheme("Taxonomy", {7: 1}, root_id=1)
        _, result = _run([make_read(1, make_match(7), weight=4)], [scheme], default_config)
        assert result.buffer.class_ids("Taxonomy") == [7]
        assert result.schemes[0].assigned == 4

    def test_zero_weight_counts_as_one(self, taxonomy, default_config):
        _, result = _run([make_read(1, make_match(562), weight=0)], [taxonomy], default_config)
        assert result.counters.reads_found == 1
        assert result.buffer.weights == [1]

    def test_every_scheme_assigned(self, taxonomy, ec_scheme, default_config):
        read = make_read(
            1,
            make_match(562, EC=100, bit_score=200.0),
            make_match(564, EC=200, bit_score=190.0),
        )
        _, result = _run([read], [taxonomy, ec_scheme], default_config)
        record = next(iter(result.buffer))
        assert record.class_ids == (50, 100)

    def test_id_outside_scheme_is_coerced(self, taxonomy, ec_scheme, default_config):
        read = make_read(1, make_match(562, EC=999))
        _, result = _run([read], [taxonomy, ec_scheme], default_config)
        ec_state = result.schemes[1]
        assert result.buffer.class_ids("EC") == [UNASSIGNED_ID]
        assert ec_state.coerced_unknown == 1
        assert ec_state.unassigned == 1

    def test_match_counts(self, taxonomy, default_config):
        reads = [
            make_read(1, make_match(562), make_match(564)),
            make_read(2),
            make_read(3, make_match(590)),
        ]
        _, result = _run(reads, [taxonomy], default_config)
        assert result.counters.reads_found == 3
        assert result.counters.matches_found == 3
        assert result.counters.reads_with_hits == 2
        assert len(result.buffer) == 3

    def test_low_complexity_reads(self, taxonomy, ec_scheme):
        config = ClassifierConfig(min_complexity=0.3, min_support_percent=0.0)
        read = make_read(1, make_match(562, EC=100), complexity=0.05, weight=2)
        _, result = _run([read], [taxonomy, ec_scheme], config)
        record = next(iter(result.buffer))
        assert record.class_ids == (LOW_COMPLEXITY_ID, LOW_COMPLEXITY_ID)
        assert result.counters.low_complexity_reads == 2
        assert result.counters.reads_with_hits == 2
        assert result.schemes[0].assigned == 0
        assert result.schemes[0].unassigned == 0

    def test_unscored_complexity_is_not_low(self, taxonomy):
        config = ClassifierConfig(min_complexity=0.3, min_support_percent=0.0)
        _, result = _run([make_read(1, make_match(562), complexity=0.0)], [taxonomy], config)
        assert result.buffer.class_ids("Taxonomy") == [562]


class TestMinSupportThreshold:
    """Tests for deriving the min-support threshold after the pass."""

    def test_percent_of_reads_with_hits(self, taxonomy):
        config = ClassifierConfig(min_support_percent=10.0)
        reads = [make_read(uid, make_match(562)) for uid in range(1, 21)]
        _, result = _run(reads, [taxonomy], config)
        assert result.counters.min_support == 2

    def test_percent_floor_is_one(self, taxonomy):
        config = ClassifierConfig(min_support_percent=1.0)
        _, result = _run([make_read(1, make_match(562))], [taxonomy], config)
        assert result.counters.min_support == 1

    def test_absolute_when_percent_zero(self, taxonomy):
        config = ClassifierConfig(min_support_percent=0.0, min_support=7)
        _, result = _run([make_read(1, make_match(562))], [taxonomy], config)
        assert result.counters.min_support == 7


class TestMatePairs:
    """Tests for paired-read refinement of the taxonomy assignment."""

    @pytest.fixture
    def paired_config(self):
        return ClassifierConfig(paired_reads=True, min_support_percent=0.0)

    def test_read_takes_mate_assignment(self, taxonomy, ec_scheme, paired_config):
        reads = [
            make_read(1, make_match(562, bit_score=10.0, EC=100), mate_uid=2),
            make_read(2, make_match(562, EC=100), mate_uid=1),
        ]
        _, result = _run(reads, [taxonomy, ec_scheme], paired_config)
        assert result.buffer.class_ids("Taxonomy") == [562, 562]
        assert result.counters.assigned_via_mate == 1
        # only the taxonomy takes part in mate resolution
        assert result.buffer.class_ids("EC") == [UNASSIGNED_ID, 100]

    def test_mates_on_different_lineages(self, taxonomy, paired_config):
        reads = [
            make_read(3, make_match(562), mate_uid=4),
            make_read(4, make_match(590), mate_uid=3),
        ]
        _, result = _run(reads, [taxonomy], paired_config)
        assert result.buffer.class_ids("Taxonomy") == [40, 40]
        assert result.counters.assigned_via_mate == 0

    def test_mates_ignored_when_not_paired(self, taxonomy, default_config):
        reads = [
            make_read(1, make_match(562, bit_score=10.0), mate_uid=2),
            make_read(2, make_match(562), mate_uid=1),
        ]
        _, result = _run(reads, [taxonomy], default_config)
        assert result.buffer.class_ids("Taxonomy") == [UNASSIGNED_ID, 562]

    def test_sequential_archive_rejected(self, taxonomy, paired_config):
        archive = InMemoryReadArchive([make_read(1)], random_access=False)
        driver = ClassificationDriver(archive, [taxonomy], paired_config)
        with pytest.raises(MatePairsUnsupportedError):
            driver.run()
        assert driver.state is DriverState.INIT

    def test_without_taxonomy_scheme_mates_ignored(self, ec_scheme, paired_config, caplog):
        reads = [make_read(1, make_match(None, EC=100), mate_uid=2), make_read(2, mate_uid=1)]
        archive = RecordingArchive(reads)
        with caplog.at_level(logging.WARNING, logger="readassign"):
            ClassificationDriver(archive, [ec_scheme], paired_config).run()
        assert archive.mate_readers == []
        assert "ignoring mates" in caplog.text

    def test_missing_mate_fails(self, taxonomy, paired_config):
        driver = ClassificationDriver(
            InMemoryReadArchive([make_read(1, make_match(562), mate_uid=99)]),
            [taxonomy],
            paired_config,
        )
        with pytest.raises(ArchiveIOError, match="mate read 99"):
            driver.run()
        assert driver.state is DriverState.FAILED

    def test_handles_closed(self, taxonomy, paired_config):
        reads = [make_read(1, make_match(562), mate_uid=2), make_read(2, make_match(564), mate_uid=1)]
        archive = RecordingArchive(reads)
        ClassificationDriver(archive, [taxonomy], paired_config).run()
        assert archive.streams[0].closed
        assert archive.mate_readers[0]._index is None


class TestLifecycle:
    """Tests for the driver state machine, cancellation and failures."""

    def test_completed_state(self, taxonomy, default_config):
        driver, _ = _run([make_read(1, make_match(562))], [taxonomy], default_config)
        assert driver.state is DriverState.COMPLETED

    def test_cannot_run_twice(self, taxonomy, default_config):
        driver, _ = _run([make_read(1)], [taxonomy], default_config)
        with pytest.raises(RuntimeError, match="already ran"):
            driver.run()

    def test_requires_schemes(self, default_config):
        with pytest.raises(ConfigurationError):
            ClassificationDriver(InMemoryReadArchive([]), [], default_config)

    def test_rejects_duplicate_schemes(self, taxonomy, default_config):
        with pytest.raises(ConfigurationError, match="Duplicate"):
            ClassificationDriver(InMemoryReadArchive([]), [taxonomy, taxonomy], default_config)

    def test_cancellation_stops_stream(self, taxonomy, default_config):
        """Counters should cover only the reads processed before cancelling."""
        reads = [make_read(uid, make_match(562)) for uid in range(1, 11)]
        archive = RecordingArchive(reads)
        driver = ClassificationDriver(archive, [taxonomy], default_config, token=CountdownToken(4))
        with pytest.raises(ClassificationCancelled) as exc_info:
            driver.run()
        assert exc_info.value.reads_processed == 4
        assert driver.state is DriverState.CANCELLED
        assert driver.counters.reads_found == 4
        assert len(driver.buffer) == 4
        assert archive.streams[0].closed

    def test_cancel_during_last_read(self, taxonomy, default_config):
        """A cancel raised by the final progress report should not complete the run."""
        token = CancellationToken()

        class CancelAtEnd(RecordingProgress):
            def set_progress(self, progress):
                super().set_progress(progress)
                if progress == 3:
                    token.cancel()

        reads = [make_read(uid, make_match(562)) for uid in range(1, 4)]
        driver = ClassificationDriver(
            InMemoryReadArchive(reads), [taxonomy], default_config, progress=CancelAtEnd(), token=token
        )
        with pytest.raises(ClassificationCancelled) as exc_info:
            driver.run()
        assert exc_info.value.reads_processed == 3
        assert driver.state is DriverState.CANCELLED

    def test_cancelled_before_start(self, taxonomy, default_config):
        token = CancellationToken()
        token.cancel()
        driver = ClassificationDriver(
            InMemoryReadArchive([make_read(1)]), [taxonomy], default_config, token=token
        )
        with pytest.raises(ClassificationCancelled):
            driver.run()
        assert driver.counters.reads_found == 0

    def test_os_error_wrapped(self, taxonomy, default_config):
        class BrokenArchive(InMemoryReadArchive):
            def iterate_all_reads(self, *args, **kwargs):
                def generate():
                    yield make_read(1)
                    raise OSError("disk went away")

                return ReadStream(generate())

        driver = ClassificationDriver(BrokenArchive([]), [taxonomy], default_config)
        with pytest.raises(ArchiveIOError, match="disk went away"):
            driver.run()
        assert driver.state is DriverState.FAILED

    def test_progress_reported(self, taxonomy, default_config):
        progress = RecordingProgress()
        reads = [make_read(uid) for uid in range(1, 1501)]
        _run(reads, [taxonomy], default_config, progress=progress)
        assert progress.subtasks == ["Processing alignments"]
        assert progress.maximum == 1500
        assert progress.progress == [0, 1000, 1500]
