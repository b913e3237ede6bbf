"""Unit tests for custom exceptions module."""

import pytest

from readassign.core.exceptions import (
    ArchiveIOError,
    ClassificationCancelled,
    ConfigurationError,
    HierarchyError,
    InvalidThresholdError,
    MateNotFoundError,
    MatePairsUnsupportedError,
    PersistenceError,
    ReadAssignError,
    UnsupportedAlgorithmError,
)


class TestReadAssignError:
    """Tests for base exception class."""

    def test_basic_message(self):
        """Should create exception with just message."""
        error = ReadAssignError("Test error")
        assert error.message == "Test error"
        assert error.suggestion is None
        assert str(error) == "Test error"

    def test_message_with_suggestion(self):
        """Should include suggestion in full message."""
        error = ReadAssignError("Test error", suggestion="Try this fix")
        assert error.suggestion == "Try this fix"
        assert "Suggestion: Try this fix" in str(error)


class TestArchiveErrors:
    """Tests for archive error classes."""

    def test_archive_io_error(self):
        error = ArchiveIOError("reads.parquet", "truncated file")
        assert "reads.parquet" in str(error)
        assert "truncated file" in str(error)
        assert "Nothing was written" in error.suggestion
        assert error.source == "reads.parquet"

    def test_mate_not_found(self):
        """Should be an archive error carrying the mate uid."""
        error = MateNotFoundError("reads.parquet", 42)
        assert isinstance(error, ArchiveIOError)
        assert error.mate_uid == 42
        assert "mate read 42 not found" in str(error)


class TestConfigurationErrors:
    """Tests for configuration error classes."""

    def test_invalid_threshold(self):
        error = InvalidThresholdError("chunk_size", 5, 100, 1000)
        assert isinstance(error, ConfigurationError)
        assert "chunk_size = 5" in str(error)
        assert "between 100 and 1000" in error.suggestion

    def test_unsupported_algorithm(self):
        error = UnsupportedAlgorithmError("EC", "lca", "scheme has no hierarchy")
        assert error.scheme == "EC"
        assert error.algorithm == "lca"
        assert "use_lca: false" in error.suggestion

    def test_mate_pairs_unsupported(self):
        error = MatePairsUnsupportedError("matches.tsv")
        assert isinstance(error, ConfigurationError)
        assert "--no-paired" in error.suggestion


class TestOtherErrors:
    """Tests for hierarchy, persistence and cancellation errors."""

    def test_hierarchy_error(self):
        error = HierarchyError("Taxonomy", "cycle through node 3")
        assert error.scheme == "Taxonomy"
        assert "cycle through node 3" in str(error)

    def test_persistence_error(self):
        error = PersistenceError("results/", "permission denied")
        assert "results/" in str(error)
        assert "left unchanged" in error.suggestion

    def test_cancelled(self):
        error = ClassificationCancelled(12_345)
        assert error.reads_processed == 12_345
        assert str(error) == "Classification cancelled after 12,345 reads"

    @pytest.mark.parametrize(
        "error",
        [
            ArchiveIOError("a", "b"),
            HierarchyError("a", "b"),
            PersistenceError("a", "b"),
            ClassificationCancelled(),
        ],
    )
    def test_all_derive_from_base(self, error):
        assert isinstance(error, ReadAssignError)
