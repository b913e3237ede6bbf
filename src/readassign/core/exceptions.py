"""
Custom exceptions with actionable guidance.

Provides specific error types for common failure scenarios,
each with helpful suggestions for resolution.
"""

from __future__ import annotations


class ReadAssignError(Exception):
    """Base exception for readassign errors."""

    def __init__(self, message: str, suggestion: str | None = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class ArchiveIOError(ReadAssignError):
    """Raised when the read stream or the mate-pair reader fails."""

    def __init__(self, source: str, reason: str):
        super().__init__(
            message=f"Failed reading archive '{source}': {reason}",
            suggestion=(
                "Check that the reads and matches tables exist, are readable and "
                "were not truncated. Nothing was written for this run; rerun once "
                "the archive is intact."
            ),
        )
        self.source = source
        self.reason = reason


class MateNotFoundError(ArchiveIOError):
    """Raised when a read references a mate that is absent from the archive."""

    def __init__(self, source: str, mate_uid: int):
        super().__init__(source, f"mate read {mate_uid} not found")
        self.mate_uid = mate_uid


class HierarchyError(ReadAssignError):
    """Raised when a classification hierarchy table is malformed."""

    def __init__(self, scheme: str, reason: str):
        super().__init__(
            message=f"Invalid hierarchy for scheme '{scheme}': {reason}",
            suggestion=(
                "A hierarchy table needs 'id' and 'parent_id' columns with "
                "exactly one root row (parent_id equal to id, or empty) and no cycles."
            ),
        )
        self.scheme = scheme


class PersistenceError(ReadAssignError):
    """Raised when committing classification tables fails."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"Could not write classification output '{path}': {reason}",
            suggestion=(
                "Check that the output directory exists and is writable. "
                "Previously committed output was left unchanged."
            ),
        )


class ConfigurationError(ReadAssignError):
    """Raised when configuration is invalid."""


class InvalidThresholdError(ConfigurationError):
    """Raised when a threshold parameter is out of valid range."""

    def __init__(self, param_name: str, value: float, min_val: float, max_val: float):
        super().__init__(
            message=f"{param_name} = {value} is out of valid range [{min_val}, {max_val}]",
            suggestion=f"Set {param_name} to a value between {min_val} and {max_val}.",
        )


class UnsupportedAlgorithmError(ConfigurationError):
    """Raised when a scheme cannot run the requested assignment algorithm."""

    def __init__(self, scheme: str, algorithm: str, reason: str):
        super().__init__(
            message=f"Scheme '{scheme}' cannot use the {algorithm} algorithm: {reason}",
            suggestion=(
                "Provide a hierarchy table for the scheme, or switch the scheme "
                "to best-hit assignment (use_lca: false)."
            ),
        )
        self.scheme = scheme
        self.algorithm = algorithm


class MatePairsUnsupportedError(ConfigurationError):
    """Raised when paired-read mode is requested on a sequential-only archive."""

    def __init__(self, source: str):
        super().__init__(
            message=f"Paired-read mode requires random access, but '{source}' is sequential only",
            suggestion=(
                "Disable paired reads (--no-paired) or provide an archive with a "
                "reads table that includes 'uid' and 'mate_uid' columns."
            ),
        )


class ClassificationCancelled(ReadAssignError):
    """Raised internally when the user cancels a run."""

    def __init__(self, reads_processed: int = 0):
        super().__init__(message=f"Classification cancelled after {reads_processed:,} reads")
        self.reads_processed = reads_processed
