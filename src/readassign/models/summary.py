"""
Pydantic models describing the outcome of a classification run.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, computed_field


class RunStatus(str, Enum):
    """Terminal status of a classification run."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class SchemeSummary(BaseModel):
    """
    Per-scheme outcome.

    Attributes:
        name: Scheme name
        algorithm: Assignment algorithm used for the scheme
        assigned: Read weight assigned to a real class id
        unassigned: Read weight left unassigned
        coerced_unknown: Reads whose computed id was outside the scheme
        min_support_changes: Class ids folded by the min-support filter
        classification_size: Classes holding reads after commit
    """

    name: str
    algorithm: str
    assigned: int = 0
    unassigned: int = 0
    coerced_unknown: int = 0
    min_support_changes: int = 0
    classification_size: int = 0

    model_config = {"frozen": True}


class RunSummary(BaseModel):
    """
    Single terminal report of a classification run.

    Counters of a cancelled run cover only the reads processed before the
    cancellation was observed; nothing is committed in that case.
    """

    status: RunStatus = Field(description="Terminal status")
    message: str | None = Field(default=None, description="Failure or cancellation message")
    source: str = Field(default="", description="Archive the reads were taken from")
    reads_found: int = Field(default=0, description="Total read weight seen")
    matches_found: int = Field(default=0, description="Total alignments seen")
    low_complexity_reads: int = Field(default=0, description="Read weight flagged low complexity")
    reads_with_hits: int = Field(default=0, description="Read weight with at least one active match")
    assigned_via_mate: int = Field(default=0, description="Reads assigned through their mate")
    min_support: int = Field(default=0, description="Effective min-support threshold")
    parameters: str = Field(default="", description="Run parameter string")
    schemes: list[SchemeSummary] = Field(default_factory=list)

    @computed_field
    @property
    def with_hits_pct(self) -> float:
        """Percentage of read weight with at least one active match."""
        if self.reads_found == 0:
            return 0.0
        return 100.0 * self.reads_with_hits / self.reads_found

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED

    def scheme(self, name: str) -> SchemeSummary:
        for summary in self.schemes:
            if summary.name == name:
                return summary
        msg = f"No summary for scheme {name!r}"
        raise KeyError(msg)

    def to_json(self, path: Path) -> None:
        """Write summary to JSON file."""
        path.write_text(self.model_dump_json(indent=2))

    @classmethod
    def from_json(cls, path: Path) -> RunSummary:
        """Load summary from JSON file."""
        return cls.model_validate_json(path.read_text())


class CommitMetadata(BaseModel):
    """Metadata stored next to committed assignment tables."""

    schemes: list[str]
    number_of_reads: int = 0
    parameters: str = ""
    classification_sizes: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_json(cls, path: Path) -> CommitMetadata:
        return cls.model_validate_json(path.read_text())
