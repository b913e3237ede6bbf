"""
Read and alignment records supplied by a read archive.

These are lightweight NamedTuples rather than Pydantic models: the
classification pass creates one record per read and one per alignment,
which for a large archive means hundreds of millions of objects, so
validation happens once at the table level instead.
"""

from __future__ import annotations

from typing import NamedTuple

from readassign.core.constants import COMPLEXITY_TOLERANCE, NO_ID


class MatchRecord(NamedTuple):
    """
    One alignment of a read against a reference sequence.

    Attributes:
        bit_score: Alignment bit score
        percent_identity: Percent identity (0-100)
        expected: Expectation value
        class_ids: Target id of the reference per classification scheme
        query_start: First aligned read position (1-based), if known
        query_end: Last aligned read position (1-based, inclusive), if known
        reference: Reference sequence name, informational only
    """

    bit_score: float
    percent_identity: float
    expected: float
    class_ids: dict[str, int]
    query_start: int | None = None
    query_end: int | None = None
    reference: str = ""

    def class_id(self, scheme: str) -> int:
        """Target id under a scheme, or NO_ID when the match has none."""
        return self.class_ids.get(scheme, NO_ID) or NO_ID


class ReadRecord(NamedTuple):
    """
    One sequencing read with all of its alignments.

    Attributes:
        uid: Unique, monotonically assigned read id
        name: Read name from the sequencing run
        weight: Multiplicity of collapsed duplicate reads (0 means 1)
        complexity: Sequence complexity score (0 when not computed)
        mate_uid: Uid of the paired read, 0 when unpaired
        length: Read length in bases (0 when unknown)
        matches: Alignments of this read
    """

    uid: int
    name: str = ""
    weight: int = 1
    complexity: float = 0.0
    mate_uid: int = 0
    length: int = 0
    matches: tuple[MatchRecord, ...] = ()

    @property
    def effective_weight(self) -> int:
        """Weight used for counting; sources that report 0 mean a single read."""
        return self.weight if self.weight > 0 else 1

    @property
    def num_matches(self) -> int:
        return len(self.matches)

    def is_low_complexity(self, min_complexity: float) -> bool:
        """Whether the complexity score falls below the configured minimum."""
        return self.complexity > 0 and self.complexity + COMPLEXITY_TOLERANCE < min_complexity
