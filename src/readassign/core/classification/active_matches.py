"""
Selection of the alignments of a read that vote on its classification.

The active set of a read is computed independently for every scheme,
since a reference may carry a class id under one scheme and none under
another.
"""

from __future__ import annotations

from readassign.models.reads import ReadRecord

ActiveSet = frozenset[int]

EMPTY_ACTIVE_SET: ActiveSet = frozenset()


def active_matches(
    read: ReadRecord,
    scheme: str,
    min_score: float,
    top_percent: float,
    max_expected: float,
    min_percent_identity: float,
) -> ActiveSet:
    """
    Compute the indices of the matches of a read that are eligible to vote.

    A match is active when it carries a class id under the scheme and
    passes all of the following:
        1. bit score >= min_score
        2. expected value <= max_expected
        3. percent identity >= min_percent_identity (0 disables)
        4. bit score >= (1 - top_percent/100) * best bit score among the
           matches that pass 1-3 (top_percent >= 100 disables)

    Args:
        read: Read whose matches are filtered (not modified)
        scheme: Classification scheme name
        min_score: Minimum bit score
        top_percent: Percentage window below the best bit score
        max_expected: Maximum expected value
        min_percent_identity: Minimum percent identity

    Returns:
        Frozen set of match indices; empty when nothing qualifies.
    """
    if not read.matches:
        return EMPTY_ACTIVE_SET

    candidates: list[int] = []
    best_score = 0.0
    for index, match in enumerate(read.matches):
        if (
            match.bit_score >= min_score
            and match.expected <= max_expected
            and (min_percent_identity <= 0 or match.percent_identity >= min_percent_identity)
            and match.class_id(scheme) > 0
        ):
            candidates.append(index)
            best_score = max(best_score, match.bit_score)

    if not candidates:
        return EMPTY_ACTIVE_SET

    if top_percent < 100:
        cutoff = (1.0 - top_percent / 100.0) * best_score
        return frozenset(i for i in candidates if read.matches[i].bit_score >= cutoff)
    return frozenset(candidates)
