"""Taxonomic resolution of a read against the assignment of its mate."""

from __future__ import annotations

from collections.abc import Callable
from typing import NamedTuple


class MateResolution(NamedTuple):
    """
    Outcome of combining the assignments of two mates.

    Attributes:
        class_id: Final taxonomy id of the read
        via_mate: True when the read had no assignment of its own and
            took its mate's
    """

    class_id: int
    via_mate: bool = False


def resolve_mate_pair(
    read_id: int,
    mate_id: int,
    lca: Callable[[int, int], int],
) -> MateResolution:
    """
    Combine the taxonomy id of a read with the id computed for its mate.

    Rules:
        - mate unassigned (id <= 0): the read keeps its id
        - read unassigned, mate assigned: the read takes the mate's id
        - both assigned, one is an ancestor of the other: the more
          specific of the two (the read's when the ids are equal)
        - both assigned on different lineages: their LCA

    Args:
        read_id: Id computed for the read from its own matches
        mate_id: Id computed for the mate with the same algorithm
        lca: Lowest common ancestor of two ids in the taxonomy

    Returns:
        MateResolution with the final id
    """
    if mate_id <= 0:
        return MateResolution(read_id)
    if read_id <= 0:
        return MateResolution(mate_id, via_mate=True)

    common = lca(read_id, mate_id)
    if common == read_id:
        return MateResolution(mate_id)
    if common == mate_id:
        return MateResolution(read_id)
    return MateResolution(common)
