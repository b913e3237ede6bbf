"""
Assignment algorithms: turn a read's active matches into one class id.

The family is a closed set of variants (AlgorithmKind). A single
AssignmentAlgorithm class carries the variant tag and dispatches to the
module-level assignment function of that variant; create_assignment_algorithm
builds one instance per scheme before the streaming pass. Instances cache
the ancestor paths of the scheme's hierarchy for the duration of the run.

Variants:
    BEST_HIT: target of the highest-scoring active match (first wins ties)
    LCA: lowest common ancestor of all active targets
    WEIGHTED_LCA: deepest node whose subtree collects a configured share of
        the bit-score weight of the active matches
    LONG_READ_LCA: per-interval LCA along the read, then the deepest node
        covering a configured share of the aligned bases
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING

import numpy as np

from readassign.core.constants import NO_ID, RANK_IDENTITY_THRESHOLDS
from readassign.core.exceptions import UnsupportedAlgorithmError
from readassign.models.config import AlgorithmKind

if TYPE_CHECKING:
    from readassign.core.classification.active_matches import ActiveSet
    from readassign.core.hierarchy import ClassificationScheme
    from readassign.models.config import ClassifierConfig
    from readassign.models.reads import ReadRecord


class AssignmentAlgorithm:
    """
    Stateful assignment algorithm for one classification scheme.

    Example:
        >>> algorithm = create_assignment_algorithm(AlgorithmKind.LCA, scheme, config)
        >>> algorithm.compute_id(active, read)
        2
    """

    def __init__(
        self,
        kind: AlgorithmKind,
        scheme: ClassificationScheme,
        *,
        top_percent: float = 100.0,
        weighted_percent: float = 100.0,
        cover_percent: float = 100.0,
        use_identity_filter: bool = False,
    ) -> None:
        self.kind = kind
        self.scheme = scheme
        self.top_percent = top_percent
        self.weighted_percent = weighted_percent
        self.cover_percent = cover_percent
        self.use_identity_filter = use_identity_filter and bool(scheme.ranks)
        self._paths: dict[int, tuple[int, ...]] = {}

    def compute_id(self, active: ActiveSet, read: ReadRecord) -> int:
        """
        Class id for a read given its active matches.

        Returns NO_ID when the active set is empty or no consensus exists.
        """
        if not active:
            return NO_ID
        class_id = _ASSIGNERS[self.kind](self, active, read)
        if self.use_identity_filter and class_id > 0:
            best_identity = max(read.matches[i].percent_identity for i in active)
            class_id = _apply_identity_filter(self.scheme, class_id, best_identity)
        return class_id

    def lca(self, id_a: int, id_b: int) -> int:
        """Lowest common ancestor of two ids; NO_ID if either is unknown."""
        return self.lca_of((id_a, id_b))

    def lca_of(self, class_ids: Iterable[int]) -> int:
        """
        Lowest common ancestor of a collection of ids.

        Ids outside the hierarchy are ignored; NO_ID when none is known.
        """
        common: tuple[int, ...] | None = None
        for class_id in set(class_ids):
            path = self.root_path(class_id)
            if not path:
                continue
            if common is None:
                common = path
                continue
            length = 0
            for a, b in zip(common, path):
                if a != b:
                    break
                length += 1
            common = common[:length]
        return common[-1] if common else NO_ID

    def root_path(self, class_id: int) -> tuple[int, ...]:
        """Cached path from the root down to class_id (root first)."""
        path = self._paths.get(class_id)
        if path is None:
            path = tuple(reversed(self.scheme.path_to_root(class_id)))
            self._paths[class_id] = path
        return path

    def covering_ancestor(self, weights: Mapping[int, float], percent: float) -> int:
        """
        Deepest node whose subtree holds at least percent of the total weight.

        Every id passes its weight to all of its ancestors. Among nodes that
        reach the threshold the deepest wins, then the heavier, then the
        smaller id. With percent = 100 this is the LCA of the weighted ids.
        """
        subtree: dict[int, float] = {}
        total = 0.0
        for class_id, weight in weights.items():
            path = self.root_path(class_id)
            if not path or weight <= 0:
                continue
            total += weight
            for node in path:
                subtree[node] = subtree.get(node, 0.0) + weight
        if total <= 0:
            return NO_ID

        threshold = percent / 100.0 * total * (1.0 - 1e-9)
        best = NO_ID
        best_key: tuple[int, float, int] | None = None
        for node, weight in subtree.items():
            if weight < threshold:
                continue
            key = (len(self.root_path(node)), weight, -node)
            if best_key is None or key > best_key:
                best, best_key = node, key
        return best


def _assign_best_hit(algorithm: AssignmentAlgorithm, active: ActiveSet, read: ReadRecord) -> int:
    scheme = algorithm.scheme.name
    best_index = min(active, key=lambda i: (-read.matches[i].bit_score, i))
    return read.matches[best_index].class_id(scheme)


def _assign_lca(algorithm: AssignmentAlgorithm, active: ActiveSet, read: ReadRecord) -> int:
    scheme = algorithm.scheme.name
    return algorithm.lca_of(read.matches[i].class_id(scheme) for i in active)


def _assign_weighted_lca(
    algorithm: AssignmentAlgorithm, active: ActiveSet, read: ReadRecord
) -> int:
    scheme = algorithm.scheme.name
    weights: dict[int, float] = {}
    for i in active:
        match = read.matches[i]
        class_id = match.class_id(scheme)
        weights[class_id] = weights.get(class_id, 0.0) + match.bit_score
    return algorithm.covering_ancestor(weights, algorithm.weighted_percent)


def _assign_long_read_lca(
    algorithm: AssignmentAlgorithm, active: ActiveSet, read: ReadRecord
) -> int:
    """
    Interval-aware LCA for long reads.

    The read axis is cut at every alignment start and end. For each
    elementary segment covered by at least one active match, the matches
    within top_percent of the best bit score covering it vote an LCA; the
    segment length is that LCA's weight. The result is the deepest node
    covering cover_percent of all aligned bases. Alignments without
    coordinates span the whole read.
    """
    scheme = algorithm.scheme.name
    indices = sorted(active)
    read_end = max(
        [read.length]
        + [read.matches[i].query_end or 0 for i in indices]
        + [read.matches[i].query_start or 0 for i in indices]
    )
    read_end = max(read_end, 1)

    starts = np.empty(len(indices), dtype=np.int64)
    ends = np.empty(len(indices), dtype=np.int64)
    scores = np.empty(len(indices), dtype=np.float64)
    for k, i in enumerate(indices):
        match = read.matches[i]
        a = match.query_start or 1
        b = match.query_end or read_end
        # Reverse-strand alignments report start > end
        starts[k], ends[k] = min(a, b), max(a, b) + 1
        scores[k] = match.bit_score

    breakpoints = np.unique(np.concatenate([starts, ends]))
    cutoff_factor = 1.0 - min(algorithm.top_percent, 100.0) / 100.0

    weights: dict[int, float] = {}
    for left, right in zip(breakpoints[:-1], breakpoints[1:]):
        covering = np.flatnonzero((starts <= left) & (ends >= right))
        if covering.size == 0:
            continue
        cutoff = cutoff_factor * scores[covering].max()
        voters = covering[scores[covering] >= cutoff]
        segment_id = algorithm.lca_of(read.matches[indices[k]].class_id(scheme) for k in voters)
        if segment_id != NO_ID:
            weights[segment_id] = weights.get(segment_id, 0.0) + float(right - left)

    return algorithm.covering_ancestor(weights, algorithm.cover_percent)


def _apply_identity_filter(scheme: ClassificationScheme, class_id: int, best_identity: float) -> int:
    """
    Lift an assignment to the most specific rank its identity supports.

    The first rank threshold the identity reaches sets the finest allowed
    rank; identity below every threshold lifts past phylum.
    """
    for rank, threshold in RANK_IDENTITY_THRESHOLDS:
        if best_identity >= threshold:
            if rank == "species":
                return class_id
            return scheme.lift_to_rank(class_id, rank)
    return scheme.lift_to_rank(class_id, "kingdom")


_ASSIGNERS: dict[AlgorithmKind, Callable[[AssignmentAlgorithm, ActiveSet, ReadRecord], int]] = {
    AlgorithmKind.BEST_HIT: _assign_best_hit,
    AlgorithmKind.LCA: _assign_lca,
    AlgorithmKind.WEIGHTED_LCA: _assign_weighted_lca,
    AlgorithmKind.LONG_READ_LCA: _assign_long_read_lca,
}


def create_assignment_algorithm(
    kind: AlgorithmKind,
    scheme: ClassificationScheme,
    config: ClassifierConfig,
) -> AssignmentAlgorithm:
    """
    Build the assignment algorithm of a scheme from the run configuration.

    Args:
        kind: Variant selected for the scheme (see ClassifierConfig.algorithm_for)
        scheme: Classification scheme the algorithm assigns into
        config: Run configuration

    Returns:
        AssignmentAlgorithm bound to the scheme

    Raises:
        UnsupportedAlgorithmError: If an LCA-family variant is requested for a
            scheme without hierarchy
    """
    if kind.is_hierarchical and not scheme.has_hierarchy:
        raise UnsupportedAlgorithmError(scheme.name, kind.value, "scheme has no hierarchy")

    is_taxonomy = scheme.name == config.taxonomy_scheme
    return AssignmentAlgorithm(
        kind,
        scheme,
        top_percent=config.top_percent,
        weighted_percent=config.weighted_lca_percent,
        cover_percent=config.long_read_cover_percent,
        use_identity_filter=(
            config.use_identity_filter
            and is_taxonomy
            and kind in (AlgorithmKind.LCA, AlgorithmKind.LONG_READ_LCA)
        ),
    )
