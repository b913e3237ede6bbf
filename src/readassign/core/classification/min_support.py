"""
Min-support and disabled-id filter for hierarchical schemes.

Classes that collect too little read weight, and classes an administrator
has disabled, hand their reads to their parent class. The filter works on
the per-class weight totals only and returns a remap old id -> new id that
the caller applies to the per-read assignments.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Collection, Mapping

from readassign.core.constants import SENTINEL_IDS, UNASSIGNED_ID
from readassign.core.hierarchy import ClassificationScheme

logger = logging.getLogger(__name__)


class MinSupportFilter:
    """
    Fold under-supported and disabled classes into their parents.

    Ids are visited deepest first, so weight handed to a parent is tested
    again when the parent itself is visited. Folding stops at the top level:
    the root and the non-disabled children of the root keep whatever weight
    they hold. Ids unknown to the hierarchy go to UNASSIGNED_ID; sentinel
    ids are left alone.

    The total weight is conserved, and running the filter on its own output
    with the same threshold returns an empty remap.

    Example:
        >>> scheme = ClassificationScheme("Taxonomy", {2: 1, 3: 2}, root_id=1)
        >>> f = MinSupportFilter(scheme, {3: 3, 2: 0, 1: 0}, min_support=5)
        >>> f.apply()
        {3: 2}
        >>> f.counts
        {3: 0, 2: 3, 1: 0}
    """

    def __init__(
        self,
        scheme: ClassificationScheme,
        class_counts: Mapping[int, int],
        min_support: int,
        disabled_ids: Collection[int] = frozenset(),
    ) -> None:
        self.scheme = scheme
        self.min_support = min_support
        self.disabled_ids = frozenset(disabled_ids)
        self.counts: dict[int, int] = dict(class_counts)

    def apply(self) -> dict[int, int]:
        """
        Run the filter.

        Returns:
            Remap from every id that lost its reads to the id that finally
            holds them. self.counts holds the filtered weights afterwards.
        """
        moves: dict[int, int] = {}

        for class_id in list(self.counts):
            if class_id in SENTINEL_IDS or class_id in self.scheme:
                continue
            weight = self.counts[class_id]
            self.counts[class_id] = 0
            if weight > 0:
                self.counts[UNASSIGNED_ID] = self.counts.get(UNASSIGNED_ID, 0) + weight
                moves[class_id] = UNASSIGNED_ID

        queue = [
            (-self.scheme.depth(class_id), class_id)
            for class_id in self.counts
            if class_id in self.scheme
        ]
        heapq.heapify(queue)
        queued = {class_id for _, class_id in queue}

        while queue:
            _, class_id = heapq.heappop(queue)
            weight = self.counts.get(class_id, 0)
            if weight <= 0 or not self._must_fold(class_id, weight):
                continue

            parent = self.scheme.parent_of(class_id)
            if parent is None:
                continue
            self.counts[class_id] = 0
            self.counts[parent] = self.counts.get(parent, 0) + weight
            moves[class_id] = parent
            if parent not in queued:
                heapq.heappush(queue, (-self.scheme.depth(parent), parent))
                queued.add(parent)

        remap = {old: self._resolve(moves, old) for old in moves}
        logger.debug(
            "Min-support %d on %s moved %d classes", self.min_support, self.scheme.name, len(remap)
        )
        return remap

    def _must_fold(self, class_id: int, weight: int) -> bool:
        if class_id in self.disabled_ids:
            return class_id != self.scheme.root_id
        if self.scheme.is_top_level(class_id):
            return False
        return self.min_support > 0 and weight < self.min_support

    @staticmethod
    def _resolve(moves: Mapping[int, int], class_id: int) -> int:
        target = moves[class_id]
        while target in moves:
            target = moves[target]
        return target
