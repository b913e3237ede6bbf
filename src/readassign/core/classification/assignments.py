"""
Per-read assignment buffer filled by the classification driver.

Assignments are stored column-wise: one list of read uids, one of weights
and one list of class ids per scheme. Alongside, the buffer keeps the
summed read weight per class id for every scheme, which is what the
min-support filter and the class-size report work on.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator, Mapping, Sequence
from typing import NamedTuple

import polars as pl


class AssignmentRecord(NamedTuple):
    """Class ids assigned to one read, in scheme order."""

    read_uid: int
    weight: int
    class_ids: tuple[int, ...]


class UpdateBuffer:
    """
    Column-oriented store of AssignmentRecords.

    Example:
        >>> buffer = UpdateBuffer(["Taxonomy", "EC"])
        >>> buffer.add(1, 2, (562, -2))
        >>> buffer.class_counts("Taxonomy")
        Counter({562: 2})
    """

    def __init__(self, scheme_names: Sequence[str]) -> None:
        self.scheme_names = tuple(scheme_names)
        self._index = {name: i for i, name in enumerate(self.scheme_names)}
        self.read_uids: list[int] = []
        self.weights: list[int] = []
        self._ids: list[list[int]] = [[] for _ in self.scheme_names]
        self._counts: list[Counter[int]] = [Counter() for _ in self.scheme_names]

    def __len__(self) -> int:
        return len(self.read_uids)

    def __iter__(self) -> Iterator[AssignmentRecord]:
        for row, (uid, weight) in enumerate(zip(self.read_uids, self.weights)):
            yield AssignmentRecord(uid, weight, tuple(ids[row] for ids in self._ids))

    def add(self, read_uid: int, weight: int, class_ids: Sequence[int]) -> None:
        if len(class_ids) != len(self.scheme_names):
            msg = f"Expected {len(self.scheme_names)} class ids, got {len(class_ids)}"
            raise ValueError(msg)
        self.read_uids.append(read_uid)
        self.weights.append(weight)
        for ids, counts, class_id in zip(self._ids, self._counts, class_ids):
            ids.append(class_id)
            counts[class_id] += weight

    def class_ids(self, scheme: str) -> list[int]:
        return self._ids[self._index[scheme]]

    def class_counts(self, scheme: str) -> Counter[int]:
        """Summed read weight per class id under a scheme."""
        return self._counts[self._index[scheme]]

    def apply_remap(self, scheme: str, remap: Mapping[int, int]) -> int:
        """
        Rewrite the class ids of a scheme through a remap.

        Returns:
            Number of reads whose id changed.
        """
        if not remap:
            return 0
        index = self._index[scheme]
        ids = self._ids[index]
        counts = self._counts[index]
        changed = 0
        for row, class_id in enumerate(ids):
            new_id = remap.get(class_id)
            if new_id is not None and new_id != class_id:
                weight = self.weights[row]
                ids[row] = new_id
                counts[class_id] -= weight
                counts[new_id] += weight
                changed += 1
        for class_id in [c for c, w in counts.items() if w == 0]:
            del counts[class_id]
        return changed

    def to_dataframe(self) -> pl.DataFrame:
        """Assignment table sorted by read uid."""
        data: dict[str, list[int]] = {"read_uid": self.read_uids, "weight": self.weights}
        for name, ids in zip(self.scheme_names, self._ids):
            data[name] = ids
        return pl.DataFrame(data, schema={column: pl.Int64 for column in data}).sort("read_uid")
