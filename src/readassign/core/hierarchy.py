"""
Classification schemes and their hierarchies.

A scheme (e.g. Taxonomy, EC) is a rooted tree of integer class ids. The
tree drives the LCA-family assignment algorithms and the min-support
filter; the set of node ids defines which ids the driver accepts.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

import polars as pl

from readassign.core.constants import NO_ID, RANK_ORDER, SENTINEL_IDS
from readassign.core.exceptions import HierarchyError
from readassign.core.io_utils import read_dataframe

logger = logging.getLogger(__name__)

_RANK_LEVEL: dict[str, int] = {rank: level for level, rank in enumerate(RANK_ORDER)}


class ClassificationScheme:
    """
    Named hierarchical classification scheme.

    Stores the parent of every node, the root id, and optional names and
    ranks. A scheme built without parents is flat: its ids are valid
    targets but it cannot be used by LCA-family algorithms.

    Example:
        >>> scheme = ClassificationScheme("Taxonomy", {2: 1, 3: 2}, root_id=1)
        >>> scheme.path_to_root(3)
        (3, 2, 1)
    """

    def __init__(
        self,
        name: str,
        parent: Mapping[int, int],
        root_id: int,
        names: Mapping[int, str] | None = None,
        ranks: Mapping[int, str] | None = None,
        has_hierarchy: bool = True,
    ) -> None:
        self.name = name
        self.root_id = root_id
        self.has_hierarchy = has_hierarchy
        self._parent: dict[int, int] = {int(k): int(v) for k, v in parent.items()}
        self._parent.pop(root_id, None)
        self.names: dict[int, str] = dict(names or {})
        self.ranks: dict[int, str] = {k: v.lower() for k, v in (ranks or {}).items() if v}

        self._node_ids = frozenset(self._parent) | {root_id}
        self.known_ids: frozenset[int] = (self._node_ids - {NO_ID}) | SENTINEL_IDS
        self._depth = self._compute_depths()

    @classmethod
    def flat(cls, name: str, ids: Iterable[int]) -> ClassificationScheme:
        """Build a scheme without hierarchy; every id hangs below a virtual root 0."""
        return cls(name, {int(i): 0 for i in ids if int(i) > 0}, root_id=0, has_hierarchy=False)

    @classmethod
    def from_table(cls, name: str, path: Path) -> ClassificationScheme:
        """
        Load a scheme from a hierarchy table.

        The table needs an 'id' column; with a 'parent_id' column it defines a
        tree whose single root has parent_id equal to its own id or empty.
        Optional 'name' and 'rank' columns are kept for reporting and for the
        identity filter. A table with only 'id' yields a flat scheme.

        Args:
            name: Scheme name, also the matches-table column holding its ids
            path: Hierarchy table (TSV, CSV or Parquet)

        Returns:
            ClassificationScheme

        Raises:
            FileNotFoundError: If the table does not exist
            HierarchyError: If the table is malformed
        """
        if not path.exists():
            msg = f"Hierarchy table not found: {path}"
            raise FileNotFoundError(msg)

        df = read_dataframe(path)
        if "id" not in df.columns:
            raise HierarchyError(name, f"missing 'id' column in {path}")

        if "parent_id" not in df.columns:
            logger.info("Loaded flat scheme %s with %d ids from %s", name, df.height, path)
            return cls.flat(name, df["id"].cast(pl.Int64).to_list())

        df = df.with_columns(
            pl.col("id").cast(pl.Int64),
            pl.col("parent_id").cast(pl.Int64, strict=False),
        )
        roots = df.filter(
            pl.col("parent_id").is_null() | (pl.col("parent_id") == pl.col("id"))
        )["id"].to_list()
        if len(roots) != 1:
            raise HierarchyError(name, f"expected exactly one root, found {len(roots)}")

        parent = dict(
            zip(df["id"].to_list(), df["parent_id"].to_list(), strict=True)
        )
        names = (
            dict(zip(df["id"].to_list(), df["name"].cast(pl.Utf8).to_list(), strict=True))
            if "name" in df.columns
            else None
        )
        ranks = (
            dict(zip(df["id"].to_list(), df["rank"].cast(pl.Utf8).to_list(), strict=True))
            if "rank" in df.columns
            else None
        )
        scheme = cls(name, {k: v for k, v in parent.items() if v is not None}, roots[0], names, ranks)
        logger.info("Loaded scheme %s with %d nodes from %s", name, len(scheme), path)
        return scheme

    def _compute_depths(self) -> dict[int, int]:
        depth: dict[int, int] = {self.root_id: 0}
        for node in self._parent:
            trail: list[int] = []
            current = node
            while current not in depth:
                if current not in self._parent:
                    raise HierarchyError(self.name, f"node {node} has unknown ancestor {current}")
                if len(trail) > len(self._parent):
                    raise HierarchyError(self.name, f"cycle through node {node}")
                trail.append(current)
                current = self._parent[current]
            base = depth[current]
            for offset, visited in enumerate(reversed(trail), start=1):
                depth[visited] = base + offset
        return depth

    def __len__(self) -> int:
        return len(self._node_ids)

    def __contains__(self, class_id: object) -> bool:
        return class_id in self._node_ids

    def parent_of(self, class_id: int) -> int | None:
        """Parent id, or None for the root and for unknown ids."""
        return self._parent.get(class_id)

    def depth(self, class_id: int) -> int:
        """Distance from the root (root = 0); -1 for unknown ids."""
        return self._depth.get(class_id, -1)

    def path_to_root(self, class_id: int) -> tuple[int, ...]:
        """Ids from class_id up to and including the root; empty for unknown ids."""
        if class_id not in self._node_ids:
            return ()
        path = [class_id]
        current = class_id
        while current != self.root_id:
            current = self._parent[current]
            path.append(current)
        return tuple(path)

    def is_top_level(self, class_id: int) -> bool:
        """True for the root and its direct children."""
        return class_id == self.root_id or self._parent.get(class_id) == self.root_id

    def rank_of(self, class_id: int) -> str | None:
        return self.ranks.get(class_id)

    def lift_to_rank(self, class_id: int, rank: str) -> int:
        """
        Nearest ancestor-or-self whose rank is at or above the given rank.

        Nodes without a recognised rank are skipped. Returns the root when no
        ancestor qualifies.
        """
        target_level = _RANK_LEVEL[rank]
        for node in self.path_to_root(class_id):
            level = _RANK_LEVEL.get(self.ranks.get(node, ""))
            if level is not None and level >= target_level:
                return node
        return self.root_id if class_id in self._node_ids else class_id

    def label(self, class_id: int) -> str:
        return self.names.get(class_id, str(class_id))
