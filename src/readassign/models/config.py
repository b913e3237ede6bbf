"""
Pydantic configuration models for readassign.

These models define the alignment filters, assignment-algorithm selection
and min-support settings of a classification run. Configuration can be
loaded from YAML files or assembled from CLI arguments.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from readassign.core.constants import (
    DEFAULT_LONG_READ_COVER_PERCENT,
    DEFAULT_MAX_EXPECTED,
    DEFAULT_MIN_PERCENT_IDENTITY,
    DEFAULT_MIN_SCORE,
    DEFAULT_MIN_SUPPORT_PERCENT,
    DEFAULT_TOP_PERCENT,
    DEFAULT_WEIGHTED_LCA_PERCENT,
    TAXONOMY,
)

logger = logging.getLogger(__name__)


class AlgorithmKind(str, Enum):
    """
    Assignment algorithms available for a classification scheme.

    Categories:
        BEST_HIT: Target of the single highest-scoring active match
        LCA: Lowest common ancestor of all active match targets
        WEIGHTED_LCA: Deepest node holding a share of the bit-score weight
        LONG_READ_LCA: Interval-aware LCA for reads with fragmented alignments
    """

    BEST_HIT = "best-hit"
    LCA = "lca"
    WEIGHTED_LCA = "weighted-lca"
    LONG_READ_LCA = "long-read-lca"

    @property
    def is_hierarchical(self) -> bool:
        """Whether the algorithm relies on a hierarchy (LCA family)."""
        return self is not AlgorithmKind.BEST_HIT


class SchemeConfig(BaseModel):
    """Per-scheme settings."""

    use_lca: bool | None = Field(
        default=None,
        description=(
            "Use LCA assignment for this scheme. None selects the default: "
            "LCA for the taxonomy scheme, best hit for all other schemes."
        ),
    )
    disabled_ids: frozenset[int] = Field(
        default_factory=frozenset,
        description="Class ids whose reads are always folded into the parent id.",
    )

    model_config = {"frozen": True}


class ClassifierConfig(BaseModel):
    """
    Configuration for read classification.

    Alignment filters (applied per scheme, see MatchFilter):
        - bit score >= min_score
        - expected value <= max_expected
        - percent identity >= min_percent_identity (0 disables)
        - bit score within top_percent of the best remaining bit score

    Algorithm selection:
        - Taxonomy: long-read LCA if use_long_read_lca, else weighted LCA if
          use_weighted_lca, else plain LCA
        - Other schemes: LCA when the scheme sets use_lca, else best hit

    Min-support:
        When min_support_percent > 0, the absolute min_support is derived
        after the streaming pass as a percentage of reads with hits plus
        reads assigned via their mate (at least 1).
    """

    min_score: float = Field(
        default=DEFAULT_MIN_SCORE,
        ge=0,
        description="Minimum bit score for an alignment to be considered",
    )
    max_expected: float = Field(
        default=DEFAULT_MAX_EXPECTED,
        ge=0,
        description="Maximum expected value for an alignment to be considered",
    )
    min_percent_identity: float = Field(
        default=DEFAULT_MIN_PERCENT_IDENTITY,
        ge=0,
        le=100,
        description="Minimum percent identity (0 = no filter)",
    )
    top_percent: float = Field(
        default=DEFAULT_TOP_PERCENT,
        ge=0,
        le=100,
        description="Keep alignments whose bit score is within this percentage of the best",
    )

    min_support_percent: float = Field(
        default=DEFAULT_MIN_SUPPORT_PERCENT,
        ge=0,
        le=100,
        description=(
            "Minimum support as a percentage of assigned reads. "
            "Takes precedence over min_support when > 0."
        ),
    )
    min_support: int = Field(
        default=0,
        ge=0,
        description="Minimum summed read weight a class must hold (0 = off)",
    )

    min_complexity: float = Field(
        default=0.0,
        ge=0,
        le=1,
        description="Reads with a complexity score below this value are flagged low complexity",
    )

    paired_reads: bool = Field(
        default=False,
        description="Use the mate of a paired read to refine its taxonomic assignment",
    )

    use_long_read_lca: bool = Field(
        default=False,
        description=(
            "Use the interval-aware LCA for the taxonomy scheme. "
            "The top-percent filter is then applied per interval instead of per read."
        ),
    )
    long_read_cover_percent: float = Field(
        default=DEFAULT_LONG_READ_COVER_PERCENT,
        gt=0,
        le=100,
        description="Percentage of aligned bases the long-read assignment must cover",
    )

    use_weighted_lca: bool = Field(
        default=False,
        description="Use the bit-score weighted LCA for the taxonomy scheme",
    )
    weighted_lca_percent: float = Field(
        default=DEFAULT_WEIGHTED_LCA_PERCENT,
        gt=0,
        le=100,
        description="Percentage of total alignment weight the weighted LCA must cover",
    )

    use_identity_filter: bool = Field(
        default=False,
        description=(
            "Lift taxonomic assignments to ranks supported by the best percent identity "
            "(species 99%, genus 97%, family 95%, order 90%, class 85%, phylum 80%)"
        ),
    )

    taxonomy_scheme: str = Field(
        default=TAXONOMY,
        description="Name of the scheme used for mate-pair resolution",
    )
    schemes: dict[str, SchemeConfig] = Field(
        default_factory=dict,
        description="Per-scheme settings keyed by scheme name",
    )

    @model_validator(mode="after")
    def validate_lca_modes(self) -> Self:
        """Long-read and weighted LCA are alternative taxonomy algorithms."""
        if self.use_long_read_lca and self.use_weighted_lca:
            logger.warning(
                "Both long-read and weighted LCA requested; long-read LCA takes precedence"
            )
        return self

    def scheme_config(self, scheme: str) -> SchemeConfig:
        return self.schemes.get(scheme) or SchemeConfig()

    def uses_lca(self, scheme: str) -> bool:
        """Whether a scheme is assigned with an LCA-family algorithm."""
        use_lca = self.scheme_config(scheme).use_lca
        if use_lca is None:
            return scheme == self.taxonomy_scheme
        return use_lca

    def algorithm_for(self, scheme: str) -> AlgorithmKind:
        """
        Select the assignment algorithm of a scheme.

        The selection is fixed for the whole run.
        """
        if scheme == self.taxonomy_scheme:
            if self.use_long_read_lca:
                return AlgorithmKind.LONG_READ_LCA
            if self.use_weighted_lca:
                return AlgorithmKind.WEIGHTED_LCA
            if self.uses_lca(scheme):
                return AlgorithmKind.LCA
            return AlgorithmKind.BEST_HIT
        return AlgorithmKind.LCA if self.uses_lca(scheme) else AlgorithmKind.BEST_HIT

    def top_percent_for(self, scheme: str) -> float:
        """
        Top-percent value used by the match filter for a scheme.

        The long-read LCA weighs alignments per interval itself, so its
        scheme is filtered with the top-percent clause disabled.
        """
        if scheme == self.taxonomy_scheme and self.use_long_read_lca:
            return 100.0
        return self.top_percent

    def disabled_ids(self, scheme: str) -> frozenset[int]:
        return self.scheme_config(scheme).disabled_ids

    def parameter_string(self) -> str:
        """Compact description of the run parameters, stored with the output."""
        parts = [
            f"minScore={self.min_score:g}",
            f"maxExpected={self.max_expected:g}",
            f"minPercentIdentity={self.min_percent_identity:g}",
            f"topPercent={self.top_percent:g}",
            f"minSupportPercent={self.min_support_percent:g}",
            f"minSupport={self.min_support}",
            f"minComplexity={self.min_complexity:g}",
            f"pairedReads={str(self.paired_reads).lower()}",
        ]
        if self.use_long_read_lca:
            parts.append(f"longReadLCA=true coverPercent={self.long_read_cover_percent:g}")
        elif self.use_weighted_lca:
            parts.append(f"weightedLCA=true lcaPercent={self.weighted_lca_percent:g}")
        if self.use_identity_filter:
            parts.append("identityFilter=true")
        return " ".join(parts)

    @classmethod
    def from_yaml(cls, path: Path) -> ClassifierConfig:
        """
        Load classifier configuration from a YAML file.

        The YAML file uses a nested structure that maps to ClassifierConfig
        fields. Unknown keys are ignored (forward compatibility).

        Args:
            path: Path to YAML configuration file.

        Returns:
            ClassifierConfig populated from YAML values merged with defaults.

        Raises:
            FileNotFoundError: If YAML file does not exist.
            ValueError: If YAML contains invalid values.
        """
        import yaml

        raw = yaml.safe_load(path.read_text())
        if not isinstance(raw, dict):
            msg = f"YAML config must be a mapping, got {type(raw).__name__}"
            raise ValueError(msg)

        flat = _flatten_yaml_config(raw)
        return cls(**flat)

    def to_yaml(self, path: Path) -> None:
        """Write classifier configuration to a YAML file."""
        path.write_text(self.to_yaml_str())

    def to_yaml_str(self) -> str:
        """Serialize classifier configuration to a YAML string."""
        import yaml

        data = _build_yaml_structure(self)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)

    model_config = {"frozen": True}


def _flatten_yaml_config(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Flatten nested YAML config structure into ClassifierConfig keyword arguments.

    Maps the documented nested YAML structure:
        filters.min_score -> min_score
        lca.weighted_percent -> weighted_lca_percent
        min_support.percent -> min_support_percent
        schemes.EC.use_lca -> schemes["EC"].use_lca
    """
    flat: dict[str, Any] = {}

    filters = raw.get("filters", {})
    _map_if_present(filters, "min_score", flat, "min_score")
    _map_if_present(filters, "max_expected", flat, "max_expected")
    _map_if_present(filters, "min_percent_identity", flat, "min_percent_identity")
    _map_if_present(filters, "top_percent", flat, "top_percent")
    _map_if_present(filters, "min_complexity", flat, "min_complexity")

    lca = raw.get("lca", {})
    _map_if_present(lca, "long_reads", flat, "use_long_read_lca")
    _map_if_present(lca, "long_read_cover_percent", flat, "long_read_cover_percent")
    _map_if_present(lca, "weighted", flat, "use_weighted_lca")
    _map_if_present(lca, "weighted_percent", flat, "weighted_lca_percent")
    _map_if_present(lca, "identity_filter", flat, "use_identity_filter")

    support = raw.get("min_support", {})
    _map_if_present(support, "percent", flat, "min_support_percent")
    _map_if_present(support, "count", flat, "min_support")

    _map_if_present(raw, "paired_reads", flat, "paired_reads")
    _map_if_present(raw, "taxonomy_scheme", flat, "taxonomy_scheme")

    schemes_raw = raw.get("schemes", {})
    if schemes_raw:
        schemes: dict[str, SchemeConfig] = {}
        for name, section in schemes_raw.items():
            section = section or {}
            kwargs: dict[str, Any] = {}
            _map_if_present(section, "use_lca", kwargs, "use_lca")
            if section.get("disabled_ids"):
                kwargs["disabled_ids"] = frozenset(int(i) for i in section["disabled_ids"])
            schemes[str(name)] = SchemeConfig(**kwargs)
        flat["schemes"] = schemes

    return flat


def _map_if_present(
    source: dict[str, Any],
    source_key: str,
    target: dict[str, Any],
    target_key: str,
) -> None:
    """Copy value from source dict to target dict if key exists."""
    if source_key in source and source[source_key] is not None:
        target[target_key] = source[source_key]


def _build_yaml_structure(config: ClassifierConfig) -> dict[str, Any]:
    """Build nested YAML dict from a ClassifierConfig instance."""
    return {
        "filters": {
            "min_score": config.min_score,
            "max_expected": config.max_expected,
            "min_percent_identity": config.min_percent_identity,
            "top_percent": config.top_percent,
            "min_complexity": config.min_complexity,
        },
        "lca": {
            "long_reads": config.use_long_read_lca,
            "long_read_cover_percent": config.long_read_cover_percent,
            "weighted": config.use_weighted_lca,
            "weighted_percent": config.weighted_lca_percent,
            "identity_filter": config.use_identity_filter,
        },
        "min_support": {
            "percent": config.min_support_percent,
            "count": config.min_support,
        },
        "paired_reads": config.paired_reads,
        "taxonomy_scheme": config.taxonomy_scheme,
        "schemes": {
            name: {
                "use_lca": scheme.use_lca,
                "disabled_ids": sorted(scheme.disabled_ids),
            }
            for name, scheme in config.schemes.items()
        },
    }
