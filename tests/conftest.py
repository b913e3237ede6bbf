"""
Shared pytest fixtures for readassign tests.

Provides small classification hierarchies, configurations and read
builders for unit and end-to-end testing.
"""

from __future__ import annotations

import logging
from pathlib import Path

import polars as pl
import pytest

from readassign.core.hierarchy import ClassificationScheme
from readassign.models.config import ClassifierConfig
from tests.factories import TAXONOMY_ROWS

# =============================================================================
# Taxonomy Test Data
#
#   1 root
#   +-- 2 Bacteria (superkingdom)
#   |   +-- 10 Proteobacteria (phylum)
#   |       +-- 20 Gammaproteobacteria (class)
#   |           +-- 30 Enterobacterales (order)
#   |               +-- 40 Enterobacteriaceae (family)
#   |                   +-- 50 Escherichia (genus)
#   |                   |   +-- 562 Escherichia coli (species)
#   |                   |   +-- 564 Escherichia fergusonii (species)
#   |                   +-- 51 Salmonella (genus)
#   |                       +-- 590 Salmonella enterica (species)
#   +-- 3 Archaea (superkingdom)
# =============================================================================


def build_taxonomy() -> ClassificationScheme:
    """Build the test taxonomy in memory."""
    return ClassificationScheme(
        "Taxonomy",
        {node: parent for node, parent, _, _ in TAXONOMY_ROWS},
        root_id=1,
        names={node: name for node, _, name, _ in TAXONOMY_ROWS},
        ranks={node: rank for node, _, _, rank in TAXONOMY_ROWS},
    )


@pytest.fixture
def taxonomy() -> ClassificationScheme:
    """Eleven-node taxonomy with ranks from superkingdom to species."""
    return build_taxonomy()


@pytest.fixture
def chain_scheme() -> ClassificationScheme:
    """Three-level hierarchy root(1) -> A(2) -> A1(3)."""
    return ClassificationScheme("Taxonomy", {2: 1, 3: 2}, root_id=1)


@pytest.fixture
def ec_scheme() -> ClassificationScheme:
    """Flat functional scheme without hierarchy."""
    return ClassificationScheme.flat("EC", [100, 200, 300])


@pytest.fixture
def taxonomy_table(tmp_path: Path) -> Path:
    """Taxonomy hierarchy written as a TSV table."""
    path = tmp_path / "taxonomy.tsv"
    pl.DataFrame(
        TAXONOMY_ROWS,
        schema={"id": pl.Int64, "parent_id": pl.Int64, "name": pl.Utf8, "rank": pl.Utf8},
        orient="row",
    ).write_csv(path, separator="\t")
    return path


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def default_config() -> ClassifierConfig:
    """Default configuration with the min-support pass switched off."""
    return ClassifierConfig(min_support_percent=0.0, min_support=0)


@pytest.fixture
def permissive_config() -> ClassifierConfig:
    """Configuration in which every alignment with a target is active."""
    return ClassifierConfig(
        min_score=0.0,
        max_expected=10.0,
        top_percent=100.0,
        min_support_percent=0.0,
        min_support=0,
    )


@pytest.fixture(autouse=True)
def reset_readassign_logger():
    """Undo the handler setup of CLI commands so caplog sees library records."""
    yield
    logger = logging.getLogger("readassign")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
