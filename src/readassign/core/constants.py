"""
Constants used throughout the readassign package.

Centralizes sentinel class ids, default thresholds, and rank tables
to improve maintainability and consistency.
"""

from __future__ import annotations

# =============================================================================
# Sentinel Class Ids
#
# Real class ids are positive integers taken from a scheme's hierarchy.
# Algorithms return NO_ID when no consensus is reached; the driver coerces
# every id that is not known to a scheme to UNASSIGNED_ID.
# =============================================================================

NO_ID = 0
UNASSIGNED_ID = -2
LOW_COMPLEXITY_ID = -3

SENTINEL_IDS = frozenset({UNASSIGNED_ID, LOW_COMPLEXITY_ID})

# Name of the scheme that takes part in mate-pair resolution
TAXONOMY = "Taxonomy"

# =============================================================================
# Default Filter Thresholds
# =============================================================================

DEFAULT_MIN_SCORE = 50.0
DEFAULT_MAX_EXPECTED = 0.01
DEFAULT_MIN_PERCENT_IDENTITY = 0.0
DEFAULT_TOP_PERCENT = 10.0

# Min-support as a percentage of assigned reads (0 = use absolute count)
DEFAULT_MIN_SUPPORT_PERCENT = 0.05

DEFAULT_WEIGHTED_LCA_PERCENT = 80.0
DEFAULT_LONG_READ_COVER_PERCENT = 51.0

# Added to the complexity score before comparing with the minimum
COMPLEXITY_TOLERANCE = 0.01

# =============================================================================
# Percent-identity Rank Thresholds (16S identity filter)
#
# A taxonomic assignment is only kept at a rank when the best alignment
# identity reaches the value listed for it. Ordered from most to least
# specific.
# =============================================================================

RANK_IDENTITY_THRESHOLDS: tuple[tuple[str, float], ...] = (
    ("species", 99.0),
    ("genus", 97.0),
    ("family", 95.0),
    ("order", 90.0),
    ("class", 85.0),
    ("phylum", 80.0),
)

# Ranks from most specific to least specific, used to compare rank levels
RANK_ORDER: tuple[str, ...] = (
    "strain",
    "subspecies",
    "species",
    "species group",
    "genus",
    "family",
    "order",
    "class",
    "phylum",
    "kingdom",
    "superkingdom",
    "domain",
)
