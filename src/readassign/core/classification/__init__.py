"""
Read classification: alignment filtering, assignment algorithms, the
streaming driver and the min-support filter.
"""

from readassign.core.classification.active_matches import active_matches
from readassign.core.classification.algorithms import (
    AssignmentAlgorithm,
    create_assignment_algorithm,
)
from readassign.core.classification.assignments import AssignmentRecord, UpdateBuffer
from readassign.core.classification.driver import (
    CancellationToken,
    ClassificationDriver,
    DriverState,
)
from readassign.core.classification.mate_pairs import MateResolution, resolve_mate_pair
from readassign.core.classification.min_support import MinSupportFilter
from readassign.core.classification.pipeline import classify_archive

__all__ = [
    "AssignmentAlgorithm",
    "AssignmentRecord",
    "CancellationToken",
    "ClassificationDriver",
    "DriverState",
    "MateResolution",
    "MinSupportFilter",
    "UpdateBuffer",
    "active_matches",
    "classify_archive",
    "create_assignment_algorithm",
    "resolve_mate_pair",
]
