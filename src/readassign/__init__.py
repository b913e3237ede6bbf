"""
Readassign: assignment of sequencing reads to classification hierarchies.

Streams the alignments of every read in an archive, selects the alignments
that may vote, and assigns each read a class id under every configured
classification scheme (taxonomy, functional schemes) using best-hit or
LCA-family algorithms, optional mate-pair refinement and a min-support
filter.
"""

__version__ = "0.1.0"
__author__ = "Readassign Team"

from readassign.core.archive import InMemoryReadArchive, TabularReadArchive
from readassign.core.classification.pipeline import classify_archive
from readassign.core.hierarchy import ClassificationScheme
from readassign.core.persistence import TableSink
from readassign.models.config import ClassifierConfig
from readassign.models.summary import RunStatus, RunSummary

__all__ = [
    "ClassificationScheme",
    "ClassifierConfig",
    "InMemoryReadArchive",
    "RunStatus",
    "RunSummary",
    "TableSink",
    "TabularReadArchive",
    "__version__",
    "classify_archive",
]
