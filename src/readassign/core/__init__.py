"""
Core components for read classification.

This module contains the classification schemes, the read archive layer,
persistence of assignments and the shared constants and exceptions.
"""

from readassign.core.archive import InMemoryReadArchive, ReadArchive, TabularReadArchive
from readassign.core.hierarchy import ClassificationScheme
from readassign.core.persistence import PersistenceSink, TableSink

__all__ = [
    "ClassificationScheme",
    "InMemoryReadArchive",
    "PersistenceSink",
    "ReadArchive",
    "TableSink",
    "TabularReadArchive",
]
