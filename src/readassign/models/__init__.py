"""
Data models for readassign.

Provides the run configuration, the read and alignment records served by
archives, and the run summary.
"""

from readassign.models.config import AlgorithmKind, ClassifierConfig, SchemeConfig
from readassign.models.reads import MatchRecord, ReadRecord
from readassign.models.summary import RunStatus, RunSummary, SchemeSummary

__all__ = [
    "AlgorithmKind",
    "ClassifierConfig",
    "MatchRecord",
    "ReadRecord",
    "RunStatus",
    "RunSummary",
    "SchemeConfig",
    "SchemeSummary",
]
