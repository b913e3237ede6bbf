"""Testing utilities for readassign."""

from tests.utils.assertions import (
    AssignmentAssertions,
    CLIAssertions,
    SummaryAssertions,
)

__all__ = [
    "AssignmentAssertions",
    "CLIAssertions",
    "SummaryAssertions",
]
