"""
CLI commands for readassign.

Provides the classify and inspect commands.
"""

__all__ = ["classify", "inspect", "main"]
