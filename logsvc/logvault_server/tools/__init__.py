"""
Operational tools for LogVault.

- migrate_cli: apply, revert or inspect the schema from the command line
"""

from .migrate_cli import MigrateCLI

__all__ = ["MigrateCLI"]
