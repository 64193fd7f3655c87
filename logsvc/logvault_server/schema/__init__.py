"""
Schema module for LogVault.

Provides idempotent provisioning of the storage-side objects the log store
depends on: the id generation capability, the ``log_flag`` severity type
and the ``logs`` table.

Invariants:
    - Apply and revert may be run any number of times
    - Provisioning must complete before the log store is used
"""

from .provisioner import MIGRATION_ID, SchemaProvisioner, SchemaState

__all__ = [
    "MIGRATION_ID",
    "SchemaProvisioner",
    "SchemaState",
]
