"""
LogVault Server - remote log ingestion and retrieval.

Clients submit severity-tagged log entries and query them by id,
timestamp or severity. Entries flagged error or trace cannot be deleted.

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────┐     ┌─────────┐
    │   Client    │────▶│  HTTP API   │────▶│ LogService  │────▶│LogStore │
    │             │     │  (FastAPI)  │     │ (validation,│     │(SQLite) │
    └─────────────┘     └─────────────┘     │  policy)    │     └────┬────┘
                                            └─────────────┘          │
                                                                     ▼
                                            ┌─────────────────────────────┐
                                            │ SchemaProvisioner (startup) │
                                            │ log_flag type, logs table   │
                                            └─────────────────────────────┘

Invariants:
    - The severity flag set and rank order live only in severity.py
    - Validation happens before any storage call
    - Every create and delete runs in its own transaction
    - Provisioning is idempotent and safe under concurrent startup

How to change safely:
    - New flags are appended with a new rank and a provisioning step
    - Schema changes are new provisioning steps with existence checks

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
