"""
Store module for LogVault - SQLite persistence of log records.

Invariants:
    - LogStore is the only component that queries the logs table
    - One connection per operation, one transaction per write
    - The schema must be provisioned before the store is used
"""

from .database import Database
from .log_store import LogRecord, LogStore

__all__ = [
    "Database",
    "LogRecord",
    "LogStore",
]
