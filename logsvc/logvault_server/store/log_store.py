"""
SQLite log store for LogVault.

The only component that issues queries against the ``logs`` table.

Table schema (see schema.provisioner):
    logs:
        - id TEXT PRIMARY KEY (v4 UUID, generated by the column default)
        - flag TEXT NOT NULL REFERENCES log_flag(name)
        - message TEXT NOT NULL, never empty
        - timestamp INTEGER NOT NULL (Unix microseconds, defaults to now)
        - INDEX on timestamp, INDEX on flag

Timestamps are stored in microseconds, but the storage default only has
millisecond resolution (julianday) and lands on a whole millisecond.
Explicit timestamps passed to insert keep full microsecond precision.

Invariants:
    - Records are never updated in place
    - Every write runs in its own BEGIN IMMEDIATE transaction
    - Deleting an absent record is not an error at this layer
    - Engine failures surface as StorageError, never retried
    - A write abandoned by its caller rolls back (see store.database)

How to change safely:
    - Keep queries parameterized
    - Add columns through a new provisioning step, never in place
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..errors import NotFoundError
from ..severity import Severity
from .database import Database, scalar, transaction

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_micros(ts: datetime) -> int:
    """Convert an aware datetime to Unix microseconds (naive is read as UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    delta = ts - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds


def from_micros(value: int) -> datetime:
    """Convert Unix microseconds to an aware UTC datetime."""
    seconds, micros = divmod(int(value), 1_000_000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=micros)


@dataclass(frozen=True)
class LogRecord:
    """One ingested log event.

    Attributes:
        id: Record identifier (UUID string), assigned by the store
        flag: Severity flag
        message: Non-empty log text
        timestamp: Creation time (UTC)
    """

    id: str
    flag: Severity
    message: str
    timestamp: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> LogRecord:
        return cls(
            id=row["id"],
            flag=Severity(row["flag"]),
            message=row["message"],
            timestamp=from_micros(row["timestamp"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "flag": self.flag.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


class LogStore:
    """Persistence for log records.

    Example:
        >>> store = LogStore(Database("/var/lib/logvault/logvault.db"))
        >>> record = await store.insert(Severity.WARN, "disk almost full")
        >>> (await store.find_by_id(record.id)).message
        'disk almost full'
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    async def insert(
        self,
        flag: Severity,
        message: str,
        timestamp: datetime | None = None,
    ) -> LogRecord:
        """Insert a record.

        Args:
            flag: Severity flag
            message: Log text
            timestamp: Optional creation time (storage default is now)

        Returns:
            Stored record with id and timestamp populated

        Raises:
            StorageError: On any backend failure
        """

        def _insert(conn: sqlite3.Connection) -> LogRecord:
            with transaction(conn):
                if timestamp is None:
                    cursor = conn.execute(
                        "INSERT INTO logs (flag, message) VALUES (?, ?) RETURNING *",
                        (flag.value, message),
                    )
                else:
                    cursor = conn.execute(
                        "INSERT INTO logs (flag, message, timestamp) VALUES (?, ?, ?) RETURNING *",
                        (flag.value, message, to_micros(timestamp)),
                    )
                row = cursor.fetchone()
                # RETURNING rows must be consumed before COMMIT
                cursor.fetchall()
                return LogRecord.from_row(row)

        record = await self.database.run(_insert)

        logger.debug(
            "Inserted log",
            extra={"record_id": record.id, "flag": record.flag.value},
        )
        return record

    async def find_by_id(self, record_id: str) -> LogRecord:
        """Get a record by id.

        Raises:
            NotFoundError: If no record has this id
        """

        def _find(conn: sqlite3.Connection) -> sqlite3.Row | None:
            return conn.execute("SELECT * FROM logs WHERE id = ?", (record_id,)).fetchone()

        row = await self.database.run(_find)
        if row is None:
            raise NotFoundError(f"Log {record_id} not found", lookup=record_id)
        return LogRecord.from_row(row)

    async def find_latest_at_or_before(self, timestamp: datetime) -> LogRecord:
        """Get the record with the greatest timestamp <= ``timestamp``.

        Ties between records with the same timestamp are broken by storage
        order and are not guaranteed to be stable.

        Raises:
            NotFoundError: If every record is newer than ``timestamp``
        """
        micros = to_micros(timestamp)

        def _find(conn: sqlite3.Connection) -> sqlite3.Row | None:
            return conn.execute(
                """
                SELECT * FROM logs
                WHERE timestamp <= ?
                ORDER BY timestamp DESC
                LIMIT 1
                """,
                (micros,),
            ).fetchone()

        row = await self.database.run(_find)
        if row is None:
            raise NotFoundError(
                f"No log at or before {timestamp.isoformat()}",
                lookup=timestamp.isoformat(),
            )
        return LogRecord.from_row(row)

    async def list_all(self, limit: int | None = None, offset: int = 0) -> list[LogRecord]:
        """List records.

        Args:
            limit: Maximum records to return; None returns everything in
                storage order
            offset: Pagination offset, only applied with ``limit``

        Returns:
            List of records (newest first when paginated)
        """

        def _list(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            if limit is None:
                return conn.execute("SELECT * FROM logs").fetchall()
            return conn.execute(
                """
                SELECT * FROM logs
                ORDER BY timestamp DESC, id
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            ).fetchall()

        rows = await self.database.run(_list)
        return [LogRecord.from_row(row) for row in rows]

    async def list_by_flag(self, flag: Severity) -> list[LogRecord]:
        """List every record carrying ``flag``."""

        def _list(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute("SELECT * FROM logs WHERE flag = ?", (flag.value,)).fetchall()

        rows = await self.database.run(_list)
        return [LogRecord.from_row(row) for row in rows]

    async def delete(self, record: LogRecord | str) -> bool:
        """Physically delete a record.

        Args:
            record: Record or record id

        Returns:
            True if a row was removed, False if it was already absent
        """
        record_id = record.id if isinstance(record, LogRecord) else record

        def _delete(conn: sqlite3.Connection) -> bool:
            with transaction(conn):
                cursor = conn.execute("DELETE FROM logs WHERE id = ?", (record_id,))
                return cursor.rowcount > 0

        deleted = await self.database.run(_delete)

        logger.debug("Deleted log", extra={"record_id": record_id, "deleted": deleted})
        return deleted

    async def count(self) -> int:
        """Number of stored records."""
        return await self.database.run(lambda conn: scalar(conn, "SELECT count(*) FROM logs"))

    async def ping(self) -> bool:
        """Check that the database answers a trivial query."""
        return await self.database.run(lambda conn: scalar(conn, "SELECT 1") == 1)
