"""
Idempotent schema provisioning for the LogVault store.

Brings the database from "unprovisioned" to "provisioned" and back without
assuming anything about its current state. Safe to run at every process
start, including several instances starting at once against a shared file.

Apply steps:
    1. id_generation: the engine can generate record ids storage-side
       (v4 UUID column default read back through INSERT ... RETURNING)
    2. log_flag: lookup table standing in for the severity enum type,
       seeded from the Severity model
    3. logs: the record table and its indexes

Revert steps:
    1. drop logs if it exists
    2. drop log_flag if it exists (logs references it, so it goes last)

Invariants:
    - Every step checks for existence before creating or dropping
    - A concurrent "already exists" outcome is tolerated, not fatal
    - A failed step aborts the run; completed steps are kept and a
      re-run resumes from where it stopped
    - The migration ledger records MIGRATION_ID while provisioned

How to change safely:
    - Add new schema objects as new steps with their own existence check
    - New severity flags must be appended to log_flag, never renumbered
    - Never make a step destructive on apply
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from ..errors import SchemaProvisioningError, StorageError
from ..severity import DEFAULT_SEVERITY, Severity
from ..store.database import Database, table_exists, transaction

logger = logging.getLogger(__name__)

MIGRATION_ID = "0001_init_log_flag_and_logs"

FLAG_TYPE_NAME = "log_flag"
LOG_TABLE_NAME = "logs"
LEDGER_TABLE_NAME = "schema_migrations"

# RETURNING is required to read back storage-generated ids and timestamps
MIN_SQLITE_VERSION = (3, 35, 0)

UUID_V4_SQL = (
    "lower(hex(randomblob(4))) || '-' || lower(hex(randomblob(2))) || '-4' || "
    "substr(lower(hex(randomblob(2))), 2) || '-' || "
    "substr('89ab', 1 + (random() & 3), 1) || substr(lower(hex(randomblob(2))), 2) || '-' || "
    "lower(hex(randomblob(6)))"
)

# Unix epoch in microseconds, on a whole millisecond (julianday resolution)
NOW_MICROS_SQL = "CAST(ROUND((julianday('now') - 2440587.5) * 86400000.0) AS INTEGER) * 1000"


@dataclass
class SchemaState:
    """Observed state of the storage-side schema objects."""

    id_generation: bool
    flag_type: bool
    log_table: bool
    applied_migrations: list[str] = field(default_factory=list)

    @property
    def provisioned(self) -> bool:
        return self.id_generation and self.flag_type and self.log_table

    def to_dict(self) -> dict[str, object]:
        return {
            "id_generation": self.id_generation,
            "flag_type": self.flag_type,
            "log_table": self.log_table,
            "applied_migrations": list(self.applied_migrations),
            "provisioned": self.provisioned,
        }


def _is_already_exists(error: sqlite3.Error) -> bool:
    return "already exists" in str(error).lower()


class SchemaProvisioner:
    """Applies and reverts the LogVault schema.

    Example:
        >>> provisioner = SchemaProvisioner(Database("logvault.db"))
        >>> await provisioner.apply()
        >>> (await provisioner.status()).provisioned
        True
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    async def apply(self) -> SchemaState:
        """Provision every schema object that is missing.

        Returns:
            Schema state after provisioning

        Raises:
            SchemaProvisioningError: If a step fails
        """
        logger.info("Applying schema", extra={"migration_id": MIGRATION_ID})
        state = await self._run("apply", self._apply)
        logger.info("Schema applied", extra=state.to_dict())
        return state

    async def revert(self) -> SchemaState:
        """Drop the log table and flag type if they exist.

        Raises:
            SchemaProvisioningError: If a step fails
        """
        logger.info("Reverting schema", extra={"migration_id": MIGRATION_ID})
        state = await self._run("revert", self._revert)
        logger.info("Schema reverted", extra=state.to_dict())
        return state

    async def status(self) -> SchemaState:
        """Inspect the schema without changing it."""
        return await self._run("status", self._status)

    async def _run(
        self, step: str, fn: Callable[[sqlite3.Connection], SchemaState]
    ) -> SchemaState:
        try:
            return await self.database.run(fn)
        except SchemaProvisioningError:
            raise
        except StorageError as e:
            raise SchemaProvisioningError(f"Schema {step} failed: {e.message}", step=step) from e

    # --- apply ---

    def _apply(self, conn: sqlite3.Connection) -> SchemaState:
        self._ensure_id_generation(conn)
        self._step(conn, FLAG_TYPE_NAME, self._ensure_flag_type)
        self._step(conn, LOG_TABLE_NAME, self._ensure_log_table)
        self._step(conn, LEDGER_TABLE_NAME, self._record_migration)
        return self._status(conn)

    def _step(
        self, conn: sqlite3.Connection, step: str, fn: Callable[[sqlite3.Connection], None]
    ) -> None:
        try:
            with transaction(conn):
                fn(conn)
        except sqlite3.Error as e:
            if _is_already_exists(e):
                # Another instance created it between our check and create
                logger.info(f"Schema object {step} created concurrently, continuing")
                return
            raise SchemaProvisioningError(f"Schema step {step} failed: {e}", step=step) from e

    def _ensure_id_generation(self, conn: sqlite3.Connection) -> None:
        if sqlite3.sqlite_version_info < MIN_SQLITE_VERSION:
            required = ".".join(str(p) for p in MIN_SQLITE_VERSION)
            raise SchemaProvisioningError(
                f"SQLite {sqlite3.sqlite_version} cannot generate ids storage-side "
                f"(requires >= {required})",
                step="id_generation",
            )
        try:
            conn.execute(f"SELECT {UUID_V4_SQL}").fetchone()
        except sqlite3.Error as e:
            raise SchemaProvisioningError(
                f"Id generation unavailable: {e}", step="id_generation"
            ) from e

    def _ensure_flag_type(self, conn: sqlite3.Connection) -> None:
        if table_exists(conn, FLAG_TYPE_NAME):
            logger.debug(f"{FLAG_TYPE_NAME} already exists")
        else:
            conn.execute(
                f"""
                CREATE TABLE {FLAG_TYPE_NAME} (
                    name TEXT PRIMARY KEY,
                    rank INTEGER NOT NULL UNIQUE
                )
                """
            )
            logger.info(f"Created {FLAG_TYPE_NAME}")

        conn.executemany(
            f"INSERT OR IGNORE INTO {FLAG_TYPE_NAME} (name, rank) VALUES (?, ?)",
            [(s.value, s.rank) for s in Severity],
        )

    def _ensure_log_table(self, conn: sqlite3.Connection) -> None:
        if table_exists(conn, LOG_TABLE_NAME):
            logger.debug(f"{LOG_TABLE_NAME} already exists")
        else:
            conn.execute(
                f"""
                CREATE TABLE {LOG_TABLE_NAME} (
                    id TEXT PRIMARY KEY NOT NULL DEFAULT ({UUID_V4_SQL}),
                    flag TEXT NOT NULL DEFAULT '{DEFAULT_SEVERITY.value}'
                        REFERENCES {FLAG_TYPE_NAME}(name),
                    message TEXT NOT NULL CHECK (message <> ''),
                    timestamp INTEGER NOT NULL DEFAULT ({NOW_MICROS_SQL})
                )
                """
            )
            logger.info(f"Created {LOG_TABLE_NAME}")

        conn.execute(
            f"CREATE INDEX IF NOT EXISTS idx_logs_timestamp ON {LOG_TABLE_NAME}(timestamp)"
        )
        conn.execute(f"CREATE INDEX IF NOT EXISTS idx_logs_flag ON {LOG_TABLE_NAME}(flag)")

    def _record_migration(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {LEDGER_TABLE_NAME} (
                id TEXT PRIMARY KEY,
                applied_at INTEGER NOT NULL
            )
            """
        )
        conn.execute(
            f"INSERT OR IGNORE INTO {LEDGER_TABLE_NAME} (id, applied_at) VALUES (?, ?)",
            (MIGRATION_ID, int(time.time() * 1000)),
        )

    # --- revert ---

    def _revert(self, conn: sqlite3.Connection) -> SchemaState:
        self._step(conn, LOG_TABLE_NAME, lambda c: self._drop_if_exists(c, LOG_TABLE_NAME))
        self._step(conn, FLAG_TYPE_NAME, lambda c: self._drop_if_exists(c, FLAG_TYPE_NAME))
        self._step(conn, LEDGER_TABLE_NAME, self._forget_migration)
        return self._status(conn)

    def _drop_if_exists(self, conn: sqlite3.Connection, name: str) -> None:
        if not table_exists(conn, name):
            logger.debug(f"{name} does not exist, nothing to drop")
            return
        conn.execute(f"DROP TABLE IF EXISTS {name}")
        logger.info(f"Dropped {name}")

    def _forget_migration(self, conn: sqlite3.Connection) -> None:
        if table_exists(conn, LEDGER_TABLE_NAME):
            conn.execute(f"DELETE FROM {LEDGER_TABLE_NAME} WHERE id = ?", (MIGRATION_ID,))

    # --- status ---

    def _status(self, conn: sqlite3.Connection) -> SchemaState:
        applied: list[str] = []
        if table_exists(conn, LEDGER_TABLE_NAME):
            rows = conn.execute(f"SELECT id FROM {LEDGER_TABLE_NAME} ORDER BY id").fetchall()
            applied = [row["id"] for row in rows]

        return SchemaState(
            id_generation=sqlite3.sqlite_version_info >= MIN_SQLITE_VERSION,
            flag_type=table_exists(conn, FLAG_TYPE_NAME),
            log_table=table_exists(conn, LOG_TABLE_NAME),
            applied_migrations=applied,
        )
