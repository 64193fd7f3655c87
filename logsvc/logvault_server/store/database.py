"""
SQLite connection handling shared by the provisioner and the log store.

Thread safety:
    A connection is created per operation and closed afterwards.
    Blocking work runs in the loop's default executor; SQLite serializes
    conflicting writers through its own locking (busy_timeout).

Cancellation:
    When the awaiting task is cancelled (request deadline or client gone),
    the worker's connection is interrupted and flagged. A transaction on a
    flagged connection rolls back instead of committing, so an abandoned
    write never lands. A cancellation arriving while COMMIT itself is
    running cannot be undone.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from ..errors import LogVaultError, StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellableConnection(sqlite3.Connection):
    """sqlite3 connection that an abandoned caller can abort from another thread."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.cancelled = threading.Event()

    def raise_if_cancelled(self) -> None:
        if self.cancelled.is_set():
            raise sqlite3.OperationalError("interrupted")


class _Operation:
    """Tracks the live connection of one in-flight storage call."""

    def __init__(self) -> None:
        self.cancelled = threading.Event()
        self._conn: CancellableConnection | None = None
        self._lock = threading.Lock()

    def attach(self, conn: CancellableConnection) -> None:
        with self._lock:
            conn.cancelled = self.cancelled
            self._conn = conn

    def detach(self) -> None:
        with self._lock:
            self._conn = None

    def cancel(self) -> None:
        with self._lock:
            self.cancelled.set()
            if self._conn is not None:
                # interrupt() is the one sqlite3 call safe from another thread
                self._conn.interrupt()


class Database:
    """Opens configured SQLite connections and runs work off the event loop.

    Example:
        >>> db = Database("/var/lib/logvault/logvault.db")
        >>> rows = await db.run(lambda conn: conn.execute("SELECT 1").fetchall())
    """

    def __init__(
        self,
        path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the database handle.

        Args:
            path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms

    @contextmanager
    def connect(self) -> Iterator[CancellableConnection]:
        """Open a configured connection in autocommit mode.

        Yields:
            SQLite connection; callers issue BEGIN/COMMIT explicitly
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
            factory=CancellableConnection,
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")

            yield conn
        finally:
            conn.close()

    def call(
        self,
        fn: Callable[[sqlite3.Connection], T],
        operation: _Operation | None = None,
    ) -> T:
        """Run ``fn`` with a fresh connection, translating engine errors.

        Args:
            fn: Work to run against the connection
            operation: Cancellation handle shared with the awaiting task

        Raises:
            StorageError: On any sqlite3 error
        """
        try:
            with self.connect() as conn:
                if operation is None:
                    return fn(conn)
                operation.attach(conn)
                try:
                    conn.raise_if_cancelled()
                    return fn(conn)
                finally:
                    operation.detach()
        except LogVaultError:
            raise
        except sqlite3.Error as e:
            if operation is not None and operation.cancelled.is_set():
                logger.warning(
                    f"Abandoned storage operation aborted: {e}",
                    extra={"db_path": str(self.path)},
                )
            else:
                logger.error(f"Storage operation failed: {e}", extra={"db_path": str(self.path)})
            raise StorageError(str(e)) from e

    async def run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``fn`` in the default executor.

        Cancelling the awaiting task aborts the work in the executor: the
        running statement is interrupted and open transactions roll back.
        """
        loop = asyncio.get_running_loop()
        operation = _Operation()
        try:
            return await loop.run_in_executor(None, functools.partial(self.call, fn, operation))
        except asyncio.CancelledError:
            operation.cancel()
            raise


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Wrap statements in BEGIN IMMEDIATE ... COMMIT, rolling back on error.

    A connection cancelled by its caller rolls back instead of committing.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        if isinstance(conn, CancellableConnection):
            conn.raise_if_cancelled()
        conn.execute("COMMIT")
    except Exception:
        # An interrupted statement may already have rolled the transaction back
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


def table_exists(conn: sqlite3.Connection, name: str) -> bool:
    cursor = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
        (name,),
    )
    return cursor.fetchone() is not None


def scalar(conn: sqlite3.Connection, sql: str, params: tuple[Any, ...] = ()) -> Any:
    row = conn.execute(sql, params).fetchone()
    return row[0] if row is not None else None
