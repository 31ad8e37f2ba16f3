"""
Database connection management for auditchain.

Every audit log is one SQLite file in WAL mode. Writers serialize on
SQLite's RESERVED lock (BEGIN IMMEDIATE), which is an OS file lock and so
excludes other processes and is released by the OS if the holder dies.
Readers work from WAL snapshots and never wait for writers.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import structlog

from ..config import QUERY_FETCH_BATCH
from ..errors import LockError, StorageError

logger = structlog.get_logger(__name__)

_BUSY_MARKERS = ("database is locked", "database is busy", "database table is locked")


def _is_busy(error: sqlite3.Error) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _BUSY_MARKERS)


class DatabaseConnection:
    """
    Manages one SQLite connection to an audit log file.
    """

    def __init__(self, db_path: str, lock_timeout: float = 5.0):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file
            lock_timeout: Seconds to wait for the write lock
        """
        self.db_path = Path(db_path)
        self.lock_timeout = lock_timeout
        self._connection: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        """
        Establish database connection with durability settings.

        The parent directory is not created here; it belongs to the
        directory bootstrap, which also sets its permissions.

        Returns:
            SQLite connection object

        Raises:
            StorageError: If the file cannot be opened or configured
            LockError: If switching to WAL mode waits past the lock timeout
        """
        if self._connection is not None:
            return self._connection

        if not self.db_path.parent.is_dir():
            raise StorageError(f"Audit directory does not exist: {self.db_path.parent}")

        try:
            # isolation_level=None: every transaction is opened explicitly
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.lock_timeout,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open audit database {self.db_path}: {e}")

        try:
            conn.execute("PRAGMA trusted_schema = OFF")
            conn.execute("PRAGMA journal_mode = WAL").fetchone()
            # fsync the WAL on every commit
            conn.execute("PRAGMA synchronous = FULL")
            conn.row_factory = sqlite3.Row
        except sqlite3.Error as e:
            conn.close()
            if _is_busy(e):
                raise LockError(f"Timed out configuring audit database {self.db_path}: {e}")
            raise StorageError(f"Failed to configure audit database {self.db_path}: {e}")

        self._connection = conn
        return conn

    def close(self):
        """Close database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @property
    def in_transaction(self) -> bool:
        return self._connection is not None and self._connection.in_transaction

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """
        Execute a SQL statement with parameters.

        Args:
            sql: SQL statement (use ? for parameters)
            params: Parameter values

        Returns:
            Cursor object

        Raises:
            LockError: If the database stayed busy past the lock timeout
            StorageError: If execution fails
        """
        conn = self.connect()
        try:
            return conn.execute(sql, params)
        except sqlite3.Error as e:
            if _is_busy(e):
                raise LockError(f"Audit database busy: {e}")
            raise StorageError(f"SQL execution failed: {e}")

    def fetch_one(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        """
        Execute query and fetch one row.

        Args:
            sql: SQL query
            params: Parameter values

        Returns:
            Row object or None
        """
        cursor = self.execute(sql, params)
        try:
            return cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read row: {e}")
        finally:
            cursor.close()

    def iterate(
        self,
        sql: str,
        params: tuple = (),
        batch_size: int = QUERY_FETCH_BATCH,
    ) -> Iterator[sqlite3.Row]:
        """
        Stream query rows in batches without materializing the result.

        A single SELECT reads one WAL snapshot for its whole lifetime, so a
        stream never mixes states from before and after a concurrent append.

        Args:
            sql: SQL query
            params: Parameter values
            batch_size: Rows fetched per round trip

        Yields:
            Row objects
        """
        cursor = self.execute(sql, params)
        try:
            while True:
                try:
                    rows = cursor.fetchmany(batch_size)
                except sqlite3.Error as e:
                    raise StorageError(f"Failed to read rows: {e}")
                if not rows:
                    return
                yield from rows
        finally:
            cursor.close()

    @contextmanager
    def write_transaction(self):
        """
        Exclusive write transaction across connections and processes.

        BEGIN IMMEDIATE takes the RESERVED lock up front, waiting at most
        lock_timeout seconds. The commit is durable (synchronous=FULL) before
        the lock is released. Any exception rolls the transaction back.

        Usage:
            with db.write_transaction():
                db.execute(...)

        Raises:
            LockError: If the lock is not obtained in time
            StorageError: If the transaction cannot be started or committed
        """
        conn = self.connect()
        if conn.in_transaction:
            raise StorageError("Write transaction already in progress on this connection")

        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            if _is_busy(e):
                logger.warning(
                    "audit_lock_timeout",
                    db_path=str(self.db_path),
                    timeout=self.lock_timeout,
                )
                raise LockError(
                    f"Could not lock {self.db_path} within {self.lock_timeout}s"
                )
            raise StorageError(f"Failed to begin write transaction: {e}")

        try:
            yield conn
        except BaseException:
            self._rollback(conn)
            raise

        try:
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            raise StorageError(f"Commit failed: {e}")

    @contextmanager
    def read_transaction(self):
        """
        Pin one snapshot across several read statements.

        Takes no write lock. Inside an open transaction (read or write)
        this is a no-op, so callers can nest it freely.
        """
        conn = self.connect()
        if conn.in_transaction:
            yield conn
            return

        try:
            conn.execute("BEGIN DEFERRED")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to begin read transaction: {e}")

        try:
            yield conn
        finally:
            self._rollback(conn)

    @staticmethod
    def _rollback(conn: sqlite3.Connection):
        if not conn.in_transaction:
            return
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            raise StorageError(f"Rollback failed: {e}")

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
