"""SQLite implementation of DatabaseService."""

import logging
import sqlite3
import threading
from pathlib import Path

from feedload.errors import StatementError, StoreError, StoreOpenError
from feedload.service import DatabaseService
from feedload.types import ExecutionResult, Params, Row

logger = logging.getLogger(__name__)

JOURNAL_MODES = frozenset({"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"})
SYNCHRONOUS_MODES = frozenset({"OFF", "NORMAL", "FULL", "EXTRA"})


class SQLiteDatabaseService(DatabaseService):
    """SQLite backend using stdlib sqlite3.

    The connection runs with ``isolation_level=None`` so the driver never
    opens transactions on its own; BEGIN/COMMIT are issued explicitly.
    A lock serializes statements coming from worker threads.
    """

    def __init__(
        self,
        db_path: str,
        timeout: float = 30.0,
        journal_mode: str | None = "WAL",
        synchronous: str | None = None,
    ):
        if journal_mode is not None and journal_mode.upper() not in JOURNAL_MODES:
            raise ValueError(f"Unsupported journal_mode: {journal_mode}")
        if synchronous is not None and synchronous.upper() not in SYNCHRONOUS_MODES:
            raise ValueError(f"Unsupported synchronous mode: {synchronous}")
        self._db_path = db_path
        self._timeout = timeout
        self._journal_mode = journal_mode
        self._synchronous = synchronous
        self._conn: sqlite3.Connection | None = None
        self._closing = False
        self._tx_open = False
        self._lock = threading.RLock()

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None and not self._closing

    def connect(self) -> None:
        with self._lock:
            if self._conn is not None:
                raise StoreOpenError(f"{self._db_path} is already open")
            conn = None
            try:
                conn = sqlite3.connect(
                    self._db_path,
                    timeout=self._timeout,
                    isolation_level=None,
                    check_same_thread=False,
                )
                conn.execute("PRAGMA foreign_keys=ON")
                enabled = conn.execute("PRAGMA foreign_keys").fetchone()
                if not enabled or enabled[0] != 1:
                    raise StoreOpenError(
                        f"{self._db_path}: foreign key enforcement is not available"
                    )
                if self._journal_mode:
                    conn.execute(f"PRAGMA journal_mode={self._journal_mode.upper()}")
                if self._synchronous:
                    conn.execute(f"PRAGMA synchronous={self._synchronous.upper()}")
            except sqlite3.Error as e:
                if conn is not None:
                    conn.close()
                raise StoreOpenError(f"Cannot open {self._db_path}: {e}") from e
            except StoreOpenError:
                conn.close()
                raise
            self._conn = conn
            self._closing = False
            self._tx_open = False
        logger.debug("Opened SQLite store %s", self._db_path)

    def close(self) -> None:
        if self._conn is None:
            return
        self._closing = True
        with self._lock:
            try:
                self._conn.close()
            finally:
                self._conn = None
                self._closing = False
                self._tx_open = False
        logger.debug("Closed SQLite store %s", self._db_path)

    def _get_conn(self, sql: str | None = None) -> sqlite3.Connection:
        conn = self._conn
        if conn is None or self._closing:
            raise StatementError(f"Connection to {self._db_path} is not open", sql=sql)
        return conn

    def _check_transaction(self, conn: sqlite3.Connection, sql: str) -> None:
        # SQLite rolls back on its own after an interrupt, RAISE(ROLLBACK), SQLITE_FULL
        # and similar errors. Later statements must not silently run in autocommit.
        if self._tx_open and not conn.in_transaction:
            raise StatementError("transaction was rolled back by the store", sql=sql)

    def execute(self, sql: str, params: Params | None = None) -> ExecutionResult:
        with self._lock:
            conn = self._get_conn(sql)
            self._check_transaction(conn, sql)
            try:
                cursor = conn.execute(sql, params if params is not None else ())
            except sqlite3.Error as e:
                raise StatementError(str(e), sql=sql) from e
            try:
                return ExecutionResult(rowcount=cursor.rowcount, lastrowid=cursor.lastrowid)
            finally:
                cursor.close()

    def query(self, sql: str, params: Params | None = None) -> list[Row]:
        with self._lock:
            conn = self._get_conn(sql)
            try:
                cursor = conn.execute(sql, params if params is not None else ())
                if cursor.description is None:
                    return []
                columns = [desc[0] for desc in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            except sqlite3.Error as e:
                raise StatementError(str(e), sql=sql) from e

    def execute_script(self, sql: str) -> None:
        with self._lock:
            conn = self._get_conn(sql)
            self._check_transaction(conn, sql)
            try:
                conn.executescript(sql)
            except sqlite3.Error as e:
                raise StatementError(str(e), sql=sql) from e

    def begin(self) -> None:
        with self._lock:
            super().begin()
            self._tx_open = True

    def commit(self) -> None:
        with self._lock:
            super().commit()
            self._tx_open = False

    def rollback(self) -> None:
        with self._lock:
            conn = self._get_conn("ROLLBACK")
            self._tx_open = False
            if not conn.in_transaction:
                logger.warning(
                    "Transaction on %s was already rolled back by the store", self._db_path
                )
                return
            super().rollback()

    def defer_constraints(self) -> None:
        # SQLite clears this flag at every COMMIT/ROLLBACK, so it is set per transaction.
        self.execute("PRAGMA defer_foreign_keys=ON")

    def marker(self, name: str) -> str:
        return f":{name}"

    def interrupt(self) -> None:
        conn = self._conn
        if conn is not None:
            conn.interrupt()

    def backup(self, target: str | Path) -> None:
        """Write a snapshot of the whole database to ``target``.

        An existing file at ``target`` is replaced.
        """
        target = Path(target)
        with self._lock:
            conn = self._get_conn()
            try:
                target.unlink(missing_ok=True)
                dest = sqlite3.connect(target)
            except (OSError, sqlite3.Error) as e:
                raise StoreError(f"Cannot create snapshot {target}: {e}") from e
            try:
                conn.backup(dest)
            except sqlite3.Error as e:
                raise StoreError(f"Snapshot to {target} failed: {e}") from e
            finally:
                dest.close()
        logger.info("Wrote snapshot of %s to %s", self._db_path, target)

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<SQLiteDatabaseService {self._db_path!r} {state}>"
