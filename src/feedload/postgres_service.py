"""PostgreSQL implementation of DatabaseService."""

import logging
import threading

import psycopg2
import psycopg2.extras

from feedload.errors import StatementError, StoreOpenError
from feedload.service import DatabaseService
from feedload.types import ExecutionResult, Params, Row

logger = logging.getLogger(__name__)


class PostgresDatabaseService(DatabaseService):
    """PostgreSQL backend using psycopg2.

    The connection runs in autocommit mode so BEGIN/COMMIT are issued
    explicitly, as with SQLite. Foreign keys are always enforced by
    PostgreSQL; only constraints declared DEFERRABLE can be deferred.
    """

    def __init__(self, dsn: str, timeout: float = 30.0):
        self._dsn = dsn
        self._timeout = timeout
        self._conn = None
        self._closing = False
        self._lock = threading.RLock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None and not self._closing

    def connect(self) -> None:
        with self._lock:
            if self._conn is not None:
                raise StoreOpenError("PostgreSQL connection is already open")
            try:
                conn = psycopg2.connect(self._dsn, connect_timeout=max(1, int(self._timeout)))
                conn.autocommit = True
            except psycopg2.Error as e:
                raise StoreOpenError(f"Cannot connect to PostgreSQL: {e}") from e
            self._conn = conn
            self._closing = False
        logger.debug("Opened PostgreSQL connection")

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

    def _get_conn(self, sql: str | None = None):
        conn = self._conn
        if conn is None or self._closing:
            raise StatementError("PostgreSQL connection is not open", sql=sql)
        return conn

    def execute(self, sql: str, params: Params | None = None) -> ExecutionResult:
        with self._lock:
            conn = self._get_conn(sql)
            try:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    lastrowid = cur.lastrowid or None
                    return ExecutionResult(rowcount=cur.rowcount, lastrowid=lastrowid)
            except psycopg2.Error as e:
                raise StatementError(str(e).strip(), sql=sql) from e

    def query(self, sql: str, params: Params | None = None) -> list[Row]:
        with self._lock:
            conn = self._get_conn(sql)
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(sql, params)
                    if cur.description is None:
                        return []
                    return [dict(row) for row in cur.fetchall()]
            except psycopg2.Error as e:
                raise StatementError(str(e).strip(), sql=sql) from e

    def execute_script(self, sql: str) -> None:
        with self._lock:
            conn = self._get_conn(sql)
            try:
                with conn.cursor() as cur:
                    cur.execute(sql)
            except psycopg2.Error as e:
                raise StatementError(str(e).strip(), sql=sql) from e

    def defer_constraints(self) -> None:
        self.execute("SET CONSTRAINTS ALL DEFERRED")

    def quote_identifier(self, name: str) -> str:
        # Unquoted DDL names are stored lower-cased; quoting must match that.
        return super().quote_identifier(name.lower())

    def marker(self, name: str) -> str:
        return f"%({name})s"

    def interrupt(self) -> None:
        conn = self._conn
        if conn is not None:
            conn.cancel()
