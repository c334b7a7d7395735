"""Abstract DatabaseService interface."""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator

from feedload.errors import StatementError
from feedload.types import ExecutionResult, Params, Row

logger = logging.getLogger(__name__)


class DatabaseService(ABC):
    """Store-agnostic interface over one exclusively owned connection.

    Design principles:
    - One connection per service, opened by connect() and released by close()
    - Thread-safe: statements from any thread are serialized on the connection
    - Transactions are explicit: BEGIN/COMMIT are statements like any other
    """

    @abstractmethod
    def connect(self) -> None:
        """Open the connection and enable foreign-key enforcement.

        Blocks until the store is usable. Raises StoreOpenError on failure.
        """

    @abstractmethod
    def close(self) -> None:
        """Close the connection. No statement may be issued afterwards."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True between a successful connect() and the start of close()."""

    @abstractmethod
    def execute(self, sql: str, params: Params | None = None) -> ExecutionResult:
        """Execute a single SQL statement and return its execution metadata."""

    @abstractmethod
    def query(self, sql: str, params: Params | None = None) -> list[Row]:
        """Execute a single SQL statement and return rows as dicts."""

    @abstractmethod
    def execute_script(self, sql: str) -> None:
        """Execute a multi-statement DDL script (CREATE TABLE, CREATE INDEX, etc.)."""

    @abstractmethod
    def defer_constraints(self) -> None:
        """Postpone foreign-key checks of the open transaction to COMMIT."""

    @abstractmethod
    def marker(self, name: str) -> str:
        """Return the named parameter marker for ``name`` in this store's paramstyle."""

    @abstractmethod
    def interrupt(self) -> None:
        """Abort the statement currently running on the connection, if any.

        Must be callable from another thread while a statement holds the
        connection.
        """

    def quote_identifier(self, name: str) -> str:
        return '"' + name.replace('"', '""') + '"'

    def begin(self) -> None:
        self.execute("BEGIN")

    def commit(self) -> None:
        self.execute("COMMIT")

    def rollback(self) -> None:
        self.execute("ROLLBACK")

    @contextmanager
    def transaction(self, deferred: bool = False) -> Iterator[None]:
        """Context manager: BEGIN, commit on success, roll back on error.

        With ``deferred`` set, foreign-key checking is postponed to COMMIT
        before the body runs, so rows may reference parents inserted later
        in the same transaction.
        """
        self.begin()
        try:
            if deferred:
                self.defer_constraints()
            yield
            self.commit()
        except BaseException:
            self._abort()
            raise

    def _abort(self) -> None:
        if not self.is_open:
            return
        try:
            self.rollback()
        except StatementError as e:
            # The store may already have ended the transaction (interrupt, failed COMMIT).
            logger.warning("Rollback failed: %s", e)
