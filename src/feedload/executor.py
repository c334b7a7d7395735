"""Statement execution: one statement at a time, or a whole batch at once."""

import logging
import threading
from collections.abc import Iterable
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, wait

from feedload.errors import StatementTimeoutError
from feedload.service import DatabaseService
from feedload.types import ExecutionResult, Params, Statement

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4
_INTERRUPT_POLL = 0.05

StatementLike = Statement | tuple[str, Params | None]


def execute(service: DatabaseService, sql: str, params: Params | None = None) -> ExecutionResult:
    """Run one parameterized statement and return rows affected / last row id.

    Raises StatementError with the store's diagnostic on failure. Nothing
    is retried.
    """
    return execute_statement(service, Statement(sql, params))


def execute_statement(service: DatabaseService, statement: Statement) -> ExecutionResult:
    logger.debug("Executing: %s", statement.sql)
    return service.execute(statement.sql, statement.params)


def _as_statement(item: StatementLike) -> Statement:
    if isinstance(item, Statement):
        return item
    sql, params = item
    return Statement(sql, params)

def _run_unless_aborted(
    service: DatabaseService, statement: Statement, abort: threading.Event
) -> ExecutionResult:
    if abort.is_set():
        raise CancelledError("batch aborted before statement ran")
    return execute_statement(service, statement)


def _settle(
    service: DatabaseService,
    futures: list[Future],
    timeout: float | None,
    abort: threading.Event,
) -> None:
    """Wait for every future; on deadline cancel the rest and interrupt the running one."""
    _, pending = wait(futures, timeout=timeout)
    if not pending:
        return
    abort.set()
    for future in pending:
        future.cancel()
    while pending:
        service.interrupt()
        _, pending = wait(pending, timeout=_INTERRUPT_POLL)
    raise StatementTimeoutError(
        f"{len(futures)} statement(s) did not settle within {timeout}s"
    )


def run_all(
    service: DatabaseService,
    statements: Iterable[StatementLike],
    max_workers: int = DEFAULT_MAX_WORKERS,
    timeout: float | None = None,
) -> list[ExecutionResult]:
    """Submit every statement, then wait for all of them to settle.

    ``statements`` may be Statement objects or ``(sql, params)`` pairs and
    may be a lazy iterable; each item is submitted as soon as it is produced
    and nothing is awaited until the iterable is exhausted. The service
    serializes the statements on its connection, in no guaranteed order.

    The call returns only once every submitted statement has settled. The
    first failure aborts the batch: statements that have not started yet
    are skipped, and the failure is raised once everything has settled.
    Statements that already ran are not undone (wrap the call in a
    transaction for that). If producing the statements fails, the already
    submitted ones are still awaited before the error propagates.

    Every submitted statement is held until the batch settles, so memory
    grows with the number of statements.

    Returns one ExecutionResult per statement, in submission order.
    """
    if max_workers < 1:
        raise ValueError("max_workers must be at least 1")

    abort = threading.Event()

    def _abort_on_failure(future: Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            abort.set()

    futures: list[Future] = []
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="feedload") as pool:
        try:
            for item in statements:
                future = pool.submit(_run_unless_aborted, service, _as_statement(item), abort)
                future.add_done_callback(_abort_on_failure)
                futures.append(future)
        except BaseException:
            _settle(service, futures, timeout, abort)
            raise
        _settle(service, futures, timeout, abort)

    failures = [f.exception() for f in futures if f.exception() is not None]
    if failures:
        logger.debug("%d of %d statement(s) failed or were skipped", len(failures), len(futures))
        # Skipped statements only report that the batch was aborted.
        causes = [e for e in failures if not isinstance(e, CancelledError)]
        raise (causes or failures)[0]
    return [f.result() for f in futures]
