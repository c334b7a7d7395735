"""Bulk load of one feed CSV file into one table."""

import csv
import logging
import stat
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from feedload.errors import ParseError, ProbeError
from feedload.executor import DEFAULT_MAX_WORKERS, run_all
from feedload.ingestion.coercion import coerce_row
from feedload.ingestion.statements import InsertBuilder, check_columns, check_table
from feedload.service import DatabaseService
from feedload.types import FeedRow, Statement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadOutcome:
    """Result of one load() call.

    ``found`` is False when the source file did not exist; nothing was
    executed against the store in that case.
    """

    feed_id: str
    table: str
    path: Path
    found: bool
    rows: int = 0

    @property
    def skipped(self) -> bool:
        return not self.found


def source_path(source_root: str | Path, feed_id: str, file_name: str) -> Path:
    return Path(source_root) / feed_id / file_name


def probe(path: Path) -> bool:
    """Return True if ``path`` is a regular file, False if it does not exist.

    Any other outcome raises ProbeError.
    """
    try:
        st = path.stat()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise ProbeError(path, e.strerror or str(e)) from e
    if not stat.S_ISREG(st.st_mode):
        raise ProbeError(path, "not a regular file")
    return True


class FeedReader:
    """Streams a header-delimited CSV file as coerced rows.

    The first record names the columns of every later record. Rows are read
    lazily; use as a context manager so the file is closed.
    """

    def __init__(self, path: Path):
        self.path = path
        self.columns: list[str] = []
        self._file = None
        self._reader = None

    def __enter__(self) -> "FeedReader":
        try:
            # utf-8-sig: feed exports often start with a byte order mark.
            self._file = open(self.path, newline="", encoding="utf-8-sig")
        except OSError as e:
            raise ProbeError(self.path, e.strerror or str(e)) from e
        try:
            self._reader = csv.reader(self._file, strict=True)
            header = self._next_record()
            while header == []:
                header = self._next_record()
            self.columns = check_columns([name.strip() for name in header or []], self.path)
        except BaseException:
            self._file.close()
            raise
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._file is not None:
            self._file.close()

    def _next_record(self) -> list[str] | None:
        try:
            return next(self._reader)
        except StopIteration:
            return None
        except (csv.Error, UnicodeDecodeError) as e:
            raise ParseError(self.path, self._reader.line_num + 1, str(e)) from e

    def __iter__(self) -> Iterator[FeedRow]:
        if not self.columns:
            return
        width = len(self.columns)
        while True:
            record = self._next_record()
            if record is None:
                return
            if not record:
                continue  # blank line
            if len(record) != width:
                raise ParseError(
                    self.path,
                    self._reader.line_num,
                    f"expected {width} fields, found {len(record)}",
                )
            yield coerce_row(self.columns, record)


def _inserts(builder: InsertBuilder, rows: Iterator[FeedRow]) -> Iterator[Statement]:
    for row in rows:
        yield builder.statement(row)


def load(
    service: DatabaseService,
    source_root: str | Path,
    feed_id: str,
    file_name: str,
    table: str,
    max_workers: int = DEFAULT_MAX_WORKERS,
    timeout: float | None = None,
) -> LoadOutcome:
    """Load ``source_root/feed_id/file_name`` into ``table``, tagging rows with feed_id.

    The whole file is one transaction with foreign-key checks deferred to
    COMMIT, so rows may reference parents that appear later in the file.
    Any parse, insert or commit failure rolls the transaction back and
    propagates; a file is loaded completely or not at all.

    A missing file is not an error: the returned outcome has ``found=False``
    and no statement is issued.

    Loading is not idempotent. Running it twice on the same file inserts
    every row twice unless the table's constraints reject duplicates.

    Rows are parsed lazily, but every row's insert stays queued until the
    batch settles, so memory grows with the size of the file.
    """
    check_table(table)
    path = source_path(source_root, feed_id, file_name)
    if not probe(path):
        logger.warning("Feed %s has no %s, skipping table %s", feed_id, file_name, table)
        return LoadOutcome(feed_id=feed_id, table=table, path=path, found=False)

    logger.info("Loading %s into %s (feed %s)", path, table, feed_id)
    with FeedReader(path) as reader:
        builder = InsertBuilder(service, table, reader.columns, feed_id)
        with service.transaction(deferred=True):
            results = run_all(
                service,
                _inserts(builder, iter(reader)),
                max_workers=max_workers,
                timeout=timeout,
            )

    logger.info("Committed %d row(s) into %s (feed %s)", len(results), table, feed_id)
    return LoadOutcome(feed_id=feed_id, table=table, path=path, found=True, rows=len(results))
