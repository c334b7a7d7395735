"""Loading whole feed directories.

A source root holds one directory per feed; each feed directory holds one
``.txt`` CSV file per table, named after the table (``stops.txt`` loads
into ``stops``). Tables load in GTFS dependency order, each in its own
transaction: a failure in one table leaves the tables loaded before it
committed.
"""

import logging
from collections.abc import Iterable
from pathlib import Path

from feedload import SQLiteDatabaseService, create_service
from feedload.config import DEFAULT_SKIP_TABLES, LoaderConfig
from feedload.errors import ProbeError
from feedload.executor import DEFAULT_MAX_WORKERS
from feedload.ingestion.csv_load import LoadOutcome, load
from feedload.service import DatabaseService

logger = logging.getLogger(__name__)

FEED_FILE_SUFFIX = ".txt"

TABLE_ORDER = (
    "feed_info",
    "agency",
    "levels",
    "stops",
    "routes",
    "trips",
    "location_groups",
    "stop_times",
    "calendar",
    "calendar_dates",
    "areas",
    "stop_areas",
    "networks",
    "route_networks",
    "shapes",
    "frequencies",
    "pathways",
)
_TABLE_RANK = {name: rank for rank, name in enumerate(TABLE_ORDER)}


def table_sort_key(table: str) -> tuple[int, str]:
    """Known tables first in dependency order, unknown ones after, alphabetically."""
    return (_TABLE_RANK.get(table, len(TABLE_ORDER)), table)


def _list_dir(path: Path) -> list[Path] | None:
    try:
        return list(path.iterdir())
    except FileNotFoundError:
        return None
    except OSError as e:
        raise ProbeError(path, e.strerror or str(e)) from e


def discover_tables(feed_dir: Path) -> list[str]:
    """Table names of a feed directory, in load order.

    Returns an empty list when the directory does not exist.
    """
    entries = _list_dir(feed_dir)
    if entries is None:
        return []
    tables = [p.stem for p in entries if p.suffix == FEED_FILE_SUFFIX and p.is_file()]
    return sorted(tables, key=table_sort_key)


def load_feed(
    service: DatabaseService,
    source_root: str | Path,
    feed_id: str,
    skip_tables: Iterable[str] = DEFAULT_SKIP_TABLES,
    max_workers: int = DEFAULT_MAX_WORKERS,
    timeout: float | None = None,
) -> list[LoadOutcome]:
    """Load every table file of one feed. Returns one outcome per loaded table."""
    skip = frozenset(skip_tables)
    feed_dir = Path(source_root) / feed_id
    tables = discover_tables(feed_dir)
    if not tables:
        logger.warning("Feed %s has no table files in %s", feed_id, feed_dir)
        return []

    logger.info("Loading feed %s (%d table file(s))", feed_id, len(tables))
    outcomes = []
    for table in tables:
        if table in skip:
            logger.info("Skipping table %s of feed %s", table, feed_id)
            continue
        outcomes.append(
            load(
                service,
                source_root,
                feed_id,
                table + FEED_FILE_SUFFIX,
                table,
                max_workers=max_workers,
                timeout=timeout,
            )
        )
    total = sum(o.rows for o in outcomes)
    logger.info("Feed %s loaded: %d row(s) in %d table(s)", feed_id, total, len(outcomes))
    return outcomes


def load_feeds(
    service: DatabaseService,
    source_root: str | Path,
    skip_tables: Iterable[str] = DEFAULT_SKIP_TABLES,
    max_workers: int = DEFAULT_MAX_WORKERS,
    timeout: float | None = None,
) -> dict[str, list[LoadOutcome]]:
    """Load every feed directory under ``source_root``, sorted by name."""
    root = Path(source_root)
    entries = _list_dir(root)
    if entries is None:
        raise ProbeError(root, "source root does not exist")
    feed_ids = sorted(p.name for p in entries if p.is_dir())
    return {
        feed_id: load_feed(
            service,
            root,
            feed_id,
            skip_tables=skip_tables,
            max_workers=max_workers,
            timeout=timeout,
        )
        for feed_id in feed_ids
    }


def apply_schema(service: DatabaseService, schema_path: str | Path) -> None:
    """Run a DDL script file against the store."""
    path = Path(schema_path)
    try:
        sql = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ProbeError(path, e.strerror or str(e)) from e
    service.execute_script(sql)
    logger.info("Applied schema %s", path)


def refresh_store(
    config: LoaderConfig,
    schema_path: str | Path | None = None,
    snapshot_path: str | Path | None = None,
) -> dict[str, list[LoadOutcome]]:
    """Open the configured store, optionally create its schema, and load every feed.

    With ``snapshot_path`` set, the loaded SQLite database is written there
    afterwards, which allows loading into ``sqlite:///:memory:`` and keeping
    only the finished result on disk.
    """
    service = create_service(
        config.db_url,
        timeout=config.busy_timeout,
        journal_mode=config.journal_mode,
        synchronous=config.synchronous,
    )
    if snapshot_path is not None and not isinstance(service, SQLiteDatabaseService):
        raise ValueError("Snapshots are only supported for SQLite stores")

    service.connect()
    try:
        if schema_path is not None:
            apply_schema(service, schema_path)
        results = load_feeds(
            service,
            config.source_root,
            skip_tables=config.skip_tables,
            max_workers=config.max_workers,
            timeout=config.statement_timeout,
        )
        if snapshot_path is not None:
            service.backup(snapshot_path)
    finally:
        service.close()
    logger.info("Done. %d feed(s) loaded.", len(results))
    return results
