"""Feed ingestion: CSV coercion, insert building and transactional bulk load."""

from feedload.ingestion.coercion import coerce_field, coerce_row
from feedload.ingestion.csv_load import FeedReader, LoadOutcome, load, probe, source_path
from feedload.ingestion.feeds import (
    TABLE_ORDER,
    apply_schema,
    discover_tables,
    load_feed,
    load_feeds,
    refresh_store,
)
from feedload.ingestion.statements import InsertBuilder, check_columns, is_identifier

__all__ = [
    "load",
    "LoadOutcome",
    "FeedReader",
    "probe",
    "source_path",
    "coerce_field",
    "coerce_row",
    "InsertBuilder",
    "check_columns",
    "is_identifier",
    "TABLE_ORDER",
    "discover_tables",
    "load_feed",
    "load_feeds",
    "apply_schema",
    "refresh_store",
]
