"""Insert statements built from header-derived column names.

Column names come from untrusted files, so every identifier must match
IDENTIFIER_RE before it reaches SQL text, and is quoted on top of that.
Values never appear in SQL text; they are always bound as parameters.
"""

import re
from pathlib import Path

from feedload.errors import HeaderError
from feedload.service import DatabaseService
from feedload.types import FeedRow, Statement

IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]{0,62}", re.ASCII)
FEED_COLUMN = "feed"


def is_identifier(name: str) -> bool:
    return IDENTIFIER_RE.fullmatch(name) is not None


def check_table(table: str) -> str:
    if not is_identifier(table):
        raise ValueError(f"Invalid table name: {table!r}")
    return table


def check_columns(columns: list[str], path: Path) -> list[str]:
    """Validate a file header; returns the column names unchanged.

    Raises HeaderError for names outside the identifier policy, duplicates,
    or a column clashing with the injected feed column.
    """
    seen: set[str] = set()
    for column in columns:
        if not is_identifier(column):
            raise HeaderError(path, 1, f"invalid column name {column!r}")
        key = column.lower()
        if key == FEED_COLUMN:
            raise HeaderError(path, 1, f"column {column!r} is reserved for the feed id")
        if key in seen:
            raise HeaderError(path, 1, f"duplicate column {column!r}")
        seen.add(key)
    return columns


class InsertBuilder:
    """Builds one INSERT per row for a fixed (table, header, feed) triple.

    The SQL text is rendered once; each call to statement() pairs it with a
    fresh parameter mapping holding the feed id and the row's values.
    """

    def __init__(self, service: DatabaseService, table: str, columns: list[str], feed_id: str):
        check_table(table)
        self.table = table
        self.columns = list(columns)
        self.feed_id = feed_id

        names = [FEED_COLUMN, *self.columns]
        quoted = ", ".join(service.quote_identifier(name) for name in names)
        markers = ", ".join(service.marker(name) for name in names)
        self.sql = (
            f"INSERT INTO {service.quote_identifier(table)} ({quoted}) VALUES ({markers})"
        )

    def statement(self, row: FeedRow) -> Statement:
        params = {FEED_COLUMN: self.feed_id}
        for column in self.columns:
            params[column] = row.get(column)
        return Statement(self.sql, params)
