"""Shared test fixtures."""

import csv
from pathlib import Path

import pytest

from feedload import SQLiteDatabaseService, create_service


class RecordingSQLiteService(SQLiteDatabaseService):
    """SQLite service that remembers every statement it executes."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.executed: list[str] = []

    def execute(self, sql, params=None):
        self.executed.append(sql)
        return super().execute(sql, params)


@pytest.fixture
def db_service(tmp_path):
    """Provide a fresh SQLite DatabaseService for each test."""
    db_path = tmp_path / "test.db"
    service = create_service(f"sqlite:///{db_path}")
    service.connect()
    yield service
    service.close()


@pytest.fixture
def recording_service(tmp_path):
    service = RecordingSQLiteService(str(tmp_path / "recorded.db"))
    service.connect()
    yield service
    service.close()


@pytest.fixture
def feed_root(tmp_path) -> Path:
    root = tmp_path / "feeds"
    root.mkdir()
    return root


@pytest.fixture
def write_feed_file(feed_root):
    """Write ``feed_root/<feed>/<file>`` as CSV with a header row."""

    def _write(feed_id: str, file_name: str, header: list[str], rows: list[list[str]]) -> Path:
        feed_dir = feed_root / feed_id
        feed_dir.mkdir(exist_ok=True)
        path = feed_dir / file_name
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(header)
            writer.writerows(rows)
        return path

    return _write
