"""Tests for loading whole feed directories."""

import sqlite3

import pytest

from feedload import ProbeError, StatementError
from feedload.config import LoaderConfig
from feedload.ingestion import (
    apply_schema,
    discover_tables,
    load_feed,
    load_feeds,
    refresh_store,
)
from feedload.ingestion.feeds import table_sort_key

GTFS_DDL = """
CREATE TABLE agency (
    feed         TEXT NOT NULL,
    agency_id    TEXT NOT NULL,
    agency_name  TEXT,
    PRIMARY KEY (feed, agency_id)
);
CREATE TABLE routes (
    feed              TEXT NOT NULL,
    route_id          TEXT NOT NULL,
    agency_id         TEXT NOT NULL,
    route_short_name  TEXT,
    PRIMARY KEY (feed, route_id),
    FOREIGN KEY (feed, agency_id) REFERENCES agency (feed, agency_id)
);
CREATE TABLE shapes (
    feed          TEXT NOT NULL,
    shape_id      TEXT NOT NULL,
    shape_pt_lat  REAL
);
"""


@pytest.fixture
def schema_file(tmp_path):
    path = tmp_path / "structure.sql"
    path.write_text(GTFS_DDL, encoding="utf-8")
    return path


@pytest.fixture
def gtfs_service(db_service, schema_file):
    apply_schema(db_service, schema_file)
    return db_service


@pytest.fixture
def sample_feed(write_feed_file):
    def _write(feed_id: str) -> None:
        write_feed_file(feed_id, "routes.txt", ["route_id", "agency_id", "route_short_name"],
                        [["R1", "A1", "12"], ["R2", "A1", "N7"]])
        write_feed_file(feed_id, "agency.txt", ["agency_id", "agency_name"], [["A1", "Metro"]])
        write_feed_file(feed_id, "shapes.txt", ["shape_id", "shape_pt_lat"], [["SH1", "52.1"]])

    return _write


class TestDiscovery:
    def test_sort_key(self):
        tables = ["zeta", "stop_times", "agency", "alpha", "feed_info", "trips"]
        assert sorted(tables, key=table_sort_key) == [
            "feed_info",
            "agency",
            "trips",
            "stop_times",
            "alpha",
            "zeta",
        ]

    def test_only_txt_files(self, feed_root, write_feed_file):
        write_feed_file("F", "stops.txt", ["stop_id"], [])
        write_feed_file("F", "agency.txt", ["agency_id"], [])
        (feed_root / "F" / "README.md").write_text("not a table")
        (feed_root / "F" / "archive.txt").mkdir()
        assert discover_tables(feed_root / "F") == ["agency", "stops"]

    def test_missing_directory(self, feed_root):
        assert discover_tables(feed_root / "nope") == []


class TestLoadFeed:
    def test_loads_in_dependency_order(self, gtfs_service, feed_root, sample_feed):
        sample_feed("F")

        outcomes = load_feed(gtfs_service, feed_root, "F")

        assert [o.table for o in outcomes] == ["agency", "routes"]
        assert [o.rows for o in outcomes] == [1, 2]
        routes = gtfs_service.query("SELECT route_id, route_short_name FROM routes ORDER BY route_id")
        assert routes == [
            {"route_id": "R1", "route_short_name": "12"},
            {"route_id": "R2", "route_short_name": "N7"},
        ]

    def test_shapes_skipped_by_default(self, gtfs_service, feed_root, sample_feed):
        sample_feed("F")
        load_feed(gtfs_service, feed_root, "F")
        assert gtfs_service.query("SELECT COUNT(*) AS cnt FROM shapes") == [{"cnt": 0}]

    def test_custom_skip_list(self, gtfs_service, feed_root, sample_feed):
        sample_feed("F")
        outcomes = load_feed(gtfs_service, feed_root, "F", skip_tables=())
        assert [o.table for o in outcomes] == ["agency", "routes", "shapes"]
        assert gtfs_service.query("SELECT shape_pt_lat FROM shapes") == [{"shape_pt_lat": 52.1}]

    def test_missing_feed(self, gtfs_service, feed_root):
        assert load_feed(gtfs_service, feed_root, "absent") == []

    def test_failure_keeps_earlier_tables(self, gtfs_service, feed_root, write_feed_file):
        write_feed_file("F", "agency.txt", ["agency_id", "agency_name"], [["A1", "Metro"]])
        write_feed_file("F", "routes.txt", ["route_id", "agency_id", "route_short_name"],
                        [["R1", "MISSING", "1"]])

        with pytest.raises(StatementError, match="FOREIGN KEY"):
            load_feed(gtfs_service, feed_root, "F")

        assert gtfs_service.query("SELECT COUNT(*) AS cnt FROM agency") == [{"cnt": 1}]
        assert gtfs_service.query("SELECT COUNT(*) AS cnt FROM routes") == [{"cnt": 0}]


class TestLoadFeeds:
    def test_every_feed_directory(self, gtfs_service, feed_root, sample_feed):
        sample_feed("nl-2024")
        sample_feed("de-2024")
        (feed_root / "notes.txt").write_text("ignored")

        results = load_feeds(gtfs_service, feed_root)

        assert list(results) == ["de-2024", "nl-2024"]
        rows = gtfs_service.query("SELECT feed, COUNT(*) AS cnt FROM routes GROUP BY feed ORDER BY feed")
        assert rows == [{"feed": "de-2024", "cnt": 2}, {"feed": "nl-2024", "cnt": 2}]

    def test_missing_source_root(self, gtfs_service, tmp_path):
        with pytest.raises(ProbeError, match="source root does not exist"):
            load_feeds(gtfs_service, tmp_path / "nope")


class TestSchema:
    def test_missing_schema_file(self, db_service, tmp_path):
        with pytest.raises(ProbeError):
            apply_schema(db_service, tmp_path / "nope.sql")

    def test_bad_schema(self, db_service, tmp_path):
        path = tmp_path / "bad.sql"
        path.write_text("CREATE TABLE (;")
        with pytest.raises(StatementError):
            apply_schema(db_service, path)


class TestRefreshStore:
    def test_in_memory_load_with_snapshot(self, tmp_path, feed_root, sample_feed, schema_file):
        sample_feed("F")
        snapshot = tmp_path / "feeds.sqlite"
        config = LoaderConfig(db_url="sqlite:///:memory:", source_root=feed_root)

        results = refresh_store(config, schema_path=schema_file, snapshot_path=snapshot)

        assert [o.rows for o in results["F"]] == [1, 2]
        conn = sqlite3.connect(snapshot)
        try:
            assert conn.execute("SELECT COUNT(*) FROM routes").fetchone() == (2,)
        finally:
            conn.close()

    def test_snapshot_requires_sqlite(self, tmp_path):
        config = LoaderConfig(db_url="postgresql://localhost/none", source_root=tmp_path)
        with pytest.raises(ValueError, match="only supported for SQLite"):
            refresh_store(config, snapshot_path=tmp_path / "x.sqlite")
