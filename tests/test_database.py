"""Tests for the SQLite cache backend."""

import sqlite3
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import url
from lipekpwa.cache import CacheError
from lipekpwa.database import (
    DatabaseError,
    SqliteCacheStorage,
    delete_partition,
    ensure_partition,
    init_db,
    list_partitions,
)
from lipekpwa.models import CORS_TYPE, Request, Response


@pytest.fixture
def db_conn(tmp_path: Path) -> sqlite3.Connection:
    """Create a database connection with initialized tables."""
    conn = init_db(str(tmp_path / "cache.db"))
    yield conn
    conn.close()


@pytest.fixture
def sample_response() -> Response:
    return Response(
        status=200,
        body=b"<html>home</html>",
        headers={"Content-Type": "text/html"},
        status_text="OK",
        url=url("/"),
    )


class TestInitDb:
    """Tests for init_db function."""

    def test_creates_tables(self, db_conn: sqlite3.Connection) -> None:
        """Both tables exist after init."""
        tables = {
            row[0] for row in db_conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        }
        assert {"partitions", "entries"} <= tables

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        """Missing parent directories are created."""
        db_path = tmp_path / "nested" / "dir" / "cache.db"
        conn = init_db(str(db_path))
        conn.close()
        assert db_path.exists()

    def test_in_memory_database(self) -> None:
        """':memory:' is accepted."""
        conn = init_db(":memory:")
        assert list_partitions(conn) == []
        conn.close()

    def test_database_error_is_cache_error(self) -> None:
        """Storage failures are cache failures to callers."""
        assert issubclass(DatabaseError, CacheError)


class TestPartitions:
    """Tests for partition bookkeeping."""

    def test_ensure_partition_is_idempotent(self, db_conn: sqlite3.Connection) -> None:
        """Opening a partition twice returns the same id."""
        assert ensure_partition(db_conn, "lipek-fashion-v1") == ensure_partition(db_conn, "lipek-fashion-v1")

    def test_list_partitions_counts_entries(self, db_conn: sqlite3.Connection, sample_response: Response) -> None:
        """Partitions are listed in creation order with entry counts."""
        storage = SqliteCacheStorage(db_conn)
        storage.open("lipek-fashion-v1").put(Request(url=url("/")), sample_response)
        storage.open("lipek-api-v1")

        assert list_partitions(db_conn) == [("lipek-fashion-v1", 1), ("lipek-api-v1", 0)]

    def test_delete_partition_removes_entries(self, db_conn: sqlite3.Connection, sample_response: Response) -> None:
        """Deleting a partition drops its entries."""
        storage = SqliteCacheStorage(db_conn)
        storage.open("old").put(Request(url=url("/")), sample_response)

        assert delete_partition(db_conn, "old") is True
        assert delete_partition(db_conn, "old") is False
        assert db_conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0] == 0


class TestSqliteCacheStorage:
    """Tests for SqliteCacheStorage and its partitions."""

    def test_round_trips_response(self, db_conn: sqlite3.Connection, sample_response: Response) -> None:
        """Every response field survives storage."""
        partition = SqliteCacheStorage(db_conn).open("p")
        request = Request(url=url("/"))

        partition.put(request, sample_response)

        assert partition.match(request) == sample_response

    def test_preserves_response_type(self, db_conn: sqlite3.Connection) -> None:
        """Cross-origin responses keep their type."""
        partition = SqliteCacheStorage(db_conn).open("p")
        request = Request(url="https://fonts.googleapis.com/css2?family=Montserrat")
        partition.put(request, Response(status=200, body=b"@font-face{}", type=CORS_TYPE))

        assert partition.match(request).type == CORS_TYPE

    def test_put_overwrites(self, db_conn: sqlite3.Connection) -> None:
        """A second put for the same key replaces the first."""
        partition = SqliteCacheStorage(db_conn).open("p")
        request = Request(url=url("/api/products"))
        partition.put(request, Response(status=200, body=b"[1]"))
        partition.put(request, Response(status=200, body=b"[1, 2]"))

        assert partition.match(request).body == b"[1, 2]"
        assert len(partition) == 1

    def test_keys_keep_request_mode(self, db_conn: sqlite3.Connection, sample_response: Response) -> None:
        """Stored keys carry the mode they were cached with."""
        partition = SqliteCacheStorage(db_conn).open("p")
        partition.put(Request(url=url("/"), mode="navigate"), sample_response)

        assert partition.keys() == [Request(url=url("/"), mode="navigate")]

    def test_rejects_non_get(self, db_conn: sqlite3.Connection) -> None:
        """POST responses are never stored."""
        partition = SqliteCacheStorage(db_conn).open("p")
        with pytest.raises(CacheError):
            partition.put(Request(url=url("/api/contact"), method="POST"), Response(status=200))

    def test_has_and_keys(self, db_conn: sqlite3.Connection) -> None:
        """has/keys reflect open and delete."""
        storage = SqliteCacheStorage(db_conn)
        storage.open("a")
        storage.open("b")

        assert storage.has("a") is True
        assert storage.keys() == ["a", "b"]

        storage.delete("a")
        assert storage.has("a") is False

    def test_open_creates_partition_once(self, db_conn: sqlite3.Connection, sample_response: Response) -> None:
        """Repeated opens and lookups reuse the known partition id."""
        storage = SqliteCacheStorage(db_conn)
        storage.open("p").put(Request(url=url("/")), sample_response)

        with patch("lipekpwa.database.ensure_partition", wraps=ensure_partition) as ensure:
            storage.open("p")
            assert storage.match(Request(url=url("/"))) == sample_response

        ensure.assert_not_called()

    def test_delete_forgets_partition_id(self, db_conn: sqlite3.Connection, sample_response: Response) -> None:
        """A partition deleted and reopened gets a fresh row that accepts writes."""
        storage = SqliteCacheStorage(db_conn)
        storage.open("p").put(Request(url=url("/")), sample_response)
        storage.delete("p")

        partition = storage.open("p")
        assert partition.match(Request(url=url("/"))) is None
        partition.put(Request(url=url("/")), sample_response)

        assert list_partitions(db_conn) == [("p", 1)]

    def test_partitions_survive_reopen(self, tmp_path: Path, sample_response: Response) -> None:
        """Entries persist across connections."""
        db_path = str(tmp_path / "cache.db")
        storage = SqliteCacheStorage.from_path(db_path)
        storage.open("lipek-fashion-v1").put(Request(url=url("/")), sample_response)
        storage.close()

        reopened = SqliteCacheStorage.from_path(db_path)
        try:
            assert reopened.keys() == ["lipek-fashion-v1"]
            assert reopened.match(Request(url=url("/"))) == sample_response
        finally:
            reopened.close()

    def test_closed_connection_raises_database_error(self, tmp_path: Path) -> None:
        """sqlite failures are wrapped."""
        storage = SqliteCacheStorage.from_path(str(tmp_path / "cache.db"))
        partition = storage.open("p")
        storage.close()

        with pytest.raises(DatabaseError):
            partition.match(Request(url=url("/")))
