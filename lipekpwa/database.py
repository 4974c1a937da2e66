"""SQLite persistence for cache partitions."""

import json
import sqlite3
import threading
from datetime import UTC, datetime
from pathlib import Path

from .cache import CacheError, CachePartition, CacheStorage
from .models import Request, Response


class DatabaseError(CacheError):
    """Raised when a database operation fails."""

    pass


# Global lock for thread-safe database access.
# SQLite allows concurrent reads but only one writer at a time.
# This lock serializes access from proxy handler threads and the refresher.
_db_lock = threading.Lock()


def init_db(db_path: str) -> sqlite3.Connection:
    """Initialize the database and create tables if they don't exist.

    Args:
        db_path: Path to the SQLite database file, or ":memory:".

    Returns:
        Database connection with WAL mode enabled.

    Raises:
        DatabaseError: If database initialization fails.
    """
    try:
        if db_path != ":memory:":
            parent_dir = Path(db_path).parent
            if not parent_dir.exists():
                parent_dir.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row

        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS partitions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                partition_id INTEGER NOT NULL,
                method TEXT NOT NULL,
                url TEXT NOT NULL,
                request_mode TEXT NOT NULL,
                status INTEGER NOT NULL,
                status_text TEXT NOT NULL,
                headers TEXT NOT NULL,
                body BLOB NOT NULL,
                response_url TEXT NOT NULL,
                response_type TEXT NOT NULL,
                cached_at TEXT NOT NULL,
                UNIQUE (partition_id, method, url)
            )
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_entries_partition
            ON entries(partition_id)
        """)

        conn.commit()
        return conn

    except sqlite3.Error as e:
        raise DatabaseError(f"Failed to initialize database: {e}")
    except OSError as e:
        raise DatabaseError(f"Failed to create database directory: {e}")


def _get_partition_id(conn: sqlite3.Connection, name: str) -> int | None:
    row = conn.execute("SELECT id FROM partitions WHERE name = ?", (name,)).fetchone()
    return row["id"] if row is not None else None


def ensure_partition(conn: sqlite3.Connection, name: str) -> int:
    """Return the id of a partition, creating it if it does not exist.

    Raises:
        DatabaseError: If the partition cannot be created.
    """
    try:
        with _db_lock:
            conn.execute(
                "INSERT OR IGNORE INTO partitions (name, created_at) VALUES (?, ?)",
                (name, datetime.now(UTC).isoformat()),
            )
            conn.commit()
            partition_id = _get_partition_id(conn, name)
    except sqlite3.Error as e:
        raise DatabaseError(f"Failed to open partition '{name}': {e}")

    if partition_id is None:
        raise DatabaseError(f"Partition '{name}' vanished while opening")
    return partition_id


def list_partitions(conn: sqlite3.Connection) -> list[tuple[str, int]]:
    """List partitions in creation order with their entry counts.

    Raises:
        DatabaseError: If the query fails.
    """
    try:
        with _db_lock:
            rows = conn.execute("""
                SELECT p.name AS name, COUNT(e.id) AS entries
                FROM partitions p
                LEFT JOIN entries e ON e.partition_id = p.id
                GROUP BY p.id
                ORDER BY p.id
            """).fetchall()
        return [(row["name"], row["entries"]) for row in rows]
    except sqlite3.Error as e:
        raise DatabaseError(f"Failed to list partitions: {e}")


def delete_partition(conn: sqlite3.Connection, name: str) -> bool:
    """Delete a partition and all of its entries.

    Returns:
        True if the partition existed.

    Raises:
        DatabaseError: If the deletion fails.
    """
    try:
        with _db_lock:
            partition_id = _get_partition_id(conn, name)
            if partition_id is None:
                return False
            conn.execute("DELETE FROM entries WHERE partition_id = ?", (partition_id,))
            conn.execute("DELETE FROM partitions WHERE id = ?", (partition_id,))
            conn.commit()
        return True
    except sqlite3.Error as e:
        raise DatabaseError(f"Failed to delete partition '{name}': {e}")


def put_entry(conn: sqlite3.Connection, partition_id: int, request: Request, response: Response) -> None:
    """Insert or overwrite the entry for a request.

    Thread-safe: acquires global lock before database access.

    Raises:
        DatabaseError: If the write fails.
    """
    try:
        with _db_lock:
            conn.execute(
                """
                INSERT INTO entries
                (partition_id, method, url, request_mode, status, status_text, headers, body,
                 response_url, response_type, cached_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (partition_id, method, url) DO UPDATE SET
                    request_mode = excluded.request_mode,
                    status = excluded.status,
                    status_text = excluded.status_text,
                    headers = excluded.headers,
                    body = excluded.body,
                    response_url = excluded.response_url,
                    response_type = excluded.response_type,
                    cached_at = excluded.cached_at
                """,
                (
                    partition_id,
                    request.method,
                    request.url,
                    request.mode,
                    response.status,
                    response.status_text,
                    json.dumps(response.headers),
                    response.body,
                    response.url,
                    response.type,
                    datetime.now(UTC).isoformat(),
                ),
            )
            conn.commit()
    except sqlite3.Error as e:
        raise DatabaseError(f"Failed to store {request.url}: {e}")


def get_entry(conn: sqlite3.Connection, partition_id: int, request: Request) -> Response | None:
    """Return the stored response for a request, if any.

    Raises:
        DatabaseError: If the query fails.
    """
    try:
        with _db_lock:
            row = conn.execute(
                """
                SELECT status, status_text, headers, body, response_url, response_type
                FROM entries
                WHERE partition_id = ? AND method = ? AND url = ?
                """,
                (partition_id, request.method, request.url),
            ).fetchone()
    except sqlite3.Error as e:
        raise DatabaseError(f"Failed to read {request.url}: {e}")

    if row is None:
        return None

    return Response(
        status=row["status"],
        body=bytes(row["body"]),
        headers=json.loads(row["headers"]),
        status_text=row["status_text"],
        url=row["response_url"],
        type=row["response_type"],
    )


def delete_entry(conn: sqlite3.Connection, partition_id: int, request: Request) -> bool:
    """Delete the entry for a request. Returns True if one was removed."""
    try:
        with _db_lock:
            cursor = conn.execute(
                "DELETE FROM entries WHERE partition_id = ? AND method = ? AND url = ?",
                (partition_id, request.method, request.url),
            )
            conn.commit()
        return cursor.rowcount > 0
    except sqlite3.Error as e:
        raise DatabaseError(f"Failed to delete {request.url}: {e}")


def get_entry_keys(conn: sqlite3.Connection, partition_id: int) -> list[Request]:
    """Return the requests stored in a partition, oldest first."""
    try:
        with _db_lock:
            rows = conn.execute(
                "SELECT method, url, request_mode FROM entries WHERE partition_id = ? ORDER BY id",
                (partition_id,),
            ).fetchall()
        return [Request(url=row["url"], method=row["method"], mode=row["request_mode"]) for row in rows]
    except sqlite3.Error as e:
        raise DatabaseError(f"Failed to list entries: {e}")


class SqliteCachePartition(CachePartition):
    """Partition whose entries live in the ``entries`` table."""

    def __init__(self, conn: sqlite3.Connection, name: str, partition_id: int) -> None:
        super().__init__(name)
        self._conn = conn
        self._partition_id = partition_id

    def match(self, request: Request) -> Response | None:
        return get_entry(self._conn, self._partition_id, request)

    def put(self, request: Request, response: Response) -> None:
        self._check_cacheable(request)
        put_entry(self._conn, self._partition_id, request, response)

    def delete(self, request: Request) -> bool:
        return delete_entry(self._conn, self._partition_id, request)

    def keys(self) -> list[Request]:
        return get_entry_keys(self._conn, self._partition_id)


class SqliteCacheStorage(CacheStorage):
    """Durable cache storage; partitions survive process restarts.

    Partition ids are remembered per name after the first ``open`` so reads
    do not write. Deleting a partition through this storage forgets its id.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._partition_ids: dict[str, int] = {}
        self._ids_lock = threading.Lock()

    @classmethod
    def from_path(cls, db_path: str) -> "SqliteCacheStorage":
        return cls(init_db(db_path))

    def open(self, name: str) -> CachePartition:
        with self._ids_lock:
            partition_id = self._partition_ids.get(name)
        if partition_id is None:
            partition_id = ensure_partition(self._conn, name)
            with self._ids_lock:
                self._partition_ids[name] = partition_id
        return SqliteCachePartition(self._conn, name, partition_id)

    def has(self, name: str) -> bool:
        try:
            with _db_lock:
                return _get_partition_id(self._conn, name) is not None
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to look up partition '{name}': {e}")

    def delete(self, name: str) -> bool:
        with self._ids_lock:
            self._partition_ids.pop(name, None)
        return delete_partition(self._conn, name)

    def keys(self) -> list[str]:
        return [name for name, _ in list_partitions(self._conn)]

    def close(self) -> None:
        self._conn.close()
