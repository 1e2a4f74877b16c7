"""
Thread-safe SQLite entity store for anitrack.

The store keeps the AniList catalog cache, the user's library entries and
the durable sync queue in one database file, so a single transaction can
span all three ("dequeue + record remote id + clear dirty" is one commit).

Schema:
    media:            Catalog cache, one row per AniList media id
    genres:           One row per distinct genre name
    media_genres:     Junction table (media_id, genre_id)
    library_entries:  The user's entries (status, progress, score, order)
    sync_queue:       Pending remote-bound operations, FIFO by created_at

Usage:
    db = Database(config.storage.database_path)

    with db.transaction():
        db.upsert_media(media.to_database_dict())
        entry_id = db.insert_entry({...})

    for row in db.list_operations():
        ...

Every public method joins the surrounding transaction() when there is
one and commits on its own otherwise. sqlite3 errors never escape: they
are raised as StoreError.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from anitrack.core.exceptions import StoreError
from anitrack.core.logger import get_logger

logger = get_logger(__name__)


DATABASE_VERSION = 1

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS media (
    id INTEGER PRIMARY KEY,  -- AniList media id
    title_romaji TEXT NOT NULL,
    title_english TEXT,
    title_native TEXT,
    cover_large TEXT,
    cover_medium TEXT,
    episodes INTEGER,
    format TEXT,
    synopsis TEXT,
    site_url TEXT,
    last_synced TEXT
);

CREATE TABLE IF NOT EXISTS genres (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL
);

CREATE TABLE IF NOT EXISTS media_genres (
    media_id INTEGER NOT NULL,
    genre_id INTEGER NOT NULL,
    PRIMARY KEY (media_id, genre_id),
    FOREIGN KEY (media_id) REFERENCES media(id) ON DELETE CASCADE,
    FOREIGN KEY (genre_id) REFERENCES genres(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS library_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    media_id INTEGER UNIQUE NOT NULL,
    remote_id INTEGER,
    status TEXT NOT NULL,
    progress INTEGER NOT NULL DEFAULT 0,
    score REAL,
    sort_position INTEGER NOT NULL,
    dirty INTEGER NOT NULL DEFAULT 0,
    last_modified TEXT NOT NULL,
    FOREIGN KEY (media_id) REFERENCES media(id)
);

CREATE TABLE IF NOT EXISTS sync_queue (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    media_id INTEGER NOT NULL,
    payload TEXT NOT NULL,  -- JSON object
    created_at TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT
);

CREATE INDEX IF NOT EXISTS idx_library_entries_status ON library_entries(status, sort_position);
CREATE INDEX IF NOT EXISTS idx_library_entries_dirty ON library_entries(dirty);
CREATE INDEX IF NOT EXISTS idx_sync_queue_media ON sync_queue(media_id);
CREATE INDEX IF NOT EXISTS idx_sync_queue_order ON sync_queue(created_at, id);
"""

_MEDIA_COLUMNS = (
    "title_romaji", "title_english", "title_native", "cover_large",
    "cover_medium", "episodes", "format", "synopsis", "site_url",
)

_ENTRY_COLUMNS = frozenset({
    "media_id", "remote_id", "status", "progress", "score",
    "sort_position", "dirty", "last_modified",
})


def now_iso() -> str:
    """Current UTC time as an ISO 8601 string, the store's timestamp format."""
    return datetime.now(timezone.utc).isoformat()


class Database:
    """
    Thread-safe SQLite entity store.

    Uses a single persistent connection guarded by a re-entrant lock, so
    a transaction() block may call any other public method.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        self._depth = 0

        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(
                f"Cannot create database directory: {db_path.parent}",
                details={"path": str(db_path.parent), "original_error": str(e)}
            ) from e

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise StoreError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e

    def _connection(self) -> sqlite3.Connection:
        """Return the persistent connection, opening it on first use."""
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _init_database(self) -> None:
        conn = self._connection()
        conn.executescript(_SCHEMA_SQL)

        row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        if row is None:
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
        elif row[0] != DATABASE_VERSION:
            raise StoreError(
                f"Database version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                details={"expected": DATABASE_VERSION, "actual": row[0]}
            )
        conn.commit()

    # =========================================================================
    # Transactions
    # =========================================================================

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Group every statement in the block into one commit.

        Nested transaction() blocks join the outermost one. Any exception
        rolls the whole unit back; sqlite3 errors are re-raised as
        StoreError, other exceptions propagate unchanged.
        """
        with self._lock:
            conn = self._connection()
            self._depth += 1
            try:
                yield conn
            except sqlite3.Error as e:
                if self._depth == 1:
                    conn.rollback()
                raise StoreError(f"Database operation failed: {e}", details={"original_error": str(e)}) from e
            except BaseException:
                if self._depth == 1:
                    conn.rollback()
                raise
            else:
                if self._depth == 1:
                    try:
                        conn.commit()
                    except sqlite3.Error as e:
                        conn.rollback()
                        raise StoreError(f"Commit failed: {e}", details={"original_error": str(e)}) from e
            finally:
                self._depth -= 1

    @contextmanager
    def _read(self) -> Generator[sqlite3.Connection, None, None]:
        with self._lock:
            try:
                yield self._connection()
            except sqlite3.Error as e:
                raise StoreError(f"Database read failed: {e}", details={"original_error": str(e)}) from e

    # =========================================================================
    # Media Catalog
    # =========================================================================

    def upsert_media(self, data: dict[str, Any]) -> None:
        """
        Create or refresh a catalog row and replace its genre links.

        Genre names are stored once in `genres` and shared by every media
        row that references them.
        """
        media_id = data["id"]
        values = [data.get(column) for column in _MEDIA_COLUMNS]

        with self.transaction() as conn:
            conn.execute(f"""
                INSERT INTO media (id, {", ".join(_MEDIA_COLUMNS)}, last_synced)
                VALUES (?, {", ".join("?" for _ in _MEDIA_COLUMNS)}, ?)
                ON CONFLICT(id) DO UPDATE SET
                    {", ".join(f"{c} = excluded.{c}" for c in _MEDIA_COLUMNS)},
                    last_synced = excluded.last_synced
            """, (media_id, *values, now_iso()))

            conn.execute("DELETE FROM media_genres WHERE media_id = ?", (media_id,))
            for name in dict.fromkeys(data.get("genres") or ()):
                conn.execute("INSERT OR IGNORE INTO genres (name) VALUES (?)", (name,))
                genre_id = conn.execute("SELECT id FROM genres WHERE name = ?", (name,)).fetchone()[0]
                conn.execute(
                    "INSERT OR IGNORE INTO media_genres (media_id, genre_id) VALUES (?, ?)",
                    (media_id, genre_id)
                )

    def get_media(self, media_id: int) -> dict[str, Any] | None:
        """Get a catalog row with its genre names, or None."""
        with self._read() as conn:
            row = conn.execute("SELECT * FROM media WHERE id = ?", (media_id,)).fetchone()
            if row is None:
                return None
            data = dict(row)
            data["genres"] = [
                r[0] for r in conn.execute("""
                    SELECT g.name FROM genres g
                    JOIN media_genres mg ON mg.genre_id = g.id
                    WHERE mg.media_id = ?
                    ORDER BY g.name
                """, (media_id,))
            ]
            return data

    def count_genres(self) -> int:
        with self._read() as conn:
            return conn.execute("SELECT COUNT(*) FROM genres").fetchone()[0]

    # =========================================================================
    # Library Entries
    # =========================================================================

    def _deserialize_entry_row(self, row: sqlite3.Row) -> dict[str, Any]:
        data = dict(row)
        data["dirty"] = bool(data["dirty"])
        return data

    def get_entry(self, entry_id: int) -> dict[str, Any] | None:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM library_entries WHERE id = ?", (entry_id,)).fetchone()
            return self._deserialize_entry_row(row) if row else None

    def get_entry_by_media(self, media_id: int) -> dict[str, Any] | None:
        with self._read() as conn:
            row = conn.execute(
                "SELECT * FROM library_entries WHERE media_id = ?", (media_id,)
            ).fetchone()
            return self._deserialize_entry_row(row) if row else None

    def query_entries(
        self,
        status: str | None = None,
        dirty: bool | None = None
    ) -> list[dict[str, Any]]:
        """
        Fetch entries matching the given filters.

        Results are ordered by status, then sort_position, then id.
        """
        clauses = []
        params: list[Any] = []
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if dirty is not None:
            clauses.append("dirty = ?")
            params.append(1 if dirty else 0)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._read() as conn:
            cursor = conn.execute(
                f"SELECT * FROM library_entries {where} ORDER BY status, sort_position, id",
                params
            )
            return [self._deserialize_entry_row(row) for row in cursor.fetchall()]

    def count_entries(self, status: str) -> int:
        with self._read() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM library_entries WHERE status = ?", (status,)
            ).fetchone()[0]

    def insert_entry(self, data: dict[str, Any]) -> int:
        """Insert a library entry and return its new id."""
        columns = [c for c in data if c in _ENTRY_COLUMNS]
        values = [int(data[c]) if c == "dirty" else data[c] for c in columns]

        with self.transaction() as conn:
            cursor = conn.execute(
                f"INSERT INTO library_entries ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                values
            )
            return cursor.lastrowid

    def update_entry(self, entry_id: int, **fields: Any) -> None:
        """Update the given columns of one entry. Unknown columns raise KeyError."""
        unknown = set(fields) - _ENTRY_COLUMNS
        if unknown:
            raise KeyError(f"Unknown library entry columns: {sorted(unknown)}")
        if not fields:
            return

        values = [int(v) if k == "dirty" else v for k, v in fields.items()]
        with self.transaction() as conn:
            conn.execute(
                f"UPDATE library_entries SET {', '.join(f'{k} = ?' for k in fields)} WHERE id = ?",
                (*values, entry_id)
            )

    def delete_entry(self, entry_id: int) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM library_entries WHERE id = ?", (entry_id,))

    # =========================================================================
    # Sync Queue
    # =========================================================================

    def _deserialize_operation_row(self, row: sqlite3.Row) -> dict[str, Any]:
        data = dict(row)
        data["payload"] = json.loads(data["payload"])
        return data

    def append_operation(
        self,
        kind: str,
        media_id: int,
        payload: dict[str, Any],
        created_at: str | None = None
    ) -> dict[str, Any]:
        """Append an operation to the queue and return the stored row."""
        created_at = created_at or now_iso()
        with self.transaction() as conn:
            cursor = conn.execute("""
                INSERT INTO sync_queue (kind, media_id, payload, created_at, attempts)
                VALUES (?, ?, ?, ?, 0)
            """, (kind, media_id, json.dumps(payload, sort_keys=True), created_at))
            op_id = cursor.lastrowid

        return {
            "id": op_id,
            "kind": kind,
            "media_id": media_id,
            "payload": dict(payload),
            "created_at": created_at,
            "attempts": 0,
            "last_error": None,
        }

    def get_operation(self, op_id: int) -> dict[str, Any] | None:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM sync_queue WHERE id = ?", (op_id,)).fetchone()
            return self._deserialize_operation_row(row) if row else None

    def list_operations(self) -> list[dict[str, Any]]:
        """All queued operations in FIFO order (created_at, then id)."""
        with self._read() as conn:
            cursor = conn.execute("SELECT * FROM sync_queue ORDER BY created_at, id")
            return [self._deserialize_operation_row(row) for row in cursor.fetchall()]

    def count_operations(self, media_id: int | None = None, kind: str | None = None) -> int:
        clauses = []
        params: list[Any] = []
        if media_id is not None:
            clauses.append("media_id = ?")
            params.append(media_id)
        if kind is not None:
            clauses.append("kind = ?")
            params.append(kind)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._read() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM sync_queue {where}", params).fetchone()[0]

    def record_operation_failure(self, op_id: int, error: str) -> int:
        """Increment an operation's attempts, store the error, return the new count."""
        with self.transaction() as conn:
            conn.execute(
                "UPDATE sync_queue SET attempts = attempts + 1, last_error = ? WHERE id = ?",
                (error, op_id)
            )
            row = conn.execute("SELECT attempts FROM sync_queue WHERE id = ?", (op_id,)).fetchone()
            return row[0] if row else 0

    def delete_operation(self, op_id: int) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM sync_queue WHERE id = ?", (op_id,))

    # =========================================================================
    # Maintenance
    # =========================================================================

    def clear_all_data(self) -> None:
        """Delete every row (logout, or before a full resync)."""
        with self.transaction() as conn:
            for table in ("sync_queue", "library_entries", "media_genres", "genres", "media"):
                conn.execute(f"DELETE FROM {table}")
        logger.info("Local data cleared")

    def destroy_and_recreate(self) -> None:
        """
        Delete the database files and build an empty schema.

        This is the recovery path for data corruption (StoreError,
        DecodingError): afterwards the caller runs SyncEngine.sync_all().
        """
        with self._lock:
            self.close()
            for suffix in ("", "-wal", "-shm"):
                path = Path(f"{self.db_path}{suffix}")
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    raise StoreError(
                        f"Cannot delete database file: {path}",
                        details={"path": str(path), "original_error": str(e)}
                    ) from e
            try:
                self._init_database()
            except sqlite3.Error as e:
                raise StoreError(
                    f"Failed to recreate database: {e}",
                    details={"path": str(self.db_path)}
                ) from e
        logger.warning(f"Database destroyed and recreated: {self.db_path}")
