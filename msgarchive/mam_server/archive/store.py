"""
SQLite archive store.

One database per served domain holds the ``messages`` table. The column
layout is the persisted document other tooling reads directly, so it is
versioned through ``PRAGMA user_version``.

Table schema (version 1):
    messages:
        - id INTEGER PRIMARY KEY AUTOINCREMENT (result id, paging cursor)
        - user TEXT (owner local part)
        - server TEXT (owner domain)
        - jid TEXT (JSON: {"user", "server"[, "resource"]} of counterpart)
        - body TEXT
        - direction TEXT ("to" outgoing, "from" incoming)
        - ts INTEGER (archive time, UTC microseconds)
        - raw BLOB (serialized original stanza)

Invariants:
    - Records are append-only; ids grow with insertion order
    - Queries always constrain the owner and return rows in id order
    - Writes are unacknowledged: failures are logged, never raised
    - Reads are acknowledged: failures raise StoreUnavailable

How to change safely:
    - Add columns with defaults and bump SCHEMA_VERSION
    - Never rename or drop the version 1 columns
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from ..errors import StoreError, StoreUnavailable
from ..protocol.jid import JID
from ..protocol.timestamps import from_micros, to_micros
from .codec import ArchivedMessage, StoredRecord
from .pool import POOL_SIZE, ConnectionPool
from .query import QueryFilter

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

T = TypeVar("T")


class WriteConcern(Enum):
    """How storage failures are reported."""

    UNACKNOWLEDGED = "unacknowledged"
    ACKNOWLEDGED = "acknowledged"


def build_query(
    owner: JID,
    query_filter: QueryFilter,
    limit: int | None = None,
) -> tuple[str, list[Any]]:
    """Build the SQL for a history lookup.

    Args:
        owner: Archive owner (bare JID)
        query_filter: Inclusive time bounds
        limit: Maximum rows to return, or None for no limit

    Returns:
        Tuple of (sql, params)
    """
    sql = "SELECT id, raw, ts FROM messages WHERE user = ? AND server = ?"
    params: list[Any] = [owner.user, owner.server]

    if query_filter.start is not None:
        sql += " AND ts >= ?"
        params.append(to_micros(query_filter.start))

    if query_filter.end is not None:
        sql += " AND ts <= ?"
        params.append(to_micros(query_filter.end))

    sql += " ORDER BY id ASC"

    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)

    return sql, params


class ArchiveStore:
    """Message archive for one served domain.

    Thread safety:
        Connections come from a pool owned by this store. The owning actor
        serializes writes and reads; the pool only bounds connection use.

    Example:
        >>> store = ArchiveStore("/var/lib/msgarchive", "example.org")
        >>> await store.insert(record)
        >>> rows = await store.find(JID.parse("alice@example.org"), QueryFilter(), 51)
        >>> await store.close()
    """

    def __init__(
        self,
        data_dir: str,
        host: str,
        pool_size: int = POOL_SIZE,
        acquire_timeout_ms: int = 5000,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        db_pattern: str = "archive_{host}.db",
    ) -> None:
        """Initialize the store.

        Args:
            data_dir: Directory for archive database files
            host: Served domain this store archives
            pool_size: Maximum open connections
            acquire_timeout_ms: Wait for a free connection before failing
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            db_pattern: Database file name pattern
        """
        self.data_dir = Path(data_dir)
        self.host = host
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self.db_pattern = db_pattern
        self.pool = ConnectionPool(
            self._connect,
            size=pool_size,
            acquire_timeout=acquire_timeout_ms / 1000.0,
            name=host,
        )

    @property
    def db_path(self) -> Path:
        # Sanitize host to prevent path traversal
        safe_host = "".join(c for c in self.host if c.isalnum() or c in "-_.")
        safe_host = safe_host.strip(".") or "_"
        return self.data_dir / self.db_pattern.format(host=safe_host)

    def _connect(self) -> sqlite3.Connection:
        """Open and configure a connection (pool factory)."""
        db_path = self.db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            self._ensure_schema(conn)
        except Exception:
            conn.close()
            raise

        return conn

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        """Create the schema, or check the version of an existing one."""
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version > SCHEMA_VERSION:
            raise StoreError(
                f"Archive schema version {version} is newer than supported {SCHEMA_VERSION}",
                host=self.host,
            )

        conn.executescript("""
            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user TEXT NOT NULL,
                server TEXT NOT NULL,
                jid TEXT NOT NULL,
                body TEXT NOT NULL DEFAULT '',
                direction TEXT NOT NULL,
                ts INTEGER NOT NULL,
                raw BLOB NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_messages_owner_ts
                ON messages(user, server, ts);
        """)

        if version < SCHEMA_VERSION:
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    async def _exec(
        self,
        fn: Callable[[sqlite3.Connection], T],
        concern: WriteConcern,
    ) -> T | None:
        """Run fn on a pooled connection under the given write concern.

        Unacknowledged operations log failures and return None.
        Acknowledged operations raise StoreUnavailable.
        """
        try:
            async with self.pool.acquire() as conn:
                return fn(conn)
        except (StoreError, sqlite3.Error, OSError) as e:
            if concern is WriteConcern.UNACKNOWLEDGED:
                logger.warning(
                    "Archive write failed",
                    extra={"host": self.host, "error": str(e)},
                )
                return None
            if isinstance(e, StoreUnavailable):
                raise
            raise StoreUnavailable(f"Archive query failed: {e}", host=self.host) from e

    async def insert(self, record: ArchivedMessage) -> ArchivedMessage | None:
        """Store a record, best effort.

        Returns:
            The record with its assigned id, or None if the write failed.
        """
        doc = record.to_document()

        def do_insert(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                """
                INSERT INTO messages (user, server, jid, body, direction, ts, raw)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    doc["user"],
                    doc["server"],
                    json.dumps(doc["jid"]),
                    doc["body"],
                    doc["direction"],
                    to_micros(doc["ts"]),
                    doc["raw"],
                ),
            )
            return cursor.lastrowid

        record_id = await self._exec(do_insert, WriteConcern.UNACKNOWLEDGED)
        if record_id is None:
            return None

        logger.debug(
            "Archived message",
            extra={"host": self.host, "user": doc["user"], "record_id": record_id},
        )
        return ArchivedMessage(
            owner=record.owner,
            counterpart=record.counterpart,
            direction=record.direction,
            body=record.body,
            timestamp=record.timestamp,
            raw_payload=record.raw_payload,
            id=record_id,
        )

    async def find(
        self,
        owner: JID,
        query_filter: QueryFilter,
        limit: int | None = None,
    ) -> list[StoredRecord]:
        """Look up an owner's records within the filter bounds, in id order.

        Args:
            owner: Archive owner
            query_filter: Inclusive time bounds
            limit: Maximum rows to return

        Returns:
            Matching records (possibly empty)

        Raises:
            StoreUnavailable: The backend could not be queried.
        """
        sql, params = build_query(owner.bare.lower(), query_filter, limit)
        logger.debug("Archive query", extra={"host": self.host, "sql": sql, "params": params[:2]})

        def do_find(conn: sqlite3.Connection) -> list[StoredRecord]:
            cursor = conn.execute(sql, params)
            return [self._row_to_record(row) for row in cursor.fetchall()]

        return await self._exec(do_find, WriteConcern.ACKNOWLEDGED)

    async def count(self, owner: JID) -> int:
        """Number of records archived for an owner."""
        owner = owner.bare.lower()

        def do_count(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE user = ? AND server = ?",
                (owner.user, owner.server),
            )
            return cursor.fetchone()[0]

        return await self._exec(do_count, WriteConcern.ACKNOWLEDGED)

    async def close(self) -> None:
        await self.pool.close()

    def _row_to_record(self, row: sqlite3.Row) -> StoredRecord:
        """Convert database row to StoredRecord."""
        return StoredRecord(
            id=row["id"],
            raw_payload=bytes(row["raw"]),
            timestamp=from_micros(row["ts"]),
        )

