"""
Unit tests for the SQLite archive store.

Tests cover:
- Insert and lookup in insertion order
- Owner isolation
- Inclusive time bounds and limits
- Schema versioning
- Write and read failure reporting
"""

import json
import sqlite3
import tempfile
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

import pytest

from msgarchive.mam_server.archive.codec import Direction, encode
from msgarchive.mam_server.archive.query import QueryFilter
from msgarchive.mam_server.archive.store import SCHEMA_VERSION, ArchiveStore, build_query
from msgarchive.mam_server.errors import StoreError, StoreUnavailable
from msgarchive.mam_server.protocol.jid import JID

ALICE = JID("alice", "example.org")
BOB = JID("bob", "example.org", "laptop")


def message(body, owner=ALICE, ts=None):
    raw = f'<message to="bob@example.org"><body>{body}</body></message>'.encode()
    record = encode(Direction.OUTGOING, owner, BOB, body, raw)
    if ts is not None:
        record = replace(record, timestamp=ts)
    return record


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
async def store(temp_dir):
    s = ArchiveStore(temp_dir, "example.org", pool_size=2, acquire_timeout_ms=100)
    yield s
    await s.close()


class TestBuildQuery:
    """Tests for SQL construction."""

    def test_owner_only(self):
        sql, params = build_query(ALICE, QueryFilter())
        assert "ts >=" not in sql
        assert sql.endswith("ORDER BY id ASC")
        assert params == ["alice", "example.org"]

    def test_bounds_and_limit(self):
        start = datetime(2014, 1, 1, tzinfo=timezone.utc)
        end = datetime(2014, 2, 1, tzinfo=timezone.utc)
        sql, params = build_query(ALICE, QueryFilter(start, end), 51)
        assert "ts >= ?" in sql and "ts <= ?" in sql
        assert sql.endswith("LIMIT ?")
        assert params[-1] == 51
        assert len(params) == 5


class TestArchiveStore:
    """Tests for ArchiveStore."""

    @pytest.mark.asyncio
    async def test_insert_assigns_increasing_ids(self, store):
        first = await store.insert(message("one"))
        second = await store.insert(message("two"))
        assert first.id is not None
        assert second.id > first.id

    @pytest.mark.asyncio
    async def test_find_in_insertion_order(self, store):
        for body in ("one", "two", "three"):
            await store.insert(message(body))

        records = await store.find(ALICE, QueryFilter())
        assert [r.raw_payload for r in records] == [
            message(b).raw_payload for b in ("one", "two", "three")
        ]

    @pytest.mark.asyncio
    async def test_owner_isolation(self, store):
        await store.insert(message("mine"))
        await store.insert(message("theirs", owner=JID("carol", "example.org")))

        records = await store.find(JID("Alice", "Example.org", "phone"), QueryFilter())
        assert len(records) == 1
        assert await store.count(JID("carol", "example.org")) == 1

    @pytest.mark.asyncio
    async def test_inclusive_time_bounds(self, store):
        stamps = [
            datetime(2013, 12, 31, tzinfo=timezone.utc),
            datetime(2014, 1, 1, tzinfo=timezone.utc),
            datetime(2014, 1, 2, tzinfo=timezone.utc),
        ]
        for i, ts in enumerate(stamps):
            await store.insert(message(str(i), ts=ts))

        records = await store.find(ALICE, QueryFilter(start=stamps[1]))
        assert [r.timestamp for r in records] == stamps[1:]

        records = await store.find(ALICE, QueryFilter(end=stamps[1]))
        assert [r.timestamp for r in records] == stamps[:2]

    @pytest.mark.asyncio
    async def test_limit(self, store):
        for i in range(5):
            await store.insert(message(str(i)))
        assert len(await store.find(ALICE, QueryFilter(), 3)) == 3

    @pytest.mark.asyncio
    async def test_persisted_document(self, store):
        await store.insert(message("hello"))
        with sqlite3.connect(store.db_path) as conn:
            row = conn.execute(
                "SELECT user, server, jid, body, direction FROM messages"
            ).fetchone()
        assert row[0] == "alice"
        assert row[1] == "example.org"
        assert json.loads(row[2]) == {"user": "bob", "server": "example.org", "resource": "laptop"}
        assert row[3] == "hello"
        assert row[4] == "to"

    @pytest.mark.asyncio
    async def test_schema_version(self, store):
        await store.insert(message("hello"))
        with sqlite3.connect(store.db_path) as conn:
            assert conn.execute("PRAGMA user_version").fetchone()[0] == SCHEMA_VERSION

    @pytest.mark.asyncio
    async def test_newer_schema_is_refused(self, temp_dir):
        store = ArchiveStore(temp_dir, "example.org")
        conn = sqlite3.connect(store.db_path)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
        conn.close()

        with pytest.raises(StoreUnavailable):
            await store.find(ALICE, QueryFilter())
        assert await store.insert(message("dropped")) is None
        await store.close()

    @pytest.mark.asyncio
    async def test_closed_store(self, store):
        await store.close()
        assert await store.insert(message("lost")) is None
        with pytest.raises(StoreUnavailable):
            await store.find(ALICE, QueryFilter())

    @pytest.mark.asyncio
    async def test_uncreatable_data_dir(self, temp_dir):
        """A data dir under a regular file is unavailable, not a crash."""
        blocker = Path(temp_dir) / "blocker"
        blocker.write_text("")
        store = ArchiveStore(str(blocker / "data"), "example.org", pool_size=2)

        assert await store.insert(message("lost")) is None
        assert await store.insert(message("lost again")) is None
        with pytest.raises(StoreUnavailable):
            await store.find(ALICE, QueryFilter())
        assert store.pool.open_connections == 0
        await store.close()

    def test_db_path_is_sanitized(self, temp_dir):
        store = ArchiveStore(temp_dir, "../etc/example.org")
        assert store.db_path.parent.samefile(temp_dir)
        assert store.db_path.name == "archive_etcexample.org.db"

    def test_store_unavailable_is_store_error(self):
        assert issubclass(StoreUnavailable, StoreError)
