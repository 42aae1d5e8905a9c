"""
Fixed-size connection pool for archive databases.

Connections are opened lazily up to ``size`` and handed out through an
async context manager. Acquisition either succeeds within the timeout or
fails with StoreUnavailable; callers never spin in a retry loop.

Invariants:
    - At most ``size`` connections are open at any time
    - A slot is given back whenever opening a connection fails
    - A connection that raised sqlite3.Error while checked out is closed,
      and its slot wakes the next waiter
    - A closed pool refuses all acquisitions
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections import deque
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from ..errors import StoreUnavailable

logger = logging.getLogger(__name__)

POOL_SIZE = 10


class ConnectionPool:
    """Bounded pool of SQLite connections.

    Example:
        >>> pool = ConnectionPool(lambda: sqlite3.connect(path), size=10)
        >>> async with pool.acquire() as conn:
        ...     conn.execute("SELECT 1")
        >>> await pool.close()
    """

    def __init__(
        self,
        factory: Callable[[], sqlite3.Connection],
        size: int = POOL_SIZE,
        acquire_timeout: float = 5.0,
        name: str = "archive",
    ) -> None:
        """Initialize the pool.

        Args:
            factory: Opens a new, configured connection
            size: Maximum number of open connections
            acquire_timeout: Seconds to wait for a free connection
            name: Pool name for logging
        """
        if size < 1:
            raise ValueError("Pool size must be at least 1")

        self.factory = factory
        self.size = size
        self.acquire_timeout = acquire_timeout
        self.name = name

        self._idle: deque[sqlite3.Connection] = deque()
        self._available = asyncio.Condition()
        self._open = 0
        self._closed = False

    @property
    def open_connections(self) -> int:
        return self._open

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[sqlite3.Connection]:
        """Check out a connection for the duration of the block.

        Raises:
            StoreUnavailable: Pool closed, exhausted past the timeout, or a
                new connection could not be opened.
            StoreError: The factory refused the database itself.
        """
        conn = await self._checkout()
        healthy = True
        try:
            yield conn
        except sqlite3.Error:
            healthy = False
            raise
        finally:
            await self._checkin(conn, healthy)

    def _can_checkout(self) -> bool:
        return self._closed or bool(self._idle) or self._open < self.size

    async def _checkout(self) -> sqlite3.Connection:
        async with self._available:
            try:
                await asyncio.wait_for(
                    self._available.wait_for(self._can_checkout),
                    timeout=self.acquire_timeout,
                )
            except asyncio.TimeoutError as e:
                raise StoreUnavailable(
                    f"No free connection in pool '{self.name}' after {self.acquire_timeout}s",
                    host=self.name,
                ) from e

            if self._closed:
                raise StoreUnavailable(f"Connection pool '{self.name}' is closed", host=self.name)

            if self._idle:
                return self._idle.pop()

            # Reserve the slot before opening outside the lock.
            self._open += 1

        try:
            return self.factory()
        except (sqlite3.Error, OSError) as e:
            await self._release_slot()
            logger.warning(
                "Failed to open archive connection",
                extra={"pool": self.name, "error": str(e)},
            )
            raise StoreUnavailable(f"Cannot open connection: {e}", host=self.name) from e
        except BaseException:
            await self._release_slot()
            raise

    async def _release_slot(self) -> None:
        async with self._available:
            self._open -= 1
            self._available.notify()

    async def _checkin(self, conn: sqlite3.Connection, healthy: bool) -> None:
        async with self._available:
            if healthy and not self._closed:
                self._idle.append(conn)
            else:
                self._open -= 1
                self._close_connection(conn)
            self._available.notify()

    def _close_connection(self, conn: sqlite3.Connection) -> None:
        try:
            conn.close()
        except sqlite3.Error as e:
            logger.debug(f"Error closing connection: {e}", extra={"pool": self.name})

    async def close(self) -> None:
        """Close all idle connections and refuse further acquisitions.

        Connections still checked out are closed when they are returned.
        """
        async with self._available:
            self._closed = True
            while self._idle:
                self._open -= 1
                self._close_connection(self._idle.popleft())
            self._available.notify_all()
        logger.debug("Connection pool closed", extra={"pool": self.name})
