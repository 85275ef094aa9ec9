"""Driver contract and the aiosqlite-backed adapter.

The DAO engine talks to the database only through :class:`Driver`:
``prepare`` a query once, ``execute`` the returned handle many times. The
SQLite adapter keeps a small pool of `aiosqlite` connections and is used for
tests and local development; the production Cassandra adapter lives in
:mod:`cqldao.db.cassandra`.
"""

from __future__ import annotations

import abc
import asyncio
import datetime
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Optional, Sequence, Union

import aiosqlite

from .errors import DriverError
from .models import RowSet

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"
DEFAULT_POOL_SIZE = 5
DEFAULT_POOL_TIMEOUT = 30.0  # seconds

ExecuteResult = Union[RowSet, bool]

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


class Driver(abc.ABC):
    """Narrow contract the DAO needs from a database client.

    ``execute`` returns a :class:`RowSet` for row-returning statements and
    ``True`` as the acknowledgment of any other statement. Every native
    failure is raised as :class:`DriverError`.
    """

    # Appended to generated WHERE clauses that may scan unindexed columns.
    filtering_clause: str = ""

    async def connect(self) -> None:
        """Open the underlying connections. Idempotent."""

    async def close(self) -> None:
        """Release the underlying connections."""

    @abc.abstractmethod
    async def prepare(self, query: str) -> Any:
        """Compile *query* and return an opaque handle."""

    @abc.abstractmethod
    async def execute(
        self,
        handle: Any,
        values: Optional[Sequence[Any]] = None,
        page_size: Optional[int] = None,
        paging_state: Optional[bytes] = None,
    ) -> ExecuteResult:
        """Run a prepared handle with positional *values*."""


@dataclass(frozen=True)
class SQLiteStatement:
    """Query text checked by SQLite at prepare time."""

    query: str
    returns_rows: bool


def _adapt(value: Any) -> Any:
    """Convert typed wire values to what sqlite3 can bind."""
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return (value - _EPOCH) // datetime.timedelta(milliseconds=1)
    return value


def _decode_paging_state(paging_state: Optional[bytes]) -> int:
    if not paging_state:
        return 0
    try:
        offset = int(paging_state.decode("ascii"))
    except (UnicodeDecodeError, ValueError, AttributeError) as e:
        raise DriverError("Invalid paging state", original_error=e) from e
    if offset < 0:
        raise DriverError("Invalid paging state")
    return offset


class SQLiteDriver(Driver):
    """Driver over a pool of `aiosqlite` connections."""

    def __init__(
        self,
        path: str = MEMORY_PATH,
        pool_size: int = DEFAULT_POOL_SIZE,
        pool_timeout: float = DEFAULT_POOL_TIMEOUT,
    ) -> None:
        self.path = path
        # ":memory:" opens a new isolated database per connection, so the
        # pool degrades to one shared connection holding the whole state.
        self.pool_size = 1 if path == MEMORY_PATH else pool_size
        self.pool_timeout = pool_timeout
        self._pool: Optional[asyncio.Queue[aiosqlite.Connection]] = None
        self._connections: List[aiosqlite.Connection] = []
        self._pool_lock = asyncio.Lock()

    async def _open_connection(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(
            self.path,
            timeout=self.pool_timeout,
            cached_statements=128,
        )
        conn.row_factory = aiosqlite.Row
        return conn

    async def connect(self) -> None:
        if self._pool is not None:
            return
        async with self._pool_lock:
            if self._pool is not None:
                return
            q: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(maxsize=self.pool_size)
            for i in range(self.pool_size):
                try:
                    conn = await self._open_connection()
                except aiosqlite.Error as e:
                    logger.exception("Error opening database connection [%d]: %s", i + 1, e)
                    await self._close_connections()
                    raise DriverError("Failed to open database connection", original_error=e) from e
                self._connections.append(conn)
                await q.put(conn)
                logger.debug("Opened connection %d/%d", i + 1, self.pool_size)
            self._pool = q
            logger.info("SQLite connection pool initialized with size %d (%s)", self.pool_size, self.path)

    async def _close_connections(self) -> None:
        while self._connections:
            conn = self._connections.pop()
            try:
                await conn.close()
            except aiosqlite.Error as exc:  # pragma: no cover - cleanup best effort
                logger.warning("Error closing DB connection: %s", exc)

    async def close(self) -> None:
        """Close all connections in the pool and reset its state."""
        if self._pool is None:
            return
        await self._close_connections()
        self._pool = None
        logger.info("SQLite connection pool closed")

    @asynccontextmanager
    async def get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Acquire a connection from the pool, opening the pool on first use.

        Usage:
            async with driver.get_connection() as conn:
                await conn.execute(...)
        """
        await self.connect()
        if self._pool is None:
            raise RuntimeError("Connection pool is not initialized")
        try:
            conn = await asyncio.wait_for(self._pool.get(), timeout=self.pool_timeout)
        except asyncio.TimeoutError as e:
            logger.error("Timed out waiting for database connection")
            raise DriverError("Database connection timeout", original_error=e) from e

        start_time = time.monotonic()
        try:
            yield conn
        finally:
            logger.debug("Database connection held for %.3f seconds", time.monotonic() - start_time)
            self._pool.put_nowait(conn)

    async def executescript(self, script: str) -> None:
        """Run a multi-statement script (table setup for tests and tooling)."""
        try:
            async with self.get_connection() as conn:
                await conn.executescript(script)
                await conn.commit()
        except aiosqlite.Error as e:
            raise DriverError("Failed to run script", original_error=e) from e

    async def prepare(self, query: str) -> SQLiteStatement:
        try:
            async with self.get_connection() as conn:
                await conn.execute(f"EXPLAIN {query}", (None,) * query.count("?"))
        except aiosqlite.Error as e:
            raise DriverError(f"Failed to prepare query: {query}", original_error=e) from e
        return SQLiteStatement(
            query=query,
            returns_rows=query.lstrip().upper().startswith("SELECT"),
        )

    async def execute(
        self,
        handle: SQLiteStatement,
        values: Optional[Sequence[Any]] = None,
        page_size: Optional[int] = None,
        paging_state: Optional[bytes] = None,
    ) -> ExecuteResult:
        params = tuple(_adapt(v) for v in values or ())
        try:
            async with self.get_connection() as conn:
                if not handle.returns_rows:
                    await conn.execute(handle.query, params)
                    await conn.commit()
                    return True

                offset = _decode_paging_state(paging_state)
                sql = handle.query
                if page_size or offset:
                    # One extra row tells whether another page exists.
                    limit = page_size + 1 if page_size else -1
                    sql = f"SELECT * FROM ({handle.query}) LIMIT ? OFFSET ?"
                    params += (limit, offset)
                cursor = await conn.execute(sql, params)
                rows = [dict(row) for row in await cursor.fetchall()]
        except aiosqlite.Error as e:
            logger.exception("SQLite statement failed: %s", handle.query)
            raise DriverError(f"Failed to execute query: {handle.query}", original_error=e) from e

        next_state = None
        if page_size and len(rows) > page_size:
            rows = rows[:page_size]
            next_state = str(offset + page_size).encode("ascii")
        return RowSet(rows=rows, paging_state=next_state)
