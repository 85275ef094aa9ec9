"""Production driver adapter over the DataStax ``cassandra-driver``.

Statements are prepared on a worker thread (``Session.prepare`` is
blocking) and executed with ``Session.execute_async``; the driver's
``ResponseFuture`` is bridged into the running asyncio loop through its
callbacks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Sequence

from cassandra import DriverException, RequestExecutionException, RequestValidationException
from cassandra.cluster import Cluster, NoHostAvailable, Session
from cassandra.io.asyncioreactor import AsyncioConnection
from cassandra.query import PreparedStatement, dict_factory

from .connection import Driver, ExecuteResult
from .errors import DriverError
from .models import RowSet

logger = logging.getLogger(__name__)

_DRIVER_ERRORS = (
    DriverException,
    RequestExecutionException,
    RequestValidationException,
    NoHostAvailable,
)


class CassandraDriver(Driver):
    """Driver bound to one keyspace of a Cassandra cluster."""

    filtering_clause = "ALLOW FILTERING"

    def __init__(
        self,
        contact_points: Sequence[str] = ("127.0.0.1",),
        keyspace: str = "cqldao",
        port: int = 9042,
        session: Optional[Session] = None,
    ) -> None:
        self.contact_points: List[str] = list(contact_points)
        self.keyspace = keyspace
        self.port = port
        self._cluster: Optional[Cluster] = None
        self._session = session
        if session is not None:
            session.row_factory = dict_factory

    @property
    def session(self) -> Session:
        if self._session is None:
            raise DriverError("Cassandra session is not connected")
        return self._session

    async def connect(self) -> None:
        if self._session is not None:
            return
        loop = asyncio.get_running_loop()
        self._cluster = Cluster(self.contact_points, port=self.port, connection_class=AsyncioConnection)
        try:
            session = await loop.run_in_executor(None, self._cluster.connect, self.keyspace)
        except _DRIVER_ERRORS as e:
            logger.exception("Failed to connect to %s", self.contact_points)
            raise DriverError("Failed to connect to Cassandra cluster", original_error=e) from e
        session.row_factory = dict_factory
        self._session = session
        logger.info("Connected to keyspace %s on %s", self.keyspace, self.contact_points)

    async def close(self) -> None:
        if self._cluster is None:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._cluster.shutdown)
        self._cluster = None
        self._session = None
        logger.info("Cassandra cluster connection closed")

    async def prepare(self, query: str) -> PreparedStatement:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.session.prepare, query)
        except _DRIVER_ERRORS as e:
            raise DriverError(f"Failed to prepare query: {query}", original_error=e) from e

    async def execute(
        self,
        handle: PreparedStatement,
        values: Optional[Sequence[Any]] = None,
        page_size: Optional[int] = None,
        paging_state: Optional[bytes] = None,
    ) -> ExecuteResult:
        try:
            bound = handle.bind(list(values or ()))
            if page_size:
                bound.fetch_size = page_size
            response_future = self.session.execute_async(bound, paging_state=paging_state)

            loop = asyncio.get_running_loop()
            asyncio_future = loop.create_future()

            def on_success(_rows):
                loop.call_soon_threadsafe(asyncio_future.set_result, None)

            def on_error(error):
                loop.call_soon_threadsafe(asyncio_future.set_exception, error)

            response_future.add_callbacks(on_success, on_error)
            await asyncio_future
            # Already completed, so this does not block.
            result = response_future.result()
        except _DRIVER_ERRORS + (TypeError, ValueError) as e:
            logger.exception("Cassandra statement failed: %s", handle.query_string)
            raise DriverError(f"Failed to execute query: {handle.query_string}", original_error=e) from e

        if not handle.result_metadata:
            return True
        return RowSet(
            rows=list(result.current_rows),
            paging_state=result.paging_state if result.has_more_pages else None,
        )
