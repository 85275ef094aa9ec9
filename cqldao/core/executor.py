"""Execution of prepared statements against the driver."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from ..db.connection import Driver
from ..db.models import PreparedStatement, RowSet, Schema
from .encoder import ValueEncoder


class StatementExecutor:
    """Binds entity values to a prepared statement and interprets the result."""

    def __init__(self, driver: Driver, schema: Schema, deserialize: bool = True) -> None:
        self._driver = driver
        self._schema = schema
        self.deserialize = deserialize

    async def run(
        self,
        statement: PreparedStatement,
        values: Optional[Mapping[str, Any]] = None,
        page_size: Optional[int] = None,
        paging_state: Optional[bytes] = None,
        decode: Optional[bool] = None,
    ) -> Union[RowSet, bool]:
        """Execute *statement* with its ``params`` taken from *values*.

        Returns the decoded :class:`RowSet` for row-returning statements and
        the driver's acknowledgment otherwise. *decode* overrides the
        ``deserialize`` setting: ``False`` for rows of another entity kind,
        which this schema cannot describe, ``True`` where decoded rows are
        required.
        """
        bound = ValueEncoder.encode(self._schema, values or {}, statement.params)
        result = await self._driver.execute(
            statement.handle,
            bound,
            page_size=page_size,
            paging_state=paging_state,
        )
        if not isinstance(result, RowSet):
            return bool(result)
        if decode is None:
            decode = self.deserialize
        if decode:
            return RowSet(
                rows=[ValueEncoder.decode_row(self._schema, row) for row in result.rows],
                paging_state=result.paging_state,
            )
        return result
