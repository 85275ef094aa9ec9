"""UNIQUE and FOREIGN KEY emulation through read-before-write lookups.

The store enforces neither constraint, so every mutation first runs the
statements declared under the ``__unique`` and ``__exists`` template groups.
The lookup and the write that follows are two separate requests: two callers
writing the same unique value at the same time can both pass their check.
Closing that window needs a conditional write in the store itself.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..db.errors import DriverError
from ..db.models import ID_FIELD, Entity, PreparedStatement, RowSet
from .executor import StatementExecutor
from .statements import EXISTS_GROUP, UNIQUE_GROUP, StatementGroup

__all__ = ["ConstraintEnforcer"]

logger = logging.getLogger(__name__)


class ConstraintEnforcer:
    """Runs existence and uniqueness lookups for one entity kind."""

    def __init__(self, executor: StatementExecutor, statements: StatementGroup) -> None:
        self._executor = executor
        self._statements = statements

    async def _rows(self, statement: PreparedStatement, values: Mapping[str, Any], decode: Optional[bool] = None) -> RowSet:
        result = await self._executor.run(statement, values, decode=decode)
        if not isinstance(result, RowSet):
            raise TypeError(f"statement does not return rows: {statement.query}")
        return result

    async def check_exists(
        self, statement: PreparedStatement, values: Mapping[str, Any], decode: Optional[bool] = None
    ) -> Tuple[bool, List[Entity]]:
        """Return whether *statement* matches any row, and the rows."""
        rows = await self._rows(statement, values, decode=decode)
        return len(rows) > 0, list(rows)

    async def check_unique(self, statement: PreparedStatement, entity: Mapping[str, Any], is_update: bool = False) -> bool:
        """Return True when no other entity holds the looked-up value.

        When updating, rows carrying the entity's own id do not count.
        """
        rows = await self._rows(statement, entity)
        if len(rows) == 0:
            return True
        if not is_update:
            return False
        own_id = str(entity.get(ID_FIELD))
        return all(str(row.get(ID_FIELD)) == own_id for row in rows)

    async def check_all_unique(self, entity: Mapping[str, Any], is_update: bool = False) -> Tuple[bool, Dict[str, str]]:
        """Run every ``__unique`` statement and collect all violations."""
        errors: Dict[str, str] = {}
        for name, statement in self._statements.group(UNIQUE_GROUP).statements():
            value = entity.get(name)
            if value is None:
                continue
            try:
                unique = await self.check_unique(statement, entity, is_update)
            except DriverError:
                logger.error("Error during UNIQUE check on %s", name)
                raise
            if not unique:
                errors[name] = f"{name} already exists with value {value}"
        if errors:
            logger.warning("UNIQUE check failed: %s", errors)
        return not errors, errors

    async def check_all_exists(self, entity: Mapping[str, Any]) -> Tuple[bool, Dict[str, str]]:
        """Run the ``__exists`` statement of every reference set on *entity*."""
        errors: Dict[str, str] = {}
        for name, statement in self._statements.group(EXISTS_GROUP).statements():
            value = entity.get(name)
            if value is None:
                continue
            try:
                exists, _ = await self.check_exists(statement, entity, decode=False)
            except DriverError:
                logger.error("Error during EXISTS check on %s", name)
                raise
            if not exists:
                errors[name] = f"{name} {value} does not exist"
        if errors:
            logger.warning("EXISTS check failed: %s", errors)
        return not errors, errors
