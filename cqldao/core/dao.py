"""Generic CRUD surface over a schemaless column store."""

from __future__ import annotations

import datetime
import logging
import uuid
from typing import Any, Callable, Mapping, Optional

from ..db.connection import Driver
from ..db.errors import (
    ForeignKeyError,
    NilEntityError,
    NotFoundError,
    UniquenessError,
    ValidationError,
)
from ..db.models import CREATED_AT_FIELD, ID_FIELD, Entity, RowSet, Schema, StatementTemplate
from ..utils.log_context import OperationIdFilter, operation_scope
from ..utils.validators import SchemaValidator
from .constraints import ConstraintEnforcer
from .encoder import to_milliseconds
from .executor import StatementExecutor
from .statements import StatementCompiler, StatementGroup

__all__ = ["EntityDAO", "REQUIRED_STATEMENTS"]

logger = logging.getLogger(__name__)
logger.addFilter(OperationIdFilter())

REQUIRED_STATEMENTS = ("insert", "update", "select_one", "select", "delete")


def new_identifier() -> str:
    return str(uuid.uuid4())


def utc_now_ms() -> int:
    return to_milliseconds(datetime.datetime.now(datetime.timezone.utc))


class EntityDAO:
    """Schema-validated CRUD for one entity kind.

    The schema and the statement templates are given to the constructor or
    declared as ``schema`` / ``queries`` class attributes of a subclass.
    Statements are prepared by :meth:`prepare` (or :meth:`create`); until it
    succeeds the DAO refuses every operation.

    Every operation returns its value or raises exactly one
    :class:`~cqldao.db.errors.DaoError`; nothing is written after a failed
    validation or constraint check.
    """

    schema: Optional[Schema] = None
    queries: Optional[Mapping[str, Any]] = None

    def __init__(
        self,
        driver: Driver,
        schema: Optional[Schema] = None,
        queries: Optional[Mapping[str, Any]] = None,
        *,
        id_factory: Callable[[], str] = new_identifier,
        clock: Callable[[], int] = utc_now_ms,
        deserialize: bool = True,
        default_page_size: Optional[int] = None,
    ) -> None:
        schema = schema or type(self).schema
        queries = queries or type(self).queries
        if schema is None or queries is None:
            raise ValueError(f"{type(self).__name__} needs a schema and statement templates")
        missing = [name for name in REQUIRED_STATEMENTS if name not in queries]
        if missing:
            raise ValueError(f"Missing statement templates: {', '.join(missing)}")

        self.schema = schema
        self.queries = queries
        self.default_page_size = default_page_size
        self._driver = driver
        self._id_factory = id_factory
        self._clock = clock
        self._validator = SchemaValidator(schema)
        self._executor = StatementExecutor(driver, schema, deserialize=deserialize)
        self._compiler = StatementCompiler(driver, schema)
        self._select = StatementTemplate.model_validate(queries["select"])
        self._statements: Optional[StatementGroup] = None
        self._constraints: Optional[ConstraintEnforcer] = None

    @classmethod
    async def create(cls, driver: Driver, *args: Any, **kwargs: Any) -> "EntityDAO":
        """Build a DAO and prepare all of its statements."""
        dao = cls(driver, *args, **kwargs)
        await dao.prepare()
        return dao

    async def prepare(self) -> None:
        """Prepare every declared statement. Raises StatementPrepareError."""
        statements = await self._compiler.compile_all(self.queries)
        self._statements = statements
        self._constraints = ConstraintEnforcer(self._executor, statements)
        logger.info("Prepared statements for %s: %s", self.schema.name, ", ".join(statements))

    @property
    def statements(self) -> StatementGroup:
        if self._statements is None:
            raise RuntimeError(f"{type(self).__name__} is not prepared")
        return self._statements

    @property
    def constraints(self) -> ConstraintEnforcer:
        if self._constraints is None:
            raise RuntimeError(f"{type(self).__name__} is not prepared")
        return self._constraints

    @property
    def compiler(self) -> StatementCompiler:
        return self._compiler

    async def _check(self, entity: Entity, is_update: bool) -> None:
        valid, errors = self._validator.validate(entity)
        if not valid:
            raise ValidationError(errors)

        unique, errors = await self.constraints.check_all_unique(entity, is_update)
        if not unique:
            raise UniquenessError(errors)

        exists, errors = await self.constraints.check_all_exists(entity)
        if not exists:
            raise ForeignKeyError(errors)

    async def insert(self, draft: Optional[Mapping[str, Any]]) -> Entity:
        """Insert a new entity and return it with its ``id`` and ``created_at``.

        Both fields are always generated here; values supplied by the caller
        are overwritten.
        """
        if draft is None:
            raise NilEntityError("Cannot insert a nil element")

        with operation_scope(logger, "insert", kind=self.schema.name):
            entity = dict(draft)
            entity[CREATED_AT_FIELD] = self._clock()
            entity[ID_FIELD] = self._id_factory()
            self.schema.apply_defaults(entity)

            await self._check(entity, is_update=False)
            await self._executor.run(self.statements["insert"], entity)
            return entity

    async def update(self, patch: Optional[Mapping[str, Any]]) -> Entity:
        """Update an existing entity and return the stored result.

        Fields missing from *patch* keep their stored value: the store would
        write NULL for every unbound column, so the current row is fetched and
        merged first.
        """
        if not patch:
            raise NilEntityError("Cannot update a nil element")

        with operation_scope(logger, "update", kind=self.schema.name):
            entity = dict(patch)
            if entity.get(ID_FIELD) is None:
                raise ValidationError({ID_FIELD: f"{ID_FIELD} is required"})

            # Guards against the store's upsert turning this into an insert.
            exists, rows = await self.constraints.check_exists(self.statements["select_one"], entity, decode=True)
            if not exists:
                raise NotFoundError(f"{self.schema.name} {entity[ID_FIELD]} to update not found")

            current = rows[0]
            for name, value in current.items():
                if name in self.schema and name not in entity:
                    entity[name] = value
            entity[ID_FIELD] = current.get(ID_FIELD, entity[ID_FIELD])
            if CREATED_AT_FIELD in current:
                entity[CREATED_AT_FIELD] = current[CREATED_AT_FIELD]

            await self._check(entity, is_update=True)
            await self._executor.run(self.statements["update"], entity)
            return entity

    async def find_one(self, id: Any) -> Optional[Entity]:
        """Return the entity with identifier *id*, or None."""
        with operation_scope(logger, "find_one", kind=self.schema.name):
            rows = await self._executor.run(self.statements["select_one"], {ID_FIELD: id})
            if not rows:
                return None
            return rows[0]

    async def find_by_keys(
        self,
        keys: Optional[Mapping[str, Any]] = None,
        page_size: Optional[int] = None,
        paging_state: Optional[bytes] = None,
    ) -> RowSet:
        """Return one page of entities whose fields equal the non-None *keys*.

        Only ``id`` and queryable fields may be used. The generated statement
        is prepared once per field set and reused; without keys the ``select``
        statement prepared at startup is used.
        """
        statements = self.statements
        predicate = {k: v for k, v in (keys or {}).items() if v is not None}
        with operation_scope(logger, "find_by_keys", kind=self.schema.name, fields=",".join(predicate) or None):
            if predicate:
                statement = await self._compiler.resolve_dynamic(self._select, predicate)
            else:
                statement = statements["select"]
            return await self._executor.run(
                statement,
                predicate,
                page_size=page_size or self.default_page_size,
                paging_state=paging_state,
            )

    async def find(self, page_size: Optional[int] = None, paging_state: Optional[bytes] = None) -> RowSet:
        """Return one page of all entities."""
        return await self.find_by_keys(None, page_size, paging_state)

    async def delete(self, id: Any) -> bool:
        """Delete the entity with identifier *id*.

        Raises NotFoundError, without issuing the DELETE, when it does not
        exist.
        """
        with operation_scope(logger, "delete", kind=self.schema.name):
            exists, _ = await self.constraints.check_exists(self.statements["select_one"], {ID_FIELD: id})
            if not exists:
                raise NotFoundError(f"{self.schema.name} {id} to delete not found")
            return await self._executor.run(self.statements["delete"], {ID_FIELD: id})
