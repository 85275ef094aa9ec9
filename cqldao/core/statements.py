"""Compilation of statement template trees into prepared statements.

A template tree maps names to either a leaf (a mapping with a ``query`` key,
or a :class:`StatementTemplate`) or a nested group of further nodes. The
compiler prepares every leaf once at startup and mirrors the tree as a
:class:`StatementGroup`. SELECTs built from caller-supplied predicates are
prepared lazily and memoized by their resolved text.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple, Union

from ..db.connection import Driver
from ..db.errors import DriverError, StatementPrepareError, ValidationError
from ..db.models import ID_FIELD, PreparedStatement, Schema, StatementTemplate

__all__ = [
    "PREDICATE_SLOT",
    "UNIQUE_GROUP",
    "EXISTS_GROUP",
    "StatementGroup",
    "StatementCompiler",
]

logger = logging.getLogger(__name__)

PREDICATE_SLOT = "%s"
UNIQUE_GROUP = "__unique"
EXISTS_GROUP = "__exists"

Node = Union[PreparedStatement, "StatementGroup"]


class StatementGroup(Mapping):
    """Read-only tree of prepared statements, addressable by dotted path."""

    def __init__(self, name: str = "", children: Optional[Dict[str, Node]] = None) -> None:
        self.name = name
        self._children: Dict[str, Node] = dict(children or {})

    def __getitem__(self, key: str) -> Node:
        return self._children[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._children)

    def __len__(self) -> int:
        return len(self._children)

    def __repr__(self) -> str:
        return f"StatementGroup({self.name!r}, {list(self._children)!r})"

    def resolve(self, path: str) -> Node:
        """Return the node at *path*, e.g. ``"__unique.email"``."""
        node: Node = self
        for part in path.split("."):
            if not isinstance(node, StatementGroup):
                raise KeyError(path)
            node = node[part]
        return node

    def group(self, name: str) -> "StatementGroup":
        """Return the child group *name*, or an empty group if undeclared."""
        node = self._children.get(name)
        if node is None:
            return StatementGroup(name)
        if not isinstance(node, StatementGroup):
            raise TypeError(f"{name!r} is a statement, not a group")
        return node

    def statements(self) -> Iterator[Tuple[str, PreparedStatement]]:
        """Yield the direct leaf statements of this group."""
        for key, node in self._children.items():
            if isinstance(node, PreparedStatement):
                yield key, node


def _is_group(node: Any) -> bool:
    return isinstance(node, Mapping) and "query" not in node


def _fill_slot(query: str, predicate: str) -> str:
    return query.strip().replace(PREDICATE_SLOT, predicate, 1).strip()


class StatementCompiler:
    """Prepares template trees and dynamic predicate statements for one schema."""

    def __init__(self, driver: Driver, schema: Schema) -> None:
        self._driver = driver
        self._schema = schema
        self._cache: Dict[str, PreparedStatement] = {}
        self._cache_lock = asyncio.Lock()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def compile_all(self, templates: Mapping, _path: str = "") -> StatementGroup:
        """Prepare every leaf of *templates*, recursing into groups.

        Any prepare failure raises :class:`StatementPrepareError`; nothing
        partially compiled is returned.
        """
        children: Dict[str, Node] = {}
        for name, node in templates.items():
            path = f"{_path}.{name}" if _path else name
            if isinstance(node, StatementTemplate) or not _is_group(node):
                children[name] = await self._compile_leaf(path, StatementTemplate.model_validate(node))
            else:
                children[name] = await self.compile_all(node, path)
        return StatementGroup(_path, children)

    async def _compile_leaf(self, path: str, template: StatementTemplate) -> PreparedStatement:
        query = _fill_slot(template.query, "")
        try:
            handle = await self._driver.prepare(query)
        except DriverError as e:
            logger.error("Failed to prepare statement %s: %s", path, e)
            raise StatementPrepareError(path, query, e) from e
        logger.debug("Prepared statement %s: %s", path, query)
        return PreparedStatement(query=query, params=template.params, handle=handle)

    def build_predicate(self, fields: Iterable[str]) -> Tuple[str, Tuple[str, ...]]:
        """Return the WHERE clause for *fields* and its binding order.

        Only ``id`` and queryable fields are accepted. Fields are ordered by
        schema declaration so equal sets produce identical text.
        """
        requested = list(dict.fromkeys(fields))
        errors = {
            name: f"{name} is not queryable."
            for name in requested
            if not self._schema.is_queryable(name)
        }
        if errors:
            raise ValidationError(errors)
        if not requested:
            return "", ()

        order = [ID_FIELD] + [n for n in self._schema.field_names if n != ID_FIELD]
        keys = tuple(name for name in order if name in requested)
        where = "WHERE " + " AND ".join(f"{key} = ?" for key in keys)
        if self._driver.filtering_clause:
            where = f"{where} {self._driver.filtering_clause}"
        return where, keys

    async def resolve_dynamic(self, base: StatementTemplate, fields: Iterable[str]) -> PreparedStatement:
        """Return the prepared SELECT for *base* restricted by *fields*.

        Lookups on a cache hit do not take the lock. Misses are prepared
        under it, so one text never gets two handles.
        """
        where, keys = self.build_predicate(fields)
        query = _fill_slot(base.query, where)

        statement = self._cache.get(query)
        if statement is not None:
            return statement

        async with self._cache_lock:
            statement = self._cache.get(query)
            if statement is None:
                handle = await self._driver.prepare(query)
                statement = PreparedStatement(query=query, params=tuple(base.params) + keys, handle=handle)
                self._cache[query] = statement
                logger.debug("Cached dynamic statement (%d cached): %s", len(self._cache), query)
        return statement
