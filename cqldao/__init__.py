"""Schema-validated DAO for schemaless column stores.

Emulates UNIQUE and FOREIGN KEY constraints with read-before-write lookups
and caches prepared statements, including those generated for ad hoc
predicates.
"""

from .core.dao import EntityDAO
from .db.errors import (
    DaoError,
    DriverError,
    EncodeError,
    ForeignKeyError,
    NilEntityError,
    NotFoundError,
    StatementPrepareError,
    UniquenessError,
    ValidationError,
)
from .db.models import FieldSpec, FieldType, RowSet, Schema, StatementTemplate

__all__ = [
    "EntityDAO",
    "Schema",
    "FieldSpec",
    "FieldType",
    "StatementTemplate",
    "RowSet",
    "DaoError",
    "ValidationError",
    "UniquenessError",
    "ForeignKeyError",
    "NotFoundError",
    "NilEntityError",
    "EncodeError",
    "StatementPrepareError",
    "DriverError",
]
