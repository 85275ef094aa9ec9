"""Exception hierarchy raised by the data-access layer.

Constraint and validation failures carry an ``errors`` mapping of field name to
a human-readable message so callers can render per-field feedback.
"""

from __future__ import annotations

from typing import Dict, Optional

__all__ = [
    "DaoError",
    "FieldErrors",
    "ValidationError",
    "UniquenessError",
    "ForeignKeyError",
    "NotFoundError",
    "NilEntityError",
    "EncodeError",
    "StatementPrepareError",
    "DriverError",
]


class DaoError(Exception):
    """Base class for every error raised by the DAO."""


class FieldErrors(DaoError):
    """An error described by a field -> message mapping."""

    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__(
            "; ".join(f"{field}: {message}" for field, message in self.errors.items())
        )


class ValidationError(FieldErrors):
    """The entity does not satisfy its schema."""


class UniquenessError(FieldErrors):
    """One or more UNIQUE fields already hold the given value."""


class ForeignKeyError(FieldErrors):
    """One or more referenced entities do not exist."""


class NotFoundError(DaoError):
    """The target entity of an update or delete does not exist."""


class NilEntityError(DaoError):
    """A mutation was called without an entity."""


class EncodeError(DaoError):
    """A field value could not be converted to its wire type."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")


class StatementPrepareError(DaoError):
    """A declared statement failed to prepare. Fatal at startup."""

    def __init__(self, name: str, query: str, original_error: Optional[Exception] = None) -> None:
        self.name = name
        self.query = query
        self.original_error = original_error
        super().__init__(f"Failed to prepare statement {name!r}: {query}. Error: {original_error}")


class DriverError(DaoError):
    """Opaque failure reported by the database driver."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message = message
        self.original_error = original_error
        super().__init__(message)

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message} (caused by {type(self.original_error).__name__}: {self.original_error})"
        return self.message
