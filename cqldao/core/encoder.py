"""Schema-driven conversion between entity values and wire values."""

from __future__ import annotations

import datetime
import json
import math
import uuid
from typing import Any, Iterable, List, Mapping

from ..db.errors import EncodeError
from ..db.models import Entity, FieldType, Schema

__all__ = ["NULL", "ValueEncoder", "to_milliseconds"]

# Bound for absent values. The store clears a column on an explicit NULL,
# which an omitted column would not do.
NULL = None

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)
_ONE_MS = datetime.timedelta(milliseconds=1)
_EPOCH_SECONDS_DIGITS = 10


def to_milliseconds(value: Any) -> int:
    """Normalize a timestamp to integer milliseconds since the epoch.

    Numbers whose integer part has exactly 10 digits are epoch seconds and
    are promoted to milliseconds; other numbers are already milliseconds.
    """
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return (value - _EPOCH) // _ONE_MS
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"not a timestamp: {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"not a finite timestamp: {value!r}")
    if len(str(abs(int(value)))) == _EPOCH_SECONDS_DIGITS:
        value = value * 1000
    return int(value)


class ValueEncoder:
    """Maps entity fields to the store's typed representation and back."""

    @staticmethod
    def encode(schema: Schema, entity: Mapping[str, Any], params: Iterable[str]) -> List[Any]:
        """Return the values of *params*, in order, ready to bind."""
        return [ValueEncoder.encode_value(schema, name, entity.get(name)) for name in params]

    @staticmethod
    def encode_value(schema: Schema, name: str, value: Any) -> Any:
        spec = schema.get(name)
        if spec is None:
            raise EncodeError(name, "field is not declared in the schema")
        if value is None:
            return NULL

        if spec.type is FieldType.IDENTIFIER:
            if isinstance(value, uuid.UUID):
                return value
            try:
                return uuid.UUID(str(value))
            except ValueError as e:
                raise EncodeError(name, f"{value!r} is not a valid identifier") from e
        if spec.type is FieldType.TIMESTAMP:
            try:
                return _EPOCH + to_milliseconds(value) * _ONE_MS
            except (TypeError, ValueError, OverflowError) as e:
                raise EncodeError(name, f"{value!r} is not a valid timestamp") from e
        if spec.type is FieldType.COLLECTION:
            try:
                return json.dumps(value, sort_keys=True, separators=(",", ":"))
            except (TypeError, ValueError) as e:
                raise EncodeError(name, f"cannot serialize {type(value).__name__}") from e
        return value

    @staticmethod
    def decode_row(schema: Schema, row: Mapping[str, Any]) -> Entity:
        """Convert a stored row back to the entity representation.

        Columns unknown to the schema are passed through untouched.
        """
        return {name: ValueEncoder.decode_value(schema, name, value) for name, value in row.items()}

    @staticmethod
    def decode_value(schema: Schema, name: str, value: Any) -> Any:
        spec = schema.get(name)
        if spec is None or value is None:
            return value
        if spec.type is FieldType.IDENTIFIER:
            return str(value)
        if spec.type is FieldType.TIMESTAMP:
            return to_milliseconds(value)
        if spec.type is FieldType.BOOLEAN:
            return bool(value)
        if spec.type is FieldType.COLLECTION and isinstance(value, (str, bytes)):
            try:
                return json.loads(value)
            except ValueError as e:
                raise EncodeError(name, "stored collection is not valid JSON") from e
        return value
