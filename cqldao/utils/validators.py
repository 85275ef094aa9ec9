"""Validation helpers used across the project."""

from __future__ import annotations

import datetime
import math
import uuid
from typing import Annotated, Any, Dict, Literal, Mapping, Optional, Tuple, Type, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    create_model,
)
from pydantic import ValidationError as PydanticValidationError

from ..db.models import FieldSpec, FieldType, Schema

__all__ = ["SchemaValidator", "validate", "is_valid_identifier"]


def is_valid_identifier(value: Any) -> bool:
    """Checks if *value* is a UUID or a string in UUID format."""
    if isinstance(value, uuid.UUID):
        return True
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _identifier(value: Any) -> Any:
    if not is_valid_identifier(value):
        raise ValueError("Value must be a valid identifier")
    return value


def _timestamp(value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float, datetime.datetime)):
        raise ValueError("Value must be a timestamp")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("Timestamp must be a finite number")
    return value


_PYTHON_TYPES: Dict[FieldType, Any] = {
    FieldType.IDENTIFIER: Annotated[Any, AfterValidator(_identifier)],
    FieldType.TIMESTAMP: Annotated[Any, AfterValidator(_timestamp)],
    FieldType.TEXT: StrictStr,
    FieldType.NUMBER: Union[StrictInt, StrictFloat],
    FieldType.BOOLEAN: StrictBool,
    FieldType.COLLECTION: Union[dict, list],
}


def _field_definition(spec: FieldSpec) -> Tuple[Any, Any]:
    annotation = _PYTHON_TYPES[spec.type]
    if spec.one_of:
        annotation = Literal[spec.one_of]  # type: ignore[valid-type]
    kwargs: Dict[str, Any] = {}
    if spec.pattern and spec.type is FieldType.TEXT:
        kwargs["pattern"] = spec.pattern
    if spec.required:
        return annotation, Field(..., **kwargs)
    return Optional[annotation], Field(None, **kwargs)


class SchemaValidator:
    """Validates entities against one :class:`Schema` with a generated pydantic model."""

    def __init__(self, schema: Schema) -> None:
        self.schema = schema
        self.model: Type[BaseModel] = self._build_model(schema)

    @staticmethod
    def _build_model(schema: Schema) -> Type[BaseModel]:
        definitions = {name: _field_definition(spec) for name, spec in schema.columns.items()}
        return create_model(  # type: ignore[call-overload]
            f"{schema.name.title().replace('_', '')}Entity",
            __config__=ConfigDict(extra="forbid"),
            **definitions,
        )

    def validate(self, entity: Mapping[str, Any]) -> Tuple[bool, Dict[str, str]]:
        """Return ``(ok, errors)`` where *errors* maps field name to message."""
        try:
            self.model.model_validate(dict(entity))
        except PydanticValidationError as exc:
            return False, _collect_errors(exc)
        return True, {}


def _collect_errors(exc: PydanticValidationError) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "__root__"
        if err["type"] == "missing":
            message = f"{field} is required"
        elif err["type"] == "extra_forbidden":
            message = f"{field} is an unknown field"
        else:
            message = err["msg"]
        errors.setdefault(field, message)
    return errors


def validate(entity: Mapping[str, Any], schema: Schema) -> Tuple[bool, Dict[str, str]]:
    """One-off validation of *entity*; reuse :class:`SchemaValidator` when repeated."""
    return SchemaValidator(schema).validate(entity)
