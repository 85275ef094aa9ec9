import copy
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

Entity = Dict[str, Any]

ID_FIELD = "id"
CREATED_AT_FIELD = "created_at"


class FieldType(str, enum.Enum):
    """Semantic type of a schema field."""

    IDENTIFIER = "identifier"
    TIMESTAMP = "timestamp"
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    COLLECTION = "collection"


class FieldSpec(BaseModel):
    """Describes one column of an entity kind."""

    model_config = ConfigDict(frozen=True)

    type: FieldType
    queryable: bool = False
    unique: bool = False
    references: Optional[str] = None
    required: bool = False
    default: Any = None
    one_of: Optional[Tuple[Any, ...]] = None
    pattern: Optional[str] = None


class Schema(BaseModel):
    """Ordered field name -> FieldSpec mapping for one entity kind."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: Dict[str, FieldSpec] = Field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, columns: Mapping[str, Any]) -> "Schema":
        return cls(
            name=name,
            columns={
                k: v if isinstance(v, FieldSpec) else FieldSpec(**v)
                for k, v in columns.items()
            },
        )

    def __getitem__(self, name: str) -> FieldSpec:
        return self.columns[name]

    def __contains__(self, name: object) -> bool:
        return name in self.columns

    def get(self, name: str) -> Optional[FieldSpec]:
        return self.columns.get(name)

    @property
    def field_names(self) -> List[str]:
        return list(self.columns)

    def is_queryable(self, name: str) -> bool:
        """``id`` is always queryable, other fields only when flagged."""
        if name == ID_FIELD:
            return True
        spec = self.columns.get(name)
        return spec is not None and spec.queryable

    def apply_defaults(self, entity: Entity) -> Entity:
        """Fill declared defaults for fields absent from *entity*, in place."""
        for name, spec in self.columns.items():
            if spec.default is not None and entity.get(name) is None:
                entity[name] = copy.deepcopy(spec.default)
        return entity


class StatementTemplate(BaseModel):
    """A named query leaf: text with an optional ``%s`` predicate slot."""

    model_config = ConfigDict(frozen=True)

    query: str
    params: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PreparedStatement:
    """A compiled statement handle plus its positional parameter order."""

    query: str
    params: Tuple[str, ...]
    handle: Any = field(compare=False, repr=False)


@dataclass
class RowSet:
    """Rows of one page, with a continuation token when more remain."""

    rows: List[Entity] = field(default_factory=list)
    paging_state: Optional[bytes] = None

    @property
    def has_more_pages(self) -> bool:
        return self.paging_state is not None

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, index: int) -> Entity:
        return self.rows[index]
