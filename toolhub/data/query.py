from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class FilterOp(StrEnum):
    eq = "eq"
    ne = "ne"
    in_ = "in"
    like = "like"
    gte = "gte"
    lte = "lte"
    between = "between"
    is_null = "is_null"


class SortDirection(StrEnum):
    asc = "asc"
    desc = "desc"


BOOLEAN_OPERATORS = frozenset({FilterOp.eq})
NUMERIC_OPERATORS = frozenset(
    {FilterOp.eq, FilterOp.ne, FilterOp.in_, FilterOp.gte, FilterOp.lte}
)
TEMPORAL_OPERATORS = frozenset(
    {
        FilterOp.eq,
        FilterOp.ne,
        FilterOp.gte,
        FilterOp.lte,
        FilterOp.between,
        FilterOp.is_null,
    }
)
TEXT_OPERATORS = frozenset({FilterOp.eq, FilterOp.ne, FilterOp.like, FilterOp.in_})

# Declared field type -> filter operators. Unlisted types are treated as text.
OPERATORS_BY_TYPE: Mapping[str, frozenset[FilterOp]] = MappingProxyType({
    "boolean": BOOLEAN_OPERATORS,
    "bool": BOOLEAN_OPERATORS,
    "integer": NUMERIC_OPERATORS,
    "int": NUMERIC_OPERATORS,
    "bigint": NUMERIC_OPERATORS,
    "smallint": NUMERIC_OPERATORS,
    "float": NUMERIC_OPERATORS,
    "double": NUMERIC_OPERATORS,
    "decimal": NUMERIC_OPERATORS,
    "numeric": NUMERIC_OPERATORS,
    "number": NUMERIC_OPERATORS,
    "date": TEMPORAL_OPERATORS,
    "datetime": TEMPORAL_OPERATORS,
    "time": TEMPORAL_OPERATORS,
    "timestamp": TEMPORAL_OPERATORS,
    "timestamptz": TEMPORAL_OPERATORS,
})


def operators_for_type(type_name: str | None) -> frozenset[FilterOp]:
    return OPERATORS_BY_TYPE.get((type_name or "string").strip().lower(), TEXT_OPERATORS)


class Filter(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    op: FilterOp = FilterOp.eq
    value: Any = None

    @field_validator("op", mode="before")
    @classmethod
    def _normalize_op(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class Sort(BaseModel):
    """Sort entry. Accepts 'direction' or the short 'dir' key."""

    model_config = ConfigDict(frozen=True)

    field: str
    direction: SortDirection = Field(
        SortDirection.asc, validation_alias=AliasChoices("direction", "dir")
    )

    @field_validator("direction", mode="before")
    @classmethod
    def _normalize_direction(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class ReadOptions(BaseModel):
    """Caller-supplied query options for a data read."""

    model_config = ConfigDict(frozen=True)

    filters: tuple[Filter, ...] = ()
    sort: tuple[Sort, ...] = ()
    fields: tuple[str, ...] | None = None
    query: str | None = None
    page: int = 1
    per_page: int | None = None
    id: int | str | None = None

    def filtered_fields(self) -> set[str]:
        return {f.field for f in self.filters}
