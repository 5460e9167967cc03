"""Capability contract for a queryable entity.

A provider describes which fields of an entity may be read, filtered,
sorted and searched, and produces the tenant-scoped base query. Callers
never build queries against entity tables directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from toolhub.data.query import Filter, FilterOp, ReadOptions
from toolhub.infra.errors import QueryValidationError

if TYPE_CHECKING:
    from sqlalchemy import Column, ColumnElement, Select

    from toolhub.tools.context import ToolContext


class EntityReadProvider(ABC):
    """Read contract for one entity, bound to its SQLAlchemy mapped class."""

    def __init__(self, entity_class: type) -> None:
        self._entity_class = entity_class

    @property
    @abstractmethod
    def key(self) -> str:
        """Entity key used by tools, e.g. 'task'."""
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier resolved through the ModelCatalog."""
        ...

    @property
    def entity_class(self) -> type:
        return self._entity_class

    @abstractmethod
    def readable_fields(self) -> list[str]: ...

    @abstractmethod
    def allowed_filters(self) -> dict[str, frozenset[FilterOp]]: ...

    @abstractmethod
    def allowed_sorts(self) -> list[str]: ...

    def relations_whitelist(self) -> list[str]:
        return []

    def search_fields(self) -> list[str]:
        return []

    @abstractmethod
    def default_projection(self) -> list[str]: ...

    def pii_fields(self) -> list[str]:
        return []

    def column(self, name: str) -> Column[Any]:
        return self.entity_class.__table__.c[name]

    def base_query(self) -> Select:
        return select(self.entity_class)

    @abstractmethod
    def team_scoped_query(self, context: ToolContext) -> Select:
        """Base query restricted to the acting team where applicable."""
        ...

    def scope_to_team(self, query: Select, context: ToolContext) -> Select:
        # No resolvable acting team leaves the query unscoped.
        if context.team_id is None:
            return query
        return query.where(self.column("team_id") == context.team_id)

    def apply_domain_defaults(
        self, query: Select, options: ReadOptions
    ) -> tuple[Select, ReadOptions]:
        """Inject default filters/sort without overriding the caller's."""
        return query, options

    def map_filter(self, filter_: Filter) -> Filter | None:
        """Normalize a caller filter to real fields. None drops it."""
        return filter_

    def describe(self) -> dict[str, Any]:
        return {
            "entity": self.key,
            "model": self.model,
            "readable_fields": self.readable_fields(),
            "allowed_filters": {
                name: sorted(str(op) for op in ops)
                for name, ops in self.allowed_filters().items()
            },
            "allowed_sorts": self.allowed_sorts(),
            "relations_whitelist": self.relations_whitelist(),
            "search_fields": self.search_fields(),
            "default_projection": self.default_projection(),
        }


def compile_filter(column: ColumnElement[Any], filter_: Filter) -> ColumnElement[bool]:
    """Translate one validated Filter into a SQLAlchemy condition."""
    op, value = filter_.op, filter_.value
    if op is FilterOp.eq:
        return column.is_(None) if value is None else column == value
    if op is FilterOp.ne:
        return column.is_not(None) if value is None else column != value
    if op is FilterOp.like:
        return column.like(f"%{value}%")
    if op is FilterOp.in_:
        values = list(value) if isinstance(value, list | tuple) else [value]
        return column.in_(values)
    if op is FilterOp.gte:
        return column >= value
    if op is FilterOp.lte:
        return column <= value
    if op is FilterOp.between:
        if not isinstance(value, list | tuple) or len(value) != 2:
            raise QueryValidationError(
                f"Filter 'between' on '{filter_.field}' needs exactly two values"
            )
        return column.between(value[0], value[1])
    if op is FilterOp.is_null:
        return column.is_not(None) if value is False else column.is_(None)
    raise QueryValidationError(f"Unsupported operator '{filter_.op}'")
