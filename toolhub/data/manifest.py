"""Declarative entities: a JSON manifest describes fields and defaults, and
ManifestEntityProvider derives the whole read contract from it."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from toolhub.data.provider import EntityReadProvider
from toolhub.data.query import Filter, FilterOp, ReadOptions, Sort, operators_for_type
from toolhub.infra.errors import ExecutionError, ManifestValidationError

if TYPE_CHECKING:
    from sqlalchemy import Select

    from toolhub.data.catalog import ModelCatalog
    from toolhub.tools.context import ToolContext

PREFERRED_SORTS = ("id", "title", "due_date", "created_at", "updated_at", "order")
PREFERRED_PROJECTION = (
    "id", "title", "name", "description", "due_date", "is_done", "created_at",
)
SEARCHABLE_FIELDS = ("title", "name", "description")
FALLBACK_PROJECTION_SIZE = 6
TEAM_FIELD = "team_id"


def sortable_fields(fields: list[str]) -> list[str]:
    return [f for f in PREFERRED_SORTS if f in fields] or fields


class FieldSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "string"
    fillable: bool = False
    readonly: bool = False
    pii: bool = False

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, v: Any) -> Any:
        return "string" if v is None else v


class ManifestDefaults(BaseModel):
    model_config = ConfigDict(frozen=True)

    filters: tuple[Filter, ...] = ()
    sort: tuple[Sort, ...] = ()


class EntityManifest(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity: str
    model: str
    fields: dict[str, FieldSpec] = Field(default_factory=dict)
    defaults: ManifestDefaults = Field(default_factory=ManifestDefaults)
    team_scoped: bool = False

    @field_validator("entity", "model")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @model_validator(mode="after")
    def _defaults_within_allowlist(self) -> EntityManifest:
        # Defaults are applied after per-request validation; hold them to the
        # field and operator allowlist here.
        problems: list[str] = []
        for f in self.defaults.filters:
            spec = self.fields.get(f.field)
            if spec is None:
                problems.append(f"default filter on undeclared field '{f.field}'")
            elif f.op not in operators_for_type(spec.type):
                problems.append(
                    f"default filter operator '{f.op}' not allowed on '{f.field}'"
                    f" ({spec.type})"
                )
        sortable = sortable_fields(list(self.fields))
        for s in self.defaults.sort:
            if s.field not in sortable:
                problems.append(f"default sort on non-sortable field '{s.field}'")
        if problems:
            raise ValueError("; ".join(problems))
        return self

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EntityManifest:
        """Validate a parsed manifest document. Raises ManifestValidationError."""
        if not isinstance(data, Mapping):
            raise ManifestValidationError(
                f"Manifest must be a JSON object (got {type(data).__name__})"
            )
        try:
            return cls.model_validate(dict(data))
        except pydantic.ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'manifest'}: {err['msg']}"
                for err in e.errors()
            )
            raise ManifestValidationError(f"Invalid manifest: {problems}") from e


class ManifestEntityProvider(EntityReadProvider):
    """Provider driven entirely by an EntityManifest.

    The mapped class is looked up in the ModelCatalog when a query is
    built, so a manifest can be loaded before its module registers models.
    """

    def __init__(self, manifest: EntityManifest, catalog: ModelCatalog) -> None:
        self._manifest = manifest
        self._catalog = catalog

    @property
    def manifest(self) -> EntityManifest:
        return self._manifest

    @property
    def key(self) -> str:
        return self._manifest.entity

    @property
    def model(self) -> str:
        return self._manifest.model

    @property
    def entity_class(self) -> type:
        mapped = self._catalog.resolve(self._manifest.model)
        if mapped is None:
            raise ExecutionError(
                f"Model '{self._manifest.model}' for entity '{self.key}' is not available",
                code="MODEL_UNAVAILABLE",
            )
        return mapped

    def readable_fields(self) -> list[str]:
        return list(self._manifest.fields)

    def fillable_fields(self) -> list[str]:
        return [name for name, spec in self._manifest.fields.items() if spec.fillable]

    def readonly_fields(self) -> list[str]:
        return [name for name, spec in self._manifest.fields.items() if spec.readonly]

    def pii_fields(self) -> list[str]:
        return [name for name, spec in self._manifest.fields.items() if spec.pii]

    def allowed_filters(self) -> dict[str, frozenset[FilterOp]]:
        return {
            name: operators_for_type(spec.type) for name, spec in self._manifest.fields.items()
        }

    def allowed_sorts(self) -> list[str]:
        return sortable_fields(self.readable_fields())

    def search_fields(self) -> list[str]:
        fields = self.readable_fields()
        return [f for f in SEARCHABLE_FIELDS if f in fields]

    def default_projection(self) -> list[str]:
        fields = self.readable_fields()
        preferred = [f for f in PREFERRED_PROJECTION if f in fields]
        return preferred or fields[:FALLBACK_PROJECTION_SIZE]

    @property
    def is_team_scoped(self) -> bool:
        return self._manifest.team_scoped and TEAM_FIELD in self._manifest.fields

    def team_scoped_query(self, context: ToolContext) -> Select:
        query = self.base_query()
        if not self.is_team_scoped:
            return query
        return self.scope_to_team(query, context)

    def apply_domain_defaults(
        self, query: Select, options: ReadOptions
    ) -> tuple[Select, ReadOptions]:
        defaults = self._manifest.defaults
        filtered = options.filtered_fields()
        extra = tuple(f for f in defaults.filters if f.field not in filtered)
        if extra:
            options = options.model_copy(update={"filters": options.filters + extra})

        if not options.sort and defaults.sort:
            query = query.order_by(
                *(
                    self.column(s.field).desc()
                    if s.direction == "desc"
                    else self.column(s.field).asc()
                    for s in defaults.sort
                )
            )
        return query, options
