"""Allowlisted, tenant-scoped reads over registered entity providers.

Every caller-supplied filter, sort and projection is checked against the
provider's allowlists before any SQL is built. PII fields are masked in
the returned records.
"""

from __future__ import annotations

import re
import time
import uuid
from collections.abc import Mapping
from datetime import date, datetime, time as dt_time
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pydantic
import structlog
from sqlalchemy import func, or_, select

from toolhub.data.provider import compile_filter
from toolhub.data.query import ReadOptions, SortDirection
from toolhub.infra.errors import (
    EntityNotFoundError,
    QueryValidationError,
    RecordNotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from toolhub.config.settings import DataReadSettings
    from toolhub.data.provider import EntityReadProvider
    from toolhub.data.provider_registry import ProviderRegistry
    from toolhub.tools.context import ToolContext

logger = structlog.get_logger()

_EMAIL_MASK = re.compile(r"(.{2}).*(@.*)")


def mask_pii(value: Any) -> str:
    """Emails keep their first two characters and the domain; anything else is '***'."""
    if isinstance(value, str) and "@" in value:
        masked, count = _EMAIL_MASK.subn(r"\1***\2", value)
        if count:
            return masked
    return "***"


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime | date | dt_time):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def parse_options(options: ReadOptions | Mapping[str, Any] | None) -> ReadOptions:
    if options is None:
        return ReadOptions()
    if isinstance(options, ReadOptions):
        return options
    try:
        return ReadOptions.model_validate(dict(options))
    except pydantic.ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise QueryValidationError(f"Invalid read options: {problems}") from e


class EntityReader:
    def __init__(
        self,
        providers: ProviderRegistry,
        db_session_factory: async_sessionmaker[AsyncSession],
        settings: DataReadSettings,
    ) -> None:
        self._providers = providers
        self._db_factory = db_session_factory
        self._settings = settings

    def provider(self, entity: str) -> EntityReadProvider:
        provider = self._providers.get(entity)
        if provider is None:
            raise EntityNotFoundError(entity)
        return provider

    def describe(self, entity: str) -> dict[str, Any]:
        return self.provider(entity).describe()

    def build_query(
        self, provider: EntityReadProvider, options: ReadOptions, context: ToolContext
    ) -> tuple[Select, ReadOptions]:
        """Scoped, filtered, searched and sorted query (no projection, no paging)."""
        mapped = tuple(
            f for f in (provider.map_filter(f) for f in options.filters) if f is not None
        )
        options = options.model_copy(update={"filters": mapped})
        self.validate(provider, options)

        query = provider.team_scoped_query(context)
        query, options = provider.apply_domain_defaults(query, options)

        for f in options.filters:
            query = query.where(compile_filter(provider.column(f.field), f))

        if options.query:
            search_fields = provider.search_fields()
            if not search_fields:
                raise ValidationError(
                    f"Search not supported for {provider.key}", code="SEARCH_NOT_SUPPORTED"
                )
            pattern = f"%{options.query}%"
            matches = [provider.column(name).ilike(pattern) for name in search_fields]
            query = query.where(or_(*matches))

        for s in options.sort:
            column = provider.column(s.field)
            ordered = column.desc() if s.direction is SortDirection.desc else column.asc()
            query = query.order_by(ordered)
        return query, options

    def validate(self, provider: EntityReadProvider, options: ReadOptions) -> None:
        """Raise QueryValidationError for anything outside the provider's allowlists."""
        allowed = provider.allowed_filters()
        for f in options.filters:
            if f.field not in allowed:
                raise QueryValidationError(
                    f"Filter on '{f.field}' is not allowed for {provider.key}"
                )
            if f.op not in allowed[f.field]:
                raise QueryValidationError(
                    f"Operator '{f.op}' is not allowed on {provider.key}.{f.field}"
                )

        sorts = set(provider.allowed_sorts())
        for s in options.sort:
            if s.field not in sorts:
                raise QueryValidationError(
                    f"Sort by '{s.field}' is not allowed for {provider.key}"
                )

        if options.fields is not None:
            readable = set(provider.readable_fields())
            unknown = [name for name in options.fields if name not in readable]
            if unknown:
                raise QueryValidationError(
                    f"Fields not readable for {provider.key}: {', '.join(unknown)}"
                )

    def paging(self, options: ReadOptions) -> tuple[int, int]:
        page = max(1, options.page)
        per_page = options.per_page or self._settings.default_per_page
        return page, min(self._settings.max_per_page, max(1, per_page))

    async def list(
        self,
        entity: str,
        options: ReadOptions | Mapping[str, Any] | None,
        context: ToolContext,
    ) -> dict[str, Any]:
        provider = self.provider(entity)
        options = parse_options(options)
        start = time.perf_counter()

        query, options = self.build_query(provider, options, context)
        fields = list(options.fields or provider.default_projection())
        page, per_page = self.paging(options)

        count_stmt = select(func.count()).select_from(query.order_by(None).subquery())
        rows_stmt = (
            query.with_only_columns(*(provider.column(name) for name in fields))
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        async with self._db_factory() as db:
            total = (await db.execute(count_stmt)).scalar_one()
            rows = (await db.execute(rows_stmt)).mappings().all()

        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "entity_listed",
            entity=entity,
            total=total,
            page=page,
            per_page=per_page,
            duration_ms=duration_ms,
            **context.to_log_fields(),
        )
        return {
            "records": [self.redact(provider, row) for row in rows],
            "source": {"entity": entity, "model": provider.model},
            "meta": {
                "total": total,
                "page": page,
                "per_page": per_page,
                "sort": [s.model_dump() for s in options.sort],
                "fields": fields,
                "duration_ms": duration_ms,
            },
        }

    async def get(self, entity: str, record_id: int | str, context: ToolContext) -> dict[str, Any]:
        provider = self.provider(entity)
        fields = provider.readable_fields()
        stmt = (
            provider.team_scoped_query(context)
            .where(provider.column("id") == record_id)
            .with_only_columns(*(provider.column(name) for name in fields))
        )
        async with self._db_factory() as db:
            row = (await db.execute(stmt)).mappings().first()
        if row is None:
            raise RecordNotFoundError(entity, record_id)
        return {
            "record": self.redact(provider, row),
            "source": {"entity": entity, "model": provider.model},
        }

    async def search(
        self,
        entity: str,
        text: str,
        options: ReadOptions | Mapping[str, Any] | None,
        context: ToolContext,
    ) -> dict[str, Any]:
        provider = self.provider(entity)
        if not provider.search_fields():
            raise ValidationError(
                f"Search not supported for {entity}", code="SEARCH_NOT_SUPPORTED"
            )
        options = parse_options(options).model_copy(update={"query": text})
        return await self.list(entity, options, context)

    def redact(self, provider: EntityReadProvider, row: Mapping[str, Any]) -> dict[str, Any]:
        record = {key: _jsonable(value) for key, value in row.items()}
        for name in provider.pii_fields():
            if record.get(name) is not None:
                record[name] = mask_pii(record[name])
        return record
