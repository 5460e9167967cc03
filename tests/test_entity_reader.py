"""Tests for EntityReader: allowlist validation, paging, scoping and PII masking.

The database is mocked: statements are captured and compiled to SQL so the
tests can assert on what would be sent without a live PostgreSQL.
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from toolhub.config.settings import DataReadSettings
from toolhub.data.catalog import ModelCatalog
from toolhub.data.manifest import EntityManifest, ManifestEntityProvider
from toolhub.data.provider_registry import ProviderRegistry
from toolhub.data.reader import EntityReader, mask_pii, parse_options
from toolhub.infra.errors import (
    EntityNotFoundError,
    QueryValidationError,
    RecordNotFoundError,
    ValidationError,
)
from toolhub.tools.context import TeamRef, ToolContext, UserRef


class _Base(DeclarativeBase):
    pass


class _Contact(_Base):
    __tablename__ = "crm_contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    team_id: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class _AuditLog(_Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    action: Mapped[str] = mapped_column(String(50))


MANIFESTS = [
    {
        "entity": "contact",
        "model": "crm.contact",
        "team_scoped": True,
        "fields": {
            "id": {"type": "integer"},
            "name": {"type": "string"},
            "email": {"type": "string", "pii": True},
            "active": {"type": "boolean"},
            "team_id": {"type": "integer"},
            "created_at": {"type": "datetime"},
        },
    },
    {
        "entity": "audit",
        "model": "audit.log",
        "fields": {"id": {"type": "integer"}, "action": {"type": "string"}},
    },
]


def _db(*results) -> tuple[MagicMock, AsyncMock]:
    """Session factory whose session returns `results` from successive execute() calls."""
    db = AsyncMock()
    db.execute.side_effect = list(results)
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = db
    return factory, db


def _count(total: int) -> MagicMock:
    result = MagicMock()
    result.scalar_one.return_value = total
    return result


def _rows(rows: list[dict]) -> MagicMock:
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows
    result.mappings.return_value.first.return_value = rows[0] if rows else None
    return result


def _reader(factory=None) -> EntityReader:
    catalog = ModelCatalog({"crm.contact": _Contact, "audit.log": _AuditLog})
    providers = ProviderRegistry()
    for manifest in MANIFESTS:
        providers.register(ManifestEntityProvider(EntityManifest.from_dict(manifest), catalog))
    return EntityReader(providers, factory or MagicMock(), DataReadSettings())


def _sql(stmt) -> str:
    return str(
        stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True})
    )


def _params(stmt) -> list:
    return list(stmt.compile(dialect=postgresql.dialect()).params.values())


def _team_context() -> ToolContext:
    return ToolContext(acting_user=UserRef(id=1), acting_team=TeamRef(id=3))


class TestMaskPii:
    def test_email_keeps_prefix_and_domain(self) -> None:
        assert mask_pii("john.doe@example.com") == "jo***@example.com"

    def test_other_values(self) -> None:
        assert mask_pii("+49 170 1234567") == "***"
        assert mask_pii(12345) == "***"
        assert mask_pii("a@b") == "***"


class TestParseOptions:
    def test_none(self) -> None:
        assert parse_options(None).page == 1

    def test_invalid_shape(self) -> None:
        with pytest.raises(QueryValidationError, match="Invalid read options"):
            parse_options({"filters": [{"op": "eq"}]})


class TestValidation:
    @pytest.mark.parametrize(
        ("options", "message"),
        [
            ({"filters": [{"field": "secret", "value": 1}]}, "Filter on 'secret'"),
            ({"filters": [{"field": "active", "op": "like", "value": "t"}]}, "Operator 'like'"),
            ({"sort": [{"field": "email"}]}, "Sort by 'email'"),
            ({"fields": ["id", "password"]}, "password"),
        ],
    )
    @pytest.mark.asyncio
    async def test_rejected_before_any_query(self, options: dict, message: str) -> None:
        factory, db = _db()
        reader = _reader(factory)

        with pytest.raises(QueryValidationError, match=message):
            await reader.list("contact", options, _team_context())

        db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_entity(self) -> None:
        with pytest.raises(EntityNotFoundError) as exc_info:
            await _reader().list("ghost", {}, _team_context())
        assert exc_info.value.code == "ENTITY_NOT_FOUND"

    def test_describe(self) -> None:
        described = _reader().describe("contact")
        assert described["allowed_filters"]["active"] == ["eq"]
        assert described["search_fields"] == ["name"]


class TestPaging:
    @pytest.mark.parametrize(
        ("options", "expected"),
        [
            ({}, (1, 50)),
            ({"page": 0, "per_page": 10}, (1, 10)),
            ({"page": 3, "per_page": 1000}, (3, 200)),
            ({"per_page": -5}, (1, 1)),
        ],
    )
    def test_clamped(self, options: dict, expected: tuple[int, int]) -> None:
        assert _reader().paging(parse_options(options)) == expected


class TestList:
    @pytest.mark.asyncio
    async def test_returns_records_source_and_meta(self) -> None:
        created = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        factory, db = _db(
            _count(2),
            _rows([
                {"id": 1, "name": "Jo", "created_at": created},
                {"id": 2, "name": "Al", "created_at": created},
            ]),
        )

        result = await _reader(factory).list(
            "contact", {"sort": [{"field": "id", "dir": "desc"}], "per_page": 1}, _team_context()
        )

        assert result["records"][0] == {
            "id": 1,
            "name": "Jo",
            "created_at": "2026-03-01T12:00:00+00:00",
        }
        assert result["source"] == {"entity": "contact", "model": "crm.contact"}
        meta = result["meta"]
        assert meta["total"] == 2
        assert meta["page"] == 1
        assert meta["per_page"] == 1
        assert meta["sort"] == [{"field": "id", "direction": "desc"}]
        assert meta["fields"] == ["id", "name", "created_at"]
        assert meta["duration_ms"] >= 0

    @pytest.mark.asyncio
    async def test_query_scoped_filtered_sorted_and_paged(self) -> None:
        factory, db = _db(_count(0), _rows([]))

        await _reader(factory).list(
            "contact",
            {
                "filters": [{"field": "name", "op": "like", "value": "ann"}],
                "sort": [{"field": "id", "dir": "desc"}],
                "fields": ["id", "name"],
                "page": 3,
                "per_page": 20,
            },
            _team_context(),
        )

        stmt = db.execute.call_args_list[1].args[0]
        sql = _sql(stmt)
        assert sql.startswith("SELECT crm_contacts.id, crm_contacts.name")
        assert "crm_contacts.email" not in sql
        assert "crm_contacts.team_id = 3" in sql
        assert "crm_contacts.name LIKE " in sql
        assert "%ann%" in _params(stmt)
        assert "ORDER BY crm_contacts.id DESC" in sql
        assert "LIMIT 20 OFFSET 40" in sql

    @pytest.mark.asyncio
    async def test_without_team_no_team_filter(self) -> None:
        factory, db = _db(_count(0), _rows([]))

        await _reader(factory).list("contact", {}, ToolContext(acting_user=UserRef(id=1)))

        sql = _sql(db.execute.call_args_list[1].args[0])
        assert "WHERE" not in sql

    @pytest.mark.asyncio
    async def test_pii_masked(self) -> None:
        factory, _ = _db(_count(1), _rows([{"id": 1, "email": "maria@example.org"}]))

        result = await _reader(factory).list(
            "contact", {"fields": ["id", "email"]}, _team_context()
        )

        assert result["records"] == [{"id": 1, "email": "ma***@example.org"}]


class TestSearch:
    @pytest.mark.asyncio
    async def test_search_matches_search_fields(self) -> None:
        factory, db = _db(_count(0), _rows([]))

        await _reader(factory).search("contact", "ann", {}, _team_context())

        stmt = db.execute.call_args_list[1].args[0]
        assert "crm_contacts.name ILIKE " in _sql(stmt)
        assert "%ann%" in _params(stmt)

    @pytest.mark.asyncio
    async def test_search_unsupported(self) -> None:
        factory, db = _db()

        with pytest.raises(ValidationError) as exc_info:
            await _reader(factory).search("audit", "x", {}, _team_context())

        assert exc_info.value.code == "SEARCH_NOT_SUPPORTED"
        db.execute.assert_not_called()


class TestGet:
    @pytest.mark.asyncio
    async def test_found(self) -> None:
        factory, db = _db(_rows([{"id": 5, "name": "Zoe", "email": "zoe@x.io"}]))

        result = await _reader(factory).get("contact", 5, _team_context())

        assert result["record"] == {"id": 5, "name": "Zoe", "email": "zo***@x.io"}
        sql = _sql(db.execute.call_args.args[0])
        assert "crm_contacts.id = 5" in sql
        assert "crm_contacts.team_id = 3" in sql

    @pytest.mark.asyncio
    async def test_missing_row(self) -> None:
        factory, _ = _db(_rows([]))

        with pytest.raises(RecordNotFoundError) as exc_info:
            await _reader(factory).get("contact", 99, _team_context())
        assert exc_info.value.code == "ROW_NOT_FOUND"
